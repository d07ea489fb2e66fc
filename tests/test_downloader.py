from unittest.mock import MagicMock

import pytest
import requests

from buildverify.common.exceptions import DownloadError
from buildverify.verification.downloader import FixedDelayRetry, ReleaseDownloader


def _response(status=200, chunks=(b"data",), text="", headers=None):
    resp = MagicMock()
    resp.status_code = status
    resp.headers = headers or {}
    resp.text = text
    resp.iter_content.return_value = list(chunks)
    resp.__enter__.return_value = resp
    resp.__exit__.return_value = False
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    return resp


def _downloader(resp=None, exc=None):
    session = MagicMock()
    session.headers = {}
    if exc is not None:
        session.get.side_effect = exc
    else:
        session.get.return_value = resp
    return ReleaseDownloader(retries=2, timeout=5, session=session), session


def test_download_streams_to_dest(tmp_path):
    resp = _response(chunks=[b"ab", b"", b"cd"], headers={"Content-Length": "4"})
    dl, session = _downloader(resp)
    seen = []
    dest = tmp_path / "official" / "a.tar.gz"
    assert dl.download("https://x/a.tar.gz", dest, progress_callback=lambda w, t: seen.append((w, t))) == dest
    assert dest.read_bytes() == b"abcd"
    assert seen == [(2, 4), (4, 4)]
    assert not (tmp_path / "official" / "a.tar.gz.part").exists()
    session.get.assert_called_once_with("https://x/a.tar.gz", stream=True, timeout=5)


@pytest.mark.parametrize("status", [404, 410])
def test_download_missing_returns_none(tmp_path, status):
    dl, _ = _downloader(_response(status))
    dest = tmp_path / "a.exe"
    assert dl.download("https://x/a.exe", dest) is None
    assert not dest.exists()


def test_download_server_error_raises(tmp_path):
    dl, _ = _downloader(_response(503))
    with pytest.raises(DownloadError) as exc:
        dl.download("https://x/a.exe", tmp_path / "a.exe")
    assert exc.value.status == "nosource"
    assert not (tmp_path / "a.exe.part").exists()


def test_download_connection_error(tmp_path):
    dl, _ = _downloader(exc=requests.ConnectionError("reset"))
    with pytest.raises(DownloadError):
        dl.download("https://x/a.exe", tmp_path / "a.exe")


def test_fetch_text():
    dl, _ = _downloader(_response(text="abc  file\n"))
    assert dl.fetch_text("https://x/SHA256SUMS") == "abc  file\n"


def test_fetch_text_missing():
    dl, _ = _downloader(_response(404))
    assert dl.fetch_text("https://x/SHA256SUMS") is None


def test_session_configuration():
    dl, session = _downloader(_response())
    assert session.headers["User-Agent"].startswith("buildverify/")
    mounted = [c.args[0] for c in session.mount.call_args_list]
    assert mounted == ["https://", "http://"]


def test_fixed_delay_retry():
    retry = FixedDelayRetry(total=3)
    assert retry.get_backoff_time() == FixedDelayRetry.DELAY
