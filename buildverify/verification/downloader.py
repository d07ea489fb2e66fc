import logging
from pathlib import Path
from typing import Callable, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from buildverify import config
from buildverify.common.exceptions import DownloadError

logger = logging.getLogger(__name__)

# Statuses meaning "not published", as opposed to a transient failure
MISSING_STATUSES = (404, 410)


class FixedDelayRetry(Retry):
    """Retry with the same pause before every attempt; no exponential growth."""

    DELAY = 2.0

    def get_backoff_time(self) -> float:
        return self.DELAY


class ReleaseDownloader:
    """Fetch official release artifacts over HTTPS.

    Transient failures are retried by the transport adapter a fixed number of
    times with a fixed pause between attempts. A 404/410 is not an error here:
    it means the project never published the file, which the caller reports
    as ``nosource``.
    """

    def __init__(
        self,
        retries: int = config.DOWNLOAD_RETRIES,
        timeout: float = config.DOWNLOAD_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", f"buildverify/{config.SCRIPT_VERSION}")
        retry = FixedDelayRetry(
            total=retries,
            connect=retries,
            read=retries,
            status=retries,
            status_forcelist=(500, 502, 503, 504),
            respect_retry_after_header=False,
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

    def download(
        self,
        url: str,
        dest: Path,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> Optional[Path]:
        """
        Download ``url`` to ``dest``, streaming the body to disk.

        Returns the destination path, or None when the server answers 404/410.
        Raises DownloadError on any other failure; partial files are removed.
        """
        dest.parent.mkdir(parents=True, exist_ok=True)
        partial = dest.with_name(dest.name + ".part")
        logger.info("Downloading %s", url)
        try:
            with self.session.get(url, stream=True, timeout=self.timeout) as resp:
                if resp.status_code in MISSING_STATUSES:
                    logger.warning("Not published (HTTP %s): %s", resp.status_code, url)
                    return None
                resp.raise_for_status()
                total = int(resp.headers.get("Content-Length") or 0)
                written = 0
                with open(partial, "wb") as fh:
                    for chunk in resp.iter_content(chunk_size=config.DOWNLOAD_CHUNK):
                        if not chunk:
                            continue
                        fh.write(chunk)
                        written += len(chunk)
                        if progress_callback:
                            progress_callback(written, total)
            partial.replace(dest)
        except requests.RequestException as e:
            partial.unlink(missing_ok=True)
            raise DownloadError(url, str(e)) from e
        except OSError as e:
            partial.unlink(missing_ok=True)
            raise DownloadError(url, f"cannot write {dest}: {e}") from e

        logger.debug("Saved to %s", dest)
        return dest

    def fetch_text(self, url: str) -> Optional[str]:
        """Small text resources (SHA256SUMS). None when not published."""
        try:
            resp = self.session.get(url, timeout=self.timeout)
            if resp.status_code in MISSING_STATUSES:
                return None
            resp.raise_for_status()
            return resp.text
        except requests.RequestException as e:
            raise DownloadError(url, str(e)) from e
