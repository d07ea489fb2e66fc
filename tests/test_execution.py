import logging
import shutil
import subprocess
import sys
from pathlib import Path

import pytest

import buildverify.common.execution as exec_mod
from buildverify.common.exceptions import DependencyError

needs_sh = pytest.mark.skipif(shutil.which("sh") is None, reason="needs a POSIX shell")


@needs_sh
def test_run_cmd_captures_both_streams():
    res = exec_mod.run_cmd(["sh", "-c", "echo hello; echo oops >&2; exit 4"])
    assert res.returncode == 4
    assert res.stdout.strip() == "hello"
    assert res.stderr.strip() == "oops"


@needs_sh
def test_run_cmd_input_env_and_cwd(tmp_path):
    res = exec_mod.run_cmd(
        ["sh", "-c", "cat; echo $BV_TEST; pwd"],
        input="from-stdin\n",
        env={"BV_TEST": "value"},
        cwd=tmp_path,
    )
    lines = res.stdout.splitlines()
    assert lines[0] == "from-stdin"
    assert lines[1] == "value"
    assert Path(lines[2]).resolve() == tmp_path.resolve()


@needs_sh
def test_run_cmd_timeout():
    with pytest.raises(subprocess.TimeoutExpired):
        exec_mod.run_cmd(["sh", "-c", "sleep 5"], timeout=0.2)


@needs_sh
def test_run_cmd_stream_tail_and_log(tmp_path):
    seen = []
    log = tmp_path / "logs" / "build.log"
    res = exec_mod.run_cmd_stream(
        ["sh", "-c", "for i in 1 2 3 4 5; do echo line$i; done; echo err >&2"],
        on_line=seen.append,
        stream_to_file=log,
        tail=2,
    )
    assert res.returncode == 0
    assert seen[:5] == ["line1", "line2", "line3", "line4", "line5"]
    assert "err" in seen
    assert len(res.stdout.splitlines()) == 2
    assert "line1" in log.read_text()


@needs_sh
def test_run_cmd_stream_feeds_input():
    res = exec_mod.run_cmd_stream(["sh", "-c", "cat"], input="FROM scratch\n")
    assert res.stdout == "FROM scratch"


def test_open_stream_binary_stdout():
    with exec_mod.open_stream([sys.executable, "-c", "import sys; sys.stdout.buffer.write(b'\\x00\\x01')"]) as proc:
        data = proc.stdout.read()
    assert data == b"\x00\x01"
    assert proc.returncode == 0


def test_open_stream_survives_large_stderr(caplog):
    # Far more stderr than a pipe buffer holds, written before any stdout
    script = "import sys; sys.stderr.write('w' * 1000000); sys.stderr.flush(); sys.stdout.buffer.write(b'ok'); sys.exit(3)"
    with caplog.at_level(logging.DEBUG, logger="buildverify.common.execution"):
        with exec_mod.open_stream([sys.executable, "-c", script]) as proc:
            data = proc.stdout.read()
    assert data == b"ok"
    assert proc.returncode == 3
    assert "open_stream rc=3" in caplog.text


def test_cancel_current_process_register_and_cancel():
    class FakeProc:
        def __init__(self):
            self.killed = False

        def kill(self):
            self.killed = True

    proc = FakeProc()
    exec_mod._register_process(proc)
    try:
        assert exec_mod.cancel_current_process() is True
        assert proc.killed
    finally:
        exec_mod._unregister_process(proc)
    assert exec_mod.cancel_current_process() is False


def test_cancel_falls_back_to_terminate():
    class Stubborn:
        terminated = False

        def kill(self):
            raise OSError("no")

        def terminate(self):
            self.terminated = True

    proc = Stubborn()
    exec_mod._register_process(proc)
    try:
        assert exec_mod.cancel_current_process() is True
        assert proc.terminated
    finally:
        exec_mod._unregister_process(proc)


def test_find_and_require_tool(monkeypatch):
    monkeypatch.setattr(shutil, "which", lambda name: None)
    assert exec_mod.find_tool("osslsigncode") is None
    with pytest.raises(DependencyError) as exc:
        exec_mod.require_tool("ar", "Install binutils.")
    assert exc.value.tool_name == "ar"
    assert "binutils" in str(exc.value)


def test_run_with_retries_succeeds_after_failures():
    results = iter([1, 128, 0])
    calls = []
    sleeps = []

    def runner(cmd, **kwargs):
        calls.append(cmd)
        return subprocess.CompletedProcess(cmd, next(results), "", "")

    res = exec_mod.run_with_retries(["git", "clone"], attempts=3, delay=5, runner=runner, sleep=sleeps.append)
    assert res.returncode == 0
    assert len(calls) == 3
    assert sleeps == [5, 5]


def test_run_with_retries_gives_up():
    sleeps = []

    def runner(cmd, **kwargs):
        return subprocess.CompletedProcess(cmd, 1, "", "network down")

    res = exec_mod.run_with_retries(["git"], attempts=2, delay=1, runner=runner, sleep=sleeps.append)
    assert res.returncode == 1
    assert sleeps == [1]
