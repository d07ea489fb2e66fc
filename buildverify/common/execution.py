import logging
import os
import shlex
import shutil
import subprocess
import tempfile
import threading
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Set

from .exceptions import DependencyError

logger = logging.getLogger(__name__)

_RUNNING_PROCESSES: Set[subprocess.Popen] = set()
_LOCK = threading.Lock()


def _register_process(proc: subprocess.Popen) -> None:
    with _LOCK:
        _RUNNING_PROCESSES.add(proc)


def _unregister_process(proc: subprocess.Popen) -> None:
    with _LOCK:
        _RUNNING_PROCESSES.discard(proc)


def cancel_current_process() -> bool:
    """Attempt to kill all currently running subprocesses managed by this module.

    Used by the signal handler so an interrupted verification does not leave
    git or the container engine client running behind it.

    Returns:
        bool: True if any process was cancelled, False otherwise.
    """
    with _LOCK:
        procs = list(_RUNNING_PROCESSES)

    if not procs:
        return False

    cancelled_any = False
    for proc in procs:
        try:
            proc.kill()
            cancelled_any = True
        except OSError:
            try:
                proc.terminate()
                cancelled_any = True
            except OSError:
                logger.debug("Could not terminate process %s", getattr(proc, "pid", "?"))
    return cancelled_any


def find_tool(name: str) -> Optional[Path]:
    """Find an executable in the system PATH.

    Args:
        name: The name of the executable to find.

    Returns:
        Optional[Path]: The path to the executable if found, None otherwise.
    """
    p = shutil.which(name)
    if p:
        return Path(p).resolve()
    return None


def require_tool(name: str, hint: str = "") -> Path:
    """Like find_tool, but raise DependencyError with an instructive message."""
    path = find_tool(name)
    if path is None:
        msg = f"Required tool not found on PATH: {name}"
        if hint:
            msg += f". {hint}"
        raise DependencyError(name, msg)
    return path


def _merged_env(env: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
    if not env:
        return None
    merged = dict(os.environ)
    merged.update(env)
    return merged


def run_cmd(
    cmd: List[str],
    *,
    cwd: Optional[Path] = None,
    env: Optional[Dict[str, str]] = None,
    input: Optional[str] = None,
    timeout: Optional[float] = None,
) -> subprocess.CompletedProcess:
    """Run a subprocess command and capture its output.

    Args:
        cmd: The command to run as a list of strings.
        cwd: Working directory for the command.
        env: Extra environment variables, merged over os.environ.
        input: Text fed to the command's stdin.
        timeout: Optional timeout in seconds; TimeoutExpired is raised after
            the process is killed.

    Returns:
        subprocess.CompletedProcess
    """
    operation_id = uuid.uuid4().hex
    adapter = logging.LoggerAdapter(logger, {"operation_id": operation_id})
    adapter.debug("run_cmd start: %s", shlex.join(cmd))

    proc = subprocess.Popen(
        cmd,
        cwd=str(cwd) if cwd else None,
        env=_merged_env(env),
        stdin=subprocess.PIPE if input is not None else subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        encoding="utf-8",
        errors="replace",
    )
    _register_process(proc)
    try:
        out, err = proc.communicate(input=input, timeout=timeout)
    except subprocess.TimeoutExpired:
        logger.warning("Command timeout (%s s): %s", timeout, shlex.join(cmd))
        proc.kill()
        out, err = proc.communicate()
        ex = subprocess.TimeoutExpired(cmd, timeout)
        ex.stdout = out
        ex.stderr = err
        raise ex
    finally:
        _unregister_process(proc)

    res = subprocess.CompletedProcess(cmd, proc.returncode, stdout=out, stderr=err)
    adapter.debug("run_cmd finished: rc=%s", res.returncode)
    return res


def run_cmd_stream(
    cmd: List[str],
    *,
    cwd: Optional[Path] = None,
    env: Optional[Dict[str, str]] = None,
    input: Optional[str] = None,
    on_line: Optional[Callable[[str], None]] = None,
    stream_to_file: Optional[Path] = None,
    tail: int = 200,
) -> subprocess.CompletedProcess:
    """Run a subprocess and stream its combined stdout/stderr line by line.

    Long container builds print hundreds of thousands of lines, so only the
    last ``tail`` lines are kept in memory; the full output goes to
    ``stream_to_file`` when given. Each line is passed to ``on_line``.

    Returns a CompletedProcess whose stdout holds the retained tail.
    """
    operation_id = uuid.uuid4().hex
    adapter = logging.LoggerAdapter(logger, {"operation_id": operation_id})
    adapter.debug("run_cmd_stream start: %s", shlex.join(cmd))

    proc = subprocess.Popen(
        cmd,
        cwd=str(cwd) if cwd else None,
        env=_merged_env(env),
        stdin=subprocess.PIPE if input is not None else subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        encoding="utf-8",
        errors="replace",
    )
    _register_process(proc)
    out_lines: list[str] = []
    file_handle = None
    if stream_to_file is not None:
        try:
            stream_to_file.parent.mkdir(parents=True, exist_ok=True)
            file_handle = open(stream_to_file, "a", encoding="utf-8", errors="replace")
        except OSError:
            adapter.debug("failed to open stream_to_file %s", stream_to_file)

    try:
        if input is not None and proc.stdin:
            proc.stdin.write(input)
            proc.stdin.close()
        if proc.stdout:
            for raw in proc.stdout:
                line = raw.rstrip("\n")
                if file_handle:
                    file_handle.write(line + "\n")
                out_lines.append(line)
                if len(out_lines) > tail:
                    del out_lines[0]
                if on_line:
                    on_line(line)

        rc = proc.wait()
    finally:
        if file_handle:
            file_handle.close()
        _unregister_process(proc)

    completed = subprocess.CompletedProcess(cmd, rc, stdout="\n".join(out_lines), stderr=None)
    adapter.debug("run_cmd_stream finished: rc=%s", completed.returncode)
    return completed


@contextmanager
def open_stream(cmd: List[str]) -> Iterator[subprocess.Popen]:
    """Start a command with a binary stdout pipe for the caller to consume.

    The process is registered for cancellation and always reaped on exit;
    the caller inspects ``proc.returncode`` after the block. stderr goes to a
    temporary file so a chatty producer cannot block on a full pipe.
    """
    logger.debug("open_stream: %s", shlex.join(cmd))
    with tempfile.TemporaryFile() as err_file:
        proc = subprocess.Popen(cmd, stdin=subprocess.DEVNULL, stdout=subprocess.PIPE, stderr=err_file)
        _register_process(proc)
        try:
            yield proc
        finally:
            if proc.stdout:
                proc.stdout.close()
            proc.wait()
            _unregister_process(proc)
            if proc.returncode:
                err_file.seek(0)
                err = err_file.read().decode("utf-8", "replace").strip()
                logger.debug("open_stream rc=%s stderr=%s", proc.returncode, err)


def run_with_retries(
    cmd: List[str],
    *,
    attempts: int,
    delay: float,
    runner: Callable[..., subprocess.CompletedProcess] = run_cmd,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs,
) -> subprocess.CompletedProcess:
    """Run a command up to ``attempts`` times with a fixed delay between tries.

    Returns the first successful result, or the last failed one.
    """
    res = None
    for attempt in range(1, max(1, attempts) + 1):
        res = runner(cmd, **kwargs)
        if res.returncode == 0:
            return res
        logger.warning(
            "Attempt %d/%d failed (rc=%s): %s",
            attempt,
            attempts,
            res.returncode,
            shlex.join(cmd),
        )
        if attempt < attempts:
            sleep(delay)
    return res
