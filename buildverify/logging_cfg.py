"""Centralized logging helpers for buildverify.

Provide helpers to create loggers that write to the console and to a per-run
log file inside the workspace. Console lines are tagged and colored the way
the build server operators are used to reading them ([INFO], [OK], [WARN],
[ERROR]); JSON output is available for non-interactive runs.
"""

from __future__ import annotations

import contextvars
import functools
import json
import logging
import os
import sys
import time
import uuid
from pathlib import Path
from typing import Optional

from .config import LOG_FILENAME


class Col:
    RESET = "\033[0m"
    RED = "\033[1;31m"
    GREEN = "\033[1;32m"
    YELLOW = "\033[1;33m"
    BLUE = "\033[1;34m"
    GREY = "\033[90m"
    BOLD = "\033[1m"


SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

_STD_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"

_TAGS = {
    logging.DEBUG: ("[DEBUG]", Col.GREY),
    logging.INFO: ("[INFO]", Col.BLUE),
    SUCCESS: ("[OK]", Col.GREEN),
    logging.WARNING: ("[WARN]", Col.YELLOW),
    logging.ERROR: ("[ERROR]", Col.RED),
    logging.CRITICAL: ("[ERROR]", Col.RED),
}


def log_success(logger: logging.Logger, msg: str, *args) -> None:
    logger.log(SUCCESS, msg, *args)


class TaggedFormatter(logging.Formatter):
    """Human console formatter: ``[TAG] message``, colored when on a TTY."""

    def __init__(self, color: bool = True):
        super().__init__("%(message)s")
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        msg = super().format(record)
        tag, colour = _TAGS.get(record.levelno, ("[INFO]", Col.BLUE))
        if self.color:
            return f"{colour}{tag}{Col.RESET} {msg}"
        return f"{tag} {msg}"


def attach_run_log(base_dir: Path, level: int = logging.DEBUG) -> logging.Handler:
    """Attach a file handler for one verification run to the package logger.

    The caller detaches it with ``detach_run_log`` once the run is over.
    """
    base_dir.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(str(base_dir / LOG_FILENAME), encoding="utf-8")
    fh.name = "buildverify_run"
    fh.setLevel(level)
    fh.setFormatter(logging.Formatter(_STD_FORMAT))
    pkg_logger = logging.getLogger("buildverify")
    pkg_logger.addHandler(fh)
    if pkg_logger.level == logging.NOTSET or pkg_logger.level > level:
        pkg_logger.setLevel(level)
    return fh


def detach_run_log(handler: logging.Handler) -> None:
    logging.getLogger("buildverify").removeHandler(handler)
    handler.close()


# Correlation ID support for tracing one verification run across modules
_cid_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "buildverify_correlation_id", default=None
)


def set_correlation_id(cid: str | None = None) -> str:
    """Set or create and set a correlation id for the current context.

    Returns the correlation id string.
    """
    if cid is None:
        cid = uuid.uuid4().hex
    _cid_var.set(cid)
    return cid


def get_correlation_id() -> str | None:
    return _cid_var.get()


class JsonFormatter(logging.Formatter):
    """Minimal JSON formatter that includes correlation id when available."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        cid = get_correlation_id()
        if cid:
            payload["correlation_id"] = cid
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def log_call(level: int = logging.DEBUG):
    """Decorator that logs function entry, duration and exit.

    Usage:
        @log_call()
        def foo(...):
            ...
    """

    def _decorator(func):
        @functools.wraps(func)
        def _wrapper(*args, **kwargs):
            logger = logging.getLogger(func.__module__)
            start = time.time()
            logger.debug("Entering %s", func.__qualname__)
            try:
                result = func(*args, **kwargs)
            except Exception:
                duration = (time.time() - start) * 1000.0
                logger.debug(
                    "Exception in %s after %.2fms",
                    func.__qualname__,
                    duration,
                )
                raise
            duration = (time.time() - start) * 1000.0
            logger.log(
                level,
                "Exited %s; duration_ms=%.2f; return=%s",
                func.__qualname__,
                duration,
                repr(result)[:100],
            )
            return result

        return _wrapper

    return _decorator


def configure_logging(env: Optional[str] = "auto", level: int = logging.INFO):
    """Configure the root logger.

    env: 'auto' (default) | 'json' | 'human'
    - 'auto' chooses human-readable when stderr is a TTY, otherwise JSON,
      unless BUILDVERIFY_LOG_FORMAT says otherwise.
    - 'json' forces JSON output.
    - 'human' forces the tagged formatter.

    Returns the root logger.
    """
    chosen = env if env and env != "auto" else os.getenv("BUILDVERIFY_LOG_FORMAT", "auto")
    chosen = chosen.lower()
    is_tty = sys.stderr.isatty()
    if chosen == "json":
        mode = "json"
    elif chosen == "human":
        mode = "human"
    else:
        mode = "human" if is_tty else "json"

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Add one console handler idempotently (mark by name)
    existing = [
        h for h in root_logger.handlers if getattr(h, "name", None) == "buildverify_console"
    ]
    for h in existing:
        root_logger.removeHandler(h)

    sh = logging.StreamHandler()
    sh.name = "buildverify_console"
    sh.setLevel(level)
    if mode == "json":
        sh.setFormatter(JsonFormatter())
    else:
        sh.setFormatter(TaggedFormatter(color=is_tty))
    root_logger.addHandler(sh)

    return root_logger
