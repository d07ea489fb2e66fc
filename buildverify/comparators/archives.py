"""Unpacking of release archives for deep comparison."""

from __future__ import annotations

import logging
import subprocess
import tarfile
import zipfile
from pathlib import Path
from typing import Callable, Optional

from ..common.exceptions import ExtractionError
from ..common.execution import require_tool, run_cmd

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]

TAR_SUFFIXES = (".tar", ".tar.gz", ".tgz", ".tar.xz", ".txz", ".tar.bz2")
ZSTD_SUFFIXES = (".tar.zst", ".tzst")


def is_tarball(path: Path) -> bool:
    return path.name.lower().endswith(TAR_SUFFIXES + ZSTD_SUFFIXES)


def extract_tar(path: Path, dest: Path, runner: Runner = run_cmd) -> Path:
    """Unpack a tar archive (any compression tarfile knows, or zstd) into ``dest``."""
    dest.mkdir(parents=True, exist_ok=True)
    if path.name.lower().endswith(ZSTD_SUFFIXES):
        # tarfile has no zstd support before 3.14; GNU tar does
        require_tool("tar")
        res = runner(["tar", "--zstd", "-xf", str(path), "-C", str(dest)])
        if res.returncode != 0:
            raise ExtractionError(str(path), (res.stderr or "").strip())
        return dest
    try:
        with tarfile.open(path, "r:*") as tar:
            tar.extractall(dest, filter="data")
    except (tarfile.TarError, OSError) as e:
        raise ExtractionError(str(path), str(e)) from e
    return dest


def extract_zip(path: Path, dest: Path) -> Path:
    dest.mkdir(parents=True, exist_ok=True)
    try:
        with zipfile.ZipFile(path) as zf:
            zf.extractall(dest)
    except (zipfile.BadZipFile, OSError) as e:
        raise ExtractionError(str(path), str(e)) from e
    return dest


def extract_deb(path: Path, dest: Path, runner: Runner = run_cmd) -> Path:
    """Unpack the data member of a Debian package into ``dest``.

    ``ar x`` splits the package; the payload is data.tar.{xz,gz,zst}.
    """
    require_tool("ar", "Install binutils.")
    members = dest / "_deb"
    members.mkdir(parents=True, exist_ok=True)
    res = runner(["ar", "x", str(path.resolve())], cwd=members)
    if res.returncode != 0:
        raise ExtractionError(str(path), (res.stderr or "").strip())
    data = next(iter(sorted(members.glob("data.tar*"))), None)
    if data is None:
        raise ExtractionError(str(path), "no data.tar member")
    root = dest / "data"
    extract_tar(data, root, runner=runner)
    return root


def extract_archive(path: Path, dest: Path, runner: Runner = run_cmd) -> Path:
    """Unpack ``path`` according to its suffix; returns the extraction root."""
    name = path.name.lower()
    if name.endswith(".deb"):
        return extract_deb(path, dest, runner=runner)
    if name.endswith((".zip", ".jar")):
        return extract_zip(path, dest)
    if is_tarball(path):
        return extract_tar(path, dest, runner=runner)
    raise ExtractionError(str(path), "unknown archive format")


def find_file(root: Path, pattern: str) -> Optional[Path]:
    """First regular file under ``root`` whose name matches ``pattern``."""
    for p in sorted(root.rglob(pattern)):
        if p.is_file() and not p.is_symlink():
            return p
    return None
