import hashlib
import os
from pathlib import Path
from typing import Dict, Iterable, Optional

NOT_AVAILABLE = "N/A"


def sha256_file(path: Path, block_size: int = 1024 * 1024) -> str:
    """SHA-256 hex digest of ``path``, read in chunks.

    Raises OSError when the file cannot be read.
    """
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        while True:
            chunk = f.read(block_size)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()


def sha256_or_na(path: Optional[Path]) -> str:
    """SHA-256 of ``path``, or "N/A" when there is no such file."""
    if path is None or not path.is_file():
        return NOT_AVAILABLE
    return sha256_file(path)


def hash_tree(root: Path, patterns: Iterable[str] = ("*",)) -> Dict[str, str]:
    """Map every file under ``root`` matching ``patterns`` to its SHA-256.

    Keys are POSIX paths relative to root. Symlinks are not followed: their
    value is ``"symlink:<target>"`` so a changed link target counts as a
    difference.
    """
    root = Path(root)
    hashed: Dict[str, str] = {}
    for pattern in patterns:
        for p in root.rglob(pattern):
            rel = p.relative_to(root).as_posix()
            if rel in hashed:
                continue
            if p.is_symlink():
                hashed[rel] = f"symlink:{os.readlink(p)}"
            elif p.is_file():
                hashed[rel] = sha256_file(p)
    return dict(sorted(hashed.items()))
