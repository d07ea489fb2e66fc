from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable

from ..core.models import ComparisonOutcome, Verdict
from ..verification.hasher import sha256_file


@runtime_checkable
class Comparator(Protocol):
    """Decides whether a built artifact reproduces the official one.

    Implementations are pure functions of the two files' contents: the same
    pair always yields the same verdict. ``workdir`` is scratch space owned by
    the caller.
    """

    name: str

    def compare(self, built: Path, official: Path, workdir: Path) -> ComparisonOutcome:
        ...


def hash_pair(built: Path, official: Path) -> tuple[str, str]:
    return sha256_file(built), sha256_file(official)


def identical_outcome(built_hash: str, official_hash: str) -> ComparisonOutcome:
    return ComparisonOutcome(
        Verdict.IDENTICAL, built_hash, official_hash, notes=["Byte-for-byte identical"]
    )
