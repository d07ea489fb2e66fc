from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from buildverify import config
from buildverify.verification.hasher import NOT_AVAILABLE


class Status(str, Enum):
    """Value of ``results[].status`` in COMPARISON_RESULTS.yaml."""
    REPRODUCIBLE = "reproducible"
    NOT_REPRODUCIBLE = "not_reproducible"
    FTBFS = "ftbfs"
    NOSOURCE = "nosource"


class Verdict(str, Enum):
    """Finer-grained comparator outcome, shown in the results block."""
    IDENTICAL = "identical"
    CONTENTS_IDENTICAL = "contents_identical"
    PARTIAL_MATCH = "partial_match"
    MANUAL_REVIEW = "manual_review"
    DIFFERENT = "different"

    @property
    def is_match(self) -> bool:
        return self in (Verdict.IDENTICAL, Verdict.CONTENTS_IDENTICAL)

    @property
    def status(self) -> Status:
        return Status.REPRODUCIBLE if self.is_match else Status.NOT_REPRODUCIBLE


@dataclass(frozen=True, slots=True)
class VerificationRequest:
    """Canonical, validated parameters of one run. Never mutated."""
    project: str
    version: str
    architecture: str
    build_type: str
    triplet: str
    workdir: Path

    @property
    def bare_version(self) -> str:
        return self.version[1:] if self.version.startswith("v") else self.version


@dataclass(slots=True)
class SourceCheckout:
    path: Path
    ref: str
    commit: str
    signature_verified: bool = False
    source_date_epoch: Optional[int] = None


@dataclass(slots=True)
class ComparisonOutcome:
    """What a comparator concluded about one built/official pair."""
    verdict: Verdict
    built_hash: str
    official_hash: str
    notes: list[str] = field(default_factory=list)
    diff_lines: list[str] = field(default_factory=list)

    @property
    def match(self) -> bool:
        return self.verdict.is_match


@dataclass(slots=True)
class ComparisonResult:
    """One entry of ``results`` in COMPARISON_RESULTS.yaml."""
    architecture: str
    filename: str
    status: Status
    hash: str = NOT_AVAILABLE
    match: bool = False
    official_hash: Optional[str] = None
    notes: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "architecture": self.architecture,
            "filename": self.filename,
            "hash": self.hash,
            "match": self.match,
            "status": self.status.value,
        }
        if self.official_hash:
            data["official_hash"] = self.official_hash
        if self.notes:
            data["notes"] = self.notes
        if self.error:
            data["error"] = self.error
        return data


@dataclass(slots=True)
class RunOutcome:
    """Terminal state of a verification run.

    Every run ends in exactly one of these; the exit code is derived from it
    and nowhere else.
    """
    request: VerificationRequest
    status: Status
    results: list[ComparisonResult] = field(default_factory=list)
    verdict: Optional[Verdict] = None
    checkout: Optional[SourceCheckout] = None
    comparisons: dict[str, ComparisonOutcome] = field(default_factory=dict)
    error: Optional[str] = None
    duration: float = 0.0

    @property
    def exit_code(self) -> int:
        if self.status is Status.REPRODUCIBLE:
            return config.EXIT_REPRODUCIBLE
        if self.verdict is Verdict.MANUAL_REVIEW:
            return config.EXIT_MANUAL_REVIEW
        return config.EXIT_NOT_REPRODUCIBLE

    @property
    def verdict_label(self) -> str:
        """Label for the results block: the verdict if compared, else the status."""
        if self.status in (Status.FTBFS, Status.NOSOURCE) or self.verdict is None:
            return self.status.value
        if self.verdict is Verdict.IDENTICAL or self.verdict is Verdict.DIFFERENT:
            return self.status.value
        return f"{self.status.value} ({self.verdict.value})"
