from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Callable

from buildverify.common.exceptions import ExtractionError
from buildverify.common.execution import run_cmd
from buildverify.core.models import ComparisonOutcome, Verdict
from buildverify.verification.hasher import sha256_file
from .archives import extract_archive, find_file

Runner = Callable[..., subprocess.CompletedProcess]


class ArchiveMemberComparator:
    """Built file against the same-named file inside the official archive.

    For releases that ship a single binary wrapped in a zip or tarball.
    """

    name = "member"

    def __init__(self, runner: Runner = run_cmd):
        self.runner = runner

    def compare(self, built: Path, official: Path, workdir: Path) -> ComparisonOutcome:
        root = extract_archive(official, workdir / "official", runner=self.runner)
        member = find_file(root, built.name)
        if member is None:
            raise ExtractionError(str(official), f"{built.name} not found in archive")

        built_hash, member_hash = sha256_file(built), sha256_file(member)
        official_hash = sha256_file(official)
        rel = member.relative_to(root).as_posix()
        if built_hash == member_hash:
            return ComparisonOutcome(
                Verdict.CONTENTS_IDENTICAL,
                built_hash,
                official_hash,
                notes=[f"Identical to {rel} in {official.name}"],
            )
        return ComparisonOutcome(
            Verdict.DIFFERENT,
            built_hash,
            official_hash,
            notes=[f"Differs from {rel} in {official.name} (member {member_hash})"],
        )
