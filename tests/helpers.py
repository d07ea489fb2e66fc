import subprocess
from pathlib import Path
from typing import Optional

from buildverify.core.models import VerificationRequest


def make_request(
    workdir: Path,
    project: str = "bitcoincore",
    version: str = "v29.1",
    architecture: str = "x86_64-linux",
    build_type: str = "tarball",
    triplet: str = "x86_64-linux-gnu",
) -> VerificationRequest:
    return VerificationRequest(project, version, architecture, build_type, triplet, workdir)


class FakeRunner:
    """Stand-in for run_cmd / run_cmd_stream that records every call.

    ``responses`` maps whole tokens of the command line (e.g. "checkout",
    "rev-parse HEAD") to
    (returncode, stdout, stderr); the first matching entry wins and anything
    unmatched succeeds with empty output. ``effects`` maps tokens to a
    callable run with the command and kwargs before answering.
    """

    def __init__(self, responses: Optional[dict] = None, effects: Optional[dict] = None):
        self.responses = responses or {}
        self.effects = effects or {}
        self.calls: list[list[str]] = []
        self.kwargs: list[dict] = []

    def __call__(self, cmd, **kwargs):
        cmd = [str(c) for c in cmd]
        self.calls.append(cmd)
        self.kwargs.append(kwargs)
        for key, effect in self.effects.items():
            if _has(cmd, key):
                effect(cmd, **kwargs)
        for key, answer in self.responses.items():
            if _has(cmd, key):
                rc, out, err = answer
                return subprocess.CompletedProcess(cmd, rc, stdout=out, stderr=err)
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    def joined(self) -> list[str]:
        return [" ".join(c) for c in self.calls]

    def find(self, fragment: str) -> list[list[str]]:
        return [c for c in self.calls if _has(c, fragment)]


def _has(cmd, fragment: str) -> bool:
    """True if ``fragment`` occurs in ``cmd`` as a run of whole arguments."""
    return f" {fragment} " in f" {' '.join(cmd)} "
