"""Source Preparer: a local clone pinned to the release tag."""

from __future__ import annotations

import logging
import subprocess
import time
from pathlib import Path
from typing import Callable, Optional

from buildverify import config
from buildverify.common.exceptions import CheckoutError, CloneError
from buildverify.common.execution import run_cmd, run_with_retries
from buildverify.core.models import SourceCheckout, VerificationRequest
from buildverify.logging_cfg import log_call, log_success

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]


def _first_line(text: Optional[str]) -> str:
    for line in (text or "").splitlines():
        if line.strip():
            return line.strip()
    return ""


class SourcePreparer:
    """Clone or refresh the upstream repository and check out the release.

    Clone/checkout failures raise SourceError subclasses (``nosource``). A tag
    that fails ``git verify-tag`` is only a warning, since release candidates
    are not always signed.
    """

    def __init__(
        self,
        repo_url: str,
        *,
        tag_candidates: list[str],
        submodules: bool = False,
        attempts: int = config.CLONE_ATTEMPTS,
        delay: float = config.CLONE_RETRY_DELAY,
        runner: Runner = run_cmd,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.repo_url = repo_url
        self.tag_candidates = tag_candidates
        self.submodules = submodules
        self.attempts = attempts
        self.delay = delay
        self.runner = runner
        self.sleep = sleep

    @log_call()
    def prepare(self, request: VerificationRequest) -> SourceCheckout:
        path = request.workdir / "source"
        self.clone_or_fetch(path)
        ref = self.resolve_ref(path)
        self.checkout(path, ref)
        if self.submodules:
            self.update_submodules(path, ref)

        verified = self.verify_tag(path, ref)
        commit = self._git(path, "rev-parse", "HEAD").stdout.strip()
        epoch = self.source_date_epoch(path)
        logger.info("Checked out %s at %s", ref, commit)
        return SourceCheckout(
            path=path,
            ref=ref,
            commit=commit,
            signature_verified=verified,
            source_date_epoch=epoch,
        )

    def _git(self, path: Path, *args: str, **kwargs) -> subprocess.CompletedProcess:
        return self.runner(["git", "-C", str(path), *args], **kwargs)

    def clone_or_fetch(self, path: Path) -> None:
        if (path / ".git").exists():
            logger.info("Refreshing existing clone in %s", path)
            res = self._git(path, "fetch", "--all", "--tags", "--prune", "--force")
            if res.returncode != 0:
                logger.warning("git fetch failed, using local refs: %s", _first_line(res.stderr))
            return

        if path.exists() and any(path.iterdir()):
            raise CloneError(self.repo_url, 0, f"{path} exists and is not a git repository")

        path.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Cloning %s", self.repo_url)
        res = run_with_retries(
            ["git", "clone", "--quiet", self.repo_url, str(path)],
            attempts=self.attempts,
            delay=self.delay,
            runner=self.runner,
            sleep=self.sleep,
        )
        if res.returncode != 0:
            raise CloneError(self.repo_url, self.attempts, _first_line(res.stderr))
        log_success(logger, "Repository cloned")

    def resolve_ref(self, path: Path) -> str:
        """First tag candidate that exists in the clone."""
        for tag in self.tag_candidates:
            res = self._git(path, "rev-parse", "--verify", "--quiet", f"refs/tags/{tag}^{{commit}}")
            if res.returncode == 0:
                return tag
            logger.debug("Tag %s not found", tag)
        raise CheckoutError(
            self.tag_candidates[0] if self.tag_candidates else "?",
            f"no such tag (tried {', '.join(self.tag_candidates)})",
        )

    def checkout(self, path: Path, ref: str) -> None:
        res = self._git(path, "checkout", "--force", "--quiet", ref)
        if res.returncode != 0:
            raise CheckoutError(ref, _first_line(res.stderr))

    def update_submodules(self, path: Path, ref: str) -> None:
        res = self._git(path, "submodule", "update", "--init", "--recursive")
        if res.returncode != 0:
            raise CheckoutError(ref, f"submodule update failed: {_first_line(res.stderr)}")

    def verify_tag(self, path: Path, ref: str) -> bool:
        try:
            res = self._git(path, "verify-tag", ref, timeout=config.VERIFY_TAG_TIMEOUT)
        except subprocess.TimeoutExpired:
            logger.warning("Timed out verifying signature of tag %s, continuing", ref)
            return False
        if res.returncode == 0:
            log_success(logger, "Tag %s has a good signature", ref)
            return True
        logger.warning(
            "Could not verify signature of tag %s, continuing: %s",
            ref,
            _first_line(res.stderr) or "no signature",
        )
        return False

    def source_date_epoch(self, path: Path) -> Optional[int]:
        res = self._git(path, "log", "-1", "--format=%ct")
        try:
            return int(res.stdout.strip())
        except (TypeError, ValueError):
            logger.debug("No commit timestamp for SOURCE_DATE_EPOCH")
            return None
