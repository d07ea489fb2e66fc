from __future__ import annotations

import logging
import shutil
import signal
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional

from buildverify import config
from buildverify.comparators.archives import find_file
from buildverify.comparators.registry import get_comparator
from buildverify.common.exceptions import (
    ArtifactMissingError,
    BuildError,
    BuildVerifyError,
    ChecksumMismatchError,
    ComparisonError,
    OfficialArtifactMissing,
    VerificationCancelled,
    format_exception_chain,
)
from buildverify.common.execution import cancel_current_process
from buildverify.core.container import ContainerSession, detect_engine, remove_stale, run_prefix
from buildverify.core.models import (
    ComparisonOutcome,
    ComparisonResult,
    RunOutcome,
    SourceCheckout,
    Status,
    Verdict,
    VerificationRequest,
)
from buildverify.core.reporting import write_results_yaml
from buildverify.core.settings import Settings
from buildverify.core.source import SourcePreparer
from buildverify.logging_cfg import attach_run_log, detach_run_log, log_success, set_correlation_id
from buildverify.projects.base import ArtifactSpec, BaseProfile
from buildverify.verification.checksums import parse_sha256sums
from buildverify.verification.downloader import ReleaseDownloader
from buildverify.verification.hasher import NOT_AVAILABLE, sha256_or_na

logger = logging.getLogger(__name__)

# Worst first; the run verdict is the worst verdict over all artifacts
_SEVERITY = (
    Verdict.DIFFERENT,
    Verdict.MANUAL_REVIEW,
    Verdict.PARTIAL_MATCH,
    Verdict.CONTENTS_IDENTICAL,
    Verdict.IDENTICAL,
)


def worst_verdict(verdicts) -> Verdict:
    found = set(verdicts)
    for v in _SEVERITY:
        if v in found:
            return v
    return Verdict.DIFFERENT


@contextmanager
def cancellation_handlers() -> Iterator[None]:
    """Turn SIGINT/SIGTERM into VerificationCancelled for the enclosed block.

    Running subprocesses are killed first so the ``with`` blocks above can
    unwind and remove their containers.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handler(signum, frame):
        cancel_current_process()
        raise VerificationCancelled(signal.Signals(signum).name)

    previous = {sig: signal.signal(sig, _handler) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def compare_pair(
    built: Path,
    official: Path,
    method: str,
    workdir: Path,
    engine: Optional[str] = None,
) -> ComparisonOutcome:
    """Run one comparator on a fresh scratch directory."""
    if workdir.exists():
        shutil.rmtree(workdir)
    workdir.mkdir(parents=True)
    comparator = get_comparator(method, engine=engine)
    logger.info("Comparing %s with %s (%s)", built.name, official.name, comparator.name)
    try:
        return comparator.compare(built, official, workdir)
    except OSError as e:
        raise ComparisonError(f"{comparator.name} comparison of {built.name} failed") from e


class VerificationRun:
    """One build-and-compare run for a validated request.

    Stages raise; this class is the one place where a stage failure turns
    into a terminal RunOutcome. Configuration problems (no container engine,
    bad settings) are not outcomes and propagate to the caller.
    """

    def __init__(
        self,
        profile: BaseProfile,
        request: VerificationRequest,
        settings: Settings,
        *,
        clean: bool = False,
        keep_container: bool = False,
        no_cache: bool = False,
        results_dir: Optional[Path] = None,
        engine: Optional[str] = None,
        downloader: Optional[ReleaseDownloader] = None,
        source_preparer: Optional[SourcePreparer] = None,
        session_factory: Callable[..., ContainerSession] = ContainerSession,
    ):
        self.profile = profile
        self.request = request
        self.settings = settings
        self.clean = clean
        self.keep_container = keep_container
        self.no_cache = no_cache
        self.results_path = (results_dir or Path.cwd()) / config.RESULTS_FILENAME
        self.engine = engine
        self.downloader = downloader
        self.source_preparer = source_preparer
        self.session_factory = session_factory

        self.workdir = request.workdir
        self.built_dir = self.workdir / "built"
        self.official_dir = self.workdir / "official"
        self.compare_dir = self.workdir / "compare"

    def execute(self) -> RunOutcome:
        if self.engine is None:
            self.engine = detect_engine(self.settings.container_engine, self.settings.engine_preference)
        if self.downloader is None:
            self.downloader = ReleaseDownloader(self.settings.download_retries, self.settings.download_timeout)

        self.workdir.mkdir(parents=True, exist_ok=True)
        handler = attach_run_log(self.workdir)
        cid = set_correlation_id()
        start = time.time()
        logger.info(
            "Verifying %s %s (%s, %s) run=%s",
            self.profile.display_name,
            self.request.version,
            self.request.architecture,
            self.request.build_type,
            cid,
        )
        try:
            with cancellation_handlers():
                outcome = self._run_stages()
        finally:
            detach_run_log(handler)
        outcome.duration = time.time() - start
        write_results_yaml(outcome, self.results_path)
        logger.info("Results written to %s", self.results_path)
        if not self.settings.keep_workspace:
            self.prune_workspace()
        return outcome

    def prune_workspace(self) -> None:
        """Drop checkout and artifacts; the run log stays."""
        for d in (self.workdir / "source", self.built_dir, self.official_dir, self.compare_dir):
            if d.exists():
                shutil.rmtree(d)

    def _run_stages(self) -> RunOutcome:
        checkout: Optional[SourceCheckout] = None
        built: dict[str, Path] = {}
        try:
            if self.clean:
                self.clean_previous()
            checkout = self.prepare_source()
            built = self.build(checkout)
            official = self.fetch_official()
            return self.compare(built, official, checkout)
        except BuildVerifyError as e:
            if e.status is None and not isinstance(e, ComparisonError):
                raise
            return self._terminal(e, checkout, built)

    def _terminal(
        self,
        error: BuildVerifyError,
        checkout: Optional[SourceCheckout],
        built: dict[str, Path],
    ) -> RunOutcome:
        message = format_exception_chain(error)
        if isinstance(error, ComparisonError):
            # Could not finish the comparison: somebody has to look at it
            status, verdict = Status.NOT_REPRODUCIBLE, Verdict.MANUAL_REVIEW
        else:
            status, verdict = Status(error.status), None
        logger.error("%s: %s", status.value, message)
        logger.debug("%s", format_exception_chain(error, include_traceback=True))

        results = []
        for spec in self.profile.artifacts(self.request):
            built_hash = NOT_AVAILABLE
            if status is not Status.FTBFS:
                built_hash = sha256_or_na(built.get(spec.official_name))
            results.append(
                ComparisonResult(
                    architecture=self.request.architecture,
                    filename=spec.official_name,
                    status=status,
                    hash=built_hash,
                    match=False,
                    error=message,
                )
            )
        return RunOutcome(
            request=self.request,
            status=status,
            results=results,
            verdict=verdict,
            checkout=checkout,
            error=message,
        )

    def clean_previous(self) -> None:
        # Only this request's stopped leftovers; parallel runs keep theirs
        removed = remove_stale(self.engine, prefix=run_prefix(self.request), keep_running=True)
        logger.info("Removed %d stale container resource(s)", removed)
        for d in (self.built_dir, self.official_dir, self.compare_dir):
            if d.exists():
                shutil.rmtree(d)

    def prepare_source(self) -> SourceCheckout:
        preparer = self.source_preparer or SourcePreparer(
            self.profile.repo_url,
            tag_candidates=self.profile.tag_candidates(self.request),
            submodules=self.profile.submodules,
            attempts=self.settings.clone_attempts,
            delay=self.settings.clone_retry_delay,
        )
        return preparer.prepare(self.request)

    def build(self, checkout: SourceCheckout) -> dict[str, Path]:
        """Run the containerized build; returns official filename -> built file."""
        profile, request = self.profile, self.request
        if self.built_dir.exists():
            shutil.rmtree(self.built_dir)
        session = self.session_factory(
            self.engine,
            request,
            privileged=profile.privileged,
            keep=self.keep_container,
            build_log=self.workdir / "build.log",
        )
        with session:
            session.build_image(profile.image_definition(request), no_cache=self.no_cache)
            session.start(profile.keepalive)
            session.copy_in(checkout.path, profile.source_dir)
            logger.info("Running build, output in %s", self.workdir / "build.log")
            try:
                session.exec(profile.build_command(request), env=profile.build_env(request, checkout))
            except BuildError as e:
                raise BuildError("Containerized build failed") from e
            session.copy_out(profile.output_dir(request), self.built_dir)

        built: dict[str, Path] = {}
        for spec in profile.artifacts(request):
            path = find_file(self.built_dir, spec.built_name)
            if path is None:
                raise ArtifactMissingError(spec.built_name, profile.output_dir(request))
            log_success(logger, "Built %s", path.name)
            built[spec.official_name] = path
        return built

    def fetch_official(self) -> dict[str, Path]:
        """Download every official artifact; official filename -> local file."""
        sums = self._published_checksums()
        official: dict[str, Path] = {}
        for spec in self.profile.artifacts(self.request):
            path, published = self._download(spec)
            expected = sums.get(published)
            if expected:
                actual = sha256_or_na(path)
                if actual != expected:
                    raise ChecksumMismatchError(spec.official_name, expected, actual)
                log_success(logger, "%s matches published SHA256SUMS", spec.official_name)
            official[spec.official_name] = path
        return official

    def _download(self, spec: ArtifactSpec) -> tuple[Path, str]:
        """Try each official URL; returns the local file and its published name."""
        dest = self.official_dir / spec.official_name
        urls = self.profile.official_urls(self.request, spec.official_name)
        for url in urls:
            if self.downloader.download(url, dest) is not None:
                return dest, url.rsplit("/", 1)[-1]
        raise OfficialArtifactMissing(spec.official_name, urls[-1] if urls else "")

    def _published_checksums(self) -> dict[str, str]:
        for url in self.profile.checksums_urls(self.request):
            text = self.downloader.fetch_text(url)
            if text is not None:
                return parse_sha256sums(text)
        return {}

    def compare(
        self,
        built: dict[str, Path],
        official: dict[str, Path],
        checkout: SourceCheckout,
    ) -> RunOutcome:
        results: list[ComparisonResult] = []
        comparisons: dict[str, ComparisonOutcome] = {}
        for spec in self.profile.artifacts(self.request):
            name = spec.official_name
            outcome = compare_pair(
                built[name], official[name], spec.comparator, self.compare_dir / name, engine=self.engine
            )
            comparisons[name] = outcome
            results.append(
                ComparisonResult(
                    architecture=self.request.architecture,
                    filename=name,
                    status=outcome.verdict.status,
                    hash=outcome.built_hash,
                    match=outcome.match,
                    official_hash=outcome.official_hash,
                    notes="; ".join(outcome.notes) or None,
                )
            )
            if outcome.match:
                log_success(logger, "%s: %s", name, outcome.verdict.value)
            else:
                logger.warning("%s: %s", name, outcome.verdict.value)

        verdict = worst_verdict(c.verdict for c in comparisons.values())
        return RunOutcome(
            request=self.request,
            status=verdict.status,
            results=results,
            verdict=verdict,
            checkout=checkout,
            comparisons=comparisons,
        )
