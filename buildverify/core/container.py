"""Container Build Runner.

Builds the project's toolchain image, runs the build inside a uniquely named
container and streams the outputs back to the host. Everything goes through
the engine CLI (podman or docker), never an API socket.
"""

from __future__ import annotations

import hashlib
import logging
import os
import subprocess
import tarfile
import tempfile
import time
from pathlib import Path
from typing import Callable, Iterable, Optional

from buildverify import config
from buildverify.common.exceptions import ContainerError, DependencyError
from buildverify.common.execution import find_tool, open_stream, run_cmd, run_cmd_stream
from buildverify.core.models import VerificationRequest
from buildverify.core.params import sanitize_component
from buildverify.logging_cfg import log_call, log_success

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]


def detect_engine(
    requested: str = "auto",
    preference: Iterable[str] = config.ENGINE_PREFERENCE,
    finder: Callable[[str], Optional[Path]] = find_tool,
) -> str:
    """Name of the container engine CLI to use.

    ``auto`` picks the first of ``preference`` found on PATH; an explicit
    engine must itself be installed.
    """
    if requested and requested != "auto":
        if finder(requested) is None:
            raise DependencyError(requested, f"Container engine not found on PATH: {requested}")
        return requested
    tried = list(preference)
    for name in tried:
        if finder(name) is not None:
            logger.debug("Using container engine %s", name)
            return name
    raise DependencyError(
        "container engine",
        f"No container engine found (tried {', '.join(tried)}). Install podman or docker.",
    )


def make_run_token(
    request: VerificationRequest,
    timestamp: Optional[float] = None,
    pid: Optional[int] = None,
) -> str:
    """12 hex chars unique to this invocation."""
    ts = time.time() if timestamp is None else timestamp
    pid = os.getpid() if pid is None else pid
    seed = f"{request.version}|{request.architecture}|{request.build_type}|{ts!r}|{pid}"
    return hashlib.sha256(seed.encode("utf-8")).hexdigest()[:12]


def run_prefix(request: VerificationRequest) -> str:
    """Sanitized project-version-arch-type, shared by every run of ``request``."""
    return "-".join(
        sanitize_component(p)
        for p in (request.project, request.version, request.architecture, request.build_type)
    )


def resource_names(request: VerificationRequest, token: str) -> tuple[str, str]:
    """(container name, image name) for one run."""
    parts = run_prefix(request)
    return (
        f"{config.CONTAINER_PREFIX}-{parts}-{token}",
        f"{config.IMAGE_PREFIX}-{parts}-{token}",
    )


class ContainerSession:
    """One build container and its image.

    Used as a context manager: on exit (normal, exception or cancellation)
    the container and image are removed unless ``keep`` is set. Cleanup
    errors are logged and otherwise ignored.
    """

    def __init__(
        self,
        engine: str,
        request: VerificationRequest,
        *,
        token: Optional[str] = None,
        privileged: bool = False,
        keep: bool = False,
        build_log: Optional[Path] = None,
        runner: Runner = run_cmd,
        stream_runner: Runner = run_cmd_stream,
    ):
        self.engine = engine
        self.request = request
        self.token = token or make_run_token(request)
        self.name, self.image = resource_names(request, self.token)
        self.privileged = privileged
        self.keep = keep
        self.build_log = build_log
        self.runner = runner
        self.stream_runner = stream_runner
        self._image_built = False
        self._started = False

    def __enter__(self) -> "ContainerSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.keep:
            if self._started:
                logger.info("Keeping container %s (%s exec -it %s bash)", self.name, self.engine, self.name)
            return
        self.cleanup()

    def _stream(self, cmd: list[str], **kwargs) -> subprocess.CompletedProcess:
        return self.stream_runner(
            cmd, on_line=lambda line: logger.debug("| %s", line), stream_to_file=self.build_log, **kwargs
        )

    @log_call()
    def build_image(self, definition: str, *, no_cache: bool = False) -> None:
        """Build the toolchain image; the definition is fed on stdin."""
        logger.info("Building image %s", self.image)
        with tempfile.TemporaryDirectory(prefix="bv-context-") as ctx:
            cmd = [self.engine, "build"]
            if no_cache:
                cmd += ["--no-cache", "--pull"]
            cmd += ["-t", self.image, "-f", "-", ctx]
            res = self._stream(cmd, input=definition)
        if res.returncode != 0:
            raise ContainerError("image build", _tail(res.stdout), res.returncode)
        self._image_built = True
        log_success(logger, "Image %s built", self.image)

    def start(self, keepalive: Optional[Iterable[str]] = ("sleep", "infinity")) -> None:
        cmd = [self.engine, "run", "-d", "--name", self.name]
        if self.privileged:
            cmd.append("--privileged")
        cmd.append(self.image)
        if keepalive:
            cmd += list(keepalive)
        res = self.runner(cmd)
        if res.returncode != 0:
            raise ContainerError("start", (res.stderr or "").strip(), res.returncode)
        self._started = True
        logger.info("Started container %s", self.name)

    def copy_in(self, host_dir: Path, container_dir: str) -> None:
        self.exec(f"mkdir -p '{container_dir}'", quiet=True)
        res = self.runner([self.engine, "cp", f"{host_dir}/.", f"{self.name}:{container_dir}"])
        if res.returncode != 0:
            raise ContainerError("copy-in", (res.stderr or "").strip(), res.returncode)
        logger.debug("Copied %s into %s:%s", host_dir, self.name, container_dir)

    def exec(
        self,
        command: str,
        *,
        env: Optional[dict[str, str]] = None,
        workdir: Optional[str] = None,
        quiet: bool = False,
    ) -> subprocess.CompletedProcess:
        """Run ``command`` with bash inside the container; non-zero exit raises."""
        cmd = [self.engine, "exec"]
        for key, value in sorted((env or {}).items()):
            cmd += ["-e", f"{key}={value}"]
        if workdir:
            cmd += ["-w", workdir]
        cmd += [self.name, "bash", "-c", command]
        res = self.runner(cmd) if quiet else self._stream(cmd)
        if res.returncode != 0:
            detail = res.stderr if quiet else res.stdout
            raise ContainerError("exec", _tail(detail), res.returncode)
        return res

    def copy_out(self, container_dir: str, host_dir: Path) -> list[Path]:
        """Stream ``container_dir`` out as a tar archive and unpack it on the host.

        Extraction uses the ``data`` filter, so files belong to the invoking
        user and nothing lands outside ``host_dir``.
        """
        host_dir.mkdir(parents=True, exist_ok=True)
        cmd = [self.engine, "exec", self.name, "tar", "-C", container_dir, "-cf", "-", "."]
        try:
            with open_stream(cmd) as proc:
                with tarfile.open(fileobj=proc.stdout, mode="r|*") as tar:
                    tar.extractall(host_dir, filter="data")
        except tarfile.TarError as e:
            raise ContainerError("copy-out", f"{container_dir}: {e}") from e
        if proc.returncode != 0:
            raise ContainerError("copy-out", f"tar exited with {proc.returncode}", proc.returncode)
        files = sorted(p for p in host_dir.rglob("*") if p.is_file())
        logger.info("Copied %d file(s) out of %s", len(files), container_dir)
        return files

    def cleanup(self) -> None:
        """Remove container and image, best effort."""
        if self._started:
            self._quiet([self.engine, "rm", "-f", self.name])
            self._started = False
        if self._image_built:
            self._quiet([self.engine, "rmi", "-f", self.image])
            self._image_built = False

    def _quiet(self, cmd: list[str]) -> None:
        try:
            res = self.runner(cmd)
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug("Cleanup command failed: %s (%s)", cmd, e)
            return
        if res.returncode != 0:
            logger.debug("Cleanup command rc=%s: %s", res.returncode, " ".join(cmd))


def remove_stale(
    engine: str,
    project: Optional[str] = None,
    runner: Runner = run_cmd,
    *,
    prefix: Optional[str] = None,
    keep_running: bool = False,
) -> int:
    """Remove leftover containers and images from earlier runs.

    Only resources carrying the buildverify name prefixes are touched.
    ``prefix`` (see ``run_prefix``) narrows the sweep to one
    project-version-arch-type; otherwise ``project`` narrows it to a project.
    With ``keep_running``, containers that are still running and their
    images are left alone.
    Returns the number of resources removed.
    """
    scope = prefix or (sanitize_component(project) if project else "")
    suffix = f"{scope}-" if scope else ""
    container_prefix = f"{config.CONTAINER_PREFIX}-{suffix}"
    image_prefix = f"{config.IMAGE_PREFIX}-{suffix}"
    removed = 0

    def ours(name: str) -> bool:
        return name.startswith(container_prefix) and not name.startswith(config.IMAGE_PREFIX)

    # Name minus its "bv-" or "bv-image-" prefix; a container and its image share it
    live: set[str] = set()
    if keep_running:
        res = runner([engine, "ps", "--format", "{{.Names}}"])
        live = {n[len(config.CONTAINER_PREFIX) + 1:] for n in (res.stdout or "").split() if ours(n)}

    res = runner([engine, "ps", "-a", "--format", "{{.Names}}"])
    for name in (res.stdout or "").split():
        if ours(name):
            if name[len(config.CONTAINER_PREFIX) + 1:] in live:
                logger.info("Leaving running container %s", name)
                continue
            if runner([engine, "rm", "-f", name]).returncode == 0:
                logger.info("Removed container %s", name)
                removed += 1

    res = runner([engine, "images", "--format", "{{.Repository}}"])
    for repo in (res.stdout or "").split():
        # podman reports locally built images as localhost/<name>
        name = repo.rsplit("/", 1)[-1]
        if name.startswith(image_prefix):
            if name[len(config.IMAGE_PREFIX) + 1:] in live:
                continue
            if runner([engine, "rmi", "-f", repo]).returncode == 0:
                logger.info("Removed image %s", repo)
                removed += 1
    return removed


def _tail(text: Optional[str], lines: int = 5) -> str:
    kept = [ln for ln in (text or "").splitlines() if ln.strip()]
    return " | ".join(kept[-lines:])
