from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

from ..core.models import SourceCheckout, VerificationRequest


@dataclass(frozen=True)
class Target:
    """One build-server architecture label a project can be verified for."""
    triplet: str
    build_types: tuple[str, ...]


@dataclass(frozen=True)
class ArtifactSpec:
    """A built file and its published counterpart.

    ``built_name`` may be a glob, matched inside the container output dir.
    """
    built_name: str
    official_name: str
    comparator: str = "plain"


@runtime_checkable
class ProjectProfile(Protocol):
    """Everything the pipeline needs to know about one upstream project."""

    @property
    def project_id(self) -> str:
        """Unique id used on the command line (e.g. 'bitcoincore')."""
        ...

    @property
    def display_name(self) -> str:
        ...

    def canonical_arch(self, arch: str) -> Optional[str]:
        """Build-server label for ``arch`` (aliases resolved), None if unknown."""
        ...

    def tag_candidates(self, request: VerificationRequest) -> list[str]:
        """Git refs to try, in order."""
        ...

    def image_definition(self, request: VerificationRequest) -> str:
        """Containerfile text for the build toolchain."""
        ...

    def build_command(self, request: VerificationRequest) -> str:
        """Shell command run with bash inside the container."""
        ...

    def build_env(self, request: VerificationRequest, checkout: SourceCheckout) -> dict[str, str]:
        ...

    def output_dir(self, request: VerificationRequest) -> str:
        """Directory inside the container holding the build outputs."""
        ...

    def artifacts(self, request: VerificationRequest) -> list[ArtifactSpec]:
        ...

    def official_urls(self, request: VerificationRequest, filename: str) -> list[str]:
        """Download locations to try, in order."""
        ...


class BaseProfile:
    """Shared behaviour of the bundled profiles; subclasses fill in the data."""

    project_id = ""
    display_name = ""
    app_id = ""
    repo_url = ""
    release_base = ""
    # Tag forms are tried in order; "{version}" is the bare version
    tag_formats: tuple[str, ...] = ("v{version}",)
    targets: dict[str, Target] = {}
    arch_aliases: dict[str, str] = {}
    submodules = False
    privileged = False
    source_dir = "/src"
    # Container command kept running between execs; None keeps the image CMD
    keepalive: Optional[tuple[str, ...]] = ("sleep", "infinity")
    checksums_name: Optional[str] = None
    extra_env: dict[str, str] = {}

    def canonical_arch(self, arch: str) -> Optional[str]:
        arch = (arch or "").strip()
        arch = self.arch_aliases.get(arch, arch)
        return arch if arch in self.targets else None

    def tag_candidates(self, request: VerificationRequest) -> list[str]:
        seen: list[str] = []
        for fmt in self.tag_formats:
            tag = fmt.format(version=request.bare_version)
            if tag not in seen:
                seen.append(tag)
        return seen

    def release_tags(self, request: VerificationRequest) -> list[str]:
        """Path segments of release download URLs, tried in order."""
        return [request.version]

    def image_definition(self, request: VerificationRequest) -> str:
        raise NotImplementedError

    def build_command(self, request: VerificationRequest) -> str:
        raise NotImplementedError

    def output_dir(self, request: VerificationRequest) -> str:
        raise NotImplementedError

    def artifacts(self, request: VerificationRequest) -> list[ArtifactSpec]:
        raise NotImplementedError

    def build_env(self, request: VerificationRequest, checkout: SourceCheckout) -> dict[str, str]:
        env = dict(self.extra_env)
        if checkout.source_date_epoch is not None:
            env["SOURCE_DATE_EPOCH"] = str(checkout.source_date_epoch)
        return env

    def official_urls(self, request: VerificationRequest, filename: str) -> list[str]:
        return [f"{self.release_base}/{tag}/{filename}" for tag in self.release_tags(request)]

    def checksums_urls(self, request: VerificationRequest) -> list[str]:
        if not self.checksums_name:
            return []
        return self.official_urls(request, self.checksums_name)

    def describe_targets(self) -> list[tuple[str, str, tuple[str, ...]]]:
        """(architecture, triplet, build types) rows for ``--list-targets``."""
        return [(arch, t.triplet, t.build_types) for arch, t in self.targets.items()]
