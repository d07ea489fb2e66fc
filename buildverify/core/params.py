"""Parameter Resolver: turn CLI flags into a validated VerificationRequest.

Nothing here touches the network, git or the container engine, so a bad
flag combination is rejected before any side effect.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from ..common.exceptions import InvalidParameterError
from .models import VerificationRequest

if TYPE_CHECKING:
    from ..projects.base import BaseProfile

_NAME_UNSAFE = re.compile(r"[^a-z0-9]+")


def normalize_version(version: Optional[str]) -> str:
    """Return ``version`` with exactly one leading ``v``.

    ``"29.1"`` and ``"v29.1"`` both become ``"v29.1"``; applying it twice is
    a no-op.
    """
    if version is None or not version.strip():
        raise InvalidParameterError("Missing required parameter: --version", "version")
    v = version.strip()
    if v[0] in "vV":
        v = v[1:]
    if not v:
        raise InvalidParameterError(f"Invalid version: {version!r}", "version")
    return f"v{v}"


def sanitize_component(value: Optional[str]) -> str:
    """Make ``value`` safe for use inside a container or image name."""
    cleaned = _NAME_UNSAFE.sub("-", (value or "").lower()).strip("-")
    return cleaned or "na"


def resolve_request(
    profile: "BaseProfile",
    version: Optional[str],
    arch: Optional[str],
    build_type: Optional[str],
    workdir: Path,
) -> VerificationRequest:
    """Validate the flags against ``profile`` and build the canonical request."""
    if not arch:
        raise InvalidParameterError("Missing required parameter: --arch", "arch")
    if not build_type:
        raise InvalidParameterError("Missing required parameter: --type", "type")
    normalized = normalize_version(version)

    canonical_arch = profile.canonical_arch(arch)
    target = profile.targets.get(canonical_arch) if canonical_arch else None
    if target is None:
        allowed = ", ".join(profile.targets)
        raise InvalidParameterError(
            f"Unsupported architecture for {profile.project_id}: {arch} (allowed: {allowed})",
            "arch",
        )

    build_type = build_type.strip().lower()
    if build_type not in target.build_types:
        allowed = ", ".join(target.build_types)
        raise InvalidParameterError(
            f"Unsupported type '{build_type}' for {canonical_arch} (allowed: {allowed})",
            "type",
        )

    return VerificationRequest(
        project=profile.project_id,
        version=normalized,
        architecture=canonical_arch,
        build_type=build_type,
        triplet=target.triplet,
        workdir=Path(workdir).expanduser().resolve(),
    )
