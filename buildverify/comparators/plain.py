from __future__ import annotations

import logging
from pathlib import Path

from ..common.formatting import human_readable_size, short_hash
from ..core.models import ComparisonOutcome, Verdict
from .base import hash_pair, identical_outcome

logger = logging.getLogger(__name__)


class PlainComparator:
    """Whole-file SHA-256 equality."""

    name = "plain"

    def compare(self, built: Path, official: Path, workdir: Path) -> ComparisonOutcome:
        built_hash, official_hash = hash_pair(built, official)
        if built_hash == official_hash:
            return identical_outcome(built_hash, official_hash)
        logger.debug("%s: %s != %s", built.name, short_hash(built_hash), short_hash(official_hash))
        return ComparisonOutcome(
            Verdict.DIFFERENT,
            built_hash,
            official_hash,
            notes=[
                f"SHA-256 differs (built {human_readable_size(built.stat().st_size)}, "
                f"official {human_readable_size(official.stat().st_size)})"
            ],
        )
