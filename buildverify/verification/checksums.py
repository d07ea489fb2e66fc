"""Parsing of published ``SHA256SUMS`` manifests."""

from __future__ import annotations

import re
from typing import Dict

_LINE = re.compile(r"^(?P<hash>[0-9a-fA-F]{64})\s+\*?(?P<name>\S.*?)\s*$")


def parse_sha256sums(text: str) -> Dict[str, str]:
    """Map file name to lower-case digest.

    Accepts the coreutils text (``hash  name``) and binary (``hash *name``)
    forms. Entries in subdirectories are keyed by their base name as well,
    since release pages list ``guix-build-29.1/output/...`` style paths.
    Lines that are not checksum entries (PGP armor, comments) are skipped.
    """
    sums: Dict[str, str] = {}
    for raw in text.splitlines():
        m = _LINE.match(raw.strip())
        if not m:
            continue
        digest = m.group("hash").lower()
        name = m.group("name")
        sums[name] = digest
        base = name.rsplit("/", 1)[-1]
        sums.setdefault(base, digest)
    return sums
