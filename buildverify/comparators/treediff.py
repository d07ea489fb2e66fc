from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping

from ..verification.hasher import hash_tree


@dataclass
class TreeDiff:
    """Differences between two path -> digest maps."""
    only_built: list[str] = field(default_factory=list)
    only_official: list[str] = field(default_factory=list)
    differing: list[str] = field(default_factory=list)
    compared: int = 0

    @property
    def identical(self) -> bool:
        return not (self.only_built or self.only_official or self.differing)

    @property
    def paths(self) -> list[str]:
        """Every path that contributes to the difference."""
        return sorted(set(self.only_built) | set(self.only_official) | set(self.differing))

    def summary_lines(self, limit: int = 20) -> list[str]:
        lines = [f"Files {p} differ" for p in self.differing]
        lines += [f"Only in built: {p}" for p in self.only_built]
        lines += [f"Only in official: {p}" for p in self.only_official]
        if len(lines) > limit:
            hidden = len(lines) - limit
            lines = lines[:limit] + [f"... and {hidden} more"]
        return lines


def diff_maps(built: Mapping[str, str], official: Mapping[str, str]) -> TreeDiff:
    built_keys, official_keys = set(built), set(official)
    common = built_keys & official_keys
    return TreeDiff(
        only_built=sorted(built_keys - official_keys),
        only_official=sorted(official_keys - built_keys),
        differing=sorted(p for p in common if built[p] != official[p]),
        compared=len(built_keys | official_keys),
    )


def diff_trees(built_root: Path, official_root: Path, patterns: Iterable[str] = ("*",)) -> TreeDiff:
    """Compare two directory trees file by file; symlinks by target."""
    patterns = tuple(patterns)
    return diff_maps(hash_tree(built_root, patterns), hash_tree(official_root, patterns))
