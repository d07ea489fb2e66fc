from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Callable

from buildverify.common.exceptions import ExtractionError
from buildverify.common.execution import run_cmd
from buildverify.core.models import ComparisonOutcome, Verdict
from buildverify.verification.hasher import sha256_file
from .archives import extract_tar, find_file, is_tarball
from .base import hash_pair, identical_outcome
from .treediff import diff_trees

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]


class AppImageComparator:
    """Outer tarball, then the AppImage, then the SquashFS payload.

    Each layer is only opened when the one around it differs, so the verdict
    degrades from identical to contents_identical to different. Either side
    may be a bare ``.AppImage`` instead of a tarball.
    """

    name = "appimage"

    def __init__(self, runner: Runner = run_cmd):
        self.runner = runner

    def compare(self, built: Path, official: Path, workdir: Path) -> ComparisonOutcome:
        built_hash, official_hash = hash_pair(built, official)
        if built_hash == official_hash:
            return identical_outcome(built_hash, official_hash)

        built_img = self.locate_appimage(built, workdir / "built")
        official_img = self.locate_appimage(official, workdir / "official")
        b, o = sha256_file(built_img), sha256_file(official_img)
        if b == o:
            return ComparisonOutcome(
                Verdict.CONTENTS_IDENTICAL,
                built_hash,
                official_hash,
                notes=[f"AppImage identical ({b}); only the outer archive differs"],
            )

        logger.info("AppImage files differ, comparing SquashFS contents")
        built_root = self.extract_payload(built_img, workdir / "built-squashfs")
        official_root = self.extract_payload(official_img, workdir / "official-squashfs")
        diff = diff_trees(built_root, official_root)
        if diff.identical:
            return ComparisonOutcome(
                Verdict.CONTENTS_IDENTICAL,
                built_hash,
                official_hash,
                notes=[f"AppImage contents identical ({diff.compared} files); SquashFS packaging differs"],
            )
        return ComparisonOutcome(
            Verdict.DIFFERENT,
            built_hash,
            official_hash,
            notes=[f"{len(diff.paths)} of {diff.compared} files differ inside the AppImage"],
            diff_lines=diff.summary_lines(),
        )

    def locate_appimage(self, path: Path, dest: Path) -> Path:
        if not is_tarball(path):
            return path
        extract_tar(path, dest, runner=self.runner)
        found = find_file(dest, "*.AppImage")
        if found is None:
            raise ExtractionError(str(path), "no .AppImage inside")
        return found

    def extract_payload(self, appimage: Path, dest: Path) -> Path:
        """Run ``--appimage-extract`` on a copy and return its squashfs-root."""
        dest.mkdir(parents=True, exist_ok=True)
        exe = dest / appimage.name
        shutil.copyfile(appimage, exe)
        exe.chmod(0o755)
        try:
            res = self.runner([str(exe.resolve()), "--appimage-extract"], cwd=dest)
        except OSError as e:
            # ENOEXEC for a foreign-architecture or truncated image
            raise ExtractionError(str(appimage), str(e)) from e
        root = dest / "squashfs-root"
        if res.returncode != 0 or not root.is_dir():
            raise ExtractionError(str(appimage), (res.stderr or "").strip() or "--appimage-extract failed")
        exe.unlink()
        return root
