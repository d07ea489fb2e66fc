"""Comparators for jpackage'd Java applications (Bisq, Sparrow)."""

from __future__ import annotations

import hashlib
import logging
import subprocess
import zipfile
from pathlib import Path
from typing import Callable, Dict, Optional

from buildverify.common.exceptions import ExtractionError
from buildverify.common.execution import find_tool, run_cmd
from buildverify.core.models import ComparisonOutcome, Verdict
from buildverify.verification.hasher import sha256_file
from .archives import extract_deb, extract_tar, find_file
from .base import hash_pair, identical_outcome
from .treediff import diff_maps, diff_trees

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]


def jar_class_hashes(jar: Path) -> Dict[str, str]:
    """SHA-256 of every ``.class`` entry in a jar, keyed by entry name."""
    hashes: Dict[str, str] = {}
    try:
        with zipfile.ZipFile(jar) as zf:
            for info in zf.infolist():
                if info.is_dir() or not info.filename.endswith(".class"):
                    continue
                h = hashlib.sha256()
                with zf.open(info) as fh:
                    for chunk in iter(lambda: fh.read(1024 * 1024), b""):
                        h.update(chunk)
                hashes[info.filename] = h.hexdigest()
    except (zipfile.BadZipFile, OSError) as e:
        raise ExtractionError(str(jar), str(e)) from e
    return dict(sorted(hashes.items()))


class JarComparator:
    """Bisq: compare the classes of desktop.jar inside the two .deb packages.

    Timestamps make the packages themselves differ, so only compiled classes
    count. Differences confined to UI and utility packages are a partial
    match; any difference in core, p2p or proto code is not.
    """

    name = "jar"

    JAR_NAME = "desktop.jar"
    SECURITY_CRITICAL = ("bisq/core/", "bisq/p2p/", "bisq/proto/")
    MODULES = ("core", "p2p", "desktop", "common", "proto")

    def __init__(self, runner: Runner = run_cmd):
        self.runner = runner

    def compare(self, built: Path, official: Path, workdir: Path) -> ComparisonOutcome:
        built_hash, official_hash = hash_pair(built, official)
        if built_hash == official_hash:
            return identical_outcome(built_hash, official_hash)

        built_classes = jar_class_hashes(self.find_jar(built, workdir / "built"))
        official_classes = jar_class_hashes(self.find_jar(official, workdir / "official"))
        diff = diff_maps(built_classes, official_classes)
        counts = self.module_counts(diff.paths)
        module_line = "Modules: " + ", ".join(f"{m}={counts[m]}" for m in self.MODULES)
        critical = [p for p in diff.paths if p.startswith(self.SECURITY_CRITICAL)]
        summary = (
            f"Compared {len(official_classes)} .class files, {len(diff.paths)} differences. "
            f"{module_line}. Security-critical: {len(critical)} diffs"
        )

        if diff.identical:
            verdict = Verdict.CONTENTS_IDENTICAL
        elif not critical:
            verdict = Verdict.PARTIAL_MATCH
            logger.warning("Only non-security-critical classes differ")
        else:
            verdict = Verdict.DIFFERENT
        return ComparisonOutcome(
            verdict,
            built_hash,
            official_hash,
            notes=[summary],
            diff_lines=[module_line] + diff.summary_lines(),
        )

    def find_jar(self, deb: Path, dest: Path) -> Path:
        root = extract_deb(deb, dest, runner=self.runner)
        jar = find_file(root, self.JAR_NAME)
        if jar is None:
            raise ExtractionError(str(deb), f"{self.JAR_NAME} not found in package")
        return jar

    def module_counts(self, paths: list[str]) -> dict[str, int]:
        counts = {m: 0 for m in self.MODULES}
        for p in paths:
            for m in self.MODULES:
                if p.startswith(f"bisq/{m}/"):
                    counts[m] += 1
        return counts


class JimageComparator:
    """Sparrow: launcher binaries, then the runtime's jimage ``modules`` file.

    A differing application package is a failure. Differences confined to
    JVM-generated invokedynamic classes are a partial match. Anything else,
    or no ``jimage`` tool to look inside, needs a human.
    """

    name = "jimage"

    CRITICAL_FILES = (
        "bin/Sparrow",
        "lib/libapplauncher.so",
        "lib/Sparrow.png",
        "lib/app/Sparrow.cfg",
    )
    MODULES_FILE = "lib/runtime/lib/modules"
    APP_PACKAGE = "com.sparrowwallet.sparrow/"
    JVM_GENERATED = "java.base/java/lang/invoke/"

    def __init__(
        self,
        runner: Runner = run_cmd,
        finder: Callable[[str], Optional[Path]] = find_tool,
    ):
        self.runner = runner
        self.finder = finder

    def compare(self, built: Path, official: Path, workdir: Path) -> ComparisonOutcome:
        built_hash, official_hash = hash_pair(built, official)
        if built_hash == official_hash:
            return identical_outcome(built_hash, official_hash)

        built_app = self.app_root(built, workdir / "built")
        official_app = self.app_root(official, workdir / "official")

        mismatched = [f for f in self.CRITICAL_FILES if not self._same_file(built_app / f, official_app / f)]
        if mismatched:
            return ComparisonOutcome(
                Verdict.DIFFERENT,
                built_hash,
                official_hash,
                notes=[f"Critical launcher files differ: {', '.join(mismatched)}"],
                diff_lines=[f"Files {f} differ" for f in mismatched],
            )
        notes = [f"All critical binaries identical ({len(self.CRITICAL_FILES)}/{len(self.CRITICAL_FILES)} match)"]

        built_modules = built_app / self.MODULES_FILE
        official_modules = official_app / self.MODULES_FILE
        if self._same_file(built_modules, official_modules):
            notes.append("Runtime modules image is byte-for-byte identical")
            return ComparisonOutcome(Verdict.CONTENTS_IDENTICAL, built_hash, official_hash, notes=notes)

        jimage = self.finder("jimage")
        if jimage is None:
            notes.append("Modules image differs and jimage is not installed; cannot inspect")
            return ComparisonOutcome(Verdict.MANUAL_REVIEW, built_hash, official_hash, notes=notes)

        try:
            built_out = self.extract_modules(jimage, built_modules, workdir / "modules-built")
            official_out = self.extract_modules(jimage, official_modules, workdir / "modules-official")
        except ExtractionError as e:
            notes.append(str(e))
            return ComparisonOutcome(Verdict.MANUAL_REVIEW, built_hash, official_hash, notes=notes)

        diff = diff_trees(built_out, official_out)
        if diff.identical:
            notes.append("Extracted modules identical; only the image packaging differs")
            return ComparisonOutcome(Verdict.CONTENTS_IDENTICAL, built_hash, official_hash, notes=notes)

        paths = diff.paths
        app_diffs = [p for p in paths if p.startswith(self.APP_PACKAGE)]
        jvm_diffs = [p for p in paths if p.startswith(self.JVM_GENERATED)]
        lines = diff.summary_lines()
        if app_diffs:
            notes.append(f"Application code differs in {len(app_diffs)} file(s)")
            verdict = Verdict.DIFFERENT
        elif len(jvm_diffs) == len(paths):
            notes.append(
                f"Application code identical; {len(paths)} JVM-generated invoke classes differ"
            )
            verdict = Verdict.PARTIAL_MATCH
        else:
            notes.append(
                f"{len(jvm_diffs)} JVM infrastructure and {len(paths) - len(jvm_diffs)} "
                "other differences in modules; requires review"
            )
            verdict = Verdict.MANUAL_REVIEW
        return ComparisonOutcome(verdict, built_hash, official_hash, notes=notes, diff_lines=lines)

    def app_root(self, tarball: Path, dest: Path) -> Path:
        """Directory of the unpacked application (the one holding bin/ and lib/)."""
        extract_tar(tarball, dest, runner=self.runner)
        for candidate in sorted(dest.rglob("modules")):
            if candidate.is_file() and candidate.as_posix().endswith(self.MODULES_FILE):
                return candidate.parents[3]
        raise ExtractionError(str(tarball), f"{self.MODULES_FILE} not found")

    def extract_modules(self, jimage: Path, modules: Path, dest: Path) -> Path:
        dest.mkdir(parents=True, exist_ok=True)
        res = self.runner([str(jimage), "extract", "--dir", str(dest), str(modules)])
        if res.returncode != 0:
            raise ExtractionError(str(modules), (res.stderr or "").strip() or "jimage extract failed")
        return dest

    @staticmethod
    def _same_file(a: Path, b: Path) -> bool:
        if not a.is_file() or not b.is_file():
            # absent on both sides counts as equal
            return not a.exists() and not b.exists()
        return sha256_file(a) == sha256_file(b)
