import zipfile
from pathlib import Path

import pytest

from buildverify.common.exceptions import ExtractionError
from buildverify.comparators.java import JarComparator, JimageComparator, jar_class_hashes
from buildverify.core.models import Verdict

from helpers import FakeRunner
from test_archives import make_tar


def make_jar(path: Path, classes: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr("META-INF/MANIFEST.MF", "Manifest-Version: 1.0\n")
        for name, data in classes.items():
            zf.writestr(name, data)
    return path


BASE_CLASSES = {
    "bisq/core/offer/Offer.class": b"offer",
    "bisq/p2p/P2PService.class": b"p2p",
    "bisq/desktop/main/MainView.class": b"view",
    "bisq/common/util/Utilities.class": b"util",
}


def test_jar_class_hashes_ignores_resources(tmp_path):
    jar = make_jar(tmp_path / "desktop.jar", {**BASE_CLASSES, "images/logo.png": b"png"})
    hashes = jar_class_hashes(jar)
    assert sorted(hashes) == sorted(BASE_CLASSES)


def test_jar_class_hashes_bad_jar(tmp_path):
    bad = tmp_path / "desktop.jar"
    bad.write_bytes(b"nope")
    with pytest.raises(ExtractionError):
        jar_class_hashes(bad)


class TestJarComparator:
    def _compare(self, tmp_path, built_classes, official_classes):
        b = tmp_path / "bisq_1.9.21-1_amd64.deb"
        o = tmp_path / "Bisq-64bit-1.9.21.deb"
        b.write_bytes(b"deb-built")
        o.write_bytes(b"deb-official")
        jars = {
            "built": make_jar(tmp_path / "jars" / "built" / "desktop.jar", built_classes),
            "official": make_jar(tmp_path / "jars" / "official" / "desktop.jar", official_classes),
        }
        comparator = JarComparator(runner=FakeRunner())
        comparator.find_jar = lambda deb, dest: jars[dest.name]
        return comparator.compare(b, o, tmp_path / "w")

    def test_identical_debs(self, tmp_path):
        b = tmp_path / "a.deb"
        o = tmp_path / "b.deb"
        b.write_bytes(b"same")
        o.write_bytes(b"same")
        assert JarComparator().compare(b, o, tmp_path / "w").verdict is Verdict.IDENTICAL

    def test_classes_identical(self, tmp_path):
        out = self._compare(tmp_path, BASE_CLASSES, BASE_CLASSES)
        assert out.verdict is Verdict.CONTENTS_IDENTICAL
        assert out.match
        assert "Compared 4 .class files, 0 differences" in out.notes[0]

    def test_ui_only_difference_is_partial(self, tmp_path):
        changed = {**BASE_CLASSES, "bisq/desktop/main/MainView.class": b"view-2"}
        out = self._compare(tmp_path, changed, BASE_CLASSES)
        assert out.verdict is Verdict.PARTIAL_MATCH
        assert not out.match
        assert "desktop=1" in out.diff_lines[0]
        assert "Security-critical: 0 diffs" in out.notes[0]

    def test_core_difference_is_different(self, tmp_path):
        changed = {**BASE_CLASSES, "bisq/core/offer/Offer.class": b"evil"}
        out = self._compare(tmp_path, changed, BASE_CLASSES)
        assert out.verdict is Verdict.DIFFERENT
        assert "Security-critical: 1 diffs" in out.notes[0]

    def test_extra_p2p_class_counts(self, tmp_path):
        changed = {**BASE_CLASSES, "bisq/p2p/Backdoor.class": b"x"}
        out = self._compare(tmp_path, changed, BASE_CLASSES)
        assert out.verdict is Verdict.DIFFERENT
        assert "Only in built: bisq/p2p/Backdoor.class" in out.diff_lines


LAUNCHER = {
    "Sparrow/bin/Sparrow": b"launcher",
    "Sparrow/lib/libapplauncher.so": b"so",
    "Sparrow/lib/Sparrow.png": b"png",
    "Sparrow/lib/app/Sparrow.cfg": b"cfg",
}


def sparrow_tar(path: Path, modules: bytes, **overrides) -> Path:
    files = {**LAUNCHER, "Sparrow/lib/runtime/lib/modules": modules, "Sparrow/lib/runtime/release": path.name.encode()}
    files.update(overrides)
    return make_tar(path, files)


def _jimage_runner(contents):
    """Fake ``jimage extract``: the destination name tells which side it is."""

    def extract(cmd, **kwargs):
        dest = Path(cmd[cmd.index("--dir") + 1])
        side = "built" if dest.name.endswith("built") else "official"
        for rel, data in contents[side].items():
            target = dest / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

    return FakeRunner(effects={"extract": extract})


def _jimage(runner=None, available=True):
    finder = (lambda name: Path("/opt/jdk/bin/jimage")) if available else (lambda name: None)
    return JimageComparator(runner=runner or FakeRunner(), finder=finder)


class TestJimageComparator:
    def test_critical_file_mismatch(self, tmp_path):
        b = sparrow_tar(tmp_path / "b.tar.gz", b"m", **{"Sparrow/bin/Sparrow": b"patched"})
        o = sparrow_tar(tmp_path / "o.tar.gz", b"m")
        out = _jimage().compare(b, o, tmp_path / "w")
        assert out.verdict is Verdict.DIFFERENT
        assert "Files bin/Sparrow differ" in out.diff_lines

    def test_modules_identical(self, tmp_path):
        b = sparrow_tar(tmp_path / "b.tar.gz", b"modules")
        o = sparrow_tar(tmp_path / "o.tar.gz", b"modules")
        out = _jimage().compare(b, o, tmp_path / "w")
        assert out.verdict is Verdict.CONTENTS_IDENTICAL

    def test_no_jimage_tool_needs_review(self, tmp_path):
        b = sparrow_tar(tmp_path / "b.tar.gz", b"m1")
        o = sparrow_tar(tmp_path / "o.tar.gz", b"m2")
        out = _jimage(available=False).compare(b, o, tmp_path / "w")
        assert out.verdict is Verdict.MANUAL_REVIEW

    def test_only_jvm_generated_classes_differ(self, tmp_path):
        runner = _jimage_runner({
            "built": {
                "com.sparrowwallet.sparrow/com/sparrowwallet/sparrow/App.class": b"app",
                "java.base/java/lang/invoke/LambdaForm$MH.class": b"1",
            },
            "official": {
                "com.sparrowwallet.sparrow/com/sparrowwallet/sparrow/App.class": b"app",
                "java.base/java/lang/invoke/LambdaForm$MH.class": b"2",
            },
        })
        b = sparrow_tar(tmp_path / "b.tar.gz", b"m1")
        o = sparrow_tar(tmp_path / "o.tar.gz", b"m2")
        out = _jimage(runner).compare(b, o, tmp_path / "w")
        assert out.verdict is Verdict.PARTIAL_MATCH

    def test_application_code_differs(self, tmp_path):
        runner = _jimage_runner({
            "built": {"com.sparrowwallet.sparrow/App.class": b"1"},
            "official": {"com.sparrowwallet.sparrow/App.class": b"2"},
        })
        b = sparrow_tar(tmp_path / "b.tar.gz", b"m1")
        o = sparrow_tar(tmp_path / "o.tar.gz", b"m2")
        assert _jimage(runner).compare(b, o, tmp_path / "w").verdict is Verdict.DIFFERENT

    def test_other_module_differences_need_review(self, tmp_path):
        runner = _jimage_runner({
            "built": {"java.desktop/sun/awt/X.class": b"1"},
            "official": {"java.desktop/sun/awt/X.class": b"2"},
        })
        b = sparrow_tar(tmp_path / "b.tar.gz", b"m1")
        o = sparrow_tar(tmp_path / "o.tar.gz", b"m2")
        assert _jimage(runner).compare(b, o, tmp_path / "w").verdict is Verdict.MANUAL_REVIEW

    def test_extracted_modules_identical(self, tmp_path):
        same = {"com.sparrowwallet.sparrow/App.class": b"1"}
        runner = _jimage_runner({"built": same, "official": same})
        b = sparrow_tar(tmp_path / "b.tar.gz", b"m1")
        o = sparrow_tar(tmp_path / "o.tar.gz", b"m2")
        assert _jimage(runner).compare(b, o, tmp_path / "w").verdict is Verdict.CONTENTS_IDENTICAL

    def test_jimage_failure_needs_review(self, tmp_path):
        runner = FakeRunner({"extract": (1, "", "not a jimage")})
        b = sparrow_tar(tmp_path / "b.tar.gz", b"m1")
        o = sparrow_tar(tmp_path / "o.tar.gz", b"m2")
        out = _jimage(runner).compare(b, o, tmp_path / "w")
        assert out.verdict is Verdict.MANUAL_REVIEW
        assert any("not a jimage" in n for n in out.notes)

    def test_missing_modules_file(self, tmp_path):
        b = make_tar(tmp_path / "b.tar.gz", {"Sparrow/bin/Sparrow": b"1"})
        o = make_tar(tmp_path / "o.tar.gz", {"Sparrow/bin/Sparrow": b"2"})
        with pytest.raises(ExtractionError):
            _jimage().compare(b, o, tmp_path / "w")
