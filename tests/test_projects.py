from pathlib import Path

import pytest

from buildverify.common.exceptions import InvalidParameterError, UnknownProjectError
from buildverify.comparators.registry import list_comparators
from buildverify.core.models import SourceCheckout
from buildverify.core.params import resolve_request
from buildverify.projects.base import BaseProfile, ProjectProfile
from buildverify.projects.dind import with_dockerd
from buildverify.projects.registry import ProjectRegistry, registry


def _req(project, version, arch, build_type, tmp_path):
    return resolve_request(registry.require(project), version, arch, build_type, tmp_path)


def test_registry_contents():
    assert registry.list_projects() == [
        "bisq", "bitcoincore", "bitcoinknots", "bitcoinsafe", "electrum", "sparrow", "specter", "wasabi",
    ]
    assert registry.get_profile(" BitcoinCore ") is registry.get_profile("bitcoincore")
    assert registry.get_profile("nope") is None


def test_registry_require_unknown():
    with pytest.raises(UnknownProjectError):
        registry.require("litecoin")


def test_register_custom_profile():
    class Custom(BaseProfile):
        project_id = "custom"

    reg = ProjectRegistry()
    reg.register(Custom())
    assert "custom" in reg.list_projects()


@pytest.mark.parametrize("project", registry.list_projects())
def test_every_target_is_complete(project, tmp_path):
    profile = registry.require(project)
    assert isinstance(profile, ProjectProfile)
    assert profile.app_id and profile.repo_url.startswith("https://")
    checkout = SourceCheckout(tmp_path / "src", "v1.0.0", "c0ffee", source_date_epoch=1700000000)
    for arch, triplet, types in profile.describe_targets():
        for build_type in types:
            req = _req(project, "1.0.0", arch, build_type, tmp_path)
            assert req.triplet == triplet
            assert profile.image_definition(req).startswith("FROM ")
            assert profile.build_command(req)
            assert profile.output_dir(req).startswith("/")
            specs = profile.artifacts(req)
            assert specs
            for spec in specs:
                assert spec.comparator in list_comparators()
                urls = profile.official_urls(req, spec.official_name)
                assert urls and urls[0].endswith("/" + spec.official_name)
            assert profile.build_env(req, checkout)["SOURCE_DATE_EPOCH"] == "1700000000"


class TestBitcoinCore:
    def test_linux_tarball(self, tmp_path):
        profile = registry.require("bitcoincore")
        req = _req("bitcoincore", "v29.1", "aarch64-linux", "tarball", tmp_path)
        [spec] = profile.artifacts(req)
        assert spec.built_name == spec.official_name == "bitcoin-29.1-aarch64-linux-gnu.tar.gz"
        assert profile.official_urls(req, spec.official_name) == [
            "https://bitcoincore.org/bin/bitcoin-core-29.1/bitcoin-29.1-aarch64-linux-gnu.tar.gz"
        ]
        assert profile.checksums_urls(req) == ["https://bitcoincore.org/bin/bitcoin-core-29.1/SHA256SUMS"]
        assert profile.output_dir(req) == "/src/guix-build-29.1/output"
        assert "HOSTS=aarch64-linux-gnu" in profile.build_command(req)

    def test_windows_setup_is_signed(self, tmp_path):
        profile = registry.require("bitcoincore")
        req = _req("bitcoincore", "29.1", "x86_64-windows", "setup", tmp_path)
        [spec] = profile.artifacts(req)
        assert spec.built_name == "bitcoin-29.1-win64-setup-unsigned.exe"
        assert spec.official_name == "bitcoin-29.1-win64-setup.exe"
        assert spec.comparator == "authenticode"

    def test_guix_runs_daemon_as_image_cmd(self):
        profile = registry.require("bitcoincore")
        assert profile.keepalive is None
        assert profile.privileged


def test_knots_windows_names(tmp_path):
    profile = registry.require("bitcoinknots")
    req = _req("bitcoinknots", "29.1.knots20250903", "win64", "zip", tmp_path)
    [spec] = profile.artifacts(req)
    assert spec.official_name == "bitcoin-29.1.knots20250903-win64-pgpverifiable.zip"
    assert profile.official_urls(req, spec.official_name)[0].startswith(
        "https://github.com/bitcoinknots/bitcoin/releases/download/v29.1.knots20250903/"
    )
    assert profile.extra_env["FORCE_USE_WGET"] == "1"



def test_knots_falls_back_to_plain_windows_name(tmp_path):
    profile = registry.require("bitcoinknots")
    base = "https://github.com/bitcoinknots/bitcoin/releases/download/v29.1.knots20250903"
    req = _req("bitcoinknots", "29.1.knots20250903", "win64", "setup", tmp_path)
    [spec] = profile.artifacts(req)
    assert profile.official_urls(req, spec.official_name) == [
        f"{base}/bitcoin-29.1.knots20250903-win64-setup-pgpverifiable.exe",
        f"{base}/bitcoin-29.1.knots20250903-win64-setup.exe",
    ]

    linux = _req("bitcoinknots", "29.1.knots20250903", "x86_64-linux", "tarball", tmp_path)
    [spec] = profile.artifacts(linux)
    assert len(profile.official_urls(linux, spec.official_name)) == 1


def test_bitcoinsafe_tries_both_tag_styles(tmp_path):
    profile = registry.require("bitcoinsafe")
    req = _req("bitcoinsafe", "1.4.0", "x86_64-linux", "appimage", tmp_path)
    assert profile.tag_candidates(req) == ["v1.4.0", "1.4.0"]
    [spec] = profile.artifacts(req)
    assert spec.comparator == "appimage"
    assert [u.rsplit("/", 2)[1] for u in profile.official_urls(req, spec.official_name)] == ["v1.4.0", "1.4.0"]
    assert "--targets appimage " in profile.build_command(req)
    assert "dockerd" in profile.build_command(req)


def test_electrum(tmp_path):
    profile = registry.require("electrum")
    req = _req("electrum", "v4.5.8", "x86_64-windows", "portable", tmp_path)
    assert profile.tag_candidates(req) == ["4.5.8", "v4.5.8", "electrum-4.5.8"]
    [spec] = profile.artifacts(req)
    assert spec.official_name == "electrum-4.5.8-portable.exe"
    assert profile.official_urls(req, spec.official_name) == [
        "https://download.electrum.org/4.5.8/electrum-4.5.8-portable.exe"
    ]


def test_bisq_and_sparrow(tmp_path):
    bisq = registry.require("bisq")
    req = _req("bisq", "1.9.21", "x86_64-linux", "deb", tmp_path)
    assert bisq.artifacts(req)[0].official_name == "Bisq-64bit-1.9.21.deb"
    assert bisq.artifacts(req)[0].comparator == "jar"

    sparrow = registry.require("sparrow")
    req = _req("sparrow", "2.2.3", "x86_64-linux", "tarball", tmp_path)
    [spec] = sparrow.artifacts(req)
    assert spec.official_name == "sparrowwallet-2.2.3-x86_64.tar.gz"
    assert f"/output/{spec.built_name}" in sparrow.build_command(req)


def test_specter_types(tmp_path):
    specter = registry.require("specter")
    daemon = _req("specter", "2.0.5", "x86_64-linux", "specterd", tmp_path)
    gui = _req("specter", "2.0.5", "x86_64-linux", "electron-gui", tmp_path)
    assert specter.artifacts(daemon)[0].comparator == "member"
    assert specter.artifacts(gui)[0].comparator == "appimage"
    assert 'echo "v2.0.5"' in specter.build_command(daemon)


def test_with_dockerd_wraps_command():
    cmd = with_dockerd("make")
    assert cmd.index("dockerd") < cmd.index("make")


class TestWasabi:
    @pytest.mark.parametrize(
        "arch,build_type,name",
        [
            ("x86_64-linux", "deb", "Wasabi-2.7.1.deb"),
            ("x86_64-linux", "tarball", "Wasabi-2.7.1-linux-x64.tar.gz"),
            ("x86_64-linux", "zip", "Wasabi-2.7.1-linux-x64.zip"),
            ("win64", "zip", "Wasabi-2.7.1-win-x64.zip"),
            ("x86_64-windows", "msi", "Wasabi-2.7.1.msi"),
        ],
    )
    def test_artifact_names(self, tmp_path, arch, build_type, name):
        profile = registry.require("wasabi")
        req = _req("wasabi", "2.7.1", arch, build_type, tmp_path)
        [spec] = profile.artifacts(req)
        assert spec.built_name == spec.official_name == name
        assert spec.comparator == "plain"
        assert profile.official_urls(req, name) == [
            f"https://github.com/WalletWasabi/WalletWasabi/releases/download/v2.7.1/{name}"
        ]

    def test_release_script_target(self, tmp_path):
        profile = registry.require("wasabi")
        linux = _req("wasabi", "v2.7.1", "x86_64-linux-gnu", "deb", tmp_path)
        windows = _req("wasabi", "v2.7.1", "win64", "msi", tmp_path)
        assert profile.build_command(linux).endswith("./Contrib/release.sh debian")
        assert profile.build_command(windows).endswith("./Contrib/release.sh wininstaller")
        assert profile.output_dir(linux) == "/src/packages"
        assert "dotnet/sdk:8.0.404-bookworm-slim" in profile.image_definition(linux)
        assert profile.tag_candidates(linux) == ["v2.7.1", "2.7.1"]

    def test_windows_rejects_deb(self, tmp_path):
        with pytest.raises(InvalidParameterError):
            _req("wasabi", "2.7.1", "win64", "deb", tmp_path)
