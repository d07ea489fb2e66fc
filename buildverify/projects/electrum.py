from __future__ import annotations

from ..core.models import VerificationRequest
from .base import ArtifactSpec, BaseProfile, Target
from .dind import dind_image, with_dockerd


class ElectrumProfile(BaseProfile):
    """Windows binaries built with contrib/build-wine; official ones are signed."""

    project_id = "electrum"
    display_name = "Electrum"
    app_id = "org.electrum.electrum"
    repo_url = "https://github.com/spesmilo/electrum.git"
    release_base = "https://download.electrum.org"
    tag_formats = ("{version}", "v{version}", "electrum-{version}")
    targets = {
        "x86_64-windows": Target("x86_64-w64-mingw32", ("portable", "setup")),
    }
    arch_aliases = {"win64": "x86_64-windows"}
    submodules = True
    privileged = True
    extra_env = {"ELECBUILD_COMMIT": "HEAD", "ELECBUILD_NOCACHE": "1"}

    def release_tags(self, request: VerificationRequest) -> list[str]:
        return [request.bare_version]

    def image_definition(self, request: VerificationRequest) -> str:
        return dind_image("python3", "sudo")

    def build_command(self, request: VerificationRequest) -> str:
        return with_dockerd(
            f"git config --global --add safe.directory '*' && "
            f"cd {self.source_dir}/contrib/build-wine && ./build.sh"
        )

    def output_dir(self, request: VerificationRequest) -> str:
        return f"{self.source_dir}/contrib/build-wine/dist"

    def artifacts(self, request: VerificationRequest) -> list[ArtifactSpec]:
        name = f"electrum-{request.bare_version}-{request.build_type}.exe"
        return [ArtifactSpec(name, name, "authenticode")]
