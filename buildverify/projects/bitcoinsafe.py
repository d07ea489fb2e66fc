from __future__ import annotations

from ..core.models import VerificationRequest
from .base import ArtifactSpec, BaseProfile, Target
from .dind import dind_image, with_dockerd

# tools/build.py --targets for each build type; deb is converted from the AppImage
BUILD_TARGETS = {
    "appimage": "appimage",
    "deb": "appimage deb",
    "portable": "windows",
    "setup": "windows",
}


class BitcoinSafeProfile(BaseProfile):
    project_id = "bitcoinsafe"
    display_name = "Bitcoin Safe"
    app_id = "bitcoinsafe"
    repo_url = "https://github.com/andreasgriffin/bitcoin-safe.git"
    release_base = "https://github.com/andreasgriffin/bitcoin-safe/releases/download"
    tag_formats = ("v{version}", "{version}")
    targets = {
        "x86_64-linux": Target("x86_64-linux-gnu", ("appimage", "deb")),
        "x86_64-windows": Target("x86_64-w64-mingw32", ("portable", "setup")),
    }
    arch_aliases = {"x86_64-linux-gnu": "x86_64-linux", "win64": "x86_64-windows"}
    submodules = True
    privileged = True
    extra_env = {"PYTHONHASHSEED": "22"}

    def release_tags(self, request: VerificationRequest) -> list[str]:
        return [request.version, request.bare_version]

    def image_definition(self, request: VerificationRequest) -> str:
        return dind_image("python3", "py3-pip", "poetry")

    def build_command(self, request: VerificationRequest) -> str:
        targets = BUILD_TARGETS[request.build_type]
        return with_dockerd(
            f"cd {self.source_dir} && git config --global --add safe.directory '*' && "
            f"poetry install && poetry run python tools/build.py --targets {targets} --commit None"
        )

    def output_dir(self, request: VerificationRequest) -> str:
        return f"{self.source_dir}/dist"

    def artifacts(self, request: VerificationRequest) -> list[ArtifactSpec]:
        v = request.bare_version
        specs = {
            "appimage": ArtifactSpec(
                f"*{v}*.AppImage.tar.gz", f"Bitcoin-Safe-{v}-x86_64.AppImage.tar.gz", "appimage"
            ),
            "deb": ArtifactSpec(f"*{v}*.deb", f"Bitcoin-Safe-{v}-x86_64.deb"),
            "portable": ArtifactSpec(
                f"*{v}*portable.exe", f"Bitcoin-Safe-{v}-portable.exe", "authenticode"
            ),
            "setup": ArtifactSpec(f"*{v}*setup.exe", f"Bitcoin-Safe-{v}-setup.exe", "authenticode"),
        }
        return [specs[request.build_type]]
