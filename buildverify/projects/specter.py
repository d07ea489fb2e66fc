from __future__ import annotations

from ..core.models import VerificationRequest
from .base import ArtifactSpec, BaseProfile, Target

SPECTER_IMAGE = """\
FROM ubuntu:22.04

ENV DEBIAN_FRONTEND=noninteractive

RUN apt-get update && apt-get install -y \\
    build-essential \\
    ca-certificates \\
    curl \\
    git \\
    libusb-1.0-0-dev \\
    libudev-dev \\
    python3.10 \\
    python3.10-dev \\
    python3-pip \\
    python3-virtualenv \\
    unzip \\
    wget \\
    && rm -rf /var/lib/apt/lists/*

RUN curl -fsSL https://deb.nodesource.com/setup_18.x | bash - \\
    && apt-get install -y nodejs \\
    && rm -rf /var/lib/apt/lists/*

RUN update-alternatives --install /usr/bin/python3 python3 /usr/bin/python3.10 1
RUN python3 -m pip install --upgrade pip

RUN mkdir -p /src /output
WORKDIR /src
"""

SPECTERD_STEPS = (
    "virtualenv --python=python3.10 .buildenv && . .buildenv/bin/activate && "
    "pip3 install build && "
    "pip3 install -r requirements.txt --require-hashes && "
    "pip3 install -e . && "
    "(cd pyinstaller && pip3 install -r requirements.txt --require-hashes && pip3 install -e ..) && "
    "python3 -m build && pip3 install ./dist/cryptoadvance.specter-*.whl && "
    "cd pyinstaller && echo \"{tag}\" > version.txt && "
    "rm -rf build/ dist/ && pyinstaller specterd.spec"
)


class SpecterProfile(BaseProfile):
    """Specter Desktop: PyInstaller daemon and the Electron AppImage."""

    project_id = "specter"
    display_name = "Specter Desktop"
    app_id = "specter-desktop"
    repo_url = "https://github.com/cryptoadvance/specter-desktop.git"
    release_base = "https://github.com/cryptoadvance/specter-desktop/releases/download"
    targets = {
        "x86_64-linux": Target("x86_64-linux-gnu", ("specterd", "electron-gui")),
    }
    arch_aliases = {"x86_64-linux-gnu": "x86_64-linux"}

    def image_definition(self, request: VerificationRequest) -> str:
        return SPECTER_IMAGE

    def build_command(self, request: VerificationRequest) -> str:
        steps = SPECTERD_STEPS.format(tag=request.version)
        if request.build_type == "specterd":
            collect = "cp dist/specterd /output/specterd"
        else:
            collect = (
                "cd electron && npm install && npm run dist && "
                "cp dist/Specter-*.AppImage /output/"
            )
        return (
            f"cd {self.source_dir} && git config --global --add safe.directory {self.source_dir} && "
            f"{steps} && {collect}"
        )

    def output_dir(self, request: VerificationRequest) -> str:
        return "/output"

    def artifacts(self, request: VerificationRequest) -> list[ArtifactSpec]:
        v = request.bare_version
        if request.build_type == "specterd":
            # The release zip holds the bare specterd binary
            return [ArtifactSpec("specterd", f"specterd-v{v}-x86_64-linux-gnu.zip", "member")]
        return [
            ArtifactSpec(
                "Specter-*.AppImage",
                f"specter_desktop-v{v}-x86_64-linux-gnu.tar.gz",
                "appimage",
            )
        ]
