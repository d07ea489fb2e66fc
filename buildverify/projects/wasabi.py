from __future__ import annotations

from ..core.models import VerificationRequest
from .base import ArtifactSpec, BaseProfile, Target

WASABI_IMAGE = """\
FROM mcr.microsoft.com/dotnet/sdk:8.0.404-bookworm-slim

ENV DEBIAN_FRONTEND=noninteractive \\
    DOTNET_CLI_TELEMETRY_OPTOUT=1 \\
    DOTNET_SKIP_FIRST_TIME_EXPERIENCE=1 \\
    LC_ALL=C.UTF-8 \\
    LANG=C.UTF-8

RUN apt-get update && apt-get install -y \\
    git \\
    wget \\
    zip \\
    unzip \\
    && rm -rf /var/lib/apt/lists/*

RUN mkdir -p /src
WORKDIR /src
"""

# Contrib/release.sh target per architecture
RELEASE_TARGETS = {
    "x86_64-linux": "debian",
    "x86_64-windows": "wininstaller",
}


class WasabiProfile(BaseProfile):
    """Wasabi Wallet: dotnet build driven by Contrib/release.sh."""

    project_id = "wasabi"
    display_name = "Wasabi Wallet"
    app_id = "wasabiwallet"
    repo_url = "https://github.com/WalletWasabi/WalletWasabi.git"
    release_base = "https://github.com/WalletWasabi/WalletWasabi/releases/download"
    tag_formats = ("v{version}", "{version}")
    targets = {
        "x86_64-linux": Target("x86_64-linux-gnu", ("deb", "tarball", "zip")),
        "x86_64-windows": Target("x86_64-w64-mingw32", ("zip", "msi")),
    }
    arch_aliases = {"x86_64-linux-gnu": "x86_64-linux", "win64": "x86_64-windows"}
    extra_env = {"DOTNET_CLI_TELEMETRY_OPTOUT": "1"}

    def image_definition(self, request: VerificationRequest) -> str:
        return WASABI_IMAGE

    def build_command(self, request: VerificationRequest) -> str:
        return (
            f"set -euo pipefail && cd {self.source_dir} && "
            f"git config --global --add safe.directory {self.source_dir} && "
            f"./Contrib/release.sh {RELEASE_TARGETS[request.architecture]}"
        )

    def output_dir(self, request: VerificationRequest) -> str:
        return f"{self.source_dir}/packages"

    def artifacts(self, request: VerificationRequest) -> list[ArtifactSpec]:
        v = request.bare_version
        if request.architecture == "x86_64-windows":
            names = {"msi": f"Wasabi-{v}.msi", "zip": f"Wasabi-{v}-win-x64.zip"}
        else:
            names = {
                "deb": f"Wasabi-{v}.deb",
                "tarball": f"Wasabi-{v}-linux-x64.tar.gz",
                "zip": f"Wasabi-{v}-linux-x64.zip",
            }
        name = names[request.build_type]
        return [ArtifactSpec(name, name)]
