from __future__ import annotations

from ..core.models import VerificationRequest
from .base import ArtifactSpec, BaseProfile, Target

JDK_URL = (
    "https://github.com/adoptium/temurin22-binaries/releases/download/"
    "jdk-22.0.2%2B9/OpenJDK22U-jdk_x64_linux_hotspot_22.0.2_9.tar.gz"
)

SPARROW_IMAGE = f"""\
FROM ubuntu:22.04

ENV DEBIAN_FRONTEND=noninteractive

RUN apt-get update && apt-get install -y \\
    wget \\
    git \\
    tar \\
    gzip \\
    && rm -rf /var/lib/apt/lists/*

RUN wget -q {JDK_URL} -O /tmp/jdk.tar.gz \\
    && tar -xzf /tmp/jdk.tar.gz -C /opt \\
    && rm /tmp/jdk.tar.gz

ENV JAVA_HOME=/opt/jdk-22.0.2+9
ENV PATH=$JAVA_HOME/bin:$PATH

RUN mkdir -p /src /output
WORKDIR /src
"""


class SparrowProfile(BaseProfile):
    """Sparrow Wallet: jpackage app image, repacked like the release tarball."""

    project_id = "sparrow"
    display_name = "Sparrow Wallet"
    app_id = "sparrow"
    repo_url = "https://github.com/sparrowwallet/sparrow.git"
    release_base = "https://github.com/sparrowwallet/sparrow/releases/download"
    tag_formats = ("{version}", "v{version}")
    targets = {
        "x86_64-linux": Target("x86_64-linux-gnu", ("tarball",)),
    }
    arch_aliases = {"x86_64-linux-gnu": "x86_64-linux"}
    submodules = True

    def release_tags(self, request: VerificationRequest) -> list[str]:
        return [request.bare_version]

    def image_definition(self, request: VerificationRequest) -> str:
        return SPARROW_IMAGE

    def build_command(self, request: VerificationRequest) -> str:
        name = self.artifacts(request)[0].built_name
        return (
            f"cd {self.source_dir} && git config --global --add safe.directory {self.source_dir} && "
            "./gradlew jpackage && "
            f"tar -C build/jpackage -czf /output/{name} Sparrow"
        )

    def output_dir(self, request: VerificationRequest) -> str:
        return "/output"

    def artifacts(self, request: VerificationRequest) -> list[ArtifactSpec]:
        name = f"sparrowwallet-{request.bare_version}-x86_64.tar.gz"
        return [ArtifactSpec(name, name, "jimage")]
