from __future__ import annotations

from ..core.models import VerificationRequest
from .base import ArtifactSpec, BaseProfile, Target

BISQ_IMAGE = """\
FROM ubuntu:22.04

ENV DEBIAN_FRONTEND=noninteractive

RUN apt-get update && apt-get install -y \\
    git wget curl unzip tar xz-utils zstd binutils \\
    ca-certificates ca-certificates-java fakeroot dpkg-dev \\
    build-essential debhelper rpm gnupg software-properties-common \\
    && wget -q https://cdn.azul.com/zulu/bin/zulu-repo_1.0.0-3_all.deb \\
    && dpkg -i zulu-repo_1.0.0-3_all.deb \\
    && apt-key adv --keyserver hkp://keyserver.ubuntu.com:80 --recv-keys 0xB1998361219BD9C9 \\
    && apt-get update \\
    && apt-get install -y zulu11-jdk zulu17-jdk \\
    && rm -rf /var/lib/apt/lists/* zulu-repo_1.0.0-3_all.deb \\
    && update-ca-certificates \\
    && mkdir -p /usr/lib/jvm/zulu11/lib/security \\
    && touch /usr/lib/jvm/zulu11/lib/security/blacklisted.certs

ENV JAVA_HOME=/usr/lib/jvm/zulu11
ENV JAVA_17_HOME=/usr/lib/jvm/zulu17
ENV PATH=$JAVA_HOME/bin:$PATH
ENV GRADLE_OPTS="-Xmx4g -Dorg.gradle.daemon=false"

RUN mkdir -p /src
WORKDIR /src
"""


class BisqProfile(BaseProfile):
    """Bisq 1: Gradle build, jpackage .deb, compared class by class."""

    project_id = "bisq"
    display_name = "Bisq"
    app_id = "bisq1"
    repo_url = "https://github.com/bisq-network/bisq.git"
    release_base = "https://github.com/bisq-network/bisq/releases/download"
    targets = {
        "x86_64-linux": Target("x86_64-linux-gnu", ("deb",)),
    }
    arch_aliases = {"x86_64-linux-gnu": "x86_64-linux"}

    def image_definition(self, request: VerificationRequest) -> str:
        return BISQ_IMAGE

    def build_command(self, request: VerificationRequest) -> str:
        # The installer task needs Java 17 while the build itself runs on 11
        return (
            f"cd {self.source_dir} && git config --global --add safe.directory {self.source_dir} && "
            "./gradlew clean build -x test && "
            "JAVA_HOME=$JAVA_17_HOME PATH=$JAVA_17_HOME/bin:$PATH "
            "./gradlew desktop:generateInstallers --rerun-tasks"
        )

    def output_dir(self, request: VerificationRequest) -> str:
        return f"{self.source_dir}/desktop/build/packaging/jpackage/packages"

    def artifacts(self, request: VerificationRequest) -> list[ArtifactSpec]:
        return [
            ArtifactSpec(
                "bisq_*-1_amd64.deb",
                f"Bisq-64bit-{request.bare_version}.deb",
                "jar",
            )
        ]
