"""Bitcoin Core and Bitcoin Knots: Guix builds in a privileged Alpine container."""

from __future__ import annotations

from ..core.models import VerificationRequest
from .base import ArtifactSpec, BaseProfile, Target

GUIX_IMAGE = """\
FROM alpine:3.22 AS base

RUN apk --no-cache --update add \\
      bash \\
      bzip2 \\
      ca-certificates \\
      curl \\
      git \\
      make \\
      shadow \\
      tar

ARG guix_download_path=https://ftpmirror.gnu.org/gnu/guix/
ARG guix_version=1.4.0
ARG guix_checksum_aarch64=72d807392889919940b7ec9632c45a259555e6b0942ea7bfd131101e08ebfcf4
ARG guix_checksum_x86_64=236ca7c9c5958b1f396c2924fcc5bc9d6fdebcb1b4cf3c7c6d46d4bf660ed9c9
ARG builder_count=32

ENV PATH=/root/.config/guix/current/bin:$PATH
ENV GUIX_LOCPATH=/root/.guix-profile/lib/locale
ENV LC_ALL=en_US.UTF-8

RUN guix_file_name=guix-binary-${guix_version}.$(uname -m)-linux.tar.xz    && \\
    eval "guix_checksum=\\${guix_checksum_$(uname -m)}"                     && \\
    cd /tmp                                                                && \\
    wget -q -O "$guix_file_name" "${guix_download_path}/${guix_file_name}" && \\
    echo "${guix_checksum}  ${guix_file_name}" | sha256sum -c              && \\
    tar xJf "$guix_file_name"                                              && \\
    mv var/guix /var/                                                      && \\
    mv gnu /                                                               && \\
    mkdir -p ~root/.config/guix                                            && \\
    ln -sf /var/guix/profiles/per-user/root/current-guix ~root/.config/guix/current && \\
    source ~root/.config/guix/current/etc/profile

RUN groupadd --system guixbuild
RUN for i in $(seq -w 1 ${builder_count}); do    \\
      useradd -g guixbuild -G guixbuild          \\
              -d /var/empty -s $(which nologin)  \\
              -c "Guix build user ${i}" --system \\
              "guixbuilder${i}" ;                \\
    done

RUN mkdir -p /src /base_cache /sources /SDKs
WORKDIR /src

RUN guix archive --authorize < ~root/.config/guix/current/share/guix/ci.guix.gnu.org.pub
CMD ["/root/.config/guix/current/bin/guix-daemon","--build-users-group=guixbuild"]
"""

LINUX_TYPES = ("tarball",)
WINDOWS_TYPES = ("zip", "setup")

GUIX_TARGETS = {
    "x86_64-linux": Target("x86_64-linux-gnu", LINUX_TYPES),
    "aarch64-linux": Target("aarch64-linux-gnu", LINUX_TYPES),
    "arm-linux": Target("arm-linux-gnueabihf", LINUX_TYPES),
    "x86_64-windows": Target("x86_64-w64-mingw32", WINDOWS_TYPES),
    "x86_64-macos": Target("x86_64-apple-darwin", LINUX_TYPES),
    "arm64-macos": Target("arm64-apple-darwin", LINUX_TYPES),
}

GUIX_ALIASES = {
    "x86_64-linux-gnu": "x86_64-linux",
    "aarch64-linux-gnu": "aarch64-linux",
    "win64": "x86_64-windows",
}


class GuixProfile(BaseProfile):
    targets = GUIX_TARGETS
    arch_aliases = GUIX_ALIASES
    privileged = True
    keepalive = None
    checksums_name = "SHA256SUMS"

    def image_definition(self, request: VerificationRequest) -> str:
        return GUIX_IMAGE

    def build_command(self, request: VerificationRequest) -> str:
        return (
            f"cd {self.source_dir} && git config --global --add safe.directory {self.source_dir} && "
            "BASE_CACHE=/base_cache SOURCE_PATH=/sources SDK_PATH=/SDKs "
            f"HOSTS={request.triplet} SKIP_DEBUG=1 ./contrib/guix/guix-build"
        )

    def output_dir(self, request: VerificationRequest) -> str:
        return f"{self.source_dir}/guix-build-{request.bare_version}/output"

    def windows_names(self, version: str) -> dict[str, ArtifactSpec]:
        raise NotImplementedError

    def artifacts(self, request: VerificationRequest) -> list[ArtifactSpec]:
        v = request.bare_version
        if request.architecture == "x86_64-windows":
            return [self.windows_names(v)[request.build_type]]
        name = f"bitcoin-{v}-{request.triplet}.tar.gz"
        return [ArtifactSpec(name, name)]


class BitcoinCoreProfile(GuixProfile):
    project_id = "bitcoincore"
    display_name = "Bitcoin Core"
    app_id = "bitcoincore"
    repo_url = "https://github.com/bitcoin/bitcoin.git"
    release_base = "https://bitcoincore.org/bin"

    def official_urls(self, request: VerificationRequest, filename: str) -> list[str]:
        return [f"{self.release_base}/bitcoin-core-{request.bare_version}/{filename}"]

    def windows_names(self, version: str) -> dict[str, ArtifactSpec]:
        return {
            "zip": ArtifactSpec(f"bitcoin-{version}-win64.zip", f"bitcoin-{version}-win64.zip"),
            # Official installer is code-signed; Guix leaves it unsigned
            "setup": ArtifactSpec(
                f"bitcoin-{version}-win64-setup-unsigned.exe",
                f"bitcoin-{version}-win64-setup.exe",
                "authenticode",
            ),
        }


class BitcoinKnotsProfile(GuixProfile):
    project_id = "bitcoinknots"
    display_name = "Bitcoin Knots"
    app_id = "bitcoinknots"
    repo_url = "https://github.com/bitcoinknots/bitcoin.git"
    release_base = "https://github.com/bitcoinknots/bitcoin/releases/download"
    extra_env = {"FORCE_USE_WGET": "1"}

    def windows_names(self, version: str) -> dict[str, ArtifactSpec]:
        zip_name = f"bitcoin-{version}-win64-pgpverifiable.zip"
        setup_name = f"bitcoin-{version}-win64-setup-pgpverifiable.exe"
        return {
            "zip": ArtifactSpec(zip_name, zip_name),
            "setup": ArtifactSpec(setup_name, setup_name, "authenticode"),
        }

    def official_urls(self, request: VerificationRequest, filename: str) -> list[str]:
        urls = super().official_urls(request, filename)
        # Some releases publish the Windows files without the -pgpverifiable suffix
        if "-pgpverifiable" in filename:
            urls += super().official_urls(request, filename.replace("-pgpverifiable", ""))
        return urls
