"""Helpers for projects whose own build tooling drives Docker.

Bitcoin Safe and Electrum ship build scripts that start their own build
containers, so they run inside a privileged docker:dind container with a
private daemon.
"""

DIND_IMAGE = """\
FROM docker:27-dind

RUN apk --no-cache add \\
      bash \\
      ca-certificates \\
      git \\
      make \\
      tar \\
      {packages}

RUN mkdir -p /src
WORKDIR /src
"""

START_DOCKERD = (
    "(dockerd-entrypoint.sh dockerd >/var/log/dockerd.log 2>&1 &) && "
    "for i in $(seq 1 60); do docker info >/dev/null 2>&1 && break; sleep 1; done && "
    "docker info >/dev/null"
)


def dind_image(*packages: str) -> str:
    return DIND_IMAGE.format(packages=" \\\n      ".join(packages))


def with_dockerd(command: str) -> str:
    """Prefix ``command`` so it runs once the inner Docker daemon answers."""
    return f"{START_DOCKERD} && {command}"
