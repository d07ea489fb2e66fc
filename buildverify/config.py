"""Configuration and constants for the buildverify package."""
from __future__ import annotations

from typing import Dict

SCRIPT_VERSION = "v1.2.0"

# Written to the invocation directory; consumed by the build server harness.
RESULTS_FILENAME = "COMPARISON_RESULTS.yaml"

RESULTS_BEGIN = "===== Begin Results ====="
RESULTS_END = "===== End Results ====="

# Default workspace root, relative to the invocation directory
WORKSPACE_DEFAULT = "./buildverify_work"
LOG_FILENAME = "_VERIFY_LOG.txt"
SETTINGS_FILENAME = "buildverify.json"

EXIT_REPRODUCIBLE = 0
EXIT_NOT_REPRODUCIBLE = 1
EXIT_INVALID_PARAMS = 2
EXIT_MANUAL_REVIEW = 12

# Container/image names are always "<prefix>-<project>-..." so cleanup can find them
CONTAINER_PREFIX = "bv"
IMAGE_PREFIX = "bv-image"

# Engines probed by "auto" detection, in order
ENGINE_PREFERENCE = ("podman", "docker")

CLONE_ATTEMPTS = 3
CLONE_RETRY_DELAY = 5.0
DOWNLOAD_RETRIES = 3
DOWNLOAD_TIMEOUT = 60.0
DOWNLOAD_CHUNK = 1024 * 1024
# gpg may block on a keyserver lookup
VERIFY_TAG_TIMEOUT = 120.0

# Image used to run osslsigncode when the host lacks it
OSSLSIGNCODE_IMAGE = "debian:bookworm"

# Build-server architecture labels accepted across projects
ARCH_LABELS: Dict[str, str] = {
    "x86_64-linux": "64-bit Linux (glibc)",
    "aarch64-linux": "64-bit ARM Linux",
    "arm-linux": "32-bit ARM Linux (hard float)",
    "x86_64-windows": "64-bit Windows",
    "x86_64-macos": "64-bit macOS (Intel)",
    "arm64-macos": "64-bit macOS (Apple Silicon)",
}
