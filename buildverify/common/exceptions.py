"""Exception hierarchy for buildverify.

Every error raised by the pipeline stages derives from BuildVerifyError.
Stage failures that end a run carry the YAML ``status`` they map to, so the
orchestrator can turn any of them into a terminal result in one place.
"""

from __future__ import annotations

from typing import Any, Optional


# ============================================================================
# BASE EXCEPTIONS
# ============================================================================

class BuildVerifyError(Exception):
    """Base exception for all buildverify errors."""

    status: Optional[str] = None

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


# ============================================================================
# CONFIGURATION & INPUT ERRORS
# ============================================================================

class ConfigurationError(BuildVerifyError):
    """Invalid settings file or environment."""
    pass


class DependencyError(ConfigurationError):
    """A required external tool is not available on PATH."""

    def __init__(self, tool_name: str, message: str = None):
        msg = message or f"Required tool not found: {tool_name}"
        super().__init__(msg, {"tool": tool_name})
        self.tool_name = tool_name


class ValidationError(BuildVerifyError):
    """Generic input validation failure."""
    pass


class InvalidParameterError(ValidationError):
    """Missing or contradictory CLI parameters."""

    def __init__(self, message: str, parameter: str = ""):
        details = {"parameter": parameter} if parameter else None
        super().__init__(message, details)
        self.parameter = parameter


class UnknownProjectError(InvalidParameterError):
    def __init__(self, project: str):
        super().__init__(f"Unknown project: {project}", "project")
        self.project = project


# ============================================================================
# SOURCE ERRORS (nosource)
# ============================================================================

class SourceError(BuildVerifyError):
    """Source or official release could not be obtained."""

    status = "nosource"


class CloneError(SourceError):
    def __init__(self, url: str, attempts: int, reason: str = ""):
        msg = f"Failed to clone {url} after {attempts} attempt(s)"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, {"url": url, "attempts": attempts})
        self.url = url


class CheckoutError(SourceError):
    def __init__(self, ref: str, reason: str = ""):
        msg = f"Git checkout failed for {ref}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, {"ref": ref})
        self.ref = ref


class OfficialArtifactMissing(SourceError):
    """The official release artifact is not published at the expected URL."""

    def __init__(self, filename: str, url: str):
        super().__init__(
            f"No official release available for comparison: {filename}",
            {"url": url},
        )
        self.filename = filename
        self.url = url


# ============================================================================
# BUILD ERRORS (ftbfs)
# ============================================================================

class BuildError(BuildVerifyError):
    """The containerized build did not produce the expected output."""

    status = "ftbfs"


class ContainerError(BuildError):
    def __init__(self, action: str, reason: str = "", returncode: Optional[int] = None):
        msg = f"Container {action} failed"
        if reason:
            msg += f": {reason}"
        details: dict[str, Any] = {"action": action}
        if returncode is not None:
            details["returncode"] = returncode
        super().__init__(msg, details)
        self.action = action
        self.returncode = returncode


class ArtifactMissingError(BuildError):
    def __init__(self, filename: str, location: str = ""):
        msg = f"Built artifact not found: {filename}"
        super().__init__(msg, {"location": location} if location else None)
        self.filename = filename


# ============================================================================
# NETWORKING ERRORS
# ============================================================================

class NetworkError(BuildVerifyError):
    status = "nosource"


class DownloadError(NetworkError):
    def __init__(self, url: str, reason: str = ""):
        msg = f"Failed to download {url}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, {"url": url, "reason": reason})
        self.url = url


class ChecksumMismatchError(NetworkError):
    def __init__(self, filename: str, expected: str, actual: str):
        super().__init__(
            f"Official download of {filename} does not match published SHA256SUMS",
            {"expected": expected, "actual": actual},
        )
        self.filename = filename


# ============================================================================
# COMPARISON ERRORS
# ============================================================================

class ComparisonError(BuildVerifyError):
    """Pre-processing of an artifact pair failed."""
    pass


class SignatureStripError(ComparisonError):
    def __init__(self, path: str, reason: str = ""):
        msg = f"Failed to strip signature from {path}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, {"path": path})


class ExtractionError(ComparisonError):
    def __init__(self, path: str, reason: str = ""):
        msg = f"Failed to extract {path}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, {"path": path})


# ============================================================================
# WORKFLOW
# ============================================================================

class VerificationCancelled(BuildVerifyError):
    def __init__(self, signal_name: str = ""):
        msg = f"Verification cancelled ({signal_name})" if signal_name else "Verification cancelled"
        super().__init__(msg)


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def format_exception_chain(exc: BaseException, include_traceback: bool = False) -> str:
    """Format an exception together with its chain of causes.

    Args:
        exc: Exception to format
        include_traceback: Whether to include the full traceback

    Returns:
        The exception and its causes joined by arrows
    """
    import traceback

    if include_traceback:
        return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))

    messages = []
    current: Optional[BaseException] = exc
    while current is not None:
        if isinstance(current, BuildVerifyError):
            messages.append(str(current))
        else:
            messages.append(f"{type(current).__name__}: {current}")
        current = getattr(current, "__cause__", None)

    return " -> ".join(messages)
