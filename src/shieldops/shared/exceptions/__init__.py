"""Exception hierarchy for the ShieldOps integrity engine.

Every exception carries a machine-readable ``error_code``, a ``severity``
indicator, and an arbitrary ``context`` dict for structured logging.  The
reconciliation coordinator decides per class whether a failure is local to
one file (logged, pass continues) or infrastructure-level (critical).
"""
from __future__ import annotations

from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Severity levels
# ---------------------------------------------------------------------------

class Severity(str, Enum):
    """Severity levels for integrity exceptions."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class ShieldError(Exception):
    """Root exception for every ShieldOps failure.

    Attributes:
        message:    Human-readable description.
        error_code: Machine-readable code (e.g. ``"SHIELD_NETWORK_ERROR"``).
        severity:   Impact severity.
        context:    Arbitrary key-value context for structured logging.
    """

    def __init__(
        self,
        message: str = "Integrity engine error",
        error_code: str = "SHIELD_ERROR",
        severity: Severity = Severity.MEDIUM,
        context: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.error_code = error_code
        self.severity = severity
        self.context: dict[str, Any] = context or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}("
            f"error_code={self.error_code!r}, "
            f"severity={self.severity.value!r}, "
            f"message={self.message!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise the exception for reports."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "severity": self.severity.value,
            "context": self.context,
        }


# ---------------------------------------------------------------------------
# Filesystem exceptions
# ---------------------------------------------------------------------------

class FileAccessError(ShieldError):
    """Raised when a file or directory cannot be read (missing, directory,
    permission denied)."""

    def __init__(self, message: str = "File access failed", **kwargs: Any) -> None:
        super().__init__(message, error_code=kwargs.pop("error_code", "SHIELD_FILE_ACCESS_ERROR"), **kwargs)


# ---------------------------------------------------------------------------
# Content provider exceptions
# ---------------------------------------------------------------------------

class NetworkError(ShieldError):
    """Raised when a content-provider fetch fails at the transport level or
    returns a non-success status."""

    def __init__(
        self,
        message: str = "Content provider request failed",
        status_code: int | None = None,
        **kwargs: Any,
    ) -> None:
        self.status_code = status_code
        context = kwargs.pop("context", None) or {}
        if status_code is not None:
            context.setdefault("status_code", status_code)
        super().__init__(
            message,
            error_code=kwargs.pop("error_code", "SHIELD_NETWORK_ERROR"),
            context=context,
            **kwargs,
        )

    @property
    def transient(self) -> bool:
        """Transport failures and 5xx responses are worth retrying."""
        return self.status_code is None or self.status_code >= 500


class ManifestParseError(ShieldError):
    """Raised when the trusted manifest payload is malformed."""

    def __init__(self, message: str = "Malformed manifest payload", **kwargs: Any) -> None:
        super().__init__(message, error_code=kwargs.pop("error_code", "SHIELD_MANIFEST_PARSE_ERROR"), **kwargs)


# ---------------------------------------------------------------------------
# Repair exceptions
# ---------------------------------------------------------------------------

class RepairError(ShieldError):
    """Raised when a file repair cannot be completed (fetch or write)."""

    def __init__(self, message: str = "Repair failed", **kwargs: Any) -> None:
        super().__init__(
            message,
            error_code=kwargs.pop("error_code", "SHIELD_REPAIR_ERROR"),
            severity=kwargs.pop("severity", Severity.HIGH),
            **kwargs,
        )


class ContentVerificationError(RepairError):
    """Raised when fetched canonical content is rejected before it is written."""

    def __init__(self, message: str = "Fetched content failed verification", **kwargs: Any) -> None:
        super().__init__(
            message,
            error_code=kwargs.pop("error_code", "SHIELD_CONTENT_VERIFICATION_ERROR"),
            severity=kwargs.pop("severity", Severity.CRITICAL),
            **kwargs,
        )


class SelfUpdateError(RepairError):
    """Raised when the engine cannot replace its own source."""

    def __init__(self, message: str = "Self-update failed", **kwargs: Any) -> None:
        super().__init__(message, error_code=kwargs.pop("error_code", "SHIELD_SELF_UPDATE_ERROR"), **kwargs)


# ---------------------------------------------------------------------------
# Configuration exceptions
# ---------------------------------------------------------------------------

class ConfigurationError(ShieldError):
    """Raised when the engine encounters an invalid or missing configuration."""

    def __init__(self, message: str = "Configuration error", **kwargs: Any) -> None:
        super().__init__(message, error_code=kwargs.pop("error_code", "SHIELD_CONFIG_ERROR"), **kwargs)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

__all__ = [
    "Severity",
    "ShieldError",
    "FileAccessError",
    "NetworkError",
    "ManifestParseError",
    "RepairError",
    "ContentVerificationError",
    "SelfUpdateError",
    "ConfigurationError",
]
