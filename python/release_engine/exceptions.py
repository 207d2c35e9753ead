"""
Exception hierarchy for the release orchestration engine.

- ReleaseEngineError: Base exception for all engine errors
- InvalidBranchVersionError / MissingBaseVersionError: version calculation
- IllegalTransitionError / TagConflictError / DuplicateTierError: state conflicts
- AdapterTimeoutError / AdapterRejectedError: external collaborator failures
- ConfigurationError: configuration loading and validation

Each exception carries:
- error_code: Machine-readable error identifier
- context: Additional structured data for logging and CLI output
- is_retryable: Whether the failed operation may be retried
- exit_code: Process exit status used by the CLI
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Machine-readable error codes."""

    # Version calculation (1xxx)
    INVALID_BRANCH_VERSION = "RELENG_1001"
    MISSING_BASE_VERSION = "RELENG_1002"

    # State conflicts (2xxx)
    ILLEGAL_TRANSITION = "RELENG_2001"
    TAG_CONFLICT = "RELENG_2002"
    DUPLICATE_TIER = "RELENG_2003"

    # Adapters (3xxx)
    ADAPTER_TIMEOUT = "RELENG_3001"
    ADAPTER_REJECTED = "RELENG_3002"

    # Configuration (4xxx)
    CONFIG_INVALID = "RELENG_4001"

    UNKNOWN = "RELENG_9999"


EXIT_CODES: dict[ErrorCode, int] = {
    ErrorCode.INVALID_BRANCH_VERSION: 10,
    ErrorCode.MISSING_BASE_VERSION: 11,
    ErrorCode.ILLEGAL_TRANSITION: 12,
    ErrorCode.TAG_CONFLICT: 13,
    ErrorCode.DUPLICATE_TIER: 14,
    ErrorCode.ADAPTER_TIMEOUT: 15,
    ErrorCode.ADAPTER_REJECTED: 16,
    ErrorCode.CONFIG_INVALID: 2,
    ErrorCode.UNKNOWN: 1,
}


@dataclass
class ReleaseEngineError(Exception):
    """
    Base exception for all release engine errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable error identifier
        context: Additional structured data for debugging
        is_retryable: Whether the operation can be safely retried
        cause: Original exception that caused this error
    """

    message: str
    error_code: ErrorCode = ErrorCode.UNKNOWN
    context: dict[str, Any] = field(default_factory=dict)
    is_retryable: bool = False
    cause: Exception | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        parts = [f"[{self.error_code.value}] {self.message}"]
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f" ({context_str})")
        return "".join(parts)

    @property
    def exit_code(self) -> int:
        """Process exit status for this error."""
        return EXIT_CODES.get(self.error_code, 1)

    @property
    def kind(self) -> str:
        """Taxonomy name without the ``Error`` suffix, e.g. ``TagConflict``."""
        name = self.__class__.__name__
        return name[: -len("Error")] if name.endswith("Error") else name

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for structured logging and JSON output."""
        return {
            "error_type": self.kind,
            "error_code": self.error_code.value,
            "message": self.message,
            "context": self.context,
            "is_retryable": self.is_retryable,
            "cause": str(self.cause) if self.cause else None,
        }


@dataclass
class InvalidBranchVersionError(ReleaseEngineError):
    """Raised when a branch-encoded version is malformed or not usable."""

    error_code: ErrorCode = ErrorCode.INVALID_BRANCH_VERSION

    @classmethod
    def malformed(cls, value: str, branch: str | None = None) -> InvalidBranchVersionError:
        """Create error for a version string that is not ``X.Y.Z``."""
        return cls(
            message=f"Branch version '{value}' is not a valid X.Y.Z version",
            context={"value": value, "branch": branch},
        )

    @classmethod
    def not_greater(cls, value: str, latest: str) -> InvalidBranchVersionError:
        """Create error for a branch version that would move versions backwards."""
        return cls(
            message=f"Branch version {value} must be greater than latest tag {latest}",
            context={"value": value, "latest": latest},
        )


@dataclass
class MissingBaseVersionError(ReleaseEngineError):
    """Raised when no tag and no branch version exist where one is required."""

    error_code: ErrorCode = ErrorCode.MISSING_BASE_VERSION

    @classmethod
    def for_role(cls, role: str) -> MissingBaseVersionError:
        """Create error for a branch role that needs a base version."""
        return cls(
            message=f"No base version available for {role} branch",
            context={"role": role},
        )


@dataclass
class IllegalTransitionError(ReleaseEngineError):
    """Raised when a branch lifecycle transition is not permitted."""

    error_code: ErrorCode = ErrorCode.ILLEGAL_TRANSITION

    @classmethod
    def rejected(cls, trigger: str, reason: str, **context: Any) -> IllegalTransitionError:
        """Create error for a rejected trigger."""
        return cls(
            message=f"Illegal transition for {trigger}: {reason}",
            context={"trigger": trigger, "reason": reason, **context},
        )

    @classmethod
    def locked(cls, key: str) -> IllegalTransitionError:
        """Create error for a transition whose advisory lock is already held."""
        return cls(
            message=f"Another transition holds the lock for {key}",
            context={"lock": key},
        )


@dataclass
class TagConflictError(ReleaseEngineError):
    """Raised when a tag name is requested against a different commit."""

    error_code: ErrorCode = ErrorCode.TAG_CONFLICT

    @classmethod
    def for_tag(cls, name: str, existing_sha: str, requested_sha: str) -> TagConflictError:
        """Create error for a tag that already points elsewhere."""
        return cls(
            message=f"Tag {name} already exists at {existing_sha[:12]}",
            context={"tag": name, "existing_sha": existing_sha, "requested_sha": requested_sha},
        )


@dataclass
class DuplicateTierError(ReleaseEngineError):
    """Raised when a release line registration conflicts with an active line."""

    error_code: ErrorCode = ErrorCode.DUPLICATE_TIER

    @classmethod
    def for_tier(cls, tier: str, existing: str, requested: str) -> DuplicateTierError:
        """Create error for a second active CURRENT or NEXT line."""
        return cls(
            message=f"Tier {tier} is already held by line {existing}",
            context={"tier": tier, "existing_line": existing, "requested_line": requested},
        )

    @classmethod
    def for_line(cls, line_id: str) -> DuplicateTierError:
        """Create error for a line id registered twice with different data."""
        return cls(
            message=f"Release line {line_id} is already registered",
            context={"line_id": line_id},
        )


@dataclass
class AdapterTimeoutError(ReleaseEngineError):
    """Raised when an external call exceeds its timeout."""

    error_code: ErrorCode = ErrorCode.ADAPTER_TIMEOUT
    is_retryable: bool = True

    @classmethod
    def timeout(
        cls, operation: str, timeout_seconds: float, cause: Exception | None = None
    ) -> AdapterTimeoutError:
        """Create error for a timed out operation."""
        return cls(
            message=f"Operation '{operation}' timed out after {timeout_seconds}s",
            context={"operation": operation, "timeout_seconds": timeout_seconds},
            cause=cause,
        )


@dataclass
class AdapterRejectedError(ReleaseEngineError):
    """Raised when an external collaborator refuses an operation."""

    error_code: ErrorCode = ErrorCode.ADAPTER_REJECTED

    @classmethod
    def rejected(
        cls, operation: str, reason: str, cause: Exception | None = None
    ) -> AdapterRejectedError:
        """Create error for a refused operation (e.g. branch protection)."""
        return cls(
            message=f"Operation '{operation}' was rejected: {reason}",
            context={"operation": operation, "reason": reason},
            cause=cause,
        )


@dataclass
class ConfigurationError(ReleaseEngineError):
    """Raised when configuration is invalid or cannot be read."""

    error_code: ErrorCode = ErrorCode.CONFIG_INVALID

    @classmethod
    def invalid_file(cls, path: str, reason: str) -> ConfigurationError:
        """Create error for an unreadable or invalid configuration file."""
        return cls(
            message=f"Invalid configuration file {path}: {reason}",
            context={"path": path, "reason": reason},
        )


CALCULATION_ERRORS = (InvalidBranchVersionError, MissingBaseVersionError)
CONFLICT_ERRORS = (IllegalTransitionError, TagConflictError, DuplicateTierError)
