"""
Tests for the release engine exception hierarchy.

Verifies:
- Error code and exit code assignment
- Factory method behavior
- Retryability
- Serialization to dict for logging and CLI output
"""

import pytest

from release_engine.exceptions import (
    CALCULATION_ERRORS,
    CONFLICT_ERRORS,
    AdapterRejectedError,
    AdapterTimeoutError,
    ConfigurationError,
    DuplicateTierError,
    ErrorCode,
    IllegalTransitionError,
    InvalidBranchVersionError,
    MissingBaseVersionError,
    ReleaseEngineError,
    TagConflictError,
)


class TestErrorCode:
    """Tests for ErrorCode enum."""

    def test_code_ranges(self) -> None:
        """Codes are grouped by concern."""
        assert ErrorCode.INVALID_BRANCH_VERSION.value.startswith("RELENG_1")
        assert ErrorCode.MISSING_BASE_VERSION.value.startswith("RELENG_1")
        assert ErrorCode.ILLEGAL_TRANSITION.value.startswith("RELENG_2")
        assert ErrorCode.TAG_CONFLICT.value.startswith("RELENG_2")
        assert ErrorCode.DUPLICATE_TIER.value.startswith("RELENG_2")
        assert ErrorCode.ADAPTER_TIMEOUT.value.startswith("RELENG_3")
        assert ErrorCode.ADAPTER_REJECTED.value.startswith("RELENG_3")
        assert ErrorCode.CONFIG_INVALID.value.startswith("RELENG_4")


class TestReleaseEngineError:
    """Tests for the base exception."""

    def test_defaults(self) -> None:
        error = ReleaseEngineError(message="boom")
        assert error.error_code is ErrorCode.UNKNOWN
        assert error.exit_code == 1
        assert not error.is_retryable
        assert str(error) == "[RELENG_9999] boom"

    def test_str_includes_context(self) -> None:
        error = ReleaseEngineError(message="boom", context={"branch": "main"})
        assert str(error) == "[RELENG_9999] boom (branch=main)"

    def test_to_dict(self) -> None:
        cause = ValueError("bad")
        error = TagConflictError.for_tag("v1.0.0", "a" * 40, "b" * 40)
        error.cause = cause

        data = error.to_dict()

        assert data["error_type"] == "TagConflict"
        assert data["error_code"] == "RELENG_2002"
        assert data["context"]["tag"] == "v1.0.0"
        assert data["is_retryable"] is False
        assert data["cause"] == "bad"

    def test_can_be_raised_and_caught_as_base(self) -> None:
        with pytest.raises(ReleaseEngineError):
            raise MissingBaseVersionError.for_role("hotfix")


@pytest.mark.parametrize(
    "error,kind,exit_code",
    [
        (InvalidBranchVersionError.malformed("next", "release/next"), "InvalidBranchVersion", 10),
        (MissingBaseVersionError.for_role("hotfix"), "MissingBaseVersion", 11),
        (IllegalTransitionError.rejected("issue_labeled", "no tag"), "IllegalTransition", 12),
        (TagConflictError.for_tag("v1.0.0", "a" * 40, "b" * 40), "TagConflict", 13),
        (DuplicateTierError.for_tier("current", "2.0", "2.1"), "DuplicateTier", 14),
        (AdapterTimeoutError.timeout("push", 30.0), "AdapterTimeout", 15),
        (AdapterRejectedError.rejected("push", "protected"), "AdapterRejected", 16),
        (ConfigurationError.invalid_file("x.yaml", "bad"), "Configuration", 2),
    ],
)
def test_kind_and_exit_code(error, kind, exit_code) -> None:
    assert error.kind == kind
    assert error.exit_code == exit_code


class TestFactories:
    def test_malformed(self) -> None:
        error = InvalidBranchVersionError.malformed("2.0", "release/2.0")
        assert "2.0" in error.message
        assert error.context == {"value": "2.0", "branch": "release/2.0"}

    def test_not_greater(self) -> None:
        error = InvalidBranchVersionError.not_greater("1.2.3", "1.2.3")
        assert error.context["latest"] == "1.2.3"

    def test_rejected_carries_extra_context(self) -> None:
        error = IllegalTransitionError.rejected("issue_labeled", "exists", branch="release/1.3.0")
        assert error.context == {
            "trigger": "issue_labeled",
            "reason": "exists",
            "branch": "release/1.3.0",
        }

    def test_locked(self) -> None:
        assert IllegalTransitionError.locked("release:1.3").context == {"lock": "release:1.3"}

    def test_for_line(self) -> None:
        assert DuplicateTierError.for_line("1.4").context == {"line_id": "1.4"}


class TestRetryability:
    def test_only_timeouts_are_retryable(self) -> None:
        assert AdapterTimeoutError.timeout("fetch", 5.0).is_retryable
        assert not AdapterRejectedError.rejected("fetch", "denied").is_retryable
        assert not TagConflictError.for_tag("v1", "a" * 40, "b" * 40).is_retryable

    def test_timeout_keeps_cause(self) -> None:
        cause = TimeoutError("slow")
        error = AdapterTimeoutError.timeout("fetch", 5.0, cause=cause)
        assert error.cause is cause
        assert error.context["timeout_seconds"] == 5.0


def test_error_groups() -> None:
    assert InvalidBranchVersionError in CALCULATION_ERRORS
    assert MissingBaseVersionError in CALCULATION_ERRORS
    assert set(CONFLICT_ERRORS) == {IllegalTransitionError, TagConflictError, DuplicateTierError}
