"""
Next-version calculation.

Dispatches on the branch role:
- MAIN: bump from the most severe commit class (major/minor/patch)
- DEVELOP: ``M.(m+1).0-dev.<YYYYMMDD>.<run>``, never tagged
- RELEASE: ``X.Y.Z-rc.<run>`` from the branch-encoded version
- HOTFIX: branch-encoded version, else patch bump of the latest tag
- FEATURE: ``M.m.p-<sanitized branch>.<run>``
- SUPPORT: patch bump of the line's latest tag

For MAIN and HOTFIX the result is always strictly greater than the latest
tag.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from release_engine.commits import CommitClassifier, max_class
from release_engine.exceptions import InvalidBranchVersionError, MissingBaseVersionError
from release_engine.models import BranchRole, Commit, CommitClass, VersionKind
from release_engine.version import ZERO, SemanticVersion, parse_core_version

logger = structlog.get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9.-]")


@dataclass(frozen=True)
class VersionContext:
    """
    Explicit inputs for a version calculation.

    Attributes:
        branch_role: Role of the branch being versioned.
        latest_tag: Latest release version on the relevant line, if any.
        branch_name: Full branch name (needed for FEATURE snapshots).
        branch_version: Raw version string encoded in the branch name.
        commits: Commits since the latest tag, oldest first.
        run_sequence: CI run counter used in prerelease identifiers.
        date_utc: Calculation date, used by DEVELOP builds.
    """

    branch_role: BranchRole
    latest_tag: SemanticVersion | None = None
    branch_name: str | None = None
    branch_version: str | None = None
    commits: Sequence[Commit] = ()
    run_sequence: int = 0
    date_utc: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        if self.run_sequence < 0:
            raise ValueError("run_sequence must be non-negative")


@dataclass(frozen=True)
class VersionResult:
    """Computed version and its kind."""

    version: SemanticVersion
    kind: VersionKind
    max_class: CommitClass | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": str(self.version),
            "kind": self.kind.value,
            "max_class": self.max_class.value if self.max_class else None,
        }


def branch_version_from_name(branch_name: str) -> str | None:
    """Segment after the last ``/`` of a branch name, e.g. ``release/2.0.0``."""
    if "/" not in branch_name:
        return None
    segment = branch_name.rsplit("/", 1)[1].strip()
    return segment or None


def sanitize_branch_name(branch_name: str) -> str:
    """
    Make a branch name usable as a prerelease identifier.

    Characters outside ``[A-Za-z0-9.-]`` become ``-``; empty dot-separated
    identifiers are dropped.
    """
    replaced = _UNSAFE_CHARS.sub("-", branch_name)
    parts = [p for p in replaced.split(".") if p]
    return ".".join(parts) or "snapshot"


class VersionCalculator:
    """Computes the next version for a branch context."""

    def __init__(self, classifier: CommitClassifier | None = None) -> None:
        self._classifier = classifier or CommitClassifier()

    def next_version(self, context: VersionContext) -> VersionResult:
        """
        Compute the next version.

        Raises:
            InvalidBranchVersionError: If a branch-encoded version is malformed.
            MissingBaseVersionError: If a required base version is absent.
        """
        role = context.branch_role
        if role is BranchRole.MAIN:
            result = self._for_main(context)
        elif role is BranchRole.DEVELOP:
            result = self._for_develop(context)
        elif role is BranchRole.RELEASE:
            result = self._for_release(context)
        elif role is BranchRole.HOTFIX:
            result = self._for_hotfix(context)
        elif role is BranchRole.FEATURE:
            result = self._for_feature(context)
        elif role is BranchRole.SUPPORT:
            result = self._for_support(context)
        else:
            raise ValueError(f"Unknown branch role: {role}")

        logger.info(
            "next_version_computed",
            role=role.value,
            latest_tag=str(context.latest_tag) if context.latest_tag else None,
            version=str(result.version),
            kind=result.kind.value,
            commit_count=len(context.commits),
        )
        return result

    def _severity(self, context: VersionContext) -> CommitClass | None:
        return max_class(self._classifier.classify(c.message) for c in context.commits)

    def _for_main(self, context: VersionContext) -> VersionResult:
        base = (context.latest_tag or ZERO).core
        severity = self._severity(context)
        if severity is CommitClass.BREAKING:
            return VersionResult(base.bump_major(), VersionKind.MAJOR, severity)
        if severity is CommitClass.FEATURE:
            return VersionResult(base.bump_minor(), VersionKind.MINOR, severity)
        return VersionResult(base.bump_patch(), VersionKind.PATCH, severity)

    def _for_develop(self, context: VersionContext) -> VersionResult:
        base = (context.latest_tag or ZERO).core.bump_minor()
        stamp = context.date_utc.astimezone(timezone.utc).strftime("%Y%m%d")
        version = base.with_prerelease(f"dev.{stamp}", context.run_sequence)
        return VersionResult(version, VersionKind.DEV, self._severity(context))

    def _for_release(self, context: VersionContext) -> VersionResult:
        if context.branch_version is None:
            raise MissingBaseVersionError.for_role(BranchRole.RELEASE.value)
        target = parse_core_version(context.branch_version)
        if target is None:
            raise InvalidBranchVersionError.malformed(context.branch_version, context.branch_name)
        version = target.with_prerelease("rc", context.run_sequence)
        return VersionResult(version, VersionKind.RELEASE_CANDIDATE, self._severity(context))

    def _for_hotfix(self, context: VersionContext) -> VersionResult:
        target = None
        if context.branch_version is not None:
            target = parse_core_version(context.branch_version)
            if target is None:
                logger.warning(
                    "hotfix_branch_version_ignored",
                    branch=context.branch_name,
                    value=context.branch_version,
                )

        if target is None:
            if context.latest_tag is None:
                raise MissingBaseVersionError.for_role(BranchRole.HOTFIX.value)
            target = context.latest_tag.core.bump_patch()
        elif context.latest_tag is not None and not target > context.latest_tag:
            raise InvalidBranchVersionError.not_greater(str(target), str(context.latest_tag))

        return VersionResult(target, VersionKind.HOTFIX, self._severity(context))

    def _for_feature(self, context: VersionContext) -> VersionResult:
        if not context.branch_name:
            raise InvalidBranchVersionError(
                message="Feature snapshots need a branch name",
                context={"role": BranchRole.FEATURE.value},
            )
        base = (context.latest_tag or ZERO).core
        label = sanitize_branch_name(context.branch_name)
        version = base.with_prerelease(label, context.run_sequence)
        return VersionResult(version, VersionKind.FEATURE_SNAPSHOT, self._severity(context))

    def _for_support(self, context: VersionContext) -> VersionResult:
        if context.latest_tag is None:
            raise MissingBaseVersionError.for_role(BranchRole.SUPPORT.value)
        return VersionResult(
            context.latest_tag.core.bump_patch(), VersionKind.PATCH, self._severity(context)
        )
