"""
Core domain models shared by the engine components.

Value objects are frozen dataclasses; enums are string-valued so they
serialize directly into action lists and CLI output.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from release_engine.version import SemanticVersion


class CommitClass(str, Enum):
    """Category of a commit derived from its message."""

    BREAKING = "breaking"
    FEATURE = "feature"
    FIX = "fix"
    CHORE = "chore"
    UNCLASSIFIED = "unclassified"

    @property
    def bump_weight(self) -> int:
        """Severity for version bumps; unclassified weighs like a fix."""
        return _BUMP_WEIGHTS[self]


_BUMP_WEIGHTS: dict[CommitClass, int] = {
    CommitClass.BREAKING: 3,
    CommitClass.FEATURE: 2,
    CommitClass.FIX: 1,
    CommitClass.UNCLASSIFIED: 1,
    CommitClass.CHORE: 0,
}


class BranchRole(str, Enum):
    """Role of a branch in the GitFlow model."""

    MAIN = "main"
    DEVELOP = "develop"
    FEATURE = "feature"
    RELEASE = "release"
    HOTFIX = "hotfix"
    SUPPORT = "support"


class VersionKind(str, Enum):
    """Kind of version produced by the calculator."""

    MAJOR = "major"
    MINOR = "minor"
    PATCH = "patch"
    DEV = "dev"
    RELEASE_CANDIDATE = "release_candidate"
    HOTFIX = "hotfix"
    FEATURE_SNAPSHOT = "feature_snapshot"


class TagKind(str, Enum):
    """Kind of tag minted by the tag manager."""

    RELEASE = "release"
    PRERELEASE = "prerelease"
    ENVIRONMENT = "environment"
    HOTFIX = "hotfix"
    SUPPORT = "support"


@dataclass(frozen=True)
class Commit:
    """
    A commit read from the version control system.

    Attributes:
        sha: Full commit hash.
        message: Full commit message including body.
        timestamp: Commit time in UTC.
    """

    sha: str
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def short_sha(self, length: int = 7) -> str:
        return self.sha[:length]

    @property
    def subject(self) -> str:
        """First line of the message."""
        lines = self.message.strip().splitlines()
        return lines[0].strip() if lines else ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "sha": self.sha,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class Branch:
    """
    A branch managed by the lifecycle manager.

    Attributes:
        name: Full branch name (e.g. "release/2.0.0").
        role: GitFlow role.
        base_ref: Ref the branch was created from.
        created_at: Creation time.
        metadata: Role specific data; support branches carry
            ``version_line`` and ``support_until``.
    """

    name: str
    role: BranchRole
    base_ref: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "role": self.role.value,
            "base_ref": self.base_ref,
            "created_at": self.created_at.isoformat(),
            "metadata": {
                k: v.isoformat() if isinstance(v, (date, datetime)) else v
                for k, v in self.metadata.items()
            },
        }


@dataclass(frozen=True)
class Tag:
    """
    A minted tag. Names are write-once per commit.

    Attributes:
        name: Tag name.
        version: Version the tag identifies.
        kind: Tag kind.
        created_from_sha: Commit the tag points at.
    """

    name: str
    version: SemanticVersion
    kind: TagKind
    created_from_sha: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": str(self.version),
            "kind": self.kind.value,
            "created_from_sha": self.created_from_sha,
        }
