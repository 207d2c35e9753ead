"""
Registry of concurrently supported release lines.

Tiers:
- LTS: any number of active lines, admit fixes only by default
- CURRENT: at most one active line
- NEXT: at most one active line

Retirement flips a line's status; retired lines stay in the registry.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any

import structlog
import yaml

from release_engine.exceptions import ConfigurationError, DuplicateTierError, IllegalTransitionError
from release_engine.models import CommitClass
from release_engine.version import SemanticVersion, parse_version

logger = structlog.get_logger(__name__)


class Tier(str, Enum):
    """Support tier of a release line."""

    LTS = "lts"
    CURRENT = "current"
    NEXT = "next"


class LineStatus(str, Enum):
    ACTIVE = "active"
    RETIRED = "retired"


DEFAULT_ADMISSIBLE: dict[Tier, frozenset[CommitClass]] = {
    Tier.LTS: frozenset({CommitClass.FIX}),
    Tier.CURRENT: frozenset({CommitClass.FEATURE, CommitClass.FIX, CommitClass.CHORE}),
    Tier.NEXT: frozenset(
        {CommitClass.BREAKING, CommitClass.FEATURE, CommitClass.FIX, CommitClass.CHORE}
    ),
}

_SINGLE_TIERS = (Tier.CURRENT, Tier.NEXT)


@dataclass(frozen=True)
class ReleaseLine:
    """
    A supported version line.

    Attributes:
        line_id: Unique identifier (e.g. "1.4").
        tier: Support tier.
        base_version: Version the line was cut from.
        support_until: Last day of support, if bounded.
        admissible_classes: Commit classes allowed onto the line; defaults
            to the tier's set. UNCLASSIFIED is only admitted when listed.
        status: ACTIVE or RETIRED.
        branch: Support branch backing the line, if any.
    """

    line_id: str
    tier: Tier
    base_version: SemanticVersion
    support_until: date | None = None
    admissible_classes: frozenset[CommitClass] = field(default=frozenset())
    status: LineStatus = LineStatus.ACTIVE
    branch: str | None = None

    def __post_init__(self) -> None:
        if not self.line_id:
            raise ValueError("line_id must not be empty")
        if not self.admissible_classes:
            object.__setattr__(self, "admissible_classes", DEFAULT_ADMISSIBLE[self.tier])
        else:
            object.__setattr__(self, "admissible_classes", frozenset(self.admissible_classes))

    @property
    def is_active(self) -> bool:
        return self.status is LineStatus.ACTIVE

    def admits(self, commit_class: CommitClass) -> bool:
        return commit_class in self.admissible_classes

    def is_expired(self, now: datetime | date) -> bool:
        if self.support_until is None:
            return False
        today = now.date() if isinstance(now, datetime) else now
        return today > self.support_until

    def to_dict(self) -> dict[str, Any]:
        return {
            "line_id": self.line_id,
            "tier": self.tier.value,
            "base_version": str(self.base_version),
            "support_until": self.support_until.isoformat() if self.support_until else None,
            "admissible_classes": sorted(c.value for c in self.admissible_classes),
            "status": self.status.value,
            "branch": self.branch,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReleaseLine:
        support_until = data.get("support_until")
        if isinstance(support_until, str):
            support_until = date.fromisoformat(support_until)
        return cls(
            line_id=str(data["line_id"]),
            tier=Tier(str(data["tier"]).lower()),
            base_version=parse_version(str(data["base_version"])),
            support_until=support_until,
            admissible_classes=frozenset(
                CommitClass(str(c).lower()) for c in data.get("admissible_classes") or ()
            ),
            status=LineStatus(str(data.get("status", LineStatus.ACTIVE.value)).lower()),
            branch=data.get("branch"),
        )


class ReleaseLineRegistry:
    """Tracks release lines and their tier invariants."""

    def __init__(self, lines: Iterable[ReleaseLine] = ()) -> None:
        self._lines: dict[str, ReleaseLine] = {}
        for line in lines:
            self.register(line)

    def check_register(self, line: ReleaseLine) -> bool:
        """
        Validate a registration without applying it.

        Returns:
            False if an identical line is already registered.

        Raises:
            DuplicateTierError: If the line id is taken by different data or
                the tier is already held by another active line.
        """
        existing = self._lines.get(line.line_id)
        if existing is not None:
            if existing == line:
                return False
            raise DuplicateTierError.for_line(line.line_id)

        if line.is_active and line.tier in _SINGLE_TIERS:
            holder = self._active_holder(line.tier)
            if holder is not None:
                raise DuplicateTierError.for_tier(line.tier.value, holder.line_id, line.line_id)
        return True

    def register(self, line: ReleaseLine) -> bool:
        """
        Add a line.

        Returns:
            True if the line was added, False if it was already registered.
        """
        if not self.check_register(line):
            logger.info("release_line_already_registered", line_id=line.line_id)
            return False
        self._lines[line.line_id] = line
        logger.info(
            "release_line_registered",
            line_id=line.line_id,
            tier=line.tier.value,
            base_version=str(line.base_version),
        )
        return True

    def _active_holder(self, tier: Tier) -> ReleaseLine | None:
        for line in self._lines.values():
            if line.is_active and line.tier is tier:
                return line
        return None

    def get(self, line_id: str) -> ReleaseLine | None:
        return self._lines.get(line_id)

    def require(self, line_id: str) -> ReleaseLine:
        line = self._lines.get(line_id)
        if line is None:
            raise IllegalTransitionError.rejected(
                "release_line", "unknown release line", line_id=line_id
            )
        return line

    @property
    def lines(self) -> list[ReleaseLine]:
        return list(self._lines.values())

    def active_lines(self) -> list[ReleaseLine]:
        return [line for line in self._lines.values() if line.is_active]

    def current(self) -> ReleaseLine | None:
        return self._active_holder(Tier.CURRENT)

    def next_line(self) -> ReleaseLine | None:
        return self._active_holder(Tier.NEXT)

    def lts_lines(self) -> list[ReleaseLine]:
        return [line for line in self.active_lines() if line.tier is Tier.LTS]

    def admissible_change(self, line_id: str, commit_class: CommitClass) -> bool:
        """Whether a change of ``commit_class`` may land on the line."""
        line = self._lines.get(line_id)
        if line is None or not line.is_active:
            logger.debug("release_line_not_active", line_id=line_id)
            return False
        return line.admits(commit_class)

    def lines_admitting(self, commit_class: CommitClass) -> list[ReleaseLine]:
        """Active lines backed by a branch that admit ``commit_class``."""
        return [
            line
            for line in self.active_lines()
            if line.branch and line.admits(commit_class)
        ]

    def expired(self, now: datetime | date) -> list[ReleaseLine]:
        """Active lines whose support window has passed."""
        return [line for line in self.active_lines() if line.is_expired(now)]

    def retire(self, line_id: str) -> ReleaseLine:
        """Flag a line RETIRED; retiring a retired line is a no-op."""
        line = self.require(line_id)
        if not line.is_active:
            return line
        retired = replace(line, status=LineStatus.RETIRED)
        self._lines[line_id] = retired
        logger.info("release_line_retired", line_id=line_id, tier=line.tier.value)
        return retired

    def expire(self, now: datetime | date) -> list[ReleaseLine]:
        """Retire every expired line and return them."""
        return [self.retire(line.line_id) for line in self.expired(now)]

    def change_tier(self, line_id: str, tier: Tier) -> ReleaseLine:
        """
        Move an active line to another tier (e.g. CURRENT to LTS).

        Raises:
            DuplicateTierError: If the target tier is already held.
        """
        line = self.require(line_id)
        if line.tier is tier:
            return line
        if line.is_active and tier in _SINGLE_TIERS:
            holder = self._active_holder(tier)
            if holder is not None:
                raise DuplicateTierError.for_tier(tier.value, holder.line_id, line_id)
        changed = replace(line, tier=tier, admissible_classes=DEFAULT_ADMISSIBLE[tier])
        self._lines[line_id] = changed
        logger.info("release_line_tier_changed", line_id=line_id, tier=tier.value)
        return changed

    def to_dict(self) -> dict[str, Any]:
        return {"lines": [line.to_dict() for line in self._lines.values()]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReleaseLineRegistry:
        return cls(ReleaseLine.from_dict(item) for item in data.get("lines") or ())

    @classmethod
    def from_yaml(cls, text: str, source: str = "<yaml>") -> ReleaseLineRegistry:
        """
        Parse a registry state document; empty text is an empty registry.

        Raises:
            ConfigurationError: If the document is not a valid registry.
        """
        try:
            data = yaml.safe_load(text) or {}
            if not isinstance(data, dict):
                raise ValueError("top level must be a mapping")
            return cls.from_dict(data)
        except (yaml.YAMLError, KeyError, TypeError, ValueError) as e:
            raise ConfigurationError.invalid_file(source, str(e)) from e

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=False)
