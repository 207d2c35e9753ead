"""
Semantic version value object.

Versions follow Semantic Versioning 2.0.0 (https://semver.org/) with the
prerelease part modelled as a ``label`` plus an optional trailing ``number``,
so ``2.1.0-rc.3`` has label ``rc`` and number ``3``, and
``2.1.0-dev.20261018.7`` has label ``dev.20261018`` and number ``7``.

Ordering:
- (major, minor, patch) numerically
- a release outranks its own prerelease
- prerelease label lexicographically, then number numerically
- build metadata never affects ordering
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

_IDENTIFIERS = r"[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*"

_VERSION_RE = re.compile(
    rf"""
    ^
    v?
    (?P<major>0|[1-9]\d*)
    \.
    (?P<minor>0|[1-9]\d*)
    \.
    (?P<patch>0|[1-9]\d*)
    (?:-(?P<prerelease>{_IDENTIFIERS}))?
    (?:\+(?P<build>{_IDENTIFIERS}))?
    $
    """,
    re.VERBOSE,
)

_CORE_RE = re.compile(r"^v?(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)$")


@functools.total_ordering
@dataclass(frozen=True)
class Prerelease:
    """
    Prerelease identifier split into label and trailing number.

    Attributes:
        label: Everything before the final numeric identifier (e.g. "rc").
        number: Final numeric identifier, if present.
    """

    label: str
    number: int | None = None

    def __post_init__(self) -> None:
        if not re.fullmatch(_IDENTIFIERS, self.label):
            raise ValueError(f"Invalid prerelease label: {self.label!r}")
        if self.number is not None and self.number < 0:
            raise ValueError("Prerelease number must be non-negative")

    def __str__(self) -> str:
        if self.number is None:
            return self.label
        return f"{self.label}.{self.number}"

    def _key(self) -> tuple[str, int]:
        return (self.label, -1 if self.number is None else self.number)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Prerelease):
            return NotImplemented
        return self._key() < other._key()

    @classmethod
    def parse(cls, text: str) -> Prerelease:
        """Parse ``label[.number]``."""
        head, sep, tail = text.rpartition(".")
        if sep and head and tail.isdigit():
            return cls(label=head, number=int(tail))
        return cls(label=text)


@functools.total_ordering
@dataclass(frozen=True)
class SemanticVersion:
    """
    Immutable semantic version.

    Format: MAJOR.MINOR.PATCH[-PRERELEASE][+BUILD]
    """

    major: int
    minor: int
    patch: int
    prerelease: Prerelease | None = None
    build: str | None = None

    def __post_init__(self) -> None:
        if self.major < 0 or self.minor < 0 or self.patch < 0:
            raise ValueError("Version components must be non-negative integers")
        if self.build is not None and not re.fullmatch(_IDENTIFIERS, self.build):
            raise ValueError(f"Invalid build metadata: {self.build}")

    def __str__(self) -> str:
        version = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease is not None:
            version += f"-{self.prerelease}"
        if self.build:
            version += f"+{self.build}"
        return version

    def sort_key(self) -> tuple[Any, ...]:
        """Precedence key; build metadata is ignored."""
        if self.prerelease is None:
            return (self.major, self.minor, self.patch, 1, "", 0)
        label, number = self.prerelease._key()
        return (self.major, self.minor, self.patch, 0, label, number)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    @property
    def core(self) -> SemanticVersion:
        """The ``X.Y.Z`` part without prerelease or build."""
        return SemanticVersion(self.major, self.minor, self.patch)

    @property
    def line(self) -> str:
        """Version line identifier ``X.Y``."""
        return f"{self.major}.{self.minor}"

    def is_prerelease(self) -> bool:
        """Check if this is a pre-release version."""
        return self.prerelease is not None

    def is_dev(self) -> bool:
        """Check if this is an ephemeral develop build identifier."""
        return self.prerelease is not None and self.prerelease.label.split(".")[0] == "dev"

    def bump_major(self) -> SemanticVersion:
        return SemanticVersion(self.major + 1, 0, 0)

    def bump_minor(self) -> SemanticVersion:
        return SemanticVersion(self.major, self.minor + 1, 0)

    def bump_patch(self) -> SemanticVersion:
        return SemanticVersion(self.major, self.minor, self.patch + 1)

    def with_prerelease(self, label: str, number: int | None = None) -> SemanticVersion:
        """Return the core version with a prerelease attached."""
        return SemanticVersion(
            self.major,
            self.minor,
            self.patch,
            prerelease=Prerelease(label=label, number=number),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "major": self.major,
            "minor": self.minor,
            "patch": self.patch,
            "prerelease": str(self.prerelease) if self.prerelease else None,
            "build": self.build,
            "string": str(self),
        }


ZERO = SemanticVersion(0, 0, 0)


def parse_version(version_string: str) -> SemanticVersion:
    """
    Parse a version string, accepting an optional leading ``v``.

    Raises:
        ValueError: If the string is not a semantic version.
    """
    match = _VERSION_RE.match(version_string.strip())
    if not match:
        raise ValueError(f"Invalid version string: {version_string}")

    prerelease = match.group("prerelease")
    return SemanticVersion(
        major=int(match.group("major")),
        minor=int(match.group("minor")),
        patch=int(match.group("patch")),
        prerelease=Prerelease.parse(prerelease) if prerelease else None,
        build=match.group("build"),
    )


def parse_core_version(text: str) -> SemanticVersion | None:
    """Parse a strict ``X.Y.Z`` (optional ``v``) string, or return None."""
    match = _CORE_RE.match(text.strip())
    if not match:
        return None
    return SemanticVersion(int(match.group(1)), int(match.group(2)), int(match.group(3)))


def try_parse_version(version_string: str) -> SemanticVersion | None:
    """Parse a version string, returning None instead of raising."""
    try:
        return parse_version(version_string)
    except ValueError:
        logger.debug("version_unparseable", value=version_string)
        return None
