"""
Changelog rendering and maintenance.

Entries group commits into ordered buckets (Breaking Changes, Features,
Fixes, Chores); unclassified commits are listed under Fixes. The cumulative
document keeps the most recent version first, below any
``## [Unreleased]`` section, and upserting a version that
is already present replaces its section instead of duplicating it.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

import structlog

from release_engine.commits import CommitClassifier
from release_engine.models import Commit, CommitClass
from release_engine.version import SemanticVersion, parse_version

logger = structlog.get_logger(__name__)

SECTION_ORDER: tuple[CommitClass, ...] = (
    CommitClass.BREAKING,
    CommitClass.FEATURE,
    CommitClass.FIX,
    CommitClass.CHORE,
)

SECTION_TITLES: dict[CommitClass, str] = {
    CommitClass.BREAKING: "Breaking Changes",
    CommitClass.FEATURE: "Features",
    CommitClass.FIX: "Fixes",
    CommitClass.CHORE: "Chores",
}

DEFAULT_PREAMBLE = """# Changelog

All notable changes to this project will be documented in this file.

The format is based on [Keep a Changelog](https://keepachangelog.com/en/1.1.0/),
and this project adheres to [Semantic Versioning](https://semver.org/spec/v2.0.0.html).
"""

_RELEASE_HEADER_RE = re.compile(r"^## \[(?P<version>[^\]]+)\]")
UNRELEASED = "Unreleased"


@dataclass
class ChangelogEntry:
    """
    Changelog section for a single version.

    Attributes:
        version: Version the section describes.
        date: Release date.
        sections: Ordered buckets of formatted lines.
    """

    version: SemanticVersion
    date: date
    sections: dict[CommitClass, list[str]] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not any(self.sections.values())

    def to_markdown(self) -> str:
        """Render the section; empty buckets are omitted."""
        lines = [f"## [{self.version}] - {self.date.isoformat()}", ""]
        for commit_class in SECTION_ORDER:
            items = self.sections.get(commit_class)
            if not items:
                continue
            lines.append(f"### {SECTION_TITLES[commit_class]}")
            lines.append("")
            lines.extend(items)
            lines.append("")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": str(self.version),
            "date": self.date.isoformat(),
            "sections": {
                commit_class.value: list(self.sections[commit_class])
                for commit_class in SECTION_ORDER
                if self.sections.get(commit_class)
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChangelogEntry:
        return cls(
            version=parse_version(data["version"]),
            date=date.fromisoformat(data["date"]),
            sections={
                CommitClass(name): list(items) for name, items in data.get("sections", {}).items()
            },
        )


class ChangelogGenerator:
    """Renders changelog entries from commits."""

    def __init__(
        self,
        classifier: CommitClassifier | None = None,
        short_sha_length: int = 7,
    ) -> None:
        self._classifier = classifier or CommitClassifier()
        self._short_sha_length = short_sha_length

    def format_commit(self, commit: Commit) -> str:
        return f"- {commit.subject} ({commit.short_sha(self._short_sha_length)})"

    def render(
        self,
        version: SemanticVersion,
        commits: Iterable[Commit],
        release_date: date | None = None,
    ) -> ChangelogEntry:
        """Group commits into an entry for ``version``."""
        sections: dict[CommitClass, list[str]] = {c: [] for c in SECTION_ORDER}
        count = 0
        for commit in commits:
            commit_class = self._classifier.classify(commit.message)
            if commit_class is CommitClass.UNCLASSIFIED:
                commit_class = CommitClass.FIX
            sections[commit_class].append(self.format_commit(commit))
            count += 1

        entry = ChangelogEntry(
            version=version,
            date=release_date or datetime.now(timezone.utc).date(),
            sections={c: items for c, items in sections.items() if items},
        )
        logger.info("changelog_entry_rendered", version=str(version), commit_count=count)
        return entry


@dataclass
class _Section:
    version: str
    text: str


class ChangelogDocument:
    """
    Cumulative changelog, most recent version first.

    Existing sections are kept verbatim; only the section being upserted is
    re-rendered.
    """

    def __init__(self, preamble: str = DEFAULT_PREAMBLE, sections: list[_Section] | None = None):
        self.preamble = preamble.strip("\n")
        self._sections: list[_Section] = sections or []

    @classmethod
    def parse(cls, content: str) -> ChangelogDocument:
        """Split markdown into a preamble and version sections."""
        preamble_lines: list[str] = []
        sections: list[_Section] = []
        current: tuple[str, list[str]] | None = None

        for line in content.splitlines():
            match = _RELEASE_HEADER_RE.match(line)
            if match:
                if current is not None:
                    sections.append(_Section(current[0], _join(current[1])))
                current = (match.group("version"), [line])
            elif current is None:
                preamble_lines.append(line)
            else:
                current[1].append(line)

        if current is not None:
            sections.append(_Section(current[0], _join(current[1])))

        preamble = _join(preamble_lines) if content.strip() else DEFAULT_PREAMBLE
        return cls(preamble=preamble, sections=sections)

    @classmethod
    def load(cls, path: Path) -> ChangelogDocument:
        if not path.exists():
            return cls()
        return cls.parse(path.read_text(encoding="utf-8"))

    @property
    def versions(self) -> list[str]:
        """Released versions in document order; the Unreleased section is not one."""
        return [s.version for s in self._sections if not _is_unreleased(s)]

    def section(self, version: SemanticVersion | str) -> str | None:
        key = str(version)
        for s in self._sections:
            if s.version == key:
                return s.text
        return None

    def upsert(self, entry: ChangelogEntry) -> bool:
        """
        Insert ``entry`` below any Unreleased section, or replace its existing
        section.

        Returns:
            True if a section for the version already existed.
        """
        key = str(entry.version)
        rendered = _join(entry.to_markdown().splitlines())
        for index, existing in enumerate(self._sections):
            if existing.version == key:
                self._sections[index] = _Section(key, rendered)
                logger.info("changelog_section_replaced", version=key)
                return True

        top = next(
            (i for i, s in enumerate(self._sections) if not _is_unreleased(s)),
            len(self._sections),
        )
        self._sections.insert(top, _Section(key, rendered))
        logger.info("changelog_section_prepended", version=key)
        return False

    def to_markdown(self) -> str:
        parts = [self.preamble] + [s.text for s in self._sections]
        return "\n\n".join(p for p in parts if p) + "\n"

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_markdown(), encoding="utf-8")
        logger.info("changelog_saved", path=str(path), sections=len(self._sections))


def _join(lines: list[str]) -> str:
    return "\n".join(lines).strip("\n")


def _is_unreleased(section: _Section) -> bool:
    return section.version.strip().lower() == UNRELEASED.lower()
