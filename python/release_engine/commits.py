"""
Conventional commit classification.

Rules, first match wins:
1. ``BREAKING CHANGE`` anywhere in the message, or ``!`` before the header
   colon (``feat!:``, ``fix(api)!:``) -> BREAKING
2. feature types -> FEATURE
3. fix types -> FIX
4. chore types -> CHORE
5. anything else -> UNCLASSIFIED

Classification is pure and total: unrecognised formats degrade to
UNCLASSIFIED rather than raising.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from release_engine.models import Commit, CommitClass

DEFAULT_FEATURE_TYPES = ("feat", "feature")
DEFAULT_FIX_TYPES = ("fix", "bug", "patch")
DEFAULT_CHORE_TYPES = ("chore", "docs", "style")
DEFAULT_BREAKING_TOKEN = "BREAKING CHANGE"

_HEADER_RE = re.compile(r"^(?P<type>[A-Za-z][\w-]*)(?:\([^)]*\))?(?P<bang>!)?:")
_MERGE_RE = re.compile(r"^Merge (branch|pull request|remote-tracking branch|tag) ")

@dataclass(frozen=True)
class ClassifiedCommit:
    """A commit paired with its class."""

    commit: Commit
    commit_class: CommitClass


class CommitClassifier:
    """
    Classifies commit messages into CommitClass values.

    Type lists are configurable; matching of the header type is
    case-insensitive, the breaking token is case-sensitive.
    """

    def __init__(
        self,
        feature_types: Iterable[str] = DEFAULT_FEATURE_TYPES,
        fix_types: Iterable[str] = DEFAULT_FIX_TYPES,
        chore_types: Iterable[str] = DEFAULT_CHORE_TYPES,
        breaking_token: str = DEFAULT_BREAKING_TOKEN,
    ) -> None:
        self._feature_types = frozenset(t.lower() for t in feature_types)
        self._fix_types = frozenset(t.lower() for t in fix_types)
        self._chore_types = frozenset(t.lower() for t in chore_types)
        self._breaking_token = breaking_token

    def classify(self, message: str) -> CommitClass:
        """Classify a single commit message."""
        if not isinstance(message, str):
            return CommitClass.UNCLASSIFIED

        if self._breaking_token and self._breaking_token in message:
            return CommitClass.BREAKING

        match = _HEADER_RE.match(message.lstrip())
        if match is None:
            return CommitClass.UNCLASSIFIED

        if match.group("bang"):
            return CommitClass.BREAKING

        commit_type = match.group("type").lower()
        if commit_type in self._feature_types:
            return CommitClass.FEATURE
        if commit_type in self._fix_types:
            return CommitClass.FIX
        if commit_type in self._chore_types:
            return CommitClass.CHORE
        return CommitClass.UNCLASSIFIED

    def classify_commits(self, commits: Iterable[Commit]) -> list[ClassifiedCommit]:
        """Classify commits, preserving order."""
        return [ClassifiedCommit(c, self.classify(c.message)) for c in commits]


_default_classifier = CommitClassifier()


def classify(message: str) -> CommitClass:
    """Classify a message with the default rules."""
    return _default_classifier.classify(message)


def max_class(classes: Iterable[CommitClass]) -> CommitClass | None:
    """
    Most severe bump-relevant class present.

    UNCLASSIFIED counts as FIX so that unknown commits never under-bump;
    CHORE never counts. Returns None when nothing qualifies.
    """
    best = max(classes, key=lambda c: c.bump_weight, default=None)
    if best is None or best.bump_weight == 0:
        return None
    return CommitClass.FIX if best is CommitClass.UNCLASSIFIED else best


def is_merge_commit(message: str) -> bool:
    """Whether a message is a generated merge commit subject."""
    return _MERGE_RE.match(message.lstrip()) is not None
