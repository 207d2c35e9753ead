"""
Interfaces of the external collaborators the engine drives.

The engine never talks to git or a code host directly; it goes through
these adapters so that runs can be replayed against an in-memory double.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from release_engine.models import Commit


class VcsAdapter(ABC):
    """Version control operations consumed by the engine."""

    @abstractmethod
    def list_tags(self) -> dict[str, str]:
        """Map of tag name to the commit sha it points at."""

    @abstractmethod
    def create_tag(self, name: str, sha: str) -> None:
        """
        Create a lightweight tag.

        Raises:
            TagConflictError: If the name already exists at another commit.
        """

    @abstractmethod
    def create_branch(self, name: str, from_ref: str) -> None:
        """Create ``name`` pointing at ``from_ref``."""

    @abstractmethod
    def delete_branch(self, name: str) -> None:
        """Delete a branch without touching its history."""

    @abstractmethod
    def merge_branch(self, src: str, dst: str) -> str:
        """Merge ``src`` into ``dst``; returns the resulting head sha."""

    @abstractmethod
    def commit_range(self, from_tag: str | None, to_ref: str) -> list[Commit]:
        """Commits reachable from ``to_ref`` but not ``from_tag``, oldest first."""

    @abstractmethod
    def resolve(self, ref: str) -> str:
        """Commit sha of a branch, tag, or sha."""

    @abstractmethod
    def branch_exists(self, name: str) -> bool:
        """Whether a branch exists."""

    @abstractmethod
    def read_file(self, ref: str, path: str) -> str | None:
        """File content at ``ref``, or None when absent."""

    @abstractmethod
    def commit_files(self, branch: str, files: Mapping[str, str], message: str) -> str:
        """Write files on ``branch`` and commit them; returns the new sha."""

    @abstractmethod
    def cherry_pick(self, sha: str, onto: str) -> str:
        """Apply ``sha`` on top of ``onto``; returns the new sha."""

    def branch_head(self, name: str) -> str | None:
        """Head sha of a branch, or None when it does not exist."""
        if not self.branch_exists(name):
            return None
        return self.resolve(name)


class IssueTrackerAdapter(ABC):
    """Issue and pull request operations."""

    @abstractmethod
    def open_pull_request(self, base: str, head: str, title: str, body: str) -> str:
        """Open a pull request; returns its URL or identifier."""

    @abstractmethod
    def find_open_pull_request(self, base: str, head: str) -> str | None:
        """URL or identifier of an open pull request for ``head`` into ``base``."""

    @abstractmethod
    def comment(self, issue_number: int, body: str) -> None:
        """Post a comment on an issue or pull request."""


class QualityGate(ABC):
    """
    Opaque pass/fail signal from CI stages.

    The engine never inspects scanner or test internals; it only asks
    whether each required stage passed.
    """

    @abstractmethod
    def run_result(self, stage: str) -> bool:
        """Whether ``stage`` passed."""

    def passes(self, stages: Iterable[str]) -> bool:
        return all(self.run_result(stage) for stage in stages)


class AlwaysPassGate(QualityGate):
    """Gate used when no stages are required."""

    def run_result(self, stage: str) -> bool:
        return True


class StaticQualityGate(QualityGate):
    """Gate backed by a fixed map of stage results; unknown stages fail."""

    def __init__(self, results: Mapping[str, bool]) -> None:
        self._results = dict(results)

    def run_result(self, stage: str) -> bool:
        return self._results.get(stage, False)
