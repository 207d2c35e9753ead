"""
Planned side effects of a transition.

An ActionList is ordered, serializable and replayable: executing it twice
leaves the repository in the same state as executing it once.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from release_engine.changelog import ChangelogEntry
from release_engine.models import Branch, Tag
from release_engine.release_lines import ReleaseLine
from release_engine.version import SemanticVersion

BUMP_MESSAGE = "chore(release): bump version to {version}"
CHANGELOG_MESSAGE = "docs(changelog): update for {version}"

_START_COMMIT_PREFIXES = tuple(m.split("{")[0] for m in (BUMP_MESSAGE, CHANGELOG_MESSAGE))


class ActionKind(str, Enum):
    CREATE_BRANCH = "create_branch"
    DELETE_BRANCH = "delete_branch"
    MERGE_BRANCH = "merge_branch"
    CREATE_TAG = "create_tag"
    BUMP_VERSION = "bump_version"
    UPDATE_CHANGELOG = "update_changelog"
    OPEN_PULL_REQUEST = "open_pull_request"
    CHERRY_PICK = "cherry_pick"
    REGISTER_LINE = "register_line"
    RETIRE_LINE = "retire_line"


class Action(BaseModel):
    """A single planned side effect."""

    kind: ActionKind
    params: dict[str, Any] = Field(default_factory=dict)

    def describe(self) -> str:
        target = self.params.get("name") or self.params.get("branch") or self.params.get("line_id")
        return f"{self.kind.value}:{target}" if target else self.kind.value


class ActionList(BaseModel):
    """Ordered actions planned for one trigger."""

    trigger: str
    actions: list[Action] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.actions)

    @property
    def is_empty(self) -> bool:
        return not self.actions

    def kinds(self) -> list[ActionKind]:
        return [a.kind for a in self.actions]

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ActionList:
        return cls.model_validate(data)


def is_start_commit(message: str) -> bool:
    """Whether ``message`` is one written by the version bump or changelog actions."""
    return message.startswith(_START_COMMIT_PREFIXES)


def start_branch(branch: Branch) -> Action:
    """Create action carrying the planned branch record."""
    return Action(
        kind=ActionKind.CREATE_BRANCH,
        params={**branch.to_dict(), "from_ref": branch.base_ref},
    )


def delete_branch(name: str) -> Action:
    return Action(kind=ActionKind.DELETE_BRANCH, params={"name": name})


def merge_branch(src: str, dst: str) -> Action:
    return Action(kind=ActionKind.MERGE_BRANCH, params={"src": src, "dst": dst, "branch": dst})


def create_tag(tag: Tag) -> Action:
    return Action(kind=ActionKind.CREATE_TAG, params=tag.to_dict())


def bump_version(branch: str, path: str, version: SemanticVersion) -> Action:
    return Action(
        kind=ActionKind.BUMP_VERSION,
        params={
            "branch": branch,
            "path": path,
            "version": str(version),
            "message": BUMP_MESSAGE.format(version=version),
        },
    )


def update_changelog(branch: str, path: str, entry: ChangelogEntry) -> Action:
    return Action(
        kind=ActionKind.UPDATE_CHANGELOG,
        params={
            "branch": branch,
            "path": path,
            "entry": entry.to_dict(),
            "message": CHANGELOG_MESSAGE.format(version=entry.version),
        },
    )


def open_pull_request(base: str, head: str, title: str, body: str) -> Action:
    return Action(
        kind=ActionKind.OPEN_PULL_REQUEST,
        params={"base": base, "head": head, "title": title, "body": body, "branch": head},
    )


def cherry_pick(sha: str, onto: str, line_id: str) -> Action:
    return Action(
        kind=ActionKind.CHERRY_PICK,
        params={"sha": sha, "onto": onto, "line_id": line_id, "branch": onto},
    )


def register_line(line: ReleaseLine) -> Action:
    return Action(
        kind=ActionKind.REGISTER_LINE,
        params={"line": line.to_dict(), "line_id": line.line_id},
    )


def retire_line(line_id: str) -> Action:
    return Action(kind=ActionKind.RETIRE_LINE, params={"line_id": line_id})
