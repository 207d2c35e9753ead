"""
Replays an ActionList against the adapters.

Each action checks the current state first and is skipped when its effect
is already present, so replaying a list is idempotent. Retryable adapter
errors are retried under the configured policy; the first failure stops
the run and is recorded in the report.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

import structlog

from release_engine.actions import Action, ActionKind, ActionList
from release_engine.adapters.base import IssueTrackerAdapter, VcsAdapter
from release_engine.adapters.retry import RetryPolicy, call_with_retry
from release_engine.changelog import ChangelogDocument, ChangelogEntry
from release_engine.exceptions import CONFLICT_ERRORS, ReleaseEngineError
from release_engine.models import Tag, TagKind
from release_engine.release_lines import ReleaseLine, ReleaseLineRegistry
from release_engine.tags import TagManager
from release_engine.version import parse_version

logger = structlog.get_logger(__name__)


class ActionStatus(str, Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"
    NOT_RUN = "not_run"


@dataclass
class ActionOutcome:
    """Result of one action."""

    action: Action
    status: ActionStatus
    attempts: int = 0
    detail: dict[str, Any] = field(default_factory=dict)
    error: ReleaseEngineError | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "kind": self.action.kind.value,
            "status": self.status.value,
            "attempts": self.attempts,
        }
        if self.detail:
            data["detail"] = self.detail
        if self.error is not None:
            data["error"] = self.error.to_dict()
        return data


@dataclass
class ExecutionReport:
    """Per-action outcomes of one execution."""

    trigger: str
    outcomes: list[ActionOutcome] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error(self) -> ReleaseEngineError | None:
        for outcome in self.outcomes:
            if outcome.status is ActionStatus.FAILED:
                return outcome.error
        return None

    def count(self, status: ActionStatus) -> int:
        return sum(1 for o in self.outcomes if o.status is status)

    def to_dict(self) -> dict[str, Any]:
        return {
            "trigger": self.trigger,
            "ok": self.ok,
            "applied": self.count(ActionStatus.APPLIED),
            "skipped": self.count(ActionStatus.SKIPPED),
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


class _Skipped(Exception):
    """Internal signal: the action's effect is already present."""

    def __init__(self, **detail: Any) -> None:
        super().__init__("already satisfied")
        self.detail = detail


class ActionExecutor:
    """Executes planned actions through the adapters."""

    def __init__(
        self,
        vcs: VcsAdapter,
        tracker: IssueTrackerAdapter,
        tags: TagManager,
        registry: ReleaseLineRegistry,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._vcs = vcs
        self._tracker = tracker
        self._tags = tags
        self._registry = registry
        self._policy = policy or RetryPolicy()
        self._sleep = sleep
        self._handlers: dict[ActionKind, Callable[[dict[str, Any]], dict[str, Any]]] = {
            ActionKind.CREATE_BRANCH: self._create_branch,
            ActionKind.DELETE_BRANCH: self._delete_branch,
            ActionKind.MERGE_BRANCH: self._merge_branch,
            ActionKind.CREATE_TAG: self._create_tag,
            ActionKind.BUMP_VERSION: self._bump_version,
            ActionKind.UPDATE_CHANGELOG: self._update_changelog,
            ActionKind.OPEN_PULL_REQUEST: self._open_pull_request,
            ActionKind.CHERRY_PICK: self._cherry_pick,
            ActionKind.REGISTER_LINE: self._register_line,
            ActionKind.RETIRE_LINE: self._retire_line,
        }

    def execute(self, planned: ActionList) -> ExecutionReport:
        """Run every action in order, stopping at the first failure."""
        report = ExecutionReport(trigger=planned.trigger)
        failed = False

        for action in planned.actions:
            if failed:
                report.outcomes.append(ActionOutcome(action, ActionStatus.NOT_RUN))
                continue
            outcome = self._run(action)
            report.outcomes.append(outcome)
            failed = outcome.status is ActionStatus.FAILED

        logger.info(
            "actions_executed",
            trigger=planned.trigger,
            ok=report.ok,
            applied=report.count(ActionStatus.APPLIED),
            skipped=report.count(ActionStatus.SKIPPED),
        )
        return report

    def _run(self, action: Action) -> ActionOutcome:
        handler = self._handlers[action.kind]
        attempts = 0

        def attempt() -> dict[str, Any]:
            nonlocal attempts
            attempts += 1
            return handler(action.params)

        try:
            detail, _ = call_with_retry(
                action.kind.value, attempt, self._policy, sleep=self._sleep
            )
        except _Skipped as skipped:
            logger.info("action_already_satisfied", action=action.describe(), **skipped.detail)
            return ActionOutcome(action, ActionStatus.SKIPPED, attempts, skipped.detail)
        except CONFLICT_ERRORS as e:
            logger.info("action_conflict", action=action.describe(), **e.to_dict())
            return ActionOutcome(action, ActionStatus.FAILED, attempts, error=e)
        except ReleaseEngineError as e:
            logger.error(
                "action_failed", action=action.describe(), attempts=attempts, **e.to_dict()
            )
            return ActionOutcome(action, ActionStatus.FAILED, attempts, error=e)

        logger.info("action_applied", action=action.describe(), attempts=attempts)
        return ActionOutcome(action, ActionStatus.APPLIED, attempts, detail)

    # -- handlers -------------------------------------------------------------

    def _create_branch(self, params: dict[str, Any]) -> dict[str, Any]:
        if self._vcs.branch_exists(params["name"]):
            raise _Skipped(branch=params["name"])
        self._vcs.create_branch(params["name"], params["from_ref"])
        return {"branch": params["name"]}

    def _delete_branch(self, params: dict[str, Any]) -> dict[str, Any]:
        if not self._vcs.branch_exists(params["name"]):
            raise _Skipped(branch=params["name"])
        self._vcs.delete_branch(params["name"])
        return {"branch": params["name"]}

    def _merge_branch(self, params: dict[str, Any]) -> dict[str, Any]:
        sha = self._vcs.merge_branch(params["src"], params["dst"])
        return {"sha": sha}

    def _create_tag(self, params: dict[str, Any]) -> dict[str, Any]:
        tag = Tag(
            name=params["name"],
            version=parse_version(params["version"]),
            kind=TagKind(params["kind"]),
            created_from_sha=params["created_from_sha"],
        )
        if self._vcs.list_tags().get(tag.name) == tag.created_from_sha:
            raise _Skipped(tag=tag.name, sha=tag.created_from_sha)
        self._tags.apply(tag)
        return {"tag": tag.name, "sha": tag.created_from_sha}

    def _bump_version(self, params: dict[str, Any]) -> dict[str, Any]:
        branch, path, version = params["branch"], params["path"], params["version"]
        current = self._vcs.read_file(branch, path)
        if current is not None and current.strip() == version:
            raise _Skipped(path=path, version=version)
        sha = self._vcs.commit_files(branch, {path: f"{version}\n"}, params["message"])
        return {"path": path, "version": version, "sha": sha}

    def _update_changelog(self, params: dict[str, Any]) -> dict[str, Any]:
        branch, path = params["branch"], params["path"]
        current = self._vcs.read_file(branch, path) or ""
        document = ChangelogDocument.parse(current)
        entry = ChangelogEntry.from_dict(params["entry"])
        document.upsert(entry)
        rendered = document.to_markdown()
        if rendered == current:
            raise _Skipped(path=path, version=str(entry.version))
        sha = self._vcs.commit_files(branch, {path: rendered}, params["message"])
        return {"path": path, "version": str(entry.version), "sha": sha}

    def _open_pull_request(self, params: dict[str, Any]) -> dict[str, Any]:
        existing = self._tracker.find_open_pull_request(params["base"], params["head"])
        if existing:
            raise _Skipped(url=existing)
        url = self._tracker.open_pull_request(
            params["base"], params["head"], params["title"], params["body"]
        )
        return {"url": url}

    def _cherry_pick(self, params: dict[str, Any]) -> dict[str, Any]:
        marker = f"(cherry picked from commit {params['sha']})"
        for commit in self._vcs.commit_range(None, params["onto"]):
            if marker in commit.message:
                raise _Skipped(onto=params["onto"], sha=commit.sha)
        sha = self._vcs.cherry_pick(params["sha"], params["onto"])
        return {"onto": params["onto"], "sha": sha}

    def _register_line(self, params: dict[str, Any]) -> dict[str, Any]:
        line = ReleaseLine.from_dict(params["line"])
        existing = self._registry.get(line.line_id)
        # A later retirement in the same list does not make the registration stale.
        if existing is not None and replace(existing, status=line.status) == line:
            raise _Skipped(line_id=line.line_id, status=existing.status.value)
        if not self._registry.register(line):
            raise _Skipped(line_id=line.line_id)
        return {"line_id": line.line_id}

    def _retire_line(self, params: dict[str, Any]) -> dict[str, Any]:
        line = self._registry.require(params["line_id"])
        if not line.is_active:
            raise _Skipped(line_id=line.line_id)
        self._registry.retire(line.line_id)
        return {"line_id": line.line_id}
