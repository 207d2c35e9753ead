"""
Entry point wiring the engine components to adapters.

``Orchestrator.handle_trigger`` plans a trigger (dry run);
``Orchestrator.run`` plans and optionally executes it while the
transition lock is held. Calculation errors are reported back on the
triggering issue; conflicts are expected outcomes and logged at info.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any

import structlog

from release_engine.actions import ActionList
from release_engine.adapters.base import (
    AlwaysPassGate,
    IssueTrackerAdapter,
    QualityGate,
    StaticQualityGate,
    VcsAdapter,
)
from release_engine.adapters.retry import call_with_retry
from release_engine.calculator import (
    VersionCalculator,
    VersionContext,
    VersionResult,
    branch_version_from_name,
)
from release_engine.changelog import ChangelogEntry, ChangelogGenerator
from release_engine.config import Config
from release_engine.exceptions import (
    CALCULATION_ERRORS,
    CONFLICT_ERRORS,
    IllegalTransitionError,
    ReleaseEngineError,
)
from release_engine.executor import ActionExecutor, ExecutionReport
from release_engine.lifecycle import BranchLifecycleManager
from release_engine.locking import FileLockProvider, InMemoryLockProvider, LockProvider
from release_engine.logging import trigger_context
from release_engine.models import BranchRole, Tag, TagKind
from release_engine.release_lines import ReleaseLineRegistry
from release_engine.tags import TagManager
from release_engine.triggers import SupportWindowExpired, Trigger, describe, issue_number_of
from release_engine.version import SemanticVersion

logger = structlog.get_logger(__name__)

REGISTRY_COMMIT_MESSAGE = "chore(release): update release lines"


@dataclass
class OrchestrationResult:
    """Planned actions of a trigger and, when executed, the report."""

    actions: ActionList
    report: ExecutionReport | None = None

    @property
    def ok(self) -> bool:
        return self.report is None or self.report.ok

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "ok": self.ok,
            "executed": self.report is not None,
            "actions": self.actions.to_dict(),
        }
        if self.report is not None:
            data["report"] = self.report.to_dict()
        return data


def build_registry(config: Config, vcs: VcsAdapter) -> ReleaseLineRegistry:
    """
    Registry from the state file committed on the main branch, seeded with
    lines declared in config.
    """
    state_file = config.release_lines.state_file
    main = config.branches.main
    text = vcs.read_file(main, state_file) if state_file else None
    registry = (
        ReleaseLineRegistry.from_yaml(text, source=f"{main}:{state_file}")
        if text
        else ReleaseLineRegistry()
    )
    for line in config.seed_lines():
        if registry.get(line.line_id) is None:
            registry.register(line)
    return registry


def build_gate(config: Config) -> QualityGate:
    if not config.quality_gate.required_stages:
        return AlwaysPassGate()
    return StaticQualityGate(config.quality_gate.results)


def build_locks(config: Config) -> LockProvider:
    if config.lifecycle.lock_dir:
        return FileLockProvider(config.lifecycle.lock_dir)
    return InMemoryLockProvider()


class Orchestrator:
    """Runs triggers and standalone engine operations."""

    def __init__(
        self,
        config: Config,
        vcs: VcsAdapter,
        tracker: IssueTrackerAdapter,
        registry: ReleaseLineRegistry | None = None,
        gate: QualityGate | None = None,
        locks: LockProvider | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config
        self._vcs = vcs
        self._tracker = tracker
        self._registry = registry if registry is not None else build_registry(config, vcs)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._sleep = sleep
        self._classifier = config.commits.classifier()
        self._calculator = VersionCalculator(self._classifier)
        self._changelog = ChangelogGenerator(
            self._classifier, short_sha_length=config.tags.short_sha_length
        )
        self._tags = TagManager(
            vcs,
            prefix=config.tags.prefix,
            short_sha_length=config.tags.short_sha_length,
            clock=self._clock,
        )
        self._manager = BranchLifecycleManager(
            vcs,
            self._registry,
            config=config,
            tags=self._tags,
            classifier=self._classifier,
            gate=gate or build_gate(config),
            locks=locks or build_locks(config),
            clock=self._clock,
        )
        self._executor = ActionExecutor(
            vcs,
            tracker,
            self._tags,
            self._registry,
            policy=config.adapters.retry_policy(),
            sleep=sleep,
        )

    @property
    def registry(self) -> ReleaseLineRegistry:
        return self._registry

    @property
    def tags(self) -> TagManager:
        return self._tags

    def handle_trigger(self, trigger: Trigger, run_sequence: int = 0) -> ActionList:
        """Plan ``trigger`` without side effects."""
        return self.run(trigger, run_sequence=run_sequence, execute=False).actions

    def run(
        self, trigger: Trigger, run_sequence: int = 0, execute: bool = True
    ) -> OrchestrationResult:
        """
        Plan ``trigger`` and, if ``execute``, apply the actions.

        Raises:
            ReleaseEngineError: If planning or saving the release line
                registry fails. Action failures are reported in the result.
        """
        with trigger_context(**describe(trigger)):
            try:
                with self._manager.transition(trigger, run_sequence=run_sequence) as planned:
                    report = self._executor.execute(planned) if execute else None
                    if report is not None:
                        self._save_registry()
            except CALCULATION_ERRORS as e:
                logger.warning("trigger_aborted", **e.to_dict())
                self._surface(trigger, e)
                raise
            except CONFLICT_ERRORS as e:
                logger.info("trigger_conflict", **e.to_dict())
                raise

            return OrchestrationResult(actions=planned, report=report)

    def _surface(self, trigger: Trigger, error: ReleaseEngineError) -> None:
        number = issue_number_of(trigger)
        if number is None:
            return
        body = f"Release engine could not process `{trigger.type}`: {error.message}"
        try:
            self._tracker.comment(number, body)
        except ReleaseEngineError as e:
            logger.warning("issue_comment_failed", issue_number=number, **e.to_dict())

    def _save_registry(self) -> None:
        """Commit the registry to the main branch when it differs from the stored copy."""
        state_file = self._config.release_lines.state_file
        if not state_file:
            return
        main = self._config.branches.main
        text = self._registry.to_yaml()
        stored = self._vcs.read_file(main, state_file)
        if stored == text or (stored is None and not self._registry.lines):
            return

        sha, _ = call_with_retry(
            "save_release_lines",
            lambda: self._vcs.commit_files(main, {state_file: text}, REGISTRY_COMMIT_MESSAGE),
            self._config.adapters.retry_policy(),
            sleep=self._sleep,
        )
        logger.info(
            "release_lines_saved",
            branch=main,
            path=state_file,
            sha=sha,
            count=len(self._registry.lines),
        )

    # -- standalone operations --------------------------------------------------

    def next_version(
        self,
        branch: str,
        role: BranchRole | None = None,
        run_sequence: int = 0,
    ) -> VersionResult:
        """Next version for ``branch`` from the repository's tags and history."""
        role = role or self._config.branches.role_of(branch) or BranchRole.FEATURE
        tags = self._vcs.list_tags()
        line: str | None = None
        if role is BranchRole.SUPPORT:
            for registered in self._registry.lines:
                if registered.branch == branch:
                    line = registered.base_version.line
                    break
        released = self._tags.release_versions(tags)
        candidates = [v for v in released if line is None or v.line == line]
        latest = max(candidates) if candidates else None

        commits = self._vcs.commit_range(released[latest] if latest else None, branch)
        return self._calculator.next_version(
            VersionContext(
                branch_role=role,
                latest_tag=latest,
                branch_name=branch,
                branch_version=branch_version_from_name(branch),
                commits=commits,
                run_sequence=run_sequence,
                date_utc=self._clock(),
            )
        )

    def render_changelog(
        self,
        version: SemanticVersion,
        to_ref: str,
        from_tag: str | None = None,
        release_date: date | None = None,
    ) -> ChangelogEntry:
        """Changelog entry for commits after ``from_tag`` (latest release by default)."""
        if from_tag is None:
            released = self._tags.release_versions()
            earlier = [v for v in released if v < version]
            from_tag = released[max(earlier)] if earlier else None
        commits = self._vcs.commit_range(from_tag, to_ref)
        return self._changelog.render(version, commits, release_date or self._clock().date())

    def mint_tag(
        self,
        version: SemanticVersion,
        kind: TagKind,
        ref: str,
        env: str | None = None,
        service: str | None = None,
        execute: bool = True,
    ) -> Tag:
        """Plan, and if ``execute`` record, a tag at ``ref``."""
        if kind is TagKind.ENVIRONMENT and env not in self._config.tags.environments:
            raise IllegalTransitionError.rejected(
                "tag", f"unknown environment {env}", known=list(self._config.tags.environments)
            )
        sha = self._vcs.resolve(ref)
        service = service or (self._config.tags.service if kind is TagKind.SUPPORT else None)
        if not execute:
            return self._tags.plan(version, kind, sha, env=env, service=service)
        return self._tags.mint(version, kind, sha, env=env, service=service)

    def expire_lines(self, execute: bool = True) -> OrchestrationResult:
        return self.run(SupportWindowExpired(now=self._clock()), execute=execute)
