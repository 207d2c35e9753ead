"""
GitFlow branch lifecycle state machine.

Transitions:
- IssueLabeled(release:major|release:minor) -> release/<X.Y.Z> from develop,
  version bump, changelog update, pull request into main
- IssueLabeled(bug:hotfix) -> hotfix/<V> from main, version bump, pull request
- PullRequestMerged(release -> main) -> quality gate, release tag at the merge
  sha, back-merge into develop, release branch deleted
- PullRequestMerged(hotfix -> main) -> same, plus cherry-picks onto support
  lines admitting fixes
- PullRequestMerged(* -> support/<id>) -> support tag on the line
- PullRequestMerged(feature -> develop) -> feature branch deleted
- ManualPromote(env) -> environment tag
- SupportWindowExpired -> expired lines flagged RETIRED
- RetireConfirmed(line) -> support branch of a retired line deleted
- SupportRequested(line) -> support branch from a release tag, LTS line

Planning only reads repository state. Every check runs before the first
action is emitted, so a rejected transition leaves branches, tags and
release lines untouched.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog

from release_engine import actions as act
from release_engine.actions import Action, ActionList
from release_engine.adapters.base import AlwaysPassGate, QualityGate, VcsAdapter
from release_engine.calculator import VersionCalculator, VersionContext, branch_version_from_name
from release_engine.changelog import ChangelogGenerator
from release_engine.commits import CommitClassifier, is_merge_commit
from release_engine.config import Config
from release_engine.exceptions import (
    IllegalTransitionError,
    InvalidBranchVersionError,
    MissingBaseVersionError,
)
from release_engine.locking import InMemoryLockProvider, LockProvider, lock_key
from release_engine.models import Branch, BranchRole, CommitClass, TagKind
from release_engine.release_lines import ReleaseLine, ReleaseLineRegistry, Tier
from release_engine.tags import TagManager
from release_engine.triggers import (
    IssueLabeled,
    ManualPromote,
    PullRequestMerged,
    RetireConfirmed,
    SupportRequested,
    SupportWindowExpired,
    Trigger,
)
from release_engine.version import ZERO, SemanticVersion, parse_core_version, parse_version

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class _Prepared:
    """Lock key of a transition and the deferred planning step."""

    key: str | None
    plan: Callable[[], list[Action]]


def _noop() -> list[Action]:
    return []


class BranchLifecycleManager:
    """Plans branch transitions for triggers."""

    def __init__(
        self,
        vcs: VcsAdapter,
        registry: ReleaseLineRegistry,
        config: Config | None = None,
        tags: TagManager | None = None,
        classifier: CommitClassifier | None = None,
        gate: QualityGate | None = None,
        locks: LockProvider | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config or Config()
        self._vcs = vcs
        self._registry = registry
        self._classifier = classifier or self._config.commits.classifier()
        self._calculator = VersionCalculator(self._classifier)
        self._changelog = ChangelogGenerator(
            self._classifier, short_sha_length=self._config.tags.short_sha_length
        )
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._tags = tags or TagManager(
            vcs,
            prefix=self._config.tags.prefix,
            short_sha_length=self._config.tags.short_sha_length,
            clock=self._clock,
        )
        self._gate = gate or AlwaysPassGate()
        self._locks = locks or InMemoryLockProvider()

    @property
    def tags(self) -> TagManager:
        return self._tags

    def handle(self, trigger: Trigger, run_sequence: int = 0) -> ActionList:
        """Plan the transition for ``trigger`` without executing it."""
        with self.transition(trigger, run_sequence=run_sequence) as planned:
            return planned

    @contextmanager
    def transition(self, trigger: Trigger, run_sequence: int = 0) -> Iterator[ActionList]:
        """
        Plan ``trigger`` and hold its advisory lock while the block runs.

        Raises:
            IllegalTransitionError: If the transition is not permitted or
                its lock is held by another run.
            InvalidBranchVersionError, MissingBaseVersionError: If no
                version can be derived.
            TagConflictError, DuplicateTierError: On conflicting state.
        """
        prepared = self._prepare(trigger, run_sequence)
        if prepared.key is None:
            planned = ActionList(trigger=trigger.type, actions=prepared.plan())
            logger.info("trigger_ignored", trigger=trigger.type)
            yield planned
            return

        with self._locks.hold(prepared.key):
            planned = ActionList(trigger=trigger.type, actions=prepared.plan())
            logger.info(
                "transition_planned",
                trigger=trigger.type,
                lock=prepared.key,
                actions=[a.describe() for a in planned.actions],
            )
            yield planned

    def _prepare(self, trigger: Trigger, run_sequence: int) -> _Prepared:
        if isinstance(trigger, IssueLabeled):
            return self._prepare_labels(trigger, run_sequence)
        if isinstance(trigger, PullRequestMerged):
            return self._prepare_merge(trigger)
        if isinstance(trigger, ManualPromote):
            return self._prepare_promote(trigger)
        if isinstance(trigger, SupportWindowExpired):
            return self._prepare_expiry(trigger)
        if isinstance(trigger, RetireConfirmed):
            return self._prepare_retire(trigger)
        if isinstance(trigger, SupportRequested):
            return self._prepare_support(trigger)
        raise IllegalTransitionError.rejected(
            str(getattr(trigger, "type", trigger)), "unknown trigger"
        )

    # -- issue labels -------------------------------------------------------

    def _prepare_labels(self, trigger: IssueLabeled, run_sequence: int) -> _Prepared:
        labels_config = self._config.labels
        if trigger.added is not None and trigger.added not in labels_config.all():
            return _Prepared(None, _noop)

        labels = set(trigger.labels)
        wants_hotfix = labels_config.hotfix in labels
        if labels_config.major in labels:
            bump: str | None = "major"
        elif labels_config.minor in labels:
            bump = "minor"
        else:
            bump = None

        if wants_hotfix and bump is not None:
            raise IllegalTransitionError.rejected(
                trigger.type,
                "release and hotfix labels are mutually exclusive",
                labels=sorted(labels),
            )
        if wants_hotfix:
            return self._prepare_hotfix_start(trigger, run_sequence)
        if bump is not None:
            return self._prepare_release_start(trigger, bump, run_sequence)
        return _Prepared(None, _noop)

    def _prepare_release_start(
        self, trigger: IssueLabeled, bump: str, run_sequence: int
    ) -> _Prepared:
        branches = self._config.branches
        tags = self._vcs.list_tags()
        released = self._tags.release_versions(tags)
        latest = max(released) if released else None
        base = latest or ZERO
        target = base.bump_major() if bump == "major" else base.bump_minor()
        branch = branches.name_for(BranchRole.RELEASE, str(target))

        def plan() -> list[Action]:
            tag_name = self._tags.tag_name(target, TagKind.RELEASE)
            if tag_name in tags:
                raise IllegalTransitionError.rejected(
                    trigger.type, f"version {target} is already tagged", tag=tag_name
                )
            self._require_present(trigger.type, branches.develop)
            self._require_resumable(trigger.type, branch, branches.develop)

            result = self._calculator.next_version(
                VersionContext(
                    branch_role=BranchRole.RELEASE,
                    latest_tag=latest,
                    branch_name=branch,
                    branch_version=branch_version_from_name(branch),
                    run_sequence=run_sequence,
                    date_utc=self._clock(),
                )
            )
            commits = self._vcs.commit_range(
                released[latest] if latest else None, branches.develop
            )
            entry = self._changelog.render(target, commits, self._clock().date())
            body = entry.to_markdown()
            if trigger.issue_number is not None:
                body += f"\n\nCloses #{trigger.issue_number}\n"

            return [
                act.start_branch(
                    self._branch(branch, BranchRole.RELEASE, branches.develop, target)
                ),
                act.bump_version(branch, self._config.lifecycle.version_file, result.version),
                act.update_changelog(branch, self._config.changelog.path, entry),
                act.open_pull_request(branches.main, branch, f"Release {target}", body),
            ]

        return _Prepared(lock_key(BranchRole.RELEASE.value, target.line), plan)

    def _prepare_hotfix_start(self, trigger: IssueLabeled, run_sequence: int) -> _Prepared:
        branches = self._config.branches
        tags = self._vcs.list_tags()
        latest = self._tags.latest_release(tags)
        if latest is None:
            raise IllegalTransitionError.rejected(
                trigger.type, f"hotfix requires a release tag on {branches.main}"
            )
        target = latest.bump_patch()
        branch = branches.name_for(BranchRole.HOTFIX, str(target))

        def plan() -> list[Action]:
            tag_name = self._tags.tag_name(target, TagKind.HOTFIX)
            if tag_name in tags:
                raise IllegalTransitionError.rejected(
                    trigger.type, f"version {target} is already tagged", tag=tag_name
                )
            self._require_resumable(trigger.type, branch, branches.main)

            result = self._calculator.next_version(
                VersionContext(
                    branch_role=BranchRole.HOTFIX,
                    latest_tag=latest,
                    branch_name=branch,
                    branch_version=branch_version_from_name(branch),
                    run_sequence=run_sequence,
                    date_utc=self._clock(),
                )
            )
            body = f"Hotfix {result.version}"
            if trigger.issue_number is not None:
                body += f"\n\nFixes #{trigger.issue_number}\n"

            return [
                act.start_branch(self._branch(branch, BranchRole.HOTFIX, branches.main, target)),
                act.bump_version(branch, self._config.lifecycle.version_file, result.version),
                act.open_pull_request(branches.main, branch, f"Hotfix {result.version}", body),
            ]

        return _Prepared(lock_key(BranchRole.HOTFIX.value, target.line), plan)

    # -- merges -------------------------------------------------------------

    def _prepare_merge(self, trigger: PullRequestMerged) -> _Prepared:
        branches = self._config.branches
        head_role = branches.role_of(trigger.head)
        base_role = branches.role_of(trigger.base)

        if base_role is BranchRole.MAIN and head_role is BranchRole.RELEASE:
            return self._prepare_release_merge(trigger)
        if base_role is BranchRole.MAIN and head_role is BranchRole.HOTFIX:
            return self._prepare_hotfix_merge(trigger)
        if base_role is BranchRole.SUPPORT:
            return self._prepare_support_merge(trigger)
        if base_role is BranchRole.DEVELOP and head_role is BranchRole.FEATURE:
            if not self._config.lifecycle.delete_merged_features:
                return _Prepared(None, _noop)

            def plan() -> list[Action]:
                if not self._vcs.branch_exists(trigger.head):
                    return []
                return [act.delete_branch(trigger.head)]

            return _Prepared(lock_key(BranchRole.FEATURE.value, trigger.head), plan)

        return _Prepared(None, _noop)

    def _check_gate(self, trigger: PullRequestMerged) -> None:
        stages = self._config.quality_gate.required_stages
        if not self._gate.passes(stages):
            failed = [stage for stage in stages if not self._gate.run_result(stage)]
            raise IllegalTransitionError.rejected(
                trigger.type, "quality gate failed", failed_stages=failed
            )

    def _finish_branch(self, trigger: PullRequestMerged) -> list[Action]:
        """Back-merge main into develop and drop the merged branch."""
        branches = self._config.branches
        planned = [act.merge_branch(branches.main, branches.develop)]
        if self._vcs.branch_exists(trigger.head):
            planned.append(act.delete_branch(trigger.head))
        return planned

    def _prepare_release_merge(self, trigger: PullRequestMerged) -> _Prepared:
        raw = branch_version_from_name(trigger.head)
        version = parse_core_version(raw) if raw else None
        if version is None:
            raise InvalidBranchVersionError.malformed(raw or trigger.head, trigger.head)

        def plan() -> list[Action]:
            self._check_gate(trigger)
            tag = self._tags.plan(version, TagKind.RELEASE, trigger.merge_sha)
            return [act.create_tag(tag), *self._finish_branch(trigger)]

        return _Prepared(lock_key(BranchRole.RELEASE.value, version.line), plan)

    def _prepare_hotfix_merge(self, trigger: PullRequestMerged) -> _Prepared:
        tags = self._vcs.list_tags()
        # A replay must not count its own tag as the previous release.
        prior = {name: sha for name, sha in tags.items() if sha != trigger.merge_sha}
        result = self._calculator.next_version(
            VersionContext(
                branch_role=BranchRole.HOTFIX,
                latest_tag=self._tags.latest_release(prior),
                branch_name=trigger.head,
                branch_version=branch_version_from_name(trigger.head),
                date_utc=self._clock(),
            )
        )
        version = result.version

        def plan() -> list[Action]:
            self._check_gate(trigger)
            tag = self._tags.plan(version, TagKind.HOTFIX, trigger.merge_sha, tags=tags)
            planned = [act.create_tag(tag), *self._finish_branch(trigger)]
            if self._config.lifecycle.cherry_pick_hotfixes:
                for line in self._registry.lines_admitting(CommitClass.FIX):
                    if line.base_version.line == version.line:
                        continue
                    if line.branch and self._vcs.branch_exists(line.branch):
                        planned.append(
                            act.cherry_pick(trigger.merge_sha, line.branch, line.line_id)
                        )
            return planned

        return _Prepared(lock_key(BranchRole.HOTFIX.value, version.line), plan)

    def _prepare_support_merge(self, trigger: PullRequestMerged) -> _Prepared:
        line = self._line_for_branch(trigger.base)
        if line is None or not line.is_active:
            raise IllegalTransitionError.rejected(
                trigger.type, "no active release line for branch", branch=trigger.base
            )

        def plan() -> list[Action]:
            service = self._config.tags.service
            tags = self._vcs.list_tags()
            prior = {name: sha for name, sha in tags.items() if sha != trigger.merge_sha}
            latest_version = self._latest_on_line(prior, line, service)
            latest_name = self._tags.tag_name(latest_version, TagKind.SUPPORT, service=service)
            if latest_name not in tags:
                latest_name = self._tags.tag_name(latest_version, TagKind.RELEASE)

            commits = [
                c
                for c in self._vcs.commit_range(
                    latest_name if latest_name in tags else None, trigger.merge_sha
                )
                if not is_merge_commit(c.message)
            ]
            refused = sorted(
                {
                    commit_class.value
                    for commit_class in (self._classifier.classify(c.message) for c in commits)
                    if commit_class is not CommitClass.CHORE
                    and not self._registry.admissible_change(line.line_id, commit_class)
                }
            )
            if refused:
                raise IllegalTransitionError.rejected(
                    trigger.type,
                    f"changes not admissible on line {line.line_id}",
                    line_id=line.line_id,
                    classes=refused,
                )

            result = self._calculator.next_version(
                VersionContext(
                    branch_role=BranchRole.SUPPORT,
                    latest_tag=latest_version,
                    branch_name=trigger.base,
                    commits=commits,
                    date_utc=self._clock(),
                )
            )
            tag = self._tags.plan(
                result.version, TagKind.SUPPORT, trigger.merge_sha, service=service, tags=tags
            )
            return [act.create_tag(tag)]

        return _Prepared(lock_key(BranchRole.SUPPORT.value, line.line_id), plan)

    def _latest_on_line(
        self, tags: Mapping[str, str], line: ReleaseLine, service: str | None
    ) -> SemanticVersion:
        candidates = [line.base_version.core]
        for prefix_service in {None, service}:
            found = self._tags.latest_release(
                tags, line=line.base_version.line, service=prefix_service
            )
            if found is not None:
                candidates.append(found)
        return max(candidates)

    def _line_for_branch(self, branch: str) -> ReleaseLine | None:
        for line in self._registry.lines:
            if line.branch == branch:
                return line
        return None

    # -- promotions and support lines ----------------------------------------

    def _prepare_promote(self, trigger: ManualPromote) -> _Prepared:
        if trigger.env not in self._config.tags.environments:
            raise IllegalTransitionError.rejected(
                trigger.type,
                f"unknown environment {trigger.env}",
                known=list(self._config.tags.environments),
            )

        def plan() -> list[Action]:
            if trigger.version is not None:
                try:
                    version = parse_version(trigger.version)
                except ValueError as e:
                    raise InvalidBranchVersionError.malformed(trigger.version) from e
            else:
                latest = self._tags.latest_release()
                if latest is None:
                    raise MissingBaseVersionError.for_role("promotion")
                version = latest

            if trigger.sha is not None:
                sha = self._vcs.resolve(trigger.sha)
            else:
                self._require_present(trigger.type, trigger.source_branch)
                sha = self._vcs.resolve(trigger.source_branch)

            tag = self._tags.plan(version, TagKind.ENVIRONMENT, sha, env=trigger.env)
            return [act.create_tag(tag)]

        return _Prepared(lock_key("promote", trigger.env), plan)

    def _prepare_expiry(self, trigger: SupportWindowExpired) -> _Prepared:
        def plan() -> list[Action]:
            return [act.retire_line(line.line_id) for line in self._registry.expired(trigger.now)]

        return _Prepared(lock_key(BranchRole.SUPPORT.value, "expiry"), plan)

    def _prepare_retire(self, trigger: RetireConfirmed) -> _Prepared:
        def plan() -> list[Action]:
            line = self._registry.require(trigger.line_id)
            if line.is_active:
                raise IllegalTransitionError.rejected(
                    trigger.type, "line must be retired first", line_id=line.line_id
                )
            if line.branch and self._vcs.branch_exists(line.branch):
                return [act.delete_branch(line.branch)]
            return []

        return _Prepared(lock_key(BranchRole.SUPPORT.value, trigger.line_id), plan)

    def _prepare_support(self, trigger: SupportRequested) -> _Prepared:
        base = parse_core_version(trigger.base_version)
        if base is None:
            raise InvalidBranchVersionError.malformed(trigger.base_version)

        def plan() -> list[Action]:
            base_tag = self._tags.tag_name(base, TagKind.RELEASE)
            if base_tag not in self._vcs.list_tags():
                raise MissingBaseVersionError.for_role(BranchRole.SUPPORT.value)

            branch = self._config.branches.name_for(BranchRole.SUPPORT, trigger.line_id)
            line = ReleaseLine(
                line_id=trigger.line_id,
                tier=Tier.LTS,
                base_version=base,
                support_until=trigger.support_until,
                branch=branch,
            )
            is_new = self._registry.check_register(line)
            planned: list[Action] = []
            if not self._vcs.branch_exists(branch):
                planned.append(
                    act.start_branch(
                        self._branch(
                            branch,
                            BranchRole.SUPPORT,
                            base_tag,
                            base,
                            support_until=trigger.support_until,
                        )
                    )
                )
            elif is_new:
                self._require_resumable(trigger.type, branch, base_tag)
            if is_new:
                planned.append(act.register_line(line))
            return planned

        return _Prepared(lock_key(BranchRole.SUPPORT.value, trigger.line_id), plan)

    def _branch(
        self,
        name: str,
        role: BranchRole,
        base_ref: str,
        version: SemanticVersion,
        **metadata: object,
    ) -> Branch:
        return Branch(
            name=name,
            role=role,
            base_ref=base_ref,
            created_at=self._clock(),
            metadata={"version_line": version.line, **metadata},
        )

    # -- checks ---------------------------------------------------------------

    def _require_resumable(self, trigger_type: str, branch: str, base_ref: str) -> None:
        """
        Allow an existing ``branch`` only when it carries nothing beyond
        ``base_ref`` but version bump and changelog commits, as left by an
        interrupted start of the same transition.
        """
        head = self._vcs.branch_head(branch)
        if head is None:
            return
        foreign = [
            c
            for c in self._vcs.commit_range(base_ref, branch)
            if not act.is_start_commit(c.message)
        ]
        if foreign:
            raise IllegalTransitionError.rejected(
                trigger_type,
                f"branch {branch} already exists",
                branch=branch,
                foreign_commits=[c.short_sha() for c in foreign],
            )
        logger.info("transition_resumed", branch=branch, head=head)

    def _require_present(self, trigger_type: str, branch: str) -> None:
        if not self._vcs.branch_exists(branch):
            raise IllegalTransitionError.rejected(
                trigger_type, f"branch {branch} does not exist", branch=branch
            )
