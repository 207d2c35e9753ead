"""
External events that drive branch transitions.

Triggers are pydantic models discriminated on ``type`` so that they can be
read from JSON files (``release-engine handle trigger.json``) or built from
GitHub webhook payloads.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from release_engine.exceptions import ConfigurationError


class IssueLabeled(BaseModel):
    """Labels applied to an issue."""

    type: Literal["issue_labeled"] = "issue_labeled"
    labels: list[str] = Field(default_factory=list, description="All labels on the issue")
    added: str | None = Field(default=None, description="Label that was just applied")
    issue_number: int | None = Field(default=None)


class PullRequestMerged(BaseModel):
    """A pull request merged ``head`` into ``base``."""

    type: Literal["pull_request_merged"] = "pull_request_merged"
    base: str
    head: str
    merge_sha: str
    number: int | None = None


class ManualPromote(BaseModel):
    """Operator request to stamp an environment tag."""

    type: Literal["manual_promote"] = "manual_promote"
    env: str
    source_branch: str = "main"
    sha: str | None = Field(default=None, description="Commit to tag; head of source by default")
    version: str | None = Field(default=None, description="Version to stamp; latest release by default")


class SupportWindowExpired(BaseModel):
    """Periodic check of support windows."""

    type: Literal["support_window_expired"] = "support_window_expired"
    now: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class RetireConfirmed(BaseModel):
    """Operator confirmation that a retired line's branch may go."""

    type: Literal["retire_confirmed"] = "retire_confirmed"
    line_id: str


class SupportRequested(BaseModel):
    """Request to cut a long-term support line from a released version."""

    type: Literal["support_requested"] = "support_requested"
    line_id: str
    base_version: str
    support_until: date | None = None


Trigger = Annotated[
    Union[
        IssueLabeled,
        PullRequestMerged,
        ManualPromote,
        SupportWindowExpired,
        RetireConfirmed,
        SupportRequested,
    ],
    Field(discriminator="type"),
]

_trigger_adapter: TypeAdapter[Any] = TypeAdapter(Trigger)


def parse_trigger(data: dict[str, Any]) -> Trigger:
    """
    Build a trigger from its JSON form.

    Raises:
        ConfigurationError: If the data does not describe a known trigger.
    """
    try:
        return _trigger_adapter.validate_python(data)
    except ValidationError as e:
        raise ConfigurationError(
            message=f"Invalid trigger: {e.error_count()} validation error(s)",
            context={"errors": [err["msg"] for err in e.errors()]},
            cause=e,
        ) from e


def trigger_to_dict(trigger: Trigger) -> dict[str, Any]:
    return trigger.model_dump(mode="json")


def on_issue_labeled(
    labels: list[str], issue_number: int | None = None, added: str | None = None
) -> IssueLabeled:
    return IssueLabeled(labels=list(labels), issue_number=issue_number, added=added)


def on_pull_request_merged(
    base: str, head: str, merge_sha: str, number: int | None = None
) -> PullRequestMerged:
    return PullRequestMerged(base=base, head=head, merge_sha=merge_sha, number=number)


def trigger_from_github_event(event_name: str, payload: dict[str, Any]) -> Trigger | None:
    """
    Translate a GitHub Actions event into a trigger.

    Handled events:
    - ``issues`` with action ``labeled``
    - ``pull_request`` with action ``closed`` and ``merged: true``
    - ``workflow_dispatch`` with an ``env`` input
    - ``schedule``

    Returns:
        The trigger, or None when the event carries nothing to act on.
    """
    action = payload.get("action")

    if event_name == "issues" and action == "labeled":
        issue = payload.get("issue") or {}
        labels = [label.get("name", "") for label in issue.get("labels") or []]
        added = (payload.get("label") or {}).get("name")
        if added and added not in labels:
            labels.append(added)
        return on_issue_labeled(labels, issue_number=issue.get("number"), added=added)

    if event_name == "pull_request" and action == "closed":
        pr = payload.get("pull_request") or {}
        if not pr.get("merged"):
            return None
        return on_pull_request_merged(
            base=(pr.get("base") or {}).get("ref", ""),
            head=(pr.get("head") or {}).get("ref", ""),
            merge_sha=pr.get("merge_commit_sha") or "",
            number=pr.get("number"),
        )

    if event_name == "workflow_dispatch":
        inputs = payload.get("inputs") or {}
        if not inputs.get("env"):
            return None
        return ManualPromote(
            env=inputs["env"],
            source_branch=inputs.get("source_branch") or "main",
            sha=inputs.get("sha") or None,
            version=inputs.get("version") or None,
        )

    if event_name == "schedule":
        return SupportWindowExpired()

    return None


def describe(trigger: Trigger) -> dict[str, Any]:
    """Log fields identifying a trigger."""
    fields: dict[str, Any] = {"trigger": trigger.type}
    if isinstance(trigger, IssueLabeled):
        fields["issue_number"] = trigger.issue_number
    elif isinstance(trigger, PullRequestMerged):
        fields["head"] = trigger.head
        fields["base"] = trigger.base
    elif isinstance(trigger, ManualPromote):
        fields["env"] = trigger.env
    elif isinstance(trigger, (RetireConfirmed, SupportRequested)):
        fields["line_id"] = trigger.line_id
    return fields


def issue_number_of(trigger: Trigger) -> int | None:
    """Issue or pull request a trigger refers to, if any."""
    if isinstance(trigger, IssueLabeled):
        return trigger.issue_number
    if isinstance(trigger, PullRequestMerged):
        return trigger.number
    return None
