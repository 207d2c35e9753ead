"""
Command line interface.

Every command prints exactly one JSON object on stdout (logs go to
stderr) and exits 0 on success or with the error kind's exit code.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, NoReturn

import typer

from release_engine import __version__
from release_engine.adapters.base import IssueTrackerAdapter, VcsAdapter
from release_engine.adapters.git import GitCliAdapter
from release_engine.adapters.github import GitHubCliTracker
from release_engine.changelog import ChangelogDocument
from release_engine.config import Config, set_config
from release_engine.exceptions import (
    ConfigurationError,
    InvalidBranchVersionError,
    ReleaseEngineError,
)
from release_engine.logging import get_logger, setup_logging
from release_engine.models import BranchRole, TagKind
from release_engine.orchestrator import OrchestrationResult, Orchestrator
from release_engine.triggers import (
    ManualPromote,
    on_issue_labeled,
    parse_trigger,
    trigger_from_github_event,
)
from release_engine.version import parse_version

logger = get_logger(__name__)

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="Release and branch orchestration for GitFlow repositories.",
)
version_app = typer.Typer(no_args_is_help=True, help="Version calculation.")
changelog_app = typer.Typer(no_args_is_help=True, help="Changelog rendering.")
tag_app = typer.Typer(no_args_is_help=True, help="Tag minting.")
release_app = typer.Typer(no_args_is_help=True, help="Release branches.")
hotfix_app = typer.Typer(no_args_is_help=True, help="Hotfix branches.")
lines_app = typer.Typer(no_args_is_help=True, help="Release lines.")

app.add_typer(version_app, name="version")
app.add_typer(changelog_app, name="changelog")
app.add_typer(tag_app, name="tag")
app.add_typer(release_app, name="release")
app.add_typer(hotfix_app, name="hotfix")
app.add_typer(lines_app, name="lines")

RepoOption = typer.Option(Path("."), "--repo", help="Repository working copy")
ExecuteOption = typer.Option(
    False, "--execute/--dry-run", help="Apply the planned actions (default: plan only)"
)
RunOption = typer.Option(
    0, "--run", min=0, envvar="GITHUB_RUN_NUMBER", help="CI run sequence number"
)


@dataclass
class CliState:
    config: Config = field(default_factory=Config)


def build_adapters(config: Config, repo: Path) -> tuple[VcsAdapter, IssueTrackerAdapter]:
    """Adapters for a repository working copy."""
    vcs = GitCliAdapter(
        repo,
        remote=config.adapters.remote,
        timeout_seconds=config.adapters.timeout_seconds,
    )
    tracker = GitHubCliTracker(
        repo,
        repository=config.adapters.github_repository,
        timeout_seconds=config.adapters.timeout_seconds,
    )
    return vcs, tracker


def _orchestrator(ctx: typer.Context, repo: Path) -> Orchestrator:
    config = _state(ctx).config
    vcs, tracker = build_adapters(config, repo)
    return Orchestrator(config, vcs, tracker)


def _state(ctx: typer.Context) -> CliState:
    if not isinstance(ctx.obj, CliState):
        ctx.obj = CliState()
    return ctx.obj


def _emit(payload: dict[str, Any]) -> None:
    typer.echo(json.dumps(payload, sort_keys=True, default=str))


def _fail(error: ReleaseEngineError, **extra: Any) -> NoReturn:
    _emit({"ok": False, "error": error.to_dict(), **extra})
    raise typer.Exit(code=error.exit_code)


@contextmanager
def _reporting_errors() -> Iterator[None]:
    try:
        yield
    except typer.Exit:
        raise
    except ReleaseEngineError as e:
        _fail(e)
    except Exception as e:
        logger.exception("unexpected_error", error_type=type(e).__name__)
        _fail(
            ReleaseEngineError(
                message=f"Unexpected error: {e}",
                context={"exception": type(e).__name__},
                cause=e,
            )
        )


def _emit_result(result: OrchestrationResult) -> None:
    payload = result.to_dict()
    if result.report is not None and result.report.error is not None:
        _fail(result.report.error, **payload)
    _emit(payload)


def _parse_version_option(value: str) -> Any:
    try:
        return parse_version(value)
    except ValueError as e:
        raise InvalidBranchVersionError.malformed(value) from e


def _parse_date_option(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise ConfigurationError(
            message=f"--date must be YYYY-MM-DD, got {value}", context={"date": value}
        ) from e


def _show_version(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit(code=0)


@app.callback()
def _main(
    ctx: typer.Context,
    config_path: Path | None = typer.Option(
        None, "--config", help="Configuration file (YAML)", envvar="RELEASE_ENGINE_CONFIG"
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING, ERROR"),
    log_format: str | None = typer.Option(None, "--log-format", help="plain or json"),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_show_version,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    try:
        config = Config.load(str(config_path) if config_path else None)
    except ConfigurationError as e:
        _fail(e)

    set_config(config)
    setup_logging(level=log_level, format=log_format)
    ctx.obj = CliState(config=config)


@version_app.command("next")
def version_next(
    ctx: typer.Context,
    branch: str = typer.Option(..., "--branch", help="Branch to version"),
    role: BranchRole | None = typer.Option(None, "--role", help="Override the branch role"),
    run: int = RunOption,
    repo: Path = RepoOption,
) -> None:
    """Compute the next version for a branch."""
    with _reporting_errors():
        result = _orchestrator(ctx, repo).next_version(branch, role=role, run_sequence=run)
    _emit({"ok": True, "branch": branch, **result.to_dict()})


@changelog_app.command("render")
def changelog_render(
    ctx: typer.Context,
    version: str = typer.Option(..., "--version", help="Version the entry describes"),
    to_ref: str = typer.Option("HEAD", "--to", help="Last commit included"),
    from_tag: str | None = typer.Option(None, "--from", help="Tag after which commits count"),
    release_date: str | None = typer.Option(None, "--date", help="Release date (YYYY-MM-DD)"),
    write: Path | None = typer.Option(None, "--write", help="Upsert the entry into this file"),
    repo: Path = RepoOption,
) -> None:
    """Render a changelog entry from commit history."""
    with _reporting_errors():
        parsed = _parse_version_option(version)
        when = _parse_date_option(release_date) if release_date else None
        entry = _orchestrator(ctx, repo).render_changelog(
            parsed, to_ref, from_tag=from_tag, release_date=when
        )
        replaced = None
        if write is not None:
            document = ChangelogDocument.load(write)
            replaced = document.upsert(entry)
            document.save(write)
    _emit(
        {
            "ok": True,
            "entry": entry.to_dict(),
            "markdown": entry.to_markdown(),
            "written": str(write) if write is not None else None,
            "replaced": replaced,
        }
    )


@tag_app.command("mint")
def tag_mint(
    ctx: typer.Context,
    version: str = typer.Option(..., "--version", help="Version to tag"),
    kind: TagKind = typer.Option(TagKind.RELEASE, "--kind", help="Tag kind"),
    ref: str = typer.Option("HEAD", "--ref", help="Commit, branch or tag to tag"),
    env: str | None = typer.Option(None, "--env", help="Environment (environment tags)"),
    service: str | None = typer.Option(None, "--service", help="Service (support tags)"),
    execute: bool = ExecuteOption,
    repo: Path = RepoOption,
) -> None:
    """Mint (or plan) a tag."""
    with _reporting_errors():
        tag = _orchestrator(ctx, repo).mint_tag(
            _parse_version_option(version),
            kind,
            ref,
            env=env,
            service=service,
            execute=execute,
        )
    _emit({"ok": True, "executed": execute, "tag": tag.to_dict()})


@release_app.command("start")
def release_start(
    ctx: typer.Context,
    bump: str = typer.Option("minor", "--bump", help="major or minor"),
    issue: int | None = typer.Option(None, "--issue", help="Issue requesting the release"),
    run: int = RunOption,
    execute: bool = ExecuteOption,
    repo: Path = RepoOption,
) -> None:
    """Cut a release branch from develop."""
    labels = _state(ctx).config.labels
    if bump not in ("major", "minor"):
        _fail(ConfigurationError(message=f"--bump must be major or minor, got {bump}"))
    label = labels.major if bump == "major" else labels.minor
    trigger = on_issue_labeled([label], issue_number=issue, added=label)
    with _reporting_errors():
        result = _orchestrator(ctx, repo).run(trigger, run_sequence=run, execute=execute)
    _emit_result(result)


@hotfix_app.command("start")
def hotfix_start(
    ctx: typer.Context,
    issue: int | None = typer.Option(None, "--issue", help="Issue reporting the bug"),
    run: int = RunOption,
    execute: bool = ExecuteOption,
    repo: Path = RepoOption,
) -> None:
    """Cut a hotfix branch from main."""
    label = _state(ctx).config.labels.hotfix
    trigger = on_issue_labeled([label], issue_number=issue, added=label)
    with _reporting_errors():
        result = _orchestrator(ctx, repo).run(trigger, run_sequence=run, execute=execute)
    _emit_result(result)


@app.command("promote")
def promote(
    ctx: typer.Context,
    env: str = typer.Argument(..., help="Target environment"),
    source: str | None = typer.Option(None, "--source", help="Branch whose head is promoted"),
    sha: str | None = typer.Option(None, "--sha", help="Commit to promote"),
    version: str | None = typer.Option(None, "--version", help="Version to stamp"),
    execute: bool = ExecuteOption,
    repo: Path = RepoOption,
) -> None:
    """Stamp an environment tag."""
    config = _state(ctx).config
    trigger = ManualPromote(
        env=env, source_branch=source or config.branches.main, sha=sha, version=version
    )
    with _reporting_errors():
        result = _orchestrator(ctx, repo).run(trigger, execute=execute)
    _emit_result(result)


@app.command("handle")
def handle(
    ctx: typer.Context,
    trigger_file: Path = typer.Argument(..., help="Trigger (or event payload) JSON file"),
    event: str | None = typer.Option(
        None, "--event", help="Treat the file as a GitHub event payload of this type"
    ),
    run: int = RunOption,
    execute: bool = ExecuteOption,
    repo: Path = RepoOption,
) -> None:
    """Run the transition for a trigger read from JSON."""
    with _reporting_errors():
        try:
            data = json.loads(trigger_file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError.invalid_file(str(trigger_file), str(e)) from e

        if event is not None:
            trigger = trigger_from_github_event(event, data)
            if trigger is None:
                logger.info("event_ignored", event=event)
                _emit({"ok": True, "ignored": True, "event": event})
                return
        else:
            trigger = parse_trigger(data)

        result = _orchestrator(ctx, repo).run(trigger, run_sequence=run, execute=execute)
    _emit_result(result)


@lines_app.command("expire")
def lines_expire(
    ctx: typer.Context,
    execute: bool = ExecuteOption,
    repo: Path = RepoOption,
) -> None:
    """Retire release lines whose support window has passed."""
    with _reporting_errors():
        result = _orchestrator(ctx, repo).expire_lines(execute=execute)
    _emit_result(result)


@lines_app.command("list")
def lines_list(ctx: typer.Context, repo: Path = RepoOption) -> None:
    """Show registered release lines."""
    with _reporting_errors():
        registry = _orchestrator(ctx, repo).registry
    _emit({"ok": True, **registry.to_dict()})


def main() -> None:
    app()
