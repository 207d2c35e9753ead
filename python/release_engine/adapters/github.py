"""
Issue tracker adapter backed by the GitHub CLI (``gh``).

Authentication is whatever ``gh`` is configured with (``GH_TOKEN`` in CI).
"""

from __future__ import annotations

import json
from pathlib import Path

import structlog

from release_engine.adapters.base import IssueTrackerAdapter
from release_engine.adapters.process import run_command
from release_engine.exceptions import AdapterRejectedError

logger = structlog.get_logger(__name__)


class GitHubCliTracker(IssueTrackerAdapter):
    """Pull requests and issue comments through ``gh``."""

    def __init__(
        self,
        repo: str | Path = ".",
        repository: str | None = None,
        timeout_seconds: float = 30.0,
        gh_binary: str = "gh",
    ) -> None:
        self._cwd = Path(repo)
        self._repository = repository
        self._timeout = timeout_seconds
        self._gh_binary = gh_binary
        self._logger = logger.bind(repository=repository or str(self._cwd))

    def _gh(self, *args: str, operation: str) -> str:
        cmd = [self._gh_binary, *args]
        if self._repository:
            cmd += ["--repo", self._repository]
        return run_command(cmd, cwd=self._cwd, operation=operation, timeout=self._timeout)

    def open_pull_request(self, base: str, head: str, title: str, body: str) -> str:
        output = self._gh(
            "pr",
            "create",
            "--base",
            base,
            "--head",
            head,
            "--title",
            title,
            "--body",
            body,
            operation="open_pull_request",
        )
        url = output.strip().splitlines()[-1] if output.strip() else ""
        self._logger.info("pull_request_opened", base=base, head=head, url=url)
        return url

    def find_open_pull_request(self, base: str, head: str) -> str | None:
        output = self._gh(
            "pr",
            "list",
            "--state",
            "open",
            "--base",
            base,
            "--head",
            head,
            "--json",
            "url",
            "--limit",
            "1",
            operation="find_open_pull_request",
        )
        try:
            items = json.loads(output or "[]")
        except json.JSONDecodeError as e:
            raise AdapterRejectedError.rejected(
                "find_open_pull_request", f"unexpected gh output: {e}", cause=e
            ) from e
        if not items:
            return None
        return str(items[0].get("url") or "") or None

    def comment(self, issue_number: int, body: str) -> None:
        self._gh(
            "issue",
            "comment",
            str(issue_number),
            "--body",
            body,
            operation="comment",
        )
        self._logger.info("issue_commented", issue_number=issue_number)
