"""
VCS adapter backed by the ``git`` command line.

Operations that need a working tree (merge, cherry-pick, file commits) run
in the repository's working copy, as a CI job would. When ``remote`` is set,
every ref change is pushed right after it is made.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from pathlib import Path

import structlog

from release_engine.adapters.base import VcsAdapter
from release_engine.adapters.process import command_succeeds, run_command
from release_engine.exceptions import AdapterRejectedError, TagConflictError
from release_engine.models import Commit

logger = structlog.get_logger(__name__)

_FIELD_SEP = "\x1f"
_RECORD_SEP = "\x1e"


class GitCliAdapter(VcsAdapter):
    """
    Git repository driven through subprocess calls.

    Args:
        repo: Path to the repository working copy.
        remote: Remote to push ref changes to, or None to stay local.
        timeout_seconds: Timeout applied to every git invocation.
        git_binary: Executable name or path.
    """

    def __init__(
        self,
        repo: str | Path = ".",
        remote: str | None = None,
        timeout_seconds: float = 30.0,
        git_binary: str = "git",
    ) -> None:
        self._repo = Path(repo)
        self._remote = remote
        self._timeout = timeout_seconds
        self._git_binary = git_binary
        self._logger = logger.bind(repo=str(self._repo))

    def _git(self, *args: str, operation: str) -> str:
        return run_command(
            [self._git_binary, *args],
            cwd=self._repo,
            operation=operation,
            timeout=self._timeout,
        )

    def _succeeds(self, *args: str) -> bool:
        return command_succeeds([self._git_binary, *args], cwd=self._repo, timeout=self._timeout)

    def _push(self, *refspecs: str) -> None:
        if self._remote is None:
            return
        self._git("push", self._remote, *refspecs, operation="push")
        self._logger.info("refs_pushed", remote=self._remote, refspecs=list(refspecs))

    def list_tags(self) -> dict[str, str]:
        output = self._git(
            "for-each-ref",
            "refs/tags",
            "--format=%(refname:strip=2)%09%(objectname)%09%(*objectname)",
            operation="list_tags",
        )
        tags: dict[str, str] = {}
        for line in output.splitlines():
            if not line.strip():
                continue
            name, sha, peeled = (line.split("\t") + ["", ""])[:3]
            # Annotated tags point at a tag object; use the commit it peels to.
            tags[name] = peeled or sha
        return tags

    def create_tag(self, name: str, sha: str) -> None:
        existing = self._tag_target(name)
        if existing is not None:
            if existing != sha:
                raise TagConflictError.for_tag(name, existing, sha)
            self._logger.info("tag_already_present", tag=name, sha=sha)
            return
        self._git("tag", name, sha, operation="create_tag")
        self._logger.info("git_tag_created", tag=name, sha=sha)
        self._push(f"refs/tags/{name}")

    def _tag_target(self, name: str) -> str | None:
        if not self._succeeds("rev-parse", "--quiet", "--verify", f"refs/tags/{name}"):
            return None
        return self.resolve(f"refs/tags/{name}")

    def create_branch(self, name: str, from_ref: str) -> None:
        self._git("branch", name, from_ref, operation="create_branch")
        self._logger.info("git_branch_created", branch=name, from_ref=from_ref)
        self._push(f"refs/heads/{name}")

    def delete_branch(self, name: str) -> None:
        self._git("branch", "-D", name, operation="delete_branch")
        self._logger.info("git_branch_deleted", branch=name)
        if self._remote is not None:
            self._git("push", self._remote, "--delete", name, operation="push")

    def merge_branch(self, src: str, dst: str) -> str:
        self._git("checkout", "--quiet", dst, operation="merge_branch")
        try:
            self._git(
                "merge", "--no-ff", "--no-edit", src, operation="merge_branch"
            )
        except AdapterRejectedError:
            if self._succeeds("rev-parse", "--quiet", "--verify", "MERGE_HEAD"):
                self._git("merge", "--abort", operation="merge_branch")
            raise
        head = self.resolve("HEAD")
        self._logger.info("git_branch_merged", src=src, dst=dst, sha=head)
        self._push(f"refs/heads/{dst}")
        return head

    def commit_range(self, from_tag: str | None, to_ref: str) -> list[Commit]:
        revision = to_ref if from_tag is None else f"{from_tag}..{to_ref}"
        output = self._git(
            "log",
            "--reverse",
            f"--format=%H{_FIELD_SEP}%cI{_FIELD_SEP}%B{_RECORD_SEP}",
            revision,
            operation="commit_range",
        )
        commits: list[Commit] = []
        for record in output.split(_RECORD_SEP):
            record = record.strip("\n")
            if not record:
                continue
            sha, timestamp, message = record.split(_FIELD_SEP, 2)
            commits.append(
                Commit(
                    sha=sha.strip(),
                    message=message.strip(),
                    timestamp=datetime.fromisoformat(timestamp).astimezone(timezone.utc),
                )
            )
        return commits

    def resolve(self, ref: str) -> str:
        return self._git(
            "rev-parse", "--verify", f"{ref}^{{commit}}", operation="resolve"
        ).strip()

    def branch_exists(self, name: str) -> bool:
        return self._succeeds("show-ref", "--verify", "--quiet", f"refs/heads/{name}")

    def read_file(self, ref: str, path: str) -> str | None:
        try:
            return self._git("show", f"{ref}:{path}", operation="read_file")
        except AdapterRejectedError:
            return None

    def commit_files(self, branch: str, files: Mapping[str, str], message: str) -> str:
        self._git("checkout", "--quiet", branch, operation="commit_files")
        for relative, content in files.items():
            target = self._repo / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        self._git("add", "--", *files, operation="commit_files")
        if self._succeeds("diff", "--cached", "--quiet"):
            self._logger.info("files_unchanged", branch=branch, files=list(files))
            return self.resolve("HEAD")
        self._git("commit", "--quiet", "-m", message, operation="commit_files")
        head = self.resolve("HEAD")
        self._logger.info("git_files_committed", branch=branch, files=list(files), sha=head)
        self._push(f"refs/heads/{branch}")
        return head

    def cherry_pick(self, sha: str, onto: str) -> str:
        self._git("checkout", "--quiet", onto, operation="cherry_pick")
        args = ["cherry-pick", "-x"]
        if self._is_merge_commit(sha):
            args += ["-m", "1"]
        try:
            self._git(*args, sha, operation="cherry_pick")
        except AdapterRejectedError:
            if self._succeeds("rev-parse", "--quiet", "--verify", "CHERRY_PICK_HEAD"):
                self._git("cherry-pick", "--abort", operation="cherry_pick")
            raise
        head = self.resolve("HEAD")
        self._logger.info("git_cherry_picked", sha=sha, onto=onto, new_sha=head)
        self._push(f"refs/heads/{onto}")
        return head

    def _is_merge_commit(self, sha: str) -> bool:
        parents = self._git("rev-list", "--parents", "-n", "1", sha, operation="cherry_pick")
        return len(parents.split()) > 2
