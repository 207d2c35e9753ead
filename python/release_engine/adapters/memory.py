"""
In-memory adapters for dry runs and tests.

``InMemoryVcs`` keeps a linear history per branch, which is enough to
model branch creation, merges, cherry-picks and commit ranges. Failures can
be injected per operation to exercise retry paths.
"""

from __future__ import annotations

import hashlib
from collections.abc import Mapping
from datetime import datetime, timezone

import structlog

from release_engine.adapters.base import IssueTrackerAdapter, VcsAdapter
from release_engine.exceptions import AdapterRejectedError, ReleaseEngineError, TagConflictError
from release_engine.models import Commit

logger = structlog.get_logger(__name__)


class InMemoryVcs(VcsAdapter):
    """Deterministic in-memory repository."""

    def __init__(self, default_branch: str = "main") -> None:
        self._history: dict[str, list[Commit]] = {}
        self._files: dict[str, dict[str, str]] = {}
        self._tags: dict[str, str] = {}
        self._counter = 0
        self._failures: dict[str, list[ReleaseEngineError]] = {}
        self.calls: list[tuple[str, tuple[object, ...]]] = []
        self._history[default_branch] = []
        self._files[default_branch] = {}
        self.add_commit(default_branch, "chore: initial commit")

    # -- test helpers -------------------------------------------------------

    def add_commit(self, branch: str, message: str, sha: str | None = None) -> Commit:
        """Append a commit to ``branch`` (created if missing)."""
        self._counter += 1
        if sha is None:
            seed = f"{branch}:{message}:{self._counter}".encode()
            sha = hashlib.sha1(seed).hexdigest()
        commit = Commit(sha=sha, message=message, timestamp=datetime.now(timezone.utc))
        self._history.setdefault(branch, []).append(commit)
        self._files.setdefault(branch, {})
        return commit

    def inject_failure(self, operation: str, error: ReleaseEngineError, times: int = 1) -> None:
        """Make the next ``times`` calls of ``operation`` raise ``error``."""
        self._failures.setdefault(operation, []).extend([error] * times)

    def history(self, branch: str) -> list[Commit]:
        return list(self._history.get(branch, []))

    def files(self, branch: str) -> dict[str, str]:
        return dict(self._files.get(branch, {}))

    def _enter(self, operation: str, *args: object) -> None:
        self.calls.append((operation, args))
        pending = self._failures.get(operation)
        if pending:
            raise pending.pop(0)

    # -- VcsAdapter ---------------------------------------------------------

    def list_tags(self) -> dict[str, str]:
        self._enter("list_tags")
        return dict(self._tags)

    def create_tag(self, name: str, sha: str) -> None:
        self._enter("create_tag", name, sha)
        existing = self._tags.get(name)
        if existing is not None and existing != sha:
            raise TagConflictError.for_tag(name, existing, sha)
        self._tags[name] = sha

    def create_branch(self, name: str, from_ref: str) -> None:
        self._enter("create_branch", name, from_ref)
        if name in self._history:
            raise AdapterRejectedError.rejected("create_branch", f"branch {name} exists")
        source = self._branch_for(from_ref)
        sha = self.resolve(from_ref)
        history = self._history[source]
        cut = next(i for i, c in enumerate(history) if c.sha == sha)
        self._history[name] = history[: cut + 1]
        self._files[name] = dict(self._files.get(source, {}))

    def delete_branch(self, name: str) -> None:
        self._enter("delete_branch", name)
        if name not in self._history:
            raise AdapterRejectedError.rejected("delete_branch", f"branch {name} not found")
        del self._history[name]
        self._files.pop(name, None)

    def merge_branch(self, src: str, dst: str) -> str:
        self._enter("merge_branch", src, dst)
        if src not in self._history or dst not in self._history:
            raise AdapterRejectedError.rejected("merge_branch", f"cannot merge {src} into {dst}")
        known = {c.sha for c in self._history[dst]}
        missing = [c for c in self._history[src] if c.sha not in known]
        self._history[dst].extend(missing)
        self._files[dst].update(self._files.get(src, {}))
        if not missing:
            return self._history[dst][-1].sha
        return self.add_commit(dst, f"Merge branch '{src}' into {dst}").sha

    def commit_range(self, from_tag: str | None, to_ref: str) -> list[Commit]:
        self._enter("commit_range", from_tag, to_ref)
        reachable = self._reachable(to_ref)
        if from_tag is None:
            return list(reachable)
        excluded = {c.sha for c in self._reachable(from_tag)}
        return [c for c in reachable if c.sha not in excluded]

    def resolve(self, ref: str) -> str:
        if ref in self._history and self._history[ref]:
            return self._history[ref][-1].sha
        if ref in self._tags:
            return self._tags[ref]
        for history in self._history.values():
            for c in history:
                if c.sha == ref or (len(ref) >= 7 and c.sha.startswith(ref)):
                    return c.sha
        raise AdapterRejectedError.rejected("resolve", f"unknown ref {ref}")

    def branch_exists(self, name: str) -> bool:
        return name in self._history

    def read_file(self, ref: str, path: str) -> str | None:
        return self._files.get(ref, {}).get(path)

    def commit_files(self, branch: str, files: Mapping[str, str], message: str) -> str:
        self._enter("commit_files", branch, tuple(files))
        if branch not in self._history:
            raise AdapterRejectedError.rejected("commit_files", f"branch {branch} not found")
        self._files[branch].update(files)
        return self.add_commit(branch, message).sha

    def cherry_pick(self, sha: str, onto: str) -> str:
        self._enter("cherry_pick", sha, onto)
        original = self._find(sha)
        if onto not in self._history:
            raise AdapterRejectedError.rejected("cherry_pick", f"branch {onto} not found")
        suffix = f"\n\n(cherry picked from commit {original.sha})"
        return self.add_commit(onto, original.message + suffix).sha

    def _find(self, sha: str) -> Commit:
        full = self.resolve(sha)
        for history in self._history.values():
            for c in history:
                if c.sha == full:
                    return c
        raise AdapterRejectedError.rejected("resolve", f"unknown commit {sha}")

    def _reachable(self, ref: str) -> list[Commit]:
        history = self._history[self._branch_for(ref)]
        head = self.resolve(ref)
        end = next(i for i, c in enumerate(history) if c.sha == head)
        return history[: end + 1]

    def _branch_for(self, ref: str) -> str:
        if ref in self._history:
            return ref
        sha = self.resolve(ref)
        for name, history in self._history.items():
            if any(c.sha == sha for c in history):
                return name
        raise AdapterRejectedError.rejected("resolve", f"unknown ref {ref}")


class RecordingTracker(IssueTrackerAdapter):
    """Issue tracker double that records pull requests and comments."""

    def __init__(self) -> None:
        self.pull_requests: list[dict[str, str]] = []
        self.comments: list[tuple[int, str]] = []

    def open_pull_request(self, base: str, head: str, title: str, body: str) -> str:
        url = f"pr/{len(self.pull_requests) + 1}"
        self.pull_requests.append(
            {"base": base, "head": head, "title": title, "body": body, "url": url}
        )
        logger.debug("pull_request_recorded", base=base, head=head, url=url)
        return url

    def find_open_pull_request(self, base: str, head: str) -> str | None:
        for pr in self.pull_requests:
            if pr["base"] == base and pr["head"] == head:
                return pr["url"]
        return None

    def comment(self, issue_number: int, body: str) -> None:
        self.comments.append((issue_number, body))
