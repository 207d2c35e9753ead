"""
Advisory locks guarding branch transitions.

A transition is keyed by ``(branch role, version line)``; a second run on the
same key while the lock is held is rejected rather than queued.
"""

from __future__ import annotations

import os
import re
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import structlog

from release_engine.exceptions import IllegalTransitionError

logger = structlog.get_logger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


def lock_key(role: str, version_line: str) -> str:
    return f"{role}:{version_line}"


class LockProvider(ABC):
    """Non-blocking advisory lock store."""

    @abstractmethod
    def try_acquire(self, key: str) -> bool:
        """Take the lock; False if it is already held."""

    @abstractmethod
    def release(self, key: str) -> None:
        """Release a held lock."""

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """
        Hold ``key`` for the duration of the block.

        Raises:
            IllegalTransitionError: If the lock is already held.
        """
        if not self.try_acquire(key):
            logger.info("transition_lock_busy", lock=key)
            raise IllegalTransitionError.locked(key)
        logger.debug("transition_lock_acquired", lock=key)
        try:
            yield
        finally:
            self.release(key)
            logger.debug("transition_lock_released", lock=key)


class InMemoryLockProvider(LockProvider):
    """Process-local locks."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._held: set[str] = set()

    def try_acquire(self, key: str) -> bool:
        with self._guard:
            if key in self._held:
                return False
            self._held.add(key)
            return True

    def release(self, key: str) -> None:
        with self._guard:
            self._held.discard(key)

    def is_held(self, key: str) -> bool:
        with self._guard:
            return key in self._held


class FileLockProvider(LockProvider):
    """
    Locks shared between processes on one host, as exclusive lock files.

    Stale files left by a crashed run must be removed by an operator.
    """

    def __init__(self, lock_dir: str | Path) -> None:
        self._lock_dir = Path(lock_dir)

    def _path(self, key: str) -> Path:
        return self._lock_dir / f"{_UNSAFE.sub('_', key)}.lock"

    def try_acquire(self, key: str) -> bool:
        self._lock_dir.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self._path(key), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(f"{os.getpid()}\n")
        return True

    def release(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def is_held(self, key: str) -> bool:
        return self._path(key).exists()
