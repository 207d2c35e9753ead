"""
Subprocess execution for the CLI-backed adapters.

Failures are translated at this boundary:
- ``subprocess.TimeoutExpired`` -> AdapterTimeoutError (retryable)
- non-zero exit with a transient network marker -> AdapterTimeoutError
- any other non-zero exit or a missing binary -> AdapterRejectedError
"""

from __future__ import annotations

import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path

import structlog

from release_engine.exceptions import AdapterRejectedError, AdapterTimeoutError

logger = structlog.get_logger(__name__)

_TRANSIENT_MARKERS = (
    "timed out",
    "connection reset",
    "connection refused",
    "temporarily unavailable",
    "service unavailable",
    "bad gateway",
    "gateway timeout",
    "could not resolve host",
    "remote end hung up unexpectedly",
    "http 429",
    "http 502",
    "http 503",
    "http 504",
)


def is_transient_failure(stderr: str) -> bool:
    text = stderr.lower()
    return any(marker in text for marker in _TRANSIENT_MARKERS)


def run_command(
    cmd: Sequence[str],
    *,
    cwd: Path,
    operation: str,
    timeout: float,
    env: Mapping[str, str] | None = None,
) -> str:
    """
    Run ``cmd`` and return its stdout.

    Raises:
        AdapterTimeoutError: On timeout or a transient remote failure.
        AdapterRejectedError: On any other failure.
    """
    logger.debug("command_started", operation=operation, command=" ".join(cmd[:3]))
    try:
        proc = subprocess.run(
            list(cmd),
            cwd=str(cwd),
            env=dict(env) if env is not None else None,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=True,
        )
    except subprocess.TimeoutExpired as e:
        raise AdapterTimeoutError.timeout(operation, timeout, cause=e) from e
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or "").strip()
        reason = stderr or (e.stdout or "").strip() or f"exit status {e.returncode}"
        if is_transient_failure(stderr):
            raise AdapterTimeoutError(
                message=f"Operation '{operation}' failed transiently: {reason}",
                context={"operation": operation, "returncode": e.returncode},
                cause=e,
            ) from e
        raise AdapterRejectedError.rejected(operation, reason, cause=e) from e
    except FileNotFoundError as e:
        raise AdapterRejectedError.rejected(
            operation, f"executable not found: {cmd[0]}", cause=e
        ) from e
    return proc.stdout


def command_succeeds(cmd: Sequence[str], *, cwd: Path, timeout: float) -> bool:
    """Whether ``cmd`` exits with status 0. Timeouts still raise."""
    try:
        proc = subprocess.run(
            list(cmd),
            cwd=str(cwd),
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        operation = cmd[1] if len(cmd) > 1 else cmd[0]
        raise AdapterTimeoutError.timeout(operation, timeout, cause=e) from e
    return proc.returncode == 0
