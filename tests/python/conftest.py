"""Pytest configuration for Python tests."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import pytest
import structlog

from release_engine.adapters.memory import InMemoryVcs, RecordingTracker
from release_engine.config import Config, ReleaseLinesConfig, set_config
from release_engine.orchestrator import Orchestrator
from release_engine.release_lines import ReleaseLineRegistry

FIXED_NOW = datetime(2026, 10, 18, 12, 30, 45, tzinfo=timezone.utc)


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")


@pytest.fixture(autouse=True)
def _reset_global_state():
    """Drop global config and logging configuration between tests."""
    yield
    set_config(None)
    logging.getLogger().handlers = []
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def config() -> Config:
    """Default configuration without a registry state file."""
    return Config(release_lines=ReleaseLinesConfig(state_file=None))


@pytest.fixture
def repo() -> InMemoryVcs:
    """Repository with ``main`` and ``develop``."""
    vcs = InMemoryVcs()
    vcs.create_branch("develop", "main")
    return vcs


@pytest.fixture
def tracker() -> RecordingTracker:
    return RecordingTracker()


@pytest.fixture
def registry() -> ReleaseLineRegistry:
    return ReleaseLineRegistry()


@pytest.fixture
def orchestrator(config, repo, tracker, registry, clock) -> Orchestrator:
    return Orchestrator(
        config, repo, tracker, registry=registry, clock=clock, sleep=lambda _: None
    )


@pytest.fixture
def release(repo):
    """Commit on main, tag it ``v<version>`` and return the sha."""

    def _release(version: str, message: str | None = None) -> str:
        sha = repo.add_commit("main", message or f"chore(release): {version}").sha
        repo.create_tag(f"v{version}", sha)
        return sha

    return _release
