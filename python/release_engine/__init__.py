"""
Release Engine - GitFlow release and branch orchestration

This package turns repository events into release operations:
- Commit classification from conventional commit messages
- Next-version calculation per branch role
- Changelog rendering and idempotent changelog upserts
- Write-once tag minting for releases, prereleases and environments
- Branch lifecycle state machine for release, hotfix and support branches
- Release line registry for LTS, current and next lines
"""

__version__ = "0.1.0"
__all__ = [
    "actions",
    "adapters",
    "calculator",
    "changelog",
    "cli",
    "commits",
    "config",
    "exceptions",
    "executor",
    "lifecycle",
    "locking",
    "logging",
    "models",
    "orchestrator",
    "release_lines",
    "tags",
    "triggers",
    "version",
]
