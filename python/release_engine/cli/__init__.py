"""
Command line interface for the release engine.

Usage:
    release-engine version next --branch develop --run 42
    release-engine release start --bump minor --issue 17 --execute
    release-engine handle event.json --event pull_request --execute
"""

from release_engine.cli.app import main

__all__ = ["main"]
