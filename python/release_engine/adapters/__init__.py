"""
Adapters for the external collaborators of the engine.

- VcsAdapter: git operations (GitCliAdapter, InMemoryVcs)
- IssueTrackerAdapter: pull requests and comments (GitHubCliTracker, RecordingTracker)
- QualityGate: opaque pass/fail signal (StaticQualityGate, AlwaysPassGate)
"""

from release_engine.adapters.base import (
    AlwaysPassGate,
    IssueTrackerAdapter,
    QualityGate,
    StaticQualityGate,
    VcsAdapter,
)
from release_engine.adapters.git import GitCliAdapter
from release_engine.adapters.github import GitHubCliTracker
from release_engine.adapters.memory import InMemoryVcs, RecordingTracker
from release_engine.adapters.retry import RetryPolicy, call_with_retry

__all__ = [
    "AlwaysPassGate",
    "GitCliAdapter",
    "GitHubCliTracker",
    "InMemoryVcs",
    "IssueTrackerAdapter",
    "QualityGate",
    "RecordingTracker",
    "RetryPolicy",
    "StaticQualityGate",
    "VcsAdapter",
    "call_with_retry",
]
