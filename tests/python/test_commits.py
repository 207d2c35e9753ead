"""
Tests for conventional commit classification.
"""

import pytest

from release_engine.commits import (
    CommitClassifier,
    classify,
    is_merge_commit,
    max_class,
)
from release_engine.models import Commit, CommitClass


class TestClassify:
    """Tests for the default classification rules."""

    @pytest.mark.parametrize(
        ("message", "expected"),
        [
            ("feat: add login", CommitClass.FEATURE),
            ("feature: add login", CommitClass.FEATURE),
            ("feat(auth): add login", CommitClass.FEATURE),
            ("fix: null pointer", CommitClass.FIX),
            ("bug: wrong total", CommitClass.FIX),
            ("patch: bump dependency", CommitClass.FIX),
            ("chore: tidy", CommitClass.CHORE),
            ("docs: readme", CommitClass.CHORE),
            ("style: format", CommitClass.CHORE),
            ("refactor: split module", CommitClass.UNCLASSIFIED),
            ("Update README.md", CommitClass.UNCLASSIFIED),
            ("", CommitClass.UNCLASSIFIED),
        ],
    )
    def test_header_types(self, message: str, expected: CommitClass) -> None:
        assert classify(message) is expected

    @pytest.mark.parametrize(
        "message",
        [
            "feat!: drop python 3.8",
            "fix!: change default",
            "refactor(api)!: rename endpoint",
            "feat: new parser\n\nBREAKING CHANGE: config format changed",
            "chore: cleanup\n\nBREAKING CHANGE removes the v1 api",
        ],
    )
    def test_breaking(self, message: str) -> None:
        assert classify(message) is CommitClass.BREAKING

    def test_breaking_token_is_case_sensitive(self) -> None:
        assert classify("feat: x\n\nbreaking change: y") is CommitClass.FEATURE

    def test_type_is_case_insensitive(self) -> None:
        assert classify("FIX: upper case") is CommitClass.FIX
        assert classify("Feat: mixed case") is CommitClass.FEATURE

    def test_type_must_lead_the_message(self) -> None:
        assert classify("see feat: later") is CommitClass.UNCLASSIFIED

    def test_total_on_non_strings(self) -> None:
        assert classify(None) is CommitClass.UNCLASSIFIED  # type: ignore[arg-type]

    def test_pure(self) -> None:
        messages = ["feat: a", "fix!: b", "nonsense", "docs: c"]
        assert [classify(m) for m in messages] == [classify(m) for m in messages]


class TestCustomClassifier:
    """Tests for configurable type lists."""

    def test_custom_types(self) -> None:
        classifier = CommitClassifier(
            feature_types=["feat", "perf"],
            fix_types=["fix", "security"],
            chore_types=["chore", "ci"],
        )
        assert classifier.classify("perf: faster") is CommitClass.FEATURE
        assert classifier.classify("security: patch cve") is CommitClass.FIX
        assert classifier.classify("ci: cache deps") is CommitClass.CHORE
        assert classifier.classify("docs: readme") is CommitClass.UNCLASSIFIED

    def test_custom_breaking_token(self) -> None:
        classifier = CommitClassifier(breaking_token="BREAKING:")
        assert classifier.classify("fix: x\n\nBREAKING: y") is CommitClass.BREAKING
        assert classifier.classify("fix: x\n\nBREAKING CHANGE: y") is CommitClass.FIX

    def test_classify_commits_preserves_order(self) -> None:
        commits = [Commit("a" * 40, "fix: one"), Commit("b" * 40, "feat: two")]
        classified = CommitClassifier().classify_commits(commits)
        assert [c.commit.sha for c in classified] == ["a" * 40, "b" * 40]
        assert [c.commit_class for c in classified] == [CommitClass.FIX, CommitClass.FEATURE]


class TestMaxClass:
    """Tests for severity aggregation."""

    def test_breaking_outranks_everything(self) -> None:
        classes = [CommitClass.FIX, CommitClass.BREAKING, CommitClass.FEATURE]
        assert max_class(classes) is CommitClass.BREAKING

    def test_feature_outranks_fix(self) -> None:
        assert max_class([CommitClass.FIX, CommitClass.FEATURE]) is CommitClass.FEATURE

    def test_unclassified_counts_as_fix(self) -> None:
        assert max_class([CommitClass.CHORE, CommitClass.UNCLASSIFIED]) is CommitClass.FIX

    def test_chore_never_counts(self) -> None:
        assert max_class([CommitClass.CHORE, CommitClass.CHORE]) is None
        assert max_class([]) is None

    def test_bump_weights(self) -> None:
        assert CommitClass.BREAKING.bump_weight > CommitClass.FEATURE.bump_weight
        assert CommitClass.UNCLASSIFIED.bump_weight == CommitClass.FIX.bump_weight
        assert CommitClass.CHORE.bump_weight == 0


class TestMergeCommits:
    @pytest.mark.parametrize(
        "message",
        [
            "Merge branch 'main' into develop",
            "Merge pull request #12 from org/hotfix/1.2.4",
            "Merge remote-tracking branch 'origin/main'",
        ],
    )
    def test_detects_merges(self, message: str) -> None:
        assert is_merge_commit(message)

    def test_ordinary_commit(self) -> None:
        assert not is_merge_commit("fix: merge sort off by one")
