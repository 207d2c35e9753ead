"""Tests for the models module."""

from datetime import date, datetime, timezone

import pytest

from release_engine.models import (
    Branch,
    BranchRole,
    Commit,
    CommitClass,
    Tag,
    TagKind,
)
from release_engine.version import parse_version


class TestCommit:
    """Test cases for Commit."""

    def test_subject_is_first_line(self) -> None:
        commit = Commit(sha="a" * 40, message="feat: search\n\nLong body\nmore")
        assert commit.subject == "feat: search"

    def test_subject_of_blank_message(self) -> None:
        assert Commit(sha="a" * 40, message="\n  \n").subject == ""

    def test_short_sha(self) -> None:
        commit = Commit(sha="0123456789abcdef", message="fix: x")
        assert commit.short_sha() == "0123456"
        assert commit.short_sha(4) == "0123"

    def test_to_dict(self) -> None:
        when = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)
        commit = Commit(sha="abc", message="fix: x", timestamp=when)
        assert commit.to_dict() == {
            "sha": "abc",
            "message": "fix: x",
            "timestamp": "2026-10-18T09:00:00+00:00",
        }

    def test_default_timestamp_is_utc(self) -> None:
        assert Commit(sha="abc", message="x").timestamp.tzinfo is not None


class TestEnums:
    """Test cases for the string enums."""

    @pytest.mark.parametrize(
        "commit_class,weight",
        [
            (CommitClass.BREAKING, 3),
            (CommitClass.FEATURE, 2),
            (CommitClass.FIX, 1),
            (CommitClass.UNCLASSIFIED, 1),
            (CommitClass.CHORE, 0),
        ],
    )
    def test_bump_weight(self, commit_class, weight) -> None:
        assert commit_class.bump_weight == weight

    def test_values_round_trip(self) -> None:
        assert BranchRole("hotfix") is BranchRole.HOTFIX
        assert TagKind("environment") is TagKind.ENVIRONMENT


class TestBranchAndTag:
    """Test cases for Branch and Tag records."""

    def test_branch_to_dict_serializes_dates(self) -> None:
        branch = Branch(
            name="support/1.4",
            role=BranchRole.SUPPORT,
            base_ref="v1.4.0",
            created_at=datetime(2026, 10, 18, tzinfo=timezone.utc),
            metadata={"version_line": "1.4", "support_until": date(2027, 6, 30)},
        )

        assert branch.to_dict() == {
            "name": "support/1.4",
            "role": "support",
            "base_ref": "v1.4.0",
            "created_at": "2026-10-18T00:00:00+00:00",
            "metadata": {"version_line": "1.4", "support_until": "2027-06-30"},
        }

    def test_branch_is_frozen(self) -> None:
        branch = Branch(name="release/1.3.0", role=BranchRole.RELEASE, base_ref="develop")
        with pytest.raises(AttributeError):
            branch.name = "release/1.4.0"  # type: ignore[misc]

    def test_tag_to_dict(self) -> None:
        tag = Tag(
            name="v1.3.0-rc.2",
            version=parse_version("1.3.0-rc.2"),
            kind=TagKind.PRERELEASE,
            created_from_sha="abc",
        )
        assert tag.to_dict() == {
            "name": "v1.3.0-rc.2",
            "version": "1.3.0-rc.2",
            "kind": "prerelease",
            "created_from_sha": "abc",
        }
