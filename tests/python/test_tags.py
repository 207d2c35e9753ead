"""
Tests for tag naming and write-once minting.
"""

from datetime import datetime, timezone

import pytest

from release_engine.adapters.memory import InMemoryVcs
from release_engine.exceptions import IllegalTransitionError, TagConflictError
from release_engine.models import TagKind
from release_engine.tags import TagManager
from release_engine.version import parse_version

STAMP = datetime(2026, 10, 18, 9, 5, 3, tzinfo=timezone.utc)


@pytest.fixture
def vcs() -> InMemoryVcs:
    return InMemoryVcs()


@pytest.fixture
def manager(vcs: InMemoryVcs) -> TagManager:
    return TagManager(vcs, clock=lambda: STAMP)


class TestTagName:
    """Tests for naming rules."""

    def test_release(self, manager: TagManager) -> None:
        assert manager.tag_name(parse_version("1.2.3"), TagKind.RELEASE) == "v1.2.3"

    def test_hotfix_uses_release_naming(self, manager: TagManager) -> None:
        assert manager.tag_name(parse_version("1.2.4"), TagKind.HOTFIX) == "v1.2.4"

    def test_prerelease(self, manager: TagManager) -> None:
        name = manager.tag_name(parse_version("2.0.0-rc.1"), TagKind.PRERELEASE)
        assert name == "v2.0.0-rc.1"

    def test_environment(self, manager: TagManager) -> None:
        name = manager.tag_name(
            parse_version("1.2.3"), TagKind.ENVIRONMENT, sha="abcdef1234567890", env="staging"
        )
        assert name == "staging/1.2.3-20261018-090503-abcdef1"

    def test_environment_explicit_time(self, manager: TagManager) -> None:
        at = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        name = manager.tag_name(
            parse_version("1.2.3"), TagKind.ENVIRONMENT, sha="f" * 40, env="production", at=at
        )
        assert name == "production/1.2.3-20260102-030405-fffffff"

    def test_support_with_and_without_service(self, manager: TagManager) -> None:
        version = parse_version("1.4.2")
        assert manager.tag_name(version, TagKind.SUPPORT, service="billing") == "billing-v1.4.2"
        assert manager.tag_name(version, TagKind.SUPPORT) == "v1.4.2"

    def test_custom_prefix(self, vcs: InMemoryVcs) -> None:
        manager = TagManager(vcs, prefix="release-")
        assert manager.tag_name(parse_version("3.0.0"), TagKind.RELEASE) == "release-3.0.0"

    def test_dev_versions_are_never_tagged(self, manager: TagManager) -> None:
        version = parse_version("1.3.0-dev.20261018.4")
        for kind in TagKind:
            with pytest.raises(IllegalTransitionError):
                manager.tag_name(version, kind, sha="a" * 40, env="dev")

    def test_release_tag_needs_final_version(self, manager: TagManager) -> None:
        with pytest.raises(IllegalTransitionError):
            manager.tag_name(parse_version("2.0.0-rc.1"), TagKind.RELEASE)

    def test_prerelease_tag_needs_prerelease(self, manager: TagManager) -> None:
        with pytest.raises(IllegalTransitionError):
            manager.tag_name(parse_version("2.0.0"), TagKind.PRERELEASE)

    def test_environment_needs_env_and_sha(self, manager: TagManager) -> None:
        version = parse_version("1.0.0")
        with pytest.raises(IllegalTransitionError):
            manager.tag_name(version, TagKind.ENVIRONMENT, sha="a" * 40)
        with pytest.raises(IllegalTransitionError):
            manager.tag_name(version, TagKind.ENVIRONMENT, env="dev")


class TestMint:
    """Tests for compare-and-set minting."""

    def test_mint_then_exists(self, manager: TagManager, vcs: InMemoryVcs) -> None:
        sha = vcs.resolve("main")
        tag = manager.mint(parse_version("1.2.3"), TagKind.RELEASE, sha)
        assert tag.name == "v1.2.3"
        assert tag.created_from_sha == sha
        assert manager.exists("v1.2.3")
        assert vcs.list_tags()["v1.2.3"] == sha

    def test_second_mint_same_sha_returns_identical_tag(
        self, manager: TagManager, vcs: InMemoryVcs
    ) -> None:
        sha = vcs.resolve("main")
        first = manager.mint(parse_version("1.2.3"), TagKind.RELEASE, sha)
        second = manager.mint(parse_version("1.2.3"), TagKind.RELEASE, sha)
        assert second == first
        create_calls = [c for c in vcs.calls if c[0] == "create_tag"]
        assert len(create_calls) == 1

    def test_mint_different_sha_conflicts(self, manager: TagManager, vcs: InMemoryVcs) -> None:
        sha_a = vcs.resolve("main")
        sha_b = vcs.add_commit("main", "fix: later").sha
        manager.mint(parse_version("1.2.3"), TagKind.RELEASE, sha_a)

        with pytest.raises(TagConflictError) as exc_info:
            manager.mint(parse_version("1.2.3"), TagKind.RELEASE, sha_b)

        assert exc_info.value.context["existing_sha"] == sha_a
        assert exc_info.value.context["requested_sha"] == sha_b
        assert vcs.list_tags()["v1.2.3"] == sha_a

    def test_existing_tag_in_repository_conflicts(self, vcs: InMemoryVcs) -> None:
        """A tag created by another run is seen by a fresh manager."""
        sha_a = vcs.resolve("main")
        sha_b = vcs.add_commit("main", "fix: later").sha
        vcs.create_tag("v1.2.3", sha_a)

        manager = TagManager(vcs)
        with pytest.raises(TagConflictError):
            manager.mint(parse_version("1.2.3"), TagKind.RELEASE, sha_b)
        tag = manager.mint(parse_version("1.2.3"), TagKind.RELEASE, sha_a)
        assert tag.created_from_sha == sha_a

    def test_tag_written_between_plan_and_apply(self, vcs: InMemoryVcs) -> None:
        """A tag written between plan and apply is accepted only at the same sha."""
        sha = vcs.resolve("main")
        other = vcs.add_commit("main", "fix: later").sha
        manager = TagManager(vcs)
        tag = manager.plan(parse_version("1.2.3"), TagKind.RELEASE, sha)

        vcs.create_tag("v1.2.3", sha)
        assert manager.apply(tag) == tag

        losing = manager.plan(parse_version("1.2.4"), TagKind.RELEASE, other)
        vcs.create_tag("v1.2.4", sha)
        with pytest.raises(TagConflictError):
            manager.apply(losing)

    def test_plan_does_not_write(self, manager: TagManager, vcs: InMemoryVcs) -> None:
        manager.plan(parse_version("1.2.3"), TagKind.RELEASE, vcs.resolve("main"))
        assert vcs.list_tags() == {}
        assert not manager.exists("v1.2.3")


class TestReleaseVersions:
    """Tests for reading versions back from tag names."""

    def test_version_from_tag(self, manager: TagManager) -> None:
        assert manager.version_from_tag("v1.2.3") == parse_version("1.2.3")
        assert manager.version_from_tag("billing-v1.4.2", service="billing") == parse_version(
            "1.4.2"
        )
        assert manager.version_from_tag("nightly") is None
        assert manager.version_from_tag("vnext") is None

    def test_latest_release_ignores_prereleases_and_env_tags(
        self, manager: TagManager
    ) -> None:
        tags = {
            "v1.2.3": "a",
            "v1.10.0": "b",
            "v2.0.0-rc.1": "c",
            "staging/3.0.0-20261018-000000-abcdef1": "d",
            "random": "e",
        }
        assert manager.latest_release(tags) == parse_version("1.10.0")
        assert manager.release_versions(tags) == {
            parse_version("1.2.3"): "v1.2.3",
            parse_version("1.10.0"): "v1.10.0",
        }

    def test_latest_release_on_line(self, manager: TagManager) -> None:
        tags = {"v1.4.0": "a", "v1.4.2": "b", "v1.5.0": "c"}
        assert manager.latest_release(tags, line="1.4") == parse_version("1.4.2")
        assert manager.latest_release(tags, line="0.9") is None

    def test_latest_release_without_tags(self, manager: TagManager) -> None:
        assert manager.latest_release() is None
