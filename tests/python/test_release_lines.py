"""
Tests for the release line registry.
"""

from datetime import date, datetime, timezone

import pytest

from release_engine.exceptions import (
    ConfigurationError,
    DuplicateTierError,
    IllegalTransitionError,
)
from release_engine.models import CommitClass
from release_engine.release_lines import (
    DEFAULT_ADMISSIBLE,
    LineStatus,
    ReleaseLine,
    ReleaseLineRegistry,
    Tier,
)
from release_engine.version import parse_version


def line(
    line_id: str,
    tier: Tier = Tier.LTS,
    support_until: date | None = None,
    branch: str | None = None,
    **kwargs,
) -> ReleaseLine:
    return ReleaseLine(
        line_id=line_id,
        tier=tier,
        base_version=parse_version(f"{line_id}.0"),
        support_until=support_until,
        branch=branch,
        **kwargs,
    )


class TestReleaseLine:
    """Tests for the ReleaseLine value object."""

    def test_default_admissible_per_tier(self) -> None:
        for tier in Tier:
            assert line("1.0", tier=tier).admissible_classes == DEFAULT_ADMISSIBLE[tier]

    def test_lts_admits_fixes_only(self) -> None:
        lts = line("1.4")
        assert lts.admits(CommitClass.FIX)
        assert not lts.admits(CommitClass.FEATURE)
        assert not lts.admits(CommitClass.BREAKING)

    def test_explicit_admissible(self) -> None:
        custom = line("1.4", admissible_classes=frozenset({CommitClass.FIX, CommitClass.CHORE}))
        assert custom.admits(CommitClass.CHORE)

    def test_expiry_is_after_last_supported_day(self) -> None:
        lts = line("1.4", support_until=date(2026, 10, 18))
        assert not lts.is_expired(date(2026, 10, 18))
        assert lts.is_expired(datetime(2026, 10, 19, 0, 0, tzinfo=timezone.utc))
        assert not line("1.5").is_expired(date(2099, 1, 1))

    def test_empty_id_rejected(self) -> None:
        with pytest.raises(ValueError):
            ReleaseLine(line_id="", tier=Tier.LTS, base_version=parse_version("1.0.0"))

    def test_dict_round_trip(self) -> None:
        original = line("1.4", support_until=date(2027, 1, 31), branch="support/1.4")
        assert ReleaseLine.from_dict(original.to_dict()) == original


class TestRegister:
    """Tests for tier invariants on registration."""

    def test_second_current_rejected(self) -> None:
        registry = ReleaseLineRegistry([line("2.0", tier=Tier.CURRENT)])
        with pytest.raises(DuplicateTierError) as exc_info:
            registry.register(line("2.1", tier=Tier.CURRENT))
        assert exc_info.value.context["existing_line"] == "2.0"
        assert registry.get("2.1") is None

    def test_second_next_rejected(self) -> None:
        registry = ReleaseLineRegistry([line("3.0", tier=Tier.NEXT)])
        with pytest.raises(DuplicateTierError):
            registry.register(line("3.1", tier=Tier.NEXT))

    def test_multiple_lts_allowed(self) -> None:
        registry = ReleaseLineRegistry()
        assert registry.register(line("1.2"))
        assert registry.register(line("1.4"))
        assert [lts.line_id for lts in registry.lts_lines()] == ["1.2", "1.4"]

    def test_current_allowed_after_retirement(self) -> None:
        registry = ReleaseLineRegistry([line("2.0", tier=Tier.CURRENT)])
        registry.retire("2.0")
        assert registry.register(line("2.1", tier=Tier.CURRENT))
        assert registry.current().line_id == "2.1"

    def test_identical_registration_is_noop(self) -> None:
        registry = ReleaseLineRegistry([line("1.4")])
        assert registry.register(line("1.4")) is False
        assert len(registry.lines) == 1

    def test_same_id_different_data_rejected(self) -> None:
        registry = ReleaseLineRegistry([line("1.4")])
        with pytest.raises(DuplicateTierError):
            registry.register(line("1.4", support_until=date(2030, 1, 1)))

    def test_check_register_does_not_mutate(self) -> None:
        registry = ReleaseLineRegistry()
        assert registry.check_register(line("1.4")) is True
        assert registry.lines == []


class TestQueries:
    def test_current_and_next(self) -> None:
        registry = ReleaseLineRegistry(
            [line("1.4"), line("2.0", tier=Tier.CURRENT), line("3.0", tier=Tier.NEXT)]
        )
        assert registry.current().line_id == "2.0"
        assert registry.next_line().line_id == "3.0"

    def test_admissible_change(self) -> None:
        registry = ReleaseLineRegistry([line("1.4"), line("2.0", tier=Tier.CURRENT)])
        assert registry.admissible_change("1.4", CommitClass.FIX)
        assert not registry.admissible_change("1.4", CommitClass.FEATURE)
        assert registry.admissible_change("2.0", CommitClass.FEATURE)
        assert not registry.admissible_change("2.0", CommitClass.BREAKING)

    def test_admissible_change_unknown_or_retired(self) -> None:
        registry = ReleaseLineRegistry([line("1.4")])
        registry.retire("1.4")
        assert not registry.admissible_change("1.4", CommitClass.FIX)
        assert not registry.admissible_change("9.9", CommitClass.FIX)

    def test_lines_admitting_needs_branch(self) -> None:
        registry = ReleaseLineRegistry([line("1.2"), line("1.4", branch="support/1.4")])
        assert [lts.line_id for lts in registry.lines_admitting(CommitClass.FIX)] == ["1.4"]
        assert registry.lines_admitting(CommitClass.FEATURE) == []

    def test_require_unknown(self) -> None:
        with pytest.raises(IllegalTransitionError):
            ReleaseLineRegistry().require("1.0")


class TestLifecycle:
    """Tests for retirement, expiry and tier changes."""

    def test_retire_is_idempotent(self) -> None:
        registry = ReleaseLineRegistry([line("1.4")])
        first = registry.retire("1.4")
        second = registry.retire("1.4")
        assert first.status is LineStatus.RETIRED
        assert second == first
        assert registry.active_lines() == []

    def test_expire(self) -> None:
        registry = ReleaseLineRegistry(
            [
                line("1.2", support_until=date(2026, 1, 31)),
                line("1.4", support_until=date(2027, 1, 31)),
            ]
        )
        now = datetime(2026, 10, 18, tzinfo=timezone.utc)
        assert [lts.line_id for lts in registry.expired(now)] == ["1.2"]

        retired = registry.expire(now)
        assert [lts.line_id for lts in retired] == ["1.2"]
        assert registry.get("1.2").status is LineStatus.RETIRED
        assert registry.expired(now) == []

    def test_change_tier(self) -> None:
        registry = ReleaseLineRegistry([line("2.0", tier=Tier.CURRENT)])
        changed = registry.change_tier("2.0", Tier.LTS)
        assert changed.tier is Tier.LTS
        assert changed.admissible_classes == DEFAULT_ADMISSIBLE[Tier.LTS]
        assert registry.current() is None

    def test_change_tier_into_held_tier(self) -> None:
        registry = ReleaseLineRegistry([line("1.4"), line("2.0", tier=Tier.CURRENT)])
        with pytest.raises(DuplicateTierError):
            registry.change_tier("1.4", Tier.CURRENT)


class TestPersistence:
    def test_yaml_round_trip(self) -> None:
        registry = ReleaseLineRegistry(
            [
                line("1.4", support_until=date(2027, 1, 31), branch="support/1.4"),
                line("2.0", tier=Tier.CURRENT),
            ]
        )
        registry.retire("2.0")

        loaded = ReleaseLineRegistry.from_yaml(registry.to_yaml())

        assert loaded.to_dict() == registry.to_dict()
        assert loaded.get("2.0").status is LineStatus.RETIRED

    def test_empty_document(self) -> None:
        assert ReleaseLineRegistry.from_yaml("").lines == []

    @pytest.mark.parametrize(
        "text",
        [
            "lines:\n  - line_id: '1.4'\n    tier: platinum\n",
            "- just\n- a list\n",
            "lines: [\n",
        ],
    )
    def test_invalid_document(self, text) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            ReleaseLineRegistry.from_yaml(text, source="main:lines.yaml")
        assert exc_info.value.context["path"] == "main:lines.yaml"
