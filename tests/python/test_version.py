"""
Tests for the semantic version value object.

Verifies:
- Parsing with and without the tag prefix
- Precedence ordering, including prereleases and build metadata
- Bump helpers and prerelease attachment
"""

import pytest

from release_engine.version import (
    ZERO,
    Prerelease,
    SemanticVersion,
    parse_core_version,
    parse_version,
    try_parse_version,
)


class TestParseVersion:
    """Tests for parse_version."""

    def test_parse_plain(self) -> None:
        version = parse_version("1.2.3")
        assert (version.major, version.minor, version.patch) == (1, 2, 3)
        assert version.prerelease is None
        assert version.build is None

    def test_parse_with_prefix(self) -> None:
        assert parse_version("v2.0.0") == SemanticVersion(2, 0, 0)

    def test_parse_prerelease_and_build(self) -> None:
        version = parse_version("2.0.0-rc.3+build.7")
        assert version.prerelease == Prerelease("rc", 3)
        assert version.build == "build.7"
        assert str(version) == "2.0.0-rc.3+build.7"

    def test_parse_dev_prerelease(self) -> None:
        """The trailing number is split off the dotted label."""
        version = parse_version("1.3.0-dev.20261018.42")
        assert version.prerelease == Prerelease("dev.20261018", 42)
        assert version.is_dev()

    def test_parse_label_without_number(self) -> None:
        version = parse_version("1.0.0-alpha")
        assert version.prerelease == Prerelease("alpha")
        assert str(version) == "1.0.0-alpha"

    @pytest.mark.parametrize(
        "text",
        ["", "1.2", "1.2.3.4", "01.2.3", "1.2.3-", "v", "release-1.2.3", "1.2.x"],
    )
    def test_parse_invalid(self, text: str) -> None:
        with pytest.raises(ValueError):
            parse_version(text)

    def test_try_parse_returns_none(self) -> None:
        assert try_parse_version("not-a-version") is None
        assert try_parse_version("v0.1.0") == SemanticVersion(0, 1, 0)


class TestParseCoreVersion:
    """Tests for strict X.Y.Z parsing used by branch names."""

    def test_accepts_core(self) -> None:
        assert parse_core_version("2.0.0") == SemanticVersion(2, 0, 0)
        assert parse_core_version("v3.1.4") == SemanticVersion(3, 1, 4)

    @pytest.mark.parametrize("text", ["2.0", "2.0.0-rc.1", "2.0.0+meta", "two", "2.0.0.0"])
    def test_rejects_anything_else(self, text: str) -> None:
        assert parse_core_version(text) is None


class TestOrdering:
    """Tests for version precedence."""

    def test_numeric_components(self) -> None:
        assert parse_version("1.2.3") < parse_version("1.2.10")
        assert parse_version("1.10.0") > parse_version("1.9.9")
        assert parse_version("2.0.0") > parse_version("1.99.99")

    def test_release_outranks_prerelease(self) -> None:
        assert parse_version("1.0.0-rc.9") < parse_version("1.0.0")
        assert parse_version("1.0.0-dev.20261018.3") < parse_version("1.0.0")

    def test_prerelease_number_is_numeric(self) -> None:
        assert parse_version("1.0.0-rc.2") < parse_version("1.0.0-rc.10")

    def test_missing_number_sorts_first(self) -> None:
        assert parse_version("1.0.0-rc") < parse_version("1.0.0-rc.0")

    def test_build_metadata_ignored(self) -> None:
        with_build = parse_version("1.0.0+abc")
        plain = parse_version("1.0.0")
        assert with_build.sort_key() == plain.sort_key()
        assert not with_build < plain
        assert not plain < with_build

    def test_sorting(self) -> None:
        versions = [parse_version(v) for v in ["1.1.0", "1.0.0", "1.1.0-rc.1", "0.9.12"]]
        assert [str(v) for v in sorted(versions)] == ["0.9.12", "1.0.0", "1.1.0-rc.1", "1.1.0"]

    def test_compare_with_other_types(self) -> None:
        with pytest.raises(TypeError):
            _ = parse_version("1.0.0") < "1.0.1"


class TestSemanticVersion:
    """Tests for helpers on SemanticVersion."""

    def test_bumps_reset_lower_components(self) -> None:
        version = parse_version("1.2.3-rc.1")
        assert version.bump_major() == SemanticVersion(2, 0, 0)
        assert version.bump_minor() == SemanticVersion(1, 3, 0)
        assert version.bump_patch() == SemanticVersion(1, 2, 4)

    def test_core_and_line(self) -> None:
        version = parse_version("2.4.1-rc.2+x")
        assert version.core == SemanticVersion(2, 4, 1)
        assert version.line == "2.4"

    def test_with_prerelease(self) -> None:
        version = SemanticVersion(2, 0, 0).with_prerelease("rc", 1)
        assert str(version) == "2.0.0-rc.1"
        assert version.is_prerelease()
        assert not version.is_dev()

    def test_negative_components_rejected(self) -> None:
        with pytest.raises(ValueError):
            SemanticVersion(-1, 0, 0)

    def test_invalid_label_rejected(self) -> None:
        with pytest.raises(ValueError):
            Prerelease("feature/login")

    def test_to_dict(self) -> None:
        data = parse_version("1.3.0-rc.2").to_dict()
        assert data["string"] == "1.3.0-rc.2"
        assert data["prerelease"] == "rc.2"
        assert data["build"] is None

    def test_zero(self) -> None:
        assert str(ZERO) == "0.0.0"
