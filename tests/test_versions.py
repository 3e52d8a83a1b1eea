"""Tests for infrarender.core.versions."""

from __future__ import annotations

import pytest

from infrarender.core.versions import (
    SUPPORTED_VERSIONS,
    VersionError,
    VersionNumber,
    generate_supported_versions,
    get_supported_version,
)


class TestVersionNumber:
    def test_full(self):
        version = VersionNumber.parse("8.0.24")
        assert (version.major, version.minor, version.patch) == ("8", "0", "24")
        assert version.suffix is None

    def test_strips_markers(self):
        version = VersionNumber.parse("v6.+")
        assert version.major == "6"
        assert version.minor == ""

    def test_suffix(self):
        assert VersionNumber.parse("1.2.3.beta").suffix == "beta"

    def test_str_round_trip(self):
        assert str(VersionNumber.parse("13.4")) == "13.4"

    def test_major_minor_default(self):
        assert VersionNumber.parse("11").to_major_minor_version_string("0") == "11.0"

    def test_empty(self):
        with pytest.raises(VersionError, match="cannot be empty"):
            VersionNumber.parse("  ")


class TestGenerateSupportedVersions:
    def test_with_updates(self):
        versions = generate_supported_versions(8, 0, 0, 11, 12)
        assert versions == {
            "8.0": "8.0.12",
            "8.0.11": "8.0.11",
            "8.0.12": "8.0.12",
            "8": "8.0.12",
        }

    def test_without_updates(self):
        versions = generate_supported_versions(4, 0, 2)
        assert versions["4"] == "4.2"
        assert versions["4.1"] == "4.1"

    def test_suffix(self):
        versions = generate_supported_versions(6, 0, 0, 9, 9, suffix="-debian")
        assert versions["6"] == "6.0.9-debian"


class TestGetSupportedVersion:
    @pytest.mark.parametrize(
        "database_type, requested, expected",
        [
            ("mysql", "8", "8.0.24"),
            ("mysql", "5.7", "5.7.34"),
            ("mysql", "8.0.11", "8.0.11"),
            ("postgresql", "13", "13.4.0"),
            ("redis", "6", "6.0.9"),
        ],
    )
    def test_resolves(self, database_type, requested, expected):
        assert get_supported_version(database_type, requested) == expected

    def test_unsupported(self):
        with pytest.raises(VersionError, match="mysql 9 version is not supported"):
            get_supported_version("mysql", "9")

    def test_unknown_engine(self):
        with pytest.raises(VersionError, match="unknown database type"):
            get_supported_version("oracle", "19")

    def test_every_engine_has_a_table(self):
        assert set(SUPPORTED_VERSIONS) == {"mysql", "postgresql", "mongodb", "redis"}
