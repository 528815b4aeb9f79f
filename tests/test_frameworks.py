"""Tests for target framework parsing and nearest-framework reduction."""

import pytest

from versioning.frameworks import (
    ANY,
    ANY_FRAMEWORK,
    NET_CORE_APP,
    NET_FRAMEWORK,
    NET_STANDARD,
    FrameworkReducer,
    is_compatible,
    parse_framework,
)


def _fw(*names):
    return [parse_framework(n) for n in names]


class TestParseFramework:

    @pytest.mark.parametrize(
        "folder,framework,version",
        [
            ("net5.0", NET_CORE_APP, (5, 0)),
            ("net8.0", NET_CORE_APP, (8, 0)),
            ("netcoreapp3.1", NET_CORE_APP, (3, 1)),
            ("netstandard2.0", NET_STANDARD, (2, 0)),
            ("net48", NET_FRAMEWORK, (4, 8)),
            ("net461", NET_FRAMEWORK, (4, 6, 1)),
            (".NETStandard2.0", NET_STANDARD, (2, 0)),
            (".NETFramework4.6.1", NET_FRAMEWORK, (4, 6, 1)),
            (".NETCoreApp3.1", NET_CORE_APP, (3, 1)),
        ],
    )
    def test_known_monikers(self, folder, framework, version):
        """Test parsing of known framework monikers."""
        parsed = parse_framework(folder)
        assert parsed.framework == framework
        assert parsed.version == version
        assert str(parsed) == folder

    def test_platform_suffix(self):
        """Test platform suffixes are kept."""
        parsed = parse_framework("net6.0-windows7.0")
        assert parsed.framework == NET_CORE_APP
        assert parsed.platform == "windows"

    @pytest.mark.parametrize("folder", [None, "", "any", "ANY"])
    def test_any(self, folder):
        """Test the any framework."""
        assert parse_framework(folder).framework == ANY

    def test_unknown_kept_verbatim(self):
        """Test unknown monikers are kept verbatim."""
        parsed = parse_framework("portable-net45+win8")
        assert not parsed.is_known


class TestCompatibility:

    def test_netstandard_on_modern_runtime(self):
        """Test netstandard libraries run on modern runtimes."""
        assert is_compatible(parse_framework("net5.0"), parse_framework("netstandard2.1"))

    def test_newer_library_rejected(self):
        """Test libraries for a newer runtime are rejected."""
        assert not is_compatible(parse_framework("netcoreapp3.1"), parse_framework("net5.0"))

    def test_net_framework_library_rejected_on_core(self):
        """Test .NET Framework libraries are rejected on .NET Core."""
        assert not is_compatible(parse_framework("net5.0"), parse_framework("net48"))

    def test_netstandard21_not_on_net_framework(self):
        """Test netstandard2.1 is not available on .NET Framework."""
        assert not is_compatible(parse_framework("net48"), parse_framework("netstandard2.1"))
        assert is_compatible(parse_framework("net48"), parse_framework("netstandard2.0"))

    def test_platform_specific_requires_platform(self):
        """Test platform-specific libraries need a matching platform."""
        assert not is_compatible(parse_framework("net6.0"), parse_framework("net6.0-windows"))
        assert is_compatible(parse_framework("net6.0-windows"), parse_framework("net6.0"))

    def test_any_always_compatible(self):
        """Test the any framework is always compatible."""
        assert is_compatible(parse_framework("net48"), ANY_FRAMEWORK)


class TestFrameworkReducer:

    def test_prefers_same_family_highest_version(self):
        """Test the nearest framework prefers the same family."""
        nearest = FrameworkReducer().get_nearest(
            parse_framework("net5.0"), _fw("netstandard2.0", "netcoreapp3.1", "netcoreapp2.1")
        )
        assert str(nearest) == "netcoreapp3.1"

    def test_falls_back_to_netstandard(self):
        """Test fallback to netstandard."""
        nearest = FrameworkReducer().get_nearest(
            parse_framework("net5.0"), _fw("net48", "netstandard1.3", "netstandard2.0")
        )
        assert str(nearest) == "netstandard2.0"

    def test_any_is_last_resort(self):
        """Test the any framework is chosen last."""
        nearest = FrameworkReducer().get_nearest(parse_framework("net5.0"), [ANY_FRAMEWORK] + _fw("netstandard2.0"))
        assert str(nearest) == "netstandard2.0"
        assert FrameworkReducer().get_nearest(parse_framework("net5.0"), [ANY_FRAMEWORK]).is_any

    def test_none_compatible(self):
        """Test no nearest framework when none is compatible."""
        assert FrameworkReducer().get_nearest(parse_framework("net5.0"), _fw("net48", "net6.0")) is None
