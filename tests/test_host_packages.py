"""Tests for the host-provided package table."""

import dataclasses

import pytest

from registry.host_packages import DEFAULT_HOST_PACKAGES, HostExclusionFilter, HostPackageTable


class TestHostPackageTable:

    def test_default_table_contents(self):
        """Test the default host table contents."""
        assert DEFAULT_HOST_PACKAGES.version.startswith("netcoreapp3.1")
        assert "System.Runtime" in DEFAULT_HOST_PACKAGES
        assert "Microsoft.CSharp" in DEFAULT_HOST_PACKAGES
        assert "Newtonsoft.Json" not in DEFAULT_HOST_PACKAGES
        assert len(DEFAULT_HOST_PACKAGES) > 100

    def test_lookup_is_case_insensitive(self):
        """Test lookups ignore case."""
        table = HostPackageTable("test", frozenset({"System.Memory"}))
        assert "system.memory" in table
        assert "SYSTEM.MEMORY" in table

    def test_table_is_immutable(self):
        """Test the table cannot be modified."""
        with pytest.raises(dataclasses.FrozenInstanceError):
            DEFAULT_HOST_PACKAGES.names = frozenset()

    def test_with_names_extends_copy(self):
        """Test extending a table returns a new table."""
        table = HostPackageTable("v1", frozenset({"A"}))
        extended = table.with_names(["B"])
        assert "B" in extended and "A" in extended
        assert "B" not in table
        assert extended.version == "v1+custom"


class TestHostExclusionFilter:

    def test_default_filter(self):
        """Test the default exclusion filter."""
        host = HostExclusionFilter()
        assert host.is_provided_by_host("System.Runtime")
        assert not host.is_provided_by_host("Serilog")

    def test_substituted_table(self):
        """Test a filter over a substituted table."""
        host = HostExclusionFilter(HostPackageTable("tiny", frozenset({"Only.This"})))
        assert host.is_provided_by_host("only.this")
        assert not host.is_provided_by_host("System.Runtime")

