"""Data models for versioning and package resolution."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, List, Optional, Tuple

import semantic_version


def version_key(version: semantic_version.Version) -> Tuple:
    """Total ordering key; unlike ``<`` it also orders the revision component."""
    return version.precedence_key


def format_version(version: semantic_version.Version) -> str:
    """Render a version in NuGet normalized form (revision before prerelease)."""
    text = f"{version.major}.{version.minor}.{version.patch}"
    if version.build:
        text += "." + ".".join(version.build)
    if version.prerelease:
        text += "-" + ".".join(version.prerelease)
    return text


@dataclass(frozen=True)
class VersionRange:
    """Interval over versions, optionally floating.

    ``original`` keeps the text the range was parsed from for messages.
    """
    min_version: Optional[semantic_version.Version] = None
    is_min_inclusive: bool = True
    max_version: Optional[semantic_version.Version] = None
    is_max_inclusive: bool = False
    float_prefix: Optional[Tuple[int, ...]] = None
    original: str = ""

    @property
    def has_inclusive_floor(self) -> bool:
        """True when the minimum version itself satisfies the range."""
        return self.min_version is not None and self.is_min_inclusive

    def satisfies(self, version: semantic_version.Version) -> bool:
        """Check whether ``version`` lies inside the interval."""
        key = version_key(version)
        if self.min_version is not None:
            floor = version_key(self.min_version)
            if key < floor or (key == floor and not self.is_min_inclusive):
                return False
        if self.max_version is not None:
            ceiling = version_key(self.max_version)
            if key > ceiling or (key == ceiling and not self.is_max_inclusive):
                return False
        return True

    def _matches_float(self, version: semantic_version.Version) -> bool:
        if not self.float_prefix:
            return True
        parts = (version.major, version.minor, version.patch)
        return parts[:len(self.float_prefix)] == self.float_prefix

    def find_best_match(
        self, versions: Iterable[semantic_version.Version]
    ) -> Optional[semantic_version.Version]:
        """Pick the highest satisfying version.

        Floating ranges prefer versions inside the float prefix and fall back to
        the lowest satisfying version outside of it.
        """
        matching = [v for v in versions if self.satisfies(v)]
        if not matching:
            return None
        if self.float_prefix is not None:
            floating = [v for v in matching if self._matches_float(v)]
            if floating:
                return max(floating, key=version_key)
            return min(matching, key=version_key)
        return max(matching, key=version_key)

    def find_lowest_match(
        self, versions: Iterable[semantic_version.Version]
    ) -> Optional[semantic_version.Version]:
        """Pick the lowest satisfying version."""
        matching = [v for v in versions if self.satisfies(v)]
        if not matching:
            return None
        return min(matching, key=version_key)

    def __str__(self) -> str:
        if self.original:
            return self.original
        low = format_version(self.min_version) if self.min_version else ""
        high = format_version(self.max_version) if self.max_version else ""
        return (
            ("[" if self.is_min_inclusive else "(")
            + f"{low}, {high}"
            + ("]" if self.is_max_inclusive else ")")
        )


ALL_VERSIONS = VersionRange(original="*")


@dataclass(frozen=True, eq=False)
class PackageIdentity:
    """A concrete package build; package ids compare case-insensitively."""
    name: str
    version: semantic_version.Version

    @property
    def key(self) -> str:
        return self.name.lower()

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, PackageIdentity):
            return NotImplemented
        return self.key == other.key and self.version == other.version

    def __hash__(self) -> int:
        return hash((self.key, self.version))

    def __str__(self) -> str:
        return f"{self.name} {format_version(self.version)}"


@dataclass(frozen=True)
class PackageRequest:
    """Caller input: one root package to load."""
    name: str
    version_range: Optional[str] = None
    allow_prerelease: bool = False


@dataclass(frozen=True)
class PackageDependency:
    """A declared edge: dependency name plus acceptable versions."""
    name: str
    version_range: VersionRange = ALL_VERSIONS

    @property
    def key(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class DependencyGroup:
    """Dependencies declared for one target framework (None = any framework)."""
    target_framework: Optional[str]
    dependencies: Tuple[PackageDependency, ...] = ()


@dataclass(frozen=True)
class PackageMetadata:
    """Dependency metadata a feed reports for one identity."""
    identity: PackageIdentity
    groups: Tuple[DependencyGroup, ...] = ()
    listed: bool = True


@dataclass(frozen=True, eq=False)
class DependencyNode:
    """A graph node: identity, filtered edges and the feed it came from."""
    identity: PackageIdentity
    dependencies: Tuple[PackageDependency, ...] = ()
    source: Any = field(default=None, compare=False)

    @property
    def name(self) -> str:
        return self.identity.name

    @property
    def version(self) -> semantic_version.Version:
        return self.identity.version

    def dependency_names(self) -> List[str]:
        return [dep.key for dep in self.dependencies]


class InstallState(Enum):
    """Per-identity progress through the installation traversal."""
    PENDING = "pending"
    DOWNLOADING = "downloading"
    EXTRACTED = "extracted"
    INSTALLED = "installed"
    FAILED = "failed"
