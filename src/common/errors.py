"""Error taxonomy surfaced to callers of the loader."""
from __future__ import annotations

from typing import Iterable, Optional, Sequence, Tuple


class PlugloadError(Exception):
    """Base class for every user-facing failure."""


class PackageNotFound(PlugloadError):
    """No feed produced a matching version for a package."""

    def __init__(self, name: str, version_range: Optional[str] = None):
        self.name = name
        self.version_range = version_range
        if version_range:
            message = f"Cannot find package {name} matching {version_range}."
        else:
            message = f"Cannot find package {name}."
        super().__init__(message)


class ConstraintSyntaxError(PlugloadError, ValueError):
    """A version or version-range string failed to parse."""

    def __init__(self, value: str, reason: str = "invalid syntax"):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid version range '{value}': {reason}.")


class ResolutionConflict(PlugloadError):
    """No assignment satisfies every dependency range."""

    def __init__(self, package: str, ranges: Iterable[Tuple[str, str]]):
        self.package = package
        # (dependent, range) pairs
        self.ranges: Sequence[Tuple[str, str]] = tuple(ranges)
        detail = ", ".join(f"{rng} (required by {dependent})" for dependent, rng in self.ranges)
        super().__init__(
            f"Unable to resolve a version of {package} satisfying: {detail or 'no candidates'}."
        )


class UnsupportedArtifact(PlugloadError):
    """A package has no binary variant compatible with the target profile."""

    def __init__(self, identity, frameworks: Iterable[str] = (), target: Optional[str] = None):
        self.identity = identity
        self.frameworks = tuple(frameworks)
        self.target = target
        offered = ", ".join(self.frameworks) or "none"
        suffix = f" for {target}" if target else ""
        super().__init__(
            f"Package {identity} has no compatible library{suffix} (offers: {offered})."
        )


class AlreadyInstalled(PlugloadError):
    """The package name is already installed in this session."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Package {name} is already installed.")


class TransportFailure(PlugloadError):
    """A feed request failed after exhausting retries."""

    def __init__(self, url: str, attempts: int, reason: str, status: Optional[int] = None):
        self.url = url
        self.attempts = attempts
        self.reason = reason
        self.status = status
        super().__init__(f"Request to {url} failed after {attempts} attempt(s): {reason}")


class ResolverInvariantError(RuntimeError):
    """Internal consistency violation between resolver output and the node set."""
