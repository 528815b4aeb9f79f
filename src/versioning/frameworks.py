"""Target framework monikers and nearest-framework reduction.

A target runtime profile is expressed as a NuGet target framework moniker
(``net5.0``, ``netcoreapp3.1``, ``netstandard2.0``, ``net472``). Packages ship
one library folder per framework; ``FrameworkReducer.get_nearest`` picks the
folder that best fits the consumer.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

NET_CORE_APP = ".NETCoreApp"
NET_STANDARD = ".NETStandard"
NET_FRAMEWORK = ".NETFramework"
ANY = "Any"

_MODERN_RE = re.compile(r"^net(\d+)\.(\d+)(?:-([a-z][a-z0-9.]*))?$")
_CORE_RE = re.compile(r"^netcoreapp(\d+)\.(\d+)$")
_STANDARD_RE = re.compile(r"^netstandard(\d+)\.(\d+)$")
_FRAMEWORK_RE = re.compile(r"^net(\d)(\d)(\d)?$")
_LONG_RE = re.compile(r"^\.net(coreapp|standard|framework)(\d+(?:\.\d+)*)$")
_LONG_NAMES = {"coreapp": NET_CORE_APP, "standard": NET_STANDARD, "framework": NET_FRAMEWORK}

# Highest .NET Standard each runtime line implements.
_CORE_STANDARD = (
    ((2, 1), (2, 1)),
    ((2, 0), (2, 0)),
    ((1, 0), (1, 6)),
)
_FRAMEWORK_STANDARD = (
    ((4, 6, 1), (2, 0)),
    ((4, 6), (1, 3)),
    ((4, 5, 1), (1, 2)),
    ((4, 5), (1, 1)),
)


def _pad(version: Tuple[int, ...]) -> Tuple[int, ...]:
    return tuple(version) + (0,) * (3 - len(version))


@dataclass(frozen=True)
class TargetFramework:
    """A parsed framework moniker; ``folder`` keeps the original spelling."""
    framework: str
    version: Tuple[int, ...] = ()
    platform: Optional[str] = None
    folder: str = ""

    @property
    def is_any(self) -> bool:
        return self.framework == ANY

    @property
    def is_known(self) -> bool:
        return self.framework in (NET_CORE_APP, NET_STANDARD, NET_FRAMEWORK, ANY)

    def __str__(self) -> str:
        return self.folder or self.framework


ANY_FRAMEWORK = TargetFramework(ANY, (), None, "any")


def parse_framework(folder: Optional[str]) -> TargetFramework:
    """Parse a framework folder name or moniker.

    ``None``, empty and ``any`` map to the framework-agnostic group. Names that
    are not recognised are kept verbatim and only match themselves.
    """
    raw = (folder or "").strip()
    name = raw.lower()
    if name in ("", "any"):
        return TargetFramework(ANY, (), None, raw or "any")
    match = _MODERN_RE.match(name)
    if match and int(match.group(1)) >= 5:
        # net6.0-windows7.0 targets the windows platform; its version is ignored
        platform = re.sub(r"[\d.]+$", "", match.group(3)) if match.group(3) else None
        return TargetFramework(
            NET_CORE_APP, (int(match.group(1)), int(match.group(2))), platform or None, raw
        )
    match = _LONG_RE.match(name)
    if match:
        parts = tuple(int(p) for p in match.group(2).split("."))
        while len(parts) > 2 and parts[-1] == 0:
            parts = parts[:-1]
        return TargetFramework(_LONG_NAMES[match.group(1)], parts, None, raw)
    match = _CORE_RE.match(name)
    if match:
        return TargetFramework(NET_CORE_APP, (int(match.group(1)), int(match.group(2))), None, raw)
    match = _STANDARD_RE.match(name)
    if match:
        return TargetFramework(NET_STANDARD, (int(match.group(1)), int(match.group(2))), None, raw)
    match = _FRAMEWORK_RE.match(name)
    if match:
        parts = tuple(int(p) for p in match.groups() if p is not None)
        return TargetFramework(NET_FRAMEWORK, parts, None, raw)
    return TargetFramework(name, (), None, raw)


def _supported_standard(target: TargetFramework) -> Optional[Tuple[int, ...]]:
    table = _CORE_STANDARD if target.framework == NET_CORE_APP else _FRAMEWORK_STANDARD
    if target.framework not in (NET_CORE_APP, NET_FRAMEWORK):
        return None
    for minimum, standard in table:
        if _pad(target.version) >= _pad(minimum):
            return standard
    return None


def is_compatible(target: TargetFramework, candidate: TargetFramework) -> bool:
    """Whether a library built for ``candidate`` can run on ``target``."""
    if candidate.is_any:
        return True
    if candidate.platform and candidate.platform != target.platform:
        return False
    if not candidate.is_known or not target.is_known:
        return candidate.framework == target.framework and candidate.version == target.version
    if candidate.framework == target.framework:
        return _pad(candidate.version) <= _pad(target.version)
    if candidate.framework == NET_STANDARD:
        standard = _supported_standard(target)
        return standard is not None and _pad(candidate.version) <= _pad(standard)
    return False


class FrameworkReducer:
    """Reduce a set of frameworks to the one nearest a target."""

    def get_nearest(
        self, target: TargetFramework, candidates: Iterable[TargetFramework]
    ) -> Optional[TargetFramework]:
        """Return the closest equal-or-lower compatible framework, or None.

        Preference: same framework family (matching platform first), then
        .NET Standard, then framework-agnostic; highest version within a tier.
        """
        best = None
        best_key = None
        for candidate in candidates:
            if not is_compatible(target, candidate):
                continue
            if candidate.is_any:
                tier = 0
            elif candidate.framework == target.framework:
                tier = 2
            else:
                tier = 1
            platform_match = 1 if candidate.platform and candidate.platform == target.platform else 0
            key = (tier, platform_match, _pad(candidate.version))
            if best_key is None or key > best_key:
                best, best_key = candidate, key
        return best
