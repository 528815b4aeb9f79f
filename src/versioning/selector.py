"""Choose the concrete version of a requested root package."""

from __future__ import annotations

import logging
from typing import List, Optional

import semantic_version

from common.errors import PackageNotFound
from common.logging_utils import extra_context, is_debug_enabled
from .models import PackageIdentity, VersionRange, version_key
from .parser import parse_range

logger = logging.getLogger(__name__)


def _pick_in_range(
    versions: List[semantic_version.Version], version_range: VersionRange
) -> Optional[semantic_version.Version]:
    best = version_range.find_best_match(versions)
    if best is None or version_range.float_prefix is not None:
        return best
    # Versions equal in precedence except for the revision: keep the one nearest the floor.
    top = version_key(best)
    tied = [v for v in versions if version_range.satisfies(v) and version_key(v)[:4] == top[:4]]
    return min(tied, key=version_key) if tied else best


def _pick_unranged(
    versions: List[semantic_version.Version], allow_prerelease: bool
) -> Optional[semantic_version.Version]:
    """Last listed version whose prerelease flag equals ``allow_prerelease``."""
    for version in reversed(versions):
        if bool(version.prerelease) == allow_prerelease:
            return version
    return None


class VersionSelector:
    """Pick a version for a root request from the first feed that can supply one."""

    async def select(
        self,
        name: str,
        version_range: Optional[str],
        allow_prerelease: bool,
        registry,
    ) -> PackageIdentity:
        """Return the selected identity.

        Raises:
            ConstraintSyntaxError: When ``version_range`` does not parse. Raised
                before any feed is contacted.
            PackageNotFound: When no feed offers a usable version.
        """
        parsed = parse_range(version_range) if version_range else None

        for feed in registry:
            versions = await feed.find_versions(name)
            if not versions:
                logger.debug("%s not listed on %s", name, feed.name)
                continue
            if parsed is not None:
                allowed = [v for v in versions if allow_prerelease or not v.prerelease]
                chosen = _pick_in_range(allowed, parsed)
            else:
                chosen = _pick_unranged(versions, allow_prerelease)
            if chosen is None:
                continue
            identity = PackageIdentity(name, chosen)
            if is_debug_enabled(logger):
                logger.debug(
                    "Selected root version",
                    extra=extra_context(
                        event="select",
                        component="selector",
                        target=str(identity),
                        feed=feed.name,
                        count=len(versions),
                    ),
                )
            return identity

        raise PackageNotFound(name, version_range)
