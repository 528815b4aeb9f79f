"""Dependency graph expansion over the configured feeds."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import semantic_version

from common.logging_utils import extra_context, is_debug_enabled
from registry.host_packages import HostExclusionFilter
from versioning.frameworks import FrameworkReducer, TargetFramework, parse_framework
from versioning.models import (
    DependencyGroup,
    DependencyNode,
    PackageDependency,
    PackageIdentity,
    PackageMetadata,
)

logger = logging.getLogger(__name__)


class NodeSet:
    """Identity -> node mapping; append-only with unique keys."""

    def __init__(self):
        self._nodes: Dict[PackageIdentity, DependencyNode] = {}
        self._lock = asyncio.Lock()

    async def add(self, node: DependencyNode) -> bool:
        """Insert ``node`` unless its identity is present; return True when inserted."""
        async with self._lock:
            if node.identity in self._nodes:
                return False
            self._nodes[node.identity] = node
            return True

    def __contains__(self, identity: object) -> bool:
        return identity in self._nodes

    def __getitem__(self, identity: PackageIdentity) -> DependencyNode:
        return self._nodes[identity]

    def get(self, identity: PackageIdentity) -> Optional[DependencyNode]:
        return self._nodes.get(identity)

    def __iter__(self) -> Iterator[DependencyNode]:
        return iter(list(self._nodes.values()))

    def __len__(self) -> int:
        return len(self._nodes)

    def nodes_for(self, name: str) -> List[DependencyNode]:
        key = name.lower()
        return [node for identity, node in self._nodes.items() if identity.key == key]


def select_dependency_group(
    groups: Sequence[DependencyGroup],
    target: TargetFramework,
    reducer: Optional[FrameworkReducer] = None,
) -> Tuple[PackageDependency, ...]:
    """Dependencies of the group nearest ``target``; empty when none applies."""
    if not groups:
        return ()
    reducer = reducer or FrameworkReducer()
    by_framework = {parse_framework(group.target_framework): group for group in groups}
    nearest = reducer.get_nearest(target, by_framework.keys())
    if nearest is None:
        return ()
    return by_framework[nearest].dependencies


class DependencyGraphBuilder:
    """Walks dependency metadata from a root identity into a ``NodeSet``.

    Each dependency is visited at the minimum version of its declared range;
    host-provided packages are pruned before they become edges.
    """

    def __init__(
        self,
        exclusion_filter: Optional[HostExclusionFilter] = None,
        reducer: Optional[FrameworkReducer] = None,
    ):
        self.exclusion_filter = exclusion_filter or HostExclusionFilter()
        self.reducer = reducer or FrameworkReducer()

    async def _fetch_metadata(self, identity: PackageIdentity, registry):
        for feed in registry:
            metadata: Optional[PackageMetadata] = await feed.get_dependencies(identity)
            if metadata is not None:
                return metadata, feed
        return None, None

    async def _entry_version(
        self, dependency: PackageDependency, registry
    ) -> Optional[semantic_version.Version]:
        """Version at which a dependency edge is expanded."""
        version_range = dependency.version_range
        if version_range.has_inclusive_floor:
            return version_range.min_version
        for feed in registry:
            lowest = version_range.find_lowest_match(await feed.find_versions(dependency.name))
            if lowest is not None:
                return lowest
        return None

    async def expand(
        self,
        root: PackageIdentity,
        target_profile: str,
        registry,
        exclusion_filter: Optional[HostExclusionFilter] = None,
        nodes: Optional[NodeSet] = None,
    ) -> NodeSet:
        """Add ``root`` and everything reachable from it to ``nodes``.

        Identities no feed has metadata for are left out. Transport failures
        propagate.
        """
        exclusion_filter = exclusion_filter or self.exclusion_filter
        nodes = nodes if nodes is not None else NodeSet()
        target = parse_framework(target_profile)
        visited = set()
        worklist: List[PackageIdentity] = [root]

        while worklist:
            identity = worklist.pop()
            if identity in visited or identity in nodes:
                continue
            visited.add(identity)

            metadata, feed = await self._fetch_metadata(identity, registry)
            if metadata is None:
                if is_debug_enabled(logger):
                    logger.debug(
                        "No metadata for package; omitting",
                        extra=extra_context(
                            event="expand", component="graph", outcome="missing", target=str(identity)
                        ),
                    )
                continue

            declared = select_dependency_group(metadata.groups, target, self.reducer)
            edges = []
            for dependency in declared:
                if exclusion_filter.is_provided_by_host(dependency.name):
                    logger.debug("Dropping host-provided dependency %s of %s", dependency.name, identity)
                    continue
                edges.append(dependency)

            inserted = await nodes.add(DependencyNode(identity, tuple(edges), feed))
            if not inserted:
                continue

            pending = []
            for dependency in edges:
                version = await self._entry_version(dependency, registry)
                if version is None:
                    logger.debug(
                        "No version of %s satisfies %s (required by %s)",
                        dependency.name,
                        dependency.version_range,
                        identity,
                    )
                    continue
                pending.append(PackageIdentity(dependency.name, version))
            # Reversed so the first declared dependency is expanded first.
            worklist.extend(reversed(pending))

        return nodes
