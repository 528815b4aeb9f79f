"""Install resolved packages depth-first and load their modules."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from constants import Constants
from common.errors import ResolverInvariantError, UnsupportedArtifact
from common.logging_utils import Timer, extra_context, is_debug_enabled
from versioning.frameworks import FrameworkReducer, TargetFramework, parse_framework
from versioning.models import DependencyNode, InstallState, PackageIdentity
from .archive import PackageArchive
from .modules import InMemoryModuleLoader, LoadedModule, ModuleLoader

logger = logging.getLogger(__name__)


@dataclass
class _Claim:
    """A package name being installed by one ``install`` call."""
    owner: object
    done: asyncio.Event = field(default_factory=asyncio.Event)


class InstallationTraversal:
    """Downloads, extracts and loads each resolved package once.

    ``installed_names`` and ``modules`` outlive a single ``install`` call so a
    session never loads the same package twice and keeps every module it
    loaded, including those of a call that failed part way. ``states`` records
    the progress of every identity this traversal touched.

    Concurrent ``install`` calls share the bookkeeping: a package being
    installed by one call is awaited by the others, so a dependency is always
    loaded before its dependents.
    """

    def __init__(
        self,
        module_loader: Optional[ModuleLoader] = None,
        reducer: Optional[FrameworkReducer] = None,
    ):
        self.module_loader = module_loader or InMemoryModuleLoader()
        self.reducer = reducer or FrameworkReducer()
        self.states: Dict[PackageIdentity, InstallState] = {}
        self.installed_names: Set[str] = set()
        self.modules: List[LoadedModule] = []
        self._claims: Dict[str, _Claim] = {}
        self._waiting: Dict[object, str] = {}
        self._lock = asyncio.Lock()

    def is_installed(self, name: str) -> bool:
        return name.lower() in self.installed_names

    async def install(
        self, resolved_nodes: Sequence[DependencyNode], target_profile: str
    ) -> List[LoadedModule]:
        """Install ``resolved_nodes`` and return the modules loaded, in install order.

        Each node is downloaded through the feed it was discovered on.

        Raises:
            UnsupportedArtifact: A package has no library for ``target_profile``.
            TransportFailure: A download failed.
        """
        target = parse_framework(target_profile)
        by_name = {node.identity.key: node for node in resolved_nodes}
        modules: List[LoadedModule] = []
        owner = object()
        for node in resolved_nodes:
            await self._install_node(node, by_name, target, modules, owner)
        return modules

    async def _claim(self, key: str, owner: object) -> bool:
        """Take ownership of installing ``key``; False when there is nothing to do."""
        while True:
            async with self._lock:
                if key in self.installed_names:
                    return False
                claim = self._claims.get(key)
                if claim is None:
                    self._claims[key] = _Claim(owner)
                    return True
                # Waits leading back to this call mean a dependency cycle.
                if self._leads_to(claim.owner, owner):
                    return False
                self._waiting[owner] = key
            try:
                await claim.done.wait()
            finally:
                self._waiting.pop(owner, None)
            # The owner may have failed; try again.

    def _leads_to(self, holder: object, owner: object) -> bool:
        seen: Set[object] = set()
        while holder is not None and holder not in seen:
            if holder is owner:
                return True
            seen.add(holder)
            waited = self._waiting.get(holder)
            claim = self._claims.get(waited) if waited is not None else None
            holder = claim.owner if claim is not None else None
        return False

    def _release(self, key: str, loaded: Optional[List[LoadedModule]]) -> None:
        if loaded is not None:
            self.modules.extend(loaded)
            self.installed_names.add(key)
        claim = self._claims.pop(key, None)
        if claim is not None:
            claim.done.set()

    async def _install_node(
        self,
        node: DependencyNode,
        by_name: Dict[str, DependencyNode],
        target: TargetFramework,
        modules: List[LoadedModule],
        owner: object,
    ) -> None:
        key = node.identity.key
        if not await self._claim(key, owner):
            return
        self.states[node.identity] = InstallState.PENDING

        loaded: Optional[List[LoadedModule]] = None
        try:
            archive, nearest = await self._fetch(node, target)
            with archive:
                for dependency in node.dependencies:
                    dependency_node = by_name.get(dependency.key)
                    if dependency_node is not None:
                        await self._install_node(dependency_node, by_name, target, modules, owner)
                loaded = self._extract(node.identity, archive, nearest)
        except BaseException:
            self.states[node.identity] = InstallState.FAILED
            raise
        finally:
            self._release(key, loaded)

        modules.extend(loaded)
        self.states[node.identity] = InstallState.INSTALLED
        logger.info(
            "Installed %s (%d module(s))",
            node.identity,
            len(loaded),
            extra=extra_context(event="install", component="traversal", outcome="installed"),
        )

    async def _fetch(
        self, node: DependencyNode, target: TargetFramework
    ) -> Tuple[PackageArchive, TargetFramework]:
        """Download the package and pick the framework nearest ``target``."""
        identity = node.identity
        if node.source is None:
            raise ResolverInvariantError(f"{identity} has no originating feed")

        self.states[identity] = InstallState.DOWNLOADING
        with Timer() as timer:
            data = await node.source.download(identity)
        if is_debug_enabled(logger):
            logger.debug(
                "Downloaded package",
                extra=extra_context(
                    event="download",
                    component="traversal",
                    target=str(identity),
                    duration_ms=timer.duration_ms(),
                    count=len(data),
                ),
            )

        try:
            archive = PackageArchive(data)
        except ValueError as exc:
            raise UnsupportedArtifact(identity, (), str(target)) from exc
        try:
            frameworks = archive.supported_frameworks()
            nearest = self.reducer.get_nearest(target, frameworks)
            if nearest is None:
                raise UnsupportedArtifact(identity, [str(f) for f in frameworks], str(target))
        except BaseException:
            archive.close()
            raise
        return archive, nearest

    def _extract(
        self, identity: PackageIdentity, archive: PackageArchive, nearest: TargetFramework
    ) -> List[LoadedModule]:
        items = [
            path for path in archive.lib_items(nearest)
            if path.lower().endswith(Constants.MODULE_EXTENSION)
        ]
        extracted = [(path, archive.read(path)) for path in items]
        self.states[identity] = InstallState.EXTRACTED

        # Loaded only once the whole package is extracted.
        return [
            self.module_loader.load(identity, PackageArchive.module_name(path), path, content)
            for path, content in extracted
        ]
