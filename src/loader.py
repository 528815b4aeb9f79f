"""Session entry point: resolve, select and install one package at a time.

A ``LoaderSession`` owns the shared transport, the configured feeds and the
record of what has been installed; every ``load_package`` call runs the
selector, graph builder, resolver and installation traversal in turn.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from constants import Constants, _load_yaml_config
from common.errors import AlreadyInstalled, PackageNotFound
from common.http_client import HttpSettings, ThrottledTransport
from common.logging_utils import extra_context, is_debug_enabled
from install.modules import LoadedModule, ModuleLoader
from install.traversal import InstallationTraversal
from registry.host_packages import DEFAULT_HOST_PACKAGES, HostExclusionFilter
from registry.sources import FeedConfig, SourceRegistry, default_feed_configs
from resolution.graph import DependencyGraphBuilder, NodeSet
from resolution.resolver import ConstraintResolver
from versioning.models import PackageIdentity, PackageRequest
from versioning.selector import VersionSelector

logger = logging.getLogger(__name__)


@dataclass
class PlugloadConfig:
    """Resolved configuration: defaults, then YAML, then CLI flags."""

    feeds: List[FeedConfig] = field(default_factory=default_feed_configs)
    target_profile: str = Constants.DEFAULT_TARGET_PROFILE
    http: HttpSettings = field(default_factory=HttpSettings)
    host_packages: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlugloadConfig":
        """Build from a parsed YAML mapping; missing keys keep their defaults."""
        config = cls()
        feeds = data.get("feeds")
        if feeds:
            config.feeds = [FeedConfig.from_dict(entry) for entry in feeds]
        if data.get("target_profile"):
            config.target_profile = str(data["target_profile"])
        http = data.get("http") or {}
        if http:
            config.http = HttpSettings(
                request_timeout=float(http.get("request_timeout", Constants.REQUEST_TIMEOUT)),
                download_timeout=float(http.get("download_timeout", Constants.DOWNLOAD_TIMEOUT)),
                max_tries=int(http.get("max_tries", Constants.HTTP_RETRY_MAX)),
            )
        config.host_packages = [str(name) for name in data.get("host_packages") or []]
        return config

    @classmethod
    def load(cls, path: Optional[str] = None) -> "PlugloadConfig":
        return cls.from_dict(_load_yaml_config(path))

    @classmethod
    def from_args(cls, args: Any) -> "PlugloadConfig":
        """Create config from CLI arguments layered over the YAML file."""
        config = cls.load(getattr(args, "CONFIG", None))
        sources = getattr(args, "SOURCES", None)
        if sources:
            config.feeds = [FeedConfig(url) for url in sources]
        limit = getattr(args, "MAX_CONCURRENCY", None)
        if limit is not None:
            config.feeds = [
                FeedConfig(feed.url, feed.name, int(limit)) for feed in config.feeds
            ]
        if getattr(args, "PROFILE", None):
            config.target_profile = args.PROFILE
        return config

    def exclusion_filter(self) -> HostExclusionFilter:
        if not self.host_packages:
            return HostExclusionFilter(DEFAULT_HOST_PACKAGES)
        return HostExclusionFilter(DEFAULT_HOST_PACKAGES.with_names(self.host_packages))


@dataclass
class LoadResult:
    """What one ``load_package`` call produced."""
    modules: List[LoadedModule]
    resolved_version: PackageIdentity
    resolved_packages: List[PackageIdentity]


class LoaderSession:
    """Loads packages into the current process, each package at most once.

    Use as an async context manager so the HTTP session is closed::

        async with LoaderSession(PlugloadConfig()) as session:
            result = await session.load_package(PackageRequest("Newtonsoft.Json", "13.0.1"))
    """

    def __init__(
        self,
        config: Optional[PlugloadConfig] = None,
        registry: Optional[SourceRegistry] = None,
        transport: Optional[ThrottledTransport] = None,
        module_loader: Optional[ModuleLoader] = None,
    ):
        self.config = config or PlugloadConfig()
        self.transport = transport or ThrottledTransport()
        self.registry = registry or SourceRegistry.from_configs(
            self.config.feeds, self.transport, self.config.http
        )
        self.exclusion_filter = self.config.exclusion_filter()
        self.selector = VersionSelector()
        self.builder = DependencyGraphBuilder(self.exclusion_filter)
        self.resolver = ConstraintResolver()
        self.traversal = InstallationTraversal(module_loader)

    @property
    def modules(self) -> List[LoadedModule]:
        """Every module loaded in this session, in load order."""
        return list(self.traversal.modules)

    @property
    def installed_packages(self) -> Sequence[str]:
        return sorted(self.traversal.installed_names)

    async def load_package(
        self, request: PackageRequest, target_profile: Optional[str] = None
    ) -> LoadResult:
        """Resolve and install ``request`` plus its dependency closure.

        Raises:
            AlreadyInstalled: The package was installed earlier in this session.
            ConstraintSyntaxError: The requested range does not parse.
            PackageNotFound: No feed offers a matching version.
            ResolutionConflict: Dependency ranges cannot be satisfied together.
            UnsupportedArtifact: A package has no library for the profile.
            TransportFailure: A feed could not be reached.
        """
        if self.traversal.is_installed(request.name):
            raise AlreadyInstalled(request.name)
        profile = target_profile or self.config.target_profile

        root = await self.selector.select(
            request.name, request.version_range, request.allow_prerelease, self.registry
        )
        nodes = NodeSet()
        await self.builder.expand(root, profile, self.registry, self.exclusion_filter, nodes)
        if root not in nodes:
            raise PackageNotFound(request.name, request.version_range)

        resolved = self.resolver.resolve([request], nodes, {request.name: root})
        if is_debug_enabled(logger):
            logger.debug(
                "Resolved install set",
                extra=extra_context(
                    event="resolve",
                    component="loader",
                    target=str(root),
                    count=len(resolved),
                ),
            )
        resolved_nodes = self.resolver.correlate(resolved, nodes)
        modules = await self.traversal.install(resolved_nodes, profile)
        logger.info("Loaded %s with %d package(s)", root, len(resolved))
        return LoadResult(modules, root, resolved)

    async def close(self) -> None:
        await self.transport.close()

    async def __aenter__(self) -> "LoaderSession":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
