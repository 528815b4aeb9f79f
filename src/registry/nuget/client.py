"""NuGet V3 feed client: versions, nuspec metadata and nupkg downloads.

Uses the flat-container (``PackageBaseAddress/3.0.0``) resource advertised by
the feed's service index.
"""
from __future__ import annotations

import asyncio
import json
import logging
import urllib.parse
from typing import Any, Dict, List, Optional, Tuple

import semantic_version

from constants import Constants
from common.errors import ConstraintSyntaxError, TransportFailure
from common.http_client import HttpSettings, ResultStatus, Throttle, ThrottledTransport
from common.logging_utils import extra_context, is_debug_enabled, safe_url
from versioning.models import PackageIdentity, PackageMetadata, format_version
from versioning.parser import try_parse_version
from ..feed import PackageFeed
from ..sources import FeedConfig
from .nuspec import parse_nuspec

logger = logging.getLogger(__name__)

ACCEPT_JSON = ("application/json",)
ACCEPT_XML = ("application/xml", "text/xml")
ACCEPT_BINARY = ("application/octet-stream",)


def _find_resource(service_index: Dict[str, Any], types: Tuple[str, ...]) -> Optional[str]:
    """Return the ``@id`` of the first resource whose ``@type`` is in ``types``."""
    resources = service_index.get("resources", [])
    for wanted in types:
        for resource in resources:
            if resource.get("@type") == wanted and resource.get("@id"):
                base = resource["@id"]
                return base if base.endswith("/") else base + "/"
    return None


class NuGetV3Feed(PackageFeed):
    """A NuGet V3 feed reached through the shared throttled transport."""

    def __init__(
        self,
        config: FeedConfig,
        transport: ThrottledTransport,
        settings: Optional[HttpSettings] = None,
    ):
        self.config = config
        self.name = config.display_name
        self.throttle = Throttle(config.max_concurrency)
        self._transport = transport
        self._settings = settings or HttpSettings()
        self._package_base: Optional[str] = None
        self._index_lock = asyncio.Lock()
        self._versions: Dict[str, List[semantic_version.Version]] = {}

    async def _get_body(self, url: str, accept: Tuple[str, ...], ignore_not_found: bool) -> Optional[bytes]:
        request = self._settings.request(url, accept, ignore_not_found)
        async with self._transport.get(request, self.throttle) as result:
            if result.status is not ResultStatus.OK:
                if is_debug_enabled(logger):
                    logger.debug(
                        "Resource absent on feed",
                        extra=extra_context(
                            event="http_response",
                            component="nuget_client",
                            outcome=result.status.value,
                            target=safe_url(url),
                            feed=self.name,
                        ),
                    )
                return None
            return await result.response.read()

    async def _get_json(self, url: str, ignore_not_found: bool = True) -> Optional[Any]:
        body = await self._get_body(url, ACCEPT_JSON, ignore_not_found)
        if body is None:
            return None
        try:
            return json.loads(body)
        except ValueError as exc:
            raise TransportFailure(safe_url(url), 1, "response is not valid JSON") from exc

    async def package_base_address(self) -> str:
        """Resolve (once) the flat-container base URL from the service index."""
        if self._package_base is None:
            async with self._index_lock:
                if self._package_base is None:
                    index = await self._get_json(self.config.url, ignore_not_found=False)
                    if not isinstance(index, dict):
                        raise TransportFailure(safe_url(self.config.url), 1, "empty service index")
                    base = _find_resource(index, Constants.PACKAGE_BASE_ADDRESS_TYPES)
                    if base is None:
                        raise TransportFailure(
                            safe_url(self.config.url),
                            1,
                            "service index does not advertise PackageBaseAddress/3.0.0",
                        )
                    self._package_base = base
        return self._package_base

    @staticmethod
    def _quote(value: str) -> str:
        return urllib.parse.quote(value.lower(), safe="")

    async def _package_url(self, identity: PackageIdentity, file_name: str) -> str:
        base = await self.package_base_address()
        version = self._quote(format_version(identity.version))
        return f"{base}{self._quote(identity.name)}/{version}/{self._quote(file_name)}"

    async def find_versions(self, package_id: str) -> List[semantic_version.Version]:
        key = package_id.lower()
        if key in self._versions:
            return list(self._versions[key])
        base = await self.package_base_address()
        data = await self._get_json(f"{base}{self._quote(package_id)}/index.json")
        versions: List[semantic_version.Version] = []
        if isinstance(data, dict):
            for raw in data.get("versions", []):
                parsed = try_parse_version(str(raw))
                if parsed is None:
                    logger.debug("Skipping unparseable version %r of %s on %s", raw, package_id, self.name)
                    continue
                versions.append(parsed)
        self._versions[key] = versions
        return list(versions)

    async def get_dependencies(self, identity: PackageIdentity) -> Optional[PackageMetadata]:
        url = await self._package_url(identity, f"{identity.name}.nuspec")
        body = await self._get_body(url, ACCEPT_XML, ignore_not_found=True)
        if body is None:
            return None
        try:
            nuspec = parse_nuspec(body)
        except ConstraintSyntaxError:
            raise
        except ValueError as exc:
            raise TransportFailure(safe_url(url), 1, str(exc)) from exc
        return nuspec.to_metadata(identity)

    async def download(self, identity: PackageIdentity) -> bytes:
        version = format_version(identity.version)
        url = await self._package_url(identity, f"{identity.name}.{version}.nupkg")
        body = await self._get_body(url, ACCEPT_BINARY, ignore_not_found=False)
        if body is None:
            raise TransportFailure(safe_url(url), 1, "empty package download")
        logger.debug("Downloaded %s (%d bytes) from %s", identity, len(body), self.name)
        return body
