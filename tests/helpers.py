"""Shared test doubles: in-memory feeds and package archives."""

import asyncio
import io
import zipfile
from xml.sax.saxutils import quoteattr
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from aiohttp import web

from common.errors import TransportFailure
from registry.feed import PackageFeed
from versioning.models import (
    DependencyGroup,
    DependencyNode,
    PackageDependency,
    PackageIdentity,
    PackageMetadata,
    format_version,
)
from versioning.parser import parse_range, parse_version

NUSPEC_NS = "http://schemas.microsoft.com/packaging/2013/05/nuspec.xsd"


def ident(name: str, version: str) -> PackageIdentity:
    return PackageIdentity(name, parse_version(version))


def dep(name: str, version_range: str) -> PackageDependency:
    return PackageDependency(name, parse_range(version_range))


def node(name: str, version: str, deps: Sequence[Tuple[str, str]] = (), source=None) -> DependencyNode:
    return DependencyNode(ident(name, version), tuple(dep(n, r) for n, r in deps), source)


def nuspec_xml(package_id: str, version: str, groups: Sequence[DependencyGroup] = ()) -> bytes:
    parts = [
        '<?xml version="1.0" encoding="utf-8"?>',
        f'<package xmlns="{NUSPEC_NS}"><metadata>',
        f"<id>{package_id}</id><version>{version}</version>",
    ]
    if groups:
        parts.append("<dependencies>")
        for group in groups:
            attr = f' targetFramework="{group.target_framework}"' if group.target_framework else ""
            parts.append(f"<group{attr}>")
            for item in group.dependencies:
                parts.append(
                    f"<dependency id={quoteattr(item.name)} version={quoteattr(str(item.version_range))} />"
                )
            parts.append("</group>")
        parts.append("</dependencies>")
    parts.append("</metadata></package>")
    return "".join(parts).encode("utf-8")


def build_nupkg(
    package_id: str,
    version: str,
    files: Optional[Dict[str, List[str]]] = None,
    groups: Sequence[DependencyGroup] = (),
    root: str = "lib",
) -> bytes:
    """Zip a package with one entry per file under ``<root>/<framework>/``."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr(f"{package_id}.nuspec", nuspec_xml(package_id, version, groups))
        for framework, names in (files or {}).items():
            for name in names:
                archive.writestr(f"{root}/{framework}/{name}", f"{package_id}:{name}".encode())
        archive.writestr("[Content_Types].xml", b"<Types />")
    return buffer.getvalue()


class FakeFeed(PackageFeed):
    """In-memory feed that records every call made to it."""

    def __init__(self, name: str = "fake"):
        self.name = name
        self.listed: Dict[str, list] = {}
        self.metadata: Dict[PackageIdentity, PackageMetadata] = {}
        self.archives: Dict[PackageIdentity, bytes] = {}
        self.calls: List[Tuple[str, str]] = []

    def list_versions(self, name: str, versions: Iterable[str]) -> None:
        """List versions without publishing metadata or archives for them."""
        self.listed.setdefault(name.lower(), []).extend(parse_version(v) for v in versions)

    def add(
        self,
        name: str,
        version: str,
        dependencies: Sequence[Tuple[str, str]] = (),
        framework: Optional[str] = "netstandard2.0",
        files: Optional[Dict[str, List[str]]] = None,
    ) -> PackageIdentity:
        identity = ident(name, version)
        self.list_versions(name, [version])
        groups = (DependencyGroup(framework, tuple(dep(n, r) for n, r in dependencies)),)
        self.metadata[identity] = PackageMetadata(identity, groups)
        if files is None:
            files = {framework or "netstandard2.0": [f"{name}.dll"]}
        self.archives[identity] = build_nupkg(name, version, files, groups)
        return identity

    async def find_versions(self, package_id):
        self.calls.append(("versions", package_id))
        return list(self.listed.get(package_id.lower(), []))

    async def get_dependencies(self, identity):
        self.calls.append(("metadata", str(identity)))
        return self.metadata.get(identity)

    async def download(self, identity):
        self.calls.append(("download", str(identity)))
        if identity not in self.archives:
            raise TransportFailure(f"fake://{self.name}/{identity}", 1, "HTTP 404", status=404)
        return self.archives[identity]


class FeedServer:
    """Serves a ``FakeFeed`` over the NuGet V3 flat-container protocol."""

    def __init__(self, feed: FakeFeed, delay: float = 0.0):
        self.feed = feed
        self.delay = delay
        self.hits: List[str] = []

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/v3/index.json", self._index)
        app.router.add_get("/flat/{id}/index.json", self._versions)
        app.router.add_get("/flat/{id}/{version}/{file}", self._file)
        return app

    def _identity(self, package_id: str, version: str) -> Optional[PackageIdentity]:
        for identity in self.feed.metadata:
            if identity.key == package_id and format_version(identity.version).lower() == version:
                return identity
        return None

    async def _index(self, request):
        base = str(request.url.origin()) + "/flat/"
        return web.json_response(
            {"version": "3.0.0", "resources": [{"@id": base, "@type": "PackageBaseAddress/3.0.0"}]}
        )

    async def _versions(self, request):
        self.hits.append(request.path)
        versions = self.feed.listed.get(request.match_info["id"])
        if versions is None:
            return web.Response(status=404)
        return web.json_response({"versions": [format_version(v).lower() for v in versions]})

    async def _file(self, request):
        self.hits.append(request.path)
        if self.delay:
            await asyncio.sleep(self.delay)
        identity = self._identity(request.match_info["id"], request.match_info["version"])
        if identity is None:
            return web.Response(status=404)
        if request.match_info["file"].endswith(".nuspec"):
            groups = self.feed.metadata[identity].groups
            body = nuspec_xml(identity.name, format_version(identity.version), groups)
            return web.Response(body=body, content_type="application/xml")
        return web.Response(body=self.feed.archives[identity], content_type="application/octet-stream")
