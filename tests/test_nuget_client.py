"""Tests for the NuGet V3 feed client against an in-process fake feed."""

import asyncio

import pytest

aiohttp_mod = pytest.importorskip("aiohttp")

from aiohttp import web
from aiohttp.test_utils import TestServer

from common.errors import ConstraintSyntaxError, TransportFailure
from common.http_client import SESSION_ID_HEADER, HttpSettings, ThrottledTransport
from registry.nuget.client import NuGetV3Feed
from registry.sources import FeedConfig, SourceRegistry
from versioning.models import DependencyGroup, format_version
from helpers import build_nupkg, dep, ident, nuspec_xml


class _FakeNuGetServer:
    """Serves a service index and a flat container for a few packages."""

    def __init__(self, advertise_base=True):
        self.advertise_base = advertise_base
        self.versions = {"newtonsoft.json": ["12.0.3", "13.0.1", "13.0.2-beta1", "not.a.version"]}
        self.nuspecs = {
            ("newtonsoft.json", "13.0.1"): nuspec_xml(
                "Newtonsoft.Json",
                "13.0.1",
                (
                    DependencyGroup("net45", ()),
                    DependencyGroup("netstandard2.0", (dep("Microsoft.CSharp", "4.3.0"),)),
                ),
            )
        }
        self.packages = {
            ("newtonsoft.json", "13.0.1"): build_nupkg(
                "Newtonsoft.Json", "13.0.1", {"netstandard2.0": ["Newtonsoft.Json.dll"]}
            )
        }
        self.hits = []
        self.session_ids = []
        self.fail_next = 0

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/v3/index.json", self._index)
        app.router.add_get("/flat/{id}/index.json", self._versions)
        app.router.add_get("/flat/{id}/{version}/{file}", self._file)
        return app

    def _record(self, request):
        self.hits.append(request.path)
        self.session_ids.append(request.headers.get(SESSION_ID_HEADER))

    async def _index(self, request):
        self._record(request)
        resources = [{"@id": "https://example.test/query", "@type": "SearchQueryService"}]
        if self.advertise_base:
            base = str(request.url.origin()) + "/flat/"
            resources.append({"@id": base, "@type": "PackageBaseAddress/3.0.0"})
        return web.json_response({"version": "3.0.0", "resources": resources})

    async def _versions(self, request):
        self._record(request)
        if self.fail_next:
            self.fail_next -= 1
            return web.Response(status=503)
        versions = self.versions.get(request.match_info["id"])
        if versions is None:
            return web.Response(status=404)
        return web.json_response({"versions": versions})

    async def _file(self, request):
        self._record(request)
        key = (request.match_info["id"], request.match_info["version"])
        name = request.match_info["file"]
        if name.endswith(".nuspec") and key in self.nuspecs:
            return web.Response(body=self.nuspecs[key], content_type="application/xml")
        if name.endswith(".nupkg") and key in self.packages:
            return web.Response(body=self.packages[key], content_type="application/octet-stream")
        return web.Response(status=404)


def _with_feed(fake, scenario, max_concurrency=None):
    """Run ``scenario(feed)`` against ``fake`` served on a local port."""

    async def _run():
        async with TestServer(fake.app()) as server:
            transport = ThrottledTransport(retry_base_delay=0)
            async with transport:
                config = FeedConfig(str(server.make_url("/v3/index.json")), "local", max_concurrency)
                feed = NuGetV3Feed(config, transport, HttpSettings(request_timeout=5, download_timeout=5))
                return await scenario(feed)

    return asyncio.run(_run())


class TestFindVersions:

    def test_lists_parseable_versions(self):
        """Test listing skips unparseable versions."""
        fake = _FakeNuGetServer()

        async def scenario(feed):
            return await feed.find_versions("Newtonsoft.Json")

        versions = _with_feed(fake, scenario)
        assert [format_version(v) for v in versions] == ["12.0.3", "13.0.1", "13.0.2-beta1"]
        assert "/flat/newtonsoft.json/index.json" in fake.hits

    def test_unknown_package_is_empty(self):
        """Test an unknown package lists no versions."""
        async def scenario(feed):
            return await feed.find_versions("Does.Not.Exist")

        assert _with_feed(_FakeNuGetServer(), scenario) == []

    def test_versions_and_service_index_cached(self):
        """Test versions and the service index are cached."""
        fake = _FakeNuGetServer()

        async def scenario(feed):
            await feed.find_versions("Newtonsoft.Json")
            await feed.find_versions("newtonsoft.json")

        _with_feed(fake, scenario)
        assert fake.hits.count("/v3/index.json") == 1
        assert fake.hits.count("/flat/newtonsoft.json/index.json") == 1

    def test_transient_status_retried(self):
        """Test transient statuses are retried."""
        fake = _FakeNuGetServer()
        fake.fail_next = 1

        async def scenario(feed):
            return await feed.find_versions("Newtonsoft.Json")

        assert len(_with_feed(fake, scenario)) == 3
        assert fake.hits.count("/flat/newtonsoft.json/index.json") == 2

    def test_missing_package_base_address(self):
        """Test handling when the package base address is missing."""
        async def scenario(feed):
            return await feed.find_versions("Newtonsoft.Json")

        with pytest.raises(TransportFailure) as exc_info:
            _with_feed(_FakeNuGetServer(advertise_base=False), scenario)
        assert "PackageBaseAddress" in str(exc_info.value)

    def test_session_header_sent(self):
        """Test every request carries the session id."""
        fake = _FakeNuGetServer()

        async def scenario(feed):
            await feed.find_versions("Newtonsoft.Json")

        _with_feed(fake, scenario)
        session_ids = set(fake.session_ids)
        assert len(session_ids) == 1 and None not in session_ids


class TestMetadataAndDownload:

    def test_dependency_groups(self):
        """Test dependency groups from the nuspec."""
        async def scenario(feed):
            return await feed.get_dependencies(ident("Newtonsoft.Json", "13.0.1"))

        metadata = _with_feed(_FakeNuGetServer(), scenario)
        assert metadata.identity == ident("Newtonsoft.Json", "13.0.1")
        frameworks = [g.target_framework for g in metadata.groups]
        assert frameworks == ["net45", "netstandard2.0"]
        assert metadata.groups[1].dependencies[0].name == "Microsoft.CSharp"

    def test_invalid_dependency_range_is_a_syntax_error(self):
        """Test an invalid range in a nuspec is reported as a syntax error."""
        fake = _FakeNuGetServer()
        fake.nuspecs[("broken", "1.0.0")] = (
            b"<package><metadata><id>Broken</id><version>1.0.0</version>"
            b'<dependencies><dependency id="Lib" version="[2.0,1.0]" /></dependencies>'
            b"</metadata></package>"
        )

        async def scenario(feed):
            return await feed.get_dependencies(ident("Broken", "1.0.0"))

        with pytest.raises(ConstraintSyntaxError):
            _with_feed(fake, scenario)

    def test_missing_metadata_is_none(self):
        """Test a missing nuspec yields no metadata."""
        async def scenario(feed):
            return await feed.get_dependencies(ident("Newtonsoft.Json", "1.0.0"))

        assert _with_feed(_FakeNuGetServer(), scenario) is None

    def test_download(self):
        """Test package download."""
        fake = _FakeNuGetServer()

        async def scenario(feed):
            return await feed.download(ident("Newtonsoft.Json", "13.0.1"))

        data = _with_feed(fake, scenario)
        assert data == fake.packages[("newtonsoft.json", "13.0.1")]
        assert "/flat/newtonsoft.json/13.0.1/newtonsoft.json.13.0.1.nupkg" in fake.hits

    def test_missing_download_raises(self):
        """Test a missing package download raises."""
        async def scenario(feed):
            return await feed.download(ident("Newtonsoft.Json", "9.9.9"))

        with pytest.raises(TransportFailure) as exc_info:
            _with_feed(_FakeNuGetServer(), scenario)
        assert exc_info.value.status == 404

    def test_concurrent_requests_respect_feed_limit(self):
        """Test concurrent requests respect the feed limit."""
        async def scenario(feed):
            await asyncio.gather(
                *(feed.get_dependencies(ident("Newtonsoft.Json", "13.0.1")) for _ in range(8))
            )
            return feed.throttle

        throttle = _with_feed(_FakeNuGetServer(), scenario, max_concurrency=2)
        assert throttle.limit == 2
        assert throttle.peak <= 2
        assert throttle.in_flight == 0


class TestSourceRegistry:

    def test_from_configs_shares_transport(self):
        """Test feeds built from configs share the transport."""
        transport = ThrottledTransport()
        registry = SourceRegistry.from_configs(
            [FeedConfig("https://a.test/v3/index.json", "a"), FeedConfig("https://b.test/v3/index.json")],
            transport,
        )
        assert [feed.name for feed in registry] == ["a", "b.test"]
        assert all(feed._transport is transport for feed in registry)

    def test_requires_a_feed(self):
        """Test a registry needs at least one feed."""
        with pytest.raises(ValueError):
            SourceRegistry([])

    def test_feed_config_from_dict(self):
        """Test feed configuration from a mapping."""
        config = FeedConfig.from_dict({"url": "https://x.test/v3/index.json", "max_concurrency": "4"})
        assert config.max_concurrency == 4
        with pytest.raises(ValueError):
            FeedConfig.from_dict({"name": "no-url"})
