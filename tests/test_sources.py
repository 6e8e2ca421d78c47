"""Tests for integrations and their detail fetchers."""

from __future__ import annotations

import httpx
import pytest

from labdash.config import ServiceConfig
from labdash.sources import (
    DetailFetchError,
    Integration,
    PiHoleIntegration,
    SonarrIntegration,
    build_integration,
)

PIHOLE_SUMMARY = {
    "domains_being_blocked": 120034,
    "dns_queries_today": 5321,
    "ads_blocked_today": 812,
    "ads_percentage_today": 15.26,
    "unique_domains": 987,
    "queries_cached": 1200,
    "clients_ever_seen": 14,
    "status": "enabled",
}

SONARR_SERIES = [
    {
        "title": "The Expanse",
        "sortTitle": "expanse",
        "status": "ended",
        "statistics": {"episodeFileCount": 60, "episodeCount": 62},
    },
    {
        "title": "Andor",
        "sortTitle": "andor",
        "status": "continuing",
        "nextAiring": "2025-04-22T01:00:00Z",
        "statistics": {"episodeFileCount": 12, "episodeCount": 12},
    },
]


class TestBuildIntegration:
    def test_types(self):
        assert type(build_integration(ServiceConfig(name="a", url="http://a"))) is Integration
        assert isinstance(build_integration(ServiceConfig(name="p", url="http://p", type="pihole")), PiHoleIntegration)
        assert isinstance(build_integration(ServiceConfig(name="s", url="http://s", type="sonarr")), SonarrIntegration)

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            build_integration(ServiceConfig(name="a", url="http://a", type="plex"))

    def test_capabilities(self):
        assert not Integration.has_detail
        assert PiHoleIntegration.has_detail
        assert SonarrIntegration.has_detail

    @pytest.mark.asyncio
    async def test_plain_http_has_no_detail(self, mock_client):
        integration = Integration(ServiceConfig(name="a", url="http://a.test"))
        async with mock_client(lambda req: httpx.Response(200)) as client:
            with pytest.raises(DetailFetchError):
                await integration.fetch_detail(client)


class TestPiHole:
    def test_api_base_strips_admin(self):
        pihole = PiHoleIntegration(ServiceConfig(name="p", url="http://pi.hole/admin/", type="pihole"))
        assert pihole.api_base() == "http://pi.hole"

    @pytest.mark.asyncio
    async def test_summary_rows(self, mock_client):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=PIHOLE_SUMMARY)

        pihole = PiHoleIntegration(ServiceConfig(name="Pi-hole", url="http://pi.hole/admin/", type="pihole", auth_key="tok"))
        async with mock_client(handler) as client:
            payload = await pihole.fetch_detail(client)

        (request,) = seen
        assert request.url.path == "/admin/api.php"
        assert request.url.params["summary"] == ""
        assert request.url.params["auth"] == "tok"

        rows = dict(payload.rows)
        assert payload.title == "Pi-hole summary"
        assert rows["Status"] == "enabled"
        assert rows["Total Queries"] == "5,321"
        assert rows["Percentage Blocked"] == "15.26%"
        assert rows["Domains on Adlist"] == "120,034"
        assert rows["Clients"] == "14"
        assert payload.raw == PIHOLE_SUMMARY

    @pytest.mark.asyncio
    async def test_summary_query_without_auth(self, mock_client):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=PIHOLE_SUMMARY)

        pihole = PiHoleIntegration(ServiceConfig(name="Pi-hole", url="http://pi.hole/admin", type="pihole"))
        async with mock_client(handler) as client:
            await pihole.fetch_detail(client)

        (request,) = seen
        assert list(request.url.params.keys()) == ["summary"]

    @pytest.mark.asyncio
    async def test_string_counters_pass_through(self, mock_client):
        data = {**PIHOLE_SUMMARY, "dns_queries_today": "5,321", "ads_percentage_today": "15.3"}
        pihole = PiHoleIntegration(ServiceConfig(name="Pi-hole", url="http://pi.hole", type="pihole"))
        async with mock_client(lambda req: httpx.Response(200, json=data)) as client:
            payload = await pihole.fetch_detail(client)
        rows = dict(payload.rows)
        assert rows["Total Queries"] == "5,321"
        assert rows["Percentage Blocked"] == "15.30%"

    @pytest.mark.asyncio
    async def test_http_error(self, mock_client):
        pihole = PiHoleIntegration(ServiceConfig(name="Pi-hole", url="http://pi.hole", type="pihole"))
        async with mock_client(lambda req: httpx.Response(403)) as client:
            with pytest.raises(DetailFetchError, match="HTTP 403"):
                await pihole.fetch_detail(client)

    @pytest.mark.asyncio
    async def test_bad_json(self, mock_client):
        pihole = PiHoleIntegration(ServiceConfig(name="Pi-hole", url="http://pi.hole", type="pihole"))
        async with mock_client(lambda req: httpx.Response(200, text="<html>")) as client:
            with pytest.raises(DetailFetchError, match="Invalid JSON"):
                await pihole.fetch_detail(client)

    @pytest.mark.asyncio
    async def test_connect_error(self, mock_client):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        pihole = PiHoleIntegration(ServiceConfig(name="Pi-hole", url="http://pi.hole", type="pihole"))
        async with mock_client(handler) as client:
            with pytest.raises(DetailFetchError, match="ConnectError"):
                await pihole.fetch_detail(client)


class TestSonarr:
    @pytest.mark.asyncio
    async def test_series_rows(self, mock_client):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=SONARR_SERIES)

        sonarr = SonarrIntegration(ServiceConfig(name="Sonarr", url="http://sonarr.lan:8989/", type="sonarr", auth_key="k"))
        async with mock_client(handler) as client:
            payload = await sonarr.fetch_detail(client)

        (request,) = seen
        assert request.url.path == "/api/v3/series"
        assert request.url.params["includeSeasonImages"] == "false"
        assert request.headers["X-Api-Key"] == "k"

        assert payload.title == "Sonarr series (2)"
        assert [title for title, _ in payload.rows] == ["Andor", "The Expanse"]
        andor = dict(payload.rows)["Andor"]
        assert andor.startswith("continuing · 12/12 eps")
        assert "next " in andor
        assert dict(payload.rows)["The Expanse"] == "ended · 60/62 eps"

    @pytest.mark.asyncio
    async def test_unexpected_shape(self, mock_client):
        sonarr = SonarrIntegration(ServiceConfig(name="Sonarr", url="http://sonarr.lan", type="sonarr"))
        async with mock_client(lambda req: httpx.Response(200, json={"error": "x"})) as client:
            with pytest.raises(DetailFetchError, match="Unexpected"):
                await sonarr.fetch_detail(client)

    @pytest.mark.asyncio
    async def test_probe_defaults_api_key_header(self, mock_client):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200)

        sonarr = SonarrIntegration(ServiceConfig(name="Sonarr", url="http://sonarr.lan", type="sonarr", auth_key="k"))
        async with mock_client(handler) as client:
            outcome = await sonarr.probe(client)
        assert outcome.ok
        assert seen[0].headers["X-Api-Key"] == "k"
