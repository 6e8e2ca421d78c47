from __future__ import annotations

import logging
from typing import Any

import httpx

from .cache import DetailPayload
from .config import ServiceConfig
from .probe import DEFAULT_TIMEOUT_SECONDS, probe, request_auth
from .status import HealthOutcome
from .timeutil import format_local, parse_datetime

log = logging.getLogger("labdash.sources")

SONARR_API_KEY_HEADER = "X-Api-Key"


class DetailFetchError(Exception):
    pass


async def _get_json(
    client: httpx.AsyncClient, url: str, *, headers: dict[str, str] | None = None, **kwargs: Any
) -> Any:
    log.debug("GET %s", url)
    try:
        resp = await client.get(url, headers=headers, **kwargs)
        resp.raise_for_status()
        return resp.json()
    except httpx.HTTPStatusError as exc:
        raise DetailFetchError(f"HTTP {exc.response.status_code} from {url}") from exc
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise DetailFetchError(f"{type(exc).__name__}: {exc}") from exc
    except ValueError as exc:
        raise DetailFetchError(f"Invalid JSON from {url}") from exc


class Integration:
    """A monitored application.

    Every integration can be probed. Those with ``has_detail`` also know how
    to fetch a structured summary for the detail view.
    """

    type = "http"
    has_detail = False

    def __init__(self, service: ServiceConfig) -> None:
        self.service = service

    @property
    def name(self) -> str:
        return self.service.name

    def probe_headers(self) -> dict[str, str]:
        return {}

    async def probe(self, client: httpx.AsyncClient, *, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> HealthOutcome:
        return await probe(client, self.service, timeout=timeout, headers=self.probe_headers())

    async def fetch_detail(self, client: httpx.AsyncClient) -> DetailPayload:
        raise DetailFetchError(f"{self.name} has no detail view")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


def _count(value: Any) -> str:
    if value is None:
        return "—"
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return f"{value:,}"
    return str(value)


def _percent(value: Any) -> str:
    if value is None:
        return "—"
    try:
        return f"{float(value):.2f}%"
    except (TypeError, ValueError):
        return f"{value}%"


class PiHoleIntegration(Integration):
    type = "pihole"
    has_detail = True

    def api_base(self) -> str:
        base = self.service.url.rstrip("/")
        if base.endswith("/admin"):
            base = base[: -len("/admin")]
        return base

    async def fetch_detail(self, client: httpx.AsyncClient) -> DetailPayload:
        # httpx replaces a URL's query string with ``params``; keep both keys here.
        params = {"summary": ""}
        if self.service.auth_key:
            params["auth"] = self.service.auth_key
        data = await _get_json(client, f"{self.api_base()}/admin/api.php", params=params)
        if not isinstance(data, dict):
            raise DetailFetchError("Unexpected Pi-hole summary response")

        rows = [
            ("Status", str(data.get("status") or "unknown")),
            ("Total Queries", _count(data.get("dns_queries_today"))),
            ("Queries Blocked", _count(data.get("ads_blocked_today"))),
            ("Percentage Blocked", _percent(data.get("ads_percentage_today"))),
            ("Domains on Adlist", _count(data.get("domains_being_blocked"))),
            ("Unique Domains", _count(data.get("unique_domains"))),
            ("Queries Cached", _count(data.get("queries_cached"))),
            ("Clients", _count(data.get("clients_ever_seen"))),
        ]
        return DetailPayload(title=f"{self.name} summary", rows=rows, raw=data)


class SonarrIntegration(Integration):
    type = "sonarr"
    has_detail = True

    def api_headers(self) -> dict[str, str]:
        headers = {"accept": "application/json"}
        if self.service.auth_key:
            headers[self.service.auth_header or SONARR_API_KEY_HEADER] = self.service.auth_key
        return headers

    def probe_headers(self) -> dict[str, str]:
        if self.service.auth_key and not self.service.auth_header:
            return {SONARR_API_KEY_HEADER: self.service.auth_key}
        return {}

    async def fetch_detail(self, client: httpx.AsyncClient) -> DetailPayload:
        url = f"{self.service.url.rstrip('/')}/api/v3/series"
        data = await _get_json(
            client,
            url,
            headers=self.api_headers(),
            params={"includeSeasonImages": "false"},
            auth=request_auth(self.service),
        )
        if not isinstance(data, list):
            raise DetailFetchError("Unexpected Sonarr series response")

        series = [s for s in data if isinstance(s, dict)]
        series.sort(key=lambda s: str(s.get("sortTitle") or s.get("title") or "").lower())
        rows = [_series_row(s) for s in series]
        return DetailPayload(title=f"{self.name} series ({len(rows)})", rows=rows, raw=data)


def _series_row(series: dict[str, Any]) -> tuple[str, str]:
    title = str(series.get("title") or "untitled")
    stats = series.get("statistics") or {}
    files = stats.get("episodeFileCount") if isinstance(stats, dict) else None
    episodes = stats.get("episodeCount") if isinstance(stats, dict) else None

    parts = [str(series.get("status") or "unknown")]
    if files is not None and episodes is not None:
        parts.append(f"{files}/{episodes} eps")
    next_airing = parse_datetime(str(series.get("nextAiring") or ""))
    if next_airing is not None:
        parts.append(f"next {format_local(next_airing, '%Y-%m-%d')}")
    return title, " · ".join(parts)


INTEGRATIONS: dict[str, type[Integration]] = {
    Integration.type: Integration,
    PiHoleIntegration.type: PiHoleIntegration,
    SonarrIntegration.type: SonarrIntegration,
}


def build_integration(service: ServiceConfig) -> Integration:
    cls = INTEGRATIONS.get(service.type)
    if cls is None:
        raise ValueError(f"Unknown service type: {service.type}")
    return cls(service)
