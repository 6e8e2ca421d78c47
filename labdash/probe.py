from __future__ import annotations

import logging
import time

import httpx

from .config import ServiceConfig
from .status import HealthOutcome

log = logging.getLogger("labdash.probe")

DEFAULT_TIMEOUT_SECONDS = 10.0


def request_headers(service: ServiceConfig) -> dict[str, str]:
    header = service.header_auth
    if header is None:
        return {}
    name, value = header
    return {name: value}


def request_auth(service: ServiceConfig) -> httpx.BasicAuth | None:
    creds = service.basic_auth
    if creds is None:
        return None
    return httpx.BasicAuth(*creds)


async def probe(
    client: httpx.AsyncClient,
    service: ServiceConfig,
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    headers: dict[str, str] | None = None,
) -> HealthOutcome:
    """GET the service endpoint once and classify the result.

    Transport failures come back as an unreachable outcome with status 0;
    nothing is raised and nothing is retried.
    """
    merged = {**request_headers(service), **(headers or {})}
    started = time.perf_counter()
    try:
        resp = await client.get(
            service.url,
            headers=merged,
            auth=request_auth(service),
            timeout=timeout,
        )
    except httpx.TimeoutException:
        latency_ms = int((time.perf_counter() - started) * 1000)
        log.warning("probe %s timed out after %sms", service.name, latency_ms)
        return HealthOutcome.unreachable("Timeout", latency_ms=latency_ms)
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        latency_ms = int((time.perf_counter() - started) * 1000)
        log.warning("probe %s failed: %s: %s", service.name, type(exc).__name__, exc)
        return HealthOutcome.unreachable(f"{type(exc).__name__}: {exc}", latency_ms=latency_ms)

    latency_ms = int((time.perf_counter() - started) * 1000)
    outcome = HealthOutcome.from_status_code(resp.status_code, latency_ms=latency_ms)
    if not outcome.ok:
        log.info("probe %s returned %s", service.name, resp.status_code)
    return outcome
