"""Shared fixtures for labdash tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

import httpx
import pytest

from labdash.cache import StatsCache
from labdash.config import ServiceConfig
from labdash.controller import Controller
from labdash.registry import ServiceRegistry


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


SERVICES = [
    ServiceConfig(name="Pi-hole", url="http://pihole.test/admin/", description="DNS sinkhole", type="pihole", auth_key="tok"),
    ServiceConfig(name="Sonarr", url="http://sonarr.test", description="TV", type="sonarr", auth_key="key"),
    ServiceConfig(name="Grafana", url="http://grafana.test/api/health", description="Dashboards"),
]


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def registry() -> ServiceRegistry:
    return ServiceRegistry.from_services(SERVICES)


@pytest.fixture()
def cache(clock: FakeClock) -> StatsCache:
    return StatsCache(freshness=timedelta(seconds=60), clock=clock)


@pytest.fixture()
def controller(registry: ServiceRegistry, cache: StatsCache, clock: FakeClock) -> Controller:
    return Controller(registry, cache, title="Homelab", interval=30, clock=clock)


@pytest.fixture()
def mock_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Build an AsyncClient whose requests are answered by *handler*."""

    def _make(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _make
