"""Per-service cache of detail payloads with a freshness window."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable

from .timeutil import Clock, utc_now

log = logging.getLogger("labdash.cache")

DEFAULT_FRESHNESS = timedelta(minutes=1)


@dataclass(frozen=True)
class DetailPayload:
    title: str
    rows: list[tuple[str, str]]
    raw: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class DetailSnapshot:
    service: str
    payload: DetailPayload
    captured_at: datetime


class StatsCache:
    """Holds the last detail snapshot per service.

    Entries are overwritten on refresh and never evicted, so the cache is
    bounded by the number of registered services. Writers must share the
    controller's event loop; ``begin_fetch`` keeps at most one fetch in
    flight per service. Concurrent ``aget_or_fetch`` callers for the same
    service await one shared fetch.
    """

    def __init__(self, *, freshness: timedelta = DEFAULT_FRESHNESS, clock: Clock = utc_now) -> None:
        self.freshness = freshness
        self._clock = clock
        self._entries: dict[str, DetailSnapshot] = {}
        self._in_flight: set[str] = set()
        self._pending: dict[str, asyncio.Task[DetailSnapshot]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def now(self) -> datetime:
        return self._clock()

    def is_fresh(self, snapshot: DetailSnapshot) -> bool:
        return self.now() - snapshot.captured_at < self.freshness

    def peek(self, service: str) -> DetailSnapshot | None:
        return self._entries.get(service)

    def lookup(self, service: str) -> DetailSnapshot | None:
        snapshot = self._entries.get(service)
        if snapshot is None:
            return None
        if not self.is_fresh(snapshot):
            log.debug("cached detail for %s is stale (captured %s)", service, snapshot.captured_at)
            return None
        return snapshot

    def in_flight(self, service: str) -> bool:
        return service in self._in_flight

    def begin_fetch(self, service: str) -> bool:
        if service in self._in_flight:
            return False
        self._in_flight.add(service)
        return True

    def snapshot(self, service: str, payload: DetailPayload) -> DetailSnapshot:
        return DetailSnapshot(service=service, payload=payload, captured_at=self.now())

    def store(self, snapshot: DetailSnapshot) -> DetailSnapshot:
        self._entries[snapshot.service] = snapshot
        self._in_flight.discard(snapshot.service)
        return snapshot

    def fail(self, service: str) -> None:
        self._in_flight.discard(service)

    def get_or_fetch(self, service: str, fetch_fn: Callable[[], DetailPayload]) -> DetailSnapshot:
        cached = self.lookup(service)
        if cached is not None:
            log.debug("using cached detail for %s", service)
            return cached
        log.debug("fetching detail for %s", service)
        payload = fetch_fn()
        return self.store(self.snapshot(service, payload))

    async def aget_or_fetch(
        self, service: str, fetch_fn: Callable[[], Awaitable[DetailPayload]]
    ) -> DetailSnapshot:
        cached = self.lookup(service)
        if cached is not None:
            log.debug("using cached detail for %s", service)
            return cached
        task = self._pending.get(service)
        if task is None:
            log.debug("fetching detail for %s", service)
            task = asyncio.ensure_future(self._fetch_and_store(service, fetch_fn))
            self._pending[service] = task
            task.add_done_callback(lambda _: self._pending.pop(service, None))
        else:
            log.debug("joining in-flight detail fetch for %s", service)
        return await asyncio.shield(task)

    async def _fetch_and_store(
        self, service: str, fetch_fn: Callable[[], Awaitable[DetailPayload]]
    ) -> DetailSnapshot:
        self._in_flight.add(service)
        try:
            payload = await fetch_fn()
        except Exception:
            self.fail(service)
            raise
        return self.store(self.snapshot(service, payload))
