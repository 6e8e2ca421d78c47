from __future__ import annotations

import asyncio
import contextlib
import logging

import httpx

from .cache import StatsCache
from .controller import Controller, State
from .events import DetailFetched, Event, FetchDetail, ScheduleSweep, Work
from .registry import ServiceRegistry
from .scheduler import HealthScheduler
from .sources import DetailFetchError, Integration

log = logging.getLogger("labdash.runtime")


async def fetch_detail_event(client: httpx.AsyncClient, integration: Integration, cache: StatsCache) -> DetailFetched:
    try:
        payload = await integration.fetch_detail(client)
    except DetailFetchError as e:
        return DetailFetched(service=integration.name, error=str(e))
    except Exception as e:
        log.exception("detail fetch for %s crashed", integration.name)
        return DetailFetched(service=integration.name, error=f"{type(e).__name__}: {e}")
    return DetailFetched(service=integration.name, snapshot=cache.snapshot(integration.name, payload))


class Runtime:
    """Event loop glue between the controller and background I/O.

    Work items returned by the controller are started as tasks here; the
    tasks report back by queueing events, which are applied one at a time.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        registry: ServiceRegistry,
        controller: Controller,
        *,
        timeout: float,
    ) -> None:
        self.client = client
        self.registry = registry
        self.controller = controller
        self.events: asyncio.Queue[Event] = asyncio.Queue()
        self.scheduler = HealthScheduler(client, registry, self.post, timeout=timeout)
        self._tasks: set[asyncio.Task[None]] = set()

    def post(self, event: Event) -> None:
        self.events.put_nowait(event)

    def start(self) -> State:
        state, work = self.controller.init()
        self.dispatch(work)
        return state

    def dispatch(self, work: list[Work]) -> None:
        for item in work:
            if isinstance(item, ScheduleSweep):
                self.scheduler.arm(item.delay)
            elif isinstance(item, FetchDetail):
                self._start_fetch(item.service)
            else:
                raise TypeError(f"Unhandled work item: {item!r}")

    def _start_fetch(self, name: str) -> None:
        integration = self.registry.get(name)
        if integration is None:
            log.warning("detail fetch requested for unknown service %s", name)
            return

        async def _run() -> None:
            self.post(await fetch_detail_event(self.client, integration, self.controller.cache))

        task = asyncio.create_task(_run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def step(self, state: State) -> tuple[State, Event]:
        event = await self.events.get()
        state, work = self.controller.handle(state, event)
        if not state.terminated:
            self.dispatch(work)
        return state, event

    async def shutdown(self) -> None:
        await self.scheduler.shutdown()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()
