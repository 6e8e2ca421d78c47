from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Callable

import httpx

from .events import Tick
from .registry import ServiceRegistry
from .sources import Integration
from .status import HealthOutcome

log = logging.getLogger("labdash.scheduler")

INITIAL_DELAY_SECONDS = 0.01


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Waiting:
    next_fire: float


def next_fire_time(now: float, delay: float) -> float:
    return now + max(0.0, delay)


async def sweep(
    client: httpx.AsyncClient,
    registry: ServiceRegistry,
    *,
    timeout: float,
    concurrency: int = 8,
) -> dict[str, HealthOutcome]:
    """Probe every registered service concurrently; one outcome per name."""
    sem = asyncio.Semaphore(concurrency)

    async def _one(integration: Integration) -> HealthOutcome:
        async with sem:
            try:
                return await integration.probe(client, timeout=timeout)
            except Exception as e:
                log.exception("probe for %s raised", integration.name)
                return HealthOutcome.unreachable(f"Probe error: {type(e).__name__}")

    outcomes = await asyncio.gather(*[_one(i) for i in registry])
    return dict(zip(registry.names, outcomes))


class HealthScheduler:
    """Runs one sweep per arm() in the background and emits a single Tick.

    The scheduler never re-arms itself; whoever handles the Tick decides when
    the next sweep fires.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        registry: ServiceRegistry,
        emit: Callable[[Tick], None],
        *,
        timeout: float,
        concurrency: int = 8,
    ) -> None:
        self._client = client
        self._registry = registry
        self._emit = emit
        self._timeout = timeout
        self._concurrency = concurrency
        self._task: asyncio.Task[None] | None = None
        self.state: Idle | Waiting = Idle()
        self.sweeps = 0

    def arm(self, delay: float) -> bool:
        if isinstance(self.state, Waiting):
            log.debug("scheduler already waiting; ignoring arm(%s)", delay)
            return False
        loop = asyncio.get_running_loop()
        self.state = Waiting(next_fire=next_fire_time(loop.time(), delay))
        self._task = asyncio.create_task(self._run(delay))
        return True

    async def _run(self, delay: float) -> None:
        await asyncio.sleep(delay)
        results = await sweep(
            self._client,
            self._registry,
            timeout=self._timeout,
            concurrency=self._concurrency,
        )
        self.sweeps += 1
        self.state = Idle()
        log.debug("sweep %d finished: %s", self.sweeps, {k: v.status_code for k, v in results.items()})
        self._emit(Tick(results=results))

    async def shutdown(self) -> None:
        task, self._task = self._task, None
        self.state = Idle()
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
