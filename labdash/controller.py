"""Dashboard state, the list/detail view machine, and its event handler."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime

from .cache import DetailSnapshot, StatsCache
from .config import ServiceConfig
from .events import DetailFetched, Event, FetchDetail, Input, Key, ScheduleSweep, Tick, Work
from .registry import ServiceRegistry
from .scheduler import INITIAL_DELAY_SECONDS
from .status import LOADING_MESSAGE, HealthOutcome, aggregate_status
from .timeutil import Clock, utc_now

log = logging.getLogger("labdash.controller")

DETAIL_PAGE_ROWS = 15


@dataclass(frozen=True)
class Normal:
    pass


@dataclass(frozen=True)
class Detail:
    service: str


ViewState = Normal | Detail


@dataclass
class ServiceRuntimeState:
    service: ServiceConfig
    outcome: HealthOutcome | None = None
    active: bool = False

    @property
    def name(self) -> str:
        return self.service.name


@dataclass
class DetailView:
    snapshot: DetailSnapshot | None = None
    error: str | None = None
    offset: int = 0

    @property
    def row_count(self) -> int:
        if self.snapshot is None:
            return 0
        return len(self.snapshot.payload.rows)


@dataclass
class State:
    title: str
    services: list[ServiceRuntimeState]
    view: ViewState = field(default_factory=Normal)
    cursor: int = 0
    status: str = LOADING_MESSAGE
    detail: DetailView = field(default_factory=DetailView)
    last_sweep: datetime | None = None
    terminated: bool = False

    def runtime(self, name: str) -> ServiceRuntimeState | None:
        for rt in self.services:
            if rt.name == name:
                return rt
        return None


@dataclass(frozen=True)
class ServiceRow:
    name: str
    description: str
    url: str
    status_code: int | None
    healthy: bool
    checked: bool
    highlighted: bool
    active: bool
    has_detail: bool


@dataclass(frozen=True)
class ViewModel:
    title: str
    status: str
    rows: list[ServiceRow]
    cursor: int
    mode: str
    last_sweep: datetime | None = None
    detail_service: str | None = None
    detail_title: str | None = None
    detail_rows: list[tuple[str, str]] = field(default_factory=list)
    detail_offset: int = 0
    detail_loading: bool = False
    detail_error: str | None = None
    detail_captured_at: datetime | None = None


class Controller:
    """Applies events to the dashboard state and returns follow-up work.

    All mutation happens here, on the event loop. Background tasks only
    produce events.
    """

    def __init__(
        self,
        registry: ServiceRegistry,
        cache: StatsCache,
        *,
        title: str,
        interval: float,
        clock: Clock = utc_now,
        page_rows: int = DETAIL_PAGE_ROWS,
    ) -> None:
        self.registry = registry
        self.cache = cache
        self.title = title
        self.interval = interval
        self.page_rows = page_rows
        self._clock = clock

    def init(self) -> tuple[State, list[Work]]:
        state = State(
            title=self.title,
            services=[ServiceRuntimeState(service=i.service) for i in self.registry],
        )
        return state, [ScheduleSweep(delay=INITIAL_DELAY_SECONDS)]

    def handle(self, state: State, event: Event) -> tuple[State, list[Work]]:
        if state.terminated:
            return state, []
        if isinstance(event, Tick):
            return self._on_tick(state, event)
        if isinstance(event, Input):
            return self._on_input(state, event.key)
        if isinstance(event, DetailFetched):
            return self._on_detail(state, event)
        raise TypeError(f"Unhandled event: {event!r}")

    # Tick

    def _on_tick(self, state: State, tick: Tick) -> tuple[State, list[Work]]:
        for rt in state.services:
            outcome = tick.results.get(rt.name)
            if outcome is None:
                outcome = HealthOutcome.unreachable("No result")
            rt.outcome = outcome
        state.status = aggregate_status((rt.name, rt.outcome) for rt in state.services)
        state.last_sweep = self._clock()
        log.debug("tick applied: %s", state.status)
        return state, [ScheduleSweep(delay=self.interval)]

    # Input

    def _on_input(self, state: State, key: Key) -> tuple[State, list[Work]]:
        if key is Key.QUIT:
            log.debug("quit requested")
            self._deactivate_all(state)
            state.terminated = True
            return state, []
        if isinstance(state.view, Detail):
            return self._on_detail_input(state, key)
        return self._on_list_input(state, key)

    def _on_list_input(self, state: State, key: Key) -> tuple[State, list[Work]]:
        if key is Key.UP:
            state.cursor = max(0, state.cursor - 1)
        elif key is Key.DOWN:
            state.cursor = min(len(state.services) - 1, state.cursor + 1)
        elif key is Key.SELECT:
            return self._select(state)
        return state, []

    def _on_detail_input(self, state: State, key: Key) -> tuple[State, list[Work]]:
        detail = state.detail
        if key is Key.ESCAPE:
            self._deactivate_all(state)
            state.view = Normal()
            state.detail = DetailView()
        elif key is Key.UP:
            detail.offset = max(0, detail.offset - 1)
        elif key is Key.DOWN:
            detail.offset = min(max(0, detail.row_count - self.page_rows), detail.offset + 1)
        return state, []

    def _select(self, state: State) -> tuple[State, list[Work]]:
        if not state.services:
            return state, []
        target = state.services[state.cursor]
        integration = self.registry.get(target.name)
        if integration is None or not integration.has_detail:
            log.debug("%s has no detail view; staying on the list", target.name)
            return state, []

        self._deactivate_all(state)
        target.active = True
        state.view = Detail(service=target.name)
        state.detail = DetailView(snapshot=self.cache.lookup(target.name))
        if state.detail.snapshot is not None:
            log.debug("using cached detail for %s", target.name)
            return state, []
        if not self.cache.begin_fetch(target.name):
            log.debug("detail fetch for %s already in flight", target.name)
            return state, []
        return state, [FetchDetail(service=target.name)]

    @staticmethod
    def _deactivate_all(state: State) -> None:
        for rt in state.services:
            rt.active = False

    # DetailFetched

    def _on_detail(self, state: State, event: DetailFetched) -> tuple[State, list[Work]]:
        showing = isinstance(state.view, Detail) and state.view.service == event.service
        if event.snapshot is not None:
            self.cache.store(event.snapshot)
            if showing:
                state.detail.snapshot = event.snapshot
                state.detail.error = None
        else:
            self.cache.fail(event.service)
            log.warning("detail fetch for %s failed: %s", event.service, event.error)
            if showing:
                state.detail.error = event.error or "unknown error"
        return state, []

    # Projection

    def render(self, state: State) -> ViewModel:
        rows = []
        for i, rt in enumerate(state.services):
            integration = self.registry.get(rt.name)
            rows.append(
                ServiceRow(
                    name=rt.name,
                    description=rt.service.description,
                    url=rt.service.url,
                    status_code=rt.outcome.status_code if rt.outcome else None,
                    healthy=bool(rt.outcome and rt.outcome.ok),
                    checked=rt.outcome is not None,
                    highlighted=i == state.cursor,
                    active=rt.active,
                    has_detail=bool(integration and integration.has_detail),
                )
            )

        vm = ViewModel(
            title=state.title,
            status=state.status,
            rows=rows,
            cursor=state.cursor,
            mode="list",
            last_sweep=state.last_sweep,
        )
        if not isinstance(state.view, Detail):
            return vm

        detail = state.detail
        snapshot = detail.snapshot
        return replace(
            vm,
            mode="detail",
            detail_service=state.view.service,
            detail_title=snapshot.payload.title if snapshot else state.view.service,
            detail_rows=list(snapshot.payload.rows) if snapshot else [],
            detail_offset=detail.offset,
            detail_loading=snapshot is None and detail.error is None,
            detail_error=detail.error,
            detail_captured_at=snapshot.captured_at if snapshot else None,
        )
