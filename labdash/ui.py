from __future__ import annotations

import asyncio
import contextlib
import os
import sys
from datetime import timedelta
from pathlib import Path

import httpx
from rich import box
from rich.console import Console, Group, RenderableType
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from . import __version__
from .cache import StatsCache
from .config import AppConfig, load_config
from .controller import DETAIL_PAGE_ROWS, Controller, ServiceRow, ViewModel
from .events import Input, Key, Tick
from .registry import ServiceRegistry
from .runtime import Runtime
from .timeutil import format_local

PINK = "#FF5F87"
WHITE = "#FAFAFA"
GREEN = "rgb(0,255,0)"
RED = "rgb(255,80,80)"
DIM = "grey50"
BAR = "#C1C6B2 on #353533"

WIDTH = 100

_KEYS = {
    "k": Key.UP,
    "\x1b[A": Key.UP,
    "\x1bOA": Key.UP,
    "j": Key.DOWN,
    "\x1b[B": Key.DOWN,
    "\x1bOB": Key.DOWN,
    "\r": Key.SELECT,
    "\n": Key.SELECT,
    "\x1b": Key.ESCAPE,
    "q": Key.QUIT,
}


def decode_key(text: str) -> Key | None:
    if text in _KEYS:
        return _KEYS[text]
    return _KEYS.get(text.lower())


def _truncate(s: str, n: int) -> str:
    s = s.replace("\n", " ").strip()
    if len(s) <= n:
        return s
    return s[: max(0, n - 1)] + "…"


def _status_chip(row: ServiceRow) -> Text:
    if not row.checked:
        return Text("… ----", style=DIM)
    if row.healthy:
        return Text(f"✅ {row.status_code}", style=GREEN)
    code = str(row.status_code) if row.status_code else "down"
    return Text(f"❌ {code}", style=RED)


def _title_bar(vm: ViewModel) -> Text:
    text = Text(f" {vm.title} ", style=f"bold {WHITE} on {PINK}")
    text.pad_right(max(0, WIDTH - len(text.plain)))
    text.stylize(f"on {PINK}")
    return text


def _render_list(vm: ViewModel) -> RenderableType:
    table = Table(box=box.SIMPLE_HEAD, expand=True, show_edge=False, pad_edge=False)
    table.add_column("", width=2)
    table.add_column("Service", style=f"bold {WHITE}", no_wrap=True)
    table.add_column("Status", no_wrap=True, width=8)
    table.add_column("Description", style=DIM, no_wrap=True)
    for row in vm.rows:
        pointer = Text("›", style=f"bold {PINK}") if row.highlighted else Text(" ")
        name = Text(row.name)
        if row.has_detail:
            name.append(" ⋯", style=DIM)
        desc = " - ".join(p for p in (row.description, row.url) if p)
        table.add_row(
            pointer,
            name,
            _status_chip(row),
            _truncate(desc, 60),
            style="reverse" if row.highlighted else "",
        )

    swept = format_local(vm.last_sweep)
    status = Text(f" {vm.status} ", style=BAR)
    status.append(f"  last check {swept}", style=DIM)
    help_line = Text("↑/k ↓/j move  enter details  q quit", style=DIM)
    return Group(_title_bar(vm), Text(""), table, Text(""), status, help_line)


def _render_detail(vm: ViewModel) -> RenderableType:
    header = Text(f" {vm.detail_title or vm.detail_service} ", style=f"bold {WHITE}")
    parts: list[RenderableType] = [_title_bar(vm), header, Text("")]

    if vm.detail_error is not None:
        parts.append(Text(f"could not load detail: {vm.detail_error}", style=RED))
    elif vm.detail_loading:
        parts.append(Text("loading detail...", style=DIM))
    else:
        table = Table(box=box.SIMPLE_HEAD, expand=True, show_edge=False)
        table.add_column("Metric", style=f"bold {WHITE}", width=30, no_wrap=True)
        table.add_column("Value", no_wrap=True)
        window = vm.detail_rows[vm.detail_offset : vm.detail_offset + DETAIL_PAGE_ROWS]
        for label, value in window:
            table.add_row(_truncate(label, 30), _truncate(value, 60))
        parts.append(table)
        total = len(vm.detail_rows)
        if total > DETAIL_PAGE_ROWS:
            end = min(total, vm.detail_offset + DETAIL_PAGE_ROWS)
            parts.append(Text(f"rows {vm.detail_offset + 1}-{end} of {total}", style=DIM))
        parts.append(Text(f"captured {format_local(vm.detail_captured_at)}", style=DIM))

    parts.append(Text(""))
    parts.append(Text("↑/k ↓/j scroll  esc back  q quit", style=DIM))
    return Group(*parts)


def render_view(vm: ViewModel) -> RenderableType:
    body = _render_detail(vm) if vm.mode == "detail" else _render_list(vm)
    return Panel(body, box=box.ROUNDED, border_style=PINK, width=WIDTH + 4, padding=(0, 1))


def build_runtime(cfg: AppConfig, client: httpx.AsyncClient) -> Runtime:
    registry = ServiceRegistry.from_config(cfg)
    cache = StatsCache(freshness=timedelta(seconds=cfg.freshness_seconds))
    controller = Controller(registry, cache, title=cfg.title, interval=cfg.interval_seconds)
    return Runtime(client, registry, controller, timeout=cfg.timeout_seconds)


def http_client(cfg: AppConfig) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(cfg.timeout_seconds),
        headers={"User-Agent": f"labdash/{__version__}"},
        follow_redirects=True,
    )


async def run_dashboard(*, config_path: Path, screen: bool, once: bool) -> None:
    cfg = load_config(config_path)

    async with http_client(cfg) as client:
        console = Console()
        runtime = build_runtime(cfg, client)
        loop = asyncio.get_running_loop()

        fd: int | None = None
        old_termios: list | None = None

        def _enable_keys() -> None:
            nonlocal fd, old_termios
            if not sys.stdin.isatty():
                return
            import termios
            import tty

            fd = sys.stdin.fileno()
            old_termios = termios.tcgetattr(fd)
            tty.setcbreak(fd)

            def _on_stdin() -> None:
                data = os.read(fd, 16).decode(errors="ignore")
                key = decode_key(data)
                if key is not None:
                    runtime.post(Input(key=key))

            loop.add_reader(fd, _on_stdin)

        def _disable_keys() -> None:
            nonlocal fd, old_termios
            if fd is None:
                return
            try:
                import termios

                loop.remove_reader(fd)
                if old_termios is not None:
                    termios.tcsetattr(fd, termios.TCSADRAIN, old_termios)
            finally:
                fd = None
                old_termios = None

        state = runtime.start()
        try:
            if not once:
                _enable_keys()
            with Live(
                console=console,
                screen=screen,
                auto_refresh=False,
                transient=False,
            ) as live:
                live.update(render_view(runtime.controller.render(state)), refresh=True)
                while not state.terminated:
                    state, event = await runtime.step(state)
                    live.update(render_view(runtime.controller.render(state)), refresh=True)
                    if once and isinstance(event, Tick):
                        break
        finally:
            with contextlib.suppress(Exception):
                _disable_keys()
            await runtime.shutdown()
