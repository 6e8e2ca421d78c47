from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from pathlib import Path

from .cache import DetailSnapshot, StatsCache
from .config import ConfigError, load_config
from .registry import ServiceRegistry
from .scheduler import sweep
from .status import aggregate_status
from .ui import http_client


async def run_poller(*, config_path: Path, once: bool, log: bool) -> None:
    cfg = load_config(config_path)
    registry = ServiceRegistry.from_config(cfg)

    async with http_client(cfg) as client:
        while True:
            results = await sweep(client, registry, timeout=cfg.timeout_seconds)
            if log:
                ts = datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")
                codes = " ".join(f"{name}={results[name].status_code}" for name in registry.names)
                status = aggregate_status((name, results[name]) for name in registry.names)
                print(f"{ts} probed {len(results)} services; {codes}; {status}", flush=True)

            if once:
                break
            await asyncio.sleep(cfg.interval_seconds)


async def fetch_detail(*, config_path: Path, name: str) -> DetailSnapshot:
    cfg = load_config(config_path)
    registry = ServiceRegistry.from_config(cfg)
    integration = registry.get(name)
    if integration is None:
        raise ConfigError(f"No service named '{name}' in {config_path}.")
    if not integration.has_detail:
        raise ConfigError(f"Service '{name}' ({integration.type}) has no detail view.")

    cache = StatsCache(freshness=timedelta(seconds=cfg.freshness_seconds))
    async with http_client(cfg) as client:
        return await cache.aget_or_fetch(name, lambda: integration.fetch_detail(client))


def print_detail(snapshot: DetailSnapshot) -> None:
    payload = snapshot.payload
    print(payload.title)
    width = max((len(label) for label, _ in payload.rows), default=0)
    for label, value in payload.rows:
        print(f"  {label.ljust(width)}  {value}")
    print(f"captured {snapshot.captured_at.astimezone().strftime('%Y-%m-%d %H:%M:%S')}")
