from __future__ import annotations

import argparse
import asyncio
import logging
import os
from pathlib import Path

from .config import DEFAULT_CONFIG_PATH, ConfigError
from .headless import fetch_detail, print_detail, run_poller
from .sources import DetailFetchError
from .ui import run_dashboard

DEBUG_LOG = "debug.log"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="labdash",
        description="Terminal dashboard for the health of self-hosted services.",
    )
    parser.add_argument(
        "-c",
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to config TOML (default: {DEFAULT_CONFIG_PATH}).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help=f"Write debug logs to {DEBUG_LOG} (also enabled by the DEBUG env var).",
    )

    sub = parser.add_subparsers(dest="cmd", required=False)

    run = sub.add_parser("run", help="Run the live dashboard (default).")
    run.add_argument(
        "--no-screen",
        action="store_true",
        help="Disable alternate-screen mode.",
    )
    run.add_argument(
        "--once",
        action="store_true",
        help="Render after the first health check and exit.",
    )

    poll = sub.add_parser("poll", help="Probe services in a loop without the UI.")
    poll.add_argument(
        "--once",
        action="store_true",
        help="Probe once and exit.",
    )
    poll.add_argument(
        "--log",
        action="store_true",
        help="Print a short line each sweep.",
    )

    detail = sub.add_parser("detail", help="Print one service's detail summary.")
    detail.add_argument("name", help="Service name as configured.")

    return parser


def _configure_logging(debug: bool) -> None:
    if not debug:
        return
    logging.basicConfig(
        filename=DEBUG_LOG,
        level=logging.DEBUG,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.debug or bool(os.environ.get("DEBUG")))

    config_path = Path(args.config)
    cmd = args.cmd or "run"
    try:
        if cmd == "run":
            asyncio.run(
                run_dashboard(
                    config_path=config_path,
                    screen=not getattr(args, "no_screen", False),
                    once=getattr(args, "once", False),
                )
            )
            return 0
        if cmd == "poll":
            asyncio.run(run_poller(config_path=config_path, once=args.once, log=args.log))
            return 0
        if cmd == "detail":
            try:
                snapshot = asyncio.run(fetch_detail(config_path=config_path, name=args.name))
            except DetailFetchError as exc:
                print(f"could not load detail: {exc}")
                return 1
            print_detail(snapshot)
            return 0
    except ConfigError as exc:
        parser.error(str(exc))
    except KeyboardInterrupt:
        # cbreak mode leaves ISIG on, so Ctrl-C arrives here rather than as a key.
        return 130

    parser.error(f"Unknown command: {cmd}")
