"""``vz`` command line: wake, snapshot and watch."""

from __future__ import annotations

import argparse
import functools
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

from . import __version__
from .capability import create_profiler, create_snapshotter
from .compact import compact
from .config import ObserverConfig, WakeConfig
from .errors import VizierError
from .output import write_record
from .watch import watch

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="vz", description="System perception utility")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--pretty", action="store_true", help="Indent JSON output")
    parser.add_argument("--verbose", action="store_true", help="Emit the full wake profile instead of the compact one")
    parser.add_argument(
        "--all-connections",
        action="store_true",
        help="Include loopback connections in snapshots",
    )
    parser.add_argument("--no-public-ip", action="store_true", help="Skip the public IP lookup")
    parser.add_argument("--watch-path", type=Path, default=None, help="Directory to watch for filesystem events")
    parser.add_argument(
        "--log-level",
        default=os.getenv("VIZIER_LOG_LEVEL", "WARNING"),
        help="Logging level for diagnostics on stderr",
    )
    subcommands = parser.add_subparsers(dest="command", required=True)
    subcommands.add_parser("wake", help="Profile the host once")
    subcommands.add_parser("snapshot", help="Observe the current session once")
    watch_parser = subcommands.add_parser("watch", help="Observe repeatedly")
    watch_parser.add_argument("--interval", type=int, default=1000, help="Polling interval in milliseconds")
    watch_parser.add_argument("--diff", action="store_true", help="Emit JSON patches after the first snapshot")
    return parser


def observer_config(args: argparse.Namespace) -> ObserverConfig:
    config = ObserverConfig.from_env()
    if args.watch_path is not None:
        config.watch_path = args.watch_path.expanduser()
    config.all_connections = config.all_connections or args.all_connections
    return config


def wake_config(args: argparse.Namespace) -> WakeConfig:
    config = WakeConfig.from_env()
    config.no_public_ip = config.no_public_ip or args.no_public_ip
    return config


def run(args: argparse.Namespace) -> None:
    emit = functools.partial(write_record, sys.stdout, pretty=args.pretty)
    if args.command == "wake":
        wake = create_profiler(wake_config(args)).profile()
        emit(wake if args.verbose else compact(wake))
        return
    snapshotter = create_snapshotter(observer_config(args))
    try:
        if args.command == "snapshot":
            emit(snapshotter.snapshot())
        else:
            watch(snapshotter, emit, interval_ms=args.interval, diff=args.diff)
    finally:
        snapshotter.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        run(args)
    except KeyboardInterrupt:
        return 0
    except BrokenPipeError:
        # Reader went away (e.g. ``vz watch | head``).
        return 1
    except (VizierError, OSError) as exc:
        sys.stderr.write(f"vz: {exc}\n")
        return 1
    return 0
