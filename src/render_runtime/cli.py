"""
Operator CLI.

Usage:
    python -m render_runtime stats
    python -m render_runtime status <job_id>
    python -m render_runtime reap [--loop]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Sequence

from .config import Settings, load_env
from .errors import RenderRuntimeError
from .jobs.store import JobStore
from .logging import configure_logging
from .reaper import Reaper
from .storage.redis import RedisJobStore


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="render_runtime",
        description="Inspect and maintain the render job store",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a TOML settings file (default: read RENDER_* environment variables)",
    )
    parser.add_argument(
        "--env-file",
        type=str,
        default=None,
        help="Path to a .env file to load before reading the environment",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("stats", help="Print aggregate job statistics as JSON")

    status = subparsers.add_parser("status", help="Print one job as JSON")
    status.add_argument("job_id", type=str, help="Job identifier")

    reap = subparsers.add_parser("reap", help="Run an eviction pass")
    reap.add_argument(
        "--loop",
        action="store_true",
        help="Keep running the periodic reaper until interrupted",
    )
    return parser


def load_settings(args: argparse.Namespace) -> Settings:
    load_env(args.env_file)
    if args.config:
        return Settings.from_file(args.config)
    return Settings.from_env()


async def _stats(store: JobStore) -> int:
    stats = await store.stats()
    print(json.dumps(stats.to_dict(), indent=2))
    return 0


async def _status(store: JobStore, job_id: str) -> int:
    job = await store.get(job_id)
    if job is None:
        print(f"Job not found: {job_id}", file=sys.stderr)
        return 1
    print(json.dumps(job.to_dict(), indent=2))
    return 0


async def _reap(store: JobStore, settings: Settings, loop: bool) -> int:
    reaper = Reaper(store, settings.reaper)
    if loop:
        await reaper.run_forever()
        return 0
    removed = await reaper.sweep()
    print(json.dumps({"removed": removed, "remaining": await store.count()}))
    return 0 if reaper.last_error is None else 1


async def run_command(args: argparse.Namespace, settings: Settings, store: JobStore | None = None) -> int:
    """Run the parsed command against ``store`` (connected from settings when omitted)."""
    if store is None:
        store = await RedisJobStore.connect(settings.store)
    try:
        if args.command == "stats":
            return await _stats(store)
        if args.command == "status":
            return await _status(store, args.job_id)
        if args.command == "reap":
            return await _reap(store, settings, args.loop)
        raise ValueError(f"Unknown command: {args.command}")
    finally:
        await store.close()


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings(args)
    except (ValueError, FileNotFoundError) as e:
        print(f"Error loading settings: {e}", file=sys.stderr)
        return 2
    configure_logging(settings.logging.level, json_output=settings.logging.format == "json")

    try:
        return asyncio.run(run_command(args, settings))
    except RenderRuntimeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


__all__ = [
    "build_parser",
    "run_command",
    "main",
]
