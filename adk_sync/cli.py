"""Command-line entry point for adk-sync.

Usage::

    adk-sync sync [feature] [--force] [--check-conflicts]
    adk-sync queue status|process|clear
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import get_main_repo_path
from .orchestrator import SyncOrchestrator
from .sync_logging import setup_logging
from .sync_queue import SyncQueue


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="adk-sync",
        description="Synchronize local feature state with a project-management provider.",
    )
    parser.add_argument("--root", help="Project root (defaults to the main git repository)")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    parser.add_argument("--log-file", type=Path, help="Also write JSON logs to this file")

    commands = parser.add_subparsers(dest="command", required=True)

    sync = commands.add_parser("sync", help="Sync one feature or all tracked features")
    sync.add_argument("feature", nargs="?", help="Feature to sync (all features when omitted)")
    sync.add_argument("--force", action="store_true", help="Re-sync features already marked synced")
    sync.add_argument(
        "--check-conflicts",
        action="store_true",
        help="Compare with the remote record and apply the configured conflict strategy",
    )

    queue = commands.add_parser("queue", help="Inspect or replay the offline sync queue")
    queue.add_argument("action", choices=("status", "process", "clear"))

    return parser


async def _run_sync(orchestrator: SyncOrchestrator, args: argparse.Namespace) -> int:
    if args.check_conflicts and not args.feature:
        print("--check-conflicts requires a feature name.", file=sys.stderr)
        return 2

    report = await orchestrator.run(args.feature, force=args.force, check_conflicts=args.check_conflicts)
    if not report.completed:
        # Missing or disabled integration is not an error for the caller.
        print(report.message)
        return 1 if report.status == "connection_failed" else 0

    for outcome in report.outcomes:
        print(outcome.status_line())

    if report.summary is not None:
        print(
            f"\nSummary: {report.summary.synced} synced, "
            f"{report.summary.failed} failed, {report.summary.skipped} skipped"
        )
        return 1 if report.summary.failed else 0

    failed = [outcome for outcome in report.outcomes if outcome.status in ("failed", "not_found")]
    return 1 if failed else 0


async def _run_queue(orchestrator: SyncOrchestrator, action: str) -> int:
    queue: SyncQueue = orchestrator.queue

    if action == "status":
        operations = queue.get_all()
        print(f"Pending operations: {len(operations)}")
        for operation in operations:
            line = f"  {operation.id} {operation.type} {operation.feature} (retries: {operation.retries})"
            if operation.last_error:
                line += f" - {operation.last_error}"
            print(line)
        return 0

    if action == "clear":
        count = queue.get_pending_count()
        queue.clear()
        print(f"Cleared {count} queued operations.")
        return 0

    result = await orchestrator.process_queue()
    print(
        f"Processed {result.processed}: {result.succeeded} succeeded, "
        f"{result.failed} failed, {result.remaining} remaining"
    )
    return 1 if result.failed else 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_level.upper(), args.log_file)
    logger = logging.getLogger("adk_sync.cli")

    root = Path(args.root).expanduser().resolve() if args.root else get_main_repo_path()
    orchestrator = SyncOrchestrator(root)
    logger.debug(f"Project root: {root}")

    if args.command == "sync":
        return asyncio.run(_run_sync(orchestrator, args))
    return asyncio.run(_run_queue(orchestrator, args.action))


if __name__ == "__main__":
    sys.exit(main())
