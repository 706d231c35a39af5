"""Command-line entry point.

Usage:
    ctxsync sync                       # Sync a task via the browser, print it as JSON
    ctxsync sync --timeout 60          # Shorter callback wait
    ctxsync search "acceptance criteria"          # Sync, then search scoped to the task
    ctxsync search "login flow" --no-sync --type tasks
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

import structlog

from ctxsync.auth.token_client import TokenClient
from ctxsync.config import settings
from ctxsync.logging_config import configure_logging
from ctxsync.store import SyncedContextStore
from ctxsync.sync.browser import open_url_async
from ctxsync.sync.service import TaskSync
from ctxsync.tools.file_search import FileSearchClient, execute_file_search

logger = structlog.get_logger()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ctxsync", description="Sync your current task into the IDE")
    sub = parser.add_subparsers(dest="command", required=True)

    sync_p = sub.add_parser("sync", help="Run the browser sync handshake")
    sync_p.add_argument("--timeout", type=float, default=None, help="Seconds to wait for the callback")
    sync_p.add_argument("--no-browser", action="store_true", help="Print the link instead of opening it")

    search_p = sub.add_parser("search", help="Search project context scoped to the synced task")
    search_p.add_argument("query")
    search_p.add_argument("--type", dest="search_type", default=None,
                          choices=["conversations", "tasks", "compressed", "all"])
    search_p.add_argument("--content-type", default=None, choices=["work_item", "big_bet", "auto"])
    search_p.add_argument("--limit", type=int, default=settings.search_default_limit)
    search_p.add_argument("--no-sync", action="store_true", help="Search without syncing first")
    search_p.add_argument("--timeout", type=float, default=None, help="Seconds to wait for the callback")
    search_p.add_argument("--no-browser", action="store_true", help="Print the link instead of opening it")
    return parser


async def _print_link(url: str) -> bool:
    print(f"Open this link to pick your task:\n  {url}", file=sys.stderr)
    return True


async def _run_sync(task_sync: TaskSync) -> int:
    outcome = await task_sync.sync()
    if outcome.ok and outcome.context is not None:
        print(json.dumps(outcome.context.to_dict(), indent=2))
        return 0
    if outcome.remediation is not None:
        print(f"{outcome.remediation.message}\n{outcome.remediation.action_label}: "
              f"{outcome.remediation.action_url}", file=sys.stderr)
    else:
        print(f"Sync failed: {outcome.error}", file=sys.stderr)
    return 1


async def _run_search(args: argparse.Namespace, task_sync: TaskSync, token_client: TokenClient) -> int:
    if not args.no_sync:
        code = await _run_sync(task_sync)
        if code != 0:
            return code

    parameters: dict = {"query": args.query, "limit": args.limit}
    search_filter = {
        k: v for k, v in {"type": args.search_type, "content_type": args.content_type}.items() if v
    }
    if search_filter:
        parameters["filter"] = search_filter

    async with FileSearchClient(token_client) as client:
        result = await execute_file_search(parameters, client=client, store=task_sync.store)
    if "error" in result:
        print(result["error"], file=sys.stderr)
        return 1
    print(result["message"])
    return 0


async def _main(args: argparse.Namespace) -> int:
    store = SyncedContextStore()
    async with TokenClient() as token_client:
        task_sync = TaskSync(
            store,
            token_client,
            timeout_s=args.timeout,
            opener=_print_link if args.no_browser else open_url_async,
        )
        try:
            if args.command == "sync":
                return await _run_sync(task_sync)
            return await _run_search(args, task_sync, token_client)
        finally:
            await task_sync.aclose()


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging(settings.log_level, settings.env)
    try:
        return asyncio.run(_main(args))
    except KeyboardInterrupt:
        logger.info("ctxsync_interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
