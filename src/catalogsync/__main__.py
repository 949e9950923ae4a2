"""catalogsync command line.

Import a page range from a remote store:
    python -m catalogsync import https://shop.example.com --start-page 1 --end-page 3

Sync every active WooCommerce store once:
    python -m catalogsync sync-all --modified-only

Serve the HTTP API:
    python -m catalogsync serve

Run periodic syncs:
    python -m catalogsync schedule
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from dotenv import load_dotenv

from .config import get_config
from .exceptions import CatalogSyncError
from .models import DuplicateStrategy, SyncMode


def setup_logging(level: str = "INFO"):
    """Setup logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


async def _run_import(args, config) -> int:
    from .factory import build_import_engine, build_storage

    store, _ = build_storage(config)
    engine = build_import_engine(store, config)

    def print_progress(snapshot):
        if snapshot.logs:
            print(snapshot.logs[-1])

    try:
        outcome = await engine.run(
            {
                "url": args.url,
                "startPage": args.start_page,
                "endPage": args.end_page,
                "duplicateStrategy": args.duplicate_strategy,
                "platform": args.platform,
            },
            on_progress=print_progress if args.verbose else None,
        )
    finally:
        await engine.close()
    data = outcome.to_dict()
    if not args.logs:
        data.pop("logs")
    print(json.dumps(data, indent=2))
    return 0 if outcome.failed == 0 else 2


async def _run_sync_all(args, config) -> int:
    from .factory import build_orchestrator, build_storage

    store, directory = build_storage(config)
    orchestrator = build_orchestrator(store, directory, config)
    try:
        result = await orchestrator.sync_all(
            mode=SyncMode.MODIFIED_ONLY if args.modified_only else SyncMode.FULL,
            options={"pageSize": args.page_size, "maxPages": args.max_pages},
        )
    finally:
        await orchestrator.close()
    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.summary.failed_stores == 0 else 2


async def _run_schedule(config) -> int:
    from .factory import build_orchestrator, build_storage
    from .scheduler import run_scheduler

    store, directory = build_storage(config)
    await run_scheduler(config, build_orchestrator(store, directory, config))
    return 0


def _serve(args, config) -> int:
    import uvicorn

    from .api import create_app
    from .factory import build_import_engine, build_orchestrator, build_storage

    store, directory = build_storage(config)
    app = create_app(
        catalog_store=store,
        import_engine=build_import_engine(store, config),
        orchestrator=build_orchestrator(store, directory, config),
    )
    uvicorn.run(
        app,
        host=args.host or config.http_host,
        port=args.port or config.http_port,
        log_level=config.log_level.lower(),
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="catalogsync",
        description="Catalog ingestion and multi-store synchronization",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: LOG_LEVEL env or INFO)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    imp = commands.add_parser("import", help="Import a page range from a remote store")
    imp.add_argument("url", help="Store URL")
    imp.add_argument("--start-page", type=int, default=1)
    imp.add_argument("--end-page", type=int, default=1)
    imp.add_argument(
        "--duplicate-strategy",
        default=DuplicateStrategy.SKIP.value,
        choices=[s.value for s in DuplicateStrategy],
    )
    imp.add_argument("--platform", default="shopify")
    imp.add_argument("--verbose", "-v", action="store_true", help="Print progress lines")
    imp.add_argument("--logs", action="store_true", help="Include the job log in the output")

    sync = commands.add_parser("sync-all", help="Sync every active store once")
    sync.add_argument("--modified-only", action="store_true")
    sync.add_argument("--page-size", type=int, default=None)
    sync.add_argument("--max-pages", type=int, default=None)

    serve = commands.add_parser("serve", help="Serve the HTTP API")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)

    commands.add_parser("schedule", help="Run periodic store syncs")
    return parser


def main():
    """CLI entry point."""
    load_dotenv()
    args = build_parser().parse_args()
    config = get_config()
    setup_logging(args.log_level or config.log_level)
    logger = logging.getLogger(__name__)

    try:
        if args.command == "import":
            code = asyncio.run(_run_import(args, config))
        elif args.command == "sync-all":
            code = asyncio.run(_run_sync_all(args, config))
        elif args.command == "schedule":
            code = asyncio.run(_run_schedule(config))
        else:
            code = _serve(args, config)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
        code = 0
    except CatalogSyncError as e:
        logger.error(str(e))
        code = 1

    sys.exit(code)


if __name__ == "__main__":
    main()
