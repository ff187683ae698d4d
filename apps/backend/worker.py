#!/usr/bin/env python3
"""
Ingestion worker entry point.

Examples:
  python worker.py --run-once --dry-run      # one cycle, in-memory store/index
  python worker.py --source infojobs         # schedule a single source
  python worker.py --interval 1800           # every 30 minutes
"""
import sys
import signal
import asyncio
import logging
import argparse
from typing import List, Optional, Tuple

from dotenv import load_dotenv

from app.db_config import DBConfig
from app.search import InMemorySearchIndex, MeiliSearchIndex, SearchIndex
from app.store import InMemoryJobStore, JobStore, PostgresJobStore
from core.config import Settings, load_settings
from core.errors import ConfigurationError, IngestionError
from core.models import FetchOptions
from core.net import SourceHTTPClient
from crawler.plugins import build_adapters
from crawler.plugins.base import SourceAdapter
from orchestrator import SCHEDULER_INTERVAL_SECONDS, get_orchestrator

logger = logging.getLogger("worker")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
UNSUPPORTED_SOURCES = ("indeed",)


def positive_int(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be > 0, got {value}")
    return number


def non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ingest-worker",
        description="Ingest job postings from configured sources",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--run-once", action="store_true", help="Run a single cycle and exit")
    parser.add_argument("--source", type=str, default=None, help="Only run the source with this name (case-insensitive)")
    parser.add_argument("--max-items", type=positive_int, default=None, help="Item budget per run")
    parser.add_argument("--max-detail", type=non_negative_int, default=None, help="Detail-page budget per run")
    parser.add_argument(
        "--interval",
        type=positive_int,
        default=SCHEDULER_INTERVAL_SECONDS,
        help="Seconds between cycles (default: %(default)s)",
    )
    parser.add_argument("--dry-run", action="store_true", help="Use the in-memory store and search index")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: %(default)s)",
    )
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def resolve_options(args: argparse.Namespace, settings: Settings) -> Optional[FetchOptions]:
    """CLI budgets override the environment defaults; None lets the orchestrator decide."""
    if args.max_items is None and args.max_detail is None:
        return None
    return FetchOptions(
        max_items_per_run=args.max_items if args.max_items is not None else max(1, settings.default_max_items),
        max_detail_fetch=args.max_detail if args.max_detail is not None else max(0, settings.default_max_detail),
    )


def select_adapters(adapters: List[SourceAdapter], source_filter: Optional[str]) -> List[SourceAdapter]:
    if not source_filter or not source_filter.strip():
        return list(adapters)

    wanted = source_filter.strip().lower()
    if wanted in UNSUPPORTED_SOURCES:
        logger.warning(f"Source '{source_filter}' is not supported; nothing to run")
        return []

    selected = [a for a in adapters if a.name.lower() == wanted]
    if not selected:
        logger.warning(f"No configured source named '{source_filter}'")
    return selected


def build_backends(settings: Settings, dry_run: bool) -> Tuple[JobStore, SearchIndex]:
    if dry_run:
        logger.info("Dry run: using in-memory store and search index")
        return InMemoryJobStore(), InMemorySearchIndex()

    db_config = DBConfig(settings.database_url)
    db_config.log_status()
    if not db_config.is_db_enabled:
        raise ConfigurationError("DATABASE_URL is required unless --dry-run is given")

    store = PostgresJobStore(settings.database_url)
    store.ensure_schema()
    search_index = MeiliSearchIndex(settings.meili_host, settings.meili_key, settings.meili_index)
    return store, search_index


async def run(args: argparse.Namespace, settings: Settings) -> int:
    store, search_index = build_backends(settings, args.dry_run)
    client = SourceHTTPClient.from_settings(settings)
    adapters = select_adapters(build_adapters(settings, client), args.source)

    orchestrator = get_orchestrator(store, search_index, settings, adapters)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, orchestrator.request_stop)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass

    try:
        await orchestrator.scheduler_loop(
            interval_seconds=args.interval,
            run_once_only=args.run_once,
            options=resolve_options(args, settings),
        )
    finally:
        if isinstance(store, PostgresJobStore):
            store.close()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level), format=LOG_FORMAT)
    logger.info("Ingestion worker starting (Indeed not supported)")

    try:
        settings = load_settings()
        return asyncio.run(run(args, settings))
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except IngestionError as e:
        logger.error(f"Worker could not start: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
