"""
Electronica DW Command Line

Usage:
    electronica-dw load-dimensions
    electronica-dw build-facts --batch-size 10 --pace-ms 1000
    electronica-dw run
"""

import argparse
import asyncio
import sys
from typing import List, Optional

import structlog

from electronica_dw.config import get_settings
from electronica_dw.config.logging import LOG_FORMATS, configure_logging
from electronica_dw.database import close_database, create_schema, get_session_factory, init_database
from electronica_dw.ingestion import LoadStatus
from electronica_dw.join import HybridJoinError, RunMetrics
from electronica_dw.pipeline import build_sales_fact, load_dimensions

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="electronica-dw",
        description="Load the Electronica star schema and build sales_fact with HYBRIDJOIN",
    )
    parser.add_argument(
        "command",
        choices=["load-dimensions", "build-facts", "run"],
        help="Phase to run (run = both phases)",
    )
    parser.add_argument("--database-url", help="Override the configured database URL")
    parser.add_argument("--batch-size", type=int, help="Stream records per batch (default: 10)")
    parser.add_argument("--pace-ms", type=int, help="Delay between batches in ms (default: 1000)")
    parser.add_argument("--timeout", type=float, help="Stop producing batches after this many seconds")
    parser.add_argument("--log-level", help="Override log level")
    parser.add_argument("--log-format", choices=list(LOG_FORMATS), help="Override log format")
    return parser


def fact_build_exit_code(metrics: RunMetrics) -> int:
    """1 if the fact build skipped records or the source ended early, else 0."""
    if metrics.rows_skipped or metrics.source_truncated:
        return 1
    return 0


async def run_command(args: argparse.Namespace) -> int:
    """Run the requested phases; returns the process exit code."""
    settings = get_settings()
    join_settings = settings.hybrid_join
    overrides = {}
    if args.batch_size is not None:
        overrides["batch_size"] = args.batch_size
    if args.pace_ms is not None:
        overrides["pace_ms"] = args.pace_ms
    if overrides:
        join_settings = join_settings.model_validate({**join_settings.model_dump(), **overrides})

    engine = await init_database(args.database_url)
    try:
        await create_schema(engine)
        session_factory = get_session_factory()
        exit_code = 0

        if args.command in ("load-dimensions", "run"):
            results = await load_dimensions(session_factory)
            if any(r.status == LoadStatus.FAILED for r in results):
                exit_code = 1

        if args.command in ("build-facts", "run"):
            metrics = await build_sales_fact(session_factory, join_settings, timeout=args.timeout)
            exit_code = max(exit_code, fact_build_exit_code(metrics))

        logger.info("Electronica DW run finished", command=args.command, exit_code=exit_code)
        return exit_code
    finally:
        await close_database()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, args.log_format)

    try:
        return asyncio.run(run_command(args))
    except HybridJoinError as e:
        logger.error("Fact build aborted", error=str(e))
        return 2
    except Exception as e:
        logger.exception("Electronica DW run failed", error=str(e))
        return 2


if __name__ == "__main__":
    sys.exit(main())
