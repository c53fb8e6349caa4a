"""
Warehouse Pipeline

Wires the dimension loader and the HYBRIDJOIN fact builder to the
database and configuration.
"""

from typing import List, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from electronica_dw.config import HybridJoinSettings, get_settings
from electronica_dw.ingestion import DimensionLoader, LoadResult, SourceTables
from electronica_dw.join import Coordinator, JoinEngine, RunMetrics, StreamProducer
from electronica_dw.join.sql import SqlDimensionLookup, SqlFactSink, SqlOuterRelation

logger = structlog.get_logger(__name__)


async def load_dimensions(
    session_factory: async_sessionmaker[AsyncSession],
    tables: Optional[SourceTables] = None,
) -> List[LoadResult]:
    """Read both source batches and load every dimension table."""
    tables = tables or SourceTables.from_settings()
    loader = DimensionLoader(session_factory)
    return await loader.load_all(tables)


async def build_sales_fact(
    session_factory: async_sessionmaker[AsyncSession],
    join_settings: Optional[HybridJoinSettings] = None,
    timeout: Optional[float] = None,
) -> RunMetrics:
    """
    Build sales_fact by joining customer_dimension against the time and
    store dimensions with HYBRIDJOIN.

    Args:
        session_factory: Session factory bound to the warehouse
        join_settings: Override the configured batch size, pacing, etc.
        timeout: Stop producing new batches after this many seconds

    Returns:
        RunMetrics for the run
    """
    join_settings = join_settings or get_settings().hybrid_join

    producer = StreamProducer(
        SqlOuterRelation(session_factory, page_size=join_settings.outer_page_size),
        batch_size=join_settings.batch_size,
        pace=join_settings.pace_seconds,
    )
    engine = JoinEngine(
        SqlDimensionLookup(session_factory),
        SqlFactSink(session_factory),
        max_attempts=join_settings.max_attempts,
        retry_backoff=join_settings.retry_backoff_ms / 1000,
        absent_dimension_id=join_settings.absent_dimension_id,
    )
    coordinator = Coordinator(channel_capacity=join_settings.channel_capacity)

    logger.info("Processing the sales_fact table")
    return await coordinator.run(producer, engine, timeout=timeout)
