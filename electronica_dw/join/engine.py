"""
HYBRIDJOIN Engine

Joins batches of the outer relation against the time and store
dimensions, following the hybrid join (method 4) strategy: outer rows
are collected into batches and sorted by join key, so an inner table
with a clustered index on that key is probed in index order.

Per batch, in arrival order, and per record, in join-key order:
1. Add the record to the multi-hash table under its product id
2. Probe the time dimension, then the store dimension
3. Build the fact row and append it to the fact sink

A failed probe or a rejected fact is logged, counted and skipped; the
next record proceeds. Nothing is retried beyond max_attempts for the
single failing call.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, AsyncIterable, Awaitable, Callable, Iterable, Optional, Union

import structlog
from prometheus_client import Counter, Histogram

from electronica_dw.join.exceptions import FatalSetupFailure, LookupFailure, SinkFailure
from electronica_dw.join.hash_table import MultiHashTable
from electronica_dw.join.models import Batch, Dimension, FactRow, RunMetrics, SkipReason, StreamRecord

logger = structlog.get_logger(__name__)


# =============================================================================
# METRICS
# =============================================================================

BATCHES_JOINED = Counter(
    "electronica_batches_joined_total",
    "Total number of stream batches joined",
)

FACT_ROWS = Counter(
    "electronica_fact_rows_total",
    "Stream records joined, by outcome",
    ["status"],
)

BATCH_JOIN_TIME = Histogram(
    "electronica_batch_join_seconds",
    "Time spent joining one batch",
)


# =============================================================================
# COLLABORATOR INTERFACES
# =============================================================================

class DimensionLookup(ABC):
    """Point lookups into the dimension tables, keyed by product id"""

    async def verify(self) -> None:
        """Raise if the dimension store is unreachable."""

    @abstractmethod
    async def lookup(self, dimension: Dimension, product_id: int) -> Optional[int]:
        """
        Return the dimension id associated with the product.

        Returns:
            The id, or None when the dimension has no row for the product.
            Only transport/storage errors may raise.
        """
        pass


class FactSink(ABC):
    """Append-only destination for fact rows"""

    @abstractmethod
    async def append(self, row: FactRow) -> None:
        """Persist one fact row"""
        pass


# =============================================================================
# JOIN ENGINE
# =============================================================================

class JoinEngine:
    """
    Consumes sorted batches and emits one fact row per stream record.

    The engine exclusively owns its multi-hash table and run metrics.

    Example:
        engine = JoinEngine(lookup, sink)
        metrics = await engine.consume(batches)
    """

    def __init__(
        self,
        lookup: DimensionLookup,
        sink: FactSink,
        max_attempts: int = 1,
        retry_backoff: float = 0.0,
        absent_dimension_id: Optional[int] = None,
        on_progress: Optional[Callable[[RunMetrics], Any]] = None,
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be positive, got {max_attempts}")

        self.lookup = lookup
        self.sink = sink
        self.max_attempts = max_attempts
        self.retry_backoff = retry_backoff
        self.absent_dimension_id = absent_dimension_id
        self.on_progress = on_progress

        self.hash_table = MultiHashTable()
        self.metrics = RunMetrics()

    async def verify(self) -> None:
        """Check the dimension lookups before any batch is consumed."""
        try:
            await self.lookup.verify()
        except Exception as e:
            raise FatalSetupFailure(f"Dimension lookups unreachable: {e}") from e

    async def consume(self, batches: Union[AsyncIterable[Batch], Iterable[Batch]]) -> RunMetrics:
        """Join every batch, strictly in the order received."""
        if hasattr(batches, "__aiter__"):
            async for batch in batches:
                await self.process_batch(batch)
        else:
            for batch in batches:
                await self.process_batch(batch)
        return self.metrics

    async def process_batch(self, batch: Batch) -> int:
        """
        Join one batch.

        Returns:
            Number of fact rows emitted for the batch
        """
        emitted = 0
        with BATCH_JOIN_TIME.time():
            for record in batch:
                if await self.process_record(record):
                    emitted += 1

        self.metrics.batches_processed += 1
        BATCHES_JOINED.inc()

        logger.info(
            "Batch joined",
            batches_processed=self.metrics.batches_processed,
            rows_processed=self.metrics.rows_processed,
            batch_size=len(batch),
            facts_emitted=emitted,
        )
        if self.on_progress is not None:
            self.on_progress(self.metrics)

        return emitted

    async def process_record(self, record: StreamRecord) -> bool:
        """
        Hash, probe and emit a single record.

        Returns:
            True if a fact row was emitted
        """
        self.metrics.rows_processed += 1
        self.hash_table.add(record)

        try:
            time_id = await self._probe(Dimension.TIME, record.product_id)
            store_id = await self._probe(Dimension.STORE, record.product_id)
            row = FactRow(
                product_id=record.product_id,
                customer_id=record.customer_id,
                time_id=time_id,
                store_id=store_id,
            )
            await self._emit(row)

        except LookupFailure as e:
            self._skip(SkipReason.LOOKUP_FAILURE, record, e)
            return False

        except SinkFailure as e:
            self._skip(SkipReason.SINK_FAILURE, record, e)
            return False

        self.metrics.facts_emitted += 1
        FACT_ROWS.labels(status="emitted").inc()
        return True

    def _skip(self, reason: SkipReason, record: StreamRecord, error: Exception) -> None:
        self.metrics.skipped[reason] += 1
        FACT_ROWS.labels(status=reason.value).inc()
        logger.error(
            "Skipping stream record",
            reason=reason.value,
            product_id=record.product_id,
            customer_id=record.customer_id,
            error=str(error),
        )

    async def _probe(self, dimension: Dimension, product_id: int) -> Optional[int]:
        try:
            value = await self._attempt(lambda: self.lookup.lookup(dimension, product_id))
        except LookupFailure:
            raise
        except Exception as e:
            raise LookupFailure(dimension.value, product_id, str(e)) from e

        if value is None:
            self.metrics.absent_lookups[dimension] += 1
            return self.absent_dimension_id
        return value

    async def _emit(self, row: FactRow) -> None:
        try:
            await self._attempt(lambda: self.sink.append(row))
        except SinkFailure:
            raise
        except Exception as e:
            raise SinkFailure(row, str(e)) from e

    async def _attempt(self, call: Callable[[], Awaitable[Any]]) -> Any:
        """Run one lookup/sink call with a bounded number of attempts."""
        attempt = 1
        while True:
            try:
                return await call()
            except Exception as e:
                if attempt >= self.max_attempts:
                    raise
                logger.warning("Retrying failed call", attempt=attempt, error=str(e))
                if self.retry_backoff > 0:
                    await asyncio.sleep(self.retry_backoff)
                attempt += 1
