"""
Stream Producer

Reads the outer relation sequentially and turns it into fixed-size
batches of stream records, each sorted by join key before it is handed
off. Dispatches are paced at a constant cadence: the next batch is not
released until the pacing delay has elapsed since the previous one.

Pacing is a fixed throttle only. Backpressure comes from the bounded
hand-off channel the coordinator puts between producer and joiner.
"""

import asyncio
import time
from contextlib import aclosing
from typing import Any, AsyncIterable, AsyncIterator, Awaitable, Callable, Iterable, Mapping, Optional, Union

import structlog

from electronica_dw.join.exceptions import FatalSetupFailure
from electronica_dw.join.models import Batch, StreamRecord, sort_batch

logger = structlog.get_logger(__name__)

OuterRow = Mapping[str, Any]
OuterSource = Union[Iterable[OuterRow], AsyncIterable[OuterRow]]


def to_stream_record(row: OuterRow) -> StreamRecord:
    """Build a stream record from an outer-relation row."""
    return StreamRecord(
        product_id=int(row["productID"]),
        customer_id=int(row["customerID"]),
    )


async def _iterate(source: OuterSource) -> AsyncIterator[OuterRow]:
    if hasattr(source, "__aiter__"):
        async for row in source:
            yield row
    else:
        for row in source:
            yield row


class StreamProducer:
    """
    Batches the outer relation for the join engine.

    Example:
        producer = StreamProducer(rows, batch_size=10, pace=1.0)
        async for batch in producer.produce():
            ...
    """

    def __init__(
        self,
        source: OuterSource,
        batch_size: int = 10,
        pace: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        if pace < 0:
            raise ValueError(f"pace must not be negative, got {pace}")

        self.source = source
        self.batch_size = batch_size
        self.pace = pace
        self._sleep = sleep
        self._last_dispatch: Optional[float] = None
        self._stop_requested = False

        self.rows_read = 0
        self.batches_dispatched = 0
        self.truncated = False

    def stop(self) -> None:
        """Stop emitting further batches; the current dispatch still completes."""
        self._stop_requested = True

    @property
    def stopped(self) -> bool:
        return self._stop_requested

    async def _records(self) -> AsyncIterator[StreamRecord]:
        """Stream records from the source; ends early on a mid-stream failure."""
        async with aclosing(_iterate(self.source)) as rows:
            while True:
                try:
                    row = await anext(rows)
                    record = to_stream_record(row)
                except StopAsyncIteration:
                    return
                except Exception as e:
                    if self.rows_read == 0:
                        raise FatalSetupFailure(f"Outer relation unreadable: {e}") from e
                    logger.error(
                        "Outer relation failed mid-stream, ending early",
                        rows_read=self.rows_read,
                        error=str(e),
                    )
                    self.truncated = True
                    return

                self.rows_read += 1
                yield record

    async def _wait_for_pace(self) -> None:
        if self._last_dispatch is None or self.pace <= 0:
            return
        remaining = self.pace - (time.monotonic() - self._last_dispatch)
        if remaining > 0:
            await self._sleep(remaining)

    def _dispatch(self, batch: Batch) -> Batch:
        self._last_dispatch = time.monotonic()
        self.batches_dispatched += 1
        logger.debug(
            "Dispatching batch",
            batch_number=self.batches_dispatched,
            batch_size=len(batch),
            rows_read=self.rows_read,
        )
        return sort_batch(batch)

    async def produce(self) -> AsyncIterator[Batch]:
        """
        Yield sorted batches of the outer relation.

        Full batches hold exactly batch_size records; the final batch may be
        shorter and is never empty. No delay follows the final batch.
        """
        batch: Batch = []

        async with aclosing(self._records()) as records:
            async for record in records:
                if self._stop_requested:
                    break
                batch.append(record)
                if len(batch) < self.batch_size:
                    continue

                await self._wait_for_pace()
                if self._stop_requested:
                    break
                yield self._dispatch(batch)
                batch = []

        if batch and self._stop_requested:
            logger.warning("Producer stopped, dropping undispatched records", records=len(batch))
            return

        if batch:
            await self._wait_for_pace()
            yield self._dispatch(batch)

        logger.info(
            "Outer relation exhausted",
            rows_read=self.rows_read,
            batches_dispatched=self.batches_dispatched,
            truncated=self.truncated,
        )
