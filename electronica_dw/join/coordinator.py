"""
HYBRIDJOIN Coordinator

Runs the stream producer and the join engine as two asyncio tasks
connected by a single FIFO hand-off channel. A bounded channel makes the
producer wait for the joiner, so memory stays flat under a slow
dimension store or fact sink.
"""

import asyncio
from typing import AsyncIterator, Optional, Set

import structlog
from prometheus_client import Gauge

from electronica_dw.join.engine import JoinEngine
from electronica_dw.join.exceptions import FatalSetupFailure
from electronica_dw.join.models import Batch, RunMetrics
from electronica_dw.join.producer import StreamProducer

logger = structlog.get_logger(__name__)

CHANNEL_DEPTH = Gauge(
    "electronica_channel_depth",
    "Batches waiting on the producer/joiner hand-off channel",
)

_END_OF_STREAM = object()


async def _drain(channel: asyncio.Queue) -> AsyncIterator[Batch]:
    while True:
        item = await channel.get()
        CHANNEL_DEPTH.set(channel.qsize())
        if item is _END_OF_STREAM:
            return
        yield item


class Coordinator:
    """
    Sequences one fact-building run to completion.

    Example:
        coordinator = Coordinator(channel_capacity=1)
        metrics = await coordinator.run(producer, engine)
    """

    def __init__(self, channel_capacity: int = 1):
        if channel_capacity < 0:
            raise ValueError(f"channel_capacity must not be negative, got {channel_capacity}")
        # 0 = unbounded
        self.channel_capacity = channel_capacity

    async def _preflight(self, producer: StreamProducer, engine: JoinEngine) -> None:
        await engine.verify()

        verify = getattr(producer.source, "verify", None)
        if verify is not None:
            try:
                await verify()
            except Exception as e:
                raise FatalSetupFailure(f"Outer relation unreachable: {e}") from e

    async def _run_producer(self, producer: StreamProducer, channel: asyncio.Queue) -> None:
        async for batch in producer.produce():
            await channel.put(batch)
            CHANNEL_DEPTH.set(channel.qsize())
        await channel.put(_END_OF_STREAM)

    @staticmethod
    async def _raise_first_failure(done: Set[asyncio.Task], pending: Set[asyncio.Task]) -> None:
        for task in done:
            if task.cancelled() or task.exception() is None:
                continue
            for other in pending:
                other.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            logger.error(
                "Fact build aborted",
                task=task.get_name(),
                error=str(task.exception()),
            )
            raise task.exception()

    async def run(
        self,
        producer: StreamProducer,
        engine: JoinEngine,
        timeout: Optional[float] = None,
    ) -> RunMetrics:
        """
        Run producer and joiner until both finish.

        Args:
            producer: Source of sorted batches
            engine: Join engine consuming them
            timeout: Seconds before the producer is asked to stop; batches
                already on the channel are still joined

        Returns:
            RunMetrics for the run

        Raises:
            FatalSetupFailure: Source or dimension lookups unreachable
        """
        await self._preflight(producer, engine)

        channel: asyncio.Queue = asyncio.Queue(maxsize=self.channel_capacity)
        producer_task = asyncio.create_task(
            self._run_producer(producer, channel), name="hybridjoin-producer"
        )
        joiner_task = asyncio.create_task(
            engine.consume(_drain(channel)), name="hybridjoin-joiner"
        )

        logger.info(
            "Fact build started",
            batch_size=producer.batch_size,
            pace_seconds=producer.pace,
            channel_capacity=self.channel_capacity,
        )

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout is not None else None

        pending = {producer_task, joiner_task}
        try:
            while pending:
                remaining = None
                if deadline is not None and not producer_task.done():
                    remaining = max(deadline - loop.time(), 0)

                done, pending = await asyncio.wait(
                    pending, timeout=remaining, return_when=asyncio.FIRST_EXCEPTION
                )
                await self._raise_first_failure(done, pending)

                if deadline is not None and not producer_task.done() and loop.time() >= deadline:
                    logger.warning("Fact build timed out, stopping producer", timeout=timeout)
                    producer.stop()
                    deadline = None
        finally:
            for task in (producer_task, joiner_task):
                if not task.done():
                    task.cancel()

        metrics = engine.metrics
        metrics.source_truncated = producer.truncated
        self._report(metrics)
        return metrics

    @staticmethod
    def _report(metrics: RunMetrics) -> None:
        summary = metrics.as_dict()
        if metrics.rows_skipped:
            logger.warning("Fact build completed with skipped records", **summary)
        else:
            logger.info("Fact build completed", **summary)
