"""
HYBRIDJOIN Data Model

Stream records, fact rows, batches and run metrics shared by the
producer, the join engine and the coordinator.
"""

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Dimension(str, Enum):
    """Dimensions probed per stream record"""
    TIME = "time"
    STORE = "store"


class SkipReason(str, Enum):
    """Why a stream record produced no fact row"""
    LOOKUP_FAILURE = "lookup_failure"
    SINK_FAILURE = "sink_failure"


@dataclass(frozen=True)
class StreamRecord:
    """One row of the outer relation: a customer who bought a product."""
    product_id: int
    customer_id: int


@dataclass(frozen=True)
class FactRow:
    """
    A joined sales fact.

    time_id / store_id are None when the dimension has no row for the
    product. The total sale is computed by the storage layer.
    """
    product_id: int
    customer_id: int
    time_id: Optional[int]
    store_id: Optional[int]


Batch = List[StreamRecord]


def sort_batch(batch: Batch) -> Batch:
    """Stable ascending sort by join key."""
    return sorted(batch, key=lambda record: record.product_id)


@dataclass
class RunMetrics:
    """Counters for one fact-building run"""
    rows_processed: int = 0
    batches_processed: int = 0
    facts_emitted: int = 0
    absent_lookups: Counter = field(default_factory=Counter)
    skipped: Counter = field(default_factory=Counter)
    source_truncated: bool = False

    @property
    def rows_skipped(self) -> int:
        return sum(self.skipped.values())

    def as_dict(self) -> Dict[str, Any]:
        """Progress/summary view suitable for structured logging"""
        return {
            "batches_processed": self.batches_processed,
            "rows_processed": self.rows_processed,
            "facts_emitted": self.facts_emitted,
            "rows_skipped": self.rows_skipped,
            "skipped": {reason.value: self.skipped[reason] for reason in SkipReason},
            "absent_lookups": {dim.value: self.absent_lookups[dim] for dim in Dimension},
            "source_truncated": self.source_truncated,
        }
