"""
HYBRIDJOIN Fact Builder
"""
from .coordinator import Coordinator
from .engine import DimensionLookup, FactSink, JoinEngine
from .exceptions import FatalSetupFailure, HybridJoinError, LookupFailure, SinkFailure
from .hash_table import MultiHashTable
from .models import Batch, Dimension, FactRow, RunMetrics, SkipReason, StreamRecord
from .producer import StreamProducer

__all__ = [
    "Coordinator",
    "DimensionLookup",
    "FactSink",
    "JoinEngine",
    "FatalSetupFailure",
    "HybridJoinError",
    "LookupFailure",
    "SinkFailure",
    "MultiHashTable",
    "Batch",
    "Dimension",
    "FactRow",
    "RunMetrics",
    "SkipReason",
    "StreamRecord",
    "StreamProducer",
]
