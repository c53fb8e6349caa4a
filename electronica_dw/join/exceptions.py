"""
HYBRIDJOIN Exceptions

Per-record failures (LookupFailure, SinkFailure) are contained by the
join engine. FatalSetupFailure aborts the run.
"""

from typing import Optional


class HybridJoinError(Exception):
    """Base class for fact-building errors"""


class LookupFailure(HybridJoinError):
    """A dimension probe failed at the transport/storage level"""

    def __init__(self, dimension: str, product_id: int, message: Optional[str] = None):
        self.dimension = dimension
        self.product_id = product_id
        super().__init__(message or f"{dimension} lookup failed for product {product_id}")


class SinkFailure(HybridJoinError):
    """The fact sink rejected a row"""

    def __init__(self, row, message: Optional[str] = None):
        self.row = row
        super().__init__(message or f"Fact sink rejected {row}")


class FatalSetupFailure(HybridJoinError):
    """Source or dimension lookups unreachable at startup"""
