"""
Multi-Hash Table

Join key -> bucket of every stream record joined under that key, in
arrival order. Buckets are append-only and nothing is ever evicted, so
the table is a full history of the run rather than a dedup index.
"""

from typing import Dict, Iterator, List

from electronica_dw.join.models import StreamRecord


class MultiHashTable:
    """Append-only mapping of product id to stream records."""

    def __init__(self):
        self._buckets: Dict[int, List[StreamRecord]] = {}
        self._size = 0

    def add(self, record: StreamRecord) -> None:
        """Append the record to its key's bucket, creating the bucket if absent."""
        bucket = self._buckets.get(record.product_id)
        if bucket is None:
            bucket = self._buckets[record.product_id] = []
        bucket.append(record)
        self._size += 1

    def bucket(self, key: int) -> List[StreamRecord]:
        """Copy of the bucket for key (empty if the key was never seen)."""
        return list(self._buckets.get(key, ()))

    def keys(self) -> List[int]:
        return list(self._buckets)

    def __getitem__(self, key: int) -> List[StreamRecord]:
        return list(self._buckets[key])

    def __contains__(self, key: object) -> bool:
        return key in self._buckets

    def __iter__(self) -> Iterator[int]:
        return iter(list(self._buckets))

    def __len__(self) -> int:
        """Number of distinct keys"""
        return len(self._buckets)

    @property
    def total_records(self) -> int:
        return self._size
