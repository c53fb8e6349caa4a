"""
Data Ingestion Module
"""
from .dimension_loader import DimensionLoader, LoadResult, LoadStatus
from .sources import SourceFileError, SourceTables, read_source_rows

__all__ = [
    "DimensionLoader",
    "LoadResult",
    "LoadStatus",
    "SourceFileError",
    "SourceTables",
    "read_source_rows",
]
