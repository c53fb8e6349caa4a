"""
Source File Reader

Reads the delimited transactional and master-data files into Polars
DataFrames. Every column is read as a string and trimmed; typing is left
to the dimension loader.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Union

import polars as pl
import structlog

from electronica_dw.config import get_settings

logger = structlog.get_logger(__name__)

NULL_VALUES = ["", "NULL", "null", "None", "NA", "N/A"]


class SourceFileError(Exception):
    """A source file is missing or cannot be parsed"""


def row_label(index: int) -> str:
    """Label of a data row, 1-based, header excluded."""
    return f"Row {index + 1}"


def read_source_rows(path: Union[str, Path], delimiter: str = ",") -> pl.DataFrame:
    """
    Read a delimited source file.

    Args:
        path: File to read; the first line is the header
        delimiter: Field separator

    Returns:
        DataFrame with trimmed header names and trimmed string values

    Raises:
        SourceFileError: If the file is missing or malformed
    """
    path = Path(path)
    logger.info("Streaming data from source file", file=str(path))

    if not path.exists():
        raise SourceFileError(f"File not found: {path}")

    try:
        df = pl.read_csv(
            path,
            separator=delimiter,
            infer_schema_length=0,
            null_values=NULL_VALUES,
        )
    except Exception as e:
        raise SourceFileError(f"Failed to read {path}: {e}") from e

    df = df.rename({column: column.strip() for column in df.columns})
    df = df.with_columns(pl.all().str.strip_chars())

    logger.info("Source file processed", file=str(path), rows=df.height, columns=len(df.columns))
    return df


def require_columns(df: pl.DataFrame, columns: List[str], source: str) -> None:
    """Raise SourceFileError if any expected column is missing."""
    missing = [column for column in columns if column not in df.columns]
    if missing:
        raise SourceFileError(f"{source} is missing columns: {missing}")


@dataclass
class SourceTables:
    """Both source batches for one warehouse run"""
    transactions: pl.DataFrame
    master_data: pl.DataFrame

    @classmethod
    def from_files(
        cls,
        transactions_file: Union[str, Path],
        master_data_file: Union[str, Path],
        delimiter: str = ",",
    ) -> "SourceTables":
        return cls(
            transactions=read_source_rows(transactions_file, delimiter),
            master_data=read_source_rows(master_data_file, delimiter),
        )

    @classmethod
    def from_settings(cls) -> "SourceTables":
        settings = get_settings()
        return cls.from_files(
            settings.sources.transactions_file,
            settings.sources.master_data_file,
            settings.sources.delimiter,
        )
