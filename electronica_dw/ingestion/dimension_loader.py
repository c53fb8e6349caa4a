"""
Dimension Loader

Bulk loads the supplier, product, customer, time and store dimensions
from the two source batches. Supports:
- Deduplication by natural key, first occurrence wins
- Per-table status and row accounting
- Chunked inserts

Deduplication state belongs to the loader instance, so separate runs
(and tests) never see each other's keys.
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Type

import polars as pl
import structlog
from pydantic import BaseModel
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from electronica_dw.database.models import (
    Base,
    CustomerDimension,
    ProductDimension,
    StoreDimension,
    SupplierDimension,
    TimeDimension,
)
from electronica_dw.ingestion.sources import SourceTables, require_columns, row_label

logger = structlog.get_logger(__name__)

ORDER_DATE_FORMATS = [
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%m/%d/%y %H:%M",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
]


class LoadStatus(str, Enum):
    """Dimension load status"""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class LoadResult(BaseModel):
    """Result of loading one dimension table"""
    target_table: str
    status: LoadStatus
    rows_loaded: int = 0
    rows_failed: int = 0
    error_message: Optional[str] = None
    load_duration_seconds: float = 0
    started_at: datetime
    completed_at: Optional[datetime] = None


def parse_price(value: Optional[str]) -> Optional[Decimal]:
    """Parse prices such as "$1,299.00"; None if unparseable."""
    if value is None:
        return None
    cleaned = value.replace("$", "").replace(",", "").strip()
    if not cleaned:
        return None
    try:
        return Decimal(cleaned).quantize(Decimal("0.01"))
    except InvalidOperation:
        return None


def _as_int(column: str) -> pl.Expr:
    return pl.col(column).cast(pl.Int64, strict=False)


def _as_datetime(column: str) -> pl.Expr:
    return pl.coalesce([
        pl.col(column).str.to_datetime(fmt, strict=False)
        for fmt in ORDER_DATE_FORMATS
    ])


class DimensionLoader:
    """
    Loads all warehouse dimensions for one run.

    Example:
        loader = DimensionLoader(session_factory)
        results = await loader.load_all(SourceTables.from_settings())
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], chunk_size: int = 1000):
        self.session_factory = session_factory
        self.chunk_size = chunk_size
        self._seen: Dict[str, Set[int]] = {
            SupplierDimension.__tablename__: set(),
            ProductDimension.__tablename__: set(),
            CustomerDimension.__tablename__: set(),
            StoreDimension.__tablename__: set(),
        }

    def seen_keys(self, table: str) -> Set[int]:
        """Keys already loaded into a deduplicated dimension by this loader"""
        return set(self._seen[table])

    async def _insert(self, model: Type[Base], records: List[Dict[str, Any]]) -> int:
        """Insert records in chunks inside a single transaction"""
        if not records:
            return 0

        async with self.session_factory() as session:
            async with session.begin():
                for i in range(0, len(records), self.chunk_size):
                    await session.execute(insert(model), records[i:i + self.chunk_size])

        return len(records)

    async def _run(self, model: Type[Base], build) -> LoadResult:
        """Run one table load, capturing its outcome in a LoadResult"""
        table = model.__tablename__
        started_at = datetime.utcnow()
        result = LoadResult(target_table=table, status=LoadStatus.RUNNING, started_at=started_at)

        logger.info("Processing dimension table", table=table)

        try:
            rows_loaded, rows_failed = await build()
            result.status = LoadStatus.COMPLETED
            result.rows_loaded = rows_loaded
            result.rows_failed = rows_failed
        except Exception as e:
            result.status = LoadStatus.FAILED
            result.error_message = str(e)
            logger.error("Dimension load failed", table=table, error=str(e))

        result.completed_at = datetime.utcnow()
        result.load_duration_seconds = (result.completed_at - started_at).total_seconds()

        if result.status == LoadStatus.COMPLETED:
            logger.info(
                "Dimension filled successfully",
                table=table,
                rows_loaded=result.rows_loaded,
                rows_failed=result.rows_failed,
            )
        return result

    async def _load_unique(self, model: Type[Base], frame: pl.DataFrame, key: str) -> tuple:
        """Insert rows whose key this loader has not loaded yet"""
        seen = self._seen[model.__tablename__]

        valid = frame.filter(pl.col(key).is_not_null())
        rows_failed = frame.height - valid.height

        fresh = valid.unique(subset=[key], keep="first", maintain_order=True)
        if seen:
            fresh = fresh.filter(~pl.col(key).is_in(sorted(seen)))

        records = fresh.to_dicts()
        if model is ProductDimension:
            for record in records:
                record["product_price"] = parse_price(record["product_price"])

        rows_loaded = await self._insert(model, records)
        seen.update(fresh[key].to_list())
        return rows_loaded, rows_failed

    async def load_suppliers(self, master_data: pl.DataFrame) -> LoadResult:
        async def build():
            require_columns(master_data, ["supplierID", "supplierName"], "master data")
            frame = master_data.select(
                _as_int("supplierID").alias("supplier_id"),
                pl.col("supplierName").alias("supplier_name"),
            )
            return await self._load_unique(SupplierDimension, frame, "supplier_id")

        return await self._run(SupplierDimension, build)

    async def load_products(self, master_data: pl.DataFrame) -> LoadResult:
        async def build():
            require_columns(
                master_data,
                ["productID", "productName", "productPrice", "supplierID"],
                "master data",
            )
            frame = master_data.select(
                _as_int("productID").alias("product_id"),
                pl.col("productName").alias("product_name"),
                pl.col("productPrice").alias("product_price"),
                _as_int("supplierID").alias("supplier_id"),
            )
            return await self._load_unique(ProductDimension, frame, "product_id")

        return await self._run(ProductDimension, build)

    async def load_customers(self, transactions: pl.DataFrame) -> LoadResult:
        async def build():
            require_columns(
                transactions,
                ["CustomerID", "CustomerName", "Gender", "ProductID"],
                "transactions",
            )
            frame = transactions.select(
                _as_int("CustomerID").alias("customer_id"),
                pl.col("CustomerName").alias("customer_name"),
                pl.col("Gender").alias("gender"),
                _as_int("ProductID").alias("product_id"),
            )
            # A customer without a product cannot join
            frame = frame.with_columns(
                pl.when(pl.col("product_id").is_null())
                .then(pl.lit(None, dtype=pl.Int64))
                .otherwise(pl.col("customer_id"))
                .alias("customer_id")
            )
            return await self._load_unique(CustomerDimension, frame, "customer_id")

        return await self._run(CustomerDimension, build)

    async def load_time(self, transactions: pl.DataFrame) -> LoadResult:
        """One row per transaction; rows with an unusable date or product are skipped."""
        async def build():
            require_columns(
                transactions,
                ["Order ID", "Order Date", "Quantity Ordered", "ProductID"],
                "transactions",
            )
            frame = transactions.with_row_index("_row").select(
                pl.col("_row"),
                _as_int("Order ID").alias("order_id"),
                _as_datetime("Order Date").alias("order_date"),
                _as_int("Quantity Ordered").alias("quantity_ordered"),
                _as_int("ProductID").alias("product_id"),
            )
            invalid = frame.filter(pl.col("order_date").is_null() | pl.col("product_id").is_null())
            if invalid.height:
                logger.warning(
                    "Ignoring rows with incorrect datetime or product values",
                    table=TimeDimension.__tablename__,
                    rows=[row_label(index) for index in invalid["_row"].head(10).to_list()],
                    count=invalid.height,
                )

            valid = frame.filter(pl.col("order_date").is_not_null() & pl.col("product_id").is_not_null())
            records = valid.drop("_row").to_dicts()
            rows_loaded = await self._insert(TimeDimension, records)
            return rows_loaded, invalid.height

        return await self._run(TimeDimension, build)

    async def load_stores(self, master_data: pl.DataFrame) -> LoadResult:
        async def build():
            require_columns(master_data, ["storeID", "storeName", "productID"], "master data")
            frame = master_data.select(
                _as_int("storeID").alias("store_id"),
                pl.col("storeName").alias("store_name"),
                _as_int("productID").alias("product_id"),
            )
            return await self._load_unique(StoreDimension, frame, "store_id")

        return await self._run(StoreDimension, build)

    async def load_all(self, tables: SourceTables) -> List[LoadResult]:
        """
        Load every dimension.

        A failed table is reported in its LoadResult; the remaining tables
        still load.
        """
        results = [
            await self.load_suppliers(tables.master_data),
            await self.load_products(tables.master_data),
            await self.load_customers(tables.transactions),
            await self.load_time(tables.transactions),
            await self.load_stores(tables.master_data),
        ]

        successful = sum(1 for r in results if r.status == LoadStatus.COMPLETED)
        failed = sum(1 for r in results if r.status == LoadStatus.FAILED)
        logger.info(
            f"Dimension load completed: {successful} successful, {failed} failed",
            rows_loaded=sum(r.rows_loaded for r in results),
        )
        return results
