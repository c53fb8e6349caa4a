"""
Test Suite Configuration
"""
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from electronica_dw.database import create_schema, create_session_factory
from electronica_dw.join import Dimension, DimensionLookup, FactRow, FactSink


TRANSACTIONS_CSV = """Order ID,Order Date,ProductID,CustomerID,CustomerName,Gender,Quantity Ordered
1,2019-04-19 08:46:00,103,11,Alice,Female,2
2,2019-04-07 22:30:00,101,12,Bob,Male,1
3,not-a-date,102,13,Cara,Female,1
4,2019-04-12 14:38:00,102,14,Dan,Male,3
5,2019-04-30 09:27:00,101,11,Alice,Female,4
6,2019-04-29 13:03:00,105,15,Eve,Female,1
"""

MASTER_DATA_CSV = """productID,productName,productPrice,supplierID,supplierName,storeID,storeName
101,Phone,$100.00,1,Acme,1,Downtown
102,Laptop,"$1,200.50",1,Acme,2,Uptown
103,Charger,$15.25,2,Volt,1,Downtown
104,Cable,$5.00,2,Volt,2,Uptown
"""


class StubDimensionLookup(DimensionLookup):
    """In-memory dimension lookup with injectable transport failures"""

    def __init__(
        self,
        time_ids: Optional[Dict[int, int]] = None,
        store_ids: Optional[Dict[int, int]] = None,
        failing: Iterable[Tuple[Dimension, int]] = (),
        transient_failures: int = 0,
    ):
        self.tables = {
            Dimension.TIME: dict(time_ids or {}),
            Dimension.STORE: dict(store_ids or {}),
        }
        self.failing: Set[Tuple[Dimension, int]] = set(failing)
        self.transient_failures = transient_failures
        self.verify_error: Optional[Exception] = None
        self.calls: List[Tuple[Dimension, int]] = []

    async def verify(self) -> None:
        if self.verify_error is not None:
            raise self.verify_error

    async def lookup(self, dimension: Dimension, product_id: int) -> Optional[int]:
        self.calls.append((dimension, product_id))
        if self.transient_failures:
            self.transient_failures -= 1
            raise ConnectionError("connection reset")
        if (dimension, product_id) in self.failing:
            raise ConnectionError(f"{dimension.value} dimension unreachable")
        return self.tables[dimension].get(product_id)


class RecordingSink(FactSink):
    """Collects fact rows; rejects rows for the given customers"""

    def __init__(self, reject_customers: Iterable[int] = ()):
        self.rows: List[FactRow] = []
        self.reject_customers = set(reject_customers)

    async def append(self, row: FactRow) -> None:
        if row.customer_id in self.reject_customers:
            raise RuntimeError("duplicate key value violates constraint")
        self.rows.append(row)


def make_rows(pairs: Iterable[Tuple[int, int]]) -> List[dict]:
    """Outer-relation rows from (productID, customerID) pairs"""
    return [{"productID": product_id, "customerID": customer_id} for product_id, customer_id in pairs]


@pytest.fixture
def lookup() -> StubDimensionLookup:
    return StubDimensionLookup(
        time_ids={3: 30, 5: 50},
        store_ids={3: 7, 5: 8},
    )


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def source_files(tmp_path: Path) -> Tuple[Path, Path]:
    """Sample transactions and master data files"""
    transactions = tmp_path / "transactions.csv"
    master_data = tmp_path / "master_data.csv"
    transactions.write_text(TRANSACTIONS_CSV, encoding="utf-8")
    master_data.write_text(MASTER_DATA_CSV, encoding="utf-8")
    return transactions, master_data


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'warehouse.db'}"


@pytest_asyncio.fixture
async def session_factory(database_url: str):
    """Session factory over a fresh file-backed SQLite warehouse"""
    engine = create_async_engine(database_url, echo=False)
    await create_schema(engine)

    yield create_session_factory(engine)

    await engine.dispose()
