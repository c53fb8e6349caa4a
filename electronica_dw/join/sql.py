"""
SQLAlchemy Adapters for the HYBRIDJOIN Engine

- SqlOuterRelation: pages through customer_dimension as the outer relation
- SqlDimensionLookup: point queries against time_dimension / store_dimension
- SqlFactSink: inserts sales_fact rows and fills in the total sale
"""

from typing import Any, AsyncIterator, Dict, Optional

import structlog
from sqlalchemy import select, text, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from electronica_dw.database.models import (
    CustomerDimension,
    ProductDimension,
    SalesFact,
    StoreDimension,
    TimeDimension,
)
from electronica_dw.join.engine import DimensionLookup, FactSink
from electronica_dw.join.models import Dimension, FactRow

logger = structlog.get_logger(__name__)


async def _ping(session_factory: async_sessionmaker[AsyncSession]) -> None:
    async with session_factory() as session:
        await session.execute(text("SELECT 1"))


class SqlOuterRelation:
    """
    Replayable scan of customer_dimension.

    Keyset pagination on customer_id keeps each page in its own short
    session instead of holding a cursor open across the whole run.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], page_size: int = 500):
        self.session_factory = session_factory
        self.page_size = page_size

    async def verify(self) -> None:
        await _ping(self.session_factory)

    async def __aiter__(self) -> AsyncIterator[Dict[str, Any]]:
        last_customer_id: Optional[int] = None
        while True:
            stmt = (
                select(CustomerDimension.customer_id, CustomerDimension.product_id)
                .order_by(CustomerDimension.customer_id)
                .limit(self.page_size)
            )
            if last_customer_id is not None:
                stmt = stmt.where(CustomerDimension.customer_id > last_customer_id)

            async with self.session_factory() as session:
                rows = (await session.execute(stmt)).all()

            if not rows:
                return

            for customer_id, product_id in rows:
                yield {"productID": product_id, "customerID": customer_id}

            last_customer_id = rows[-1].customer_id
            if len(rows) < self.page_size:
                return


class SqlDimensionLookup(DimensionLookup):
    """Point lookups by product id; absent rows return None."""

    _COLUMNS = {
        Dimension.TIME: (TimeDimension.time_id, TimeDimension.product_id),
        Dimension.STORE: (StoreDimension.store_id, StoreDimension.product_id),
    }

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def verify(self) -> None:
        await _ping(self.session_factory)

    async def lookup(self, dimension: Dimension, product_id: int) -> Optional[int]:
        id_column, product_column = self._COLUMNS[dimension]
        stmt = (
            select(id_column)
            .where(product_column == product_id)
            .order_by(id_column)
            .limit(1)
        )
        async with self.session_factory() as session:
            return (await session.execute(stmt)).scalar_one_or_none()


class SqlFactSink(FactSink):
    """
    Writes sales facts.

    The total sale is owned by the storage layer: it is computed right
    after the insert, in the same transaction, from the product's unit
    price and the quantity on the matched time row.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def append(self, row: FactRow) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                fact = SalesFact(
                    product_id=row.product_id,
                    customer_id=row.customer_id,
                    time_id=row.time_id,
                    store_id=row.store_id,
                )
                session.add(fact)
                await session.flush()
                sale_id = fact.sale_id
                total_sale = (await session.execute(
                    update(SalesFact)
                    .where(SalesFact.sale_id == sale_id)
                    .values(total_sale=self._total_sale())
                    .returning(SalesFact.total_sale)
                    .execution_options(synchronize_session=False)
                )).scalar_one()

        logger.debug(
            "Sales fact inserted",
            sale_id=sale_id,
            product_id=row.product_id,
            customer_id=row.customer_id,
            time_id=row.time_id,
            store_id=row.store_id,
            total_sale=total_sale,
        )

    @staticmethod
    def _total_sale():
        price = (
            select(ProductDimension.product_price)
            .where(ProductDimension.product_id == SalesFact.product_id)
            .scalar_subquery()
        )
        quantity = (
            select(TimeDimension.quantity_ordered)
            .where(TimeDimension.time_id == SalesFact.time_id)
            .scalar_subquery()
        )
        return price * quantity
