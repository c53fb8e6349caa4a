"""
Database Models - Star Schema Design

Data models for the Electronica warehouse. The schema consists of:

Fact Tables:
- SalesFact: One row per joined customer/product stream record

Dimension Tables:
- SupplierDimension: Suppliers from master data
- ProductDimension: Product catalog with unit prices
- CustomerDimension: Customers and the product they bought (HYBRIDJOIN outer relation)
- TimeDimension: Order timing and quantities per transaction
- StoreDimension: Stores and the products they carry
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# DIMENSION TABLES
# =============================================================================

class SupplierDimension(Base):
    """Supplier Dimension Table"""
    __tablename__ = "supplier_dimension"

    supplier_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    supplier_name: Mapped[Optional[str]] = mapped_column(String(255))


class ProductDimension(Base):
    """
    Product Dimension Table

    Unit price feeds the total sale computed on the fact table.
    """
    __tablename__ = "product_dimension"

    product_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    product_name: Mapped[Optional[str]] = mapped_column(String(255))
    product_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    supplier_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("supplier_dimension.supplier_id")
    )


class CustomerDimension(Base):
    """
    Customer Dimension Table

    Scanned as the outer relation when building the sales fact.
    """
    __tablename__ = "customer_dimension"

    customer_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    customer_name: Mapped[Optional[str]] = mapped_column(String(255))
    gender: Mapped[Optional[str]] = mapped_column(String(20))
    product_id: Mapped[int] = mapped_column(Integer, nullable=False)


class TimeDimension(Base):
    """
    Time Dimension Table

    One row per transaction; probed by product id during the join.
    """
    __tablename__ = "time_dimension"

    time_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[Optional[int]] = mapped_column(Integer)
    order_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    quantity_ordered: Mapped[Optional[int]] = mapped_column(Integer)
    product_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        Index("ix_time_dimension_product", "product_id", "time_id"),
    )


class StoreDimension(Base):
    """Store Dimension Table"""
    __tablename__ = "store_dimension"

    store_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    store_name: Mapped[Optional[str]] = mapped_column(String(255))
    product_id: Mapped[Optional[int]] = mapped_column(Integer)

    __table_args__ = (
        Index("ix_store_dimension_product", "product_id", "store_id"),
    )


# =============================================================================
# FACT TABLES
# =============================================================================

class SalesFact(Base):
    """
    Sales Fact Table

    Grain is one joined stream record. There is no uniqueness
    constraint beyond the surrogate key, so replayed records insert again.
    total_sale is filled in by the storage layer after insertion.
    """
    __tablename__ = "sales_fact"

    sale_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(Integer, nullable=False)
    customer_id: Mapped[int] = mapped_column(Integer, nullable=False)
    time_id: Mapped[Optional[int]] = mapped_column(Integer)
    store_id: Mapped[Optional[int]] = mapped_column(Integer)
    total_sale: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))

    __table_args__ = (
        Index("ix_sales_fact_product", "product_id"),
        Index("ix_sales_fact_customer", "customer_id"),
    )


async def create_schema(engine: AsyncEngine) -> None:
    """Create all warehouse tables that do not exist yet"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
