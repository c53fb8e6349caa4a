"""
Integration Tests - Warehouse Load and Fact Build

Runs both phases against a file-backed SQLite warehouse.
"""
import asyncio
from decimal import Decimal

import pytest
import pytest_asyncio
import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import create_async_engine
from structlog.testing import capture_logs

from electronica_dw.config import HybridJoinSettings, get_settings
from electronica_dw.database.models import (
    CustomerDimension,
    ProductDimension,
    SalesFact,
    StoreDimension,
    SupplierDimension,
    TimeDimension,
)
from electronica_dw.ingestion import DimensionLoader, LoadStatus, SourceTables
from electronica_dw.join import Dimension, FactRow, sql
from electronica_dw.join.sql import SqlDimensionLookup, SqlFactSink, SqlOuterRelation
from electronica_dw.main import main
from electronica_dw.pipeline import build_sales_fact, load_dimensions


FAST_JOIN = HybridJoinSettings(batch_size=2, pace_ms=0, outer_page_size=2)


async def count_rows(session_factory, model) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


async def fetch_facts(session_factory):
    async with session_factory() as session:
        rows = await session.execute(
            select(
                SalesFact.product_id,
                SalesFact.customer_id,
                SalesFact.time_id,
                SalesFact.store_id,
                SalesFact.total_sale,
            ).order_by(SalesFact.sale_id)
        )
        return [tuple(row) for row in rows.all()]


@pytest.fixture
def tables(source_files) -> SourceTables:
    transactions, master_data = source_files
    return SourceTables.from_files(transactions, master_data)


@pytest_asyncio.fixture
async def warehouse(session_factory, tables):
    """Warehouse with every dimension loaded"""
    await load_dimensions(session_factory, tables)
    return session_factory


class TestDimensionLoad:
    """Tests for the dimension loader"""

    @pytest.mark.asyncio
    async def test_load_all(self, session_factory, tables):
        loader = DimensionLoader(session_factory)

        results = await loader.load_all(tables)

        summary = {r.target_table: (r.status, r.rows_loaded, r.rows_failed) for r in results}
        assert summary == {
            "supplier_dimension": (LoadStatus.COMPLETED, 2, 0),
            "product_dimension": (LoadStatus.COMPLETED, 4, 0),
            "customer_dimension": (LoadStatus.COMPLETED, 5, 0),
            "time_dimension": (LoadStatus.COMPLETED, 5, 1),
            "store_dimension": (LoadStatus.COMPLETED, 2, 0),
        }
        assert await count_rows(session_factory, CustomerDimension) == 5
        assert await count_rows(session_factory, TimeDimension) == 5

    @pytest.mark.asyncio
    async def test_first_occurrence_wins(self, warehouse):
        async with warehouse() as session:
            customer = await session.get(CustomerDimension, 11)
            store = await session.get(StoreDimension, 1)
            product = await session.get(ProductDimension, 102)

        assert customer.product_id == 103
        assert store.product_id == 101
        assert product.product_price == Decimal("1200.50")

    @pytest.mark.asyncio
    async def test_rerun_on_same_loader(self, session_factory, tables):
        """A loader skips keys it already loaded; time rows are appended again"""
        loader = DimensionLoader(session_factory)
        await loader.load_all(tables)

        results = await loader.load_all(tables)

        loaded = {r.target_table: r.rows_loaded for r in results}
        assert all(r.status == LoadStatus.COMPLETED for r in results)
        assert loaded == {
            "supplier_dimension": 0,
            "product_dimension": 0,
            "customer_dimension": 0,
            "time_dimension": 5,
            "store_dimension": 0,
        }
        assert await count_rows(session_factory, TimeDimension) == 10

    @pytest.mark.asyncio
    async def test_loaders_do_not_share_state(self, session_factory, tables):
        """A fresh loader starts with no seen keys and reports duplicate inserts as failed"""
        first = DimensionLoader(session_factory)
        await first.load_all(tables)

        second = DimensionLoader(session_factory)
        assert second.seen_keys("supplier_dimension") == set()

        results = {r.target_table: r for r in await second.load_all(tables)}

        assert results["supplier_dimension"].status == LoadStatus.FAILED
        assert results["supplier_dimension"].error_message
        assert results["time_dimension"].status == LoadStatus.COMPLETED
        assert await count_rows(session_factory, SupplierDimension) == 2

    @pytest.mark.asyncio
    async def test_missing_column_fails_table(self, session_factory, tables):
        loader = DimensionLoader(session_factory)

        result = await loader.load_stores(tables.master_data.drop("storeName"))

        assert result.status == LoadStatus.FAILED
        assert "storeName" in result.error_message


class TestSqlAdapters:
    """Tests for the SQL outer relation and dimension lookups"""

    @pytest.mark.asyncio
    async def test_outer_relation_pages_in_customer_order(self, warehouse):
        relation = SqlOuterRelation(warehouse, page_size=2)

        rows = [row async for row in relation]

        assert rows == [
            {"productID": 103, "customerID": 11},
            {"productID": 101, "customerID": 12},
            {"productID": 102, "customerID": 13},
            {"productID": 102, "customerID": 14},
            {"productID": 105, "customerID": 15},
        ]

    @pytest.mark.asyncio
    async def test_dimension_lookup(self, warehouse):
        lookup = SqlDimensionLookup(warehouse)

        await lookup.verify()

        assert await lookup.lookup(Dimension.TIME, 101) == 2
        assert await lookup.lookup(Dimension.STORE, 102) == 2
        assert await lookup.lookup(Dimension.STORE, 103) is None
        assert await lookup.lookup(Dimension.TIME, 999) is None

    @pytest.mark.asyncio
    async def test_fact_sink_reports_total_sale(self, warehouse, monkeypatch):
        """The stored total is read back and logged with the inserted fact"""
        with capture_logs() as events:
            monkeypatch.setattr(sql, "logger", structlog.get_logger("electronica_dw.join.sql"))
            await SqlFactSink(warehouse).append(FactRow(product_id=102, customer_id=13, time_id=3, store_id=2))

        [event] = [e for e in events if e["event"] == "Sales fact inserted"]
        assert event["sale_id"] == 1
        assert event["total_sale"] == Decimal("3601.50")
        assert await fetch_facts(warehouse) == [(102, 13, 3, 2, Decimal("3601.50"))]


class TestFactBuild:
    """Tests for the end-to-end HYBRIDJOIN fact build"""

    @pytest.mark.asyncio
    async def test_build_sales_fact(self, warehouse):
        metrics = await build_sales_fact(warehouse, FAST_JOIN)

        assert metrics.rows_processed == 5
        assert metrics.batches_processed == 3
        assert metrics.facts_emitted == 5
        assert metrics.rows_skipped == 0
        assert metrics.absent_lookups[Dimension.STORE] == 2
        assert metrics.absent_lookups[Dimension.TIME] == 0

        assert await fetch_facts(warehouse) == [
            (101, 12, 2, 1, Decimal("100.00")),
            (103, 11, 1, None, Decimal("30.50")),
            (102, 13, 3, 2, Decimal("3601.50")),
            (102, 14, 3, 2, Decimal("3601.50")),
            (105, 15, 5, None, None),
        ]

    @pytest.mark.asyncio
    async def test_absent_dimension_id(self, warehouse):
        join_settings = HybridJoinSettings(batch_size=5, pace_ms=0, absent_dimension_id=0)

        await build_sales_fact(warehouse, join_settings)

        facts = await fetch_facts(warehouse)
        assert [fact[3] for fact in facts] == [1, 2, 2, 0, 0]

    @pytest.mark.asyncio
    async def test_replay_duplicates_facts(self, warehouse):
        """Building twice appends a second copy of every fact"""
        await build_sales_fact(warehouse, FAST_JOIN)
        await build_sales_fact(warehouse, FAST_JOIN)

        facts = await fetch_facts(warehouse)
        assert len(facts) == 10
        assert facts[:5] == facts[5:]


class TestCommandLine:
    """Tests for the electronica-dw entry point"""

    @pytest.fixture
    def configured(self, monkeypatch, source_files):
        transactions, master_data = source_files
        monkeypatch.setenv("SOURCE_TRANSACTIONS_FILE", str(transactions))
        monkeypatch.setenv("SOURCE_MASTER_DATA_FILE", str(master_data))
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()

    def test_run_both_phases(self, configured, database_url):
        exit_code = main(["run", "--database-url", database_url, "--pace-ms", "0", "--batch-size", "2"])

        async def count_facts():
            engine = create_async_engine(database_url)
            try:
                async with engine.connect() as conn:
                    return (await conn.execute(select(func.count()).select_from(SalesFact))).scalar_one()
            finally:
                await engine.dispose()

        assert exit_code == 0
        assert asyncio.run(count_facts()) == 5

    def test_missing_source_file_fails_run(self, configured, monkeypatch, database_url, tmp_path):
        monkeypatch.setenv("SOURCE_TRANSACTIONS_FILE", str(tmp_path / "missing.csv"))
        get_settings.cache_clear()

        exit_code = main(["load-dimensions", "--database-url", database_url])

        assert exit_code == 2
