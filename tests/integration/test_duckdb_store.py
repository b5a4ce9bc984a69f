"""
Integration tests for the DuckDB record store.
"""

import asyncio
import time

import pytest

from queryspec.adapters.base import AdapterError
from queryspec.adapters.duckdb_store import DuckDBRecordStore
from queryspec.domain.query.orchestrator import QueryOrchestrator
from queryspec.domain.query.plan import Comparison, InclusionNode, QueryPlan, SortInstruction, or_
from queryspec.shared.types.models import FilterCondition, FilterGroup, SortCondition


@pytest.fixture
def duckdb_store(user_rows):
    store = DuckDBRecordStore("users")
    store.execute_script(
        "CREATE TABLE users (id INTEGER PRIMARY KEY, name VARCHAR, email VARCHAR, "
        "age INTEGER, status VARCHAR, created_at VARCHAR)"
    )
    for row in user_rows:
        store._run(
            "INSERT INTO users VALUES (?, ?, ?, ?, ?, ?)",
            [row["id"], row["name"], row["email"], row["age"], row["status"], row["created_at"]],
        )
    yield store
    store.close()


class TestDuckDBReads:
    """Tests for plan execution against DuckDB."""

    @pytest.mark.asyncio
    async def test_filter_order_window(self, duckdb_store):
        """Test predicate, ordering and window run as SQL."""
        rows = await duckdb_store.find_all(QueryPlan(
            where=Comparison("status", "eq", "active"),
            order=[SortInstruction("id", "desc")],
            limit=2,
            attributes=["id", "name"],
        ))
        assert rows == [{"id": 5, "name": "erin"}, {"id": 3, "name": "carol"}]

    @pytest.mark.asyncio
    async def test_between_is_inclusive(self, duckdb_store):
        """Test BETWEEN keeps both bounds."""
        rows = await duckdb_store.find_all(QueryPlan(
            where=Comparison("age", "between", [17, 42]),
            order=[SortInstruction("id")],
        ))
        assert [r["id"] for r in rows] == [1, 2, 4]

    @pytest.mark.asyncio
    async def test_or_and_ilike(self, duckdb_store):
        """Test OR junctions and case-insensitive LIKE."""
        rows = await duckdb_store.find_all(QueryPlan(
            where=or_(Comparison("name", "ilike", "b%"), Comparison("email", "is_null")),
            order=[SortInstruction("id")],
        ))
        assert [r["id"] for r in rows] == [2, 4]

    @pytest.mark.asyncio
    async def test_count(self, duckdb_store):
        """Test COUNT ignores the window."""
        plan = QueryPlan(where=Comparison("age", "gte", 18), limit=1)
        assert await duckdb_store.count(plan.for_count()) == 3

    @pytest.mark.asyncio
    async def test_includes_rejected(self, duckdb_store):
        """Test eager loading is refused before any SQL runs."""
        with pytest.raises(AdapterError):
            await duckdb_store.find_all(QueryPlan(include=[InclusionNode("posts")]))

    @pytest.mark.asyncio
    async def test_bad_column_is_adapter_error(self, duckdb_store):
        """Test engine errors are wrapped."""
        with pytest.raises(AdapterError) as exc_info:
            await duckdb_store.find_all(QueryPlan(where=Comparison("nope", "eq", 1)))
        assert exc_info.value.engine == "duckdb"

    @pytest.mark.asyncio
    async def test_queries_leave_event_loop_free(self, duckdb_store, monkeypatch):
        """Test other coroutines keep running while a query executes."""
        original_run = duckdb_store._run

        def slow_run(sql, params=None):
            time.sleep(0.2)
            return original_run(sql, params)

        monkeypatch.setattr(duckdb_store, "_run", slow_run)
        ticks = []

        async def ticker():
            while True:
                ticks.append(1)
                await asyncio.sleep(0.01)

        task = asyncio.create_task(ticker())
        try:
            row = await duckdb_store.find_by_pk(1)
        finally:
            task.cancel()
        assert row["name"] == "alice"
        assert len(ticks) > 5


class TestDuckDBWrites:
    """Tests for DuckDB CRUD."""

    @pytest.mark.asyncio
    async def test_crud(self, duckdb_store):
        """Test create, update and destroy by primary key."""
        created = await duckdb_store.create({"id": 6, "name": "frank", "status": "active"})
        assert created["name"] == "frank"
        updated = await duckdb_store.update(6, {"status": "banned"})
        assert updated["status"] == "banned"
        assert await duckdb_store.destroy(6) is True
        assert await duckdb_store.destroy(6) is False
        assert await duckdb_store.find_by_pk(6) is None

    @pytest.mark.asyncio
    async def test_empty_insert(self, duckdb_store):
        """Test an empty row is rejected."""
        with pytest.raises(AdapterError):
            await duckdb_store.create({})


class TestDuckDBOrchestration:
    """Tests for the orchestrator over DuckDB."""

    @pytest.mark.asyncio
    async def test_paginated_execute(self, duckdb_store, settings):
        """Test a full orchestrated query against DuckDB."""
        envelope = await (
            QueryOrchestrator(duckdb_store, settings=settings)
            .with_filters(FilterGroup(operator="or", conditions=[
                FilterCondition(field="status", operator="eq", value="active"),
                FilterCondition(field="age", operator="lt", value=18),
            ]))
            .with_sorting([SortCondition(column="id", order="asc")])
            .with_pagination(page=2, page_size=2)
            .execute()
        )
        assert [r["id"] for r in envelope.data] == [3, 5]
        assert envelope.pagination.total == 4
        assert envelope.pagination.total_pages == 2
        assert envelope.pagination.has_next is False
