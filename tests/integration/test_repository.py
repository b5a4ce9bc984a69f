"""
Integration tests for QueryRepository.
"""

from unittest.mock import AsyncMock

import pytest

from queryspec.domain.query.repository import QueryRepository
from queryspec.errors import ErrorCode, QueryError
from queryspec.shared.types.models import FilterCondition, SortCondition


@pytest.fixture
def repository(users_store):
    return QueryRepository(users_store, request_id="req_repo")


class TestReads:
    """Tests for repository reads."""

    @pytest.mark.asyncio
    async def test_find_all(self, repository):
        """Test filters, ordering and window pass through."""
        envelope = await repository.find_all(
            where=FilterCondition(field="status", operator="eq", value="active"),
            order=[SortCondition(column="id", order="desc")],
            limit=2,
        )
        assert [r["id"] for r in envelope.data] == [5, 3]

    @pytest.mark.asyncio
    async def test_find_one(self, repository):
        """Test the first matching row is returned."""
        row = await repository.find_one(where={"field": "name", "operator": "eq", "value": "Bob"})
        assert row["id"] == 2
        assert await repository.find_one(where={"field": "name", "operator": "eq", "value": "zed"}) is None

    @pytest.mark.asyncio
    async def test_find_by_pk(self, repository):
        """Test primary key lookup."""
        assert (await repository.find_by_pk(3))["name"] == "carol"
        assert await repository.find_by_pk(99) is None

    @pytest.mark.asyncio
    async def test_find_and_count_all(self, repository):
        """Test rows and total in one envelope."""
        envelope = await repository.find_and_count_all(limit=2, offset=0)
        assert len(envelope.data) == 2
        assert envelope.count == 5

    @pytest.mark.asyncio
    async def test_count_and_exists(self, repository):
        """Test count and exists share the predicate."""
        adults = FilterCondition(field="age", operator="gte", value=18)
        assert await repository.count(adults) == 3
        assert await repository.exists(adults) is True
        assert await repository.exists(FilterCondition(field="age", operator="gt", value=100)) is False

    @pytest.mark.asyncio
    async def test_invalid_filter_is_compilation_error(self, repository):
        """Test compiler errors are raised, not wrapped as store errors."""
        with pytest.raises(QueryError) as exc_info:
            await repository.find_all(where={"field": "age", "operator": "gt"})
        assert exc_info.value.code == ErrorCode.COMPILATION_FAILED


class TestWrites:
    """Tests for repository writes."""

    @pytest.mark.asyncio
    async def test_create_update_destroy(self, repository):
        """Test the write round trip by primary key."""
        created = await repository.create({"name": "frank", "status": "active"})
        assert created["id"] == 6
        updated = await repository.update_by_pk(6, {"status": "banned"})
        assert updated["status"] == "banned"
        assert await repository.destroy_by_pk(6) is True
        assert await repository.find_by_pk(6) is None

    @pytest.mark.asyncio
    async def test_bulk_create(self, repository):
        """Test bulk creation assigns keys in order."""
        rows = await repository.bulk_create([{"name": "g"}, {"name": "h"}])
        assert [r["id"] for r in rows] == [6, 7]


class TestErrors:
    """Tests for store failure wrapping."""

    @pytest.mark.asyncio
    async def test_duplicate_create_code(self, repository):
        """Test a failed create carries CREATE_ERROR."""
        with pytest.raises(QueryError) as exc_info:
            await repository.create({"id": 1, "name": "dup"})
        assert exc_info.value.code == ErrorCode.CREATE_ERROR
        assert exc_info.value.request_id == "req_repo"
        assert exc_info.value.details["originalError"] == "AdapterError"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method, store_method, args, code", [
        ("find_all", "find_all", (), ErrorCode.FIND_ALL_ERROR),
        ("find_by_pk", "find_by_pk", (1,), ErrorCode.FIND_BY_PK_ERROR),
        ("count", "count", (), ErrorCode.COUNT_ERROR),
        ("update_by_pk", "update", (1, {"name": "x"}), ErrorCode.UPDATE_BY_PK_ERROR),
        ("destroy_by_pk", "destroy", (1,), ErrorCode.DESTROY_BY_PK_ERROR),
    ])
    async def test_operation_codes(self, repository, users_store, method, store_method, args, code):
        """Test each operation wraps failures with its own code."""
        setattr(users_store, store_method, AsyncMock(side_effect=OSError("io")))
        with pytest.raises(QueryError) as exc_info:
            await getattr(repository, method)(*args)
        assert exc_info.value.code == code
        assert isinstance(exc_info.value.cause, OSError)
