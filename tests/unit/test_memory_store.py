"""
Tests for the in-memory record store.
"""

import pytest

from queryspec.adapters.base import AdapterError
from queryspec.adapters.memory_store import InMemoryRecordStore, evaluate, like_to_regex, sort_rows
from queryspec.domain.query.plan import (
    Comparison,
    InclusionNode,
    QueryPlan,
    SortInstruction,
    and_,
    or_,
)


class TestEvaluate:
    """Tests for predicate evaluation."""

    def test_comparisons_against_null_are_false(self):
        """Test a NULL value fails ordinary comparisons."""
        row = {"age": None}
        assert evaluate(Comparison("age", "gt", 1), row) is False
        assert evaluate(Comparison("age", "ne", 1), row) is False
        assert evaluate(Comparison("age", "is_null"), row) is True

    def test_junctions(self):
        """Test AND/OR evaluation."""
        row = {"a": 1, "b": 2}
        assert evaluate(and_(Comparison("a", "eq", 1), Comparison("b", "eq", 2)), row)
        assert not evaluate(and_(Comparison("a", "eq", 1), Comparison("b", "eq", 3)), row)
        assert evaluate(or_(Comparison("a", "eq", 9), Comparison("b", "eq", 2)), row)

    def test_empty_predicate_matches(self):
        """Test no predicate matches every row."""
        assert evaluate(None, {}) is True

    def test_like_patterns(self):
        """Test LIKE wildcards and case handling."""
        assert like_to_regex("a_c%").fullmatch("abcdef")
        assert like_to_regex("A%", False).fullmatch("alice")
        assert not like_to_regex("A%").fullmatch("alice")
        assert evaluate(Comparison("name", "ilike", "%LI%"), {"name": "alice"})
        assert evaluate(Comparison("name", "not_like", "b%"), {"name": "alice"})

    def test_ranges_and_sets(self):
        """Test between and in operators."""
        row = {"age": 30}
        assert evaluate(Comparison("age", "between", [18, 30]), row)
        assert evaluate(Comparison("age", "not_between", [31, 40]), row)
        assert evaluate(Comparison("age", "in", [30, 31]), row)
        assert evaluate(Comparison("age", "not_in", [1]), row)

    def test_regex(self):
        """Test regex and not_regex use search semantics."""
        assert evaluate(Comparison("email", "regex", r"@example\.com$"), {"email": "a@example.com"})
        assert evaluate(Comparison("email", "not_regex", "^b"), {"email": "a@example.com"})


class TestSortRows:
    """Tests for multi-key ordering."""

    def test_nulls_last_by_default(self):
        """Test missing values sort after present ones."""
        rows = [{"v": None}, {"v": 2}, {"v": 1}]
        assert [r["v"] for r in sort_rows(rows, [SortInstruction("v")])] == [1, 2, None]

    def test_nulls_first(self):
        """Test nulls can be placed first."""
        rows = [{"v": 2}, {"v": None}]
        ordered = sort_rows(rows, [SortInstruction("v", "desc", nulls="first")])
        assert [r["v"] for r in ordered] == [None, 2]

    def test_multi_key_precedence(self):
        """Test the first instruction has the highest precedence."""
        rows = [
            {"d": "2024-01-01", "n": "b"},
            {"d": "2024-02-01", "n": "a"},
            {"d": "2024-01-01", "n": "a"},
        ]
        ordered = sort_rows(rows, [SortInstruction("d", "desc"), SortInstruction("n")])
        assert [(r["d"], r["n"]) for r in ordered] == [
            ("2024-02-01", "a"),
            ("2024-01-01", "a"),
            ("2024-01-01", "b"),
        ]

    def test_lower_transform(self):
        """Test case-insensitive ordering."""
        rows = [{"n": "b"}, {"n": "A"}, {"n": "C"}]
        assert [r["n"] for r in sort_rows(rows, [SortInstruction("n", transform="lower")])] == ["A", "b", "C"]


class TestInMemoryRecordStore:
    """Tests for InMemoryRecordStore reads and writes."""

    @pytest.mark.asyncio
    async def test_window_and_projection(self, users_store):
        """Test offset, limit and attributes apply after ordering."""
        rows = await users_store.find_all(QueryPlan(
            order=[SortInstruction("id", "desc")],
            offset=1,
            limit=2,
            attributes=["id"],
        ))
        assert rows == [{"id": 4}, {"id": 3}]

    @pytest.mark.asyncio
    async def test_count_ignores_window(self, users_store):
        """Test count uses only the predicate."""
        plan = QueryPlan(where=Comparison("status", "eq", "active"), limit=1)
        assert await users_store.count(plan.for_count()) == 3

    @pytest.mark.asyncio
    async def test_find_and_count(self, users_store):
        """Test rows and total come back together."""
        rows, total = await users_store.find_and_count(QueryPlan(limit=2))
        assert len(rows) == 2
        assert total == 5

    @pytest.mark.asyncio
    async def test_includes(self, users_store):
        """Test nested includes attach related rows."""
        rows = await users_store.find_all(QueryPlan(
            where=Comparison("id", "eq", 1),
            include=[InclusionNode("posts", include=[InclusionNode("comments")])],
        ))
        posts = rows[0]["posts"]
        assert [p["id"] for p in posts] == [10, 11]
        assert [c["id"] for c in posts[0]["comments"]] == [100]
        assert posts[1]["comments"] == []

    @pytest.mark.asyncio
    async def test_required_include_filters_parents(self, users_store):
        """Test a required include drops parents without matches."""
        rows = await users_store.find_all(QueryPlan(
            include=[InclusionNode("posts", required=True, where=Comparison("published", "eq", True))],
            order=[SortInstruction("id")],
        ))
        assert [r["id"] for r in rows] == [1, 3]
        assert [p["id"] for p in rows[0]["posts"]] == [10]

    @pytest.mark.asyncio
    async def test_include_attributes(self, users_store):
        """Test include projection keeps nested include keys."""
        rows = await users_store.find_all(QueryPlan(
            where=Comparison("id", "eq", 3),
            include=[InclusionNode("posts", attributes=["title"], include=[InclusionNode("comments")])],
        ))
        assert rows[0]["posts"] == [{"title": "Notes", "comments": [{"id": 101, "post_id": 12, "body": "thanks"}]}]

    @pytest.mark.asyncio
    async def test_unknown_relation(self, users_store):
        """Test an undeclared relation is an adapter error."""
        with pytest.raises(AdapterError):
            await users_store.find_all(QueryPlan(include=[InclusionNode("profile")]))

    @pytest.mark.asyncio
    async def test_grouping_unsupported(self, users_store):
        """Test group plans are rejected."""
        with pytest.raises(AdapterError):
            await users_store.find_all(QueryPlan(group=["status"]))

    @pytest.mark.asyncio
    async def test_incomparable_values_are_wrapped(self):
        """Test type errors during evaluation become adapter errors."""
        store = InMemoryRecordStore("things", [{"id": 1, "v": "text"}])
        with pytest.raises(AdapterError) as exc_info:
            await store.find_all(QueryPlan(where=Comparison("v", "gt", 3)))
        assert isinstance(exc_info.value.original_error, TypeError)

    @pytest.mark.asyncio
    async def test_distinct(self):
        """Test distinct removes duplicate projected rows."""
        store = InMemoryRecordStore("t", [{"id": 1, "s": "a"}, {"id": 2, "s": "a"}, {"id": 3, "s": "b"}])
        rows = await store.find_all(QueryPlan(attributes=["s"], distinct=True, order=[SortInstruction("s")]))
        assert rows == [{"s": "a"}, {"s": "b"}]

    @pytest.mark.asyncio
    async def test_crud(self):
        """Test create, update and destroy by primary key."""
        store = InMemoryRecordStore("t", [{"id": 1, "name": "a"}])
        created = await store.create({"name": "b"})
        assert created == {"name": "b", "id": 2}
        assert (await store.update(2, {"name": "c", "id": 99}))["id"] == 2
        assert (await store.find_by_pk(2))["name"] == "c"
        assert await store.update(42, {"name": "x"}) is None
        assert await store.destroy(1) is True
        assert await store.destroy(1) is False
        assert store.rows == [{"name": "c", "id": 2}]

    @pytest.mark.asyncio
    async def test_duplicate_pk(self):
        """Test inserting an existing primary key fails."""
        store = InMemoryRecordStore("t", [{"id": 1}])
        with pytest.raises(AdapterError):
            await store.create({"id": 1})

    def test_engine_info(self, users_store):
        """Test engine info describes the store."""
        assert users_store.get_engine_info() == {"engine": "memory", "name": "users", "primary_key": "id"}
