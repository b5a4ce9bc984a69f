"""
Tests for rendering query plans to SQL.
"""

import pytest

from queryspec.adapters.sql_builder import PlanSQLBuilder, SQLBuilderError
from queryspec.domain.query.plan import Comparison, EMPTY, QueryPlan, SortInstruction, and_, or_


@pytest.fixture
def builder():
    return PlanSQLBuilder(dialect="duckdb")


class TestBuildPredicate:
    """Tests for predicate rendering."""

    def test_params_follow_placeholder_order(self, builder):
        """Test values are collected left to right."""
        params = []
        node = builder.build_predicate(
            or_(Comparison("status", "eq", "active"), and_(Comparison("age", "between", [18, 65]), Comparison("id", "in", [1, 2]))),
            params,
        )
        sql = node.sql(dialect="duckdb")
        assert params == ["active", 18, 65, 1, 2]
        assert sql.count("?") == 5
        assert " OR " in sql
        assert "BETWEEN" in sql

    def test_empty_predicate(self, builder):
        """Test the empty predicate renders nothing."""
        assert builder.build_predicate(EMPTY, []) is None

    def test_negations(self, builder):
        """Test not_* operators wrap the positive form in NOT."""
        params = []
        sql = builder.build_predicate(Comparison("name", "not_ilike", "a%"), params).sql(dialect="duckdb")
        assert "NOT" in sql
        assert "ILIKE" in sql
        assert params == ["a%"]

    def test_null_checks_take_no_params(self, builder):
        """Test IS NULL renders without placeholders."""
        params = []
        sql = builder.build_predicate(Comparison("email", "is_not_null"), params).sql(dialect="duckdb")
        assert "IS NULL" in sql
        assert "NOT" in sql
        assert params == []

    def test_empty_in_is_false(self, builder):
        """Test an empty IN list matches nothing."""
        params = []
        sql = builder.build_predicate(Comparison("id", "in", []), params).sql(dialect="duckdb")
        assert sql.upper() == "FALSE"
        assert params == []

    def test_unknown_operator(self, builder):
        """Test unknown operators raise a builder error."""
        with pytest.raises(SQLBuilderError):
            builder.build_predicate(Comparison("x", "approx", 1), [])


class TestBuildSelect:
    """Tests for SELECT and COUNT rendering."""

    def test_full_select(self, builder):
        """Test projection, filter, order and window all render."""
        sql, params = builder.build_select("users", QueryPlan(
            where=Comparison("age", "gte", 18),
            order=[SortInstruction("created_at", "desc"), SortInstruction("name", transform="lower")],
            limit=20,
            offset=40,
            attributes=["id", "name"],
        ))
        assert sql.startswith('SELECT "id", "name" FROM "users"')
        assert "ORDER BY" in sql
        assert "LOWER(" in sql
        assert "LIMIT 20" in sql
        assert "OFFSET 40" in sql
        assert params == [18]

    def test_schema_qualified_table(self, builder):
        """Test schema.table is quoted per part."""
        sql, _ = builder.build_select("main.users", QueryPlan())
        assert '"main"."users"' in sql

    def test_identifiers_are_quoted(self, builder):
        """Test hostile column names stay inside identifiers."""
        sql, params = builder.build_select("users", QueryPlan(where=Comparison('na"me', "eq", "x")))
        assert params == ["x"]
        assert "'x'" not in sql

    def test_count_drops_window(self, builder):
        """Test count renders COUNT(*) with the filter only."""
        sql, params = builder.build_count("users", QueryPlan(where=Comparison("status", "eq", "active")))
        assert "COUNT(*)" in sql
        assert "total" in sql
        assert "LIMIT" not in sql
        assert params == ["active"]

    def test_distinct_count_uses_subquery(self, builder):
        """Test distinct counts wrap the select."""
        sql, _ = builder.build_count("users", QueryPlan(attributes=["status"], distinct=True))
        assert "DISTINCT" in sql
        assert "counted" in sql
