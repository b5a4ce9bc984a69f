"""
Plan SQL Builder using SQLGlot

Renders a QueryPlan into dialect-aware SQL with ``?`` placeholders.

Usage:
    builder = PlanSQLBuilder(dialect="duckdb")
    sql, params = builder.build_select("users", plan)
    sql, params = builder.build_count("users", plan.for_count())

Includes are not rendered; stores that cannot eager-load reject them before
calling the builder.
"""

import logging
from typing import Any, List, Optional, Tuple

from sqlglot import expressions as exp

from queryspec.domain.query.plan import Comparison, Junction, Predicate, QueryPlan, SortInstruction, is_empty

logger = logging.getLogger(__name__)


class SQLBuilderError(Exception):
    """Base exception for SQL builder errors."""
    pass


_BINARY = {
    "eq": exp.EQ,
    "ne": exp.NEQ,
    "gt": exp.GT,
    "gte": exp.GTE,
    "lt": exp.LT,
    "lte": exp.LTE,
    "like": exp.Like,
    "ilike": exp.ILike,
    "regex": exp.RegexpLike,
}

_NEGATED = {
    "not_like": "like",
    "not_ilike": "ilike",
    "not_regex": "regex",
    "not_in": "in",
    "not_between": "between",
    "is_not_null": "is_null",
}


class PlanSQLBuilder:

    def __init__(self, dialect: str = "duckdb"):
        self.dialect = dialect

    def table_expression(self, table_name: str) -> exp.Table:
        parts = table_name.split(".")
        if len(parts) == 2:
            return exp.Table(this=exp.Identifier(this=parts[1], quoted=True), db=exp.Identifier(this=parts[0], quoted=True))
        return exp.Table(this=exp.Identifier(this=table_name, quoted=True))

    def _column(self, column_name: str) -> exp.Column:
        return exp.Column(this=exp.Identifier(this=column_name, quoted=True))

    # -------------------------------------------------------------------------
    # Predicates
    # -------------------------------------------------------------------------

    def build_predicate(self, predicate: Predicate, params: List[Any]) -> Optional[exp.Expression]:
        """Render a predicate, appending placeholder values to ``params`` in order."""
        if is_empty(predicate):
            return None

        if isinstance(predicate, Junction):
            parts = [self.build_predicate(child, params) for child in predicate.children]
            parts = [p for p in parts if p is not None]
            if not parts:
                return None
            combine = exp.and_ if predicate.op == "and" else exp.or_
            return combine(*parts)

        if isinstance(predicate, Comparison):
            return self._comparison(predicate, params)

        raise SQLBuilderError(f"Unknown predicate type: {type(predicate).__name__}")

    def _comparison(self, predicate: Comparison, params: List[Any]) -> exp.Expression:
        op = predicate.op
        col = self._column(predicate.field)

        if op in _NEGATED:
            positive = Comparison(predicate.field, _NEGATED[op], predicate.value)
            return exp.Not(this=self._comparison(positive, params))

        if op == "is_null":
            return exp.Is(this=col, expression=exp.Null())

        if op == "in":
            values = list(predicate.value)
            if not values:
                return exp.false()
            params.extend(values)
            return exp.In(this=col, expressions=[exp.Placeholder() for _ in values])

        if op == "between":
            low, high = predicate.value
            params.extend([low, high])
            return exp.Between(this=col, low=exp.Placeholder(), high=exp.Placeholder())

        node_class = _BINARY.get(op)
        if node_class is None:
            raise SQLBuilderError(f"Unsupported predicate operator: {op}")
        params.append(predicate.value)
        return node_class(this=col, expression=exp.Placeholder())

    # -------------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------------

    def _ordered(self, instruction: SortInstruction) -> exp.Ordered:
        col = self._column(instruction.column)
        if instruction.transform == "lower":
            col = exp.Lower(this=col)
        ordered = exp.Ordered(this=col, desc=instruction.direction == "desc")
        if instruction.nulls is not None:
            ordered.set("nulls_first", instruction.nulls == "first")
        return ordered

    def _select(self, table_name: str, plan: QueryPlan, params: List[Any]) -> exp.Select:
        if plan.attributes:
            select_exprs = [self._column(a) for a in plan.attributes]
        else:
            select_exprs = [exp.Star()]

        query = exp.Select().select(*select_exprs).from_(self.table_expression(table_name))

        if plan.distinct:
            query = query.distinct()

        where = self.build_predicate(plan.where, params) if plan.where is not None else None
        if where is not None:
            query = query.where(where)

        if plan.group:
            query = query.group_by(*[self._column(g) for g in plan.group])

        having = self.build_predicate(plan.having, params) if plan.having is not None else None
        if having is not None:
            query = query.having(having)

        return query

    def build_select(self, table_name: str, plan: QueryPlan) -> Tuple[str, List[Any]]:
        params: List[Any] = []
        try:
            query = self._select(table_name, plan, params)
            if plan.order:
                query = query.order_by(*[self._ordered(i) for i in plan.order])
            if plan.limit is not None:
                query = query.limit(plan.limit)
            if plan.offset:
                query = query.offset(plan.offset)
            sql = query.sql(dialect=self.dialect)
        except SQLBuilderError:
            raise
        except Exception as e:
            raise SQLBuilderError(f"Failed to build SQL query: {e}") from e

        logger.debug(f"Built SQL: {sql} | params={params}")
        return sql, params

    def build_count(self, table_name: str, plan: QueryPlan) -> Tuple[str, List[Any]]:
        params: List[Any] = []
        count = exp.alias_(exp.Count(this=exp.Star()), "total")
        try:
            inner = self._select(table_name, plan, params)
            if plan.distinct or plan.group:
                query = exp.Select().select(count).from_(inner.subquery("counted"))
            else:
                query = inner.select(count, append=False)
            sql = query.sql(dialect=self.dialect)
        except SQLBuilderError:
            raise
        except Exception as e:
            raise SQLBuilderError(f"Failed to build count query: {e}") from e
        return sql, params
