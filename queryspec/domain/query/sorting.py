"""
Sort Compilation

SortCondition lists become ordered SortInstructions. Precedence is input order.
Invalid conditions are skipped and reported; they never abort the rest.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from queryspec.domain.query.plan import SortInstruction
from queryspec.errors import ErrorCode, ValidationError, sort_validation_error
from queryspec.shared.types.models import SortCondition

logger = logging.getLogger(__name__)

SORT_ORDERS = ("asc", "desc")
NULLS_PLACEMENTS = ("first", "last")


@dataclass
class ColumnSchema:
    allowed: bool = True
    default_order: Optional[str] = None
    nulls: Optional[str] = None
    case_sensitive: Optional[bool] = None


@dataclass
class SortResult:
    instructions: List[SortInstruction] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def parse_sort_condition(raw: Any) -> SortCondition:
    if isinstance(raw, SortCondition):
        return raw
    if isinstance(raw, str):
        raw = {"column": raw}
    try:
        return SortCondition.model_validate(raw)
    except PydanticValidationError as e:
        first = e.errors()[0]
        loc = [str(part) for part in first.get("loc", ())]
        code = {
            "order": ErrorCode.INVALID_SORT_ORDER,
            "nulls": ErrorCode.INVALID_SORT_NULLS,
        }.get(loc[-1] if loc else "", ErrorCode.INVALID_SORT_COLUMN)
        raise sort_validation_error(
            f"Invalid sort condition: {first.get('msg')} at {'.'.join(loc) or '<root>'}",
            code,
            value=first.get("input"),
        ) from e


def check_sort_condition(
    condition: SortCondition,
    schema: Optional[ColumnSchema] = None,
) -> Optional[ValidationError]:
    """Return the first problem with a sort condition, or None."""
    if not condition.column:
        return sort_validation_error(
            f"Invalid sort condition for column: {condition.column}",
            ErrorCode.INVALID_SORT_COLUMN,
            column=condition.column,
        )
    if condition.order is not None and condition.order not in SORT_ORDERS:
        return sort_validation_error(
            f"Invalid sort order '{condition.order}' for column: {condition.column}",
            ErrorCode.INVALID_SORT_ORDER,
            column=condition.column,
            value=condition.order,
        )
    if condition.nulls is not None and condition.nulls not in NULLS_PLACEMENTS:
        return sort_validation_error(
            f"Invalid nulls placement '{condition.nulls}' for column: {condition.column}",
            ErrorCode.INVALID_SORT_NULLS,
            column=condition.column,
            value=condition.nulls,
        )
    if schema is not None and not schema.allowed:
        return sort_validation_error(
            f"Column '{condition.column}' is not allowed for sorting",
            ErrorCode.INVALID_SORT_COLUMN,
            column=condition.column,
        )
    return None


def validate_sorting(conditions: List[SortCondition], column_schemas: Optional[Dict[str, ColumnSchema]] = None) -> None:
    column_schemas = column_schemas or {}
    for condition in conditions:
        problem = check_sort_condition(condition, column_schemas.get(condition.column))
        if problem is not None:
            raise problem


class SortCompiler:
    """Compiles sort conditions into instructions, collecting errors instead of raising."""

    def __init__(self, column_schemas: Optional[Dict[str, ColumnSchema]] = None):
        self.column_schemas = dict(column_schemas or {})

    def compile(self, sorting: Any) -> SortResult:
        result = SortResult()
        if not sorting:
            return result
        if not isinstance(sorting, (list, tuple)):
            sorting = [sorting]

        for raw in sorting:
            try:
                condition = parse_sort_condition(raw)
            except ValidationError as e:
                result.errors.append(e.message)
                continue

            schema = self.column_schemas.get(condition.column)
            problem = check_sort_condition(condition, schema)
            if problem is not None:
                result.errors.append(problem.message)
                continue

            result.instructions.append(self._instruction(condition, schema))

        return result

    def _instruction(self, condition: SortCondition, schema: Optional[ColumnSchema]) -> SortInstruction:
        direction = condition.order or (schema.default_order if schema else None) or "asc"
        nulls = condition.nulls or (schema.nulls if schema else None)

        case_sensitive = condition.case_sensitive
        if case_sensitive is None and schema is not None:
            case_sensitive = schema.case_sensitive

        return SortInstruction(
            column=condition.column,
            direction=direction.lower(),
            nulls=nulls,
            transform="lower" if case_sensitive is False else None,
        )


# =============================================================================
# FLUENT BUILDER
# =============================================================================

@dataclass
class SortStats:
    total: int
    asc: int
    desc: int
    columns: List[str]


class SortBuilder:
    """Fluent helper that accumulates validated sort conditions."""

    def __init__(self, column_schemas: Optional[Dict[str, ColumnSchema]] = None):
        self.column_schemas = dict(column_schemas or {})
        self._conditions: List[SortCondition] = []

    def _validated(self, condition: Any) -> SortCondition:
        parsed = parse_sort_condition(condition)
        validate_sorting([parsed], self.column_schemas)
        return parsed

    def add_sort(self, condition: Any) -> "SortBuilder":
        self._conditions.append(self._validated(condition))
        return self

    def add_sorts(self, conditions: List[Any]) -> "SortBuilder":
        parsed = [self._validated(c) for c in conditions]
        self._conditions.extend(parsed)
        return self

    def order_by(
        self,
        column: str,
        order: str = "asc",
        nulls: Optional[str] = None,
        case_sensitive: Optional[bool] = None,
    ) -> "SortBuilder":
        return self.add_sort({"column": column, "order": order, "nulls": nulls, "case_sensitive": case_sensitive})

    def order_by_asc(self, column: str) -> "SortBuilder":
        return self.order_by(column, "asc")

    def order_by_desc(self, column: str) -> "SortBuilder":
        return self.order_by(column, "desc")

    def order_by_nulls_first(self, column: str, order: str = "asc") -> "SortBuilder":
        return self.order_by(column, order, nulls="first")

    def order_by_nulls_last(self, column: str, order: str = "asc") -> "SortBuilder":
        return self.order_by(column, order, nulls="last")

    def order_by_case_insensitive(self, column: str, order: str = "asc") -> "SortBuilder":
        return self.order_by(column, order, case_sensitive=False)

    def set_primary_sort(self, column: str, order: str = "asc") -> "SortBuilder":
        condition = self._validated({"column": column, "order": order})
        self._conditions = [condition] + [c for c in self._conditions if c.column != column]
        return self

    def set_secondary_sort(self, column: str, order: str = "asc") -> "SortBuilder":
        condition = self._validated({"column": column, "order": order})
        rest = [c for c in self._conditions if c.column != column]
        self._conditions = rest[:1] + [condition] + rest[1:]
        return self

    def primary_sort(self) -> Optional[SortCondition]:
        return self._conditions[0] if self._conditions else None

    def secondary_sort(self) -> Optional[SortCondition]:
        return self._conditions[1] if len(self._conditions) > 1 else None

    def has_column(self, column: str) -> bool:
        return any(c.column == column for c in self._conditions)

    def remove_sorts_by_column(self, column: str) -> "SortBuilder":
        self._conditions = [c for c in self._conditions if c.column != column]
        return self

    def clear(self) -> "SortBuilder":
        self._conditions = []
        return self

    def clone(self) -> "SortBuilder":
        copy = SortBuilder(self.column_schemas)
        copy._conditions = [c.model_copy() for c in self._conditions]
        return copy

    def stats(self) -> SortStats:
        asc = sum(1 for c in self._conditions if (c.order or "asc") == "asc")
        return SortStats(
            total=len(self._conditions),
            asc=asc,
            desc=len(self._conditions) - asc,
            columns=[c.column for c in self._conditions],
        )

    def build(self) -> List[SortCondition]:
        return list(self._conditions)

    def compile(self) -> SortResult:
        return SortCompiler(self.column_schemas).compile(self.build())
