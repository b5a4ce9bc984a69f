"""
Filter Compilation

Turns FilterCondition / FilterGroup trees into backend-neutral predicates.

Usage:
    compiler = FilterCompiler(field_schemas={"email": FieldSchema(operators=[FilterOperator.EQ])})
    result = compiler.compile([
        FilterCondition(field="age", operator="between", value=[18, 65]),
        FilterGroup(operator="or", conditions=[...]),
    ])
    if result.errors:
        ...

Compilation never raises for data-level problems: invalid conditions compile to
the empty predicate and their messages land in ``result.errors``. Only an
operator with no entry in the operator table is fatal.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from queryspec.domain.query.plan import EMPTY, Comparison, Predicate, combine
from queryspec.errors import ErrorCode, UnsupportedOperatorError, ValidationError
from queryspec.shared.types.models import (
    NULL_OPERATORS,
    FilterCondition,
    FilterGroup,
    FilterInput,
    FilterNode,
    FilterOperator,
)

logger = logging.getLogger(__name__)

_node_adapter = TypeAdapter(FilterNode)
_input_adapter = TypeAdapter(FilterInput)

RANGE_OPERATORS = frozenset({FilterOperator.BETWEEN, FilterOperator.NOT_BETWEEN})


@dataclass
class FieldSchema:
    """
    Per-field compile rules.

    Attributes:
        operators: Allowed operators (None allows all)
        case_sensitive: Default case sensitivity for pattern operators
        transform: Applied to the value before compiling
    """
    operators: Optional[Sequence[FilterOperator]] = None
    case_sensitive: Optional[bool] = None
    transform: Optional[Callable[[Any], Any]] = None


@dataclass
class FilterResult:
    predicate: Predicate = EMPTY
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


# =============================================================================
# PARSING / VALIDATION
# =============================================================================

def parse_filter_input(raw: Any) -> FilterInput:
    """Parse dicts (or models) into typed filter nodes. Raises ValidationError."""
    try:
        return _input_adapter.validate_python(raw)
    except PydanticValidationError as e:
        raise _from_pydantic(e) from e


def _from_pydantic(exc: PydanticValidationError) -> ValidationError:
    first = exc.errors()[0]
    loc = [str(part) for part in first.get("loc", ())]
    last = loc[-1] if loc else ""
    if last == "operator":
        code = ErrorCode.INVALID_FILTER_GROUP_OPERATOR if "group" in loc else ErrorCode.INVALID_FILTER_OPERATOR
    elif last == "field":
        code = ErrorCode.INVALID_FILTER_FIELD
    elif last == "conditions":
        code = ErrorCode.INVALID_FILTER_GROUP_CONDITIONS
    else:
        code = ErrorCode.INVALID_FILTER_VALUE
    return ValidationError(
        message=f"Invalid filter: {first.get('msg')} at {'.'.join(loc) or '<root>'}",
        code=code,
        field=last or None,
        value=first.get("input"),
    )


def check_condition(
    condition: FilterCondition,
    schema: Optional[FieldSchema] = None,
) -> Optional[ValidationError]:
    """Return the first problem with a condition, or None."""
    if not condition.field or not condition.operator:
        code = ErrorCode.INVALID_FILTER_FIELD if not condition.field else ErrorCode.INVALID_FILTER_OPERATOR
        return ValidationError(
            message=f"Invalid filter condition for field: {condition.field}",
            code=code,
            field=condition.field,
        )

    if condition.value is None and condition.operator not in NULL_OPERATORS:
        return ValidationError(
            message=f"Invalid filter condition for field: {condition.field}",
            code=ErrorCode.INVALID_FILTER_VALUE,
            field=condition.field,
            value=condition.value,
        )

    if schema is not None and schema.operators is not None and condition.operator not in schema.operators:
        op = getattr(condition.operator, "value", condition.operator)
        return ValidationError(
            message=f"Operator '{op}' not allowed for field '{condition.field}'",
            code=ErrorCode.INVALID_FILTER_OPERATOR,
            field=condition.field,
            value=op,
        )

    if condition.operator in RANGE_OPERATORS and isinstance(condition.value, (list, tuple)):
        if len(condition.value) == 0 or len(condition.value) > 2:
            return ValidationError(
                message=f"Range operator requires one or two values for field '{condition.field}'",
                code=ErrorCode.INVALID_FILTER_VALUE,
                field=condition.field,
                value=list(condition.value),
            )

    return None


def validate_filters(filters: FilterInput, field_schemas: Optional[Dict[str, FieldSchema]] = None) -> None:
    """Walk a parsed filter input and raise on the first problem."""
    field_schemas = field_schemas or {}
    nodes = filters if isinstance(filters, list) else [filters]
    for node in nodes:
        if isinstance(node, FilterGroup):
            if node.operator not in ("and", "or"):
                raise ValidationError(
                    message=f"Invalid filter group operator: {node.operator}",
                    code=ErrorCode.INVALID_FILTER_GROUP_OPERATOR,
                    value=node.operator,
                )
            if not node.conditions:
                raise ValidationError(
                    message="Filter group must contain at least one condition",
                    code=ErrorCode.INVALID_FILTER_GROUP_CONDITIONS,
                )
            validate_filters(node.conditions, field_schemas)
        else:
            problem = check_condition(node, field_schemas.get(node.field))
            if problem is not None:
                raise problem


# =============================================================================
# OPERATOR TABLE
# =============================================================================

def _like(field_name: str, pattern: Any, case_sensitive: bool, negate: bool = False) -> Comparison:
    if case_sensitive:
        return Comparison(field_name, "not_like" if negate else "like", pattern)
    return Comparison(field_name, "not_ilike" if negate else "ilike", pattern)


def _as_list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple, set, frozenset)) else [value]


def _range_bounds(field_name: str, value: Any, result: FilterResult) -> List[Any]:
    if isinstance(value, (list, tuple)) and len(value) == 2:
        return [value[0], value[1]]
    single = value[0] if isinstance(value, (list, tuple)) else value
    result.warnings.append(
        f"Range filter on '{field_name}' received a single value; using it for both bounds"
    )
    return [single, single]


_SIMPLE = {
    FilterOperator.EQ: "eq",
    FilterOperator.NE: "ne",
    FilterOperator.GT: "gt",
    FilterOperator.GTE: "gte",
    FilterOperator.LT: "lt",
    FilterOperator.LTE: "lte",
    FilterOperator.REGEX: "regex",
    FilterOperator.NOT_REGEX: "not_regex",
}

OperatorHandler = Callable[[str, Any, bool, FilterResult], Predicate]


def _direct(op: str) -> OperatorHandler:
    def handler(field_name: str, value: Any, case_sensitive: bool, result: FilterResult) -> Predicate:
        return Comparison(field_name, op, value)
    return handler

OPERATOR_TABLE: Dict[FilterOperator, OperatorHandler] = {
    **{op: _direct(target) for op, target in _SIMPLE.items()},
    FilterOperator.LIKE: lambda f, v, cs, r: _like(f, v, cs),
    FilterOperator.NOT_LIKE: lambda f, v, cs, r: _like(f, v, cs, negate=True),
    FilterOperator.ILIKE: lambda f, v, cs, r: Comparison(f, "ilike", v),
    FilterOperator.NOT_ILIKE: lambda f, v, cs, r: Comparison(f, "not_ilike", v),
    FilterOperator.IN: lambda f, v, cs, r: Comparison(f, "in", _as_list(v)),
    FilterOperator.NOT_IN: lambda f, v, cs, r: Comparison(f, "not_in", _as_list(v)),
    FilterOperator.BETWEEN: lambda f, v, cs, r: Comparison(f, "between", _range_bounds(f, v, r)),
    FilterOperator.NOT_BETWEEN: lambda f, v, cs, r: Comparison(f, "not_between", _range_bounds(f, v, r)),
    FilterOperator.IS_NULL: lambda f, v, cs, r: Comparison(f, "is_null"),
    FilterOperator.IS_NOT_NULL: lambda f, v, cs, r: Comparison(f, "is_not_null"),
    FilterOperator.STARTS_WITH: lambda f, v, cs, r: _like(f, f"{v}%", cs),
    FilterOperator.ENDS_WITH: lambda f, v, cs, r: _like(f, f"%{v}", cs),
    FilterOperator.CONTAINS: lambda f, v, cs, r: _like(f, f"%{v}%", cs),
}


# =============================================================================
# COMPILER
# =============================================================================

class FilterCompiler:
    """Compiles filter inputs into predicates, collecting errors instead of raising."""

    def __init__(
        self,
        field_schemas: Optional[Dict[str, FieldSchema]] = None,
        operator_table: Optional[Dict[FilterOperator, OperatorHandler]] = None,
    ):
        self.field_schemas = dict(field_schemas or {})
        self.operator_table = operator_table if operator_table is not None else OPERATOR_TABLE

    def compile(self, filters: Any) -> FilterResult:
        result = FilterResult()
        if filters is None:
            return result

        try:
            if isinstance(filters, (list, tuple)):
                result.predicate = combine("and", [self._compile_node(node, result) for node in filters])
            else:
                result.predicate = self._compile_node(filters, result)
        except UnsupportedOperatorError:
            raise
        except Exception as e:
            logger.warning(f"Filter compilation failed unexpectedly: {e}")
            result.errors.append(f"Filter processing error: {e}")
            result.predicate = EMPTY

        return result

    def _compile_node(self, node: Any, result: FilterResult) -> Predicate:
        if isinstance(node, dict):
            try:
                node = _node_adapter.validate_python(node)
            except PydanticValidationError as e:
                result.errors.append(_from_pydantic(e).message)
                return EMPTY

        if isinstance(node, FilterGroup):
            return self._compile_group(node, result)
        if isinstance(node, FilterCondition):
            return self._compile_condition(node, result)

        result.errors.append(f"Unrecognized filter node: {type(node).__name__}")
        return EMPTY

    def _compile_group(self, group: FilterGroup, result: FilterResult) -> Predicate:
        if group.operator not in ("and", "or"):
            result.errors.append(f"Invalid filter group operator: {group.operator}")
            return EMPTY
        if not group.conditions:
            result.errors.append("Filter group must contain at least one condition")
            return EMPTY
        return combine(group.operator, [self._compile_node(child, result) for child in group.conditions])

    def _compile_condition(self, condition: FilterCondition, result: FilterResult) -> Predicate:
        schema = self.field_schemas.get(condition.field)

        problem = check_condition(condition, schema)
        if problem is not None:
            result.errors.append(problem.message)
            return EMPTY

        value = condition.value
        if schema is not None and schema.transform is not None:
            try:
                value = schema.transform(value)
            except Exception as e:
                result.errors.append(f"Value transformation failed for field '{condition.field}': {e}")
                return EMPTY

        case_sensitive = condition.case_sensitive
        if case_sensitive is None:
            case_sensitive = bool(schema.case_sensitive) if schema is not None else False

        return self._apply_operator(condition.field, condition.operator, value, case_sensitive, result)

    def _apply_operator(
        self,
        field_name: str,
        operator: Any,
        value: Any,
        case_sensitive: bool,
        result: FilterResult,
    ) -> Predicate:
        try:
            operator = FilterOperator(operator)
        except ValueError:
            operator = None
        handler = self.operator_table.get(operator) if operator is not None else None
        if handler is None:
            raise UnsupportedOperatorError(
                message=f"Unsupported filter operator: {operator}",
                code=ErrorCode.UNSUPPORTED_OPERATOR,
                operator=str(operator),
            )
        return handler(field_name, value, case_sensitive, result)


# =============================================================================
# FLUENT BUILDER
# =============================================================================

class FilterBuilder:
    """
    Fluent helper that accumulates validated filter nodes.

    Every ``where_*`` method validates immediately and raises ValidationError.
    Nodes are AND-combined on ``build()``; groups added with ``add_group`` stay
    groups.
    """

    def __init__(self, field_schemas: Optional[Dict[str, FieldSchema]] = None):
        self.field_schemas = dict(field_schemas or {})
        self._nodes: List[Any] = []

    def add_filter(self, condition: Any) -> "FilterBuilder":
        parsed = parse_filter_input(condition)
        validate_filters(parsed, self.field_schemas)
        if isinstance(parsed, list):
            self._nodes.extend(parsed)
        else:
            self._nodes.append(parsed)
        return self

    def add_filters(self, conditions: List[Any]) -> "FilterBuilder":
        parsed = parse_filter_input(list(conditions))
        validate_filters(parsed, self.field_schemas)
        self._nodes.extend(parsed)
        return self

    def add_group(self, operator: str, conditions: List[Any]) -> "FilterBuilder":
        return self.add_filter({"kind": "group", "operator": operator, "conditions": list(conditions)})

    def _where(self, field_name: str, operator: FilterOperator, value: Any = None, **extra) -> "FilterBuilder":
        return self.add_filter(FilterCondition(field=field_name, operator=operator, value=value, **extra))

    def where(self, field_name: str, value: Any) -> "FilterBuilder":
        return self._where(field_name, FilterOperator.EQ, value)

    def where_not(self, field_name: str, value: Any) -> "FilterBuilder":
        return self._where(field_name, FilterOperator.NE, value)

    def where_gt(self, field_name: str, value: Any) -> "FilterBuilder":
        return self._where(field_name, FilterOperator.GT, value)

    def where_gte(self, field_name: str, value: Any) -> "FilterBuilder":
        return self._where(field_name, FilterOperator.GTE, value)

    def where_lt(self, field_name: str, value: Any) -> "FilterBuilder":
        return self._where(field_name, FilterOperator.LT, value)

    def where_lte(self, field_name: str, value: Any) -> "FilterBuilder":
        return self._where(field_name, FilterOperator.LTE, value)

    def where_like(self, field_name: str, pattern: str, case_sensitive: bool = False) -> "FilterBuilder":
        return self._where(field_name, FilterOperator.LIKE, pattern, case_sensitive=case_sensitive)

    def where_not_like(self, field_name: str, pattern: str, case_sensitive: bool = False) -> "FilterBuilder":
        return self._where(field_name, FilterOperator.NOT_LIKE, pattern, case_sensitive=case_sensitive)

    def where_in(self, field_name: str, values: List[Any]) -> "FilterBuilder":
        return self._where(field_name, FilterOperator.IN, list(values))

    def where_not_in(self, field_name: str, values: List[Any]) -> "FilterBuilder":
        return self._where(field_name, FilterOperator.NOT_IN, list(values))

    def where_between(self, field_name: str, low: Any, high: Any) -> "FilterBuilder":
        return self._where(field_name, FilterOperator.BETWEEN, [low, high])

    def where_not_between(self, field_name: str, low: Any, high: Any) -> "FilterBuilder":
        return self._where(field_name, FilterOperator.NOT_BETWEEN, [low, high])

    def where_null(self, field_name: str) -> "FilterBuilder":
        return self._where(field_name, FilterOperator.IS_NULL)

    def where_not_null(self, field_name: str) -> "FilterBuilder":
        return self._where(field_name, FilterOperator.IS_NOT_NULL)

    def where_starts_with(self, field_name: str, prefix: str) -> "FilterBuilder":
        return self._where(field_name, FilterOperator.STARTS_WITH, prefix)

    def where_ends_with(self, field_name: str, suffix: str) -> "FilterBuilder":
        return self._where(field_name, FilterOperator.ENDS_WITH, suffix)

    def where_contains(self, field_name: str, fragment: str) -> "FilterBuilder":
        return self._where(field_name, FilterOperator.CONTAINS, fragment)

    def where_regex(self, field_name: str, pattern: str) -> "FilterBuilder":
        return self._where(field_name, FilterOperator.REGEX, pattern)

    def where_not_regex(self, field_name: str, pattern: str) -> "FilterBuilder":
        return self._where(field_name, FilterOperator.NOT_REGEX, pattern)

    def search(self, term: str, fields: List[str]) -> "FilterBuilder":
        """OR of ``contains`` across ``fields``."""
        if not term or not fields:
            return self
        return self.add_group("or", [
            FilterCondition(field=name, operator=FilterOperator.CONTAINS, value=term) for name in fields
        ])

    def get_filters_by_field(self, field_name: str) -> List[FilterCondition]:
        return [n for n in self._nodes if isinstance(n, FilterCondition) and n.field == field_name]

    def remove_filters_by_field(self, field_name: str) -> "FilterBuilder":
        self._nodes = [n for n in self._nodes if not (isinstance(n, FilterCondition) and n.field == field_name)]
        return self

    def clear(self) -> "FilterBuilder":
        self._nodes = []
        return self

    def count(self) -> int:
        return len(self._nodes)

    def has_filters(self) -> bool:
        return bool(self._nodes)

    def clone(self) -> "FilterBuilder":
        copy = FilterBuilder(self.field_schemas)
        copy._nodes = [n.model_copy(deep=True) for n in self._nodes]
        return copy

    def build(self) -> Optional[FilterGroup]:
        if not self._nodes:
            return None
        return FilterGroup(operator="and", conditions=list(self._nodes))

    def compile(self) -> FilterResult:
        return FilterCompiler(self.field_schemas).compile(list(self._nodes))


SEARCH_KEYS = ("search", "search_fields")


def filters_from_options(options: Dict[str, Any]) -> Optional[FilterGroup]:
    """
    Build a filter group from flat request options.

    ``search`` + ``search_fields`` become an OR of ``contains``; every other
    non-None key becomes an equality.
    """
    builder = FilterBuilder()
    builder.search(options.get("search"), options.get("search_fields") or [])
    for key, value in options.items():
        if key in SEARCH_KEYS or value is None:
            continue
        builder.where(key, value)
    return builder.build()
