"""
Query Plan Types

Backend-neutral output of the compilers. A record store receives one
``QueryPlan`` per execution and never sees the caller's descriptors.

PREDICATES:
-----------
    Comparison("age", "between", [18, 65])
    Junction("or", (Comparison("status", "eq", "active"), ...))

``EMPTY`` (an AND with no children) is the no-op predicate. Combinators drop
empty children, so an invalid condition never widens an OR group.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple, Union

COMPARISON_OPS = frozenset({
    "eq", "ne", "gt", "gte", "lt", "lte",
    "like", "not_like", "ilike", "not_ilike",
    "in", "not_in", "between", "not_between",
    "is_null", "is_not_null", "regex", "not_regex",
})


@dataclass(frozen=True)
class Comparison:
    field: str
    op: str
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {self.field: {self.op: self.value}}


@dataclass(frozen=True)
class Junction:
    op: str
    children: Tuple["Predicate", ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        if not self.children:
            return {}
        return {self.op: [child.to_dict() for child in self.children]}


Predicate = Union[Comparison, Junction]

EMPTY = Junction("and", ())


def is_empty(predicate: Optional[Predicate]) -> bool:
    return predicate is None or (isinstance(predicate, Junction) and not predicate.children)


def combine(op: str, predicates: List[Optional[Predicate]]) -> Predicate:
    """Combine predicates under ``and``/``or``, dropping empty ones."""
    children = tuple(p for p in predicates if not is_empty(p))
    if not children:
        return EMPTY
    if len(children) == 1:
        return children[0]
    return Junction(op, children)


def and_(*predicates: Optional[Predicate]) -> Predicate:
    return combine("and", list(predicates))


def or_(*predicates: Optional[Predicate]) -> Predicate:
    return combine("or", list(predicates))


# =============================================================================
# ORDERING / INCLUDES / PLAN
# =============================================================================

@dataclass(frozen=True)
class SortInstruction:
    column: str
    direction: str = "asc"
    nulls: Optional[str] = None
    transform: Optional[str] = None  # "lower" for case-insensitive ordering

    def to_dict(self) -> Dict[str, Any]:
        data = {"column": self.column, "direction": self.direction}
        if self.nulls:
            data["nulls"] = self.nulls
        if self.transform:
            data["transform"] = self.transform
        return data


@dataclass
class InclusionNode:
    target: str
    alias: Optional[str] = None
    required: bool = False
    attributes: Optional[List[str]] = None
    where: Optional[Predicate] = None
    include: List["InclusionNode"] = field(default_factory=list)

    @property
    def key(self) -> str:
        """Relation name used to resolve this include."""
        return self.alias or self.target


@dataclass
class QueryPlan:
    """
    Merged, backend-neutral query.

    Attributes:
        where: Row predicate (None when unfiltered)
        order: Sort instructions in precedence order
        include: Eager-load tree
        offset / limit: Row window (None means unbounded)
        attributes: Column projection (None means all)
        group / having / distinct: Passed through from the specification
        flags: Free-form backend hints
    """
    where: Optional[Predicate] = None
    order: List[SortInstruction] = field(default_factory=list)
    include: List[InclusionNode] = field(default_factory=list)
    offset: Optional[int] = None
    limit: Optional[int] = None
    attributes: Optional[List[str]] = None
    group: Optional[List[str]] = None
    having: Optional[Predicate] = None
    distinct: bool = False
    flags: Dict[str, Any] = field(default_factory=dict)

    def for_count(self) -> "QueryPlan":
        """Same plan with the row window, ordering and projection stripped."""
        return replace(self, offset=None, limit=None, order=[], attributes=None)
