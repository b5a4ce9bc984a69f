"""
Join Tree Builder

Accumulates JoinSpecs and turns them into the InclusionNode tree that record
stores use for eager loading. Nested joins recurse without depth limit.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from queryspec.domain.query.filters import FilterCompiler
from queryspec.domain.query.plan import InclusionNode, is_empty
from queryspec.errors import ErrorCode, QueryError
from queryspec.shared.types.models import JoinSpec

logger = logging.getLogger(__name__)


def target_name(target: Any) -> Optional[str]:
    """Relation identifier for a string or a named reference."""
    if target is None:
        return None
    if isinstance(target, str):
        return target or None
    return getattr(target, "__name__", None) or getattr(target, "name", None)


@dataclass
class JoinStats:
    total_joins: int
    required_joins: int
    optional_joins: int
    targets: List[str]


class JoinTreeBuilder:

    def __init__(self, filter_compiler: Optional[FilterCompiler] = None):
        self.filter_compiler = filter_compiler or FilterCompiler()
        self._joins: List[JoinSpec] = []

    # -------------------------------------------------------------------------
    # Accumulation
    # -------------------------------------------------------------------------

    def _validate(self, join: JoinSpec) -> None:
        if target_name(join.target) is None:
            raise QueryError(
                message="Join target is required",
                code=ErrorCode.INVALID_JOIN_TARGET,
                details={"alias": join.alias},
            )
        if join.attributes is not None and not all(isinstance(a, str) and a for a in join.attributes):
            raise QueryError(
                message=f"Join attributes for '{target_name(join.target)}' must be non-empty strings",
                code=ErrorCode.INVALID_JOIN_ATTRIBUTES,
                details={"attributes": join.attributes},
            )
        for nested in join.nested_joins:
            self._validate(nested)

    def add_join(self, join: Any) -> "JoinTreeBuilder":
        if not isinstance(join, JoinSpec):
            join = JoinSpec.model_validate(join)
        self._validate(join)
        self._joins.append(join)
        return self

    def add_joins(self, joins: List[Any]) -> "JoinTreeBuilder":
        for join in joins:
            self.add_join(join)
        return self

    def join(self, target: Any, **options) -> "JoinTreeBuilder":
        return self.add_join(JoinSpec(target=target, **options))

    def required_join(self, target: Any, **options) -> "JoinTreeBuilder":
        return self.join(target, required=True, **options)

    def optional_join(self, target: Any, **options) -> "JoinTreeBuilder":
        return self.join(target, required=False, **options)

    def add_nested_join(self, parent: Any, nested: Any) -> "JoinTreeBuilder":
        """Add ``parent`` with ``nested`` appended to its nested joins."""
        parent = parent if isinstance(parent, JoinSpec) else JoinSpec.model_validate(parent)
        nested = nested if isinstance(nested, JoinSpec) else JoinSpec.model_validate(nested)
        return self.add_join(parent.model_copy(update={"nested_joins": [*parent.nested_joins, nested]}))

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    def get_joins_by_target(self, target: Any) -> List[JoinSpec]:
        name = target_name(target)
        return [j for j in self._joins if target_name(j.target) == name]

    def remove_joins_by_target(self, target: Any) -> "JoinTreeBuilder":
        name = target_name(target)
        self._joins = [j for j in self._joins if target_name(j.target) != name]
        return self

    def has_target(self, target: Any) -> bool:
        return bool(self.get_joins_by_target(target))

    def clear(self) -> "JoinTreeBuilder":
        self._joins = []
        return self

    def count(self) -> int:
        return len(self._joins)

    def merge(self, other: "JoinTreeBuilder") -> "JoinTreeBuilder":
        self._joins.extend(j.model_copy(deep=True) for j in other._joins)
        return self

    def clone(self) -> "JoinTreeBuilder":
        copy = JoinTreeBuilder(self.filter_compiler)
        copy._joins = [j.model_copy(deep=True) for j in self._joins]
        return copy

    def stats(self) -> JoinStats:
        required = sum(1 for j in self._joins if j.required)
        targets: List[str] = []
        for j in self._joins:
            name = target_name(j.target)
            if name not in targets:
                targets.append(name)
        return JoinStats(
            total_joins=len(self._joins),
            required_joins=required,
            optional_joins=len(self._joins) - required,
            targets=targets,
        )

    # -------------------------------------------------------------------------
    # Build
    # -------------------------------------------------------------------------

    def build(self) -> List[InclusionNode]:
        return [self._node(join) for join in self._joins]

    def _node(self, join: JoinSpec) -> InclusionNode:
        name = target_name(join.target)
        where = None
        if join.where is not None:
            compiled = self.filter_compiler.compile(join.where)
            if compiled.errors:
                raise QueryError(
                    message=f"Invalid join condition for '{name}': {'; '.join(compiled.errors)}",
                    code=ErrorCode.INVALID_JOIN_WHERE,
                    details={"target": name, "errors": compiled.errors},
                )
            where = None if is_empty(compiled.predicate) else compiled.predicate

        return InclusionNode(
            target=name,
            alias=join.alias,
            required=join.required,
            attributes=list(join.attributes) if join.attributes is not None else None,
            where=where,
            include=[self._node(nested) for nested in join.nested_joins],
        )

    def to_dict(self) -> List[Dict[str, Any]]:
        def _as_dict(node: InclusionNode) -> Dict[str, Any]:
            return {
                "target": node.target,
                "alias": node.alias,
                "required": node.required,
                "attributes": node.attributes,
                "where": node.where.to_dict() if node.where is not None else None,
                "include": [_as_dict(child) for child in node.include],
            }
        return [_as_dict(node) for node in self.build()]
