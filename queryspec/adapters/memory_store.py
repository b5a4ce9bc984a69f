"""
In-Memory Record Store

Evaluates QueryPlans against lists of dicts. Useful for tests, demos and as
the reference semantics for predicates:

- comparisons against NULL are false (SQL three-valued logic collapsed to False)
- LIKE patterns use ``%`` and ``_``; ILIKE ignores case
- NULLs sort last unless an instruction asks for ``nulls="first"``

Includes are resolved through declared relations:

    posts = InMemoryRecordStore("posts", post_rows)
    users = InMemoryRecordStore("users", user_rows, relations={
        "posts": Relation(posts, foreign_key="user_id"),
    })
"""

import copy
import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, Dict, Iterable, List, Optional

from queryspec.adapters.base import AdapterError, RecordStore
from queryspec.domain.query.plan import Comparison, InclusionNode, Junction, Predicate, QueryPlan, SortInstruction

logger = logging.getLogger(__name__)


@dataclass
class Relation:
    store: "InMemoryRecordStore"
    foreign_key: str
    local_key: str = "id"
    many: bool = True


# =============================================================================
# PREDICATE EVALUATION
# =============================================================================

@lru_cache(maxsize=256)
def like_to_regex(pattern: str, case_sensitive: bool = True) -> "re.Pattern":
    """Translate a SQL LIKE pattern into a compiled regex."""
    parts = []
    for char in pattern:
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    flags = re.DOTALL if case_sensitive else re.DOTALL | re.IGNORECASE
    return re.compile("".join(parts), flags)


def _compare(op: str, actual: Any, expected: Any) -> bool:
    if op == "is_null":
        return actual is None
    if op == "is_not_null":
        return actual is not None
    if actual is None:
        return False

    if op == "eq":
        return actual == expected
    if op == "ne":
        return actual != expected
    if op == "gt":
        return actual > expected
    if op == "gte":
        return actual >= expected
    if op == "lt":
        return actual < expected
    if op == "lte":
        return actual <= expected
    if op == "in":
        return actual in expected
    if op == "not_in":
        return actual not in expected
    if op == "between":
        return expected[0] <= actual <= expected[1]
    if op == "not_between":
        return not (expected[0] <= actual <= expected[1])
    if op in ("like", "not_like", "ilike", "not_ilike"):
        matched = like_to_regex(str(expected), op in ("like", "not_like")).fullmatch(str(actual)) is not None
        return matched if op in ("like", "ilike") else not matched
    if op == "regex":
        return re.search(str(expected), str(actual)) is not None
    if op == "not_regex":
        return re.search(str(expected), str(actual)) is None

    raise AdapterError(f"Unsupported predicate operator: {op}", engine=InMemoryRecordStore.ENGINE)


def evaluate(predicate: Optional[Predicate], row: Dict[str, Any]) -> bool:
    if predicate is None:
        return True
    if isinstance(predicate, Junction):
        if not predicate.children:
            return True
        results = (evaluate(child, row) for child in predicate.children)
        return all(results) if predicate.op == "and" else any(results)
    if isinstance(predicate, Comparison):
        return _compare(predicate.op, row.get(predicate.field), predicate.value)
    raise AdapterError(f"Unknown predicate type: {type(predicate).__name__}", engine=InMemoryRecordStore.ENGINE)


# =============================================================================
# ORDERING / PROJECTION
# =============================================================================

def _sort_key(instruction: SortInstruction) -> Callable[[Dict[str, Any]], Any]:
    if instruction.transform == "lower":
        return lambda row: str(row.get(instruction.column)).lower()
    return lambda row: row.get(instruction.column)


def sort_rows(rows: List[Dict[str, Any]], instructions: Iterable[SortInstruction]) -> List[Dict[str, Any]]:
    """Stable multi-key sort, applied from the least to the most significant key."""
    for instruction in reversed(list(instructions)):
        present = [r for r in rows if r.get(instruction.column) is not None]
        missing = [r for r in rows if r.get(instruction.column) is None]
        present.sort(key=_sort_key(instruction), reverse=instruction.direction == "desc")
        rows = missing + present if instruction.nulls == "first" else present + missing
    return rows


def project(row: Dict[str, Any], attributes: Optional[List[str]], keep: Iterable[str] = ()) -> Dict[str, Any]:
    if attributes is None:
        return row
    wanted = list(attributes) + [k for k in keep if k not in attributes]
    return {k: row[k] for k in wanted if k in row}


def _distinct(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    seen = []
    unique = []
    for row in rows:
        if row not in seen:
            seen.append(row)
            unique.append(row)
    return unique


# =============================================================================
# STORE
# =============================================================================

class InMemoryRecordStore(RecordStore):

    ENGINE = "memory"

    def __init__(
        self,
        name: str,
        rows: Optional[List[Dict[str, Any]]] = None,
        primary_key: str = "id",
        relations: Optional[Dict[str, Relation]] = None,
    ):
        super().__init__(name, primary_key)
        self._rows: List[Dict[str, Any]] = [dict(r) for r in rows or []]
        self.relations: Dict[str, Relation] = dict(relations or {})

    def add_relation(self, name: str, relation: Relation) -> None:
        self.relations[name] = relation

    @property
    def rows(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(self._rows)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def _check_supported(self, plan: QueryPlan) -> None:
        if plan.group or plan.having is not None:
            raise AdapterError("Grouping is not supported by the in-memory store", engine=self.ENGINE)

    def _resolve_includes(self, row: Dict[str, Any], includes: List[InclusionNode]) -> Optional[Dict[str, Any]]:
        """Attach included relations to ``row``; None when a required include has no match."""
        for node in includes:
            relation = self.relations.get(node.key) or self.relations.get(node.target)
            if relation is None:
                raise AdapterError(f"Unknown relation '{node.key}' on '{self.name}'", engine=self.ENGINE)

            children = []
            for child in relation.store._rows:
                if child.get(relation.foreign_key) != row.get(relation.local_key):
                    continue
                if not evaluate(node.where, child):
                    continue
                resolved = relation.store._resolve_includes(dict(child), node.include)
                if resolved is None:
                    continue
                keep = [n.key for n in node.include]
                children.append(project(resolved, node.attributes, keep))

            if node.required and not children:
                return None
            if relation.many:
                row[node.key] = children
            else:
                row[node.key] = children[0] if children else None
        return row

    def _matching(self, plan: QueryPlan) -> List[Dict[str, Any]]:
        self._check_supported(plan)
        matched = []
        try:
            for row in self._rows:
                if not evaluate(plan.where, row):
                    continue
                resolved = self._resolve_includes(copy.deepcopy(row), plan.include)
                if resolved is not None:
                    matched.append(resolved)
        except AdapterError:
            raise
        except (TypeError, re.error) as e:
            raise AdapterError(f"Predicate evaluation failed on '{self.name}': {e}", engine=self.ENGINE, original_error=e)
        return matched

    async def find_all(self, plan: QueryPlan) -> List[Dict[str, Any]]:
        rows = self._matching(plan)
        try:
            rows = sort_rows(rows, plan.order)
        except TypeError as e:
            raise AdapterError(f"Cannot order rows of '{self.name}': {e}", engine=self.ENGINE, original_error=e)

        keep = [n.key for n in plan.include]
        rows = [project(r, plan.attributes, keep) for r in rows]
        if plan.distinct:
            rows = _distinct(rows)

        start = plan.offset or 0
        end = start + plan.limit if plan.limit is not None else None
        return rows[start:end]

    async def count(self, plan: QueryPlan) -> int:
        rows = self._matching(plan)
        if plan.distinct:
            rows = _distinct(rows)
        return len(rows)

    async def find_by_pk(self, pk: Any) -> Optional[Dict[str, Any]]:
        for row in self._rows:
            if row.get(self.primary_key) == pk:
                return copy.deepcopy(row)
        return None

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def _next_pk(self) -> int:
        keys = [r.get(self.primary_key) for r in self._rows if isinstance(r.get(self.primary_key), int)]
        return max(keys, default=0) + 1

    async def create(self, values: Dict[str, Any]) -> Dict[str, Any]:
        row = dict(values)
        if row.get(self.primary_key) is None:
            row[self.primary_key] = self._next_pk()
        elif await self.find_by_pk(row[self.primary_key]) is not None:
            raise AdapterError(
                f"Duplicate primary key {row[self.primary_key]!r} in '{self.name}'",
                engine=self.ENGINE,
            )
        self._rows.append(row)
        return copy.deepcopy(row)

    async def update(self, pk: Any, values: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        for row in self._rows:
            if row.get(self.primary_key) == pk:
                row.update({k: v for k, v in values.items() if k != self.primary_key})
                return copy.deepcopy(row)
        return None

    async def destroy(self, pk: Any) -> bool:
        before = len(self._rows)
        self._rows = [r for r in self._rows if r.get(self.primary_key) != pk]
        return len(self._rows) < before
