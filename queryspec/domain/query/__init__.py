"""
Query Domain

Compilers, pagination, join trees, the orchestrator and the CRUD repository.
"""

from queryspec.domain.query.filters import (
    FieldSchema,
    FilterBuilder,
    FilterCompiler,
    FilterResult,
    filters_from_options,
)
from queryspec.domain.query.joins import JoinStats, JoinTreeBuilder
from queryspec.domain.query.orchestrator import QueryOrchestrator
from queryspec.domain.query.pagination import PaginationCalculator, ResolvedPagination
from queryspec.domain.query.plan import (
    EMPTY,
    Comparison,
    InclusionNode,
    Junction,
    QueryPlan,
    SortInstruction,
)
from queryspec.domain.query.repository import QueryRepository
from queryspec.domain.query.sorting import ColumnSchema, SortBuilder, SortCompiler, SortResult

__all__ = [
    "FieldSchema",
    "FilterBuilder",
    "FilterCompiler",
    "FilterResult",
    "filters_from_options",
    "JoinStats",
    "JoinTreeBuilder",
    "QueryOrchestrator",
    "PaginationCalculator",
    "ResolvedPagination",
    "EMPTY",
    "Comparison",
    "InclusionNode",
    "Junction",
    "QueryPlan",
    "SortInstruction",
    "QueryRepository",
    "ColumnSchema",
    "SortBuilder",
    "SortCompiler",
    "SortResult",
]
