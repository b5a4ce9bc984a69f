"""
Shared Types

Descriptors, the query specification and the result envelope.
"""

from queryspec.shared.types.models import (
    NULL_OPERATORS,
    FilterCondition,
    FilterGroup,
    FilterInput,
    FilterNode,
    FilterOperator,
    JoinSpec,
    PaginationMeta,
    PaginationSpec,
    PerformanceSummary,
    QuerySpecification,
    ResultEnvelope,
    SortCondition,
)

__all__ = [
    "NULL_OPERATORS",
    "FilterCondition",
    "FilterGroup",
    "FilterInput",
    "FilterNode",
    "FilterOperator",
    "JoinSpec",
    "PaginationMeta",
    "PaginationSpec",
    "PerformanceSummary",
    "QuerySpecification",
    "ResultEnvelope",
    "SortCondition",
]
