"""
queryspec - declarative query specifications compiled into backend query plans.

Filters, sorting, pagination and joins are described as data, compiled into a
backend-neutral QueryPlan, executed against a record store, optionally cached,
and timed.
"""

from queryspec.core.config import QuerySettings, get_settings
from queryspec.domain.query import (
    ColumnSchema,
    FieldSchema,
    FilterBuilder,
    FilterCompiler,
    JoinTreeBuilder,
    PaginationCalculator,
    QueryOrchestrator,
    QueryPlan,
    QueryRepository,
    SortBuilder,
    SortCompiler,
)
from queryspec.errors import (
    ErrorCode,
    PaginationError,
    QueryError,
    QuerySpecError,
    ValidationError,
)
from queryspec.infrastructure.cache import CacheLayer, MemoryCacheProvider, RedisCacheProvider
from queryspec.infrastructure.observability import PerformanceTracker
from queryspec.shared.types import (
    FilterCondition,
    FilterGroup,
    FilterOperator,
    JoinSpec,
    PaginationSpec,
    ResultEnvelope,
    SortCondition,
)

__version__ = "1.0.0"

__all__ = [
    "QuerySettings",
    "get_settings",
    "ColumnSchema",
    "FieldSchema",
    "FilterBuilder",
    "FilterCompiler",
    "JoinTreeBuilder",
    "PaginationCalculator",
    "QueryOrchestrator",
    "QueryPlan",
    "QueryRepository",
    "SortBuilder",
    "SortCompiler",
    "ErrorCode",
    "PaginationError",
    "QueryError",
    "QuerySpecError",
    "ValidationError",
    "CacheLayer",
    "MemoryCacheProvider",
    "RedisCacheProvider",
    "PerformanceTracker",
    "FilterCondition",
    "FilterGroup",
    "FilterOperator",
    "JoinSpec",
    "PaginationSpec",
    "ResultEnvelope",
    "SortCondition",
]
