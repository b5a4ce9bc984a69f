"""
Observability

Performance tracking for query execution.
"""

from queryspec.infrastructure.observability.performance import (
    PerformanceMetrics,
    PerformanceTracker,
    QueryContext,
    current_memory_usage,
)

__all__ = [
    "PerformanceMetrics",
    "PerformanceTracker",
    "QueryContext",
    "current_memory_usage",
]
