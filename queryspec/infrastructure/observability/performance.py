"""
Performance Tracking

Per-operation timing, query counts, cache hit/miss counters and memory
snapshots. Each tracker owns its own map of live records; nothing is shared
between tracker instances.

Usage:
    tracker = PerformanceTracker(threshold_ms=500)
    handle = tracker.start(QueryContext("find_all", "users", request_id))
    tracker.record_execution(handle, 12.5)
    metrics = tracker.end(handle)   # logs a warning above the threshold
"""

import itertools
import logging
import time
import tracemalloc
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from queryspec.core.config import QuerySettings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class QueryContext:
    method: str
    entity: str
    request_id: str


@dataclass
class PerformanceMetrics:
    """
    Metrics for one tracked operation.

    Attributes:
        query_execution_time: Accumulated record-store time (ms)
        total_execution_time: Wall time from start to end (ms)
        memory_usage: Last memory snapshot (bytes)
        query_count: Record-store calls made
        cache_hits / cache_misses: Cache lookups by outcome
    """
    query_execution_time: float = 0.0
    total_execution_time: float = 0.0
    memory_usage: int = 0
    query_count: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    started_at: float = field(default_factory=time.perf_counter, repr=False)


def current_memory_usage() -> int:
    """Bytes currently traced by tracemalloc (0 when tracing is off)."""
    if not tracemalloc.is_tracing():
        return 0
    current, _peak = tracemalloc.get_traced_memory()
    return current


class PerformanceTracker:

    def __init__(
        self,
        enabled: bool = True,
        threshold_ms: float = 1000,
    ):
        self.enabled = enabled
        self.threshold_ms = threshold_ms
        self._records: Dict[str, PerformanceMetrics] = {}
        self._sequence = itertools.count(1)

    @classmethod
    def from_settings(cls, settings: Optional[QuerySettings] = None) -> "PerformanceTracker":
        settings = settings or get_settings()
        return cls(
            enabled=settings.enable_performance_monitoring,
            threshold_ms=settings.performance_threshold,
        )

    def start(self, context: QueryContext) -> Optional[str]:
        if not self.enabled:
            return None
        handle = (
            f"{context.method}_{context.entity}_{context.request_id}_"
            f"{time.monotonic_ns()}_{next(self._sequence)}"
        )
        self._records[handle] = PerformanceMetrics()
        return handle

    def record_execution(self, handle: Optional[str], elapsed_ms: float) -> None:
        metrics = self._records.get(handle) if handle else None
        if metrics is None:
            return
        metrics.query_execution_time += elapsed_ms
        metrics.query_count += 1

    def record_cache_hit(self, handle: Optional[str]) -> None:
        metrics = self._records.get(handle) if handle else None
        if metrics is not None:
            metrics.cache_hits += 1

    def record_cache_miss(self, handle: Optional[str]) -> None:
        metrics = self._records.get(handle) if handle else None
        if metrics is not None:
            metrics.cache_misses += 1

    def record_memory(self, handle: Optional[str], bytes_used: Optional[int] = None) -> None:
        metrics = self._records.get(handle) if handle else None
        if metrics is not None:
            metrics.memory_usage = bytes_used if bytes_used is not None else current_memory_usage()

    def end(self, handle: Optional[str]) -> Optional[PerformanceMetrics]:
        metrics = self._records.pop(handle, None) if handle else None
        if metrics is None:
            return None

        metrics.total_execution_time = (time.perf_counter() - metrics.started_at) * 1000
        if metrics.total_execution_time > self.threshold_ms:
            logger.warning(
                f"Slow query {handle}: {metrics.total_execution_time:.2f}ms "
                f"(threshold {self.threshold_ms}ms) | {self.format_metrics(metrics)}"
            )
        return metrics

    def get_metrics(self, handle: str) -> Optional[PerformanceMetrics]:
        return self._records.get(handle)

    def active_handles(self) -> List[str]:
        return list(self._records)

    def clear(self) -> None:
        self._records.clear()

    @staticmethod
    def cache_hit_rate(metrics: PerformanceMetrics) -> float:
        lookups = metrics.cache_hits + metrics.cache_misses
        return (metrics.cache_hits / lookups) * 100 if lookups else 0.0

    @classmethod
    def format_metrics(cls, metrics: PerformanceMetrics) -> str:
        return (
            f"query={metrics.query_execution_time:.2f}ms "
            f"total={metrics.total_execution_time:.2f}ms "
            f"queries={metrics.query_count} "
            f"memory={metrics.memory_usage / 1024 / 1024:.2f}MB "
            f"cache_hit_rate={cls.cache_hit_rate(metrics):.1f}%"
        )
