"""
Query Orchestrator

Holds one QuerySpecification, compiles it into a QueryPlan and runs it against
a record store through the cache and the performance tracker.

Usage:
    orchestrator = QueryOrchestrator(store, settings=settings)
    envelope = await (
        orchestrator
        .with_filters([FilterCondition(field="age", operator="gte", value=18)])
        .with_sorting([SortCondition(column="created_at", order="desc")])
        .with_pagination(page=2, page_size=20)
        .execute()
    )

EXECUTION ORDER:
----------------
1. start performance tracking
2. cache lookup (hit: return the cached envelope, no store call)
3. compile and merge all fragments into a QueryPlan
4. fetch rows, then (paginated) count them
5. store the envelope in the cache
6. finish tracking and attach the performance summary

Builder methods validate eagerly and raise ValidationError before the held
specification changes. Execution failures always finish tracking first and
surface as one typed error.
"""

import copy
import logging
import time
from contextlib import contextmanager
from typing import Any, Awaitable, Dict, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from queryspec.adapters.base import RecordStore
from queryspec.core.config import QuerySettings, get_settings
from queryspec.domain.query.filters import FieldSchema, FilterCompiler, parse_filter_input, validate_filters
from queryspec.domain.query.joins import JoinTreeBuilder
from queryspec.domain.query.pagination import PaginationCalculator, ResolvedPagination
from queryspec.domain.query.plan import QueryPlan, and_, is_empty
from queryspec.domain.query.sorting import ColumnSchema, SortCompiler, parse_sort_condition, validate_sorting
from queryspec.errors import (
    ErrorCode,
    QueryError,
    QuerySpecError,
    ValidationError,
    compilation_failed,
    conflicting_pagination_modes,
    generate_request_id,
)
from queryspec.infrastructure.cache.manager import CacheLayer
from queryspec.infrastructure.observability.performance import PerformanceTracker, QueryContext
from queryspec.shared.types.models import (
    JoinSpec,
    PaginationSpec,
    PerformanceSummary,
    QuerySpecification,
    ResultEnvelope,
)

logger = logging.getLogger(__name__)

PAGINATION_FIELDS = ("page", "page_size", "offset", "limit")


class QueryOrchestrator:

    def __init__(
        self,
        store: RecordStore,
        settings: Optional[QuerySettings] = None,
        cache: Optional[CacheLayer] = None,
        tracker: Optional[PerformanceTracker] = None,
        field_schemas: Optional[Dict[str, FieldSchema]] = None,
        column_schemas: Optional[Dict[str, ColumnSchema]] = None,
        request_id: Optional[str] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.entity = store.name
        self.request_id = request_id or generate_request_id()

        self.field_schemas = dict(field_schemas or {})
        self.column_schemas = dict(column_schemas or {})
        self.filter_compiler = FilterCompiler(self.field_schemas)
        self.sort_compiler = SortCompiler(self.column_schemas)
        self.pagination = PaginationCalculator(self.settings)
        self.join_builder = JoinTreeBuilder(self.filter_compiler)

        self.cache = cache if cache is not None else CacheLayer.from_settings(self.settings)
        self.tracker = tracker if tracker is not None else PerformanceTracker.from_settings(self.settings)

        self._spec = QuerySpecification()

    @property
    def specification(self) -> QuerySpecification:
        """Copy of the held specification."""
        return self._spec.model_copy(deep=True)

    @property
    def _log_extra(self) -> dict:
        return {"request_id": self.request_id}

    @contextmanager
    def _validating(self):
        try:
            yield
        except QuerySpecError as e:
            if e.request_id is None:
                e.request_id = self.request_id
            raise

    # =========================================================================
    # BUILDER METHODS
    # =========================================================================

    def _parse_filters(self, filters: Any) -> Any:
        parsed = parse_filter_input(filters)
        if self.settings.enable_validation:
            validate_filters(parsed, self.field_schemas)
        return parsed

    def with_filters(self, filters: Any) -> "QueryOrchestrator":
        with self._validating():
            self._spec.filters = self._parse_filters(filters)
        return self

    def with_where(self, filters: Any) -> "QueryOrchestrator":
        """Extra conditions AND-ed with ``with_filters``."""
        with self._validating():
            self._spec.where = self._parse_filters(filters)
        return self

    def with_having(self, filters: Any) -> "QueryOrchestrator":
        with self._validating():
            self._spec.having = self._parse_filters(filters)
        return self

    def with_sorting(self, sorting: Any) -> "QueryOrchestrator":
        with self._validating():
            items = sorting if isinstance(sorting, (list, tuple)) else [sorting]
            parsed = [parse_sort_condition(item) for item in items]
            if self.settings.enable_validation:
                validate_sorting(parsed, self.column_schemas)
            self._spec.sorting = parsed
        return self

    def with_pagination(self, spec: Any = None, **fields) -> "QueryOrchestrator":
        """
        Merge pagination fields onto the held pagination.

        Page-based and offset-based fields never merge: adding offset fields
        to a page-based spec (or the reverse) raises. Use
        ``clear_pagination`` to switch modes.
        """
        with self._validating():
            unknown = set(fields) - set(PAGINATION_FIELDS)
            if unknown:
                raise ValidationError(
                    message=f"Unknown pagination options: {', '.join(sorted(unknown))}",
                    code=ErrorCode.INVALID_PAGINATION_OPTIONS,
                    field="pagination",
                    value=sorted(unknown),
                )

            update = {}
            if spec is not None:
                data = spec.model_dump() if isinstance(spec, PaginationSpec) else dict(spec)
                update.update({k: v for k, v in data.items() if v is not None})
            update.update({k: v for k, v in fields.items() if v is not None})

            current = self._spec.pagination.model_dump(exclude_none=True) if self._spec.pagination else {}
            try:
                merged = PaginationSpec.model_validate({**current, **update})
            except PydanticValidationError as e:
                first = e.errors()[0]
                raise ValidationError(
                    message=f"Invalid pagination options: {first.get('msg')}",
                    code=ErrorCode.INVALID_PAGINATION_OPTIONS,
                    field=".".join(str(p) for p in first.get("loc", ())) or "pagination",
                    value=first.get("input"),
                ) from e

            if self.pagination.has_conflicting_modes(merged):
                raise conflicting_pagination_modes()

            if self.settings.enable_validation:
                errors = self.pagination.validate(merged)
                if errors:
                    raise ValidationError(
                        message=f"Invalid pagination options: {', '.join(errors)}",
                        code=ErrorCode.INVALID_PAGINATION_OPTIONS,
                        field="pagination",
                        value=update,
                        details={"errors": errors},
                    )

            self._spec.pagination = merged
        return self

    def clear_pagination(self) -> "QueryOrchestrator":
        self._spec.pagination = None
        return self

    def with_joins(self, joins: Any) -> "QueryOrchestrator":
        with self._validating():
            items = joins if isinstance(joins, (list, tuple)) else [joins]
            try:
                parsed = [j if isinstance(j, JoinSpec) else JoinSpec.model_validate(j) for j in items]
            except PydanticValidationError as e:
                raise ValidationError(
                    message=f"Invalid join: {e.errors()[0].get('msg')}",
                    code=ErrorCode.INVALID_JOIN_TARGET,
                    field="joins",
                ) from e
            # add_joins raises on a missing target or bad attributes
            JoinTreeBuilder(self.filter_compiler).add_joins(parsed)
            self._spec.joins = parsed
        return self

    def with_attributes(self, attributes: List[str]) -> "QueryOrchestrator":
        with self._validating():
            if not isinstance(attributes, (list, tuple)) or not all(isinstance(a, str) and a for a in attributes):
                raise ValidationError(
                    message="Attributes must be a list of non-empty column names",
                    code=ErrorCode.INVALID_QUERY_OPTION,
                    field="attributes",
                    value=attributes,
                )
            self._spec.attributes = list(attributes)
        return self

    def with_group(self, columns: List[str]) -> "QueryOrchestrator":
        with self._validating():
            if not isinstance(columns, (list, tuple)) or not all(isinstance(c, str) and c for c in columns):
                raise ValidationError(
                    message="Group columns must be a list of non-empty column names",
                    code=ErrorCode.INVALID_QUERY_OPTION,
                    field="group",
                    value=columns,
                )
            self._spec.group = list(columns)
        return self

    def with_distinct(self, distinct: bool = True) -> "QueryOrchestrator":
        self._spec.distinct = bool(distinct)
        return self

    def with_flags(self, **flags) -> "QueryOrchestrator":
        """Backend hints carried on the plan untouched."""
        self._spec.flags.update(flags)
        return self

    def reset(self) -> "QueryOrchestrator":
        self._spec = QuerySpecification()
        self.join_builder.clear()
        return self

    # =========================================================================
    # COMPILATION
    # =========================================================================

    def _compile(self) -> Tuple[QueryPlan, Optional[ResolvedPagination]]:
        spec = self._spec
        filters = self.filter_compiler.compile(spec.filters)
        extra_where = self.filter_compiler.compile(spec.where)
        having = self.filter_compiler.compile(spec.having)
        sorting = self.sort_compiler.compile(spec.sorting)

        errors = filters.errors + extra_where.errors + having.errors + sorting.errors
        warnings = filters.warnings + extra_where.warnings + having.warnings + sorting.warnings
        for warning in warnings:
            logger.warning(f"Query compilation warning for '{self.entity}': {warning}", extra=self._log_extra)
        if errors:
            raise compilation_failed(errors, request_id=self.request_id)

        self.join_builder.clear().add_joins(spec.joins)

        where = and_(filters.predicate, extra_where.predicate)
        plan = QueryPlan(
            where=None if is_empty(where) else where,
            order=list(sorting.instructions),
            include=self.join_builder.build(),
            attributes=list(spec.attributes) if spec.attributes is not None else None,
            group=list(spec.group) if spec.group else None,
            having=None if is_empty(having.predicate) else having.predicate,
            distinct=bool(spec.distinct),
            flags=dict(spec.flags),
        )

        resolved = None
        if spec.pagination is not None:
            resolved = self.pagination.resolve(spec.pagination)
            plan.offset = resolved.offset
            plan.limit = resolved.limit

        return plan, resolved

    def build_plan(self) -> QueryPlan:
        """Compile the held specification. Raises QueryError on compiler errors."""
        plan, _ = self._compile()
        return plan

    # =========================================================================
    # EXECUTION
    # =========================================================================

    async def execute(self) -> ResultEnvelope:
        """Rows for the held specification (paginated when pagination is set)."""
        return await self._run("find_all", with_count=False)

    async def execute_with_count(self) -> ResultEnvelope:
        """Rows plus the total count from a single find-and-count call."""
        return await self._run("find_and_count", with_count=True)

    async def _timed(self, handle: Optional[str], operation: Awaitable[Any]) -> Any:
        start = time.perf_counter()
        result = await operation
        self.tracker.record_execution(handle, (time.perf_counter() - start) * 1000)
        return result

    async def _fetch(self, plan: QueryPlan, resolved: Optional[ResolvedPagination], handle: Optional[str], with_count: bool) -> ResultEnvelope:
        if with_count:
            rows, total = await self._timed(handle, self.store.find_and_count(plan))
            envelope = ResultEnvelope(data=rows, count=total)
            if resolved is not None:
                envelope.pagination = self.pagination.build_meta(resolved.page, resolved.page_size, total)
            return envelope

        rows = await self._timed(handle, self.store.find_all(plan))
        if resolved is None:
            return ResultEnvelope(data=rows)

        total = await self._timed(handle, self.store.count(plan.for_count()))
        return self.pagination.build_result(rows, total, resolved.page, resolved.page_size)

    def _cache_scope(self) -> Dict[str, Any]:
        return {
            "fields": self.field_schemas,
            "columns": self.column_schemas,
            "pageSizes": [self.pagination.default_page_size, self.pagination.max_page_size],
        }

    async def _run(self, method: str, with_count: bool) -> ResultEnvelope:
        handle = self.tracker.start(QueryContext(method, self.entity, self.request_id))
        failure_code = ErrorCode.EXECUTE_WITH_COUNT_FAILED if with_count else ErrorCode.EXECUTE_FAILED

        try:
            key = self.cache.build_query_key(
                self.entity,
                self._spec,
                suffix="count" if with_count else "",
                scope=self._cache_scope(),
            )
            cached = await self.cache.get(key)

            if cached is not None:
                self.tracker.record_cache_hit(handle)
                envelope = ResultEnvelope.model_validate(copy.deepcopy(cached))
                cache_hit = True
            else:
                if self.cache.enabled:
                    self.tracker.record_cache_miss(handle)
                plan, resolved = self._compile()
                if self.settings.enable_query_logging:
                    logger.debug(f"Plan for '{self.entity}': {plan}", extra=self._log_extra)
                envelope = await self._fetch(plan, resolved, handle, with_count)
                await self.cache.set(key, envelope.model_dump())
                cache_hit = False

            self.tracker.record_memory(handle)
        except QuerySpecError as e:
            self.tracker.end(handle)
            if e.request_id is None:
                e.request_id = self.request_id
            e.log("warning")
            raise
        except Exception as e:
            self.tracker.end(handle)
            error = QueryError.from_exception(
                e,
                failure_code,
                message=f"{method} on '{self.entity}' failed: {e}",
                request_id=self.request_id,
            )
            error.log()
            raise error from e

        metrics = self.tracker.end(handle)
        if metrics is not None:
            envelope.performance = PerformanceSummary(
                execution_time=round(metrics.total_execution_time, 3),
                query_count=metrics.query_count,
                cache_hit=cache_hit,
            )

        if self.settings.enable_query_logging:
            logger.info(
                f"{method} '{self.entity}': {len(envelope.data)} rows"
                f"{' (cache hit)' if cache_hit else ''}",
                extra=self._log_extra,
            )
        return envelope
