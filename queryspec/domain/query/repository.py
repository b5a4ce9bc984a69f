"""
Query Repository

Thin CRUD pass-through over a RecordStore for callers that do not need the
full orchestrator. Store failures surface as QueryError with a stable code per
operation (FIND_ALL_ERROR, CREATE_ERROR, ...).
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from queryspec.adapters.base import RecordStore
from queryspec.domain.query.filters import FilterCompiler
from queryspec.domain.query.plan import QueryPlan, is_empty
from queryspec.domain.query.sorting import SortCompiler
from queryspec.errors import ErrorCode, QueryError, QuerySpecError, compilation_failed, generate_request_id
from queryspec.shared.types.models import ResultEnvelope

logger = logging.getLogger(__name__)


class QueryRepository:

    def __init__(
        self,
        store: RecordStore,
        filter_compiler: Optional[FilterCompiler] = None,
        sort_compiler: Optional[SortCompiler] = None,
        request_id: Optional[str] = None,
    ):
        self.store = store
        self.filter_compiler = filter_compiler or FilterCompiler()
        self.sort_compiler = sort_compiler or SortCompiler()
        self.request_id = request_id or generate_request_id()

    def _plan(
        self,
        where: Any = None,
        order: Any = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        attributes: Optional[List[str]] = None,
    ) -> QueryPlan:
        filters = self.filter_compiler.compile(where)
        sorting = self.sort_compiler.compile(order)
        errors = filters.errors + sorting.errors
        if errors:
            raise compilation_failed(errors, request_id=self.request_id)
        return QueryPlan(
            where=None if is_empty(filters.predicate) else filters.predicate,
            order=sorting.instructions,
            limit=limit,
            offset=offset,
            attributes=attributes,
        )

    async def _call(self, operation: str, code: ErrorCode, action: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await action()
        except QuerySpecError:
            raise
        except Exception as e:
            error = QueryError.from_exception(
                e,
                code,
                message=f"{operation} on '{self.store.name}' failed: {e}",
                request_id=self.request_id,
            )
            error.log()
            raise error from e

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def find_all(self, where: Any = None, order: Any = None, limit: Optional[int] = None,
                       offset: Optional[int] = None, attributes: Optional[List[str]] = None) -> ResultEnvelope:
        async def action():
            plan = self._plan(where, order, limit, offset, attributes)
            return ResultEnvelope(data=await self.store.find_all(plan))
        return await self._call("find_all", ErrorCode.FIND_ALL_ERROR, action)

    async def find_one(self, where: Any = None, order: Any = None,
                       attributes: Optional[List[str]] = None) -> Optional[Dict[str, Any]]:
        async def action():
            rows = await self.store.find_all(self._plan(where, order, limit=1, attributes=attributes))
            return rows[0] if rows else None
        return await self._call("find_one", ErrorCode.FIND_ONE_ERROR, action)

    async def find_by_pk(self, pk: Any) -> Optional[Dict[str, Any]]:
        return await self._call("find_by_pk", ErrorCode.FIND_BY_PK_ERROR, lambda: self.store.find_by_pk(pk))

    async def find_and_count_all(self, where: Any = None, order: Any = None, limit: Optional[int] = None,
                                 offset: Optional[int] = None) -> ResultEnvelope:
        async def action():
            rows, total = await self.store.find_and_count(self._plan(where, order, limit, offset))
            return ResultEnvelope(data=rows, count=total)
        return await self._call("find_and_count_all", ErrorCode.FIND_AND_COUNT_ALL_ERROR, action)

    async def count(self, where: Any = None) -> int:
        async def action():
            return await self.store.count(self._plan(where))
        return await self._call("count", ErrorCode.COUNT_ERROR, action)

    async def exists(self, where: Any = None) -> bool:
        async def action():
            return await self.store.count(self._plan(where)) > 0
        return await self._call("exists", ErrorCode.EXISTS_ERROR, action)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def create(self, values: Dict[str, Any]) -> Dict[str, Any]:
        return await self._call("create", ErrorCode.CREATE_ERROR, lambda: self.store.create(values))

    async def bulk_create(self, records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        async def action():
            return [await self.store.create(values) for values in records]
        return await self._call("bulk_create", ErrorCode.BULK_CREATE_ERROR, action)

    async def update_by_pk(self, pk: Any, values: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await self._call("update_by_pk", ErrorCode.UPDATE_BY_PK_ERROR, lambda: self.store.update(pk, values))

    async def destroy_by_pk(self, pk: Any) -> bool:
        return await self._call("destroy_by_pk", ErrorCode.DESTROY_BY_PK_ERROR, lambda: self.store.destroy(pk))
