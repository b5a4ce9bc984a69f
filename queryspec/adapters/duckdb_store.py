"""
DuckDB Record Store

Runs QueryPlans against a DuckDB table. Plans are rendered to SQL through
PlanSQLBuilder; values always travel as ``?`` parameters.

Connection modes:
- In-memory (default): Fast, ephemeral
- File-based: Persistent, shareable
- Existing connection: pass ``connection=`` to share one across stores

Queries run on a worker thread through ``asyncio.to_thread`` with a fresh
cursor per call, so the event loop stays free while DuckDB works.

Eager-loading includes is not supported here and is rejected with an
AdapterError before any SQL runs.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

import duckdb
from sqlglot import expressions as exp

from queryspec.adapters.base import AdapterError, RecordStore
from queryspec.adapters.sql_builder import PlanSQLBuilder, SQLBuilderError
from queryspec.domain.query.plan import QueryPlan

logger = logging.getLogger(__name__)


class DuckDBRecordStore(RecordStore):
    """
    Record store over one DuckDB table.

    Example:
        store = DuckDBRecordStore("users", database=":memory:")
        store.execute_script("CREATE TABLE users (id INTEGER, name VARCHAR)")
        rows = await store.find_all(QueryPlan(limit=10))
    """

    ENGINE = "duckdb"

    def __init__(
        self,
        table: str,
        database: str = ":memory:",
        primary_key: str = "id",
        connection: Optional["duckdb.DuckDBPyConnection"] = None,
        read_only: bool = False,
    ):
        super().__init__(table, primary_key)
        self.database = database
        self.sql_builder = PlanSQLBuilder(dialect="duckdb")
        try:
            self._connection = connection or duckdb.connect(database=database, read_only=read_only)
        except Exception as e:
            raise AdapterError(f"Failed to connect to DuckDB: {e}", engine=self.ENGINE, original_error=e)
        self._owns_connection = connection is None
        logger.info(f"DuckDB store ready: {table} ({database if self._owns_connection else 'shared connection'})")

    def close(self) -> None:
        if self._connection is not None and self._owns_connection:
            try:
                self._connection.close()
            except Exception as e:
                logger.warning(f"Error closing DuckDB connection: {e}")
        self._connection = None

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def _run(self, sql: str, params: Optional[List[Any]] = None) -> List[Dict[str, Any]]:
        if self._connection is None:
            raise AdapterError("Not connected to DuckDB", engine=self.ENGINE)

        start_time = time.perf_counter()
        try:
            cursor = self._connection.cursor()
            try:
                cursor.execute(sql, params or [])
                columns = [d[0] for d in cursor.description] if cursor.description else []
                rows = [dict(zip(columns, values)) for values in cursor.fetchall()] if columns else []
            finally:
                cursor.close()
        except Exception as e:
            raise AdapterError(f"DuckDB query failed: {e}", engine=self.ENGINE, original_error=e)

        execution_time = (time.perf_counter() - start_time) * 1000
        logger.debug(f"DuckDB executed in {execution_time:.2f}ms: {sql}")
        return rows

    async def _execute(self, sql: str, params: Optional[List[Any]] = None) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._run, sql, params)

    def execute_script(self, script: str) -> None:
        """Execute statements for setup or seeding."""
        if self._connection is None:
            raise AdapterError("Not connected to DuckDB", engine=self.ENGINE)
        try:
            self._connection.execute(script)
        except Exception as e:
            raise AdapterError(f"DuckDB script execution failed: {e}", engine=self.ENGINE, original_error=e)

    def _render(self, plan: QueryPlan, counting: bool = False) -> Tuple[str, List[Any]]:
        if plan.include:
            raise AdapterError(
                f"DuckDB store '{self.name}' does not support includes",
                engine=self.ENGINE,
            )
        try:
            if counting:
                return self.sql_builder.build_count(self.name, plan)
            return self.sql_builder.build_select(self.name, plan)
        except SQLBuilderError as e:
            raise AdapterError(str(e), engine=self.ENGINE, original_error=e)

    def _quote(self, identifier: str) -> str:
        return exp.to_identifier(identifier, quoted=True).sql(dialect="duckdb")

    def _table_sql(self) -> str:
        return self.sql_builder.table_expression(self.name).sql(dialect="duckdb")

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def find_all(self, plan: QueryPlan) -> List[Dict[str, Any]]:
        sql, params = self._render(plan)
        return await self._execute(sql, params)

    async def count(self, plan: QueryPlan) -> int:
        sql, params = self._render(plan, counting=True)
        rows = await self._execute(sql, params)
        return int(rows[0]["total"]) if rows else 0

    async def find_by_pk(self, pk: Any) -> Optional[Dict[str, Any]]:
        rows = await self._execute(
            f"SELECT * FROM {self._table_sql()} WHERE {self._quote(self.primary_key)} = ? LIMIT 1",
            [pk],
        )
        return rows[0] if rows else None

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def create(self, values: Dict[str, Any]) -> Dict[str, Any]:
        columns = list(values)
        if not columns:
            raise AdapterError("Cannot insert an empty row", engine=self.ENGINE)
        sql = (
            f"INSERT INTO {self._table_sql()} ({', '.join(self._quote(c) for c in columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)}) RETURNING *"
        )
        rows = await self._execute(sql, [values[c] for c in columns])
        return rows[0]

    async def update(self, pk: Any, values: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        changes = {k: v for k, v in values.items() if k != self.primary_key}
        if not changes:
            return await self.find_by_pk(pk)
        assignments = ", ".join(f"{self._quote(c)} = ?" for c in changes)
        sql = (
            f"UPDATE {self._table_sql()} SET {assignments} "
            f"WHERE {self._quote(self.primary_key)} = ? RETURNING *"
        )
        rows = await self._execute(sql, [*changes.values(), pk])
        return rows[0] if rows else None

    async def destroy(self, pk: Any) -> bool:
        sql = f"DELETE FROM {self._table_sql()} WHERE {self._quote(self.primary_key)} = ? RETURNING {self._quote(self.primary_key)}"
        return bool(await self._execute(sql, [pk]))
