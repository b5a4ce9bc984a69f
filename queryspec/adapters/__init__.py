"""
Record Store Adapters

Backends the orchestrator delegates to.
"""

from queryspec.adapters.base import AdapterError, RecordStore
from queryspec.adapters.duckdb_store import DuckDBRecordStore
from queryspec.adapters.memory_store import InMemoryRecordStore, Relation
from queryspec.adapters.sql_builder import PlanSQLBuilder, SQLBuilderError

__all__ = [
    "AdapterError",
    "RecordStore",
    "DuckDBRecordStore",
    "InMemoryRecordStore",
    "Relation",
    "PlanSQLBuilder",
    "SQLBuilderError",
]
