"""
Record Store Interface

Every backend the orchestrator can delegate to implements this contract.

DESIGN PRINCIPLES:
-----------------
1. Stores receive a compiled QueryPlan, never raw descriptors
2. Rows are returned as lists of dicts (backend-agnostic)
3. Mutations are keyed by the primary key
4. Backend errors are wrapped in AdapterError
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from queryspec.domain.query.plan import QueryPlan

logger = logging.getLogger(__name__)


class AdapterError(Exception):
    """Base exception for record store errors."""

    def __init__(self, message: str, engine: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.engine = engine
        self.original_error = original_error


class RecordStore(ABC):
    """
    Abstract record store.

    Usage:
        store = InMemoryRecordStore("users", rows)
        rows = await store.find_all(QueryPlan(limit=10))
        rows, total = await store.find_and_count(plan)
    """

    # Engine identifier used in error messages
    ENGINE: str = "base"

    def __init__(self, name: str, primary_key: str = "id"):
        self.name = name
        self.primary_key = primary_key

    @abstractmethod
    async def find_all(self, plan: QueryPlan) -> List[Dict[str, Any]]:
        """Rows matching ``plan`` with ordering, window and projection applied."""

    @abstractmethod
    async def count(self, plan: QueryPlan) -> int:
        """Number of rows matching ``plan`` ignoring the row window."""

    async def find_and_count(self, plan: QueryPlan) -> Tuple[List[Dict[str, Any]], int]:
        """Rows for ``plan`` and the total ignoring the row window."""
        rows = await self.find_all(plan)
        total = await self.count(plan.for_count())
        return rows, total

    @abstractmethod
    async def find_by_pk(self, pk: Any) -> Optional[Dict[str, Any]]:
        """Single row by primary key, or None."""

    @abstractmethod
    async def create(self, values: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a row and return it as stored."""

    @abstractmethod
    async def update(self, pk: Any, values: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Update one row; returns the updated row or None when missing."""

    @abstractmethod
    async def destroy(self, pk: Any) -> bool:
        """Delete one row; returns True when a row was removed."""

    def get_engine_info(self) -> Dict[str, Any]:
        return {"engine": self.ENGINE, "name": self.name, "primary_key": self.primary_key}
