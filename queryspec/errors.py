"""
queryspec - Structured Error Handling

Every failure raised by the query engine carries a stable code so callers
can branch on it and operators can grep for it in logs.

ERROR TAXONOMY:
---------------
- ValidationError   builder input problems, raised before any state changes
- PaginationError   pagination invariants and post-count bound checks
- QueryError        compilation or record-store failures (wraps the cause)

Cache failures are never raised: the cache layer logs them as warnings and
treats the operation as a miss.

ERROR PAYLOAD FORMAT:
---------------------
{
    "error": true,
    "type": "ValidationError",
    "message": "Page must be a positive integer",
    "code": "INVALID_PAGINATION_OPTIONS",
    "field": "page",
    "value": 0,
    "details": {...},
    "timestamp": "2024-01-01T00:00:00+00:00",
    "requestId": "req_5f0c2a9b1d3e"
}
"""

import logging
import traceback
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


# =============================================================================
# ERROR CODES
# =============================================================================

class ErrorCode(str, Enum):
    """Stable error codes for every failure the engine raises."""

    # Filter validation
    INVALID_FILTER_FIELD = "INVALID_FILTER_FIELD"
    INVALID_FILTER_OPERATOR = "INVALID_FILTER_OPERATOR"
    INVALID_FILTER_VALUE = "INVALID_FILTER_VALUE"
    INVALID_FILTER_GROUP_OPERATOR = "INVALID_FILTER_GROUP_OPERATOR"
    INVALID_FILTER_GROUP_CONDITIONS = "INVALID_FILTER_GROUP_CONDITIONS"
    UNSUPPORTED_OPERATOR = "UNSUPPORTED_OPERATOR"

    # Sort validation
    INVALID_SORT_COLUMN = "INVALID_SORT_COLUMN"
    INVALID_SORT_ORDER = "INVALID_SORT_ORDER"
    INVALID_SORT_NULLS = "INVALID_SORT_NULLS"

    # Pagination
    INVALID_PAGINATION_OPTIONS = "INVALID_PAGINATION_OPTIONS"
    CONFLICTING_PAGINATION_MODE = "CONFLICTING_PAGINATION_MODE"
    INVALID_PAGE = "INVALID_PAGE"
    INVALID_PAGE_SIZE = "INVALID_PAGE_SIZE"
    INVALID_OFFSET = "INVALID_OFFSET"

    # Joins
    INVALID_JOIN_TARGET = "INVALID_JOIN_TARGET"
    INVALID_JOIN_ATTRIBUTES = "INVALID_JOIN_ATTRIBUTES"
    INVALID_JOIN_WHERE = "INVALID_JOIN_WHERE"

    # Pass-through options
    INVALID_QUERY_OPTION = "INVALID_QUERY_OPTION"

    # Orchestration
    COMPILATION_FAILED = "COMPILATION_FAILED"
    EXECUTE_FAILED = "EXECUTE_FAILED"
    EXECUTE_WITH_COUNT_FAILED = "EXECUTE_WITH_COUNT_FAILED"

    # Repository pass-through
    FIND_ALL_ERROR = "FIND_ALL_ERROR"
    FIND_ONE_ERROR = "FIND_ONE_ERROR"
    FIND_BY_PK_ERROR = "FIND_BY_PK_ERROR"
    FIND_AND_COUNT_ALL_ERROR = "FIND_AND_COUNT_ALL_ERROR"
    COUNT_ERROR = "COUNT_ERROR"
    EXISTS_ERROR = "EXISTS_ERROR"
    CREATE_ERROR = "CREATE_ERROR"
    BULK_CREATE_ERROR = "BULK_CREATE_ERROR"
    UPDATE_BY_PK_ERROR = "UPDATE_BY_PK_ERROR"
    DESTROY_BY_PK_ERROR = "DESTROY_BY_PK_ERROR"

    # Internal
    INTERNAL = "INTERNAL"


def generate_request_id() -> str:
    """Create a short request id used to correlate log lines."""
    return f"req_{uuid.uuid4().hex[:12]}"


# =============================================================================
# ERROR TYPES
# =============================================================================

@dataclass(eq=False)
class QuerySpecError(Exception):
    """
    Base error with all context needed for debugging.

    Attributes:
        message: Human-readable error message
        code: Stable error code for branching and log searching
        details: Additional context (dict)
        request_id: Request tracing ID
        timestamp: When the error was created (UTC)
    """
    message: str
    code: ErrorCode = ErrorCode.INTERNAL
    details: Dict[str, Any] = field(default_factory=dict)
    request_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    def _extra_fields(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the structured error payload."""
        payload: Dict[str, Any] = {
            "error": True,
            "type": type(self).__name__,
            "message": self.message,
            "code": self.code.value,
        }
        payload.update({k: v for k, v in self._extra_fields().items() if v is not None})
        if self.details:
            payload["details"] = self.details
        payload["timestamp"] = self.timestamp.isoformat()
        if self.request_id:
            payload["requestId"] = self.request_id
        return payload

    def log(self, level: str = "error"):
        """Log the error with context."""
        log_msg = f"[{self.code.value}] {self.message}"
        if self.details:
            log_msg += f" | details={self.details}"
        if self.request_id:
            log_msg += f" | request_id={self.request_id}"

        getattr(logger, level)(log_msg)


@dataclass(eq=False)
class ValidationError(QuerySpecError):
    """Invalid builder input. Raised before the held specification is touched."""
    field: Optional[str] = None
    value: Any = None

    def _extra_fields(self) -> Dict[str, Any]:
        return {"field": self.field, "value": self.value}


@dataclass(eq=False)
class PaginationError(QuerySpecError):
    """Pagination options or bounds are out of range."""
    page: Optional[int] = None
    page_size: Optional[int] = None
    total: Optional[int] = None

    def _extra_fields(self) -> Dict[str, Any]:
        return {"page": self.page, "pageSize": self.page_size, "total": self.total}


@dataclass(eq=False)
class QueryError(QuerySpecError):
    """Compilation or record-store failure, optionally wrapping a cause."""
    cause: Optional[BaseException] = None

    @classmethod
    def from_exception(
        cls,
        exc: BaseException,
        code: ErrorCode,
        message: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> "QueryError":
        """Wrap an arbitrary exception, keeping its type name and traceback."""
        details = {
            "originalError": type(exc).__name__,
            "originalMessage": str(exc),
            "stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        }
        return cls(
            message=message or f"{code.value}: {exc}",
            code=code,
            details=details,
            request_id=request_id,
            cause=exc,
        )


@dataclass(eq=False)
class UnsupportedOperatorError(QueryError):
    """A filter operator has no entry in the operator table."""
    operator: Optional[str] = None


# =============================================================================
# ERROR FACTORY FUNCTIONS
# =============================================================================

def filter_validation_error(
    message: str,
    code: ErrorCode,
    field: Optional[str] = None,
    value: Any = None,
    request_id: Optional[str] = None,
) -> ValidationError:
    """Create a filter validation error."""
    return ValidationError(message=message, code=code, field=field, value=value, request_id=request_id)


def sort_validation_error(
    message: str,
    code: ErrorCode,
    column: Optional[str] = None,
    value: Any = None,
    request_id: Optional[str] = None,
) -> ValidationError:
    """Create a sort validation error."""
    return ValidationError(message=message, code=code, field=column, value=value, request_id=request_id)


def conflicting_pagination_modes(request_id: Optional[str] = None) -> ValidationError:
    """Page-based and offset-based fields were combined."""
    return ValidationError(
        message="Cannot use both page-based and offset-based pagination",
        code=ErrorCode.CONFLICTING_PAGINATION_MODE,
        field="pagination",
        request_id=request_id,
    )


def invalid_page(page: int, total_pages: int, request_id: Optional[str] = None) -> PaginationError:
    """Create an out-of-range page error."""
    return PaginationError(
        message=f"Page {page} is out of range. Valid range: 1-{max(total_pages, 1)}",
        code=ErrorCode.INVALID_PAGE,
        details={"totalPages": total_pages},
        request_id=request_id,
        page=page,
    )


def invalid_page_size(page_size: int, max_page_size: int, request_id: Optional[str] = None) -> PaginationError:
    """Create an out-of-range page size error."""
    return PaginationError(
        message=f"Page size {page_size} is invalid. Valid range: 1-{max_page_size}",
        code=ErrorCode.INVALID_PAGE_SIZE,
        details={"maxPageSize": max_page_size},
        request_id=request_id,
        page_size=page_size,
    )


def invalid_offset(offset: int, total: int, request_id: Optional[str] = None) -> PaginationError:
    """Create an out-of-range offset error."""
    return PaginationError(
        message=f"Offset {offset} is out of range. Valid range: 0-{max(total - 1, 0)}",
        code=ErrorCode.INVALID_OFFSET,
        details={"offset": offset},
        request_id=request_id,
        total=total,
    )


def compilation_failed(errors: List[str], request_id: Optional[str] = None) -> QueryError:
    """Compilers reported errors for the held specification."""
    return QueryError(
        message=f"Query specification failed to compile: {'; '.join(errors)}",
        code=ErrorCode.COMPILATION_FAILED,
        details={"errors": list(errors)},
        request_id=request_id,
    )
