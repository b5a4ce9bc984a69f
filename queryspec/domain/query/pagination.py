"""
Pagination

Resolves a PaginationSpec into an offset/limit window and builds the
paginated result envelope once a total is known.

MODES:
------
- page-based:   page (default 1), page_size (default settings.default_page_size)
                offset = (page - 1) * page_size, limit = page_size
- offset-based: offset (default 0), limit (default settings.default_page_size)
                page and page_size are derived for the envelope

The two modes never merge: supplying fields from both is an error.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from queryspec.core.config import QuerySettings, get_settings
from queryspec.errors import (
    ErrorCode,
    PaginationError,
    invalid_offset,
    invalid_page,
    invalid_page_size,
)
from queryspec.shared.types.models import PaginationMeta, PaginationSpec, ResultEnvelope

logger = logging.getLogger(__name__)

CONFLICTING_MODES_MESSAGE = "Cannot use both page-based and offset-based pagination"


@dataclass(frozen=True)
class ResolvedPagination:
    offset: int
    limit: int
    page: int
    page_size: int


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class PaginationCalculator:

    def __init__(self, settings: Optional[QuerySettings] = None):
        settings = settings or get_settings()
        self.default_page_size = settings.default_page_size
        self.max_page_size = settings.max_page_size
        self.enable_offset = settings.enable_offset

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    @staticmethod
    def has_conflicting_modes(spec: PaginationSpec) -> bool:
        return spec.is_page_based and spec.is_offset_based

    def validate(self, spec: PaginationSpec) -> List[str]:
        """Return every rule ``spec`` breaks (empty when valid)."""
        errors = []

        if spec.page is not None and (not _is_int(spec.page) or spec.page < 1):
            errors.append("Page must be a positive integer")

        if spec.page_size is not None:
            if not _is_int(spec.page_size) or spec.page_size < 1:
                errors.append("Page size must be a positive integer")
            elif spec.page_size > self.max_page_size:
                errors.append(f"Page size cannot exceed {self.max_page_size}")

        if spec.offset is not None and (not _is_int(spec.offset) or spec.offset < 0):
            errors.append("Offset must be a non-negative integer")

        if spec.limit is not None:
            if not _is_int(spec.limit) or spec.limit < 1:
                errors.append("Limit must be a positive integer")
            elif spec.limit > self.max_page_size:
                errors.append(f"Limit cannot exceed {self.max_page_size}")

        if self.has_conflicting_modes(spec):
            errors.append(CONFLICTING_MODES_MESSAGE)
        elif spec.is_offset_based and not self.enable_offset:
            errors.append("Offset-based pagination is disabled")

        return errors

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    def resolve(self, spec: Optional[PaginationSpec]) -> ResolvedPagination:
        spec = spec or PaginationSpec()
        errors = self.validate(spec)
        if errors:
            raise PaginationError(
                message=f"Invalid pagination options: {', '.join(errors)}",
                code=ErrorCode.INVALID_PAGINATION_OPTIONS,
                details={"errors": errors},
                page=spec.page,
                page_size=spec.page_size,
            )

        if spec.is_offset_based:
            offset = spec.offset if spec.offset is not None else 0
            limit = spec.limit if spec.limit is not None else self.default_page_size
            return ResolvedPagination(offset=offset, limit=limit, page=offset // limit + 1, page_size=limit)

        page = spec.page or 1
        page_size = spec.page_size or self.default_page_size
        return ResolvedPagination(
            offset=self.calculate_offset(page, page_size),
            limit=page_size,
            page=page,
            page_size=page_size,
        )

    @staticmethod
    def calculate_offset(page: int, page_size: int) -> int:
        return (page - 1) * page_size

    @staticmethod
    def calculate_total_pages(total: int, page_size: int) -> int:
        if page_size <= 0:
            return 0
        return math.ceil(total / page_size)

    # -------------------------------------------------------------------------
    # Results
    # -------------------------------------------------------------------------

    def build_meta(self, page: int, page_size: int, total: int) -> PaginationMeta:
        total_pages = self.calculate_total_pages(total, page_size)
        return PaginationMeta(
            page=page,
            page_size=page_size,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )

    def build_result(self, rows: List[Any], total: int, page: int, page_size: int) -> ResultEnvelope:
        return ResultEnvelope(data=list(rows), pagination=self.build_meta(page, page_size, total))

    def get_metadata(self, page: int, page_size: int, total: int) -> Dict[str, Any]:
        """
        Pagination metadata plus the 1-based index range of the page.

        A page with no rows (empty result or past the last page) reports 0/0.
        """
        meta = self.build_meta(page, page_size, total).model_dump()
        start_index = self.calculate_offset(page, page_size) + 1
        if start_index > total:
            meta["start_index"] = meta["end_index"] = 0
        else:
            meta["start_index"] = start_index
            meta["end_index"] = min(start_index + page_size - 1, total)
        return meta

    # -------------------------------------------------------------------------
    # Bound checks (once a total is known)
    # -------------------------------------------------------------------------

    def validate_page(self, page: int, total_pages: int) -> None:
        if page < 1 or (total_pages > 0 and page > total_pages):
            raise invalid_page(page, total_pages)

    def validate_page_size(self, page_size: int) -> None:
        if page_size < 1 or page_size > self.max_page_size:
            raise invalid_page_size(page_size, self.max_page_size)

    def validate_offset(self, offset: int, total: int) -> None:
        if offset < 0 or (total > 0 and offset >= total):
            raise invalid_offset(offset, total)
