"""
Tests for pagination resolution and result metadata.
"""

import pytest

from queryspec.core.config import QuerySettings
from queryspec.domain.query.pagination import PaginationCalculator, ResolvedPagination
from queryspec.errors import ErrorCode, PaginationError
from queryspec.shared.types.models import PaginationSpec


@pytest.fixture
def calculator(settings):
    return PaginationCalculator(settings)


class TestResolve:
    """Tests for PaginationCalculator.resolve."""

    def test_page_based(self, calculator):
        """Test page 3 of 20 starts at row 40."""
        resolved = calculator.resolve(PaginationSpec(page=3, page_size=20))
        assert resolved == ResolvedPagination(offset=40, limit=20, page=3, page_size=20)

    def test_defaults(self, calculator):
        """Test no pagination resolves to the first default-sized page."""
        assert calculator.resolve(None) == ResolvedPagination(offset=0, limit=10, page=1, page_size=10)

    def test_page_only_uses_default_size(self, calculator):
        """Test a page without a size uses the default page size."""
        assert calculator.resolve(PaginationSpec(page=2)).offset == 10

    def test_offset_based(self, calculator):
        """Test offset mode derives the envelope page."""
        resolved = calculator.resolve(PaginationSpec(offset=25, limit=10))
        assert resolved == ResolvedPagination(offset=25, limit=10, page=3, page_size=10)

    def test_limit_only(self, calculator):
        """Test a lone limit implies offset zero."""
        resolved = calculator.resolve(PaginationSpec(limit=5))
        assert (resolved.offset, resolved.limit, resolved.page) == (0, 5, 1)

    def test_conflicting_modes(self, calculator):
        """Test combining page and offset fields is rejected."""
        with pytest.raises(PaginationError) as exc_info:
            calculator.resolve(PaginationSpec(page=1, offset=10))
        assert exc_info.value.code == ErrorCode.INVALID_PAGINATION_OPTIONS
        assert "Cannot use both page-based and offset-based pagination" in exc_info.value.details["errors"]

    @pytest.mark.parametrize("spec", [
        PaginationSpec(page=0),
        PaginationSpec(page_size=0),
        PaginationSpec(page_size=101),
        PaginationSpec(offset=-1),
        PaginationSpec(limit=0),
        PaginationSpec(limit=500),
    ])
    def test_out_of_range_values(self, calculator, spec):
        """Test invalid values raise with INVALID_PAGINATION_OPTIONS."""
        with pytest.raises(PaginationError) as exc_info:
            calculator.resolve(spec)
        assert exc_info.value.code == ErrorCode.INVALID_PAGINATION_OPTIONS

    def test_offset_disabled(self):
        """Test offset fields are rejected when offset mode is off."""
        calculator = PaginationCalculator(QuerySettings(_env_file=None, enable_offset=False))
        assert calculator.validate(PaginationSpec(offset=5)) == ["Offset-based pagination is disabled"]
        with pytest.raises(PaginationError):
            calculator.resolve(PaginationSpec(offset=5))

    def test_validate_collects_every_problem(self, calculator):
        """Test validate reports all violations at once."""
        errors = calculator.validate(PaginationSpec(page=0, page_size=1000))
        assert len(errors) == 2


class TestMetadata:
    """Tests for envelope metadata."""

    def test_total_pages_rounds_up(self, calculator):
        """Test partial pages count as a page."""
        assert calculator.calculate_total_pages(41, 20) == 3
        assert calculator.calculate_total_pages(40, 20) == 2
        assert calculator.calculate_total_pages(0, 20) == 0

    def test_build_meta(self, calculator):
        """Test next/prev flags for a middle page."""
        meta = calculator.build_meta(page=2, page_size=20, total=45)
        assert meta.total_pages == 3
        assert meta.has_next is True
        assert meta.has_prev is True

    def test_last_page_has_no_next(self, calculator):
        """Test the final page has no next page."""
        meta = calculator.build_meta(page=3, page_size=20, total=45)
        assert meta.has_next is False

    def test_empty_result(self, calculator):
        """Test an empty total yields zero pages and no navigation."""
        meta = calculator.build_meta(page=1, page_size=10, total=0)
        assert (meta.total_pages, meta.has_next, meta.has_prev) == (0, False, False)

    def test_build_result_serializes_camel_case(self, calculator):
        """Test the envelope serializes with camelCase keys."""
        envelope = calculator.build_result([{"id": 1}], total=1, page=1, page_size=10)
        dumped = envelope.model_dump(by_alias=True, exclude_none=True)
        assert dumped["pagination"]["totalPages"] == 1
        assert dumped["pagination"]["hasNext"] is False
        assert dumped["data"] == [{"id": 1}]

    def test_get_metadata_index_range(self, calculator):
        """Test start and end indexes of a partial last page."""
        meta = calculator.get_metadata(page=3, page_size=20, total=45)
        assert (meta["start_index"], meta["end_index"]) == (41, 45)

    def test_get_metadata_empty(self, calculator):
        """Test index range for an empty result."""
        meta = calculator.get_metadata(page=1, page_size=20, total=0)
        assert (meta["start_index"], meta["end_index"]) == (0, 0)

    def test_get_metadata_past_last_page(self, calculator):
        """Test a page beyond the total reports an empty index range."""
        meta = calculator.get_metadata(page=5, page_size=10, total=12)
        assert (meta["start_index"], meta["end_index"]) == (0, 0)
        assert meta["total_pages"] == 2


class TestBoundChecks:
    """Tests for post-count bound checks."""

    def test_validate_page(self, calculator):
        """Test pages past the end are rejected."""
        calculator.validate_page(2, 3)
        with pytest.raises(PaginationError) as exc_info:
            calculator.validate_page(4, 3)
        assert exc_info.value.code == ErrorCode.INVALID_PAGE
        assert exc_info.value.to_dict()["page"] == 4

    def test_validate_page_size(self, calculator):
        """Test sizes above the maximum are rejected."""
        with pytest.raises(PaginationError) as exc_info:
            calculator.validate_page_size(101)
        assert exc_info.value.code == ErrorCode.INVALID_PAGE_SIZE

    def test_validate_offset(self, calculator):
        """Test offsets past the total are rejected."""
        calculator.validate_offset(0, 0)
        with pytest.raises(PaginationError) as exc_info:
            calculator.validate_offset(10, 10)
        assert exc_info.value.code == ErrorCode.INVALID_OFFSET
