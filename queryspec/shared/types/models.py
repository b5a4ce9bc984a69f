from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, field_validator
from pydantic.alias_generators import to_camel


class FilterOperator(str, Enum):
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    LIKE = "like"
    NOT_LIKE = "not_like"
    ILIKE = "ilike"
    NOT_ILIKE = "not_ilike"
    IN = "in"
    NOT_IN = "not_in"
    BETWEEN = "between"
    NOT_BETWEEN = "not_between"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    CONTAINS = "contains"
    REGEX = "regex"
    NOT_REGEX = "not_regex"


NULL_OPERATORS = frozenset({FilterOperator.IS_NULL, FilterOperator.IS_NOT_NULL})

GroupOperator = Literal["and", "or"]
SortOrder = Literal["asc", "desc"]
NullsPlacement = Literal["first", "last"]


# =============================================================================
# FILTER DESCRIPTORS
# =============================================================================
# Condition vs group is an explicit tag. Plain dicts without "kind" parse as
# conditions.

def _filter_node_kind(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return value.get("kind", "condition")
    return getattr(value, "kind", None)


class FilterCondition(BaseModel):
    kind: Literal["condition"] = "condition"
    field: str
    operator: FilterOperator
    value: Optional[Any] = None
    case_sensitive: Optional[bool] = None


class FilterGroup(BaseModel):
    kind: Literal["group"] = "group"
    operator: GroupOperator = "and"
    conditions: List["FilterNode"] = Field(default_factory=list)


FilterNode = Annotated[
    Union[
        Annotated[FilterCondition, Tag("condition")],
        Annotated[FilterGroup, Tag("group")],
    ],
    Discriminator(_filter_node_kind),
]

FilterInput = Union[FilterNode, List[FilterNode]]

FilterGroup.model_rebuild()


# =============================================================================
# SORT / JOIN / PAGINATION DESCRIPTORS
# =============================================================================

class SortCondition(BaseModel):
    column: str
    order: Optional[SortOrder] = None
    nulls: Optional[NullsPlacement] = None
    case_sensitive: Optional[bool] = None

    @field_validator("order", "nulls", mode="before")
    @classmethod
    def _lowercase(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value


class JoinSpec(BaseModel):
    """
    One relation to eager-load. ``target`` is a relation name or any object
    carrying a ``__name__``/``name``.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    target: Any = None
    alias: Optional[str] = None
    required: bool = False
    attributes: Optional[List[str]] = None
    where: Optional[FilterInput] = None
    nested_joins: List["JoinSpec"] = Field(default_factory=list)


class PaginationSpec(BaseModel):
    page: Optional[int] = None
    page_size: Optional[int] = None
    offset: Optional[int] = None
    limit: Optional[int] = None

    @property
    def is_page_based(self) -> bool:
        return self.page is not None or self.page_size is not None

    @property
    def is_offset_based(self) -> bool:
        return self.offset is not None or self.limit is not None


class QuerySpecification(BaseModel):
    """Everything a caller has declared for one query."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    filters: Optional[FilterInput] = None
    sorting: List[SortCondition] = Field(default_factory=list)
    joins: List[JoinSpec] = Field(default_factory=list)
    pagination: Optional[PaginationSpec] = None

    # Passed through to the plan untouched (except filter inputs, which compile)
    attributes: Optional[List[str]] = None
    where: Optional[FilterInput] = None
    group: Optional[List[str]] = None
    having: Optional[FilterInput] = None
    distinct: Optional[bool] = None
    flags: Dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# RESULT ENVELOPE
# =============================================================================

class _Envelope(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PaginationMeta(_Envelope):
    page: int
    page_size: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class PerformanceSummary(_Envelope):
    execution_time: float
    query_count: int
    cache_hit: bool = False


class ResultEnvelope(_Envelope):
    data: List[Any] = Field(default_factory=list)
    count: Optional[int] = None
    pagination: Optional[PaginationMeta] = None
    performance: Optional[PerformanceSummary] = None
