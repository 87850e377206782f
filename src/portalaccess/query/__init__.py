"""Filter building and paginated queries against the record store."""

from .executor import PagedQuery, QueryExecutor, QueryPage, QueryRequest, SortOrder
from .filters import (
    DEFAULT_OPERATORS,
    EnumOption,
    FieldMeta,
    FieldType,
    FilterCriteriaBuilder,
    FilterCriterion,
    FilterMeta,
    FilterRequest,
    FilterRow,
    Operator,
    build_filter_request,
    parse_in_values,
)
from .meta import FilterMetaClient

__all__ = [
    "DEFAULT_OPERATORS",
    "EnumOption",
    "FieldMeta",
    "FieldType",
    "FilterCriteriaBuilder",
    "FilterCriterion",
    "FilterMeta",
    "FilterMetaClient",
    "FilterRequest",
    "FilterRow",
    "Operator",
    "PagedQuery",
    "QueryExecutor",
    "QueryPage",
    "QueryRequest",
    "SortOrder",
    "build_filter_request",
    "parse_in_values",
]
