"""Data models for the Hebrew text search engine."""

from .response import (
    HighlightSpan,
    SearchResult,
    SearchResponse,
    SharedQuery,
    SourceRef,
    ErrorResponse,
)
from .request import (
    FilterRules,
    ListCondition,
    NearCondition,
    PatternCondition,
    PositionRule,
    SearchCondition,
    SearchOptions,
    SearchRequest,
    SmartSearchOptions,
    TermCondition,
)

__all__ = [
    "HighlightSpan",
    "SearchResult",
    "SearchResponse",
    "SharedQuery",
    "SourceRef",
    "ErrorResponse",
    "FilterRules",
    "ListCondition",
    "NearCondition",
    "PatternCondition",
    "PositionRule",
    "SearchCondition",
    "SearchOptions",
    "SearchRequest",
    "SmartSearchOptions",
    "TermCondition",
]
