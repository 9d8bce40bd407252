"""Response models for API endpoints."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .request import FilterRules, SearchCondition


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HighlightSpan(BaseModel):
    """Character span in the original segment text."""

    model_config = ConfigDict(frozen=True)

    start: int = Field(..., ge=0, description="Start offset (inclusive)")
    end: int = Field(..., ge=0, description="End offset (exclusive)")
    term: str = Field(..., description="Term that produced the span")


class SourceRef(BaseModel):
    """Reference to the document a result came from."""

    model_config = ConfigDict(frozen=True)

    document_id: str = Field(..., description="Document identifier")
    title: str = Field(default="", description="Document title")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Document metadata")


class SearchResult(BaseModel):
    """A single matched segment."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Result identifier")
    text: str = Field(..., description="Original segment text")
    segment_index: int = Field(..., ge=0, description="Segment position within its source")
    line_number: int = Field(..., ge=1, description="Line of the source text the segment came from")
    matched_terms: Tuple[str, ...] = Field(default=(), description="Distinct matched terms")
    score: float = Field(..., ge=0.0, le=1.0, description="Matched terms over contributing conditions")
    highlight_spans: Tuple[HighlightSpan, ...] = Field(default=(), description="Spans to highlight")
    context_before: Optional[str] = Field(None, description="Neighboring text before the segment")
    context_after: Optional[str] = Field(None, description="Neighboring text after the segment")
    source_ref: Optional[SourceRef] = Field(None, description="Source document, absent for ad hoc text")


class SearchResponse(BaseModel):
    """Response for search queries."""

    results: List[SearchResult] = Field(..., description="Ranked search results")
    total_results: int = Field(..., description="Number of results returned")
    total_matches: int = Field(..., description="Number of matches before the limit was applied")
    warnings: List[str] = Field(default_factory=list, description="Skipped conditions and rules")
    used_index: bool = Field(..., description="Whether the inverted index served the query")
    complete: bool = Field(default=True, description="False when the scan was cancelled")
    execution_time_ms: float = Field(..., description="Query execution time in milliseconds")
    suggestions: Optional[List[str]] = Field(None, description="Alternative terms if nothing matched")
    timestamp: datetime = Field(default_factory=_utcnow, description="Response timestamp")


class SharedQuery(BaseModel):
    """Decoded shareable query state."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    conditions: List[SearchCondition] = Field(default_factory=list)
    filter_rules: Optional[FilterRules] = Field(default=None, alias="filterRules")
    text: Optional[str] = None


class ShareEncodeResponse(BaseModel):
    """Encoded shareable query."""

    token: str = Field(..., description="Opaque query token")
    query_string: str = Field(..., description="URL query string carrying the token")


class IndexStatusResponse(BaseModel):
    """Inverted index status."""

    exists: bool = Field(..., description="Whether an index is loaded")
    valid: bool = Field(..., description="Whether the index may serve queries")
    building: bool = Field(..., description="Whether a build is running")
    built_at: Optional[datetime] = Field(None, description="Build timestamp")
    age_hours: Optional[float] = Field(None, description="Index age in hours")
    ttl_hours: float = Field(..., description="Configured index lifetime")
    document_count: int = Field(default=0, description="Documents in the index")
    live_document_count: int = Field(default=0, description="Documents in the live corpus")
    total_words: int = Field(default=0, description="Total indexed tokens")
    unique_words: int = Field(default=0, description="Distinct indexed tokens")
    timestamp: datetime = Field(default_factory=_utcnow)


class ConditionDiagnostic(BaseModel):
    """Per-condition validation result."""

    condition_id: str
    operator: str
    term: str = ""
    passed: bool
    match_count: int
    match_positions: List[int] = Field(default_factory=list)
    details: str
    execution_time_ms: float


class FilterDiagnostic(BaseModel):
    """Per-filter validation result."""

    rule_name: str
    passed: bool
    actual: Any
    expected: str


class ValidationResponse(BaseModel):
    """Diagnostics for a query against a text."""

    conditions: List[ConditionDiagnostic]
    filters: List[FilterDiagnostic]
    warnings: List[str] = Field(default_factory=list)
    execution_time_ms: float
    timestamp: datetime = Field(default_factory=_utcnow)


class PatternPresetResponse(BaseModel):
    """A structural pattern preset."""

    id: str
    label: str
    description: str
    expression: str


class PatternListResponse(BaseModel):
    """Preset table with its version."""

    version: str
    presets: List[PatternPresetResponse]


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
    timestamp: datetime = Field(default_factory=_utcnow, description="Error timestamp")
    request_id: Optional[str] = Field(None, description="Request identifier for tracking")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Service status")
    version: str = Field(..., description="Application version")
    uptime: float = Field(..., description="Service uptime in seconds")
    timestamp: datetime = Field(default_factory=_utcnow, description="Check timestamp")
    dependencies: Dict[str, str] = Field(..., description="Dependency status")


class MetricsResponse(BaseModel):
    """Performance metrics response."""

    total_queries: int = Field(..., description="Total queries processed")
    index_queries: int = Field(..., description="Queries served by the inverted index")
    scan_queries: int = Field(..., description="Queries served by scanning")
    no_criteria_rejections: int = Field(..., description="Queries rejected for missing criteria")
    average_response_time_ms: float = Field(..., description="Average response time")
    documents: int = Field(..., description="Documents in the corpus")
    memory_usage_mb: float = Field(..., description="Memory usage in MB")
    timestamp: datetime = Field(default_factory=_utcnow, description="Metrics timestamp")
