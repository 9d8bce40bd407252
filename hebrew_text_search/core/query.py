"""Query engine: segmentation, condition composition, filtering, ranking and highlighting."""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Set, Tuple

import structlog

from ..models.request import FilterRules, SearchCondition
from ..models.response import HighlightSpan, SearchResult, SourceRef
from .documents import Document, guarded
from .errors import NoCriteriaError
from .evaluator import ConditionEvaluator, MatchSpan
from .filters import FilterEngine, PreparedFilters
from .normalizer import HebrewNormalizer
from .patterns import PatternLibrary
from .segmenter import Segment, TextSegmenter

logger = structlog.get_logger(__name__)


@dataclass
class PreparedQuery:
    """Conditions and filters validated once for one query."""

    conditions: List[SearchCondition]
    evaluator: ConditionEvaluator
    filters: PreparedFilters
    contributing: int

    @property
    def warnings(self) -> List[str]:
        return self.evaluator.warnings + self.filters.warnings


@dataclass
class QueryOutcome:
    """Ranked results of one query."""

    results: List[SearchResult]
    total_matches: int
    warnings: List[str] = field(default_factory=list)
    documents_scanned: int = 0


def contributes_terms(condition: SearchCondition, first: bool) -> bool:
    """Whether a condition's matches count towards the score and highlights."""
    if condition.operator == "not_contains":
        return False
    return first or condition.logical_operator != "NOT"


def with_unique_ids(conditions: Sequence[SearchCondition]) -> List[SearchCondition]:
    # Evaluator caches are keyed by condition id.
    seen: Set[str] = set()
    unique = []
    for position, condition in enumerate(conditions):
        if condition.id in seen:
            condition = condition.model_copy(update={"id": f"{condition.id}-{position}"})
        seen.add(condition.id)
        unique.append(condition)
    return unique


def merge_spans(spans: Iterable[MatchSpan]) -> List[HighlightSpan]:
    """Merge overlapping spans, labelling each merged span with its longest member."""
    merged: List[HighlightSpan] = []
    best_length = 0
    for span in sorted(spans, key=lambda s: (s.start, -s.end)):
        if merged and span.start < merged[-1].end:
            last = merged[-1]
            term = last.term
            if span.end - span.start > best_length:
                term, best_length = span.term, span.end - span.start
            merged[-1] = HighlightSpan(start=last.start, end=max(last.end, span.end), term=term)
            continue
        merged.append(HighlightSpan(start=span.start, end=span.end, term=span.term))
        best_length = span.end - span.start
    return merged


class QueryEngine:
    """Combines conditions over segments into ranked, highlighted results."""

    def __init__(
        self,
        normalizer: Optional[HebrewNormalizer] = None,
        patterns: Optional[PatternLibrary] = None,
        segmenter: Optional[TextSegmenter] = None,
        context_lines: int = 1,
    ) -> None:
        """
        Initialize the query engine.

        Args:
            normalizer: Normalization pipeline
            patterns: Pattern library
            segmenter: Text segmenter
            context_lines: Neighboring segments attached on each side of a result
        """
        self.normalizer = normalizer or HebrewNormalizer()
        self.patterns = patterns or PatternLibrary()
        self.segmenter = segmenter or TextSegmenter()
        self.filters = FilterEngine(self.normalizer)
        self.context_lines = context_lines

    def segment(self, text: Optional[str]) -> List[Segment]:
        """Split text into searchable segments."""
        return self.segmenter.segment(text)

    def validate_conditions(self, conditions: Sequence[SearchCondition]) -> Tuple[List[SearchCondition], List[str]]:
        """
        Check conditions without searching.

        Returns:
            Tuple of (usable conditions, warnings for skipped ones)

        Raises:
            NoCriteriaError: If no condition carries search criteria
        """
        prepared = self.prepare(conditions)
        return prepared.conditions, prepared.warnings

    def prepare(
        self, conditions: Sequence[SearchCondition], filter_rules: Optional[FilterRules] = None
    ) -> PreparedQuery:
        """
        Validate conditions and filters before any scanning work.

        Args:
            conditions: Query conditions in order
            filter_rules: Optional post-match filters

        Returns:
            PreparedQuery holding the usable conditions

        Raises:
            NoCriteriaError: If no condition carries a term, word list or pattern
        """
        evaluator = ConditionEvaluator(self.normalizer, self.patterns)
        conditions = with_unique_ids(conditions)
        with_criteria = [condition for condition in conditions if evaluator.has_criteria(condition)]
        if not with_criteria:
            raise NoCriteriaError()

        active = [condition for condition in with_criteria if evaluator.prepare(condition)]
        filters = self.filters.prepare(filter_rules)
        contributing = sum(
            1 for position, condition in enumerate(active) if contributes_terms(condition, position == 0)
        )
        return PreparedQuery(
            conditions=active, evaluator=evaluator, filters=filters, contributing=contributing
        )

    def match_segment(self, prepared: PreparedQuery, segment: Segment):
        """
        Evaluate all conditions on one segment.

        Returns:
            Tuple of (matched terms, spans) if the segment is accepted, else None
        """
        if not segment.text or not prepared.conditions:
            return None

        evaluator = prepared.evaluator
        accepted: Optional[bool] = None
        terms: Set[str] = set()
        spans: List[MatchSpan] = []

        for position, condition in enumerate(prepared.conditions):
            result = evaluator.evaluate(condition, segment.text)
            if accepted is None:
                accepted = result.matched
            elif condition.logical_operator == "OR":
                accepted = accepted or result.matched
            elif condition.logical_operator == "NOT":
                accepted = accepted and not result.matched
            else:
                accepted = accepted and result.matched

            if result.matched and contributes_terms(condition, position == 0):
                terms.update(result.matched_terms)
                spans.extend(result.spans)

        if not accepted:
            return None
        if not self.filters.apply(prepared.filters, segment.text, terms):
            return None
        return terms, spans

    def match_document(
        self, prepared: PreparedQuery, text: str, document: Optional[Document] = None
    ) -> List[SearchResult]:
        """
        Match every segment of a text, attaching context and source metadata.

        Args:
            prepared: Prepared query
            text: Full text to search
            document: Source document, None for ad hoc text

        Returns:
            Results in segment order
        """
        segments = self.segment(text)
        results = []
        source_ref = None
        if document is not None:
            source_ref = SourceRef(
                document_id=document.id, title=document.title, metadata=dict(document.metadata)
            )

        for segment in segments:
            match = self.match_segment(prepared, segment)
            if match is None:
                continue
            terms, spans = match
            context_before, context_after = self.segmenter.context(
                segments, segment.index, self.context_lines
            )
            results.append(SearchResult(
                id=f"{document.id if document else 'text'}:{segment.index}",
                text=segment.text,
                segment_index=segment.index,
                line_number=segment.line_number,
                matched_terms=tuple(sorted(terms)),
                score=self._score(terms, prepared.contributing),
                highlight_spans=tuple(merge_spans(spans)),
                context_before=context_before,
                context_after=context_after,
                source_ref=source_ref,
            ))
        return results

    @staticmethod
    def _score(terms: Set[str], contributing: int) -> float:
        if not contributing or not terms:
            return 1.0
        return min(1.0, len(terms) / contributing)

    @staticmethod
    def rank(results: List[SearchResult], limit: Optional[int] = None) -> List[SearchResult]:
        """Sort by score, keeping original order on ties, then apply the limit."""
        ranked = sorted(results, key=lambda result: -result.score)
        if limit is not None:
            ranked = ranked[:limit]
        return ranked

    def search_text(
        self,
        conditions: Sequence[SearchCondition],
        text: str,
        filter_rules: Optional[FilterRules] = None,
        limit: Optional[int] = None,
        prepared: Optional[PreparedQuery] = None,
    ) -> QueryOutcome:
        """
        Search ad hoc text.

        Raises:
            NoCriteriaError: If no condition carries search criteria
        """
        prepared = prepared or self.prepare(conditions, filter_rules)
        results = self.match_document(prepared, text)
        logger.debug("Text searched", matches=len(results))
        return QueryOutcome(
            results=self.rank(results, limit),
            total_matches=len(results),
            warnings=list(prepared.warnings),
        )

    def search_documents(
        self,
        conditions: Sequence[SearchCondition],
        documents: Iterable[Document],
        filter_rules: Optional[FilterRules] = None,
        limit: Optional[int] = None,
        prepared: Optional[PreparedQuery] = None,
    ) -> QueryOutcome:
        """
        Search a sequence of documents synchronously.

        Raises:
            NoCriteriaError: If no condition carries search criteria
            CorpusSourceError: If the document source fails
        """
        prepared = prepared or self.prepare(conditions, filter_rules)
        results: List[SearchResult] = []
        scanned = 0
        for document in guarded(documents):
            scanned += 1
            results.extend(self.match_document(prepared, document.text, document))

        return QueryOutcome(
            results=self.rank(results, limit),
            total_matches=len(results),
            warnings=list(prepared.warnings),
            documents_scanned=scanned,
        )
