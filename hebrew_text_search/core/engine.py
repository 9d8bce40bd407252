"""Main search engine implementation."""

import time
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Sequence, Union

import structlog

from ..config import Settings, get_settings
from ..models.request import (
    DocumentIn,
    FilterRules,
    ListCondition,
    NearCondition,
    SearchCondition,
    SearchOptions,
    TermCondition,
)
from ..models.response import IndexStatusResponse, SearchResponse, ValidationResponse
from .documents import (
    Document,
    DocumentSource,
    InMemoryDocumentSource,
    count_documents,
    fetch_document,
    read_documents,
)
from .errors import NoCriteriaError, SearchEngineError
from .fuzzy_matcher import FuzzyMatcher
from .index import IndexManager, InvertedIndex, ProgressCallback
from .normalizer import HebrewNormalizer
from .patterns import PatternLibrary
from .query import QueryEngine, QueryOutcome
from .segmenter import TextSegmenter
from .store import KeyValueStore, create_store
from .streaming import StreamEvent, StreamingSearchCoordinator
from .validation import RuleValidator

logger = structlog.get_logger(__name__)


def _empty_stats() -> Dict[str, Any]:
    return {
        "total_queries": 0,
        "index_queries": 0,
        "scan_queries": 0,
        "text_queries": 0,
        "no_criteria_rejections": 0,
        "zero_result_queries": 0,
        "parallel_scans": 0,
        "warnings": 0,
        "total_execution_time": 0.0,
    }


class SearchEngine:
    """Hebrew-aware search engine over a document corpus or ad hoc text.

    Owns the document source, the index manager and the streaming coordinator;
    both the index path and the scan path run the same QueryEngine.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        source: Optional[DocumentSource] = None,
        store: Optional[KeyValueStore] = None,
    ) -> None:
        """
        Initialize the search engine.

        Args:
            settings: Application settings (cached settings when None)
            source: Document source (an empty in-memory source when None)
            store: Key-value store for the persisted index (from settings when None)
        """
        self.settings = settings or get_settings()
        self.normalizer = HebrewNormalizer()
        self.patterns = PatternLibrary()
        self.query_engine = QueryEngine(
            normalizer=self.normalizer,
            patterns=self.patterns,
            segmenter=TextSegmenter(
                max_line_length=self.settings.max_line_length,
                max_segment_length=self.settings.max_segment_length,
                chunk_target_length=self.settings.chunk_target_length,
            ),
            context_lines=self.settings.context_lines,
        )
        self.source = source if source is not None else InMemoryDocumentSource()
        self.store = store if store is not None else create_store(self.settings.index_store_path)
        self.index_manager = IndexManager(
            self.store,
            self.query_engine,
            ttl_hours=self.settings.index_ttl_hours,
            index_key=self.settings.index_key,
            meta_key=self.settings.index_meta_key,
        )
        self.coordinator = StreamingSearchCoordinator(
            self.query_engine,
            batch_size=self.settings.batch_size,
            max_workers=self.settings.parallel_workers,
        )
        self.validator = RuleValidator(self.query_engine)
        self.fuzzy_matcher = FuzzyMatcher(self.settings.fuzzy_threshold, self.normalizer)

        # Performance tracking
        self._stats = _empty_stats()

    # Corpus

    def load_documents(self, documents: Iterable[Union[Document, DocumentIn, Dict[str, Any]]]) -> int:
        """
        Replace the corpus snapshot.

        An existing index stays loaded; it turns invalid if the document count changed.

        Args:
            documents: Documents, document models or plain dictionaries

        Returns:
            Number of documents loaded
        """
        if not isinstance(self.source, InMemoryDocumentSource):
            raise SearchEngineError("The configured document source is read-only")

        snapshot = []
        for document in documents:
            if isinstance(document, dict):
                document = DocumentIn.model_validate(document)
            if isinstance(document, DocumentIn):
                document = Document(
                    id=document.id, text=document.text, title=document.title, metadata=document.metadata
                )
            snapshot.append(document)

        self.source.replace(snapshot)
        logger.info("Documents loaded", documents=len(snapshot))
        return len(snapshot)

    def list_documents(self) -> List[Document]:
        """Documents of the live corpus, in corpus order."""
        return list(read_documents(self.source))

    def get_document(self, document_id: str) -> Optional[Document]:
        """One document of the live corpus, or None."""
        return fetch_document(self.source, document_id)

    def clear_documents(self) -> None:
        """Remove every document from the in-memory corpus."""
        if not isinstance(self.source, InMemoryDocumentSource):
            raise SearchEngineError("The configured document source is read-only")
        self.source.clear()

    # Searching

    def search(
        self,
        conditions: Sequence[SearchCondition],
        filter_rules: Optional[FilterRules] = None,
        options: Optional[SearchOptions] = None,
        text: Optional[str] = None,
    ) -> SearchResponse:
        """
        Run a query over ad hoc text or the corpus.

        The index answers corpus queries when it is valid and allowed by the
        options; otherwise the corpus is scanned in batches.

        Args:
            conditions: Search conditions in order
            filter_rules: Optional post-match filters
            options: Scope, limit and index usage
            text: Ad hoc text; implies the 'text' scope

        Returns:
            SearchResponse with ranked results

        Raises:
            NoCriteriaError: If no condition carries search criteria
            CorpusSourceError: If the document source fails
        """
        start_time = time.time()
        options = options or SearchOptions()
        limit = min(options.limit or self.settings.max_results, self.settings.max_results)
        self._stats["total_queries"] += 1

        try:
            prepared = self.query_engine.prepare(conditions, filter_rules)
        except NoCriteriaError:
            self._stats["no_criteria_rejections"] += 1
            logger.info("Query rejected", reason="no criteria")
            raise

        used_index = False
        complete = True
        if text is not None or options.scope == "text":
            outcome = self.query_engine.search_text(
                prepared.conditions, text or "", limit=limit, prepared=prepared
            )
            self._stats["text_queries"] += 1
        else:
            ids = list(options.selected_ids) if options.scope == "selected" else None
            index = self.index_manager.valid_index(count_documents(self.source)) if options.use_index else None
            if index is not None:
                outcome = self.index_manager.search(index, prepared, self.source, limit, ids)
                used_index = True
                self._stats["index_queries"] += 1
            elif self._use_parallel_scan(ids):
                outcome = self.coordinator.run_parallel(
                    conditions, self.source, filter_rules, limit=limit, ids=ids
                )
                complete = outcome.complete
                self._stats["scan_queries"] += 1
                self._stats["parallel_scans"] += 1
            else:
                outcome = self.coordinator.run(
                    prepared.conditions, self.source, limit=limit, ids=ids, prepared=prepared
                )
                complete = outcome.complete
                self._stats["scan_queries"] += 1

        suggestions = None
        if not outcome.results:
            self._stats["zero_result_queries"] += 1
            suggestions = self._get_suggestions(prepared.conditions) or None

        execution_time = (time.time() - start_time) * 1000
        self._stats["total_execution_time"] += execution_time
        self._stats["warnings"] += len(outcome.warnings)

        logger.info(
            "Search completed",
            scope=options.scope,
            used_index=used_index,
            matches=outcome.total_matches,
            warnings=len(outcome.warnings),
            execution_time_ms=round(execution_time, 2),
        )
        return self._build_response(outcome, used_index, complete, execution_time, suggestions)

    def _use_parallel_scan(self, ids: Optional[Sequence[str]]) -> bool:
        """Large corpora are scanned in worker batches."""
        threshold = self.settings.parallel_scan_threshold
        if threshold <= 0:
            return False
        size = len(ids) if ids is not None else count_documents(self.source)
        return size >= threshold

    @staticmethod
    def _build_response(
        outcome: QueryOutcome,
        used_index: bool,
        complete: bool,
        execution_time: float,
        suggestions: Optional[List[str]],
    ) -> SearchResponse:
        return SearchResponse(
            results=outcome.results,
            total_results=len(outcome.results),
            total_matches=outcome.total_matches,
            warnings=outcome.warnings,
            used_index=used_index,
            complete=complete,
            execution_time_ms=execution_time,
            suggestions=suggestions,
        )

    def stream(
        self,
        conditions: Sequence[SearchCondition],
        filter_rules: Optional[FilterRules] = None,
        options: Optional[SearchOptions] = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Scan the corpus progressively, yielding batch and completion events.

        Conditions are checked before the stream starts. Starting a stream
        supersedes any stream still running.

        Raises:
            NoCriteriaError: If no condition carries search criteria
        """
        options = options or SearchOptions()
        if options.scope == "text":
            raise ValueError("Streaming searches run over the corpus, not ad hoc text")

        self._stats["total_queries"] += 1
        try:
            prepared = self.query_engine.prepare(conditions, filter_rules)
        except NoCriteriaError:
            self._stats["no_criteria_rejections"] += 1
            raise

        self._stats["scan_queries"] += 1
        ids = list(options.selected_ids) if options.scope == "selected" else None
        return self.coordinator.search_async(
            prepared.conditions, self.source, ids=ids, prepared=prepared, generation=self.coordinator.start()
        )

    def cancel_stream(self) -> None:
        """Stop the running stream at its next batch boundary."""
        self.coordinator.cancel()

    def validate(
        self,
        conditions: Sequence[SearchCondition],
        text: str,
        filter_rules: Optional[FilterRules] = None,
    ) -> ValidationResponse:
        """
        Explain how each condition and filter behaves on a text.

        Raises:
            NoCriteriaError: If no condition carries search criteria
        """
        return self.validator.validate(conditions, text, filter_rules)

    # Index

    def build_index(self, on_progress: Optional[ProgressCallback] = None) -> InvertedIndex:
        """
        Build and persist the index over the current corpus.

        Raises:
            IndexBuildInProgressError: If another build is running
            CorpusSourceError: If the document source fails
        """
        return self.index_manager.build(self.source, on_progress)

    def load_index(self) -> bool:
        """Reload the persisted index if it is still valid for the live corpus."""
        return self.index_manager.load(count_documents(self.source)) is not None

    def invalidate_index(self) -> None:
        """Drop the index; queries fall back to scanning."""
        self.index_manager.invalidate()

    def index_status(self) -> IndexStatusResponse:
        """Describe the current index."""
        return IndexStatusResponse(**self.index_manager.status(count_documents(self.source)))

    # Suggestions

    def suggest(self, term: str, max_suggestions: Optional[int] = None) -> List[str]:
        """
        Suggest indexed words close to a term.

        Args:
            term: Query term
            max_suggestions: Maximum number of suggestions

        Returns:
            Suggested words, empty when no index is loaded
        """
        index = self.index_manager.current
        if index is None:
            return []
        return self.fuzzy_matcher.suggest_corrections(
            term, index.vocabulary(), max_suggestions or self.settings.max_suggestions
        )

    def _get_suggestions(self, conditions: Sequence[SearchCondition]) -> List[str]:
        terms: List[str] = []
        for condition in conditions:
            if isinstance(condition, TermCondition) and condition.operator not in ("regex", "not_contains"):
                terms.append(condition.term)
            elif isinstance(condition, NearCondition):
                terms.extend([condition.term, condition.near.word])
            elif isinstance(condition, ListCondition):
                terms.extend(condition.list_spec.words)

        suggestions: List[str] = []
        for term in terms:
            if len(term.split()) != 1:
                continue
            for word in self.suggest(term):
                if word not in suggestions:
                    suggestions.append(word)
        return suggestions[:self.settings.max_suggestions]

    # Statistics

    def get_stats(self) -> Dict[str, Any]:
        """Get engine statistics."""
        stats = self._stats.copy()

        if stats["total_queries"] > 0:
            stats["average_execution_time_ms"] = (
                stats["total_execution_time"] / stats["total_queries"]
            )
        else:
            stats["average_execution_time_ms"] = 0.0

        stats["documents"] = count_documents(self.source)
        index = self.index_manager.current
        stats["index_loaded"] = index is not None
        stats["index_unique_words"] = index.unique_words if index is not None else 0
        return stats

    def clear(self) -> None:
        """Clear the corpus, drop the index and reset statistics."""
        if isinstance(self.source, InMemoryDocumentSource):
            self.source.clear()
        self.index_manager.invalidate()
        self._stats = _empty_stats()
