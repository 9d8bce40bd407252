"""Progressive, cancellable scanning of a document set in bounded batches."""

import asyncio
import itertools
import threading
import time
from concurrent.futures import Executor, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Dict, Iterator, List, Optional, Sequence, Union

import structlog
from pydantic import TypeAdapter

from ..models.request import FilterRules, SearchCondition
from ..models.response import SearchResult
from .documents import Document, DocumentSource, count_documents, read_documents
from .query import PreparedQuery, QueryEngine, QueryOutcome
from .segmenter import TextSegmenter

logger = structlog.get_logger(__name__)

_CONDITIONS_ADAPTER = TypeAdapter(List[SearchCondition])


class StreamEventType(str, Enum):
    PROGRESS = "progress"
    COMPLETE = "complete"


@dataclass
class BatchProgressEvent:
    """Emitted after each batch with that batch's results."""

    generation: int
    batch_index: int
    processed: int
    total: int
    percentage: float
    results: List[SearchResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "type": StreamEventType.PROGRESS.value,
            "generation": self.generation,
            "batch_index": self.batch_index,
            "progress": {
                "processed": self.processed,
                "total": self.total,
                "percentage": self.percentage,
            },
            "results": [result.model_dump(mode="json") for result in self.results],
        }


@dataclass
class SearchCompleteEvent:
    """Single summary event closing a scan, whether finished or cancelled."""

    generation: int
    total_found: int
    processed: int
    total: int
    complete: bool
    elapsed_ms: float
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "type": StreamEventType.COMPLETE.value,
            "generation": self.generation,
            "total_found": self.total_found,
            "processed": self.processed,
            "total": self.total,
            "complete": self.complete,
            "elapsed_ms": self.elapsed_ms,
            "warnings": list(self.warnings),
        }


StreamEvent = Union[BatchProgressEvent, SearchCompleteEvent]


@dataclass
class StreamOutcome(QueryOutcome):
    """Ranked scan results, tagged incomplete when a newer search superseded the scan."""

    complete: bool = True


def _percentage(processed: int, total: int) -> float:
    if total <= 0:
        return 100.0
    return round(processed * 100.0 / total, 2)


def _batched(documents: Iterator[Document], size: int) -> Iterator[List[Document]]:
    while True:
        batch = list(itertools.islice(documents, size))
        if not batch:
            return
        yield batch


def _scan_batch(message: Dict[str, Any]) -> Dict[str, Any]:
    """
    Worker entry point: scan one batch described by a plain message.

    The worker rebuilds its own engine from the message, so nothing mutable is
    shared with the supervisor.

    Args:
        message: Conditions, filter rules, segmentation settings and documents

    Returns:
        Message with the batch's serialized results
    """
    settings = message["settings"]
    engine = QueryEngine(
        segmenter=TextSegmenter(
            settings["max_line_length"], settings["max_segment_length"], settings["chunk_target_length"]
        ),
        context_lines=settings["context_lines"],
    )
    conditions = _CONDITIONS_ADAPTER.validate_python(message["conditions"])
    filter_rules = FilterRules.model_validate(message["filter_rules"]) if message["filter_rules"] else None
    prepared = engine.prepare(conditions, filter_rules)

    results = []
    for raw in message["documents"]:
        document = Document(id=raw["id"], text=raw["text"], title=raw["title"], metadata=raw["metadata"])
        results.extend(engine.match_document(prepared, document.text, document))

    return {
        "generation": message["generation"],
        "batch_index": message["batch_index"],
        "processed": len(message["documents"]),
        "results": [result.model_dump(mode="json") for result in results],
    }


class StreamingSearchCoordinator:
    """Scans documents batch by batch, reporting progress and honoring cancellation.

    Each search takes a generation number from a monotonically increasing
    counter. Starting a new search or calling ``cancel`` bumps the counter, and
    a scan stops at the next batch boundary once its generation is stale.
    """

    def __init__(
        self,
        query_engine: Optional[QueryEngine] = None,
        batch_size: int = 50,
        max_workers: int = 2,
    ) -> None:
        """
        Initialize the coordinator.

        Args:
            query_engine: Engine that evaluates each batch
            batch_size: Documents per batch
            max_workers: Worker count for parallel scans
        """
        self.query_engine = query_engine or QueryEngine()
        self.batch_size = max(1, batch_size)
        self.max_workers = max(1, max_workers)
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def generation(self) -> int:
        return self._generation

    def start(self) -> int:
        """Begin a new search generation, superseding any running scan."""
        with self._lock:
            self._generation += 1
            return self._generation

    def cancel(self) -> None:
        """Supersede the running scan without starting a new one."""
        with self._lock:
            self._generation += 1
        logger.info("Streaming search cancelled", generation=self._generation)

    def is_current(self, generation: int) -> bool:
        return generation == self._generation

    def iter_search(
        self,
        conditions: Sequence[SearchCondition],
        source: DocumentSource,
        filter_rules: Optional[FilterRules] = None,
        ids: Optional[Sequence[str]] = None,
        prepared: Optional[PreparedQuery] = None,
        generation: Optional[int] = None,
    ) -> Iterator[StreamEvent]:
        """
        Scan documents in batches.

        Conditions are validated immediately, so a query without criteria fails
        before any document is read.

        Args:
            conditions: Query conditions
            source: Document source
            filter_rules: Optional post-match filters
            ids: Restrict the scan to these documents
            prepared: Already prepared query
            generation: Generation to run under (a new one is started when None)

        Returns:
            Iterator of BatchProgressEvent, closed by one SearchCompleteEvent

        Raises:
            NoCriteriaError: If no condition carries search criteria
        """
        prepared = prepared or self.query_engine.prepare(conditions, filter_rules)
        if generation is None:
            generation = self.start()
        return self._scan(prepared, source, ids, generation)

    def _scan(
        self,
        prepared: PreparedQuery,
        source: DocumentSource,
        ids: Optional[Sequence[str]],
        generation: int,
    ) -> Iterator[StreamEvent]:
        start_time = time.time()
        total = len(ids) if ids is not None else count_documents(source)
        processed = 0
        found = 0
        complete = True

        documents = read_documents(source, ids)
        for batch_index, batch in enumerate(_batched(documents, self.batch_size)):
            if not self.is_current(generation):
                complete = False
                logger.info("Stale scan stopped", generation=generation, processed=processed)
                break

            results: List[SearchResult] = []
            for document in batch:
                results.extend(self.query_engine.match_document(prepared, document.text, document))
            processed += len(batch)
            found += len(results)

            yield BatchProgressEvent(
                generation=generation,
                batch_index=batch_index,
                processed=processed,
                total=max(total, processed),
                percentage=_percentage(processed, max(total, processed)),
                results=results,
            )

        yield SearchCompleteEvent(
            generation=generation,
            total_found=found,
            processed=processed,
            total=max(total, processed),
            complete=complete,
            elapsed_ms=round((time.time() - start_time) * 1000, 2),
            warnings=list(prepared.warnings),
        )

    async def search_async(
        self,
        conditions: Sequence[SearchCondition],
        source: DocumentSource,
        filter_rules: Optional[FilterRules] = None,
        ids: Optional[Sequence[str]] = None,
        prepared: Optional[PreparedQuery] = None,
        generation: Optional[int] = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Asynchronous variant of ``iter_search`` that yields control between batches.

        Raises:
            NoCriteriaError: If no condition carries search criteria
        """
        events = self.iter_search(conditions, source, filter_rules, ids, prepared, generation)
        for event in events:
            yield event
            await asyncio.sleep(0)

    def run(
        self,
        conditions: Sequence[SearchCondition],
        source: DocumentSource,
        filter_rules: Optional[FilterRules] = None,
        limit: Optional[int] = None,
        ids: Optional[Sequence[str]] = None,
        prepared: Optional[PreparedQuery] = None,
    ) -> StreamOutcome:
        """
        Run a batched scan to completion and rank the union of batch results.

        Raises:
            NoCriteriaError: If no condition carries search criteria
            CorpusSourceError: If the document source fails
        """
        results: List[SearchResult] = []
        outcome = StreamOutcome(results=[], total_matches=0)
        for event in self.iter_search(conditions, source, filter_rules, ids, prepared):
            if isinstance(event, BatchProgressEvent):
                results.extend(event.results)
            else:
                outcome = StreamOutcome(
                    results=self.query_engine.rank(results, limit),
                    total_matches=len(results),
                    warnings=event.warnings,
                    documents_scanned=event.processed,
                    complete=event.complete,
                )
        return outcome

    def run_parallel(
        self,
        conditions: Sequence[SearchCondition],
        source: DocumentSource,
        filter_rules: Optional[FilterRules] = None,
        limit: Optional[int] = None,
        ids: Optional[Sequence[str]] = None,
        executor: Optional[Executor] = None,
    ) -> StreamOutcome:
        """
        Scan batches in worker contexts that exchange plain messages with this supervisor.

        Results from a superseded generation are discarded on receipt.

        Args:
            conditions: Query conditions
            source: Document source
            filter_rules: Optional post-match filters
            limit: Maximum number of results
            ids: Restrict the scan to these documents
            executor: Executor to submit batches to (a thread pool when None);
                a process pool works too since messages are plain data

        Returns:
            StreamOutcome with ranked results

        Raises:
            NoCriteriaError: If no condition carries search criteria
            CorpusSourceError: If the document source fails
        """
        prepared = self.query_engine.prepare(conditions, filter_rules)
        generation = self.start()
        if not prepared.conditions:
            return StreamOutcome(results=[], total_matches=0, warnings=list(prepared.warnings))

        message_base = {
            "generation": generation,
            "conditions": [condition.model_dump(mode="json", by_alias=True) for condition in prepared.conditions],
            "filter_rules": filter_rules.model_dump(mode="json") if filter_rules else None,
            "settings": {
                "max_line_length": self.query_engine.segmenter.max_line_length,
                "max_segment_length": self.query_engine.segmenter.max_segment_length,
                "chunk_target_length": self.query_engine.segmenter.chunk_target_length,
                "context_lines": self.query_engine.context_lines,
            },
        }

        owns_executor = executor is None
        executor = executor or ThreadPoolExecutor(max_workers=self.max_workers)
        try:
            futures = []
            documents = read_documents(source, ids)
            for batch_index, batch in enumerate(_batched(documents, self.batch_size)):
                message = dict(message_base, batch_index=batch_index, documents=[
                    {"id": d.id, "text": d.text, "title": d.title, "metadata": dict(d.metadata)}
                    for d in batch
                ])
                futures.append(executor.submit(_scan_batch, message))
            wait(futures)
            replies = [future.result() for future in futures]
        finally:
            if owns_executor:
                executor.shutdown(wait=True)

        complete = True
        processed = 0
        results: List[SearchResult] = []
        for reply in sorted(replies, key=lambda r: r["batch_index"]):
            if reply["generation"] != self._generation:
                complete = False
                continue
            processed += reply["processed"]
            results.extend(SearchResult.model_validate(raw) for raw in reply["results"])

        logger.debug(
            "Parallel scan finished",
            generation=generation,
            batches=len(replies),
            matches=len(results),
            complete=complete,
        )
        return StreamOutcome(
            results=self.query_engine.rank(results, limit),
            total_matches=len(results),
            warnings=list(prepared.warnings),
            documents_scanned=processed,
            complete=complete,
        )
