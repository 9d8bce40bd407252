"""Inverted index over a corpus snapshot, with persistence and validity tracking."""

import threading
import time
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

import structlog

from ..models.request import ListCondition, NearCondition, PatternCondition, SearchCondition
from .documents import Document, DocumentSource, guarded, read_documents
from .errors import IndexBuildInProgressError
from .normalizer import HebrewNormalizer
from .query import PreparedQuery, QueryEngine, QueryOutcome
from .store import KeyValueStore

logger = structlog.get_logger(__name__)

INDEX_FORMAT_VERSION = 1

ProgressCallback = Callable[[int, int], None]
Postings = List[Tuple[str, List[int]]]


class InvertedIndex:
    """Term to document postings built in one pass over a corpus snapshot.

    Terms are stored in canonical form (no diacritics, standard letterforms,
    lower case), the most permissive normalization any query can ask for.
    The index is read-only once built; a rebuild produces a new instance.
    """

    def __init__(
        self,
        postings: Dict[str, Postings],
        document_meta: Dict[str, Dict[str, Any]],
        built_at: datetime,
        total_term_count: int,
        normalizer: Optional[HebrewNormalizer] = None,
    ) -> None:
        self.postings = postings
        self.document_meta = document_meta
        self.built_at = built_at
        self.total_term_count = total_term_count
        self.normalizer = normalizer or HebrewNormalizer()
        self._order = {
            document_id: meta.get("ordinal", position)
            for position, (document_id, meta) in enumerate(document_meta.items())
        }
        self._containing_cache: Dict[str, Set[str]] = {}
        self._lock = threading.Lock()

    @classmethod
    def build(
        cls,
        documents: Iterable[Document],
        normalizer: Optional[HebrewNormalizer] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> "InvertedIndex":
        """
        Tokenize every document and record its postings.

        Args:
            documents: Corpus snapshot
            normalizer: Normalization pipeline used for tokenization
            on_progress: Called with (processed, total) after each document

        Returns:
            A new InvertedIndex

        Raises:
            CorpusSourceError: If the document source fails
        """
        normalizer = normalizer or HebrewNormalizer()
        snapshot = list(guarded(documents))
        total = len(snapshot)

        positions: Dict[str, Dict[str, List[int]]] = defaultdict(dict)
        document_meta: Dict[str, Dict[str, Any]] = {}
        total_term_count = 0

        for ordinal, document in enumerate(snapshot):
            tokens = normalizer.canonical_tokens(document.text)
            for position, token in enumerate(tokens):
                positions[token].setdefault(document.id, []).append(position)
            total_term_count += len(tokens)
            document_meta[document.id] = {
                "title": document.title,
                "ordinal": ordinal,
                "tokenCount": len(tokens),
                "metadata": dict(document.metadata),
            }
            if on_progress is not None:
                on_progress(ordinal + 1, total)

        postings = {term: list(by_document.items()) for term, by_document in positions.items()}
        return cls(
            postings=postings,
            document_meta=document_meta,
            built_at=datetime.now(timezone.utc),
            total_term_count=total_term_count,
            normalizer=normalizer,
        )

    @property
    def document_count(self) -> int:
        return len(self.document_meta)

    @property
    def unique_words(self) -> int:
        return len(self.postings)

    def age_hours(self, now: Optional[datetime] = None) -> float:
        now = now or datetime.now(timezone.utc)
        return (now - self.built_at).total_seconds() / 3600.0

    def is_valid(self, ttl_hours: float, live_count: Optional[int] = None, now: Optional[datetime] = None) -> bool:
        """
        Check the index against its TTL and the live corpus size.

        Args:
            ttl_hours: Maximum age in hours
            live_count: Live corpus document count, skipped when None
            now: Reference time (defaults to the current time)

        Returns:
            True if the index can answer queries
        """
        if self.age_hours(now) >= ttl_hours:
            return False
        return live_count is None or live_count == self.document_count

    # Lookups

    def vocabulary(self) -> List[str]:
        """All indexed terms."""
        return sorted(self.postings)

    def lookup(self, term: str) -> Postings:
        """
        Get postings for a single word.

        Args:
            term: Word in any surface form

        Returns:
            List of (document id, positions), empty if the word is not indexed
        """
        tokens = self.normalizer.canonical_tokens(term)
        if len(tokens) != 1:
            return []
        return list(self.postings.get(tokens[0], []))

    def phrase_documents(self, tokens: Sequence[str]) -> Set[str]:
        """Documents where the canonical tokens occur consecutively."""
        if not tokens:
            return set()
        first = self.postings.get(tokens[0])
        if not first:
            return set()
        if len(tokens) == 1:
            return {document_id for document_id, _ in first}

        following = []
        for token in tokens[1:]:
            postings = self.postings.get(token)
            if not postings:
                return set()
            following.append(dict(postings))

        found = set()
        for document_id, starts in first:
            rest = [by_document.get(document_id) for by_document in following]
            if any(positions is None for positions in rest):
                continue
            position_sets = [set(positions) for positions in rest]
            if any(
                all(start + offset in position_sets[offset - 1] for offset in range(1, len(tokens)))
                for start in starts
            ):
                found.add(document_id)
        return found

    def containing_documents(self, fragment: str) -> Set[str]:
        """Documents with any indexed word containing a canonical fragment."""
        with self._lock:
            cached = self._containing_cache.get(fragment)
        if cached is not None:
            return cached

        found: Set[str] = set()
        for term, postings in self.postings.items():
            if fragment in term:
                found.update(document_id for document_id, _ in postings)

        with self._lock:
            self._containing_cache[fragment] = found
        return found

    def ordered(self, document_ids: Iterable[str]) -> List[str]:
        """Sort document ids into corpus order."""
        return sorted(
            (document_id for document_id in document_ids if document_id in self._order),
            key=self._order.__getitem__,
        )

    def document_ids(self) -> List[str]:
        return self.ordered(self.document_meta)

    # Candidate selection

    def candidate_documents(self, conditions: Sequence[SearchCondition]) -> Optional[Set[str]]:
        """
        Select documents that may satisfy the conditions.

        The result is a superset of the documents a full scan accepts; conditions
        the index cannot narrow (patterns, regular expressions, negations) leave
        the candidate set unconstrained.

        Args:
            conditions: Prepared conditions in query order

        Returns:
            Candidate document ids, or None when every document is a candidate
        """
        accepted: Optional[Set[str]] = None
        for position, condition in enumerate(conditions):
            documents = self._condition_documents(condition)
            if position == 0:
                accepted = documents
            elif condition.logical_operator == "OR":
                accepted = _union(accepted, documents)
            elif condition.logical_operator == "NOT":
                continue
            else:
                accepted = _intersection(accepted, documents)
        return accepted

    def _condition_documents(self, condition: SearchCondition) -> Optional[Set[str]]:
        if isinstance(condition, PatternCondition):
            return None
        if condition.operator in ("regex", "not_contains"):
            return None

        in_word = condition.search_in_word and not condition.smart_options.whole_word
        if isinstance(condition, NearCondition):
            return _intersection(
                self._term_documents(condition.term, condition, in_word),
                self._term_documents(condition.near.word, condition, in_word),
            )
        if isinstance(condition, ListCondition):
            words = [word for word in condition.list_spec.words if word.strip()]
            combine = _intersection if condition.list_spec.mode == "all" else _union
            documents: Optional[Set[str]] = None
            for number, word in enumerate(words):
                word_documents = self._term_documents(word, condition, in_word)
                documents = word_documents if number == 0 else combine(documents, word_documents)
            return documents
        return self._term_documents(condition.term, condition, in_word)

    def _term_documents(self, term: str, condition: SearchCondition, in_word: bool) -> Optional[Set[str]]:
        found: Set[str] = set()
        for variant in self.normalizer.expand_term(term, condition.smart_options):
            tokens = self.normalizer.canonical_tokens(variant)
            if not tokens:
                return None
            if in_word:
                documents = None
                for token in tokens:
                    documents = _intersection(documents, self.containing_documents(token))
                found |= documents or set()
            else:
                found |= self.phrase_documents(tokens)
        return found

    # Persistence

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the persisted record layout."""
        return {
            "version": INDEX_FORMAT_VERSION,
            "postings": {
                term: [[document_id, positions] for document_id, positions in postings]
                for term, postings in self.postings.items()
            },
            "documentMeta": self.document_meta,
            "builtAt": self.built_at.isoformat(),
            "documentCount": self.document_count,
            "totalTermCount": self.total_term_count,
        }

    def meta_record(self) -> Dict[str, Any]:
        """Lightweight record for validity checks without loading postings."""
        return {
            "documentCount": self.document_count,
            "lastUpdated": self.built_at.isoformat(),
            "totalWords": self.total_term_count,
            "uniqueWords": self.unique_words,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], normalizer: Optional[HebrewNormalizer] = None) -> "InvertedIndex":
        """
        Rebuild an index from its persisted record.

        Raises:
            ValueError: If the record is malformed or from another format version
        """
        if data.get("version") != INDEX_FORMAT_VERSION:
            raise ValueError(f"Unsupported index format version: {data.get('version')!r}")
        try:
            postings = {
                term: [(str(document_id), list(positions)) for document_id, positions in entries]
                for term, entries in data["postings"].items()
            }
            built_at = _parse_timestamp(data["builtAt"])
            return cls(
                postings=postings,
                document_meta=dict(data["documentMeta"]),
                built_at=built_at,
                total_term_count=int(data["totalTermCount"]),
                normalizer=normalizer,
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"Malformed index record: {e}") from e


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _union(a: Optional[Set[str]], b: Optional[Set[str]]) -> Optional[Set[str]]:
    if a is None or b is None:
        return None
    return a | b


def _intersection(a: Optional[Set[str]], b: Optional[Set[str]]) -> Optional[Set[str]]:
    if a is None:
        return b
    if b is None:
        return a
    return a & b


class IndexManager:
    """Owns the current index: builds, persists, reloads, validates and queries it."""

    def __init__(
        self,
        store: KeyValueStore,
        query_engine: Optional[QueryEngine] = None,
        ttl_hours: float = 24.0,
        index_key: str = "main",
        meta_key: str = "indexInfo",
    ) -> None:
        """
        Initialize the index manager.

        Args:
            store: Local key-value store holding the persisted index
            query_engine: Engine used to verify candidates and assemble results
            ttl_hours: Index age after which it is treated as invalid
            index_key: Key of the full index record
            meta_key: Key of the lightweight metadata record
        """
        self.store = store
        self.query_engine = query_engine or QueryEngine()
        self.normalizer = self.query_engine.normalizer
        self.ttl_hours = ttl_hours
        self.index_key = index_key
        self.meta_key = meta_key
        self.staging_key = f"{index_key}:staging"

        self._index: Optional[InvertedIndex] = None
        self._build_lock = threading.Lock()

    @property
    def current(self) -> Optional[InvertedIndex]:
        return self._index

    @property
    def building(self) -> bool:
        return self._build_lock.locked()

    def build(self, source: DocumentSource, on_progress: Optional[ProgressCallback] = None) -> InvertedIndex:
        """
        Build and persist a new index from the source's current snapshot.

        The new index is written under a staging key and swapped in only after
        it is complete; the previous index stays queryable until then.

        Args:
            source: Document source to snapshot
            on_progress: Called with (processed, total) after each document

        Returns:
            The new index

        Raises:
            IndexBuildInProgressError: If another build is running
            CorpusSourceError: If the document source fails
        """
        if not self._build_lock.acquire(blocking=False):
            raise IndexBuildInProgressError()

        try:
            start_time = time.time()
            index = InvertedIndex.build(read_documents(source), self.normalizer, on_progress)
            try:
                self.store.put(self.staging_key, index.to_dict())
                self.store.swap(self.staging_key, self.index_key, {self.meta_key: index.meta_record()})
            except Exception:
                self.store.delete(self.staging_key)
                raise
            self._index = index

            logger.info(
                "Index built",
                documents=index.document_count,
                total_words=index.total_term_count,
                unique_words=index.unique_words,
                build_time_ms=round((time.time() - start_time) * 1000, 2),
            )
            return index
        finally:
            self._build_lock.release()

    def load(self, live_count: Optional[int] = None) -> Optional[InvertedIndex]:
        """
        Reload the persisted index if its metadata says it is still valid.

        Args:
            live_count: Live corpus document count, skipped when None

        Returns:
            The loaded index, or None if absent, stale or unreadable
        """
        meta = self.store.get(self.meta_key)
        if not meta:
            return None

        try:
            built_at = _parse_timestamp(meta["lastUpdated"])
            document_count = int(meta["documentCount"])
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Index metadata unreadable", error=str(e))
            return None

        age_hours = (datetime.now(timezone.utc) - built_at).total_seconds() / 3600.0
        if age_hours >= self.ttl_hours or (live_count is not None and live_count != document_count):
            logger.info("Persisted index is stale", age_hours=round(age_hours, 2), documents=document_count)
            return None

        data = self.store.get(self.index_key)
        if data is None:
            return None
        try:
            index = InvertedIndex.from_dict(data, self.normalizer)
        except ValueError as e:
            logger.warning("Persisted index unreadable", error=str(e))
            return None

        self._index = index
        logger.info("Index loaded", documents=index.document_count, unique_words=index.unique_words)
        return index

    def valid_index(self, live_count: Optional[int] = None) -> Optional[InvertedIndex]:
        """The current index if it is valid for the live corpus, else None."""
        index = self._index
        if index is None or not index.is_valid(self.ttl_hours, live_count):
            return None
        return index

    def invalidate(self) -> None:
        """Drop the current index and its persisted records."""
        self._index = None
        self.store.delete(self.index_key)
        self.store.delete(self.meta_key)
        logger.info("Index invalidated")

    def status(self, live_count: Optional[int] = None) -> Dict[str, Any]:
        """
        Describe the current index.

        Returns:
            Dictionary with existence, validity, age and size figures
        """
        index = self._index
        if index is None:
            return {
                "exists": False,
                "valid": False,
                "building": self.building,
                "ttl_hours": self.ttl_hours,
                "live_document_count": live_count,
            }
        return {
            "exists": True,
            "valid": index.is_valid(self.ttl_hours, live_count),
            "building": self.building,
            "built_at": index.built_at,
            "age_hours": round(index.age_hours(), 4),
            "ttl_hours": self.ttl_hours,
            "document_count": index.document_count,
            "live_document_count": live_count,
            "total_words": index.total_term_count,
            "unique_words": index.unique_words,
        }

    def search(
        self,
        index: InvertedIndex,
        prepared: PreparedQuery,
        source: DocumentSource,
        limit: Optional[int] = None,
        selected_ids: Optional[Sequence[str]] = None,
    ) -> QueryOutcome:
        """
        Answer a prepared query through the index.

        Candidate documents are re-read from the source and verified with the
        same matching logic as a scan, so both paths accept the same segments.

        Args:
            index: A valid index
            prepared: Prepared query
            source: Document source holding the original text
            limit: Maximum number of results
            selected_ids: Restrict the search to these documents

        Returns:
            QueryOutcome with ranked results
        """
        candidates = index.candidate_documents(prepared.conditions)
        if candidates is None:
            document_ids = index.document_ids()
        else:
            document_ids = index.ordered(candidates)
        if selected_ids is not None:
            selected = set(selected_ids)
            document_ids = [document_id for document_id in document_ids if document_id in selected]

        outcome = self.query_engine.search_documents(
            prepared.conditions,
            read_documents(source, document_ids),
            limit=limit,
            prepared=prepared,
        )
        logger.debug(
            "Index query answered",
            candidates=len(document_ids),
            total_documents=index.document_count,
            matches=outcome.total_matches,
        )
        return outcome
