"""Unit tests for the inverted index and its manager."""

from datetime import datetime, timedelta, timezone

import pytest
from hebrew_text_search.core.documents import Document, InMemoryDocumentSource, count_documents, read_documents
from hebrew_text_search.core.errors import CorpusSourceError, IndexBuildInProgressError
from hebrew_text_search.core.index import INDEX_FORMAT_VERSION, IndexManager, InvertedIndex
from hebrew_text_search.core.query import QueryEngine
from hebrew_text_search.core.store import InMemoryKeyValueStore, SQLiteKeyValueStore
from hebrew_text_search.models.request import (
    ListCondition,
    ListSpec,
    NearCondition,
    NearSpec,
    PatternCondition,
    PatternSpec,
    TermCondition,
)


@pytest.fixture
def documents():
    """Small Hebrew and English corpus."""
    return [
        Document(id="d1", text="שָׁלוֹם עֲלֵיכֶם\nalpha x beta", title="Greeting"),
        Document(id="d2", text="line one\nunique term here\nline three", title="Lines"),
        Document(id="d3", text="ספרון חדש\nsee chapter ה׳ there\nדף כג עמוד ב", title="Refs"),
    ]


@pytest.fixture
def source(documents):
    return InMemoryDocumentSource(documents)


class FailingSwapStore(InMemoryKeyValueStore):
    """Store whose atomic swap can be made to fail."""

    def __init__(self):
        super().__init__()
        self.fail = False

    def swap(self, source_key, target_key, extra=None):
        if self.fail:
            raise OSError("disk full")
        super().swap(source_key, target_key, extra)


class BrokenSource(InMemoryDocumentSource):
    """Source that fails after the first document."""

    def iter_documents(self, ids=None):
        for document in list(super().iter_documents(ids))[:1]:
            yield document
        raise OSError("connection reset")


class EagerBrokenSource(InMemoryDocumentSource):
    """Source that fails as soon as it is asked for anything."""

    def iter_documents(self, ids=None):
        raise OSError("connection refused")

    def count(self):
        raise OSError("connection refused")


class TestInvertedIndex:
    """Test cases for the InvertedIndex class."""

    @pytest.fixture
    def index(self, documents):
        """Build an index over the sample corpus."""
        return InvertedIndex.build(documents)

    def test_build(self, index):
        assert index.document_count == 3
        assert index.unique_words == len(index.vocabulary())
        assert index.total_term_count > 0
        assert index.document_meta["d2"]["title"] == "Lines"
        assert index.document_meta["d2"]["ordinal"] == 1

    def test_build_reports_progress(self, documents):
        calls = []
        InvertedIndex.build(documents, on_progress=lambda processed, total: calls.append((processed, total)))
        assert calls == [(1, 3), (2, 3), (3, 3)]

    def test_lookup_normalizes_the_word(self, index):
        """Pointed and final-form spellings find the canonical term."""
        assert index.lookup("שָׁלוֹם") == [("d1", [0])]
        assert index.lookup("שלומ") == [("d1", [0])]
        assert index.lookup("UNIQUE") == [("d2", [2])]

    def test_lookup_missing_or_multiword(self, index):
        assert index.lookup("absent") == []
        assert index.lookup("two words") == []

    def test_phrase_documents(self, index):
        assert index.phrase_documents(["unique", "term"]) == {"d2"}
        assert index.phrase_documents(["term", "unique"]) == set()
        assert index.phrase_documents([]) == set()

    def test_containing_documents(self, index):
        assert index.containing_documents("ספר") == {"d3"}
        assert index.containing_documents("nique") == {"d2"}

    def test_candidates_for_single_term(self, index):
        """A term present only in one document selects only that document."""
        assert index.candidate_documents([TermCondition(term="unique")]) == {"d2"}

    def test_candidates_boolean_fold(self, index):
        or_conditions = [TermCondition(term="unique"), TermCondition(term="alpha", logical_operator="OR")]
        not_conditions = [TermCondition(term="unique"), TermCondition(term="line", logical_operator="NOT")]
        assert index.candidate_documents(or_conditions) == {"d1", "d2"}
        assert index.candidate_documents(not_conditions) == {"d2"}

    def test_candidates_unconstrained_conditions(self, index):
        """Patterns, regular expressions and negations cannot narrow the candidates."""
        assert index.candidate_documents([PatternCondition(pattern=PatternSpec(preset_id="daf-amud"))]) is None
        assert index.candidate_documents([TermCondition(operator="regex", term="a+")]) is None
        assert index.candidate_documents([TermCondition(operator="not_contains", term="alpha")]) is None
        pattern_and_term = [
            PatternCondition(pattern=PatternSpec(preset_id="daf-amud")),
            TermCondition(term="unique", logical_operator="AND"),
        ]
        assert index.candidate_documents(pattern_and_term) == {"d2"}

    def test_candidates_in_word(self, index):
        assert index.candidate_documents([TermCondition(term="ספר", search_in_word=True)]) == {"d3"}
        assert index.candidate_documents([TermCondition(term="ספר")]) == set()

    def test_candidates_near_and_list(self, index):
        near = NearCondition(term="alpha", near=NearSpec(word="beta", distance=2))
        all_words = ListCondition(list_spec=ListSpec(words=["unique", "alpha"], mode="all"))
        any_words = ListCondition(list_spec=ListSpec(words=["unique", "alpha"], mode="any"))
        assert index.candidate_documents([near]) == {"d1"}
        assert index.candidate_documents([all_words]) == set()
        assert index.candidate_documents([any_words]) == {"d1", "d2"}

    def test_candidates_numeral_variants(self, index):
        """Digits in the query reach documents written with letter numerals."""
        assert index.candidate_documents([TermCondition(term="chapter 5")]) == {"d3"}

    def test_validity(self, index):
        """TTL and live document count both decide validity."""
        assert index.is_valid(24.0, live_count=3)
        assert not index.is_valid(24.0, live_count=4)
        later = index.built_at + timedelta(hours=25)
        assert not index.is_valid(24.0, live_count=3, now=later)

    def test_persisted_layout_round_trip(self, index):
        data = index.to_dict()
        assert data["version"] == INDEX_FORMAT_VERSION
        assert data["documentCount"] == 3
        assert set(data) == {"version", "postings", "documentMeta", "builtAt", "documentCount", "totalTermCount"}

        restored = InvertedIndex.from_dict(data)
        assert restored.postings == index.postings
        assert restored.built_at == index.built_at
        assert restored.document_ids() == ["d1", "d2", "d3"]

    def test_meta_record(self, index):
        meta = index.meta_record()
        assert meta["documentCount"] == 3
        assert meta["uniqueWords"] == index.unique_words
        assert meta["totalWords"] == index.total_term_count

    def test_from_dict_rejects_other_versions(self, index):
        data = index.to_dict()
        data["version"] = INDEX_FORMAT_VERSION + 1
        with pytest.raises(ValueError):
            InvertedIndex.from_dict(data)

    def test_from_dict_rejects_malformed_records(self):
        with pytest.raises(ValueError):
            InvertedIndex.from_dict({"version": INDEX_FORMAT_VERSION, "postings": {}})


class TestIndexManager:
    """Test cases for the IndexManager class."""

    @pytest.fixture
    def store(self):
        return InMemoryKeyValueStore()

    @pytest.fixture
    def manager(self, store):
        """Create an index manager for testing."""
        return IndexManager(store, QueryEngine())

    def test_status_without_index(self, manager):
        status = manager.status(3)
        assert status["exists"] is False
        assert status["valid"] is False
        assert status["building"] is False
        assert status["live_document_count"] == 3

    def test_build_persists(self, manager, store, source):
        index = manager.build(source)

        assert manager.current is index
        assert store.get("main")["documentCount"] == 3
        assert store.get("indexInfo")["documentCount"] == 3
        assert store.get("main:staging") is None

        status = manager.status(3)
        assert status["exists"] and status["valid"]
        assert status["document_count"] == 3
        assert status["unique_words"] == index.unique_words

    def test_search_uses_candidates(self, manager, source):
        """A query served by the index returns the matching segment with its context."""
        index = manager.build(source)
        engine = manager.query_engine
        prepared = engine.prepare([TermCondition(term="unique")])

        outcome = manager.search(index, prepared, source)

        assert outcome.total_matches == 1
        assert outcome.documents_scanned == 1
        result = outcome.results[0]
        assert result.source_ref.document_id == "d2"
        assert result.text == "unique term here"
        assert result.context_before == "line one"
        assert result.context_after == "line three"

    def test_search_selected_ids(self, manager, source):
        index = manager.build(source)
        prepared = manager.query_engine.prepare([TermCondition(term="line")])
        assert manager.search(index, prepared, source, selected_ids=["d1"]).results == []
        assert manager.search(index, prepared, source, selected_ids=["d2"]).total_matches == 2

    @pytest.mark.parametrize("conditions", [
        [TermCondition(term="שלום")],
        [TermCondition(term="ספר", search_in_word=True)],
        [TermCondition(term="chapter 5")],
        [NearCondition(term="alpha", near=NearSpec(word="beta", distance=1))],
        [ListCondition(list_spec=ListSpec(words=["unique", "alpha"], mode="any"))],
        [PatternCondition(pattern=PatternSpec(preset_id="daf-amud"))],
        [TermCondition(operator="not_contains", term="line")],
        [
            TermCondition(term="line"),
            TermCondition(term="alpha", logical_operator="OR"),
            TermCondition(term="three", logical_operator="NOT"),
        ],
    ])
    def test_index_and_scan_agree(self, manager, source, conditions):
        """The index path and a full scan accept the same segments."""
        index = manager.build(source)
        engine = manager.query_engine

        indexed = manager.search(index, engine.prepare(conditions), source)
        scanned = engine.search_documents(conditions, source.iter_documents())

        assert [result.id for result in indexed.results] == [result.id for result in scanned.results]
        assert [result.score for result in indexed.results] == [result.score for result in scanned.results]

    @pytest.mark.parametrize("term", ["abc", "def"])
    def test_index_and_scan_agree_on_quote_runs(self, manager, term):
        """Words joined by a run of quote marks are one token to both paths."""
        source = InMemoryDocumentSource([
            Document(id="d1", text="abc''def here"),
            Document(id="d2", text="nothing"),
            Document(id="d3", text="say ''def now"),
            Document(id="d4", text="abc'' end"),
        ])
        index = manager.build(source)
        engine = manager.query_engine
        conditions = [TermCondition(term=term)]

        indexed = manager.search(index, engine.prepare(conditions), source)
        scanned = engine.search_documents(conditions, source.iter_documents())

        assert [result.id for result in indexed.results] == [result.id for result in scanned.results]
        if term == "abc":
            assert [result.source_ref.document_id for result in scanned.results] == ["d4"]

    def test_search_with_failing_source(self, manager, source, documents):
        index = manager.build(source)
        prepared = manager.query_engine.prepare([TermCondition(term="line")])

        with pytest.raises(CorpusSourceError):
            manager.search(index, prepared, EagerBrokenSource(documents))

    def test_failed_swap_keeps_previous_index(self, source):
        """A build that cannot be persisted leaves the old index in place."""
        store = FailingSwapStore()
        manager = IndexManager(store)
        first = manager.build(source)

        source.add(Document(id="d4", text="another document"))
        store.fail = True
        with pytest.raises(OSError):
            manager.build(source)

        assert manager.current is first
        assert store.get("main")["documentCount"] == 3
        assert store.get("indexInfo")["documentCount"] == 3
        assert store.get("main:staging") is None

    def test_failed_source_keeps_previous_index(self, manager, source, documents):
        first = manager.build(source)

        with pytest.raises(CorpusSourceError):
            manager.build(BrokenSource(documents))

        assert manager.current is first
        assert not manager.building

    def test_source_failing_before_first_document(self, manager, source, documents):
        first = manager.build(source)

        with pytest.raises(CorpusSourceError):
            manager.build(EagerBrokenSource(documents))

        assert manager.current is first
        assert not manager.building

    def test_concurrent_build_rejected(self, manager, source):
        """Only one build runs at a time."""
        rejected = []

        def on_progress(processed, total):
            if processed == 1:
                try:
                    manager.build(source)
                except IndexBuildInProgressError as e:
                    rejected.append(e)

        manager.build(source, on_progress)

        assert len(rejected) == 1
        assert not manager.building

    def test_valid_index(self, manager, source):
        manager.build(source)
        assert manager.valid_index(3) is manager.current
        assert manager.valid_index(4) is None

    def test_expired_index_is_invalid(self, store, source):
        manager = IndexManager(store, ttl_hours=0)
        manager.build(source)
        assert manager.valid_index(3) is None
        assert manager.status(3)["valid"] is False

    def test_invalidate(self, manager, store, source):
        manager.build(source)
        manager.invalidate()
        assert manager.current is None
        assert store.get("main") is None
        assert store.get("indexInfo") is None

    def test_reload_from_sqlite(self, tmp_path, source):
        """A persisted index is reloaded by a fresh manager."""
        path = str(tmp_path / "index.db")
        store = SQLiteKeyValueStore(path)
        built = IndexManager(store).build(source)
        store.close()

        reopened = SQLiteKeyValueStore(path)
        try:
            manager = IndexManager(reopened)
            loaded = manager.load(live_count=3)
            assert loaded is not None
            assert manager.current is loaded
            assert loaded.postings == built.postings
            assert loaded.lookup("unique") == [("d2", [2])]
        finally:
            reopened.close()

    def test_load_rejects_count_mismatch(self, manager, store, source):
        manager.build(source)
        fresh = IndexManager(store)
        assert fresh.load(live_count=5) is None
        assert fresh.current is None

    def test_load_rejects_expired_metadata(self, manager, store, source):
        manager.build(source)
        stale = datetime.now(timezone.utc) - timedelta(hours=48)
        store.put("indexInfo", {"documentCount": 3, "lastUpdated": stale.isoformat()})
        assert IndexManager(store).load(live_count=3) is None

    def test_load_rejects_unreadable_index(self, manager, store, source):
        manager.build(source)
        store.put("main", {"version": 99})
        assert IndexManager(store).load(live_count=3) is None

    def test_load_without_records(self, manager):
        assert manager.load() is None


class TestSourceReads:
    """Reads through the document source wrappers."""

    def test_failures_become_corpus_errors(self, documents):
        source = EagerBrokenSource(documents)

        with pytest.raises(CorpusSourceError) as excinfo:
            count_documents(source)
        assert isinstance(excinfo.value.__cause__, OSError)

        with pytest.raises(CorpusSourceError):
            read_documents(source)

    def test_passes_documents_through(self, source):
        assert count_documents(source) == 3
        assert [document.id for document in read_documents(source, ["d3", "d1"])] == ["d3", "d1"]
