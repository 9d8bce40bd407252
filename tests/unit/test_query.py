"""Unit tests for the query engine."""

import pytest
from hebrew_text_search.core.documents import Document
from hebrew_text_search.core.errors import NoCriteriaError
from hebrew_text_search.core.evaluator import MatchSpan
from hebrew_text_search.core.query import QueryEngine, merge_spans, with_unique_ids
from hebrew_text_search.models.request import (
    FilterRules,
    ListCondition,
    ListSpec,
    NearCondition,
    NearSpec,
    PatternCondition,
    PatternSpec,
    SmartSearchOptions,
    TermCondition,
)


class TestQueryEngine:
    """Test cases for the QueryEngine class."""

    @pytest.fixture
    def engine(self):
        """Create a query engine for testing."""
        return QueryEngine()

    @pytest.fixture
    def documents(self):
        """Small corpus for document searches."""
        return [
            Document(id="doc1", text="line one\nnothing here\nline three", title="First"),
            Document(id="doc2", text="line one\nunique term here\nline three", title="Second"),
            Document(id="doc3", text="alpha beta\ngamma delta", title="Third", metadata={"year": 1990}),
        ]

    def test_numeral_equivalence_in_text(self, engine):
        """A marked letter numeral in the query matches digits in the text."""
        outcome = engine.search_text([TermCondition(term="chapter ה׳")], "the ruling cites chapter 5")

        assert outcome.total_matches == 1
        result = outcome.results[0]
        assert result.text == "the ruling cites chapter 5"
        assert result.matched_terms == ("chapter ה׳",)
        assert [(span.start, span.end) for span in result.highlight_spans] == [(17, 26)]
        assert result.source_ref is None

    def test_final_letterform_toggle(self, engine):
        """The final-letterform fold decides whether medial and final forms meet."""
        text = "שלום לכם"
        insensitive = engine.search_text([TermCondition(term="שלומ")], text)
        sensitive = engine.search_text(
            [TermCondition(term="שלומ", smart_options=SmartSearchOptions(final_letterform_insensitive=False))],
            text,
        )
        assert insensitive.total_matches == 1
        assert sensitive.total_matches == 0

    def test_or_and_not_composition(self, engine):
        """A OR B NOT C over three segments."""
        conditions = [
            TermCondition(term="alpha"),
            TermCondition(term="beta", logical_operator="OR"),
            TermCondition(term="gamma", logical_operator="NOT"),
        ]
        text = "alpha only\nbeta and gamma\nneither"

        outcome = engine.search_text(conditions, text)

        assert [result.text for result in outcome.results] == ["alpha only"]

    def test_near_distance(self, engine):
        """Three words between the terms satisfy a distance of three."""
        condition = NearCondition(term="alpha", near=NearSpec(word="beta", distance=3))
        assert engine.search_text([condition], "alpha w w w beta").total_matches == 1

        condition = NearCondition(term="alpha", near=NearSpec(word="beta", distance=2))
        assert engine.search_text([condition], "alpha w w w beta").total_matches == 0

    def test_invalid_pattern_is_skipped(self, engine):
        """A malformed custom pattern is reported; the other condition still runs."""
        conditions = [
            PatternCondition(pattern=PatternSpec(custom_expression="([")),
            TermCondition(term="beta", logical_operator="OR"),
        ]

        outcome = engine.search_text(conditions, "alpha beta\ngamma")

        assert [result.text for result in outcome.results] == ["alpha beta"]
        assert len(outcome.warnings) == 1
        assert "Invalid pattern" in outcome.warnings[0]

    def test_all_conditions_invalid(self, engine):
        """Only invalid criteria: no results and warnings, not an error."""
        outcome = engine.search_text(
            [TermCondition(operator="regex", term="([")], "some text"
        )
        assert outcome.results == []
        assert outcome.warnings

    def test_no_criteria_raises(self, engine):
        """Empty terms and lists are rejected before any scanning."""
        with pytest.raises(NoCriteriaError):
            engine.prepare([TermCondition(term=""), ListCondition(list_spec=ListSpec(words=[" "]))])

    def test_empty_conditions_raise(self, engine):
        with pytest.raises(NoCriteriaError):
            engine.search_text([], "some text")

    def test_empty_text(self, engine):
        """Empty text yields no results."""
        assert engine.search_text([TermCondition(term="alpha")], "").results == []

    def test_boolean_fold_matches_left_to_right(self, engine):
        """Evaluation folds conditions left to right without precedence."""
        conditions = [
            TermCondition(term="alpha"),
            TermCondition(term="beta", logical_operator="AND"),
            TermCondition(term="gamma", logical_operator="OR"),
        ]
        text = "alpha beta\nalpha\ngamma"

        outcome = engine.search_text(conditions, text)

        assert [result.text for result in outcome.results] == ["alpha beta", "gamma"]

    def test_first_operator_is_ignored(self, engine):
        """The first condition seeds the fold regardless of its operator."""
        outcome = engine.search_text([TermCondition(term="alpha", logical_operator="NOT")], "alpha\nbeta")
        assert [result.text for result in outcome.results] == ["alpha"]

    def test_list_modes(self, engine):
        """Word lists with any and all."""
        text = "alpha beta\nalpha\nbeta gamma"
        any_outcome = engine.search_text(
            [ListCondition(list_spec=ListSpec(words=["alpha", "beta"], mode="any"))], text
        )
        all_outcome = engine.search_text(
            [ListCondition(list_spec=ListSpec(words=["alpha", "beta"], mode="all"))], text
        )
        assert any_outcome.total_matches == 3
        assert [result.text for result in all_outcome.results] == ["alpha beta"]

    def test_scoring_and_ranking(self, engine):
        """Score is matched terms over contributing conditions; ties keep segment order."""
        conditions = [
            TermCondition(term="alpha"),
            TermCondition(term="beta", logical_operator="OR"),
        ]
        text = "beta\nalpha beta\nalpha"

        outcome = engine.search_text(conditions, text)

        assert [result.text for result in outcome.results] == ["alpha beta", "beta", "alpha"]
        assert [result.score for result in outcome.results] == [1.0, 0.5, 0.5]

    def test_not_terms_do_not_contribute(self, engine):
        """Negated conditions add neither terms nor highlights."""
        conditions = [
            TermCondition(term="alpha"),
            TermCondition(term="gamma", logical_operator="NOT"),
        ]
        outcome = engine.search_text(conditions, "alpha beta")
        result = outcome.results[0]
        assert result.score == 1.0
        assert result.matched_terms == ("alpha",)

    def test_only_negative_condition(self, engine):
        """A lone not_contains has no terms and scores 1.0."""
        outcome = engine.search_text(
            [TermCondition(operator="not_contains", term="alpha")], "alpha\nbeta"
        )
        assert [result.text for result in outcome.results] == ["beta"]
        assert outcome.results[0].score == 1.0
        assert outcome.results[0].highlight_spans == ()

    def test_limit(self, engine):
        """The limit truncates after ranking; total_matches counts everything."""
        outcome = engine.search_text([TermCondition(term="alpha")], "alpha 1\nalpha 2\nalpha 3", limit=2)
        assert len(outcome.results) == 2
        assert outcome.total_matches == 3

    def test_filters_only_reject(self, engine):
        """Adding a filter never adds results."""
        conditions = [TermCondition(term="alpha")]
        text = "alpha\nalpha beta gamma\nalpha 42"

        unfiltered = engine.search_text(conditions, text)
        filtered = engine.search_text(conditions, text, FilterRules(min_words=2))
        tighter = engine.search_text(conditions, text, FilterRules(min_words=2, letters_only=True))

        unfiltered_texts = {result.text for result in unfiltered.results}
        filtered_texts = {result.text for result in filtered.results}
        tighter_texts = {result.text for result in tighter.results}
        assert tighter_texts <= filtered_texts <= unfiltered_texts
        assert tighter_texts == {"alpha beta gamma"}

    def test_context_attached(self, engine):
        """Neighboring segments are attached as context."""
        outcome = engine.search_text([TermCondition(term="unique")], "line one\nunique term here\nline three")
        result = outcome.results[0]
        assert result.context_before == "line one"
        assert result.context_after == "line three"
        assert result.line_number == 2
        assert result.segment_index == 1

    def test_search_documents(self, engine, documents):
        """Results carry their source reference."""
        outcome = engine.search_documents([TermCondition(term="gamma")], documents)

        assert outcome.total_matches == 1
        assert outcome.documents_scanned == 3
        result = outcome.results[0]
        assert result.id == "doc3:1"
        assert result.source_ref.document_id == "doc3"
        assert result.source_ref.title == "Third"
        assert result.source_ref.metadata == {"year": 1990}

    def test_duplicate_condition_ids(self, engine):
        """Conditions sharing an id are evaluated independently."""
        conditions = [
            TermCondition(id="same", term="alpha"),
            TermCondition(id="same", term="beta", logical_operator="AND"),
        ]
        outcome = engine.search_text(conditions, "alpha\nalpha beta")
        assert [result.text for result in outcome.results] == ["alpha beta"]

    def test_validate_conditions(self, engine):
        active, warnings = engine.validate_conditions([
            TermCondition(term="alpha"),
            TermCondition(operator="regex", term="(["),
        ])
        assert [condition.term for condition in active] == ["alpha"]
        assert len(warnings) == 1


class TestHelpers:
    """Test cases for query helpers."""

    def test_with_unique_ids(self):
        conditions = [TermCondition(id="a", term="x"), TermCondition(id="a", term="y"), TermCondition(id="b", term="z")]
        assert [condition.id for condition in with_unique_ids(conditions)] == ["a", "a-1", "b"]

    def test_merge_spans(self):
        """Overlapping spans merge and take the longest member's term."""
        spans = [MatchSpan(0, 3, "ab"), MatchSpan(2, 8, "longer"), MatchSpan(10, 12, "cd")]
        merged = merge_spans(spans)
        assert [(span.start, span.end, span.term) for span in merged] == [(0, 8, "longer"), (10, 12, "cd")]

    def test_merge_adjacent_spans_stay_apart(self):
        merged = merge_spans([MatchSpan(0, 2, "a"), MatchSpan(2, 4, "b")])
        assert len(merged) == 2
