"""Unit tests for the fuzzy matcher functionality."""

import pytest
from hebrew_text_search.core.fuzzy_matcher import FuzzyMatcher


class TestFuzzyMatcher:
    """Test cases for the FuzzyMatcher class."""

    @pytest.fixture
    def matcher(self):
        """Create a fuzzy matcher instance for testing."""
        return FuzzyMatcher(threshold=0.6)

    @pytest.fixture
    def vocabulary(self):
        """Indexed words to suggest from."""
        return ["שלום", "שלומות", "ספר", "ספרים", "alpha", "beta"]

    def test_matcher_initialization(self, matcher):
        """Test fuzzy matcher initialization."""
        assert matcher.threshold == 0.6
        assert matcher.normalizer is not None

    def test_similarity_after_normalization(self, matcher):
        """Pointed and final-form spellings are identical after normalization."""
        similarity, distance = matcher.similarity("שָׁלוֹם", "שלומ")
        assert similarity == 1.0
        assert distance == 0

    def test_similarity_single_edit(self, matcher):
        similarity, distance = matcher.similarity("abc", "abd")
        assert distance == 1
        assert 0.6 < similarity < 0.7

    def test_similarity_empty(self, matcher):
        assert matcher.similarity("", "abc") == (0.0, 3)

    def test_transposition_suggestion(self, matcher, vocabulary):
        """A transposed letter still finds the word."""
        suggestions = matcher.suggest_corrections("שלמו", vocabulary)
        assert "שלום" in suggestions
        assert "ספר" not in suggestions

    def test_exact_match_excluded(self, matcher, vocabulary):
        """A word that would have matched is not suggested."""
        suggestions = matcher.suggest_corrections("שָׁלוֹם", vocabulary)
        assert "שלום" not in suggestions
        assert "שלומות" in suggestions

    def test_max_suggestions(self, matcher):
        candidates = [f"alpha{i}" for i in range(9)]
        assert len(matcher.suggest_corrections("alpha", candidates, max_suggestions=3)) == 3

    def test_threshold(self, vocabulary):
        strict = FuzzyMatcher(threshold=0.9)
        assert strict.suggest_corrections("alphx", vocabulary) == []

    def test_empty_inputs(self, matcher, vocabulary):
        assert matcher.suggest_corrections("", vocabulary) == []
        assert matcher.suggest_corrections("alpha", []) == []

    def test_suggestions_ranked_by_similarity_then_edits(self, matcher):
        """Closest words come first; equally similar words order by edit distance."""
        assert matcher.similarity("abcd", "abce")[0] == matcher.similarity("abcd", "abdc")[0]

        suggestions = matcher.suggest_corrections("abcd", ["abdc", "abce", "abcdx"])
        assert suggestions == ["abcdx", "abce", "abdc"]
