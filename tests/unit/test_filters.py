"""Unit tests for post-match filter rules."""

import pytest
from hebrew_text_search.core.filters import FilterEngine
from hebrew_text_search.models.request import FilterRules, PositionRule


class TestFilterEngine:
    """Test cases for the FilterEngine class."""

    @pytest.fixture
    def filters(self):
        """Create a filter engine for testing."""
        return FilterEngine()

    def _passes(self, filters, rules, text, terms=()):
        return filters.apply(filters.prepare(rules), text, terms)

    def test_no_rules(self, filters):
        """Without rules every segment passes."""
        prepared = filters.prepare(None)
        assert not prepared.active
        assert filters.apply(prepared, "anything")

    def test_word_bounds(self, filters):
        rules = FilterRules(min_words=2, max_words=3)
        assert not self._passes(filters, rules, "one")
        assert self._passes(filters, rules, "one two")
        assert not self._passes(filters, rules, "one two three four")

    def test_char_bounds_from_strings(self, filters):
        """Numeric fields accept raw string input."""
        rules = FilterRules(min_chars="3", max_chars="5")
        assert not self._passes(filters, rules, "ab")
        assert self._passes(filters, rules, "abcd")
        assert not self._passes(filters, rules, "abcdef")

    def test_invalid_bound_is_skipped(self, filters):
        """A malformed bound is dropped with a warning; the other rules still apply."""
        prepared = filters.prepare(FilterRules(min_words="many", max_words=1))
        assert prepared.bounds.min_words is None
        assert prepared.bounds.max_words == 1
        assert len(prepared.warnings) == 1
        assert not filters.apply(prepared, "one two")

    def test_must_contain(self, filters):
        rules = FilterRules(must_contain=["דף"], must_not_contain="עמוד")
        assert self._passes(filters, rules, "דף כג")
        assert not self._passes(filters, rules, "דף כג עמוד ב")
        assert not self._passes(filters, rules, "פרק ג")

    def test_numbers(self, filters):
        assert self._passes(filters, FilterRules(must_contain_numbers=True), "page 12")
        assert not self._passes(filters, FilterRules(must_contain_numbers=True), "page twelve")
        assert self._passes(filters, FilterRules(letters_only=True), "page twelve")
        assert not self._passes(filters, FilterRules(letters_only=True), "page 12")

    def test_relative_rule_order(self, filters):
        rules = FilterRules(position_rules=[
            PositionRule(kind="relative", word="alpha", other_word="beta", order="before", max_distance=1)
        ])
        assert self._passes(filters, rules, "alpha x beta")
        assert not self._passes(filters, rules, "alpha x y beta")
        assert not self._passes(filters, rules, "beta x alpha")

    def test_relative_rule_after(self, filters):
        rules = FilterRules(position_rules=[
            PositionRule(kind="relative", word="alpha", other_word="beta", order="after")
        ])
        assert self._passes(filters, rules, "beta x y z alpha")
        assert not self._passes(filters, rules, "alpha beta")

    def test_relative_rule_needs_two_words(self, filters):
        prepared = filters.prepare(FilterRules(position_rules=[PositionRule(kind="relative", word="alpha")]))
        assert prepared.position_rules == ()
        assert "relative rules need two words" in prepared.warnings[0]

    def test_line_position_start(self, filters):
        rules = FilterRules(position_rules=[
            PositionRule(kind="line_position", word="alpha", position="start", within_words=2)
        ])
        assert self._passes(filters, rules, "x alpha y z w")
        assert not self._passes(filters, rules, "x y z alpha w")

    def test_line_position_end_percentage(self, filters):
        rules = FilterRules(position_rules=[
            PositionRule(kind="line_position", word="alpha", position="end", percentage=20)
        ])
        assert self._passes(filters, rules, "a b c d e f g h i alpha")
        assert not self._passes(filters, rules, "alpha b c d e f g h i j")

    def test_line_position_falls_back_to_matched_term(self, filters):
        """Without a word the rule checks the first matched term."""
        rules = FilterRules(position_rules=[
            PositionRule(kind="line_position", position="start", within_words=1)
        ])
        assert self._passes(filters, rules, "alpha b c", terms=["alpha"])
        assert not self._passes(filters, rules, "b c alpha", terms=["alpha"])

    def test_line_position_needs_window(self, filters):
        prepared = filters.prepare(FilterRules(position_rules=[
            PositionRule(kind="line_position", word="alpha")
        ]))
        assert prepared.position_rules == ()
        assert prepared.warnings

    def test_invalid_position_number(self, filters):
        prepared = filters.prepare(FilterRules(position_rules=[
            PositionRule(kind="line_position", word="alpha", within_words="x")
        ]))
        assert prepared.position_rules == ()
        assert prepared.warnings[0].startswith("Position rule 1 skipped")

    def test_single_string_coerced_to_list(self):
        assert FilterRules(must_contain="דף").must_contain == ["דף"]
        assert FilterRules(must_contain="").must_contain == []
