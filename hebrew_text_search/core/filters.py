"""Post-match filter rules. Filters can only reject a match, never add one."""

import math
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

import structlog

from ..models.request import FilterRules, PositionRule
from .evaluator import coerce_number
from .normalizer import HebrewNormalizer

logger = structlog.get_logger(__name__)

DIGIT_PATTERN = re.compile(r"\d")


@dataclass(frozen=True)
class FilterBounds:
    min_words: Optional[int] = None
    max_words: Optional[int] = None
    min_chars: Optional[int] = None
    max_chars: Optional[int] = None


@dataclass(frozen=True)
class PreparedPositionRule:
    """A position rule with its numeric fields coerced."""

    kind: str
    word: Tuple[str, ...]
    other_word: Tuple[str, ...]
    order: str
    max_distance: Optional[int]
    position: str
    within_words: Optional[int]
    percentage: Optional[float]


@dataclass
class PreparedFilters:
    """Filter rules validated once per query."""

    bounds: FilterBounds = field(default_factory=FilterBounds)
    must_contain: Tuple[str, ...] = ()
    must_not_contain: Tuple[str, ...] = ()
    must_contain_numbers: bool = False
    letters_only: bool = False
    position_rules: Tuple[PreparedPositionRule, ...] = ()
    warnings: List[str] = field(default_factory=list)

    @property
    def active(self) -> bool:
        return bool(
            any(value is not None for value in vars(self.bounds).values())
            or self.must_contain
            or self.must_not_contain
            or self.must_contain_numbers
            or self.letters_only
            or self.position_rules
        )


class FilterEngine:
    """Validates filter rules and applies them to matched segments."""

    def __init__(self, normalizer: Optional[HebrewNormalizer] = None) -> None:
        self.normalizer = normalizer or HebrewNormalizer()

    def prepare(self, rules: Optional[FilterRules]) -> PreparedFilters:
        """
        Coerce and validate filter rules.

        Rules with malformed numeric fields are skipped with a warning.

        Args:
            rules: Raw filter rules

        Returns:
            PreparedFilters ready for ``apply``
        """
        prepared = PreparedFilters()
        if rules is None:
            return prepared

        bounds = {}
        for name in ("min_words", "max_words", "min_chars", "max_chars"):
            try:
                bounds[name] = coerce_number(getattr(rules, name))
            except (TypeError, ValueError):
                self._warn(prepared, f"Filter '{name}' skipped: invalid value {getattr(rules, name)!r}")
                bounds[name] = None
        prepared.bounds = FilterBounds(**bounds)

        prepared.must_contain = tuple(s for s in rules.must_contain if s)
        prepared.must_not_contain = tuple(s for s in rules.must_not_contain if s)
        prepared.must_contain_numbers = rules.must_contain_numbers
        prepared.letters_only = rules.letters_only

        position_rules = []
        for number, rule in enumerate(rules.position_rules, start=1):
            prepared_rule = self._prepare_position_rule(rule, number, prepared)
            if prepared_rule is not None:
                position_rules.append(prepared_rule)
        prepared.position_rules = tuple(position_rules)
        return prepared

    def _prepare_position_rule(
        self, rule: PositionRule, number: int, prepared: PreparedFilters
    ) -> Optional[PreparedPositionRule]:
        try:
            max_distance = coerce_number(rule.max_distance)
            within_words = coerce_number(rule.within_words)
            percentage = coerce_number(rule.percentage, allow_float=True)
        except (TypeError, ValueError) as e:
            self._warn(prepared, f"Position rule {number} skipped: {e}")
            return None

        word = self._word_tokens(rule.word)
        other_word = self._word_tokens(rule.other_word)
        if rule.kind == "relative" and (not word or not other_word):
            self._warn(prepared, f"Position rule {number} skipped: relative rules need two words")
            return None
        if rule.kind == "line_position" and within_words is None and percentage is None:
            self._warn(prepared, f"Position rule {number} skipped: no window size given")
            return None

        return PreparedPositionRule(
            kind=rule.kind,
            word=word,
            other_word=other_word,
            order=rule.order,
            max_distance=max_distance,
            position=rule.position,
            within_words=within_words,
            percentage=percentage,
        )

    def _word_tokens(self, word: str) -> Tuple[str, ...]:
        return tuple(self.normalizer.tokenize(self.normalizer.normalize(word.strip())))

    @staticmethod
    def _warn(prepared: PreparedFilters, message: str) -> None:
        prepared.warnings.append(message)
        logger.warning("Filter rule skipped", reason=message)

    def apply(self, prepared: PreparedFilters, text: str, matched_terms: Iterable[str] = ()) -> bool:
        """
        Check a matched segment against the prepared filters.

        Args:
            prepared: Prepared filters
            text: Original segment text
            matched_terms: Terms the conditions matched, used by line rules without a word

        Returns:
            True if the segment passes every filter
        """
        if not prepared.active:
            return True

        bounds = prepared.bounds
        word_count = len(text.split())
        if bounds.min_words is not None and word_count < bounds.min_words:
            return False
        if bounds.max_words is not None and word_count > bounds.max_words:
            return False
        if bounds.min_chars is not None and len(text) < bounds.min_chars:
            return False
        if bounds.max_chars is not None and len(text) > bounds.max_chars:
            return False

        if any(required not in text for required in prepared.must_contain):
            return False
        if any(forbidden in text for forbidden in prepared.must_not_contain):
            return False
        if prepared.must_contain_numbers and not DIGIT_PATTERN.search(text):
            return False
        if prepared.letters_only and DIGIT_PATTERN.search(text):
            return False

        if prepared.position_rules:
            tokens = self.normalizer.tokenize(self.normalizer.normalize(text))
            fallback = self._fallback_word(matched_terms)
            for rule in prepared.position_rules:
                if not self._position_rule_passes(rule, tokens, fallback):
                    return False

        return True

    def _fallback_word(self, matched_terms: Iterable[str]) -> Tuple[str, ...]:
        for term in sorted(matched_terms):
            tokens = self._word_tokens(term)
            if tokens:
                return tokens[:1]
        return ()

    def _position_rule_passes(
        self, rule: PreparedPositionRule, tokens: Sequence[str], fallback: Tuple[str, ...]
    ) -> bool:
        if rule.kind == "relative":
            return self._relative_passes(rule, tokens)

        word = rule.word or fallback
        if not word:
            return True
        positions = _occurrences(tokens, word)
        if not positions:
            return False

        total = len(tokens)
        if rule.within_words is not None:
            window = rule.within_words
        else:
            window = math.ceil(total * min(rule.percentage, 100.0) / 100.0)

        for position in positions:
            if rule.position == "start" and position < window:
                return True
            if rule.position == "end" and position + len(word) > total - window:
                return True
            if rule.position == "middle" and abs(position - (total - 1) / 2.0) <= window / 2.0:
                return True
        return False

    @staticmethod
    def _relative_passes(rule: PreparedPositionRule, tokens: Sequence[str]) -> bool:
        first = _occurrences(tokens, rule.word)
        second = _occurrences(tokens, rule.other_word)
        if not first or not second:
            return False

        for a in first:
            for b in second:
                if rule.order == "before" and a + len(rule.word) <= b:
                    gap = b - (a + len(rule.word))
                elif rule.order == "after" and b + len(rule.other_word) <= a:
                    gap = a - (b + len(rule.other_word))
                elif rule.order == "any" and (a + len(rule.word) <= b or b + len(rule.other_word) <= a):
                    gap = max(b - (a + len(rule.word)), a - (b + len(rule.other_word)))
                else:
                    continue
                if rule.max_distance is None or gap <= rule.max_distance:
                    return True
        return False


def _occurrences(tokens: Sequence[str], word: Tuple[str, ...]) -> List[int]:
    width = len(word)
    return [
        index
        for index in range(len(tokens) - width + 1)
        if tuple(tokens[index:index + width]) == word
    ]
