"""Evaluation of a single search condition against a text segment."""

import re
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

import structlog

from ..models.request import (
    ListCondition,
    NearCondition,
    PatternCondition,
    SearchCondition,
    SmartSearchOptions,
    TermCondition,
)
from .errors import PatternCompileError
from .normalizer import BOUNDARY_AFTER, BOUNDARY_BEFORE, HebrewNormalizer
from .patterns import PatternLibrary

logger = structlog.get_logger(__name__)

SUBSTRING_OPERATORS = frozenset({"contains", "not_contains", "starts_with", "ends_with", "exact"})
RAW_TEXT_OPERATORS = frozenset({"regex", "pattern"})


@dataclass(frozen=True)
class MatchSpan:
    """Span of a match in the original segment text."""

    start: int
    end: int
    term: str


@dataclass(frozen=True)
class EvaluationResult:
    """Outcome of evaluating one condition on one segment."""

    matched: bool
    matched_terms: FrozenSet[str] = frozenset()
    spans: Tuple[MatchSpan, ...] = ()


NO_MATCH = EvaluationResult(matched=False)


def coerce_number(value, allow_float: bool = False):
    """
    Coerce raw user input to a non-negative number.

    Returns:
        The number, or None when the value is missing

    Raises:
        ValueError: If the value is not a non-negative number
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        raise ValueError(f"not a number: {value!r}")
    number = float(value) if allow_float else int(float(value))
    if number < 0:
        raise ValueError(f"negative value: {value!r}")
    return number


@dataclass
class _NormalizedSegment:
    text: str
    offsets: List[int]


@dataclass
class _Needle:
    variant: str
    normalized: str
    tokens: Tuple[str, ...] = field(default=())


class ConditionEvaluator:
    """Evaluates conditions against segments for the duration of one query.

    Compiled patterns and term expansions are cached per condition, so one
    evaluator should be created per query and discarded afterwards.
    """

    def __init__(
        self,
        normalizer: Optional[HebrewNormalizer] = None,
        patterns: Optional[PatternLibrary] = None,
    ) -> None:
        self.normalizer = normalizer or HebrewNormalizer()
        self.patterns = patterns or PatternLibrary()
        self.warnings: List[str] = []

        self._compiled: Dict[str, "re.Pattern[str]"] = {}
        self._invalid: Dict[str, str] = {}
        self._distances: Dict[str, int] = {}
        self._needles: Dict[Tuple[str, SmartSearchOptions], List[_Needle]] = {}
        self._term_regexes: Dict[Tuple[str, str, bool], "re.Pattern[str]"] = {}
        self._segment_text: Optional[str] = None
        self._segment_cache: Dict[SmartSearchOptions, _NormalizedSegment] = {}

    def has_criteria(self, condition: SearchCondition) -> bool:
        """Whether the condition carries a non-empty term, word list or pattern."""
        if isinstance(condition, PatternCondition):
            spec = condition.pattern
            return bool((spec.custom_expression or "").strip() or (spec.preset_id and spec.preset_id != "custom"))
        if isinstance(condition, ListCondition):
            return any(word.strip() for word in condition.list_spec.words)
        if isinstance(condition, NearCondition):
            return bool(condition.term.strip() and condition.near.word.strip())
        return bool(condition.term.strip())

    def prepare(self, condition: SearchCondition) -> bool:
        """
        Validate a condition and compile what it needs.

        Malformed input (a bad pattern or distance) is recorded as a warning and
        the condition is reported as unusable instead of raising.

        Args:
            condition: Condition to prepare

        Returns:
            True if the condition can be evaluated
        """
        if condition.id in self._invalid:
            return False

        try:
            if isinstance(condition, PatternCondition):
                expression = self.patterns.resolve(
                    condition.pattern.preset_id, condition.pattern.custom_expression
                )
                self._compiled[condition.id] = self.patterns.compile(
                    expression, condition.smart_options.case_insensitive
                )
            elif isinstance(condition, TermCondition) and condition.operator == "regex":
                self._compiled[condition.id] = self.patterns.compile(
                    condition.term, condition.smart_options.case_insensitive
                )
            elif isinstance(condition, NearCondition):
                distance = coerce_number(condition.near.distance)
                if distance is None:
                    raise ValueError("distance is required")
                self._distances[condition.id] = distance
        except PatternCompileError as e:
            self._reject(condition, f"Condition {condition.id} skipped: {e}")
            return False
        except (TypeError, ValueError) as e:
            self._reject(condition, f"Condition {condition.id} skipped: invalid distance ({e})")
            return False

        return True

    def _reject(self, condition: SearchCondition, message: str) -> None:
        self._invalid[condition.id] = message
        self.warnings.append(message)
        logger.warning("Condition skipped", condition_id=condition.id, reason=message)

    def evaluate(self, condition: SearchCondition, segment: str) -> EvaluationResult:
        """
        Evaluate one condition against one segment.

        Args:
            condition: A prepared condition
            segment: Original segment text

        Returns:
            EvaluationResult with the matched flag, matched terms and spans
        """
        if condition.id in self._invalid or not self.has_criteria(condition):
            return NO_MATCH

        if isinstance(condition, PatternCondition) or condition.operator == "regex":
            return self._evaluate_raw(condition, segment)
        if isinstance(condition, NearCondition):
            return self._evaluate_near(condition, segment)
        if isinstance(condition, ListCondition):
            return self._evaluate_list(condition, segment)
        return self._evaluate_term(condition, segment)

    # Term operators

    def _evaluate_term(self, condition: TermCondition, segment: str) -> EvaluationResult:
        spans = self.find_term(condition.term, condition, segment, condition.operator)
        found = bool(spans)

        if condition.operator == "not_contains":
            # Negation of the same positive test, never an independent check.
            return EvaluationResult(matched=not found)
        if not found:
            return NO_MATCH
        return EvaluationResult(
            matched=True,
            matched_terms=frozenset({condition.term.strip()}),
            spans=tuple(spans),
        )

    def find_term(
        self,
        term: str,
        condition: SearchCondition,
        segment: str,
        operator: str = "contains",
    ) -> List[MatchSpan]:
        """
        Find every occurrence of any expansion of a term in a segment.

        Args:
            term: Query term
            condition: Condition supplying options and the in-word flag
            segment: Original segment text
            operator: contains, not_contains, starts_with, ends_with or exact

        Returns:
            Spans in original segment coordinates
        """
        options = condition.smart_options
        normalized = self._normalized(segment, options)
        if not normalized.text:
            return []

        require_boundary = options.whole_word or not condition.search_in_word
        label = term.strip()
        spans: List[MatchSpan] = []
        for needle in self._expand(term, options):
            regex = self._term_regex(needle.normalized, operator, require_boundary)
            for match in regex.finditer(normalized.text):
                start, end = match.span(1)
                if start == end:
                    continue
                original_start, original_end = self.normalizer.to_original_span(
                    segment, normalized.offsets, start, end
                )
                spans.append(MatchSpan(original_start, original_end, label))
        return spans

    def _term_regex(self, needle: str, operator: str, require_boundary: bool) -> "re.Pattern[str]":
        key = (needle, operator, require_boundary)
        regex = self._term_regexes.get(key)
        if regex is not None:
            return regex

        body = "(" + re.escape(needle) + ")"
        if require_boundary:
            body = BOUNDARY_BEFORE + body + BOUNDARY_AFTER
        if operator == "starts_with":
            body = r"^\s*" + body
        elif operator == "ends_with":
            body = body + r"\s*$"
        elif operator == "exact":
            body = r"^\s*" + body + r"\s*$"

        regex = re.compile(body)
        self._term_regexes[key] = regex
        return regex

    def _expand(self, term: str, options: SmartSearchOptions) -> List[_Needle]:
        key = (term, options)
        needles = self._needles.get(key)
        if needles is not None:
            return needles

        needles = []
        seen = set()
        for variant in sorted(self.normalizer.expand_term(term, options)):
            normalized = self.normalizer.normalize(variant, options)
            if not normalized or normalized in seen:
                continue
            seen.add(normalized)
            needles.append(_Needle(variant, normalized, tuple(self.normalizer.tokenize(normalized))))
        self._needles[key] = needles
        return needles

    def _normalized(self, segment: str, options: SmartSearchOptions) -> _NormalizedSegment:
        if segment is not self._segment_text:
            self._segment_text = segment
            self._segment_cache = {}
        cached = self._segment_cache.get(options)
        if cached is None:
            text, offsets = self.normalizer.normalize_with_offsets(segment, options)
            cached = _NormalizedSegment(text, offsets)
            self._segment_cache[options] = cached
        return cached

    # Proximity

    def _evaluate_near(self, condition: NearCondition, segment: str) -> EvaluationResult:
        distance = self._distances.get(condition.id)
        if distance is None:
            if not self.prepare(condition):
                return NO_MATCH
            distance = self._distances[condition.id]

        options = condition.smart_options
        normalized = self._normalized(segment, options)
        token_spans = self.normalizer.token_spans(normalized.text)
        tokens = [normalized.text[start:end] for start, end in token_spans]

        first = self._token_occurrences(condition.term, condition, tokens)
        second = self._token_occurrences(condition.near.word, condition, tokens)
        if not first or not second:
            return NO_MATCH

        hits: List[Tuple[int, int]] = []
        for a_start, a_len in first:
            for b_start, b_len in second:
                gap = self._gap(a_start, a_len, b_start, b_len)
                if gap is not None and gap <= distance:
                    hits.append((a_start, a_len))
                    hits.append((b_start, b_len))
        if not hits:
            return NO_MATCH

        spans = []
        labels = {token_index: condition.term.strip() for token_index, _ in first}
        labels.update({token_index: condition.near.word.strip() for token_index, _ in second})
        for token_index, length in sorted(set(hits)):
            start = token_spans[token_index][0]
            end = token_spans[token_index + length - 1][1]
            original_start, original_end = self.normalizer.to_original_span(
                segment, normalized.offsets, start, end
            )
            spans.append(MatchSpan(original_start, original_end, labels[token_index]))

        return EvaluationResult(
            matched=True,
            matched_terms=frozenset({condition.term.strip(), condition.near.word.strip()}),
            spans=tuple(spans),
        )

    @staticmethod
    def _gap(a_start: int, a_len: int, b_start: int, b_len: int) -> Optional[int]:
        """Number of words strictly between two occurrences, None if they overlap."""
        if a_start + a_len <= b_start:
            return b_start - (a_start + a_len)
        if b_start + b_len <= a_start:
            return a_start - (b_start + b_len)
        return None

    def _token_occurrences(
        self, term: str, condition: SearchCondition, tokens: Sequence[str]
    ) -> List[Tuple[int, int]]:
        """Return (token index, token count) for every occurrence of a term's expansions."""
        options = condition.smart_options
        in_word = condition.search_in_word and not options.whole_word
        occurrences = set()

        for needle in self._expand(term, options):
            needle_tokens = needle.tokens
            if not needle_tokens:
                continue
            width = len(needle_tokens)
            for index in range(len(tokens) - width + 1):
                window = tokens[index:index + width]
                if in_word:
                    hit = self._window_contains(window, needle_tokens)
                else:
                    hit = tuple(window) == needle_tokens
                if hit:
                    occurrences.add((index, width))

        return sorted(occurrences)

    @staticmethod
    def _window_contains(window: Sequence[str], needle_tokens: Tuple[str, ...]) -> bool:
        if len(needle_tokens) == 1:
            return needle_tokens[0] in window[0]
        return (
            window[0].endswith(needle_tokens[0])
            and window[-1].startswith(needle_tokens[-1])
            and tuple(window[1:-1]) == needle_tokens[1:-1]
        )

    # Word lists

    def _evaluate_list(self, condition: ListCondition, segment: str) -> EvaluationResult:
        words = [word.strip() for word in condition.list_spec.words if word.strip()]
        matched_words = []
        spans: List[MatchSpan] = []

        for word in words:
            word_spans = self.find_term(word, condition, segment)
            if word_spans:
                matched_words.append(word)
                spans.extend(word_spans)

        if condition.list_spec.mode == "all":
            found = len(matched_words) == len(words)
        else:
            found = bool(matched_words)

        if not found:
            return NO_MATCH
        return EvaluationResult(
            matched=True, matched_terms=frozenset(matched_words), spans=tuple(spans)
        )

    # Structural patterns and raw regular expressions

    def _evaluate_raw(self, condition: SearchCondition, segment: str) -> EvaluationResult:
        regex = self._compiled.get(condition.id)
        if regex is None:
            if not self.prepare(condition):
                return NO_MATCH
            regex = self._compiled[condition.id]

        found = False
        terms = set()
        spans = []
        for match in regex.finditer(segment):
            found = True
            if match.end() > match.start():
                terms.add(match.group())
                spans.append(MatchSpan(match.start(), match.end(), match.group()))

        if not found:
            return NO_MATCH
        return EvaluationResult(matched=True, matched_terms=frozenset(terms), spans=tuple(spans))
