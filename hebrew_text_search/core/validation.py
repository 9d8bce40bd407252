"""Per-condition and per-filter diagnostics for checking a query against sample text."""

import time
from dataclasses import replace
from typing import List, Optional, Sequence

import structlog

from ..models.request import FilterRules, SearchCondition
from ..models.response import ConditionDiagnostic, FilterDiagnostic, ValidationResponse
from .filters import DIGIT_PATTERN, FilterBounds, PreparedFilters
from .query import QueryEngine, with_unique_ids

logger = structlog.get_logger(__name__)


def _condition_term(condition: SearchCondition) -> str:
    if condition.operator == "list":
        return ", ".join(word for word in condition.list_spec.words if word.strip())
    if condition.operator == "pattern":
        return condition.pattern.custom_expression or condition.pattern.preset_id or ""
    if condition.operator == "near":
        return f"{condition.term} ~ {condition.near.word}"
    return condition.term


class RuleValidator:
    """Explains how each condition and filter behaves on a sample text."""

    def __init__(self, query_engine: Optional[QueryEngine] = None) -> None:
        self.query_engine = query_engine or QueryEngine()

    def validate(
        self,
        conditions: Sequence[SearchCondition],
        text: str,
        filter_rules: Optional[FilterRules] = None,
    ) -> ValidationResponse:
        """
        Evaluate every condition and filter separately on a text.

        Args:
            conditions: Conditions to check
            text: Sample text
            filter_rules: Filters to check

        Returns:
            ValidationResponse with one diagnostic per condition and per filter

        Raises:
            NoCriteriaError: If no condition carries search criteria
        """
        start_time = time.time()
        engine = self.query_engine
        prepared = engine.prepare(conditions, filter_rules)
        segments = engine.segment(text)
        active_ids = {condition.id for condition in prepared.conditions}

        diagnostics: List[ConditionDiagnostic] = []
        for condition in with_unique_ids(conditions):
            condition_start = time.time()
            if condition.id not in active_ids:
                diagnostics.append(ConditionDiagnostic(
                    condition_id=condition.id,
                    operator=condition.operator,
                    term=_condition_term(condition),
                    passed=False,
                    match_count=0,
                    details="Skipped: no criteria or invalid input",
                    execution_time_ms=0.0,
                ))
                continue

            positions = []
            match_count = 0
            for segment in segments:
                result = prepared.evaluator.evaluate(condition, segment.text)
                if result.matched:
                    positions.append(segment.index)
                    match_count += max(1, len(result.spans))

            diagnostics.append(ConditionDiagnostic(
                condition_id=condition.id,
                operator=condition.operator,
                term=_condition_term(condition),
                passed=bool(positions),
                match_count=match_count,
                match_positions=positions,
                details=f"Matched in {len(positions)} of {len(segments)} segments",
                execution_time_ms=round((time.time() - condition_start) * 1000, 3),
            ))

        filters = self._filter_diagnostics(prepared.filters, text)
        logger.debug("Rules validated", conditions=len(diagnostics), filters=len(filters))
        return ValidationResponse(
            conditions=diagnostics,
            filters=filters,
            warnings=list(prepared.warnings),
            execution_time_ms=round((time.time() - start_time) * 1000, 2),
        )

    def _filter_diagnostics(self, prepared: PreparedFilters, text: str) -> List[FilterDiagnostic]:
        apply = self.query_engine.filters.apply
        empty = PreparedFilters()
        diagnostics = []

        word_count = len(text.split())
        bounds = prepared.bounds
        for name, actual, expected in (
            ("min_words", word_count, f">= {bounds.min_words}"),
            ("max_words", word_count, f"<= {bounds.max_words}"),
            ("min_chars", len(text), f">= {bounds.min_chars}"),
            ("max_chars", len(text), f"<= {bounds.max_chars}"),
        ):
            if getattr(bounds, name) is None:
                continue
            single = replace(empty, bounds=FilterBounds(**{name: getattr(bounds, name)}))
            diagnostics.append(FilterDiagnostic(
                rule_name=name, passed=apply(single, text), actual=actual, expected=expected
            ))

        for required in prepared.must_contain:
            diagnostics.append(FilterDiagnostic(
                rule_name=f"must_contain:{required}",
                passed=required in text,
                actual=required in text,
                expected="present",
            ))
        for forbidden in prepared.must_not_contain:
            diagnostics.append(FilterDiagnostic(
                rule_name=f"must_not_contain:{forbidden}",
                passed=forbidden not in text,
                actual=forbidden in text,
                expected="absent",
            ))

        has_digits = bool(DIGIT_PATTERN.search(text))
        if prepared.must_contain_numbers:
            diagnostics.append(FilterDiagnostic(
                rule_name="must_contain_numbers", passed=has_digits, actual=has_digits, expected="digits present"
            ))
        if prepared.letters_only:
            diagnostics.append(FilterDiagnostic(
                rule_name="letters_only", passed=not has_digits, actual=has_digits, expected="no digits"
            ))

        for number, rule in enumerate(prepared.position_rules, start=1):
            single = replace(empty, position_rules=(rule,))
            passed = apply(single, text)
            if rule.kind == "relative":
                expected = f"'{' '.join(rule.word)}' {rule.order} '{' '.join(rule.other_word)}'"
                if rule.max_distance is not None:
                    expected += f" within {rule.max_distance} words"
            else:
                window = f"{rule.within_words} words" if rule.within_words is not None else f"{rule.percentage}%"
                expected = f"'{' '.join(rule.word)}' at {rule.position} within {window}"
            diagnostics.append(FilterDiagnostic(
                rule_name=f"position_rule_{number}", passed=passed, actual=passed, expected=expected
            ))

        return diagnostics
