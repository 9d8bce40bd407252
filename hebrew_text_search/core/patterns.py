"""Named structural patterns for citation-style conditions."""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from .errors import PatternCompileError


PRESETS_VERSION = "1"

# Closed enumeration of unit names interpolated into the presets.
TRACTATES = (
    "ברכות", "שבת", "עירובין", "פסחים", "שקלים", "יומא", "סוכה", "ביצה",
    "ראש השנה", "תענית", "מגילה", "מועד קטן", "חגיגה", "יבמות", "כתובות",
    "נדרים", "נזיר", "סוטה", "גיטין", "קידושין", "בבא קמא", "בבא מציעא",
    "בבא בתרא", "סנהדרין", "מכות", "שבועות", "עבודה זרה", "הוריות", "זבחים",
    "מנחות", "חולין", "בכורות", "ערכין", "תמורה", "כריתות", "מעילה", "תמיד", "נדה",
)
TRACTATE_ABBREVIATIONS = ('ב"ק', 'ב"מ', 'ב"ב', 'ר"ה', 'ע"ז', 'מו"ק')


def _alternation(names) -> str:
    """Regex alternation of literal names, longest first so prefixes never shadow."""
    ordered = sorted(names, key=len, reverse=True)
    return "|".join(re.escape(name).replace("\\ ", r"\s+").replace('"', '["״]') for name in ordered)


_UNITS = _alternation(TRACTATES)
_UNITS_WITH_ABBREVIATIONS = _alternation(TRACTATES + TRACTATE_ABBREVIATIONS)
_FOLIO = r"[א-ת]{1,3}[״\"׳']?"
_SIDE = r"[אב]"
_NO_LETTER_BEFORE = r"(?<![א-ת])"
_NO_LETTER_AFTER = r"(?![א-ת])"


@dataclass(frozen=True)
class PatternPreset:
    """A named structural expression."""

    id: str
    label: str
    description: str
    expression: str


_PRESETS = (
    PatternPreset(
        id="talmud-ref",
        label="הפניה לדף",
        description="Folio and side, e.g. 'ב, א' or 'כג.ב'",
        expression=_NO_LETTER_BEFORE + _FOLIO + r"[,. ]?" + _SIDE + _NO_LETTER_AFTER,
    ),
    PatternPreset(
        id="talmud-full",
        label="מסכת ודף",
        description="Tractate name, folio and side, e.g. 'בבא מציעא כא, א'",
        expression=(
            r"(?:מסכת\s+)?(?:" + _UNITS + r")\s+" + _FOLIO + r"[,.]?\s?" + _SIDE + _NO_LETTER_AFTER
        ),
    ),
    PatternPreset(
        id="masechet-name",
        label="שם מסכת",
        description="Any tractate name or its common abbreviation",
        expression=_NO_LETTER_BEFORE + r"(?:" + _UNITS_WITH_ABBREVIATIONS + r")" + _NO_LETTER_AFTER,
    ),
    PatternPreset(
        id="sefer-ref",
        label="פרק ופסוק",
        description="Book name followed by chapter and verse, e.g. 'בראשית א, ב'",
        expression=r"[א-ת]+\s+[א-ת]{1,2}[״\"׳']?[,\s]+[א-ת]{1,2}[״\"׳']?" + _NO_LETTER_AFTER,
    ),
    PatternPreset(
        id="daf-amud",
        label="דף ועמוד",
        description="Explicit folio and side, e.g. 'דף כג עמוד ב'",
        expression=r"דף\s+" + _FOLIO + r"\s*(?:עמוד\s+)?" + _SIDE + _NO_LETTER_AFTER,
    ),
    PatternPreset(
        id="brackets-ref",
        label="הפניה בסוגריים",
        description="A folio reference inside parentheses",
        expression=r"\([^)]*[א-ת]{1,3}[,\s]?" + _SIDE + r"[^)]*\)",
    ),
)


class PatternLibrary:
    """Registry of pattern presets plus compilation of custom expressions."""

    def __init__(self, presets=_PRESETS) -> None:
        """
        Initialize the pattern library.

        Args:
            presets: Preset table to serve
        """
        self._presets: Dict[str, PatternPreset] = {preset.id: preset for preset in presets}
        self.version = PRESETS_VERSION

    def presets(self) -> List[PatternPreset]:
        """Get all presets in table order."""
        return list(self._presets.values())

    def get(self, preset_id: str) -> Optional[PatternPreset]:
        """Get a preset by id."""
        return self._presets.get(preset_id)

    def resolve(self, preset_id: Optional[str] = None, custom_expression: Optional[str] = None) -> str:
        """
        Resolve the expression for a preset id or custom expression.

        A non-empty custom expression wins over the preset id.

        Args:
            preset_id: Preset identifier
            custom_expression: User-supplied regular expression

        Returns:
            The expression, or an empty string when neither is given

        Raises:
            PatternCompileError: If the preset id is unknown
        """
        if custom_expression and custom_expression.strip():
            return custom_expression
        if preset_id and preset_id != "custom":
            preset = self.get(preset_id)
            if preset is None:
                raise PatternCompileError(f"Unknown pattern preset '{preset_id}'", expression=preset_id)
            return preset.expression
        return ""

    def compile(self, expression: str, case_insensitive: bool = False) -> "re.Pattern[str]":
        """
        Compile an expression.

        Raises:
            PatternCompileError: If the expression is not a valid regular expression
        """
        flags = re.IGNORECASE if case_insensitive else 0
        try:
            return re.compile(expression, flags)
        except re.error as e:
            raise PatternCompileError(f"Invalid pattern: {e}", expression=expression) from e
