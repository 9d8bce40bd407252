"""Hebrew text normalization: diacritics, final letterforms, numerals and term variants."""

import re
from collections import defaultdict
from typing import Dict, List, Optional, Set, Tuple

from ..models.request import SmartSearchOptions


# Vowel points and cantillation marks. Maqaf, paseq and sof pasuq are punctuation and are kept.
DIACRITICS = "\u0591-\u05BD\u05BF\u05C1\u05C2\u05C4\u05C5\u05C7"
HEBREW_LETTERS = "א-ת"
GERESH = "\u05F3"
GERSHAYIM = "\u05F4"
QUOTE_MARKS = "\"'" + GERESH + GERSHAYIM
WORD_CHARS = r"\w" + DIACRITICS

DIACRITICS_PATTERN = re.compile(f"[{DIACRITICS}]")
TOKEN_PATTERN = re.compile(
    rf"[{WORD_CHARS}]+(?:[{QUOTE_MARKS}]+[{WORD_CHARS}]+)*['{GERESH}]?"
)

# A match at a word boundary may not touch a word character, nor sit inside an abbreviation.
BOUNDARY_BEFORE = rf"(?<![{WORD_CHARS}])(?<![{WORD_CHARS}{QUOTE_MARKS}][{QUOTE_MARKS}])"
BOUNDARY_AFTER = rf"(?![{WORD_CHARS}])(?![{QUOTE_MARKS}]+[{WORD_CHARS}])"

FINAL_LETTERS = "ךםןףץ"
STANDARD_LETTERS = "כמנפצ"
FINAL_TO_STANDARD = str.maketrans(FINAL_LETTERS, STANDARD_LETTERS)
STANDARD_TO_FINAL = dict(zip(STANDARD_LETTERS, FINAL_LETTERS))
_FINAL_CHAR_MAP = dict(zip(FINAL_LETTERS, STANDARD_LETTERS))
_DIACRITIC_SET = frozenset(
    chr(code)
    for code in range(0x0591, 0x05C8)
    if DIACRITICS_PATTERN.match(chr(code))
)
WORD_FINAL_PATTERN = re.compile(
    rf"(?<=[{HEBREW_LETTERS}{DIACRITICS}])([{STANDARD_LETTERS}])"
    rf"(?![{DIACRITICS}]*[{QUOTE_MARKS}]?[{HEBREW_LETTERS}])"
)
HEBREW_WORD_PATTERN = re.compile(f"[{HEBREW_LETTERS}{DIACRITICS}]+")

LETTER_VALUES: Dict[str, int] = {
    "א": 1, "ב": 2, "ג": 3, "ד": 4, "ה": 5, "ו": 6, "ז": 7, "ח": 8, "ט": 9,
    "י": 10, "כ": 20, "ל": 30, "מ": 40, "נ": 50, "ס": 60, "ע": 70, "פ": 80, "צ": 90,
    "ק": 100, "ר": 200, "ש": 300, "ת": 400,
    "ך": 20, "ם": 40, "ן": 50, "ף": 80, "ץ": 90,
}
_UNITS = ["", "א", "ב", "ג", "ד", "ה", "ו", "ז", "ח", "ט"]
_TENS = ["", "י", "כ", "ל", "מ", "נ", "ס", "ע", "פ", "צ"]
_HUNDREDS = ["", "ק", "ר", "ש", "ת", "תק", "תר", "תש", "תת", "תתק"]
# Written as ט+ו and ט+ז by convention instead of the plain sum-of-letters form.
IRREGULAR_NUMERALS = {15: "טו", 16: "טז"}
MIN_NUMERAL = 1
MAX_NUMERAL = 999

# Units that are conventionally followed by a letter numeral.
UNIT_WORDS = ("דף", "עמוד", "פרק", "סימן", "סעיף", "אות")

DIGITS_PATTERN = re.compile(r"(?<!\d)\d{1,3}(?!\d)")
MARKED_NUMERAL_PATTERN = re.compile(
    rf"(?<![{WORD_CHARS}])([{HEBREW_LETTERS}]{{1,4}})([{QUOTE_MARKS}])([{HEBREW_LETTERS}])?"
    rf"(?![{WORD_CHARS}])"
)
UNIT_NUMERAL_PATTERN = re.compile(
    rf"((?:{'|'.join(UNIT_WORDS)})\s+)([{HEBREW_LETTERS}]{{1,4}})(?![{WORD_CHARS}{QUOTE_MARKS}])"
)

NUMERIC_VALUE_WORDS = (
    "יהוה", "כו", "אלהים", "טוב", "חי", "יח", "אחד", "אהבה", "דם", "ילד",
    "כל", "מי", "ים", "לב", "חסד", "שדי", "ישראל", "משיח", "נחש",
)

ABBREVIATIONS: Dict[str, Tuple[str, ...]] = {
    'רמב"ם': ("רבי משה בן מימון", "רבינו משה בן מימון"),
    'רש"י': ("רבי שלמה יצחקי", "רבינו שלמה יצחקי"),
    'ר"ת': ("רבינו תם", "ראשי תיבות"),
    'ר"י': ("רבי יוחנן", "רבינו יונה"),
    'ר"מ': ("ראש מתיבתא", "רבי מאיר"),
    'ר"ע': ("רבי עקיבא",),
    'ר"א': ("רבי אליעזר", "רבי אלעזר"),
    'ר"ש': ("רבי שמעון",),
    'ר"ן': ("רבינו נסים",),
    'ריטב"א': ("רבי יום טוב בן אברהם",),
    'רשב"א': ("רבי שלמה בן אדרת",),
    'רשב"ם': ("רבי שמואל בן מאיר",),
    'ראב"ע': ("רבי אברהם בן עזרא",),
    'ראב"ד': ("רבי אברהם בן דוד",),
    'מהר"ל': ("מורנו הרב רבי ליווא",),
    'הגר"א': ("הגאון רבי אליהו",),
    'חז"ל': ("חכמינו זכרונם לברכה",),
    'ז"ל': ("זכרונו לברכה", "זיכרונו לברכה"),
    'זצ"ל': ("זכר צדיק לברכה",),
    'שליט"א': ("שיחיה לאורך ימים טובים אמן",),
    'ע"ה': ("עליו השלום", "עליה השלום"),
    'ע"א': ("עמוד א", "ערך א"),
    'ע"ב': ("עמוד ב", "ערך ב"),
    'ד"ה': ("דיבור המתחיל",),
    "וכו'": ("וכולי", "וכו׳"),
    'ב"ה': ("ברוך השם", "בעזרת השם", "בית הלל"),
    'ב"ש': ("בית שמאי",),
    'או"ח': ("אורח חיים",),
    'יו"ד': ("יורה דעה",),
    'חו"מ': ("חושן משפט",),
    'אה"ע': ("אבן העזר",),
}


def _letter_class(letter: str) -> str:
    if letter in _FINAL_CHAR_MAP:
        return f"[{letter}{_FINAL_CHAR_MAP[letter]}]"
    if letter in STANDARD_TO_FINAL:
        return f"[{letter}{STANDARD_TO_FINAL[letter]}]"
    return re.escape(letter)


def _compile_abbreviation(abbreviation: str) -> "re.Pattern[str]":
    letters = [ch for ch in abbreviation if ch not in QUOTE_MARKS]
    body = f"[{QUOTE_MARKS}]?".join(_letter_class(letter) for letter in letters)
    if abbreviation[-1] in QUOTE_MARKS:
        body += f"[{QUOTE_MARKS}]?"
    return re.compile(BOUNDARY_BEFORE + body + BOUNDARY_AFTER)


_ABBREVIATION_PATTERNS = [
    (_compile_abbreviation(abbreviation), expansions)
    for abbreviation, expansions in ABBREVIATIONS.items()
]

DEFAULT_OPTIONS = SmartSearchOptions()
# Most permissive normalization; used for index tokens so index lookups never miss.
CANONICAL_OPTIONS = SmartSearchOptions(
    diacritic_insensitive=True,
    final_letterform_insensitive=True,
    case_insensitive=True,
)


class HebrewNormalizer:
    """Deterministic text transforms for matching Hebrew text.

    Every transform is pure and total. ``expand_term`` is the single fan-out
    point: it applies the transforms enabled by a ``SmartSearchOptions`` and
    returns the union of their outputs, always including the literal term.
    """

    def __init__(self) -> None:
        groups: Dict[int, List[str]] = defaultdict(list)
        for word in NUMERIC_VALUE_WORDS:
            groups[self.letters_to_number(word)].append(word)
        self._numeric_groups = {value: tuple(words) for value, words in groups.items()}

    def strip_diacritics(self, text: str) -> str:
        """Remove vowel points and cantillation marks."""
        if not text:
            return ""
        return DIACRITICS_PATTERN.sub("", text)

    def fold_final_letterforms(self, text: str) -> str:
        """Map word-final letter shapes to their standard forms."""
        if not text:
            return ""
        return text.translate(FINAL_TO_STANDARD)

    def restore_final_letterforms(self, text: str) -> str:
        """Map standard letters at the end of a word to their final shapes."""
        if not text:
            return ""
        return WORD_FINAL_PATTERN.sub(lambda m: STANDARD_TO_FINAL[m.group(1)], text)

    def final_letterform_variants(self, text: str) -> Set[str]:
        """
        Return the text with word-final letters in both directions.

        Args:
            text: Input text

        Returns:
            Set holding the input, its folded form and its restored form
        """
        folded = self.fold_final_letterforms(text)
        return {text, folded, self.restore_final_letterforms(folded)}

    def number_to_letters(self, number: int, with_marks: bool = False, ascii_marks: bool = False) -> str:
        """
        Convert an integer in 1..999 to letter-numeral notation.

        Args:
            number: Integer to convert
            with_marks: Add geresh/gershayim display marks
            ascii_marks: Use ASCII apostrophe and quote for the marks

        Returns:
            Letter numeral, or an empty string when the number is out of range
        """
        if not isinstance(number, int) or number < MIN_NUMERAL or number > MAX_NUMERAL:
            return ""

        hundreds, rest = divmod(number, 100)
        tail = IRREGULAR_NUMERALS.get(rest)
        if tail is None:
            tail = _TENS[rest // 10] + _UNITS[rest % 10]
        letters = _HUNDREDS[hundreds] + tail

        if not with_marks:
            return letters
        geresh, gershayim = ("'", '"') if ascii_marks else (GERESH, GERSHAYIM)
        if len(letters) == 1:
            return letters + geresh
        return letters[:-1] + gershayim + letters[-1]

    def letters_to_number(self, text: str) -> int:
        """Sum the numeral values of the letters in text; other characters count 0."""
        if not text:
            return 0
        return sum(LETTER_VALUES.get(ch, 0) for ch in text)

    def word_form_variants(self, word: str) -> Set[str]:
        """
        Generate definite-article and singular/plural variants of a word.

        Args:
            word: A single Hebrew word

        Returns:
            Set with the word and its variants
        """
        word = word.strip()
        if not word:
            return set()
        if not HEBREW_WORD_PATTERN.fullmatch(word):
            return {word}

        base = self.fold_final_letterforms(word)
        variants = set()

        if base.startswith("ה") and len(base) > 2:
            variants.add(base[1:])
        else:
            variants.add("ה" + base)

        if base.endswith("ימ") and len(base) > 3:
            stem = base[:-2]
            variants.update({stem, stem + "ות"})
        elif base.endswith("ות") and len(base) > 3:
            stem = base[:-2]
            variants.update({stem, stem + "ימ"})
        else:
            variants.update({base + "ימ", base + "ות"})

        result = {self.restore_final_letterforms(variant) for variant in variants}
        result.add(word)
        return result

    def numeric_value_equivalents(self, word: str) -> Set[str]:
        """Return other known words sharing the word's letter-numeral value."""
        stripped = self.strip_diacritics(word.strip())
        value = self.letters_to_number(stripped)
        if not value:
            return set()
        folded = self.fold_final_letterforms(stripped)
        return {
            candidate
            for candidate in self._numeric_groups.get(value, ())
            if self.fold_final_letterforms(candidate) != folded
        }

    def expand_abbreviation(self, text: str) -> Set[str]:
        """
        Substitute known abbreviations with each of their expansions.

        Args:
            text: Input text

        Returns:
            Set holding the input plus one substituted text per expansion
        """
        results = {text}
        if not text:
            return results

        for pattern, expansions in _ABBREVIATION_PATTERNS:
            if not pattern.search(text):
                continue
            for expansion in expansions:
                results.add(pattern.sub(lambda _m, e=expansion: e, text))

        return results

    def number_variations(self, term: str) -> Set[str]:
        """
        Rewrite numbers in a term between digits and letter numerals.

        Digits become letter numerals (plain and marked). Marked letter
        numerals, and bare letters after a unit word, become digits when
        they are written in canonical form.

        Args:
            term: Search term

        Returns:
            Set of rewritten terms, excluding the term itself
        """
        variants: Set[str] = set()
        if not term:
            return variants

        if DIGITS_PATTERN.search(term):
            for with_marks, ascii_marks in ((False, False), (True, False), (True, True)):
                variants.add(DIGITS_PATTERN.sub(
                    lambda m: self.number_to_letters(
                        int(m.group()), with_marks=with_marks, ascii_marks=ascii_marks
                    ) or m.group(),
                    term,
                ))

        variants.add(MARKED_NUMERAL_PATTERN.sub(self._marked_numeral_to_digits, term))
        variants.add(UNIT_NUMERAL_PATTERN.sub(self._unit_numeral_to_digits, term))
        variants.discard(term)
        return variants

    def _canonical_value(self, letters: str) -> Optional[int]:
        folded = self.fold_final_letterforms(letters)
        value = self.letters_to_number(folded)
        if value and self.number_to_letters(value) == folded:
            return value
        return None

    def _marked_numeral_to_digits(self, match: "re.Match[str]") -> str:
        head, mark, last = match.group(1), match.group(2), match.group(3)
        if last is None and mark not in ("'", GERESH):
            return match.group()
        if last is not None and mark not in ('"', GERSHAYIM):
            return match.group()
        value = self._canonical_value(head + (last or ""))
        return str(value) if value is not None else match.group()

    def _unit_numeral_to_digits(self, match: "re.Match[str]") -> str:
        value = self._canonical_value(match.group(2))
        if value is None:
            return match.group()
        return match.group(1) + str(value)

    def expand_term(self, term: str, options: Optional[SmartSearchOptions] = None) -> Set[str]:
        """
        Expand a query term according to the enabled options.

        Args:
            term: Query term
            options: Smart search options (defaults apply when None)

        Returns:
            Deduplicated set of variants, always including the literal term
        """
        options = options or DEFAULT_OPTIONS
        term = term.strip() if term else ""
        if not term:
            return set()

        variants = {term}
        if options.numeral_letter_equivalence:
            variants |= self.number_variations(term)
        if options.abbreviation_expansion:
            for variant in list(variants):
                variants |= self.expand_abbreviation(variant)
        if options.morphological_variants:
            for variant in list(variants):
                variants |= self.word_form_variants(variant)
        if options.numeric_value_equivalence:
            variants |= self.numeric_value_equivalents(term)
        if options.final_letterform_insensitive:
            for variant in list(variants):
                variants |= self.final_letterform_variants(variant)
        if options.diacritic_insensitive:
            variants |= {self.strip_diacritics(variant) for variant in variants}

        variants.discard("")
        return variants

    def normalize(self, text: str, options: Optional[SmartSearchOptions] = None) -> str:
        """
        Normalize text for comparison; both sides of a match use this.

        Args:
            text: Input text
            options: Smart search options (defaults apply when None)

        Returns:
            Normalized text
        """
        if not text:
            return ""
        options = options or DEFAULT_OPTIONS

        if options.diacritic_insensitive:
            text = DIACRITICS_PATTERN.sub("", text)
        if options.final_letterform_insensitive:
            text = text.translate(FINAL_TO_STANDARD)
        if options.case_insensitive:
            text = "".join(map(str.lower, text))
        return text

    def normalize_with_offsets(
        self, text: str, options: Optional[SmartSearchOptions] = None
    ) -> Tuple[str, List[int]]:
        """
        Normalize text and keep, for every output character, its offset in the input.

        Args:
            text: Input text
            options: Smart search options (defaults apply when None)

        Returns:
            Tuple of (normalized text, offsets into the original text)
        """
        if not text:
            return "", []
        options = options or DEFAULT_OPTIONS

        chars: List[str] = []
        offsets: List[int] = []
        for index, ch in enumerate(text):
            if options.diacritic_insensitive and ch in _DIACRITIC_SET:
                continue
            if options.final_letterform_insensitive:
                ch = _FINAL_CHAR_MAP.get(ch, ch)
            if options.case_insensitive:
                ch = ch.lower()
            for out in ch:
                chars.append(out)
                offsets.append(index)
        return "".join(chars), offsets

    def to_original_span(self, original: str, offsets: List[int], start: int, end: int) -> Tuple[int, int]:
        """Map a span of normalized text back to the original, keeping trailing marks."""
        original_start = offsets[start]
        original_end = offsets[end - 1] + 1
        while original_end < len(original) and original[original_end] in _DIACRITIC_SET:
            original_end += 1
        return original_start, original_end

    def tokenize(self, text: str) -> List[str]:
        """
        Tokenize text into words.

        Args:
            text: Input text

        Returns:
            List of tokens
        """
        if not text:
            return []
        return TOKEN_PATTERN.findall(text)

    def token_spans(self, text: str) -> List[Tuple[int, int]]:
        """Return (start, end) offsets of every token in text."""
        if not text:
            return []
        return [match.span() for match in TOKEN_PATTERN.finditer(text)]

    def canonical_tokens(self, text: str) -> List[str]:
        """Tokens in the most permissive normalized form, as stored in the index."""
        normalized = self.normalize(text, CANONICAL_OPTIONS)
        tokens = (token.rstrip("'" + GERESH) for token in self.tokenize(normalized))
        return [token for token in tokens if token]
