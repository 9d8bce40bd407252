"""Approximate matching for "did you mean" suggestions."""

from typing import List, Optional, Sequence, Tuple

from rapidfuzz import fuzz, process
from rapidfuzz.distance import Levenshtein

from .normalizer import CANONICAL_OPTIONS, HebrewNormalizer


class FuzzyMatcher:
    """Suggests indexed words close to a query term that matched nothing."""

    def __init__(self, threshold: float = 0.6, normalizer: Optional[HebrewNormalizer] = None) -> None:
        """
        Initialize the fuzzy matcher.

        Args:
            threshold: Minimum similarity (0-1) for a suggestion
            normalizer: Normalization pipeline used on both sides
        """
        self.threshold = threshold
        self.normalizer = normalizer or HebrewNormalizer()

    def _canonical(self, text: str) -> str:
        return self.normalizer.normalize(text.strip(), CANONICAL_OPTIONS)

    def similarity(self, query: str, candidate: str) -> Tuple[float, int]:
        """
        Compare two words after canonical normalization.

        Returns:
            Tuple of (similarity between 0 and 1, edit distance)
        """
        a, b = self._canonical(query), self._canonical(candidate)
        if not a or not b:
            return 0.0, max(len(a), len(b))
        return fuzz.ratio(a, b) / 100.0, Levenshtein.distance(a, b)

    def suggest_corrections(
        self,
        query: str,
        candidates: Sequence[str],
        max_suggestions: int = 5
    ) -> List[str]:
        """
        Suggest corrections for a query.

        Exact canonical matches are excluded, since they would have matched.

        Args:
            query: Term to get suggestions for
            candidates: Vocabulary to choose from
            max_suggestions: Maximum number of suggestions

        Returns:
            Suggested words, best first
        """
        canonical_query = self._canonical(query) if query else ""
        if not canonical_query or not candidates:
            return []

        suggestions = process.extract(
            canonical_query,
            candidates,
            processor=self._canonical,
            scorer=fuzz.ratio,
            limit=max_suggestions + 1,
            score_cutoff=self.threshold * 100,
        )

        ranked = []
        seen = set()
        for word, _score, _position in suggestions:
            if self._canonical(word) == canonical_query or word in seen:
                continue
            seen.add(word)
            similarity, distance = self.similarity(query, word)
            ranked.append((word, similarity, distance))

        # Equal similarity: fewer edits first
        ranked.sort(key=lambda item: (-item[1], item[2]))
        return [word for word, _similarity, _distance in ranked[:max_suggestions]]
