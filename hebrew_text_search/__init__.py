"""
Hebrew Text Search - language-aware search and matching engine.

This package searches a corpus of Hebrew documents or ad hoc text with
composable conditions, normalizing diacritics, final letterforms, letter
numerals, morphology and abbreviations, and keeps a persistable inverted
index for repeated querying.
"""

__version__ = "1.0.0"

from .core.engine import SearchEngine
from .models.response import SearchResult, SearchResponse

__all__ = [
    "SearchEngine",
    "SearchResult",
    "SearchResponse",
]
