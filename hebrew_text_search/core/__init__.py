"""Core search engine functionality."""

from .engine import SearchEngine
from .errors import (
    CorpusSourceError,
    IndexBuildInProgressError,
    NoCriteriaError,
    PatternCompileError,
    SearchEngineError,
)
from .evaluator import ConditionEvaluator
from .fuzzy_matcher import FuzzyMatcher
from .index import IndexManager, InvertedIndex
from .normalizer import HebrewNormalizer
from .patterns import PatternLibrary
from .query import QueryEngine
from .streaming import StreamingSearchCoordinator

__all__ = [
    "SearchEngine",
    "SearchEngineError",
    "NoCriteriaError",
    "CorpusSourceError",
    "IndexBuildInProgressError",
    "PatternCompileError",
    "ConditionEvaluator",
    "FuzzyMatcher",
    "IndexManager",
    "InvertedIndex",
    "HebrewNormalizer",
    "PatternLibrary",
    "QueryEngine",
    "StreamingSearchCoordinator",
]
