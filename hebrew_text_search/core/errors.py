"""Error kinds raised by the search engine."""

from typing import Optional


class SearchEngineError(Exception):
    """Base class for all search engine errors."""


class NoCriteriaError(SearchEngineError):
    """Raised when no condition in a query contributes a real constraint."""

    def __init__(self, message: str = "No search criteria were provided") -> None:
        super().__init__(message)


class CorpusSourceError(SearchEngineError):
    """Raised when the external document source fails."""

    def __init__(self, message: str, document_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.document_id = document_id


class IndexBuildInProgressError(SearchEngineError):
    """Raised when an index build is requested while another one is running."""

    def __init__(self) -> None:
        super().__init__("An index build is already in progress")


class PatternCompileError(SearchEngineError):
    """Raised when a pattern expression cannot be resolved or compiled."""

    def __init__(self, message: str, expression: Optional[str] = None) -> None:
        super().__init__(message)
        self.expression = expression
