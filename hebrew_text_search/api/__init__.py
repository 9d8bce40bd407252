"""API endpoints for the Hebrew text search engine."""

from .search import router as search_router
from .index import router as index_router
from .documents import router as documents_router
from .share import router as share_router
from .patterns import router as patterns_router
from .health import router as health_router
from .metrics import router as metrics_router

__all__ = [
    "search_router",
    "index_router",
    "documents_router",
    "share_router",
    "patterns_router",
    "health_router",
    "metrics_router",
]
