"""Main FastAPI application for Hebrew Text Search."""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
import structlog

from .api import (
    search_router,
    index_router,
    documents_router,
    share_router,
    patterns_router,
    health_router,
    metrics_router,
)
from .config import get_settings
from .engine_instance import search_engine
from .models.response import ErrorResponse

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(ensure_ascii=False)
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    # Startup
    logger.info("Starting Hebrew Text Search service", version=settings.app_version)

    if search_engine.load_index():
        status = search_engine.index_status()
        logger.info("Persisted index reloaded", documents=status.document_count, unique_words=status.unique_words)
    else:
        logger.info("No valid persisted index, searches will scan until an index is built")

    yield

    # Shutdown
    search_engine.cancel_stream()
    search_engine.store.close()
    logger.info("Shutting down Hebrew Text Search service")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Hebrew-aware search engine with composable conditions and an inverted index",
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan
)

# Add middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(GZipMiddleware, minimum_size=1000)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next) -> Response:
    """Log all HTTP requests."""
    start_time = time.time()

    logger.info(
        "Request started",
        method=request.method,
        url=str(request.url),
        client_ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent")
    )

    response = await call_next(request)

    process_time = time.time() - start_time
    logger.info(
        "Request completed",
        method=request.method,
        url=str(request.url),
        status_code=response.status_code,
        process_time_ms=round(process_time * 1000, 2)
    )

    return response


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle global exceptions."""
    logger.error(
        "Unhandled exception",
        method=request.method,
        url=str(request.url),
        error=str(exc),
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error="Internal Server Error",
            message="An unexpected error occurred",
            details={"exception": str(exc)} if settings.debug else None
        ).model_dump(mode="json")
    )


# Include API routers
app.include_router(search_router)
app.include_router(index_router)
app.include_router(documents_router)
app.include_router(share_router)
app.include_router(patterns_router)
app.include_router(health_router)
app.include_router(metrics_router)


# Root endpoint
@app.get("/", summary="Root endpoint", description="Get basic information about the API")
async def root() -> dict:
    """Root endpoint with basic API information."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "description": "Hebrew-aware search engine with composable conditions and an inverted index",
        "docs_url": "/docs",
        "health_url": "/api/v1/health",
        "status": "running"
    }


# API info endpoint
@app.get("/api", summary="API information", description="Get detailed API information")
async def api_info() -> dict:
    """Get detailed API information."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "description": "Hebrew-aware search engine with composable conditions and an inverted index",
        "endpoints": {
            "search": "/api/v1/search",
            "stream": "/api/v1/search/stream",
            "validate": "/api/v1/search/validate",
            "suggestions": "/api/v1/suggestions/{term}",
            "documents": "/api/v1/documents",
            "index": "/api/v1/index/status",
            "share": "/api/v1/share/encode",
            "patterns": "/api/v1/patterns",
            "health": "/api/v1/health",
            "metrics": "/api/v1/metrics"
        },
        "features": [
            "Diacritic and final-letterform insensitive matching",
            "Letter-numeral and digit equivalence",
            "Morphological, gematria and abbreviation variants",
            "Boolean, proximity, word-list and structural pattern conditions",
            "Position and length filters",
            "Persistable inverted index with scan fallback",
            "Cancellable streaming scans",
            "Shareable query tokens"
        ],
        "limits": {
            "max_query_length": settings.max_query_length,
            "max_results": settings.max_results,
            "batch_size": settings.batch_size,
            "index_ttl_hours": settings.index_ttl_hours
        }
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "hebrew_text_search.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers,
        log_level=settings.log_level.lower()
    )
