"""Metrics and monitoring API endpoints."""

from datetime import datetime, timezone

import psutil
from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from ..models.response import MetricsResponse

router = APIRouter(prefix="/api/v1", tags=["metrics"])

# Import the global search engine instance
from ..engine_instance import search_engine


@router.get(
    "/metrics",
    response_model=MetricsResponse,
    summary="Get performance metrics",
    description="Get query counts, response times and memory usage"
)
async def get_metrics() -> MetricsResponse:
    """
    Get performance metrics for the search engine.

    Counts are split by the path that served each query.
    """
    try:
        stats = search_engine.get_stats()

        memory_info = psutil.Process().memory_info()
        memory_usage_mb = memory_info.rss / (1024 * 1024)

        return MetricsResponse(
            total_queries=stats["total_queries"],
            index_queries=stats["index_queries"],
            scan_queries=stats["scan_queries"],
            no_criteria_rejections=stats["no_criteria_rejections"],
            average_response_time_ms=stats["average_execution_time_ms"],
            documents=stats["documents"],
            memory_usage_mb=memory_usage_mb
        )

    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to get metrics: {str(e)}"
        )


@router.get(
    "/metrics/detailed",
    summary="Get detailed metrics",
    description="Get query, index and system metrics"
)
async def get_detailed_metrics() -> JSONResponse:
    """Get detailed metrics including index size and system resource usage."""
    try:
        stats = search_engine.get_stats()
        status = search_engine.index_status()
        memory_info = psutil.virtual_memory()

        return JSONResponse(
            status_code=200,
            content={
                "query_metrics": {
                    "total_queries": stats["total_queries"],
                    "index_queries": stats["index_queries"],
                    "scan_queries": stats["scan_queries"],
                    "text_queries": stats["text_queries"],
                    "no_criteria_rejections": stats["no_criteria_rejections"],
                    "zero_result_queries": stats["zero_result_queries"],
                    "warnings": stats["warnings"],
                    "average_response_time_ms": stats["average_execution_time_ms"],
                    "total_execution_time_ms": stats["total_execution_time"]
                },
                "index_metrics": {
                    "exists": status.exists,
                    "valid": status.valid,
                    "document_count": status.document_count,
                    "total_words": status.total_words,
                    "unique_words": status.unique_words
                },
                "system_metrics": {
                    "process_memory_mb": psutil.Process().memory_info().rss / (1024 * 1024),
                    "memory_usage_percent": memory_info.percent,
                    "available_memory_mb": memory_info.available / (1024 * 1024)
                },
                "timestamp": datetime.now(timezone.utc).isoformat()
            }
        )

    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to get detailed metrics: {str(e)}"
        )
