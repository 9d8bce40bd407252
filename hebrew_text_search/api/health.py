"""Health check and monitoring API endpoints."""

import time
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from ..models.response import HealthResponse
from ..config import get_settings

router = APIRouter(prefix="/api/v1", tags=["health"])
settings = get_settings()

# Import the global search engine instance
from ..engine_instance import search_engine

# Track application start time
app_start_time = time.time()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health status of the search engine service"
)
async def health_check() -> HealthResponse:
    """
    Perform a health check on the search engine service.

    A missing or stale index is reported as degraded, since searches still
    work by scanning.
    """
    try:
        uptime = time.time() - app_start_time

        dependencies = {
            "search_engine": "healthy",
            "document_source": "healthy",
            "index": "healthy",
        }

        try:
            search_engine.source.count()
        except Exception:
            dependencies["document_source"] = "unhealthy"

        try:
            status = search_engine.index_status()
            if not status.valid:
                dependencies["index"] = "degraded"
        except Exception:
            dependencies["index"] = "unhealthy"

        # Determine overall status
        if all(state == "healthy" for state in dependencies.values()):
            overall = "healthy"
        elif any(state == "unhealthy" for state in dependencies.values()):
            overall = "unhealthy"
        else:
            overall = "degraded"

        return HealthResponse(
            status=overall,
            version=settings.app_version,
            uptime=uptime,
            dependencies=dependencies
        )

    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Health check failed: {str(e)}"
        )


@router.get(
    "/health/ready",
    summary="Readiness check",
    description="Check if the service is ready to accept requests"
)
async def readiness_check() -> JSONResponse:
    """
    Check if the service is ready to accept requests.

    Used by load balancers and orchestration systems.
    """
    try:
        stats = search_engine.get_stats()

        return JSONResponse(
            status_code=200,
            content={
                "status": "ready",
                "timestamp": _now(),
                "documents": stats["documents"],
                "index_loaded": stats["index_loaded"],
            }
        )

    except Exception as e:
        return JSONResponse(
            status_code=503,
            content={
                "status": "not_ready",
                "error": str(e),
                "timestamp": _now()
            }
        )


@router.get(
    "/health/live",
    summary="Liveness check",
    description="Check if the service is alive and responding"
)
async def liveness_check() -> JSONResponse:
    """Check if the service process is alive."""
    return JSONResponse(
        status_code=200,
        content={
            "status": "alive",
            "timestamp": _now(),
            "uptime": time.time() - app_start_time
        }
    )


@router.get(
    "/status",
    summary="Service status",
    description="Get detailed status information about the service"
)
async def service_status() -> JSONResponse:
    """
    Get detailed status information about the service.

    Includes configuration, statistics and index status.
    """
    try:
        stats = search_engine.get_stats()

        config_info = {
            "max_results": settings.max_results,
            "max_query_length": settings.max_query_length,
            "batch_size": settings.batch_size,
            "index_ttl_hours": settings.index_ttl_hours,
            "persistent_index": bool(settings.index_store_path),
            "debug": settings.debug
        }

        return JSONResponse(
            status_code=200,
            content={
                "service": {
                    "name": settings.app_name,
                    "version": settings.app_version,
                    "status": "running",
                    "uptime": time.time() - app_start_time,
                    "start_time": datetime.fromtimestamp(app_start_time, timezone.utc).isoformat()
                },
                "configuration": config_info,
                "statistics": stats,
                "index": search_engine.index_status().model_dump(mode="json"),
                "timestamp": _now()
            }
        )

    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to get service status: {str(e)}"
        )
