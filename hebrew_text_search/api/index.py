"""Inverted index API endpoints."""

from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Path
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
import structlog

from ..core.errors import CorpusSourceError, IndexBuildInProgressError
from ..models.response import IndexStatusResponse

router = APIRouter(prefix="/api/v1", tags=["index"])
logger = structlog.get_logger(__name__)

# Import the global search engine instance
from ..engine_instance import search_engine


@router.post(
    "/index/build",
    response_model=IndexStatusResponse,
    summary="Build the index",
    description="Build and persist the inverted index over the current corpus"
)
async def build_index() -> IndexStatusResponse:
    """
    Build the inverted index.

    Only one build runs at a time; a second request while a build is in
    progress is rejected with 409.
    """
    def on_progress(processed: int, total: int) -> None:
        if processed == total or processed % 100 == 0:
            logger.debug("Index build progress", processed=processed, total=total)

    try:
        await run_in_threadpool(search_engine.build_index, on_progress)
        return search_engine.index_status()

    except IndexBuildInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except CorpusSourceError as e:
        raise HTTPException(status_code=502, detail=f"Document source failed: {str(e)}")
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Index build failed: {str(e)}"
        )


@router.get(
    "/index/status",
    response_model=IndexStatusResponse,
    summary="Index status",
    description="Get existence, validity, age and size of the inverted index"
)
async def index_status() -> IndexStatusResponse:
    """Describe the current index."""
    try:
        return search_engine.index_status()

    except CorpusSourceError as e:
        raise HTTPException(status_code=502, detail=f"Document source failed: {str(e)}")
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to get index status: {str(e)}"
        )


@router.delete(
    "/index",
    summary="Invalidate the index",
    description="Drop the inverted index; searches fall back to scanning"
)
async def invalidate_index() -> JSONResponse:
    """Invalidate the index and delete its persisted records."""
    try:
        search_engine.invalidate_index()
        return JSONResponse(status_code=200, content={"message": "Index invalidated"})

    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to invalidate index: {str(e)}"
        )


@router.get(
    "/index/lookup/{term}",
    summary="Look up postings",
    description="Get the documents and word positions where a word occurs"
)
async def lookup_term(
    term: str = Path(..., description="Word to look up", min_length=1)
) -> Dict[str, Any]:
    """
    Look up a word's postings in the current index.

    The word is normalized the same way the index was built.
    """
    index = search_engine.index_manager.current
    if index is None:
        raise HTTPException(status_code=404, detail="No index is loaded")

    try:
        postings = index.lookup(term)
        return {
            "term": term,
            "document_count": len(postings),
            "postings": [
                {"document_id": document_id, "positions": positions}
                for document_id, positions in postings
            ],
        }

    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Lookup failed: {str(e)}"
        )
