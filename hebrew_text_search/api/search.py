"""Search API endpoints."""

import json
from typing import AsyncIterator, List, Sequence

from fastapi import APIRouter, HTTPException, Path, Query
from fastapi.responses import JSONResponse, StreamingResponse

from ..config import get_settings
from ..core.errors import CorpusSourceError, NoCriteriaError
from ..models.request import SearchCondition, SearchRequest, ValidateRequest
from ..models.response import SearchResponse, ValidationResponse

router = APIRouter(prefix="/api/v1", tags=["search"])
settings = get_settings()

# Import the global search engine instance
from ..engine_instance import search_engine


def _check_query_length(conditions: Sequence[SearchCondition]) -> None:
    """Reject terms longer than the configured maximum."""
    for condition in conditions:
        terms = [getattr(condition, "term", "")]
        if condition.operator == "near":
            terms.append(condition.near.word)
        elif condition.operator == "list":
            terms.extend(condition.list_spec.words)
        elif condition.operator == "pattern":
            terms.append(condition.pattern.custom_expression or "")

        if any(len(term) > settings.max_query_length for term in terms):
            raise HTTPException(
                status_code=400,
                detail=f"Query too long. Maximum length is {settings.max_query_length} characters"
            )


@router.post(
    "/search",
    response_model=SearchResponse,
    summary="Search documents or text",
    description="Run a structured query over the corpus or over ad hoc text"
)
async def search(request: SearchRequest) -> SearchResponse:
    """
    Search with composable conditions.

    Uses the inverted index when it is valid and allowed, otherwise scans
    the corpus in batches. Skipped conditions and rules are reported as warnings.
    """
    try:
        _check_query_length(request.conditions)

        return search_engine.search(
            request.conditions,
            filter_rules=request.filter_rules,
            options=request.options,
            text=request.text,
        )

    except HTTPException:
        raise
    except NoCriteriaError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CorpusSourceError as e:
        raise HTTPException(status_code=502, detail=f"Document source failed: {str(e)}")
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Search failed: {str(e)}"
        )


@router.post(
    "/search/stream",
    summary="Streaming search",
    description="Scan the corpus in batches, streaming progress and results as NDJSON"
)
async def search_stream(request: SearchRequest) -> StreamingResponse:
    """
    Stream a batched scan.

    Each line is a JSON event: one progress event per batch carrying that
    batch's results, then a single completion event.
    """
    try:
        _check_query_length(request.conditions)
        events = search_engine.stream(
            request.conditions,
            filter_rules=request.filter_rules,
            options=request.options,
        )

    except HTTPException:
        raise
    except (NoCriteriaError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Streaming search failed: {str(e)}"
        )

    async def ndjson() -> AsyncIterator[str]:
        async for event in events:
            yield json.dumps(event.to_dict(), ensure_ascii=False) + "\n"

    return StreamingResponse(ndjson(), media_type="application/x-ndjson")


@router.post(
    "/search/cancel",
    summary="Cancel streaming search",
    description="Stop the running streaming search at its next batch boundary"
)
async def cancel_search() -> JSONResponse:
    """Cancel the running streaming search."""
    search_engine.cancel_stream()
    return JSONResponse(
        status_code=200,
        content={"message": "Streaming search cancelled", "generation": search_engine.coordinator.generation}
    )


@router.post(
    "/search/validate",
    response_model=ValidationResponse,
    summary="Validate rules",
    description="Evaluate each condition and filter separately against a sample text"
)
async def validate_rules(request: ValidateRequest) -> ValidationResponse:
    """
    Explain how each condition and filter behaves on a sample text.

    Useful for checking a query before running it over the corpus.
    """
    try:
        _check_query_length(request.conditions)
        return search_engine.validate(request.conditions, request.text, request.filter_rules)

    except HTTPException:
        raise
    except NoCriteriaError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Validation failed: {str(e)}"
        )


@router.get(
    "/suggestions/{term}",
    response_model=List[str],
    summary="Get search suggestions",
    description="Get indexed words close to a misspelled or unmatched term"
)
async def get_suggestions(
    term: str = Path(..., description="The term to get suggestions for", min_length=1),
    max_suggestions: int = Query(5, ge=1, le=20, description="Maximum number of suggestions")
) -> List[str]:
    """
    Get suggestions for a term.

    Suggestions come from the index vocabulary; without an index the list is empty.
    """
    try:
        return search_engine.suggest(term, max_suggestions)

    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to get suggestions: {str(e)}"
        )
