"""Shareable query API endpoints."""

from fastapi import APIRouter, HTTPException, Query

from ..core.share import decode_shared_query, encode_shared_query, share_query_string
from ..models.request import ShareEncodeRequest
from ..models.response import ShareEncodeResponse, SharedQuery

router = APIRouter(prefix="/api/v1", tags=["share"])


@router.post(
    "/share/encode",
    response_model=ShareEncodeResponse,
    summary="Encode a shareable query",
    description="Pack conditions, filter rules and optional text into a URL-safe token"
)
async def encode_share(request: ShareEncodeRequest) -> ShareEncodeResponse:
    """Encode query state into an opaque token and query string."""
    try:
        token = encode_shared_query(request.conditions, request.filter_rules, request.text)
        return ShareEncodeResponse(token=token, query_string=share_query_string(token))

    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to encode query: {str(e)}"
        )


@router.get(
    "/share/decode",
    response_model=SharedQuery,
    response_model_by_alias=False,
    summary="Decode a shareable query",
    description="Decode a token; malformed tokens are rejected as a whole"
)
async def decode_share(
    search: str = Query(..., min_length=1, description="Token from the 'search' URL parameter")
) -> SharedQuery:
    """
    Decode a shared query token.

    Unknown fields are ignored; a malformed token yields 400 and nothing is applied.
    """
    shared = decode_shared_query(search)
    if shared is None:
        raise HTTPException(status_code=400, detail="Invalid shared query token")
    return shared
