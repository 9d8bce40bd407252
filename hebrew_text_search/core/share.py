"""Shareable query tokens: query state packed into a single URL parameter."""

import base64
import binascii
import json
from typing import Optional, Sequence
from urllib.parse import quote, unquote, urlencode

import structlog
from pydantic import ValidationError

from ..models.request import FilterRules, SearchCondition
from ..models.response import SharedQuery

logger = structlog.get_logger(__name__)

SHARE_PARAMETER = "search"


def encode_shared_query(
    conditions: Sequence[SearchCondition] = (),
    filter_rules: Optional[FilterRules] = None,
    text: Optional[str] = None,
) -> str:
    """
    Encode query state into an opaque token.

    The token is base64 over the percent-encoded compact JSON, so it stays ASCII
    for any script. Empty parts are left out.

    Args:
        conditions: Search conditions
        filter_rules: Filter rules
        text: Ad hoc text

    Returns:
        Base64 token
    """
    shared = SharedQuery(conditions=list(conditions), filter_rules=filter_rules, text=text)
    payload = shared.model_dump(mode="json", by_alias=True, exclude_none=True)
    if not payload.get("conditions"):
        payload.pop("conditions", None)

    raw = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    return base64.b64encode(quote(raw, safe="").encode("ascii")).decode("ascii")


def share_query_string(token: str) -> str:
    """URL query string carrying a token."""
    return urlencode({SHARE_PARAMETER: token})


def decode_shared_query(token: Optional[str]) -> Optional[SharedQuery]:
    """
    Decode a token produced by ``encode_shared_query``.

    Unknown fields are ignored. Any malformed payload is rejected as a whole.

    Args:
        token: Base64 token (standard or URL-safe alphabet, padding optional)

    Returns:
        SharedQuery, or None if the token cannot be decoded
    """
    if not token:
        return None

    try:
        cleaned = token.strip().translate(str.maketrans("-_", "+/"))
        cleaned += "=" * (-len(cleaned) % 4)
        raw = base64.b64decode(cleaned, validate=True).decode("ascii")
        data = json.loads(unquote(raw, errors="strict"))
        if not isinstance(data, dict):
            raise ValueError("Shared query must be an object")
        return SharedQuery.model_validate(data)
    except (binascii.Error, UnicodeDecodeError, ValueError, ValidationError) as e:
        logger.warning("Shared query rejected", error=str(e))
        return None
