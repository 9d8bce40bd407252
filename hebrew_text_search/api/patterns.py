"""Pattern preset API endpoints."""

from fastapi import APIRouter, HTTPException, Path

from ..models.response import PatternListResponse, PatternPresetResponse

router = APIRouter(prefix="/api/v1", tags=["patterns"])

# Import the global search engine instance
from ..engine_instance import search_engine


def _preset_response(preset) -> PatternPresetResponse:
    return PatternPresetResponse(
        id=preset.id, label=preset.label, description=preset.description, expression=preset.expression
    )


@router.get(
    "/patterns",
    response_model=PatternListResponse,
    summary="List pattern presets",
    description="Get the versioned table of structural pattern presets"
)
async def list_patterns() -> PatternListResponse:
    """List all pattern presets."""
    library = search_engine.patterns
    return PatternListResponse(
        version=library.version,
        presets=[_preset_response(preset) for preset in library.presets()],
    )


@router.get(
    "/patterns/{preset_id}",
    response_model=PatternPresetResponse,
    summary="Get a pattern preset",
    description="Get one structural pattern preset by id"
)
async def get_pattern(
    preset_id: str = Path(..., description="Preset identifier")
) -> PatternPresetResponse:
    """Get a single pattern preset."""
    preset = search_engine.patterns.get(preset_id)
    if preset is None:
        raise HTTPException(
            status_code=404,
            detail=f"Pattern preset '{preset_id}' not found"
        )
    return _preset_response(preset)
