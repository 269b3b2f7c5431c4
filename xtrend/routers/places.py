"""Place and trend view endpoints.

GET /api/v1/places                      -- active places
GET /api/v1/places/{slug}/trends        -- trend views at hour offsets

`offsets` is a comma-separated subset of 0,1,3,6,12,24,48,72. Offset 0 is
the live view and carries rank_change / duration_hours / region_count.
"""

from fastapi import APIRouter, HTTPException, Query

from xtrend.dependencies import Store
from xtrend.schemas.trends import (
    OffsetViewResponse,
    PlaceResponse,
    PlaceTrendsResponse,
    TrendItemResponse,
)
from xtrend.services.signals import VALID_OFFSETS, TemporalSignalEngine

router = APIRouter(prefix="/api/v1", tags=["places"])


def parse_offsets(raw: str) -> list[int]:
    """Parse "0,1,3" into [0, 1, 3]; raises ValueError on anything else."""
    offsets = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        value = int(part)
        if value not in VALID_OFFSETS:
            raise ValueError(f"offset {value} is not one of {list(VALID_OFFSETS)}")
        offsets.append(value)
    if not offsets:
        raise ValueError("at least one offset is required")
    return sorted(set(offsets))


@router.get("/places", response_model=list[PlaceResponse])
async def list_places(store: Store) -> list[PlaceResponse]:
    places = await store.get_active_places()
    return [PlaceResponse.model_validate(p) for p in places]


@router.get("/places/{slug}/trends", response_model=PlaceTrendsResponse)
async def get_place_trends(
    slug: str,
    store: Store,
    offsets: str = Query(default="0", description="Comma-separated hour offsets"),
) -> PlaceTrendsResponse:
    try:
        wanted = parse_offsets(offsets)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    engine = TemporalSignalEngine(store)
    result = await engine.get_place_views(slug, wanted)
    if result is None:
        raise HTTPException(status_code=404, detail=f"Unknown place: {slug}")

    views = []
    for hours in wanted:
        view = result.views.get(hours)
        if view is None:
            views.append(OffsetViewResponse(offset=hours))
            continue
        views.append(
            OffsetViewResponse(
                offset=hours,
                captured_at=view.captured_at,
                trends=[TrendItemResponse.model_validate(t) for t in view.trends],
            )
        )
    return PlaceTrendsResponse(place=PlaceResponse.model_validate(result.place), views=views)
