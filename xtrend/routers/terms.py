"""Term history endpoint.

GET /api/v1/terms/{term_id}/history?hours=24 -- rank of a term per place
and capture over the last `hours`, oldest first.
"""

from fastapi import APIRouter, HTTPException, Query

from xtrend.dependencies import Store
from xtrend.schemas.trends import HistoryPointResponse, TermHistoryResponse
from xtrend.services.history import get_term_history

router = APIRouter(prefix="/api/v1", tags=["terms"])


@router.get("/terms/{term_id}/history", response_model=TermHistoryResponse)
async def term_history(
    term_id: int,
    store: Store,
    hours: int = Query(default=24, ge=1, le=168),
) -> TermHistoryResponse:
    result = await get_term_history(store, term_id, hours=hours)
    if result is None:
        raise HTTPException(status_code=404, detail="Term not found")
    return TermHistoryResponse(
        term_id=result.term.term_id,
        term_text=result.term.term_text,
        term_norm=result.term.term_norm,
        history=[HistoryPointResponse.model_validate(p) for p in result.history],
    )
