"""Ingestion trigger endpoint.

POST /ingest -- run one ingestion cycle. Called by the hourly scheduler;
the response status is the scheduler's success signal (500 on a failed run).
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from xtrend.dependencies import BearerToken, FetchClient, Store
from xtrend.domain import RunStatus
from xtrend.schemas.trends import IngestResponse
from xtrend.services.ingest import IngestionOrchestrator

router = APIRouter(tags=["ingest"])


@router.post("/ingest", response_model=IngestResponse)
async def trigger_ingest(
    store: Store,
    fetch_client: FetchClient,
    bearer_token: BearerToken,
) -> JSONResponse:
    orchestrator = IngestionOrchestrator(store, fetch_client)
    result = await orchestrator.run_ingest(bearer_token)
    body = IngestResponse.model_validate(result).model_dump(mode="json")
    return JSONResponse(
        status_code=500 if result.status is RunStatus.failed else 200,
        content=body,
    )
