"""FastAPI dependencies: store, fetch client, bearer token."""

from typing import Annotated, AsyncIterator

from fastapi import Depends, HTTPException

from xtrend.config import settings
from xtrend.database import async_session_factory
from xtrend.services.x_api import TrendFetchClient
from xtrend.store import SnapshotStore, SqlSnapshotStore


def get_store() -> SnapshotStore:
    return SqlSnapshotStore(async_session_factory)


async def get_fetch_client() -> AsyncIterator[TrendFetchClient]:
    async with TrendFetchClient() as client:
        yield client


def get_bearer_token() -> str:
    if not settings.x_bearer_token:
        raise HTTPException(status_code=500, detail="X_BEARER_TOKEN is not configured")
    return settings.x_bearer_token


Store = Annotated[SnapshotStore, Depends(get_store)]
FetchClient = Annotated[TrendFetchClient, Depends(get_fetch_client)]
BearerToken = Annotated[str, Depends(get_bearer_token)]
