from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Response

from xtrend import __version__
from xtrend.config import settings
from xtrend.logging_config import configure_logging
from xtrend.metrics import metrics_endpoint
from xtrend.routers import ingest, places, terms

log = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Configure structured logging before anything else
    configure_logging()
    log.info("app_started", app_name=settings.app_name, version=__version__)
    try:
        yield
    finally:
        from xtrend.database import engine

        await engine.dispose()


app = FastAPI(title="XTrend API", version=__version__, lifespan=lifespan)

app.include_router(ingest.router)
app.include_router(places.router)
app.include_router(terms.router)

# Prometheus metrics endpoint
app.get("/metrics")(metrics_endpoint)


@app.get("/health")
async def health_check(response: Response):
    """Health check -- verifies database connectivity.

    Returns 200 when healthy, 503 otherwise.
    """
    from xtrend.database import async_session_factory
    from sqlalchemy import text

    checks = {}
    overall_healthy = True

    try:
        async with async_session_factory() as db:
            await db.execute(text("SELECT 1"))
        checks["database"] = {"status": "healthy"}
    except Exception as e:
        checks["database"] = {"status": "unhealthy", "error": str(e)}
        overall_healthy = False

    response.status_code = 200 if overall_healthy else 503
    return {"status": "ok" if overall_healthy else "unhealthy", "checks": checks}
