"""Prometheus metrics and the /metrics endpoint."""

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

ingest_runs = Counter(
    "xtrend_ingest_runs_total",
    "Ingest runs by final status",
    ["status"],
)
ingest_places = Counter(
    "xtrend_ingest_places_total",
    "Per-place ingest outcomes",
    ["status"],
)
ingest_duration = Histogram(
    "xtrend_ingest_duration_seconds",
    "Wall time of one ingest run",
    buckets=[1, 5, 10, 30, 60, 120, 300],
)
fetch_attempts = Counter(
    "xtrend_fetch_attempts_total",
    "Upstream trend fetch attempts by outcome",
    ["outcome"],
)


async def metrics_endpoint() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
