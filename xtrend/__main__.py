"""Entrypoint for `python -m xtrend`.

    python -m xtrend             run one ingestion cycle (default)
    python -m xtrend ingest      same
    python -m xtrend audit       report duplicate term rows in recent snapshots
    python -m xtrend cleanup     delete those duplicates, keeping the lowest position
    python -m xtrend serve       run the HTTP API with uvicorn

`ingest` prints the run result as JSON and exits 1 when the run failed, so
a cron or Cloud Scheduler job sees the failure.
"""

import argparse
import asyncio
import json
import sys

import structlog

from xtrend.config import settings
from xtrend.logging_config import configure_logging
from xtrend.schemas.trends import IngestResponse
from xtrend.services.audit import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_SCAN_LIMIT,
    cleanup_duplicate_terms,
    find_duplicate_terms,
)
from xtrend.services.ingest import IngestionOrchestrator
from xtrend.services.x_api import TrendFetchClient
from xtrend.store import SqlSnapshotStore

log = structlog.get_logger(__name__)


class XTrendConfigError(Exception):
    """Raised when a required setting is missing."""


async def _ingest() -> int:
    if not settings.x_bearer_token:
        raise XTrendConfigError("Missing required environment variable: X_BEARER_TOKEN")

    from xtrend.database import async_session_factory, engine

    store = SqlSnapshotStore(async_session_factory)
    try:
        async with TrendFetchClient() as client:
            result = await IngestionOrchestrator(store, client).run_ingest(settings.x_bearer_token)
    finally:
        await engine.dispose()

    body = IngestResponse.model_validate(result).model_dump(mode="json")
    print(json.dumps(body, ensure_ascii=False, indent=2))
    return 1 if body["status"] == "failed" else 0


async def _audit(limit: int) -> int:
    from xtrend.database import async_session_factory, engine

    try:
        groups = await find_duplicate_terms(SqlSnapshotStore(async_session_factory), limit=limit)
    finally:
        await engine.dispose()

    for group in groups[:20]:
        print(
            f"captured_at={group.captured_at.isoformat()} woeid={group.woeid} "
            f"term_id={group.term_id} positions={group.positions}"
        )
    if len(groups) > 20:
        print(f"... and {len(groups) - 20} more duplicate groups")
    return 1 if groups else 0


async def _cleanup(limit: int, batch_size: int) -> int:
    from xtrend.database import async_session_factory, engine

    try:
        deleted = await cleanup_duplicate_terms(
            SqlSnapshotStore(async_session_factory), limit=limit, batch_size=batch_size
        )
    finally:
        await engine.dispose()

    print(f"deleted {deleted} duplicate snapshot rows")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="xtrend")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("ingest", help="run one ingestion cycle")
    audit = sub.add_parser("audit", help="report duplicate snapshot rows")
    audit.add_argument("--limit", type=int, default=DEFAULT_SCAN_LIMIT)
    cleanup = sub.add_parser("cleanup", help="delete duplicate snapshot rows")
    cleanup.add_argument("--limit", type=int, default=DEFAULT_SCAN_LIMIT)
    cleanup.add_argument("--batch-size", type=int, default=DEFAULT_BATCH_SIZE)
    sub.add_parser("serve", help="run the HTTP API")
    args = parser.parse_args(argv)

    configure_logging()

    if args.command == "serve":
        import uvicorn

        uvicorn.run("xtrend.main:app", host="0.0.0.0", port=settings.port)
        return 0

    try:
        if args.command == "audit":
            return asyncio.run(_audit(args.limit))
        if args.command == "cleanup":
            return asyncio.run(_cleanup(args.limit, args.batch_size))
        return asyncio.run(_ingest())
    except XTrendConfigError as exc:
        log.error("config_error", error=str(exc))
        return 1


if __name__ == "__main__":
    sys.exit(main())
