"""Tests for the health check and metrics endpoints."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

import xtrend.database
from xtrend.main import app


@pytest.fixture
def client():
    """Test client for health check tests."""
    return TestClient(app)


def session_factory(session):
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = session
    return factory


def test_health_check_healthy(client, monkeypatch):
    """Health check returns 200 when the database answers."""
    session = AsyncMock()
    monkeypatch.setattr(xtrend.database, "async_session_factory", session_factory(session))

    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["checks"]["database"]["status"] == "healthy"
    session.execute.assert_awaited_once()


def test_health_check_database_down(client, monkeypatch):
    """Health check returns 503 when the database is unreachable."""
    session = AsyncMock()
    session.execute = AsyncMock(side_effect=Exception("Connection refused"))
    monkeypatch.setattr(xtrend.database, "async_session_factory", session_factory(session))

    response = client.get("/health")

    assert response.status_code == 503
    data = response.json()
    assert data["status"] == "unhealthy"
    assert data["checks"]["database"]["status"] == "unhealthy"
    assert "Connection refused" in data["checks"]["database"]["error"]


def test_metrics_endpoint(client):
    response = client.get("/metrics")

    assert response.status_code == 200
    assert "xtrend_ingest_runs_total" in response.text
