"""Tests for weighbatch.web.routes.health - Health check route."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from weighbatch.db.connection import get_db
from weighbatch.web.routes import health


@pytest.fixture
def mock_db():
    return AsyncMock()


@pytest.fixture
def client(mock_db):
    test_app = FastAPI()
    test_app.include_router(health.router)

    async def override_get_db():
        yield mock_db

    test_app.dependency_overrides[get_db] = override_get_db
    return TestClient(test_app)


def test_health_ok(client, mock_db):
    backlog = MagicMock()
    backlog.scalar_one.return_value = 12
    mock_db.execute.side_effect = [MagicMock(), backlog]

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "database": "connected",
        "unsummarized_events": 12,
    }


def test_health_reports_database_error(client, mock_db):
    mock_db.execute.side_effect = ConnectionError("connection refused")

    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "error"
    assert body["database"] == "disconnected"
    assert "connection refused" in body["detail"]
