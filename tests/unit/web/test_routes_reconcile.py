"""Tests for weighbatch.web.routes.reconcile - Reconciliation routes."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from weighbatch.models import ReconcileResult
from weighbatch.web.app import register_exception_handlers
from weighbatch.web.routes import reconcile


@pytest.fixture
def app():
    test_app = FastAPI()
    test_app.include_router(reconcile.router)
    register_exception_handlers(test_app)
    return test_app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def mock_db_session():
    """Mock database session with async context manager."""
    session = AsyncMock()
    session.execute = AsyncMock()

    async_cm = AsyncMock()
    async_cm.__aenter__.return_value = session
    async_cm.__aexit__.return_value = None

    return async_cm


class TestRunReconcile:
    """Tests for POST /api/reconcile."""

    @patch("weighbatch.web.routes.reconcile.reconcile", new_callable=AsyncMock)
    @patch("weighbatch.web.routes.reconcile.get_session")
    def test_inline_run(self, mock_get_session, mock_reconcile, client, mock_db_session):
        mock_get_session.return_value = mock_db_session
        mock_reconcile.return_value = ReconcileResult(
            run_id=4, batches_created=1, items_created=2, events_processed=5
        )

        response = client.post("/api/reconcile", json={})

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "SUCCESS"
        assert body["events_processed"] == 5
        assert mock_reconcile.call_args.kwargs == {
            "production_order_number": None,
            "trigger": "api",
        }

    @patch("weighbatch.web.routes.reconcile.reconcile", new_callable=AsyncMock)
    @patch("weighbatch.web.routes.reconcile.get_session")
    def test_on_demand_run_for_one_order(
        self, mock_get_session, mock_reconcile, client, mock_db_session
    ):
        mock_get_session.return_value = mock_db_session
        mock_reconcile.return_value = ReconcileResult(status="NOOP")

        response = client.post("/api/reconcile", json={"production_order_number": "PO-1001"})

        assert response.status_code == 200
        assert response.json()["status"] == "NOOP"
        assert mock_reconcile.call_args.kwargs["production_order_number"] == "PO-1001"

    @patch("weighbatch.web.routes.reconcile.enqueue_job", new_callable=AsyncMock)
    def test_background_run(self, mock_enqueue, client):
        mock_enqueue.return_value = "job-42"

        response = client.post(
            "/api/reconcile", json={"production_order_number": "PO-1001", "background": True}
        )

        assert response.status_code == 200
        assert response.json() == {"job_id": "job-42", "status": "queued"}
        mock_enqueue.assert_awaited_once_with("reconcile_job", "PO-1001")


class TestListRuns:
    @patch("weighbatch.web.routes.reconcile.get_session")
    def test_runs(self, mock_get_session, client, mock_db_session):
        mock_get_session.return_value = mock_db_session
        session = mock_db_session.__aenter__.return_value

        run = MagicMock()
        run.id = 4
        run.run_timestamp = datetime(2026, 10, 18, 8, 0, tzinfo=timezone.utc)
        run.trigger = "cron"
        run.production_order_number = None
        run.status = "SUCCESS"
        run.batches_created = 1
        run.batches_reused = 0
        run.items_created = 2
        run.items_updated = 0
        run.events_processed = 5
        run.groups_skipped = 0
        run.message = None
        run.duration_seconds = 0.25

        mock_result = MagicMock()
        mock_result.scalars.return_value.all.return_value = [run]
        session.execute.return_value = mock_result

        response = client.get("/api/reconcile/runs?limit=5")

        assert response.status_code == 200
        body = response.json()
        assert body[0]["id"] == 4
        assert body[0]["run_timestamp"] == "2026-10-18T08:00:00+00:00"
        assert body[0]["trigger"] == "cron"

    def test_runs_limit_bounds(self, client):
        response = client.get("/api/reconcile/runs?limit=0")
        assert response.status_code == 422
