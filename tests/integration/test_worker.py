"""Tests for the arq worker jobs."""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, patch

import pytest

from weighbatch.config import reset_config
from weighbatch.exceptions import StateConflictError
from weighbatch.worker import WorkerSettings, reconcile_job, transmit_batch_job


def make_ctx(session):
    @asynccontextmanager
    async def session_maker():
        yield session

    return {"session_maker": session_maker}


@pytest.mark.asyncio
async def test_cron_run_reconciles_pending_events(db_session, seed):
    await seed.production_order()
    await seed.scale_event("10")

    result = await reconcile_job(make_ctx(db_session))

    assert result["status"] == "SUCCESS"
    assert result["events_processed"] == 1
    assert result["batches_touched"] == 1
    assert result["batches_created"] == 1


@pytest.mark.asyncio
async def test_cron_run_disabled(db_session, monkeypatch):
    monkeypatch.setenv("RECONCILE_CRON_ENABLED", "false")
    reset_config()

    result = await reconcile_job(make_ctx(db_session))

    assert result == {"status": "disabled"}


@pytest.mark.asyncio
async def test_on_demand_run_ignores_cron_switch(db_session, seed, monkeypatch):
    monkeypatch.setenv("RECONCILE_CRON_ENABLED", "false")
    reset_config()
    await seed.production_order()

    result = await reconcile_job(make_ctx(db_session), "PO-1001")

    assert result["status"] == "NOOP"


@pytest.mark.asyncio
async def test_transmit_job_reports_rejection(db_session):
    with patch(
        "weighbatch.worker.begin_transmission",
        new_callable=AsyncMock,
        side_effect=StateConflictError("Batch must be processed", current_status="pending"),
    ):
        result = await transmit_batch_job(make_ctx(db_session), 7)

    assert result["status"] == "rejected"
    assert result["code"] == "STATE_CONFLICT"


def test_worker_settings():
    names = {function.__name__ for function in WorkerSettings.functions}
    assert names == {"reconcile_job", "transmit_batch_job"}
    assert len(WorkerSettings.cron_jobs) == 1
