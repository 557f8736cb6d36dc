"""Reconciliation routes.

Routes:
- POST /api/reconcile       - Run (or enqueue) a reconciliation
- GET  /api/reconcile/runs  - Recent reconciliation runs
"""

from __future__ import annotations

from fastapi import APIRouter, Query
from sqlalchemy import select

from weighbatch.batching.reconciler import reconcile
from weighbatch.db.connection import get_session
from weighbatch.db.models import ReconcileRunModel
from weighbatch.web.dependencies import enqueue_job
from weighbatch.web.models import EnqueuedJobResponse, ReconcileRequest

router = APIRouter(prefix="/api/reconcile", tags=["reconcile"])


@router.post("")
async def run_reconcile(request: ReconcileRequest):
    """Fold unsummarized scale events into batches.

    With ``background`` the run is handed to the arq worker instead.
    """
    if request.background:
        job_id = await enqueue_job("reconcile_job", request.production_order_number)
        return EnqueuedJobResponse(job_id=job_id)

    async with get_session() as session:
        return await reconcile(
            session,
            production_order_number=request.production_order_number,
            trigger="api",
        )


@router.get("/runs")
async def list_runs(limit: int = Query(default=20, ge=1, le=200)):
    """Most recent reconciliation runs, newest first."""
    async with get_session() as session:
        result = await session.execute(
            select(ReconcileRunModel)
            .order_by(ReconcileRunModel.run_timestamp.desc(), ReconcileRunModel.id.desc())
            .limit(limit)
        )
        runs = result.scalars().all()

    return [
        {
            "id": run.id,
            "run_timestamp": run.run_timestamp.isoformat(),
            "trigger": run.trigger,
            "production_order_number": run.production_order_number,
            "status": run.status,
            "batches_created": run.batches_created,
            "batches_reused": run.batches_reused,
            "items_created": run.items_created,
            "items_updated": run.items_updated,
            "events_processed": run.events_processed,
            "groups_skipped": run.groups_skipped,
            "message": run.message,
            "duration_seconds": run.duration_seconds,
        }
        for run in runs
    ]
