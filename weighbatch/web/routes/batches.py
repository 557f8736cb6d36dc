"""Weight summary batch routes.

Routes:
- GET  /api/batches                     - List batches with filters and pagination
- GET  /api/batches/stats               - Dashboard statistics
- POST /api/batches/finalize            - Apply item statuses reported by SAP
- GET  /api/batches/{batch_id}          - Batch detail with items
- POST /api/batches/{batch_id}/promote  - pending -> processed
- POST /api/batches/{batch_id}/reopen   - failed -> processed
- POST /api/batches/{batch_id}/transmit - Send to SAP (or enqueue)
"""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query

from weighbatch.batching.queries import batch_statistics, fetch_batch_detail, fetch_batches
from weighbatch.db.connection import get_session
from weighbatch.models import BatchFilter, TransmissionStatus
from weighbatch.transmission.service import (
    begin_transmission,
    finalize_items,
    promote_batch,
    reopen_batch,
)
from weighbatch.web.dependencies import enqueue_job, get_transmission_sink
from weighbatch.web.models import (
    BatchActionRequest,
    EnqueuedJobResponse,
    FinalizeItemsRequest,
    TransmitRequest,
)

router = APIRouter(prefix="/api/batches", tags=["batches"])


@router.get("")
async def list_batches(
    status: TransmissionStatus | None = Query(default=None),
    detail_id: int | None = Query(default=None),
    search: str | None = Query(default=None),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    page: int = Query(default=0, ge=0),
    page_size: int = Query(default=10, ge=1, le=100),
):
    """List live batches, newest first."""
    filters = BatchFilter(
        status=status,
        production_order_detail_id=detail_id,
        search=search,
        start_date=start_date,
        end_date=end_date,
    )
    async with get_session() as session:
        return await fetch_batches(session, filters, page=page, page_size=page_size)


@router.get("/stats")
async def stats():
    async with get_session() as session:
        return await batch_statistics(session)


@router.post("/finalize")
async def finalize(request: FinalizeItemsRequest):
    """Record SAP posting results per item and roll them up to the batches."""
    async with get_session() as session:
        return await finalize_items(session, request.updates, actor=request.actor)


@router.get("/{batch_id}")
async def batch_detail(batch_id: int, include_deleted: bool = Query(default=False)):
    async with get_session() as session:
        return await fetch_batch_detail(session, batch_id, include_deleted_items=include_deleted)


@router.post("/{batch_id}/promote")
async def promote(batch_id: int, request: BatchActionRequest | None = None):
    actor = request.actor if request else "system"
    async with get_session() as session:
        return await promote_batch(session, batch_id, actor=actor)


@router.post("/{batch_id}/reopen")
async def reopen(batch_id: int, request: BatchActionRequest | None = None):
    actor = request.actor if request else "system"
    async with get_session() as session:
        return await reopen_batch(session, batch_id, actor=actor)


@router.post("/{batch_id}/transmit")
async def transmit(
    batch_id: int,
    request: TransmitRequest | None = None,
    sink=Depends(get_transmission_sink),
):
    """Send a processed batch's pending items to SAP.

    The response carries the final batch status; a failed send is reported
    as ``failed`` rather than as an HTTP error.
    """
    request = request or TransmitRequest()
    if request.background:
        job_id = await enqueue_job("transmit_batch_job", batch_id, request.actor)
        return EnqueuedJobResponse(job_id=job_id)

    async with get_session() as session:
        return await begin_transmission(session, batch_id, sink=sink, actor=request.actor)
