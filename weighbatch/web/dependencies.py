"""Shared dependencies for weighbatch web routes.

Usage:
    from fastapi import Depends
    from weighbatch.web.dependencies import get_transmission_sink

    @router.post("/batches/{batch_id}/transmit")
    async def transmit(batch_id: int, sink=Depends(get_transmission_sink)):
        ...
"""

from __future__ import annotations

from weighbatch.core.queue import get_queue
from weighbatch.transmission.sap_client import TransmissionSink


def get_transmission_sink() -> TransmissionSink | None:
    """Sink used by synchronous transmissions.

    None lets the service build a configured SapClient per call.
    """
    return None


async def enqueue_job(function: str, *args) -> str | None:
    """Hand a job to the arq worker and return its id."""
    queue = await get_queue()
    try:
        job = await queue.enqueue_job(function, *args)
        return job.job_id if job else None
    finally:
        await queue.close()
