import logging
import os
from typing import Any

from arq.connections import RedisSettings
from arq.cron import cron

from weighbatch.batching.reconciler import reconcile
from weighbatch.config import get_config
from weighbatch.core.logging import configure_logging
from weighbatch.db.connection import close_db, get_session_factory
from weighbatch.exceptions import WeighbatchError
from weighbatch.transmission.service import begin_transmission

logger = logging.getLogger(__name__)


async def startup(ctx: dict[str, Any]) -> None:
    """Initialize resources when worker starts."""
    configure_logging()
    ctx["session_maker"] = get_session_factory()
    logger.info("Worker started. Database connection initialized.")


async def shutdown(ctx: dict[str, Any]) -> None:
    """Cleanup resources when worker stops."""
    await close_db()
    logger.info("Worker stopped. Database connection closed.")


async def reconcile_job(ctx: dict[str, Any], production_order_number: str | None = None) -> dict[str, Any]:
    """Fold unsummarized scale events into batches (cron and on demand)."""
    if production_order_number is None and not get_config().reconcile.cron_enabled:
        return {"status": "disabled"}

    session_maker = ctx["session_maker"]
    async with session_maker() as session:
        result = await reconcile(
            session,
            production_order_number=production_order_number,
            trigger="cron" if production_order_number is None else "worker",
        )
    return result.model_dump(mode="json")


async def transmit_batch_job(ctx: dict[str, Any], batch_id: int, actor: str | None = None) -> dict[str, Any]:
    """Send one processed batch to SAP."""
    logger.info(f"Starting transmission job for batch {batch_id}")

    session_maker = ctx["session_maker"]
    async with session_maker() as session:
        try:
            result = await begin_transmission(session, batch_id, actor=actor)
        except WeighbatchError as e:
            logger.error(f"Transmission job for batch {batch_id} rejected: {e.message}")
            return {"status": "rejected", "code": e.code, "error": e.message}

    return result.model_dump(mode="json")


class WorkerSettings:
    functions = [
        reconcile_job,
        transmit_batch_job,
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(
        os.environ.get("REDIS_URL", "redis://redis:6379")
    )
    # Every minute at second 0; unique so overlapping ticks don't stack
    cron_jobs = [
        cron(reconcile_job, second=0, unique=True),
    ]
