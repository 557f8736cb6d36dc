"""Batch transmission to SAP and operator status actions.

``begin_transmission`` runs in two phases so the batch is visibly ``sending``
while the HTTP call is in flight:

1. Lock the ``processed`` batch, move it to ``sending``, commit
2. Call the sink, then record the outcome on the batch and its items

Rollups are recomputed after each phase because good-receive weight counts
batches in ``sending`` and ``success``.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from weighbatch.batching.queries import fetch_batch_items, to_batch_view
from weighbatch.batching.rollup import recompute_rollups
from weighbatch.db.models import BatchItemModel, BatchModel
from weighbatch.exceptions import ExternalFailureError, NotFoundError, StateConflictError
from weighbatch.models import (
    BatchItemView,
    BatchView,
    ItemStatus,
    ItemStatusUpdate,
    TransmissionResult,
    TransmissionStatus,
)
from weighbatch.transmission.sap_client import SapClient, TransmissionSink, build_transmission_rows
from weighbatch.transmission.state import rollup_batch_status, transition

logger = logging.getLogger(__name__)


async def _lock_batch(session: AsyncSession, batch_id: int) -> BatchModel:
    batch = (
        await session.execute(
            select(BatchModel)
            .where(BatchModel.id == batch_id, BatchModel.deleted_at.is_(None))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if batch is None:
        raise NotFoundError("Batch", batch_id)
    return batch


async def _live_items(session: AsyncSession, batch_id: int) -> list[BatchItemModel]:
    return list(
        (
            await session.execute(
                select(BatchItemModel)
                .where(BatchItemModel.batch_id == batch_id, BatchItemModel.deleted_at.is_(None))
                .order_by(BatchItemModel.id.asc())
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).scalars()
    )


def _is_success(http_status: int | None) -> bool:
    return http_status is not None and 200 <= http_status < 300


async def begin_transmission(
    session: AsyncSession,
    batch_id: int,
    sink: TransmissionSink | None = None,
    actor: str | None = None,
) -> TransmissionResult:
    """Send a ``processed`` batch's pending items to SAP.

    Args:
        session: Database session; both phases commit on it
        batch_id: Batch to transmit
        sink: Transmission sink, defaults to a configured SapClient
        actor: User triggering the transmission

    Returns:
        TransmissionResult with the final batch status and live items

    Raises:
        NotFoundError: Batch does not exist
        StateConflictError: Batch not ``processed`` or has no pending items
        ExternalFailureError: SAP is not configured (nothing is changed)
    """
    owned_client = None
    if sink is None:
        owned_client = SapClient()
        sink = owned_client

    try:
        # Phase 1: claim the batch
        try:
            batch = await _lock_batch(session, batch_id)
            if batch.transmission_status != TransmissionStatus.PROCESSED.value:
                raise StateConflictError(
                    f"Batch {batch.batch_code} must be processed to transmit, "
                    f"not {batch.transmission_status}",
                    current_status=batch.transmission_status,
                )

            items = [
                item
                for item in await _live_items(session, batch_id)
                if item.status == ItemStatus.PENDING.value
            ]
            if not items:
                raise StateConflictError(
                    f"Batch {batch.batch_code} has no pending items to transmit",
                    current_status=batch.transmission_status,
                )

            transition(batch, TransmissionStatus.SENDING, actor)
            rows = build_transmission_rows(batch, items)
            item_ids = {item.id for item in items}
            batch_code = batch.batch_code
            detail_id = batch.production_order_detail_id
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        await recompute_rollups(session, [detail_id])

        # Phase 2: call SAP
        http_status: int | None = None
        message = ""
        try:
            http_status = await sink.send(batch_code, rows)
            message = f"SAP responded {http_status}"
        except ExternalFailureError as exc:
            message = exc.message
        except Exception as exc:
            # Timeouts and sink bugs alike must not leave the batch in sending
            logger.exception(f"Transmission sink raised for batch {batch_code}")
            message = f"{type(exc).__name__}: {exc}"

        succeeded = _is_success(http_status)
        if not succeeded:
            logger.warning(f"Transmission of batch {batch_code} failed: {message}")

        # Record the outcome
        try:
            batch = await _lock_batch(session, batch_id)
            live_items = await _live_items(session, batch_id)
            for item in live_items:
                if item.id in item_ids:
                    item.status = (
                        ItemStatus.SUCCESS.value if succeeded else ItemStatus.FAILED.value
                    )
                    if actor is not None:
                        item.updated_by = actor

            if succeeded:
                target = rollup_batch_status(item.status for item in live_items)
            else:
                target = TransmissionStatus.FAILED
            transition(batch, target, actor)
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        await recompute_rollups(session, [detail_id])

        logger.info(
            f"Transmission of batch {batch_code} finished: {batch.transmission_status} "
            f"({len(item_ids)} items)"
        )
        return TransmissionResult(
            batch_id=batch.id,
            batch_code=batch_code,
            status=TransmissionStatus(batch.transmission_status),
            http_status=http_status,
            message=message,
            items=[BatchItemView.model_validate(item) for item in live_items],
        )
    finally:
        if owned_client is not None:
            await owned_client.close()


async def finalize_items(
    session: AsyncSession,
    updates: list[ItemStatusUpdate],
    actor: str | None = None,
) -> list[BatchView]:
    """Apply item statuses reported back by SAP.

    Each touched batch becomes ``success`` when all its live items succeeded,
    otherwise ``processed``.
    """
    touched_batches: dict[int, BatchModel] = {}
    try:
        for update in updates:
            item = (
                await session.execute(
                    select(BatchItemModel)
                    .where(
                        BatchItemModel.id == update.item_id,
                        BatchItemModel.deleted_at.is_(None),
                    )
                    .with_for_update()
                    .execution_options(populate_existing=True)
                )
            ).scalar_one_or_none()
            if item is None:
                raise NotFoundError("BatchItem", update.item_id)

            item.status = update.status.value
            if update.material_document_ref is not None:
                item.material_document_ref = update.material_document_ref
            if actor is not None:
                item.updated_by = actor

            if item.batch_id not in touched_batches:
                touched_batches[item.batch_id] = await _lock_batch(session, item.batch_id)

        await session.flush()
        for batch_id, batch in touched_batches.items():
            statuses = [item.status for item in await _live_items(session, batch_id)]
            transition(batch, rollup_batch_status(statuses), actor)

        await session.commit()
    except Exception:
        await session.rollback()
        raise

    await recompute_rollups(
        session, [batch.production_order_detail_id for batch in touched_batches.values()]
    )

    views = []
    for batch_id, batch in touched_batches.items():
        views.append(to_batch_view(batch, await fetch_batch_items(session, batch_id)))
    logger.info(f"Finalized {len(updates)} items across {len(views)} batches")
    return views


async def _operator_transition(
    session: AsyncSession,
    batch_id: int,
    expected: TransmissionStatus,
    target: TransmissionStatus,
    actor: str | None,
) -> BatchView:
    try:
        batch = await _lock_batch(session, batch_id)
        if batch.transmission_status != expected.value:
            raise StateConflictError(
                f"Batch {batch.batch_code} must be {expected.value}, "
                f"not {batch.transmission_status}",
                current_status=batch.transmission_status,
            )
        transition(batch, target, actor)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    await recompute_rollups(session, [batch.production_order_detail_id])
    return to_batch_view(batch, await fetch_batch_items(session, batch_id))


async def promote_batch(session: AsyncSession, batch_id: int, actor: str | None = None) -> BatchView:
    """Release a ``pending`` batch for review (``processed``)."""
    return await _operator_transition(
        session, batch_id, TransmissionStatus.PENDING, TransmissionStatus.PROCESSED, actor
    )


async def reopen_batch(session: AsyncSession, batch_id: int, actor: str | None = None) -> BatchView:
    """Return a ``failed`` batch to ``processed`` so its items can be recreated."""
    return await _operator_transition(
        session, batch_id, TransmissionStatus.FAILED, TransmissionStatus.PROCESSED, actor
    )
