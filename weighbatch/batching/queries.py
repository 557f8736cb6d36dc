"""Read-side queries for batches, items and dashboard statistics."""

from __future__ import annotations

from datetime import datetime, time, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from weighbatch.db.models import BatchItemModel, BatchModel
from weighbatch.exceptions import NotFoundError
from weighbatch.models import BatchFilter, BatchItemView, BatchView, TransmissionStatus

MAX_PAGE_SIZE = 100


def to_batch_view(batch: BatchModel, items: list[BatchItemModel] | None = None) -> BatchView:
    return BatchView(
        id=batch.id,
        batch_code=batch.batch_code,
        production_order_detail_id=batch.production_order_detail_id,
        scale_event_id_from=batch.scale_event_id_from,
        scale_event_id_to=batch.scale_event_id_to,
        transmission_status=TransmissionStatus(batch.transmission_status),
        created_at=batch.created_at,
        updated_at=batch.updated_at,
        items=[BatchItemView.model_validate(item) for item in items or []],
    )


async def fetch_batch_items(
    session: AsyncSession, batch_id: int, include_deleted: bool = False
) -> list[BatchItemModel]:
    stmt = select(BatchItemModel).where(BatchItemModel.batch_id == batch_id)
    if not include_deleted:
        stmt = stmt.where(BatchItemModel.deleted_at.is_(None))
    stmt = stmt.order_by(BatchItemModel.id.asc()).execution_options(populate_existing=True)
    return list((await session.execute(stmt)).scalars())


async def fetch_batches(
    session: AsyncSession,
    filters: BatchFilter | None = None,
    page: int = 0,
    page_size: int = 10,
) -> dict[str, Any]:
    """List live batches, newest first, with pagination metadata.

    Pages are zero-based; ``page_size`` is capped at 100.
    """
    filters = filters or BatchFilter()
    page = max(page, 0)
    page_size = min(max(page_size, 1), MAX_PAGE_SIZE)

    conditions = [BatchModel.deleted_at.is_(None)]
    if filters.status is not None:
        conditions.append(BatchModel.transmission_status == filters.status.value)
    if filters.production_order_detail_id is not None:
        conditions.append(
            BatchModel.production_order_detail_id == filters.production_order_detail_id
        )
    if filters.search:
        conditions.append(BatchModel.batch_code.ilike(f"%{filters.search}%"))
    if filters.start_date:
        conditions.append(BatchModel.created_at >= datetime.combine(filters.start_date, time.min))
    if filters.end_date:
        conditions.append(
            BatchModel.created_at
            < datetime.combine(filters.end_date + timedelta(days=1), time.min)
        )

    total = (
        await session.execute(select(func.count(BatchModel.id)).where(*conditions))
    ).scalar_one()

    batches = (
        await session.execute(
            select(BatchModel)
            .where(*conditions)
            .order_by(BatchModel.created_at.desc(), BatchModel.id.desc())
            .limit(page_size)
            .offset(page * page_size)
        )
    ).scalars().all()

    return {
        "batches": [to_batch_view(batch) for batch in batches],
        "meta": {
            "total_items": total,
            "page_size": page_size,
            "current_page": page,
            "total_pages": (total + page_size - 1) // page_size,
        },
    }


async def fetch_batch_detail(
    session: AsyncSession, batch_id: int, include_deleted_items: bool = False
) -> BatchView:
    batch = (
        await session.execute(
            select(BatchModel)
            .where(BatchModel.id == batch_id, BatchModel.deleted_at.is_(None))
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if batch is None:
        raise NotFoundError("Batch", batch_id)

    items = await fetch_batch_items(session, batch_id, include_deleted=include_deleted_items)
    return to_batch_view(batch, items)


async def batch_statistics(session: AsyncSession) -> dict[str, Any]:
    """Batch counts per transmission status and total live item weight."""
    rows = (
        await session.execute(
            select(BatchModel.transmission_status, func.count(BatchModel.id))
            .where(BatchModel.deleted_at.is_(None))
            .group_by(BatchModel.transmission_status)
        )
    ).all()
    by_status = {status.value: 0 for status in TransmissionStatus}
    for status, count in rows:
        by_status[status] = count

    item_count, total_weight, total_converted = (
        await session.execute(
            select(
                func.count(BatchItemModel.id),
                func.coalesce(func.sum(BatchItemModel.total_weight), 0),
                func.coalesce(func.sum(BatchItemModel.total_weight_converted), 0),
            )
            .join(BatchModel, BatchModel.id == BatchItemModel.batch_id)
            .where(BatchModel.deleted_at.is_(None), BatchItemModel.deleted_at.is_(None))
        )
    ).one()

    return {
        "batches_by_status": by_status,
        "total_batches": sum(by_status.values()),
        "total_items": item_count,
        "total_weight": Decimal(str(total_weight)),
        "total_weight_converted": Decimal(str(total_converted)),
    }
