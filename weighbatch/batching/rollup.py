"""Weighed totals on production-order-detail rows.

All three rollups are recomputed from current rows, so running this any
number of times yields the same values:

- total_weighed: converted weight of live items in live batches
- total_weighed_good_receive: the same, restricted to batches in
  ``sending`` or ``success``
- weighing_count: summarized scale events for the detail's order/material
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from weighbatch.db.models import (
    BatchItemModel,
    BatchModel,
    ProductionOrderDetailModel,
    ProductionOrderModel,
    ScaleEventModel,
)
from weighbatch.models import TransmissionStatus

logger = logging.getLogger(__name__)

GOOD_RECEIVE_STATUSES = (TransmissionStatus.SENDING.value, TransmissionStatus.SUCCESS.value)


async def _sum_converted(
    session: AsyncSession, detail_id: int, statuses: Iterable[str] | None = None
) -> Decimal:
    stmt = (
        select(func.coalesce(func.sum(BatchItemModel.total_weight_converted), 0))
        .join(BatchModel, BatchModel.id == BatchItemModel.batch_id)
        .where(
            BatchModel.production_order_detail_id == detail_id,
            BatchModel.deleted_at.is_(None),
            BatchItemModel.deleted_at.is_(None),
        )
    )
    if statuses is not None:
        stmt = stmt.where(BatchModel.transmission_status.in_(list(statuses)))
    value = (await session.execute(stmt)).scalar_one()
    return Decimal(str(value or 0))


async def _count_weighings(session: AsyncSession, detail: ProductionOrderDetailModel) -> int:
    stmt = (
        select(func.count(ScaleEventModel.id))
        .join(
            ProductionOrderModel,
            ProductionOrderModel.production_order_number
            == ScaleEventModel.production_order_number,
        )
        .where(
            ProductionOrderModel.id == detail.production_order_id,
            ScaleEventModel.material_code == detail.material_code,
            ScaleEventModel.is_summarized.is_(True),
        )
    )
    return int((await session.execute(stmt)).scalar_one() or 0)


async def recompute_detail_rollup(
    session: AsyncSession, detail_id: int
) -> ProductionOrderDetailModel | None:
    """Recompute and store the rollups of one production-order-detail.

    Does not commit.
    """
    detail = await session.get(ProductionOrderDetailModel, detail_id, populate_existing=True)
    if detail is None:
        logger.warning(f"Rollup skipped: production order detail {detail_id} not found")
        return None

    detail.total_weighed = await _sum_converted(session, detail_id)
    detail.total_weighed_good_receive = await _sum_converted(
        session, detail_id, GOOD_RECEIVE_STATUSES
    )
    detail.weighing_count = await _count_weighings(session, detail)
    await session.flush()

    logger.info(
        f"Rollup for detail {detail_id}: total_weighed={detail.total_weighed} "
        f"good_receive={detail.total_weighed_good_receive} count={detail.weighing_count}"
    )
    return detail


async def recompute_rollups(session: AsyncSession, detail_ids: Iterable[int]) -> None:
    """Recompute several details and commit; failures are logged per detail."""
    for detail_id in sorted(set(detail_ids)):
        try:
            await recompute_detail_rollup(session, detail_id)
            await session.commit()
        except Exception:
            await session.rollback()
            logger.exception(f"Rollup recomputation failed for detail {detail_id}")
