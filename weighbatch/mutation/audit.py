"""Audit trail for batch item mutations.

Every mutation writes one ``weight_summary_batch_item_log`` row and one
``..._log_detail`` row per touched item with before/after snapshots.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from weighbatch.batching.grouping import DIMENSION_FIELDS
from weighbatch.db.models import BatchItemModel, MutationLogDetailModel, MutationLogModel
from weighbatch.models import MutationOperation

SNAPSHOT_FIELDS: tuple[str, ...] = (
    "id",
    "batch_id",
    "production_order_number",
    "plant_code",
    "material_code",
    *DIMENSION_FIELDS,
    "material_uom",
    "packing_date",
    "total_weight",
    "total_weight_converted",
    "status",
    "material_document_ref",
    "deleted_at",
)


def _json_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def snapshot_item(item: BatchItemModel) -> dict[str, Any]:
    """JSON-safe copy of an item's persisted fields."""
    return {name: _json_value(getattr(item, name)) for name in SNAPSHOT_FIELDS}


async def write_mutation_log(
    session: AsyncSession,
    operation: MutationOperation,
    actor: str | None,
    id_from: int | None,
    id_to: int | None,
    details: list[tuple[int, dict | None, dict | None]],
) -> MutationLogModel:
    """Record a mutation and its per-item snapshots.

    Args:
        session: Session of the mutation's transaction
        operation: Mutation kind
        actor: User performing the mutation
        id_from: Item the mutation started from
        id_to: Item holding the result
        details: (item_id, before, after) per touched item

    Caller is responsible for commit.
    """
    entry = MutationLogModel(
        id_from=id_from,
        id_to=id_to,
        operation=operation.value,
        created_by=actor,
    )
    session.add(entry)
    await session.flush()

    for item_id, before, after in details:
        session.add(
            MutationLogDetailModel(
                log_id=entry.id,
                item_id=item_id,
                before_data=before,
                after_data=after,
            )
        )
    await session.flush()
    return entry


async def fetch_item_history(session: AsyncSession, item_id: int) -> list[dict[str, Any]]:
    """Mutation entries touching an item, oldest first, with their details."""
    logs = (
        await session.execute(
            select(MutationLogModel)
            .join(MutationLogDetailModel, MutationLogDetailModel.log_id == MutationLogModel.id)
            .where(MutationLogDetailModel.item_id == item_id)
            .distinct()
            .order_by(MutationLogModel.id.asc())
        )
    ).scalars().all()

    history = []
    for log in logs:
        details = (
            await session.execute(
                select(MutationLogDetailModel)
                .where(MutationLogDetailModel.log_id == log.id)
                .order_by(MutationLogDetailModel.id.asc())
            )
        ).scalars().all()
        history.append(
            {
                "id": log.id,
                "operation": log.operation,
                "id_from": log.id_from,
                "id_to": log.id_to,
                "created_by": log.created_by,
                "created_at": log.created_at,
                "details": [
                    {
                        "item_id": d.item_id,
                        "before": d.before_data,
                        "after": d.after_data,
                    }
                    for d in details
                ],
            }
        )
    return history
