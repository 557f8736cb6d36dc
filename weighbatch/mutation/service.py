"""Operator edits of batch items (edit, split, merge, createFromFailed).

Only items of ``processed`` batches can be mutated. The operation is chosen
by precedence:

1. createFromFailed: the item is ``failed``; it is soft-deleted and a fresh
   ``pending`` copy with the changes applied takes its place
2. split: ``total_weight`` is strictly between zero and the current total;
   the requested weight moves to a new sibling item
3. merge: the item is ``pending`` and after applying the changes exactly
   one other live ``pending`` item shares the grouping key; the totals fold
   into it (two or more such items are a consistency violation)
4. edit: the changes stand on the item, even when it now shares its key
   with non-pending siblings

Raw and converted weight are conserved by split and merge.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from weighbatch.batching.grouping import DIMENSION_FIELDS, GroupingKey
from weighbatch.db.models import BatchItemModel, BatchModel
from weighbatch.exceptions import (
    ConsistencyViolationError,
    InvalidMutationError,
    NotFoundError,
    StateConflictError,
)
from weighbatch.models import (
    BatchItemView,
    ItemChanges,
    ItemStatus,
    MutationOperation,
    MutationResult,
)
from weighbatch.mutation.audit import snapshot_item, write_mutation_log
from weighbatch.transmission.state import can_mutate_items

logger = logging.getLogger(__name__)

WEIGHT_QUANTUM = Decimal("0.001")

# Descriptive fields copied onto items created by split/createFromFailed
_COPY_FIELDS: tuple[str, ...] = (
    "production_order_number",
    "plant_code",
    "material_code",
    *DIMENSION_FIELDS,
    "material_uom",
    "packing_date",
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _match(column, value):
    return column.is_(None) if value is None else column == value


async def _lock_item(session: AsyncSession, item_id: int) -> BatchItemModel:
    item = (
        await session.execute(
            select(BatchItemModel)
            .where(BatchItemModel.id == item_id, BatchItemModel.deleted_at.is_(None))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if item is None:
        raise NotFoundError("BatchItem", item_id)
    return item


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


def _clone(item: BatchItemModel, overrides: dict, **values) -> BatchItemModel:
    fields = {name: getattr(item, name) for name in _COPY_FIELDS}
    fields.update(overrides)
    fields.update(values)
    return BatchItemModel(batch_id=item.batch_id, **fields)


async def mutate_item(
    session: AsyncSession,
    item_id: int,
    changes: ItemChanges | dict,
    actor: str,
) -> MutationResult:
    """Apply operator changes to a batch item in one transaction.

    Args:
        session: Database session (committed on success, rolled back on error)
        item_id: Item to mutate
        changes: Explicitly provided fields are applied
        actor: User performing the change, recorded on items and the audit log

    Returns:
        MutationResult with the surviving item and the audit log id

    Raises:
        NotFoundError: Item or its batch does not exist
        StateConflictError: Batch is not ``processed`` or the item changed
            concurrently
        InvalidMutationError: Unsupported weight change or cleared plant code
        ConsistencyViolationError: Changed key collides ambiguously
    """
    if isinstance(changes, dict):
        changes = ItemChanges(**changes)

    try:
        item = await _lock_item(session, item_id)
        batch = await _lock_batch(session, item.batch_id)

        if not can_mutate_items(batch):
            raise StateConflictError(
                f"Items of batch {batch.batch_code} cannot be changed while "
                f"{batch.transmission_status}",
                current_status=batch.transmission_status,
            )

        field_changes = changes.field_changes()
        if "plant_code" in field_changes and not field_changes["plant_code"]:
            raise InvalidMutationError("plant_code cannot be cleared")

        new_weight = changes.provided().get("total_weight")

        if item.status == ItemStatus.FAILED.value:
            if new_weight is not None and new_weight != item.total_weight:
                logger.warning(
                    f"Ignoring total_weight on failed item {item.id}; totals carry over"
                )
            result_item, log_id = await _create_from_failed(session, item, field_changes, actor)
            operation = MutationOperation.CREATE_FROM_FAILED
        elif new_weight is not None and 0 < new_weight < item.total_weight:
            result_item, log_id = await _split(session, item, new_weight, field_changes, actor)
            operation = MutationOperation.SPLIT
        else:
            if new_weight is not None and new_weight != item.total_weight:
                raise InvalidMutationError(
                    f"total_weight {new_weight} must be between 0 and {item.total_weight} "
                    "(exclusive) to split the item"
                )
            result_item, log_id, operation = await _edit_or_merge(
                session, batch, item, field_changes, actor
            )

        view = BatchItemView.model_validate(result_item)
        await session.commit()
    except StaleDataError as exc:
        await session.rollback()
        raise StateConflictError(f"Item {item_id} was modified concurrently") from exc
    except Exception:
        await session.rollback()
        raise

    logger.info(f"{operation.value} on item {item_id} by {actor} (log {log_id})")
    return MutationResult(operation=operation, log_id=log_id, item=view)


async def _create_from_failed(
    session: AsyncSession, item: BatchItemModel, field_changes: dict, actor: str
) -> tuple[BatchItemModel, int]:
    before = snapshot_item(item)

    replacement = _clone(
        item,
        field_changes,
        total_weight=item.total_weight,
        total_weight_converted=item.total_weight_converted,
        status=ItemStatus.PENDING.value,
        material_document_ref=None,
        created_by=actor,
    )
    item.deleted_at = _now()
    item.updated_by = actor
    session.add(replacement)
    await session.flush()

    log = await write_mutation_log(
        session,
        MutationOperation.CREATE_FROM_FAILED,
        actor,
        id_from=item.id,
        id_to=replacement.id,
        details=[
            (item.id, before, None),
            (replacement.id, None, snapshot_item(replacement)),
        ],
    )
    return replacement, log.id


async def _split(
    session: AsyncSession,
    item: BatchItemModel,
    split_weight: Decimal,
    field_changes: dict,
    actor: str,
) -> tuple[BatchItemModel, int]:
    """Move ``split_weight`` (and its share of converted weight) to a new item.

    Without dimension changes the new item shares the original's grouping
    key; a later edit of either one merges them back.
    """
    before = snapshot_item(item)

    old_raw = item.total_weight
    old_converted = item.total_weight_converted or Decimal("0")
    split_converted = (old_converted * split_weight / old_raw).quantize(WEIGHT_QUANTUM)

    item.total_weight = old_raw - split_weight
    item.total_weight_converted = old_converted - split_converted
    item.updated_by = actor

    sibling = _clone(
        item,
        field_changes,
        total_weight=split_weight,
        total_weight_converted=split_converted,
        status=item.status,
        material_document_ref=None,
        created_by=actor,
    )
    session.add(sibling)
    await session.flush()

    log = await write_mutation_log(
        session,
        MutationOperation.SPLIT,
        actor,
        id_from=item.id,
        id_to=sibling.id,
        details=[
            (item.id, before, snapshot_item(item)),
            (sibling.id, None, snapshot_item(sibling)),
        ],
    )
    return item, log.id


async def _edit_or_merge(
    session: AsyncSession,
    batch: BatchModel,
    item: BatchItemModel,
    field_changes: dict,
    actor: str,
) -> tuple[BatchItemModel, int, MutationOperation]:
    before = snapshot_item(item)

    for name, value in field_changes.items():
        setattr(item, name, value)
    item.updated_by = actor

    key = GroupingKey.from_record(item)
    stmt = select(BatchItemModel).where(
        BatchItemModel.batch_id == batch.id,
        BatchItemModel.id != item.id,
        BatchItemModel.deleted_at.is_(None),
        BatchItemModel.production_order_number == item.production_order_number,
        BatchItemModel.material_code == item.material_code,
    )
    for name, value in key.item_fields().items():
        stmt = stmt.where(_match(getattr(BatchItemModel, name), value))
    siblings = list(
        (
            await session.execute(
                stmt.order_by(BatchItemModel.id).with_for_update()
            )
        ).scalars()
    )

    # Only pending items absorb a merge; posted weight never re-enters a pending item
    pending = [s for s in siblings if s.status == ItemStatus.PENDING.value]
    if item.status != ItemStatus.PENDING.value:
        pending = []

    if not pending:
        await session.flush()
        log = await write_mutation_log(
            session,
            MutationOperation.EDIT,
            actor,
            id_from=item.id,
            id_to=item.id,
            details=[(item.id, before, snapshot_item(item))],
        )
        return item, log.id, MutationOperation.EDIT

    if len(pending) > 1:
        raise ConsistencyViolationError(batch.id, key.serialize())

    target = pending[0]
    target_before = snapshot_item(target)

    target.total_weight = target.total_weight + item.total_weight
    target.total_weight_converted = (
        (target.total_weight_converted or Decimal("0"))
        + (item.total_weight_converted or Decimal("0"))
    )
    for name, value in field_changes.items():
        setattr(target, name, value)
    target.updated_by = actor

    item.deleted_at = _now()
    await session.flush()

    log = await write_mutation_log(
        session,
        MutationOperation.MERGE,
        actor,
        id_from=item.id,
        id_to=target.id,
        details=[
            (item.id, before, snapshot_item(item)),
            (target.id, target_before, snapshot_item(target)),
        ],
    )
    logger.info(f"Merged item {item.id} into {target.id} in batch {batch.batch_code}")
    return target, log.id, MutationOperation.MERGE
