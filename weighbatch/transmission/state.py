"""Batch transmission state machine.

    pending -> processed -> sending -> success
                   ^           |
                   |           +----> failed
                   +-------------------+  (operator reopen)

``processed`` is also reached from ``sending``/``success`` when items are
finalized but not all of them succeeded.
"""

from __future__ import annotations

import logging
from typing import Iterable

from weighbatch.db.models import BatchModel
from weighbatch.exceptions import StateConflictError
from weighbatch.models import ItemStatus, TransmissionStatus

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[TransmissionStatus, frozenset[TransmissionStatus]] = {
    TransmissionStatus.PENDING: frozenset({TransmissionStatus.PROCESSED}),
    TransmissionStatus.PROCESSED: frozenset(
        {TransmissionStatus.SENDING, TransmissionStatus.SUCCESS}
    ),
    TransmissionStatus.SENDING: frozenset(
        {TransmissionStatus.SUCCESS, TransmissionStatus.FAILED, TransmissionStatus.PROCESSED}
    ),
    TransmissionStatus.FAILED: frozenset(
        {TransmissionStatus.PROCESSED, TransmissionStatus.SUCCESS}
    ),
    TransmissionStatus.SUCCESS: frozenset({TransmissionStatus.PROCESSED}),
}


def can_transition(current: TransmissionStatus | str, target: TransmissionStatus | str) -> bool:
    current = TransmissionStatus(current)
    target = TransmissionStatus(target)
    return current == target or target in ALLOWED_TRANSITIONS[current]


def transition(batch: BatchModel, target: TransmissionStatus, actor: str | None = None) -> None:
    """Move a batch to ``target`` or raise StateConflictError."""
    current = TransmissionStatus(batch.transmission_status)
    if not can_transition(current, target):
        raise StateConflictError(
            f"Batch {batch.batch_code} cannot move from {current.value} to {target.value}",
            current_status=current.value,
        )
    if current != target:
        logger.info(f"Batch {batch.batch_code}: {current.value} -> {target.value}")
    batch.transmission_status = target.value
    if actor is not None:
        batch.updated_by = actor


def can_mutate_items(batch: BatchModel) -> bool:
    return batch.transmission_status == TransmissionStatus.PROCESSED.value


def rollup_batch_status(item_statuses: Iterable[str]) -> TransmissionStatus:
    """``success`` when every live item succeeded, otherwise ``processed``."""
    statuses = list(item_statuses)
    if statuses and all(s == ItemStatus.SUCCESS.value for s in statuses):
        return TransmissionStatus.SUCCESS
    return TransmissionStatus.PROCESSED
