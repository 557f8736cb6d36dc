"""Typed errors raised by the weighbatch engine.

Every error carries a machine-readable ``code`` so the API layer and the
worker can react by type rather than by message text.

    WeighbatchError
    +-- NotFoundError              unresolved order/detail/material/batch/item
    +-- StateConflictError         operation not allowed in the current status
    +-- InvalidMutationError       malformed item change request
    +-- ConsistencyViolationError  duplicate grouping key inside a batch
    +-- ExternalFailureError       SAP sink unreachable or non-2xx
    +-- AllocationRaceError        batch code collision
"""

from __future__ import annotations


class WeighbatchError(Exception):
    """Base class for all domain errors."""

    code: str = "WEIGHBATCH_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(WeighbatchError):
    """A referenced record does not exist (or is soft-deleted)."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, key: object):
        super().__init__(f"{entity} not found: {key}")
        self.entity = entity
        self.key = key


class StateConflictError(WeighbatchError):
    """The batch or item is not in a status that allows the operation."""

    code = "STATE_CONFLICT"

    def __init__(self, message: str, current_status: str | None = None):
        super().__init__(message)
        self.current_status = current_status


class InvalidMutationError(WeighbatchError):
    code = "INVALID_MUTATION"


class ConsistencyViolationError(WeighbatchError):
    """Two live items in one batch ended up with the same grouping key."""

    code = "CONSISTENCY_VIOLATION"

    def __init__(self, batch_id: int, grouping_key: str):
        super().__init__(
            f"Duplicate grouping key in batch {batch_id}: {grouping_key}"
        )
        self.batch_id = batch_id
        self.grouping_key = grouping_key


class ExternalFailureError(WeighbatchError):
    code = "EXTERNAL_FAILURE"

    def __init__(self, message: str, http_status: int | None = None):
        super().__init__(message)
        self.http_status = http_status


class AllocationRaceError(WeighbatchError):
    code = "ALLOCATION_RACE"

    def __init__(self, batch_code: str):
        super().__init__(f"Batch code already allocated: {batch_code}")
        self.batch_code = batch_code
