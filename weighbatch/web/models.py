"""Request/response models for the weighbatch web API.

Domain views (BatchView, BatchItemView, ...) live in weighbatch.models;
this module holds the HTTP request bodies wrapping them.

Usage:
    from weighbatch.web.models import MutateItemRequest

    @router.patch("/api/items/{item_id}")
    async def mutate(item_id: int, request: MutateItemRequest):
        ...
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from weighbatch.models import ItemChanges, ItemStatusUpdate


# ============================================================================
# Reconciliation
# ============================================================================


class ReconcileRequest(BaseModel):
    """Trigger a reconciliation run.

    Used by: POST /api/reconcile
    """

    production_order_number: str | None = None
    background: bool = False


# ============================================================================
# Batch actions
# ============================================================================


class BatchActionRequest(BaseModel):
    """Operator action on a batch (promote, reopen).

    Used by: POST /api/batches/{batch_id}/promote, /reopen
    """

    actor: str = "system"


class TransmitRequest(BaseModel):
    """Send a processed batch to SAP.

    Used by: POST /api/batches/{batch_id}/transmit
    """

    actor: str = "system"
    background: bool = False


class FinalizeItemsRequest(BaseModel):
    """Item statuses reported back by SAP.

    Used by: POST /api/batches/finalize
    """

    updates: list[ItemStatusUpdate] = Field(min_length=1)
    actor: str = "sap"


class EnqueuedJobResponse(BaseModel):
    job_id: str | None
    status: str = "queued"


# ============================================================================
# Item mutations
# ============================================================================


class MutateItemRequest(BaseModel):
    """Edit, split, merge or recreate a batch item.

    Used by: PATCH /api/items/{item_id}
    """

    actor: str
    changes: ItemChanges
