"""Weighbatch Pydantic models and status enums.

Enum values are the lowercase strings stored in the database.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, computed_field, field_validator


class TransmissionStatus(str, Enum):
    """Batch-level SAP transmission status."""

    PENDING = "pending"
    PROCESSED = "processed"
    SENDING = "sending"
    FAILED = "failed"
    SUCCESS = "success"


class ItemStatus(str, Enum):
    """Item-level SAP posting status."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class MeasurementRuleKind(str, Enum):
    """How a material's scale weight converts to reported weight."""

    ACTUAL = "actual"  # converted weight = raw weight
    STANDARD = "standard"  # converted weight = fixed value per weighing


class MutationOperation(str, Enum):
    EDIT = "edit"
    SPLIT = "split"
    MERGE = "merge"
    CREATE_FROM_FAILED = "createFromFailed"


class ReconcileRunStatus(str, Enum):
    SUCCESS = "SUCCESS"
    NOOP = "NOOP"
    FAILED = "FAILED"


class ItemChanges(BaseModel):
    """Requested changes to a batch item.

    Only fields explicitly provided are applied; pass ``None`` to clear a
    dimension. ``total_weight`` requests a split when it is strictly between
    zero and the item's current total weight.
    """

    plant_code: str | None = None
    production_group: str | None = None
    production_shift: int | None = None
    packing_group: str | None = None
    packing_shift: int | None = None
    production_lot: str | None = None
    production_location: str | None = None
    storage_location: str | None = None
    storage_location_target: str | None = None
    material_uom: str | None = None
    packing_date: datetime | None = None
    total_weight: Decimal | None = None

    @field_validator("total_weight")
    @classmethod
    def validate_total_weight(cls, v: Decimal | None) -> Decimal | None:
        if v is not None and v < 0:
            raise ValueError("total_weight must be non-negative")
        return v

    def provided(self) -> dict:
        """Explicitly provided fields (including explicit ``None`` values)."""
        return self.model_dump(exclude_unset=True)

    def field_changes(self) -> dict:
        """Provided fields other than the weight."""
        changes = self.provided()
        changes.pop("total_weight", None)
        return changes

    class Config:
        json_schema_extra = {
            "example": {
                "storage_location": "WH02",
                "production_lot": "B",
            }
        }


class ItemStatusUpdate(BaseModel):
    """Item status reported back by SAP (or an operator)."""

    item_id: int
    status: ItemStatus
    material_document_ref: str | None = None


class ReconcileResult(BaseModel):
    """Outcome of one reconciliation run."""

    run_id: int | None = None
    status: ReconcileRunStatus = ReconcileRunStatus.SUCCESS
    batches_created: int = 0
    batches_reused: int = 0
    items_created: int = 0
    items_updated: int = 0
    events_processed: int = 0
    groups_skipped: int = 0
    affected_detail_ids: list[int] = Field(default_factory=list)

    @computed_field
    @property
    def batches_touched(self) -> int:
        return self.batches_created + self.batches_reused


class BatchItemView(BaseModel):
    id: int
    batch_id: int
    production_order_number: str
    plant_code: str
    material_code: str
    material_uom: str | None = None
    production_group: str | None = None
    production_shift: int | None = None
    packing_group: str | None = None
    packing_shift: int | None = None
    production_lot: str | None = None
    production_location: str | None = None
    storage_location: str | None = None
    storage_location_target: str | None = None
    packing_date: datetime | None = None
    total_weight: Decimal
    total_weight_converted: Decimal
    status: ItemStatus
    material_document_ref: str | None = None
    deleted_at: datetime | None = None

    model_config = {"from_attributes": True}


class BatchView(BaseModel):
    id: int
    batch_code: str
    production_order_detail_id: int
    scale_event_id_from: int | None = None
    scale_event_id_to: int | None = None
    transmission_status: TransmissionStatus
    created_at: datetime | None = None
    updated_at: datetime | None = None
    items: list[BatchItemView] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class MutationResult(BaseModel):
    """Resulting item of a mutation plus the audit entry that recorded it."""

    operation: MutationOperation
    log_id: int
    item: BatchItemView


class TransmissionResult(BaseModel):
    batch_id: int
    batch_code: str
    status: TransmissionStatus
    http_status: int | None = None
    message: str = ""
    items: list[BatchItemView] = Field(default_factory=list)


class BatchFilter(BaseModel):
    """Filters accepted by the batch listing."""

    status: TransmissionStatus | None = None
    production_order_detail_id: int | None = None
    search: str | None = None
    start_date: date | None = None
    end_date: date | None = None
