"""SQLAlchemy async database models for weighbatch.

Reference tables (production orders, order details, materials) are owned by
the ERP master data; this engine only reads them, except for the weighed
rollup columns on ``production_order_detail``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func

WEIGHT = Numeric(12, 3)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


# ============================================================================
# Reference data (read-only for this engine)
# ============================================================================


class ProductionOrderModel(Base):
    """Production order header synchronised from SAP."""

    __tablename__ = "production_order_sap"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    production_order_number: Mapped[str] = mapped_column(
        String(20), nullable=False, unique=True, index=True
    )
    plant_code: Mapped[str | None] = mapped_column(String(10))
    production_location: Mapped[str | None] = mapped_column(String(10))
    order_type: Mapped[str | None] = mapped_column(String(10))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class ProductionOrderDetailModel(Base):
    """One material line of a production order, with weighed rollups."""

    __tablename__ = "production_order_detail"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    production_order_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("production_order_sap.id"), nullable=False, index=True
    )
    material_code: Mapped[str] = mapped_column(String(20), nullable=False)
    material_description: Mapped[str | None] = mapped_column(Text)
    material_uom: Mapped[str | None] = mapped_column(String(10))
    target_weight: Mapped[Decimal | None] = mapped_column(WEIGHT)

    # Rollups maintained by the reconciliation and transmission flows
    total_weighed: Mapped[Decimal] = mapped_column(WEIGHT, nullable=False, default=Decimal("0"))
    total_weighed_good_receive: Mapped[Decimal] = mapped_column(
        WEIGHT, nullable=False, default=Decimal("0")
    )
    weighing_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=_utcnow
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("idx_pod_order_material", "production_order_id", "material_code"),
    )


class MaterialModel(Base):
    """Material master with its measurement rule."""

    __tablename__ = "material"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True, index=True)
    name: Mapped[str | None] = mapped_column(Text)
    uom: Mapped[str | None] = mapped_column(String(10))
    measurement_type: Mapped[str | None] = mapped_column(String(20))
    measurement_type_value: Mapped[Decimal | None] = mapped_column(WEIGHT)


# ============================================================================
# Scale events
# ============================================================================


class ScaleEventModel(Base):
    """One physical weighing captured from a scale."""

    __tablename__ = "scale_results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    scale_device_id: Mapped[str | None] = mapped_column(String(50))
    production_order_number: Mapped[str | None] = mapped_column(String(20), index=True)
    plant_code: Mapped[str | None] = mapped_column(String(10))
    material_code: Mapped[str | None] = mapped_column(String(20))
    material_uom: Mapped[str | None] = mapped_column(String(10))

    weight: Mapped[Decimal] = mapped_column(WEIGHT, nullable=False)
    weight_converted: Mapped[Decimal | None] = mapped_column(WEIGHT)
    material_measurement_type: Mapped[str | None] = mapped_column(String(20))

    # Grouping dimensions
    production_group: Mapped[str | None] = mapped_column(String(2))
    production_shift: Mapped[int | None] = mapped_column(Integer)
    packing_group: Mapped[str | None] = mapped_column(String(2))
    packing_shift: Mapped[int | None] = mapped_column(Integer)
    production_lot: Mapped[str | None] = mapped_column(String(2))
    production_location: Mapped[str | None] = mapped_column(String(10))
    storage_location: Mapped[str | None] = mapped_column(String(4))
    storage_location_target: Mapped[str | None] = mapped_column(String(4))

    transaction_type: Mapped[str | None] = mapped_column(String(20))
    is_summarized: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "material_measurement_type IS NULL OR material_measurement_type IN ('actual', 'standard')",
            name="check_measurement_type_valid",
        ),
        Index("idx_scale_results_unsummarized", "is_summarized", "id"),
    )


# ============================================================================
# Weight summary batches
# ============================================================================


class BatchModel(Base):
    """Aggregation container for one production-order-detail."""

    __tablename__ = "weight_summary_batch"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    batch_code: Mapped[str] = mapped_column(String(30), nullable=False, unique=True)
    production_order_detail_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("production_order_detail.id"), nullable=False, index=True
    )
    scale_event_id_from: Mapped[int | None] = mapped_column(Integer)
    scale_event_id_to: Mapped[int | None] = mapped_column(Integer)
    transmission_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending", index=True
    )

    created_by: Mapped[str | None] = mapped_column(Text)
    updated_by: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=_utcnow
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        CheckConstraint(
            "transmission_status IN ('pending', 'processed', 'sending', 'failed', 'success')",
            name="check_transmission_status_valid",
        ),
        Index("idx_batch_detail_status", "production_order_detail_id", "transmission_status"),
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class BatchItemModel(Base):
    """One grouping-key bucket of accumulated weight inside a batch."""

    __tablename__ = "weight_summary_batch_item"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    batch_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("weight_summary_batch.id"), nullable=False, index=True
    )

    # Grouping key
    production_order_number: Mapped[str] = mapped_column(String(20), nullable=False)
    plant_code: Mapped[str] = mapped_column(String(10), nullable=False)
    material_code: Mapped[str] = mapped_column(String(20), nullable=False)
    production_group: Mapped[str | None] = mapped_column(String(2))
    production_shift: Mapped[int | None] = mapped_column(Integer)
    packing_group: Mapped[str | None] = mapped_column(String(2))
    packing_shift: Mapped[int | None] = mapped_column(Integer)
    production_lot: Mapped[str | None] = mapped_column(String(2))
    production_location: Mapped[str | None] = mapped_column(String(10))
    storage_location: Mapped[str | None] = mapped_column(String(4))
    storage_location_target: Mapped[str | None] = mapped_column(String(4))

    material_uom: Mapped[str | None] = mapped_column(String(10))
    packing_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    total_weight: Mapped[Decimal] = mapped_column(WEIGHT, nullable=False, default=Decimal("0"))
    total_weight_converted: Mapped[Decimal] = mapped_column(
        WEIGHT, nullable=False, default=Decimal("0")
    )

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    material_document_ref: Mapped[str | None] = mapped_column(String(30))

    # Optimistic concurrency guard for item mutations
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_by: Mapped[str | None] = mapped_column(Text)
    updated_by: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=_utcnow
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'success', 'failed')", name="check_item_status_valid"
        ),
        Index("idx_batch_item_batch_live", "batch_id", "deleted_at"),
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class BatchCodeCounterModel(Base):
    """Allocation lock row per batch code prefix (``SUM<plant><YYYYMMDD>``).

    Locked with ``SELECT ... FOR UPDATE`` so concurrent allocations for the
    same plant and day are serialized.
    """

    __tablename__ = "batch_code_counter"

    prefix: Mapped[str] = mapped_column(String(30), primary_key=True)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


# ============================================================================
# Item mutation audit trail
# ============================================================================


class MutationLogModel(Base):
    """One audit record per item mutation."""

    __tablename__ = "weight_summary_batch_item_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    id_from: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("weight_summary_batch_item.id"), index=True
    )
    id_to: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("weight_summary_batch_item.id"), index=True
    )
    operation: Mapped[str] = mapped_column(String(20), nullable=False)
    created_by: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "operation IN ('split', 'merge', 'edit', 'createFromFailed')",
            name="check_operation_valid",
        ),
    )


class MutationLogDetailModel(Base):
    """Before/after snapshot of one item touched by a mutation."""

    __tablename__ = "weight_summary_batch_item_log_detail"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    log_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("weight_summary_batch_item_log.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("weight_summary_batch_item.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    before_data: Mapped[dict | None] = mapped_column(JSON)
    after_data: Mapped[dict | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )


# ============================================================================
# Operational logging
# ============================================================================


class ReconcileRunModel(Base):
    """One row per reconciliation run, for monitoring."""

    __tablename__ = "reconcile_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    run_timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False, index=True
    )
    trigger: Mapped[str] = mapped_column(String(20), nullable=False)
    production_order_number: Mapped[str | None] = mapped_column(String(20))
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)

    batches_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    batches_reused: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    items_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    items_updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    events_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    groups_skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    message: Mapped[str | None] = mapped_column(Text)
    duration_seconds: Mapped[float | None] = mapped_column(Float)

    __table_args__ = (
        CheckConstraint(
            "status IN ('SUCCESS', 'NOOP', 'FAILED')", name="check_run_status_valid"
        ),
    )
