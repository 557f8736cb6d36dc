"""Database layer for weighbatch with async SQLAlchemy."""

from weighbatch.db.connection import get_session, init_db
from weighbatch.db.models import (
    Base,
    BatchCodeCounterModel,
    BatchItemModel,
    BatchModel,
    MaterialModel,
    MutationLogDetailModel,
    MutationLogModel,
    ProductionOrderDetailModel,
    ProductionOrderModel,
    ReconcileRunModel,
    ScaleEventModel,
)

__all__ = [
    "Base",
    "BatchCodeCounterModel",
    "BatchItemModel",
    "BatchModel",
    "MaterialModel",
    "MutationLogDetailModel",
    "MutationLogModel",
    "ProductionOrderDetailModel",
    "ProductionOrderModel",
    "ReconcileRunModel",
    "ScaleEventModel",
    "get_session",
    "init_db",
]
