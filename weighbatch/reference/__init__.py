"""ERP master-data lookups."""

from weighbatch.reference.lookup import (
    MeasurementRule,
    ProductionOrderRef,
    ReferenceLookup,
    SqlReferenceLookup,
)

__all__ = [
    "MeasurementRule",
    "ProductionOrderRef",
    "ReferenceLookup",
    "SqlReferenceLookup",
]
