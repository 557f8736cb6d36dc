"""Master-data lookups used by reconciliation.

Production orders, their material lines and material measurement rules are
owned by the ERP. ``ReferenceLookup`` is the seam; ``SqlReferenceLookup`` reads
the replicated tables in the engine's own database.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from weighbatch.db.models import MaterialModel, ProductionOrderDetailModel, ProductionOrderModel
from weighbatch.exceptions import NotFoundError
from weighbatch.models import MeasurementRuleKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MeasurementRule:
    kind: MeasurementRuleKind | None
    fixed_value: Decimal | None
    unit_code: str | None


@dataclass(frozen=True, slots=True)
class ProductionOrderRef:
    """A resolved production-order-detail with its order header."""

    detail_id: int
    production_order_id: int
    production_order_number: str
    plant_code: str | None
    material_code: str


class ReferenceLookup(Protocol):
    async def find_production_order_detail(
        self, order_number: str | None, material_code: str | None
    ) -> ProductionOrderRef:
        """Resolve (order number, material) to a detail. Raises NotFoundError."""
        ...

    async def find_measurement_rule(self, material_code: str | None) -> MeasurementRule | None:
        """Return the material's measurement rule, or None if unknown."""
        ...


class SqlReferenceLookup:
    """ReferenceLookup backed by the replicated master-data tables."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_production_order_detail(
        self, order_number: str | None, material_code: str | None
    ) -> ProductionOrderRef:
        if not order_number:
            raise NotFoundError("ProductionOrder", order_number)

        order = (
            await self.session.execute(
                select(ProductionOrderModel).where(
                    ProductionOrderModel.production_order_number == order_number,
                    ProductionOrderModel.deleted_at.is_(None),
                )
            )
        ).scalar_one_or_none()
        if order is None:
            raise NotFoundError("ProductionOrder", order_number)

        detail = (
            await self.session.execute(
                select(ProductionOrderDetailModel)
                .where(
                    ProductionOrderDetailModel.production_order_id == order.id,
                    ProductionOrderDetailModel.material_code == material_code,
                    ProductionOrderDetailModel.deleted_at.is_(None),
                )
                .order_by(ProductionOrderDetailModel.id)
                .limit(1)
            )
        ).scalar_one_or_none()
        if detail is None:
            raise NotFoundError("ProductionOrderDetail", f"{order_number}/{material_code}")

        return ProductionOrderRef(
            detail_id=detail.id,
            production_order_id=order.id,
            production_order_number=order.production_order_number,
            plant_code=order.plant_code,
            material_code=detail.material_code,
        )

    async def find_measurement_rule(self, material_code: str | None) -> MeasurementRule | None:
        if not material_code:
            return None

        material = (
            await self.session.execute(
                select(MaterialModel).where(MaterialModel.code == material_code)
            )
        ).scalar_one_or_none()
        if material is None:
            return None

        kind: MeasurementRuleKind | None = None
        if material.measurement_type:
            try:
                kind = MeasurementRuleKind(material.measurement_type.lower())
            except ValueError:
                logger.warning(
                    f"Material {material_code} has unknown measurement type "
                    f"{material.measurement_type!r}"
                )

        return MeasurementRule(
            kind=kind,
            fixed_value=material.measurement_type_value,
            unit_code=material.uom,
        )
