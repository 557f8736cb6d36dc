"""Pytest configuration and fixtures for weighbatch tests.

Provides an in-memory database session and a seeder for reference data,
scale events and batches.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from weighbatch.config import reset_config
from weighbatch.db.models import (
    Base,
    BatchItemModel,
    BatchModel,
    MaterialModel,
    ProductionOrderDetailModel,
    ProductionOrderModel,
    ScaleEventModel,
)


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("PLANT_TIMEZONE", "Asia/Jakarta")
    monkeypatch.delenv("SAP_BASE_URL", raising=False)
    reset_config()
    yield
    reset_config()


@pytest_asyncio.fixture()
async def db_session() -> AsyncSession:
    """Create in-memory database for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    SessionLocal = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        await session.close()
        await engine.dispose()


class Seeder:
    """Writes reference data, scale events and batches for a test."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def production_order(
        self,
        number: str = "PO-1001",
        plant_code: str | None = "1000",
        material_codes: tuple[str, ...] = ("MAT-A",),
    ) -> dict[str, ProductionOrderDetailModel]:
        order = ProductionOrderModel(production_order_number=number, plant_code=plant_code)
        self.session.add(order)
        await self.session.flush()

        details = {}
        for code in material_codes:
            detail = ProductionOrderDetailModel(
                production_order_id=order.id,
                material_code=code,
                material_uom="KG",
            )
            self.session.add(detail)
            details[code] = detail
        await self.session.commit()
        return details

    async def material(
        self,
        code: str = "MAT-A",
        measurement_type: str | None = "actual",
        measurement_type_value: Decimal | None = None,
    ) -> MaterialModel:
        material = MaterialModel(
            code=code,
            uom="KG",
            measurement_type=measurement_type,
            measurement_type_value=measurement_type_value,
        )
        self.session.add(material)
        await self.session.commit()
        return material

    async def scale_event(
        self,
        weight: str | Decimal,
        production_order_number: str = "PO-1001",
        material_code: str = "MAT-A",
        plant_code: str | None = None,
        **fields,
    ) -> ScaleEventModel:
        event = ScaleEventModel(
            production_order_number=production_order_number,
            material_code=material_code,
            plant_code=plant_code,
            material_uom="KG",
            weight=Decimal(str(weight)),
            **fields,
        )
        self.session.add(event)
        await self.session.commit()
        return event

    async def batch(
        self,
        detail: ProductionOrderDetailModel,
        status: str = "processed",
        batch_code: str = "SUM1000202610180001",
        items: list[dict] | None = None,
    ) -> tuple[BatchModel, list[BatchItemModel]]:
        batch = BatchModel(
            batch_code=batch_code,
            production_order_detail_id=detail.id,
            transmission_status=status,
        )
        self.session.add(batch)
        await self.session.flush()

        created = []
        for fields in items or []:
            values = {
                "production_order_number": "PO-1001",
                "plant_code": "1000",
                "material_code": detail.material_code,
                "material_uom": "KG",
                "packing_date": datetime(2026, 10, 18, 8, 0, tzinfo=timezone.utc),
                "status": "pending",
            }
            values.update(fields)
            values["total_weight"] = Decimal(str(values.get("total_weight", "0")))
            values["total_weight_converted"] = Decimal(
                str(values.get("total_weight_converted", values["total_weight"]))
            )
            item = BatchItemModel(batch_id=batch.id, **values)
            self.session.add(item)
            created.append(item)
        await self.session.commit()
        return batch, created


@pytest.fixture
def seed(db_session: AsyncSession) -> Seeder:
    return Seeder(db_session)
