"""SAP goods-receipt client for weight summary batches."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Protocol

import httpx

from weighbatch.batching.grouping import DIMENSION_FIELDS
from weighbatch.config import SAPConfig, get_config
from weighbatch.db.models import BatchItemModel, BatchModel
from weighbatch.exceptions import ExternalFailureError

logger = logging.getLogger(__name__)


class TransmissionSink(Protocol):
    async def send(self, batch_code: str, rows: list[dict[str, Any]]) -> int:
        """Deliver rows for one batch and return the HTTP status code."""
        ...


def _decimal_str(value: Decimal | None) -> str:
    return str(value if value is not None else Decimal("0"))


def build_transmission_rows(batch: BatchModel, items: list[BatchItemModel]) -> list[dict[str, Any]]:
    """One row per item: grouping key, unit, packing date and weights."""
    rows = []
    for item in items:
        row = {
            "batch_code": batch.batch_code,
            "item_id": item.id,
            "production_order_number": item.production_order_number,
            "plant_code": item.plant_code,
            "material_code": item.material_code,
            "material_uom": item.material_uom,
            "packing_date": item.packing_date.isoformat() if item.packing_date else None,
            "total_weight": _decimal_str(item.total_weight),
            "total_weight_converted": _decimal_str(item.total_weight_converted),
        }
        row.update({name: getattr(item, name) for name in DIMENSION_FIELDS})
        rows.append(row)
    return rows


class SapClient:
    """Posts batch rows to the SAP goods-receipt endpoint."""

    def __init__(
        self,
        config: SAPConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or get_config().sap
        if not self.config.enabled:
            raise ExternalFailureError("SAP_BASE_URL environment variable not set")

        auth = None
        if self.config.username:
            auth = httpx.BasicAuth(self.config.username, self.config.password or "")

        self.client = httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout_seconds,
            auth=auth,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def send(self, batch_code: str, rows: list[dict[str, Any]]) -> int:
        """POST the batch; transport errors are raised as ExternalFailureError."""
        payload = {"batch_code": batch_code, "items": rows}
        try:
            response = await self.client.post(self.config.endpoint_path, json=payload)
        except httpx.HTTPError as exc:
            logger.error(f"SAP transmission of {batch_code} failed: {exc}")
            raise ExternalFailureError(f"SAP unreachable: {exc}") from exc

        logger.info(f"SAP responded {response.status_code} for batch {batch_code}")
        return response.status_code

    async def close(self):
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
