"""Tests for the SAP transmission client."""

from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import httpx
import pytest

from weighbatch.config import SAPConfig
from weighbatch.exceptions import ExternalFailureError
from weighbatch.transmission.sap_client import SapClient, build_transmission_rows


def _item(item_id: int, weight: str):
    return SimpleNamespace(
        id=item_id,
        production_order_number="PO-1001",
        plant_code="1000",
        material_code="MAT-A",
        material_uom="KG",
        packing_date=datetime(2026, 10, 18, 8, 0, tzinfo=timezone.utc),
        total_weight=Decimal(weight),
        total_weight_converted=Decimal(weight),
        production_group="A",
        production_shift=1,
        packing_group=None,
        packing_shift=None,
        production_lot="L1",
        production_location=None,
        storage_location="WH01",
        storage_location_target=None,
    )


@pytest.fixture
def sap_config():
    return SAPConfig(base_url="https://sap.example.test", username="weigh", password="secret")


def test_build_rows_one_per_item():
    batch = SimpleNamespace(batch_code="SUM1000202610180001")

    rows = build_transmission_rows(batch, [_item(1, "10.5"), _item(2, "4")])

    assert len(rows) == 2
    assert rows[0]["batch_code"] == "SUM1000202610180001"
    assert rows[0]["item_id"] == 1
    assert rows[0]["total_weight"] == "10.5"
    assert rows[0]["storage_location"] == "WH01"
    assert rows[0]["packing_date"] == "2026-10-18T08:00:00+00:00"


def test_client_requires_base_url():
    with pytest.raises(ExternalFailureError):
        SapClient(config=SAPConfig())


@pytest.mark.asyncio
async def test_send_posts_batch_payload(sap_config):
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers.get("Authorization")
        captured["body"] = request.content
        return httpx.Response(201, json={"status": "accepted"})

    client = SapClient(config=sap_config, transport=httpx.MockTransport(handler))
    try:
        status = await client.send("SUM1000202610180001", [{"item_id": 1}])
    finally:
        await client.close()

    assert status == 201
    assert captured["url"] == "https://sap.example.test/goods-receipt/weight-summary"
    assert captured["auth"].startswith("Basic ")
    assert b"SUM1000202610180001" in captured["body"]


@pytest.mark.asyncio
async def test_send_returns_error_status(sap_config):
    transport = httpx.MockTransport(lambda request: httpx.Response(500))

    async with SapClient(config=sap_config, transport=transport) as client:
        status = await client.send("SUM1000202610180001", [])

    assert status == 500


@pytest.mark.asyncio
async def test_transport_error_raises_external_failure(sap_config):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with SapClient(config=sap_config, transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(ExternalFailureError):
            await client.send("SUM1000202610180001", [])
