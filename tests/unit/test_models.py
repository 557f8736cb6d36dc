"""Tests for weighbatch Pydantic models and enums."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from weighbatch.models import (
    ItemChanges,
    ItemStatus,
    MutationOperation,
    ReconcileResult,
    TransmissionStatus,
)


class TestItemChanges:
    def test_provided_only_includes_explicit_fields(self):
        changes = ItemChanges(storage_location="WH02")

        assert changes.provided() == {"storage_location": "WH02"}

    def test_explicit_none_is_provided(self):
        changes = ItemChanges(production_lot=None)

        assert changes.provided() == {"production_lot": None}

    def test_field_changes_excludes_weight(self):
        changes = ItemChanges(total_weight=Decimal("30"), packing_group="B")

        assert changes.field_changes() == {"packing_group": "B"}
        assert changes.provided()["total_weight"] == Decimal("30")

    def test_negative_weight_rejected(self):
        with pytest.raises(ValidationError):
            ItemChanges(total_weight=Decimal("-1"))

    def test_from_json_payload(self):
        changes = ItemChanges.model_validate({"production_shift": 2, "total_weight": "12.5"})

        assert changes.provided() == {"production_shift": 2, "total_weight": Decimal("12.5")}


def test_enum_values_match_storage():
    assert [s.value for s in TransmissionStatus] == [
        "pending",
        "processed",
        "sending",
        "failed",
        "success",
    ]
    assert [s.value for s in ItemStatus] == ["pending", "success", "failed"]
    assert MutationOperation.CREATE_FROM_FAILED.value == "createFromFailed"


def test_reconcile_result_batches_touched():
    result = ReconcileResult(batches_created=2, batches_reused=1)

    assert result.batches_touched == 3
    assert result.affected_detail_ids == []


def test_reconcile_result_dump_includes_batches_touched():
    result = ReconcileResult(batches_created=2, batches_reused=1, events_processed=4)

    dumped = result.model_dump(mode="json")

    assert dumped["batches_touched"] == 3
    assert dumped["events_processed"] == 4
