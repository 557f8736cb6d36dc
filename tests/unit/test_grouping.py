"""Tests for the composite grouping key."""

from types import SimpleNamespace

from weighbatch.batching.grouping import (
    DIMENSION_FIELDS,
    GROUPING_FIELDS,
    GroupingKey,
    group_events,
)


def _event(**overrides):
    values = {name: None for name in GROUPING_FIELDS}
    values.update(production_order_number="PO-1", material_code="MAT-A")
    values.update(overrides)
    return SimpleNamespace(**values)


def test_grouping_fields_order():
    assert GROUPING_FIELDS == (
        "production_order_number",
        "material_code",
        "production_group",
        "production_shift",
        "packing_group",
        "packing_shift",
        "production_lot",
        "production_location",
        "storage_location",
        "storage_location_target",
        "plant_code",
    )
    assert len(DIMENSION_FIELDS) == 8


def test_serialize_uses_null_token():
    key = GroupingKey(production_order_number="PO-1", material_code="MAT-A", production_shift=2)

    serialized = key.serialize()

    assert serialized.startswith("production_order_number:PO-1|material_code:MAT-A|")
    assert "production_shift:2" in serialized
    assert serialized.endswith("plant_code:null")
    assert str(key) == serialized


def test_empty_string_and_missing_value_group_together():
    a = GroupingKey.from_record(_event(storage_location=""))
    b = GroupingKey.from_record(_event(storage_location=None))

    assert a == b
    assert hash(a) == hash(b)


def test_any_dimension_difference_splits_groups():
    events = [
        _event(production_lot="A"),
        _event(production_lot="A"),
        _event(production_lot="B"),
        _event(material_code="MAT-B", production_lot="A"),
    ]

    groups = group_events(events)

    assert len(groups) == 3
    first_key = next(iter(groups))
    assert first_key.production_lot == "A"
    assert len(groups[first_key]) == 2


def test_group_events_preserves_discovery_order():
    events = [_event(packing_shift=3), _event(packing_shift=1), _event(packing_shift=3)]

    groups = group_events(events)

    assert [key.packing_shift for key in groups] == [3, 1]


def test_with_plant_and_item_fields():
    key = GroupingKey(production_order_number="PO-1", material_code="MAT-A", storage_location="WH01")

    resolved = key.with_plant("1000")

    assert key.plant_code is None
    assert resolved.plant_code == "1000"
    fields = resolved.item_fields()
    assert list(fields) == ["plant_code", *DIMENSION_FIELDS]
    assert fields["plant_code"] == "1000"
    assert fields["storage_location"] == "WH01"
