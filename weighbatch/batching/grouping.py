"""Composite grouping key for scale events and batch items.

Scale events fold into the same batch item when all eleven fields match.
The serialized form is ``field:value|field:value|...`` in the fixed order of
``GROUPING_FIELDS`` with ``null`` for missing values.
"""

from __future__ import annotations

from dataclasses import astuple, dataclass, fields, replace
from typing import Any

NULL_TOKEN = "null"

# Fields that vary between items of the same batch
DIMENSION_FIELDS: tuple[str, ...] = (
    "production_group",
    "production_shift",
    "packing_group",
    "packing_shift",
    "production_lot",
    "production_location",
    "storage_location",
    "storage_location_target",
)


@dataclass(frozen=True, slots=True)
class GroupingKey:
    production_order_number: str | None
    material_code: str | None
    production_group: str | None = None
    production_shift: int | None = None
    packing_group: str | None = None
    packing_shift: int | None = None
    production_lot: str | None = None
    production_location: str | None = None
    storage_location: str | None = None
    storage_location_target: str | None = None
    plant_code: str | None = None

    @classmethod
    def from_record(cls, record: Any) -> GroupingKey:
        """Build a key from any object carrying the grouping attributes.

        Empty strings are normalized to None so ``""`` and a missing value
        land in the same group.
        """
        values = {}
        for name in GROUPING_FIELDS:
            value = getattr(record, name, None)
            values[name] = None if value == "" else value
        return cls(**values)

    def serialize(self) -> str:
        return "|".join(
            f"{name}:{NULL_TOKEN if value is None else value}"
            for name, value in zip(GROUPING_FIELDS, astuple(self))
        )

    def with_plant(self, plant_code: str | None) -> GroupingKey:
        return replace(self, plant_code=plant_code)

    def item_fields(self) -> dict[str, Any]:
        """Fields that identify an item within its batch (plant + dimensions)."""
        return {
            "plant_code": self.plant_code,
            **{name: getattr(self, name) for name in DIMENSION_FIELDS},
        }

    def __str__(self) -> str:
        return self.serialize()


GROUPING_FIELDS: tuple[str, ...] = tuple(f.name for f in fields(GroupingKey))


def group_events(events: list[Any]) -> dict[GroupingKey, list[Any]]:
    """Partition events by grouping key, preserving discovery order."""
    groups: dict[GroupingKey, list[Any]] = {}
    for event in events:
        groups.setdefault(GroupingKey.from_record(event), []).append(event)
    return groups
