"""Default unit inventory.

The inventory is fixed: three residential unit stacks in each of two
buildings, four parking ranges and three storage ranges.  It is only used
to seed an empty store and by the reset/initialize operations, which
replace the durable unit set with exactly this list.  Identifiers match the
ones the admin and display front-ends render, so the format must not change.
"""

from __future__ import annotations

from dataclasses import dataclass

PARKING_PREFIX = "车位-"
STORAGE_PREFIX = "仓房-"

DOORS_PER_FLOOR = 2


@dataclass(frozen=True)
class Tower:
    """One residential stack: a building/unit pair with a floor count."""

    building: int
    unit: int
    floors: int

    def unit_ids(self) -> list[str]:
        """Ids from the top floor down, ``door`` 01 before 02 on each floor."""
        ids: list[str] = []
        for floor in range(self.floors, 0, -1):
            for door in range(1, DOORS_PER_FLOOR + 1):
                ids.append(f"{self.building}-{self.unit}-{floor}{door:02d}")
        return ids

    @property
    def size(self) -> int:
        return self.floors * DOORS_PER_FLOOR


@dataclass(frozen=True)
class TagRange:
    """An inclusive numbered range such as parking spots ``A1..A62``."""

    prefix: str
    tag: str
    first: int
    last: int

    def unit_ids(self) -> list[str]:
        return [f"{self.prefix}{self.tag}{i}" for i in range(self.first, self.last + 1)]

    @property
    def size(self) -> int:
        return self.last - self.first + 1


TOWERS: tuple[Tower, ...] = (
    Tower(building=4, unit=1, floors=18),
    Tower(building=4, unit=2, floors=18),
    Tower(building=4, unit=3, floors=18),
    Tower(building=5, unit=1, floors=6),
    Tower(building=5, unit=2, floors=6),
    Tower(building=5, unit=3, floors=6),
)

PARKING_RANGES: tuple[TagRange, ...] = (
    TagRange(PARKING_PREFIX, "A", 1, 62),
    TagRange(PARKING_PREFIX, "B", 8, 19),
    TagRange(PARKING_PREFIX, "B", 43, 48),
    TagRange(PARKING_PREFIX, "C", 1, 44),
)

STORAGE_RANGES: tuple[TagRange, ...] = (
    TagRange(STORAGE_PREFIX, "4#下Z", 1, 10),
    TagRange(STORAGE_PREFIX, "5#下Z", 11, 32),
    TagRange(STORAGE_PREFIX, "Z", 33, 39),
)


def default_unit_ids() -> list[str]:
    """All unit ids in canonical order: towers, parking, storage."""
    ids: list[str] = []
    for tower in TOWERS:
        ids.extend(tower.unit_ids())
    for tag_range in (*PARKING_RANGES, *STORAGE_RANGES):
        ids.extend(tag_range.unit_ids())
    return ids


def inventory_size() -> int:
    """Sum of every sub-range's cardinality."""
    return sum(t.size for t in TOWERS) + sum(r.size for r in (*PARKING_RANGES, *STORAGE_RANGES))


def generate_default_inventory() -> list[tuple[str, bool]]:
    """Return ``(unit_id, sold)`` pairs for a freshly initialized store.

    Pure and deterministic: every call yields the same ids in the same
    order, all unsold.
    """
    return [(unit_id, False) for unit_id in default_unit_ids()]
