from __future__ import annotations

"""
File: warehouse_twin/sim/grid.py
Purpose: Static warehouse map and named-location lookup.
Key responsibilities:
- Hold the cell layout (floor, rack, pack station, charging station).
- Answer walkability and bounds queries.
- Resolve storage slots and station names to grid positions.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Mapping, NamedTuple, Sequence


class Cell(IntEnum):
    FLOOR = 0
    OBSTACLE = 1
    PACK_STATION = 2
    CHARGING_STATION = 3


class Position(NamedTuple):
    x: int
    y: int


def manhattan(a: tuple[int, int], b: tuple[int, int]) -> int:
    """Grid distance with orthogonal moves only."""
    return abs(a[0] - b[0]) + abs(a[1] - b[1])


# 20x15, racks form aisles, charging bottom-left, packing bottom-right.
WAREHOUSE_LAYOUT: tuple[tuple[int, ...], ...] = (
    (0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0),
    (0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 0),
    (0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 0),
    (0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0),
    (0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 0),
    (0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 0),
    (0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0),
    (0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 0),
    (0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 0),
    (0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0),
    (0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 0),
    (0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 0),
    (0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0),
    (0, 3, 3, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 2, 2, 2, 0),
    (0, 3, 3, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 2, 2, 2, 0),
)

STATION_LOCATIONS: dict[str, Position] = {
    "PACK_ZONE": Position(17, 13),
    "PACK_A": Position(16, 13),
    "PACK_B": Position(17, 13),
    "PACK_C": Position(18, 13),
    "CHARGING_A": Position(1, 13),
    "CHARGING_B": Position(2, 13),
    "CHARGING_C": Position(1, 14),
    "CHARGING_D": Position(2, 14),
}

DEFAULT_CHARGING = "CHARGING_A"
DEFAULT_PACK = "PACK_ZONE"


def _storage_slots() -> dict[str, Position]:
    """Slots sit on the aisle floor either side of each rack block (A1..L4)."""
    slots: dict[str, Position] = {}
    letters = "ABCDEFGHIJKL"
    for idx, letter in enumerate(letters):
        row = idx // 3
        col = idx % 3
        left_x = col * 6
        right_x = left_x + 3
        top_y = 1 + row * 3
        slots[f"{letter}1"] = Position(left_x, top_y)
        slots[f"{letter}2"] = Position(right_x, top_y)
        slots[f"{letter}3"] = Position(left_x, top_y + 1)
        slots[f"{letter}4"] = Position(right_x, top_y + 1)
    return slots


STORAGE_SLOTS: dict[str, Position] = _storage_slots()


@dataclass(frozen=True)
class Grid:
    """Immutable warehouse grid with named locations."""
    cells: tuple[tuple[int, ...], ...]
    storage_slots: Mapping[str, Position] = field(default_factory=dict)
    stations: Mapping[str, Position] = field(default_factory=dict)

    @classmethod
    def from_rows(
        cls,
        rows: Sequence[Sequence[int]],
        storage_slots: Mapping[str, tuple[int, int]] | None = None,
        stations: Mapping[str, tuple[int, int]] | None = None,
    ) -> Grid:
        """Build a grid from row-major cell codes, validating shape and locations."""
        if not rows or not rows[0]:
            raise ValueError("grid must have at least one cell")
        width = len(rows[0])
        if any(len(row) != width for row in rows):
            raise ValueError("grid rows must all have the same width")
        cells = tuple(tuple(int(Cell(c)) for c in row) for row in rows)
        grid = cls(
            cells=cells,
            storage_slots={k: Position(*v) for k, v in (storage_slots or {}).items()},
            stations={k: Position(*v) for k, v in (stations or {}).items()},
        )
        for name, pos in {**grid.storage_slots, **grid.stations}.items():
            if not grid.in_bounds(pos.x, pos.y):
                raise ValueError(f"location {name} out of bounds: {pos}")
        return grid

    @property
    def width(self) -> int:
        return len(self.cells[0])

    @property
    def height(self) -> int:
        return len(self.cells)

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def cell_at(self, x: int, y: int) -> Cell:
        if not self.in_bounds(x, y):
            raise IndexError(f"cell ({x}, {y}) outside {self.width}x{self.height} grid")
        return Cell(self.cells[y][x])

    def is_walkable(self, x: int, y: int) -> bool:
        return self.in_bounds(x, y) and self.cells[y][x] != Cell.OBSTACLE

    def resolve_location(self, name: str) -> Position | None:
        """Map a slot or station name to a position.

        Generic names resolve to a fixed instance: ``PACK``/``PACKING`` to the
        pack zone and any unknown ``CHARGING*`` name to the default charger.
        """
        if name in self.storage_slots:
            return self.storage_slots[name]
        if name in self.stations:
            return self.stations[name]
        if name in {"PACK", "PACKING"}:
            return self.stations.get(DEFAULT_PACK)
        if name.startswith("CHARGING"):
            return self.stations.get(DEFAULT_CHARGING)
        return None

    def charging_stations(self) -> dict[str, Position]:
        return {name: pos for name, pos in self.stations.items() if name.startswith("CHARGING")}

    def rows(self) -> list[list[int]]:
        return [list(row) for row in self.cells]


def default_grid() -> Grid:
    """The 20x15 demo warehouse."""
    return Grid.from_rows(WAREHOUSE_LAYOUT, storage_slots=STORAGE_SLOTS, stations=STATION_LOCATIONS)


INITIAL_ROBOTS: tuple[dict, ...] = (
    {"id": "R1", "x": 0, "y": 0, "battery": 100.0},
    {"id": "R2", "x": 19, "y": 0, "battery": 95.0},
    {"id": "R3", "x": 0, "y": 6, "battery": 88.0},
    {"id": "R4", "x": 19, "y": 6, "battery": 92.0},
    {"id": "R5", "x": 0, "y": 12, "battery": 100.0},
    {"id": "R6", "x": 19, "y": 12, "battery": 97.0},
)
