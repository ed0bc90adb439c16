import pytest

from warehouse_twin.sim.grid import (
    INITIAL_ROBOTS,
    STORAGE_SLOTS,
    Cell,
    Grid,
    Position,
    default_grid,
)


def test_default_grid_dimensions_and_stations():
    grid = default_grid()
    assert (grid.width, grid.height) == (20, 15)
    assert grid.cell_at(1, 13) == Cell.CHARGING_STATION
    assert grid.cell_at(17, 13) == Cell.PACK_STATION
    assert grid.cell_at(1, 1) == Cell.OBSTACLE


def test_storage_slots_are_walkable():
    grid = default_grid()
    assert len(STORAGE_SLOTS) == 48
    assert STORAGE_SLOTS["A1"] == Position(0, 1)
    assert STORAGE_SLOTS["L4"] == Position(15, 11)
    for pos in STORAGE_SLOTS.values():
        assert grid.is_walkable(pos.x, pos.y)


def test_initial_robots_start_on_walkable_cells():
    grid = default_grid()
    for cfg in INITIAL_ROBOTS:
        assert grid.is_walkable(cfg["x"], cfg["y"])


def test_resolve_generic_and_specific_names():
    grid = default_grid()
    assert grid.resolve_location("A1") == Position(0, 1)
    assert grid.resolve_location("PACK_ZONE") == Position(17, 13)
    assert grid.resolve_location("PACKING") == Position(17, 13)
    assert grid.resolve_location("PACK_C") == Position(18, 13)
    assert grid.resolve_location("CHARGING") == Position(1, 13)
    assert grid.resolve_location("CHARGING_D") == Position(2, 14)
    assert grid.resolve_location("Z9") is None


def test_cell_at_out_of_bounds_raises():
    grid = default_grid()
    assert not grid.in_bounds(20, 0)
    assert not grid.is_walkable(-1, 0)
    with pytest.raises(IndexError):
        grid.cell_at(20, 0)


def test_from_rows_rejects_ragged_rows():
    with pytest.raises(ValueError):
        Grid.from_rows([[0, 0], [0]])


def test_from_rows_rejects_out_of_bounds_location():
    with pytest.raises(ValueError):
        Grid.from_rows([[0, 0]], storage_slots={"A1": (5, 5)})
