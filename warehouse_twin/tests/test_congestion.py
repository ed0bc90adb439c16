from warehouse_twin.sim.congestion import detect_congestion
from warehouse_twin.sim.grid import Position, default_grid


def test_three_robots_in_window_report_center():
    grid = default_grid()
    zones = detect_congestion(grid, [(0, 0), (1, 0), (2, 0)])
    assert zones == [Position(1, 1)]


def test_spread_out_robots_are_not_congested():
    grid = default_grid()
    assert detect_congestion(grid, [(0, 0), (5, 0), (10, 0), (0, 6)]) == []


def test_threshold_is_respected():
    grid = default_grid()
    positions = [(0, 0), (1, 0), (2, 0)]
    assert detect_congestion(grid, positions, threshold=4) == []


def test_overlapping_windows_reported_in_scan_order():
    grid = default_grid()
    zones = detect_congestion(grid, [(3, 3), (3, 4), (4, 3)])
    # every window containing all three cells, x-major then y
    assert zones == [Position(3, 3), Position(3, 4), Position(4, 3), Position(4, 4)]
    assert zones == sorted(zones)
