from warehouse_twin.sim.grid import Grid, Position, default_grid, manhattan
from warehouse_twin.sim.pathfinding import effective_goal, find_path, nearest_walkable


def _assert_valid_route(grid, start, path):
    prev = Position(*start)
    for cell in path:
        assert grid.is_walkable(cell.x, cell.y)
        assert manhattan(prev, cell) == 1
        prev = cell


def test_start_equals_goal_is_empty():
    grid = default_grid()
    assert find_path(grid, (0, 0), (0, 0)) == []


def test_straight_line_is_shortest():
    grid = default_grid()
    path = find_path(grid, (0, 0), (5, 0))
    assert path == [Position(x, 0) for x in range(1, 6)]


def test_route_around_racks():
    grid = default_grid()
    path = find_path(grid, (0, 1), (17, 13))
    assert path[-1] == Position(17, 13)
    assert len(path) == manhattan((0, 1), (17, 13))
    _assert_valid_route(grid, (0, 1), path)


def test_obstacle_goal_substitutes_nearest_walkable():
    grid = default_grid()
    target = effective_goal(grid, (1, 1))
    assert target is not None
    assert grid.is_walkable(target.x, target.y)
    assert manhattan(target, (1, 1)) == 1
    path = find_path(grid, (5, 0), (1, 1))
    assert path[-1] == target


def test_occupied_cells_are_avoided_but_goal_is_allowed():
    grid = default_grid()
    path = find_path(grid, (0, 0), (3, 0), occupied=[(1, 0), (3, 0)])
    assert Position(1, 0) not in path
    assert path[-1] == Position(3, 0)
    _assert_valid_route(grid, (0, 0), path)


def test_blocked_by_robots_retries_without_occupancy():
    # single corridor: the only route passes through an occupied cell
    grid = Grid.from_rows([[0, 0, 0, 0]])
    path = find_path(grid, (0, 0), (3, 0), occupied=[(1, 0)])
    assert path == [Position(1, 0), Position(2, 0), Position(3, 0)]
    assert find_path(grid, (0, 0), (3, 0), occupied=[(1, 0)], avoid_occupied=False) == path


def test_unreachable_goal_returns_empty():
    grid = Grid.from_rows([[0, 1, 0]])
    assert find_path(grid, (0, 0), (2, 0)) == []


def test_nearest_walkable_none_on_solid_grid():
    grid = Grid.from_rows([[1, 1], [1, 1]])
    assert nearest_walkable(grid, (0, 0)) is None
    assert find_path(grid, (0, 0), (1, 1)) == []
