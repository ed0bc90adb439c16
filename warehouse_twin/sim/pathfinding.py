"""A* pathfinding on the warehouse grid with reactive robot avoidance."""

from __future__ import annotations

import heapq
from typing import Iterable

from warehouse_twin.sim.grid import Grid, Position, manhattan

DIRECTIONS: tuple[tuple[int, int], ...] = ((0, -1), (0, 1), (-1, 0), (1, 0))


def nearest_walkable(grid: Grid, pos: tuple[int, int]) -> Position | None:
    """Closest walkable cell to *pos* by Manhattan rings, or ``None`` if the grid has none.

    Every offset of radius ``r`` is scanned before moving on to ``r + 1``.
    """
    for r in range(1, grid.width + grid.height):
        for dx in range(-r, r + 1):
            for dy in range(-r, r + 1):
                if abs(dx) + abs(dy) != r:
                    continue
                nx, ny = pos[0] + dx, pos[1] + dy
                if grid.is_walkable(nx, ny):
                    return Position(nx, ny)
    return None


def effective_goal(grid: Grid, goal: tuple[int, int]) -> Position | None:
    """The cell a route to *goal* actually ends on."""
    if grid.is_walkable(goal[0], goal[1]):
        return Position(goal[0], goal[1])
    return nearest_walkable(grid, goal)


def astar(
    grid: Grid,
    start: Position,
    goal: Position,
    blocked: set[Position] | None = None,
) -> list[Position] | None:
    """A* with Manhattan heuristic and unit edge cost.

    Cells in *blocked* are untraversable except *goal*. Equal f-scores pop in
    discovery order. The search gives up after ``4 * width * height`` node
    expansions. Returns ``[start, ..., goal]`` or ``None``.
    """
    max_iterations = 4 * grid.width * grid.height

    counter = 0
    open_set: list[tuple[int, int, Position]] = [(manhattan(start, goal), counter, start)]
    came_from: dict[Position, Position] = {}
    g_score: dict[Position, int] = {start: 0}
    closed: set[Position] = set()
    iterations = 0

    while open_set and iterations < max_iterations:
        _, _, current = heapq.heappop(open_set)
        if current in closed:
            continue
        iterations += 1

        if current == goal:
            path = [current]
            while current in came_from:
                current = came_from[current]
                path.append(current)
            path.reverse()
            return path

        closed.add(current)
        for dx, dy in DIRECTIONS:
            neighbor = Position(current.x + dx, current.y + dy)
            if neighbor in closed or not grid.is_walkable(neighbor.x, neighbor.y):
                continue
            if blocked and neighbor in blocked and neighbor != goal:
                continue
            tentative_g = g_score[current] + 1
            if tentative_g < g_score.get(neighbor, tentative_g + 1):
                came_from[neighbor] = current
                g_score[neighbor] = tentative_g
                counter += 1
                heapq.heappush(open_set, (tentative_g + manhattan(neighbor, goal), counter, neighbor))

    return None


def find_path(
    grid: Grid,
    start: tuple[int, int],
    goal: tuple[int, int],
    occupied: Iterable[tuple[int, int]] = (),
    avoid_occupied: bool = True,
) -> list[Position]:
    """Shortest route from *start* to *goal*, excluding start and including the goal.

    An empty list means either ``start == goal`` or no route exists even after
    retrying without robot occupancy; callers tell the two apart by comparing
    start and goal.
    """
    start = Position(start[0], start[1])
    if start == Position(goal[0], goal[1]):
        return []

    target = effective_goal(grid, goal)
    if target is None:
        return []
    if target == start:
        return []

    blocked = {Position(p[0], p[1]) for p in occupied} if avoid_occupied else set()
    route = astar(grid, start, target, blocked)
    if route is None and blocked:
        route = astar(grid, start, target)
    if route is None:
        return []
    return route[1:]
