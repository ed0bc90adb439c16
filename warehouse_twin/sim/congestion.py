"""Congestion detection over 3x3 windows of the grid."""

from __future__ import annotations

from typing import Iterable

from warehouse_twin.sim.grid import Grid, Position

WINDOW = 3


def detect_congestion(grid: Grid, positions: Iterable[tuple[int, int]], threshold: int = 3) -> list[Position]:
    """Return the center of every 3x3 window holding at least *threshold* robots.

    Overlapping windows are reported independently, so one cluster may yield
    several centers.
    """
    points = list(positions)
    zones: list[Position] = []
    for x in range(grid.width - WINDOW + 1):
        for y in range(grid.height - WINDOW + 1):
            count = sum(1 for px, py in points if x <= px < x + WINDOW and y <= py < y + WINDOW)
            if count >= threshold:
                zones.append(Position(x + 1, y + 1))
    return zones
