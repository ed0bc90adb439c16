from __future__ import annotations

"""
File: warehouse_twin/baseline.py
Purpose: Deterministic planning fallbacks used when the oracle is unavailable.
Key responsibilities:
- Nearest eligible robot for an order (Manhattan, then battery).
- Default charging plan for low-battery robots.
- No-op congestion response.
"""

from typing import Sequence

from warehouse_twin.schemas import Plan
from warehouse_twin.sim.entities import Order, Robot, canonical_task_sequence
from warehouse_twin.sim.grid import DEFAULT_CHARGING, Grid, Position, manhattan

CHARGING_AVAILABLE_MIN_BATTERY = 50.0


def _eligible(robot: Robot) -> bool:
    """Idle robots, or charging robots with enough battery to leave."""
    if robot.status == "idle":
        return True
    return robot.status == "charging" and robot.battery > CHARGING_AVAILABLE_MIN_BATTERY


def select_robot(robots: Sequence[Robot], item_pos: Position) -> Robot | None:
    """Pick the closest eligible robot, ties to higher battery; else highest battery overall."""
    eligible = [r for r in robots if _eligible(r)]
    if eligible:
        # stable sort keeps fleet order for exact ties
        return sorted(eligible, key=lambda r: (manhattan(r.position, item_pos), -r.battery))[0]
    if not robots:
        return None
    return sorted(robots, key=lambda r: -r.battery)[0]


def fallback_assignment(order: Order, robots: Sequence[Robot], grid: Grid) -> Plan:
    """Canonical five-step plan for the nearest eligible robot."""
    item_pos = grid.resolve_location(order.item_location)
    if item_pos is None:
        raise ValueError(f"unknown item location: {order.item_location}")
    chosen = select_robot(robots, item_pos)
    if chosen is None:
        raise ValueError("no robots available for assignment")
    return Plan(
        robot_id=chosen.id,
        task_sequence=canonical_task_sequence(order.item_location),
        reasoning_summary=(
            f"Fallback: {chosen.id} selected by proximity "
            f"(dist={manhattan(chosen.position, item_pos)}) and battery ({chosen.battery:.0f}%)."
        ),
    )


def fallback_battery(robot: Robot) -> Plan:
    return Plan(
        robot_id=robot.id,
        task_sequence=[f"navigate_to:{DEFAULT_CHARGING}"],
        reasoning_summary="Fallback: low battery, heading to default charger.",
    )


def fallback_congestion() -> list[Plan]:
    return []
