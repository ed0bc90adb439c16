from __future__ import annotations

"""
File: warehouse_twin/sim/entities.py
Purpose: Core dataclasses and type aliases for fleet and order state.
"""

from dataclasses import dataclass, field
from typing import Any, Literal

from warehouse_twin.sim.grid import Position


RobotStatus = Literal["idle", "moving", "picking", "delivering", "charging"]
OrderStatus = Literal["pending", "assigned", "in_progress", "picking", "delivering", "completed", "failed"]
Priority = Literal["low", "medium", "high", "urgent"]

PRIORITIES: tuple[str, ...] = ("low", "medium", "high", "urgent")
TERMINAL_ORDER_STATES = frozenset({"completed", "failed"})

MOVE_ACTIONS = frozenset({"navigate_to", "return_to"})
DWELL_ACTIONS = frozenset({"pick_item", "drop_item"})


def split_step(step: str) -> tuple[str, str]:
    """Split ``navigate_to:A1`` into ``("navigate_to", "A1")``; bare actions get an empty target."""
    action, _, target = step.partition(":")
    return action.strip(), target.strip()


def canonical_task_sequence(item_location: str) -> list[str]:
    return [
        f"navigate_to:{item_location}",
        "pick_item",
        "navigate_to:PACK_ZONE",
        "drop_item",
        "return_to:CHARGING",
    ]


@dataclass
class Robot:
    """Robot state owned by the dispatch engine."""
    id: str
    x: int
    y: int
    battery: float
    status: RobotStatus = "idle"
    current_order_id: str | None = None
    path: list[Position] = field(default_factory=list)
    target_description: str = ""

    @property
    def position(self) -> Position:
        return Position(self.x, self.y)

    def snapshot(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "x": self.x,
            "y": self.y,
            "status": self.status,
            "battery": round(self.battery, 3),
            "current_order_id": self.current_order_id,
            "path": [[p.x, p.y] for p in self.path],
            "target_description": self.target_description,
        }


@dataclass
class Order:
    """Pick-and-pack order lifecycle tracking."""
    id: str
    item_location: str
    quantity: int
    priority: Priority
    created_at: int
    status: OrderStatus = "pending"
    assigned_robot: str | None = None
    completed_at: int | None = None

    def snapshot(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "item_location": self.item_location,
            "quantity": self.quantity,
            "priority": self.priority,
            "status": self.status,
            "assigned_robot": self.assigned_robot,
            "created_at": self.created_at,
            "completed_at": self.completed_at,
        }


@dataclass
class Metrics:
    """Monotonic fleet counters; only a full reset zeroes them."""
    started_at: int
    orders_completed: int = 0
    orders_total: int = 0
    total_task_time_ms: int = 0
    congestion_events: int = 0
    reassignments: int = 0
