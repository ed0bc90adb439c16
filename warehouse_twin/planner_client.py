from __future__ import annotations

"""
File: warehouse_twin/planner_client.py
Purpose: HTTP client for the LLM planning oracle.
Key responsibilities:
- Build a warehouse-context prompt for each request shape.
- Call the generateContent endpoint and extract the JSON answer.
- Normalize answers into Plan models or raise PlannerError.
Config/env vars:
- GEMINI_API_KEY, PLANNER_MODEL, PLANNER_BASE_URL, PLANNER_TIMEOUT_S
"""

import json
import re
from typing import Any, Sequence

import httpx
from pydantic import ValidationError

from warehouse_twin.schemas import Plan
from warehouse_twin.sim.entities import Order, Robot
from warehouse_twin.sim.grid import Grid, Position

_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_ARRAY_RE = re.compile(r"\[[\s\S]*\]")


class PlannerError(RuntimeError):
    """The oracle did not produce a usable answer."""


class PlannerUnavailable(PlannerError):
    """The oracle is not configured."""


def extract_plan(text: str) -> Plan:
    """Parse the first JSON object in *text* (markdown fences allowed) into a Plan."""
    match = _OBJECT_RE.search(text)
    if not match:
        raise PlannerError(f"planner returned non-JSON: {text[:200]!r}")
    try:
        return Plan.model_validate(json.loads(match.group(0)))
    except (json.JSONDecodeError, ValidationError) as exc:
        raise PlannerError(f"malformed plan: {exc}") from exc


def extract_plan_list(text: str) -> list[Plan]:
    match = _ARRAY_RE.search(text)
    if not match:
        raise PlannerError(f"planner returned non-JSON array: {text[:200]!r}")
    try:
        raw = json.loads(match.group(0))
        if not isinstance(raw, list):
            raise PlannerError("planner answer is not a list")
        return [Plan.model_validate(item) for item in raw]
    except (json.JSONDecodeError, ValidationError) as exc:
        raise PlannerError(f"malformed plan list: {exc}") from exc


def warehouse_context(grid: Grid, robots: Sequence[Robot], orders: Sequence[Order]) -> str:
    robot_lines = "\n".join(
        f"{r.id}: pos=({r.x},{r.y}), status={r.status}, battery={r.battery:.1f}%, task={r.current_order_id or 'none'}"
        for r in robots
    )
    pending = [o for o in orders if o.status == "pending"]
    active = [o for o in orders if o.status not in {"pending", "completed", "failed"}]
    slots = ", ".join(f"{name}: ({p.x},{p.y})" for name, p in grid.storage_slots.items())
    stations = ", ".join(f"{name}({p.x},{p.y})" for name, p in grid.stations.items())
    pending_lines = "\n".join(
        f"  Order {o.id}: item at {o.item_location}, qty={o.quantity}, priority={o.priority}" for o in pending
    )
    active_lines = "\n".join(f"  Order {o.id}: status={o.status}, robot={o.assigned_robot}" for o in active)
    return (
        "WAREHOUSE STATE:\n"
        f"Grid: {grid.width}x{grid.height}, racks form aisles, open floor for movement.\n"
        f"Stations: {stations}\n\n"
        f"ROBOTS:\n{robot_lines}\n\n"
        f"STORAGE LOCATIONS: {slots}\n\n"
        f"PENDING ORDERS: {len(pending)}\n{pending_lines}\n\n"
        f"ACTIVE ORDERS: {len(active)}\n{active_lines}"
    )


class DisabledPlanner:
    """Oracle stand-in when no API key is configured; every call falls back."""

    async def plan_assignment(self, order: Order, robots: Sequence[Robot], orders: Sequence[Order]) -> Plan:
        raise PlannerUnavailable("planner disabled")

    async def plan_congestion_response(
        self, zones: Sequence[Position], robots: Sequence[Robot], orders: Sequence[Order]
    ) -> list[Plan]:
        raise PlannerUnavailable("planner disabled")

    async def plan_battery_response(self, robot: Robot, robots: Sequence[Robot], orders: Sequence[Order]) -> Plan:
        raise PlannerUnavailable("planner disabled")


class GeminiPlanner:
    """Planning oracle backed by the Gemini generateContent REST API."""

    def __init__(
        self,
        grid: Grid,
        api_key: str,
        model: str,
        base_url: str,
        timeout_s: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.grid = grid
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.transport = transport

    async def plan_assignment(self, order: Order, robots: Sequence[Robot], orders: Sequence[Order]) -> Plan:
        item_pos = self.grid.resolve_location(order.item_location)
        if item_pos is None:
            raise PlannerError(f"unknown item location: {order.item_location}")
        prompt = (
            "You are an AI warehouse orchestrator. Assign a robot to fulfill this order and create a task plan.\n\n"
            f"{warehouse_context(self.grid, robots, orders)}\n\n"
            "NEW ORDER TO ASSIGN:\n"
            f"Order ID: {order.id}\n"
            f"Item Location: {order.item_location} at position ({item_pos.x}, {item_pos.y})\n"
            f"Quantity: {order.quantity}\nPriority: {order.priority}\n\n"
            "RULES:\n"
            "- Prefer idle robots, or charging robots with battery > 50%, close to the item.\n"
            "- Actions: navigate_to:<location>, pick_item, drop_item, return_to:CHARGING.\n"
            "- Locations are storage slot names, PACK_ZONE or CHARGING.\n\n"
            'Respond ONLY with JSON: {"robot_id": "<id>", "task_sequence": [...], "reasoning_summary": "<brief>"}'
        )
        return extract_plan(await self._generate(prompt, temperature=0.2, max_tokens=500))

    async def plan_congestion_response(
        self, zones: Sequence[Position], robots: Sequence[Robot], orders: Sequence[Order]
    ) -> list[Plan]:
        zone_list = ", ".join(f"({z.x}, {z.y})" for z in zones)
        prompt = (
            "You are an AI warehouse orchestrator. Congestion detected: reroute affected robots.\n\n"
            f"{warehouse_context(self.grid, robots, orders)}\n\n"
            f"CONGESTION ZONES (centers of 3x3 areas with 3+ robots): {zone_list}\n\n"
            "Only reroute robots whose status is moving.\n"
            'Respond ONLY with a JSON array of {"robot_id", "task_sequence", "reasoning_summary"} '
            "objects, or [] if no rerouting is needed."
        )
        return extract_plan_list(await self._generate(prompt, temperature=0.3, max_tokens=800))

    async def plan_battery_response(self, robot: Robot, robots: Sequence[Robot], orders: Sequence[Order]) -> Plan:
        chargers = ", ".join(f"{name}({p.x},{p.y})" for name, p in self.grid.charging_stations().items())
        prompt = (
            "You are an AI warehouse orchestrator. A robot has low battery and needs to charge.\n\n"
            f"{warehouse_context(self.grid, robots, orders)}\n\n"
            f"LOW BATTERY ROBOT: {robot.id} at ({robot.x}, {robot.y}) with {robot.battery:.1f}% battery.\n"
            f"Current task: {robot.current_order_id or 'none'}\n"
            f"Charging stations: {chargers}\n\n"
            f'Respond ONLY with JSON: {{"robot_id": "{robot.id}", '
            '"task_sequence": ["navigate_to:<charging station>"], "reasoning_summary": "<brief>"}'
        )
        return extract_plan(await self._generate(prompt, temperature=0.2, max_tokens=400))

    async def _generate(self, prompt: str, temperature: float, max_tokens: int) -> str:
        """POST one prompt and return the concatenated candidate text."""
        if not self.api_key:
            raise PlannerUnavailable("GEMINI_API_KEY not set")
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": temperature, "maxOutputTokens": max_tokens},
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self.transport) as client:
                resp = await client.post(
                    f"{self.base_url}/models/{self.model}:generateContent",
                    json=payload,
                    headers={"x-goog-api-key": self.api_key},
                )
                resp.raise_for_status()
                data: dict[str, Any] = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise PlannerError(f"planner request failed: {exc}") from exc

        try:
            parts = data["candidates"][0]["content"]["parts"]
            return "".join(str(part.get("text", "")) for part in parts).strip()
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise PlannerError(f"unexpected planner response shape: {exc}") from exc
