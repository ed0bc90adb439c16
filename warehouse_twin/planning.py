from __future__ import annotations

"""
File: warehouse_twin/planning.py
Purpose: Timeout-bounded planning gateway with deterministic fallbacks.
Key responsibilities:
- Run each oracle request through one call-with-fallback primitive.
- Reject plans naming unknown robots or unknown task steps.
- Record every call in the planner audit log (best effort).
Key entrypoints:
- PlanningGateway.plan_assignment()
- PlanningGateway.plan_congestion_response()
- PlanningGateway.plan_battery_response()
"""

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Protocol, Sequence, TypeVar

from warehouse_twin.baseline import fallback_assignment, fallback_battery, fallback_congestion
from warehouse_twin.planner_client import PlannerError
from warehouse_twin.schemas import Plan
from warehouse_twin.sim.entities import DWELL_ACTIONS, MOVE_ACTIONS, Order, Robot, split_step
from warehouse_twin.sim.grid import Grid, Position

logger = logging.getLogger("warehouse-twin.planning")

T = TypeVar("T")


class Planner(Protocol):
    async def plan_assignment(self, order: Order, robots: Sequence[Robot], orders: Sequence[Order]) -> Plan: ...

    async def plan_congestion_response(
        self, zones: Sequence[Position], robots: Sequence[Robot], orders: Sequence[Order]
    ) -> list[Plan]: ...

    async def plan_battery_response(self, robot: Robot, robots: Sequence[Robot], orders: Sequence[Order]) -> Plan: ...


AuditLog = Callable[[str, str, str, int], None]


class PlanningGateway:
    """Single seam between the dispatch engine and the planning oracle."""

    def __init__(self, planner: Planner, grid: Grid, timeout_s: float, audit_log: AuditLog | None = None) -> None:
        self.planner = planner
        self.grid = grid
        self.timeout_s = timeout_s
        self.audit_log = audit_log

    async def plan_assignment(self, order: Order, robots: Sequence[Robot], orders: Sequence[Order]) -> Plan:
        robot_ids = {r.id for r in robots}

        def validate(plan: Plan) -> Plan:
            self._check_robot(plan, robot_ids)
            if not plan.task_sequence:
                raise PlannerError("empty task sequence")
            self._check_steps(plan)
            return plan

        return await self._call_with_fallback(
            kind="order_assignment",
            summary=f"Order {order.id}",
            call=lambda: self.planner.plan_assignment(order, robots, orders),
            validate=validate,
            fallback=lambda: fallback_assignment(order, robots, self.grid),
        )

    async def plan_congestion_response(
        self, zones: Sequence[Position], robots: Sequence[Robot], orders: Sequence[Order]
    ) -> list[Plan]:
        robot_ids = {r.id for r in robots}

        def validate(plans: list[Plan]) -> list[Plan]:
            kept: list[Plan] = []
            for plan in plans:
                if plan.robot_id not in robot_ids:
                    logger.warning("dropping congestion plan for unknown robot robot_id=%s", plan.robot_id)
                    continue
                kept.append(plan)
            return kept

        return await self._call_with_fallback(
            kind="congestion_response",
            summary=f"Zones: {len(zones)}",
            call=lambda: self.planner.plan_congestion_response(zones, robots, orders),
            validate=validate,
            fallback=fallback_congestion,
        )

    async def plan_battery_response(self, robot: Robot, robots: Sequence[Robot], orders: Sequence[Order]) -> Plan:
        def validate(plan: Plan) -> Plan:
            if plan.robot_id != robot.id:
                raise PlannerError(f"battery plan for {plan.robot_id}, expected {robot.id}")
            if self.charging_target(plan) is None:
                raise PlannerError("battery plan does not lead to a charging station")
            return plan

        return await self._call_with_fallback(
            kind="battery_response",
            summary=f"Robot {robot.id}",
            call=lambda: self.planner.plan_battery_response(robot, robots, orders),
            validate=validate,
            fallback=lambda: fallback_battery(robot),
        )

    def charging_target(self, plan: Plan) -> Position | None:
        """Charging station named by the first movement step of a battery plan."""
        for step in plan.task_sequence:
            action, target = split_step(step)
            if action in MOVE_ACTIONS:
                if not target.startswith("CHARGING"):
                    return None
                return self.grid.resolve_location(target)
        return None

    async def _call_with_fallback(
        self,
        kind: str,
        summary: str,
        call: Callable[[], Awaitable[T]],
        validate: Callable[[T], T],
        fallback: Callable[[], T],
    ) -> T:
        """Await the oracle within the timeout; any failure yields the local fallback."""
        start = time.monotonic()
        try:
            result = validate(await asyncio.wait_for(call(), timeout=self.timeout_s))
        except asyncio.TimeoutError:
            latency_ms = int((time.monotonic() - start) * 1000)
            logger.warning("planner timeout kind=%s summary=%s latency_ms=%s", kind, summary, latency_ms)
            self._audit(f"{kind}_error", summary, "timeout", latency_ms)
            return fallback()
        except Exception as exc:  # noqa: BLE001
            latency_ms = int((time.monotonic() - start) * 1000)
            logger.warning("planner fallback kind=%s summary=%s err=%s", kind, summary, exc)
            self._audit(f"{kind}_error", summary, str(exc), latency_ms)
            return fallback()

        latency_ms = int((time.monotonic() - start) * 1000)
        self._audit(kind, summary, _dump(result), latency_ms)
        return result

    def _check_robot(self, plan: Plan, robot_ids: set[str]) -> None:
        if plan.robot_id not in robot_ids:
            raise PlannerError(f"plan references unknown robot {plan.robot_id}")

    def _check_steps(self, plan: Plan) -> None:
        for step in plan.task_sequence:
            action, target = split_step(step)
            if action in DWELL_ACTIONS:
                continue
            if action not in MOVE_ACTIONS:
                raise PlannerError(f"unknown task step {step!r}")
            if self.grid.resolve_location(target) is None:
                raise PlannerError(f"unknown location in step {step!r}")

    def _audit(self, kind: str, summary: str, response: str, latency_ms: int) -> None:
        if self.audit_log is None:
            return
        try:
            self.audit_log(kind, summary, response, latency_ms)
        except Exception as exc:  # noqa: BLE001
            logger.debug("planner audit log write failed kind=%s err=%s", kind, exc)


def _dump(result: Any) -> str:
    if isinstance(result, list):
        return json.dumps([p.model_dump() for p in result])
    return result.model_dump_json()
