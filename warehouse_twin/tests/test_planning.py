import asyncio

from warehouse_twin.planner_client import DisabledPlanner, PlannerError
from warehouse_twin.planning import PlanningGateway
from warehouse_twin.schemas import Plan
from warehouse_twin.sim.entities import Order, Robot
from warehouse_twin.sim.grid import Position, default_grid


class StubPlanner:
    """Returns canned answers, optionally after a delay or with an error."""

    def __init__(self, assignment=None, congestion=None, battery=None, delay_s=0.0, error=None):
        self.assignment = assignment
        self.congestion = congestion or []
        self.battery = battery
        self.delay_s = delay_s
        self.error = error

    async def _answer(self, value):
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.error is not None:
            raise self.error
        return value

    async def plan_assignment(self, order, robots, orders):
        return await self._answer(self.assignment)

    async def plan_congestion_response(self, zones, robots, orders):
        return await self._answer(self.congestion)

    async def plan_battery_response(self, robot, robots, orders):
        return await self._answer(self.battery)


ROBOTS = [Robot(id="R1", x=0, y=0, battery=100.0), Robot(id="R2", x=19, y=0, battery=90.0)]
ORDER = Order(id="ORD-1", item_location="A1", quantity=1, priority="high", created_at=0)


def _gateway(planner, timeout_s=1.0):
    audit = []
    gateway = PlanningGateway(planner, default_grid(), timeout_s, audit_log=lambda *row: audit.append(row))
    return gateway, audit


def test_valid_assignment_is_used_and_audited():
    plan = Plan(
        robot_id="R2",
        task_sequence=["navigate_to:A1", "pick_item", "navigate_to:PACK_ZONE", "drop_item"],
        reasoning_summary="closest free robot",
    )
    gateway, audit = _gateway(StubPlanner(assignment=plan))
    result = asyncio.run(gateway.plan_assignment(ORDER, ROBOTS, [ORDER]))
    assert result == plan
    assert audit[0][0] == "order_assignment"
    assert audit[0][1] == "Order ORD-1"


def test_unknown_robot_falls_back_to_nearest():
    plan = Plan(robot_id="R99", task_sequence=["navigate_to:A1"])
    gateway, audit = _gateway(StubPlanner(assignment=plan))
    result = asyncio.run(gateway.plan_assignment(ORDER, ROBOTS, [ORDER]))
    assert result.robot_id == "R1"
    assert result.task_sequence[0] == "navigate_to:A1"
    assert audit[0][0] == "order_assignment_error"


def test_unknown_step_or_location_falls_back():
    for steps in (["teleport:A1"], ["navigate_to:Z9"], []):
        gateway, _ = _gateway(StubPlanner(assignment=Plan(robot_id="R2", task_sequence=steps)))
        result = asyncio.run(gateway.plan_assignment(ORDER, ROBOTS, [ORDER]))
        assert result.robot_id == "R1"


def test_timeout_falls_back():
    plan = Plan(robot_id="R2", task_sequence=["navigate_to:A1"])
    gateway, audit = _gateway(StubPlanner(assignment=plan, delay_s=1.0), timeout_s=0.01)
    result = asyncio.run(gateway.plan_assignment(ORDER, ROBOTS, [ORDER]))
    assert result.robot_id == "R1"
    assert audit[0][0] == "order_assignment_error"
    assert audit[0][2] == "timeout"


def test_disabled_planner_uses_fallbacks():
    gateway, audit = _gateway(DisabledPlanner())
    assert asyncio.run(gateway.plan_congestion_response([Position(1, 1)], ROBOTS, [])) == []
    battery = asyncio.run(gateway.plan_battery_response(ROBOTS[1], ROBOTS, []))
    assert battery.task_sequence == ["navigate_to:CHARGING_A"]
    assert [row[0] for row in audit] == ["congestion_response_error", "battery_response_error"]


def test_congestion_plans_for_unknown_robots_are_dropped():
    plans = [Plan(robot_id="R1"), Plan(robot_id="R42")]
    gateway, _ = _gateway(StubPlanner(congestion=plans))
    result = asyncio.run(gateway.plan_congestion_response([Position(1, 1)], ROBOTS, []))
    assert [p.robot_id for p in result] == ["R1"]


def test_battery_plan_must_lead_to_charger():
    bad = Plan(robot_id="R1", task_sequence=["navigate_to:A1"])
    gateway, _ = _gateway(StubPlanner(battery=bad))
    result = asyncio.run(gateway.plan_battery_response(ROBOTS[0], ROBOTS, []))
    assert result.task_sequence == ["navigate_to:CHARGING_A"]

    good = Plan(robot_id="R1", task_sequence=["navigate_to:CHARGING_C"])
    gateway, _ = _gateway(StubPlanner(battery=good))
    result = asyncio.run(gateway.plan_battery_response(ROBOTS[0], ROBOTS, []))
    assert gateway.charging_target(result) == Position(1, 14)


def test_audit_log_failure_does_not_break_planning():
    def broken(*row):
        raise RuntimeError("db down")

    gateway = PlanningGateway(StubPlanner(error=PlannerError("boom")), default_grid(), 1.0, audit_log=broken)
    result = asyncio.run(gateway.plan_assignment(ORDER, ROBOTS, [ORDER]))
    assert result.robot_id == "R1"
