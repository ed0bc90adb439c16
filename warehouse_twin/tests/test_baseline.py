import pytest

from warehouse_twin.baseline import fallback_assignment, fallback_battery, select_robot
from warehouse_twin.sim.entities import Order, Robot, canonical_task_sequence
from warehouse_twin.sim.grid import Position, default_grid


def _order(slot="A1"):
    return Order(id="ORD-1", item_location=slot, quantity=1, priority="medium", created_at=0)


def test_baseline_nearest_idle_robot_assigned():
    robots = [
        Robot(id="R1", x=19, y=0, battery=100.0),
        Robot(id="R2", x=0, y=0, battery=60.0),
    ]
    plan = fallback_assignment(_order("A1"), robots, default_grid())
    assert plan.robot_id == "R2"
    assert plan.task_sequence == canonical_task_sequence("A1")
    assert plan.task_sequence[-1] == "return_to:CHARGING"


def test_baseline_distance_tie_prefers_higher_battery():
    robots = [
        Robot(id="R1", x=0, y=0, battery=40.0),
        Robot(id="R2", x=0, y=2, battery=90.0),
    ]
    assert select_robot(robots, Position(0, 1)).id == "R2"


def test_baseline_charging_robot_eligible_only_above_half_battery():
    robots = [
        Robot(id="R1", x=0, y=1, battery=45.0, status="charging"),
        Robot(id="R2", x=10, y=0, battery=80.0),
    ]
    assert select_robot(robots, Position(0, 1)).id == "R2"
    robots[0].battery = 55.0
    assert select_robot(robots, Position(0, 1)).id == "R1"


def test_baseline_fallback_when_no_robot_eligible():
    robots = [
        Robot(id="R1", x=0, y=0, battery=30.0, status="moving"),
        Robot(id="R2", x=5, y=5, battery=70.0, status="picking"),
    ]
    assert select_robot(robots, Position(0, 1)).id == "R2"
    assert select_robot([], Position(0, 1)) is None


def test_baseline_unknown_location_raises():
    with pytest.raises(ValueError):
        fallback_assignment(_order("Z9"), [Robot(id="R1", x=0, y=0, battery=100.0)], default_grid())


def test_baseline_battery_plan_targets_default_charger():
    plan = fallback_battery(Robot(id="R3", x=0, y=6, battery=15.0))
    assert plan.robot_id == "R3"
    assert plan.task_sequence == ["navigate_to:CHARGING_A"]
