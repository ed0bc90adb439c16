from __future__ import annotations

"""
File: warehouse_twin/sim/engine.py
Purpose: Tick-driven dispatch engine for the robot fleet and order book.
Key responsibilities:
- Own robots, orders, task steps and fleet counters.
- Advance robots each tick with per-cell collision waits and battery drain/charge.
- Execute task steps (routes, timed pick/drop) and complete orders.
- Trigger planning calls (assignment, congestion, battery) without blocking the tick.
- Emit state-change events and persist snapshots.
Key entrypoints:
- DispatchEngine.start() / stop() / step()
- DispatchEngine.create_order() / reset() / get_state()
"""

import asyncio
from dataclasses import replace
import logging
import time
from typing import Any, Awaitable, Callable, Sequence
import uuid

from warehouse_twin.baseline import CHARGING_AVAILABLE_MIN_BATTERY
from warehouse_twin.db import MemoryStore, MySQLStore
from warehouse_twin.planning import PlanningGateway
from warehouse_twin.schemas import Plan
from warehouse_twin.sim.congestion import detect_congestion
from warehouse_twin.sim.entities import (
    MOVE_ACTIONS,
    PRIORITIES,
    TERMINAL_ORDER_STATES,
    Metrics,
    Order,
    Robot,
    split_step,
)
from warehouse_twin.sim.grid import DEFAULT_CHARGING, INITIAL_ROBOTS, Cell, Grid, Position, manhattan
from warehouse_twin.sim.metrics import compute_metrics
from warehouse_twin.sim.pathfinding import effective_goal, find_path

logger = logging.getLogger("warehouse-twin.engine")

EventSink = Callable[[str, dict[str, Any]], None]


def _now_ms() -> int:
    return int(time.time() * 1000)


class InvalidOrderError(ValueError):
    """Order command rejected before it reaches simulation state."""


class DispatchEngine:
    """Single-writer owner of fleet and order state.

    All mutation happens on one asyncio loop: the tick task, planning-call
    continuations and pick/drop timers. Collision checks use the positions at
    the start of the tick plus cells already claimed earlier in the same tick,
    with robots processed in id order.
    """

    def __init__(
        self,
        grid: Grid,
        gateway: PlanningGateway,
        event_sink: EventSink,
        store: MemoryStore | MySQLStore | None = None,
        tick_ms: int = 500,
        battery_drain_per_move: float = 0.3,
        battery_charge_per_tick: float = 2.0,
        low_battery_threshold: float = 20.0,
        critical_battery_threshold: float = 10.0,
        congestion_interval_ticks: int = 10,
        congestion_threshold: int = 3,
        replan_interval_ticks: int = 5,
        persist_interval_ticks: int = 10,
        pick_dwell_s: float = 1.5,
        drop_dwell_s: float = 1.0,
        initial_robots: Sequence[dict[str, Any]] = INITIAL_ROBOTS,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        """Initialize the engine with the seeded fleet and zeroed counters."""
        self.grid = grid
        self.gateway = gateway
        self.event_sink = event_sink
        self.store = store if store is not None else MemoryStore()
        self.tick_ms = tick_ms
        self.battery_drain_per_move = battery_drain_per_move
        self.battery_charge_per_tick = battery_charge_per_tick
        self.low_battery_threshold = low_battery_threshold
        self.critical_battery_threshold = critical_battery_threshold
        self.congestion_interval_ticks = congestion_interval_ticks
        self.congestion_threshold = congestion_threshold
        self.replan_interval_ticks = replan_interval_ticks
        self.persist_interval_ticks = persist_interval_ticks
        self.pick_dwell_s = pick_dwell_s
        self.drop_dwell_s = drop_dwell_s
        self.initial_robots = [dict(r) for r in initial_robots]
        self.clock = clock

        self.tick = 0
        self.robots: dict[str, Robot] = self._seed_robots()
        self.orders: dict[str, Order] = {}
        self.task_steps: dict[str, list[str]] = {}
        self.congestion_zones: list[Position] = []
        self.metrics = Metrics(started_at=self.clock())

        self._generation = 0
        self._destinations: dict[str, Position] = {}
        self._charge_targets: dict[str, Position] = {}
        self._battery_deferred: set[str] = set()
        self._in_flight: dict[str, asyncio.Task] = {}
        self._tasks: set[asyncio.Task] = set()
        self._loop_task: asyncio.Task | None = None

    # ------------------------------------------------------------------ lifecycle

    def load(self) -> None:
        """Restore persisted state, or seed and persist the initial fleet."""
        now = self.clock()
        self.store.init_schema(now)

        rows = self.store.load_robots()
        if rows:
            self.robots = {str(row["id"]): self._robot_from_row(row) for row in rows}
        else:
            self.robots = self._seed_robots()
            self.store.save_robots(self.robots.values())

        self.orders = {}
        for row in self.store.load_orders():
            order = Order(
                id=str(row["id"]),
                item_location=str(row["item_location"]),
                quantity=int(row["quantity"]),
                priority=row["priority"],
                created_at=int(row["created_at"]),
                status=row["status"],
                assigned_robot=row.get("assigned_robot"),
                completed_at=row.get("completed_at"),
            )
            # task steps are not persisted, so in-flight orders start over
            if order.status not in TERMINAL_ORDER_STATES and order.status != "pending":
                order.status = "pending"
                order.assigned_robot = None
                self.store.upsert_order(order)
            self.orders[order.id] = order

        metrics_row = self.store.load_metrics() or {}
        self.metrics = Metrics(
            started_at=int(metrics_row.get("started_at") or now),
            orders_completed=int(metrics_row.get("orders_completed") or 0),
            orders_total=int(metrics_row.get("orders_total") or 0),
            total_task_time_ms=int(metrics_row.get("total_task_time_ms") or 0),
            congestion_events=int(metrics_row.get("congestion_events") or 0),
            reassignments=int(metrics_row.get("reassignments") or 0),
        )
        logger.info("state loaded robots=%s orders=%s", len(self.robots), len(self.orders))

    def start(self, tick_ms: int | None = None) -> None:
        """Start the tick loop on the running event loop."""
        if self._loop_task is not None and not self._loop_task.done():
            return
        if tick_ms is not None:
            self.tick_ms = tick_ms
        self._loop_task = asyncio.get_running_loop().create_task(self._run_loop())
        logger.info("simulation started tick_ms=%s", self.tick_ms)

    def stop(self) -> None:
        if self._loop_task is not None:
            self._loop_task.cancel()
            self._loop_task = None

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def drain(self) -> None:
        """Wait for every outstanding planning call to resolve."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run_loop(self) -> None:
        while True:
            await asyncio.sleep(self.tick_ms / 1000.0)
            try:
                self.step()
            except Exception as exc:  # noqa: BLE001
                logger.exception("tick failed tick=%s err=%s", self.tick, exc)

    def reset(self) -> dict[str, Any]:
        """Stop, clear orders and counters, restore the initial fleet, restart."""
        tick_ms = self.tick_ms
        self.stop()
        self._generation += 1
        for task in list(self._tasks):
            task.cancel()
        self._in_flight.clear()

        self.tick = 0
        self.orders.clear()
        self.task_steps.clear()
        self.congestion_zones = []
        self._destinations.clear()
        self._charge_targets.clear()
        self._battery_deferred.clear()

        now = self.clock()
        self.store.reset(now)
        self.metrics = Metrics(started_at=now)
        self.robots = self._seed_robots()
        self.store.save_robots(self.robots.values())

        logger.info("simulation reset generation=%s", self._generation)
        state = self.get_state()
        self._emit("simulation_reset", state)
        self.start(tick_ms)
        return state

    # ------------------------------------------------------------------ commands

    def create_order(self, item_location: str, quantity: int = 1, priority: str = "medium") -> Order:
        """Validate and enqueue an order, then request its assignment."""
        if item_location not in self.grid.storage_slots:
            raise InvalidOrderError(f"invalid item location: {item_location!r}")
        if priority not in PRIORITIES:
            raise InvalidOrderError(f"invalid priority: {priority!r}")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise InvalidOrderError(f"invalid quantity: {quantity!r}")

        order = Order(
            id=f"ORD-{uuid.uuid4().hex[:8].upper()}",
            item_location=item_location,
            quantity=quantity,
            priority=priority,  # type: ignore[arg-type]
            created_at=self.clock(),
        )
        self.orders[order.id] = order
        self._persist_order(order)
        self.metrics.orders_total += 1
        self._persist_metrics(orders_total=1)
        logger.info("order created order_id=%s slot=%s priority=%s", order.id, item_location, priority)

        self._emit("order_created", order.snapshot())
        self.request_assignment(order.id)
        return order

    def request_assignment(self, order_id: str) -> bool:
        """Start an assignment call unless the order is not pending or one is already in flight."""
        order = self.orders.get(order_id)
        if order is None or order.status != "pending":
            return False
        return self._spawn(order_id, lambda: self._assign_order(order_id))

    def get_state(self) -> dict[str, Any]:
        return {
            "robots": self.get_robots(),
            "orders": self.get_orders(),
            "metrics": self.get_metrics(),
            "grid": self.grid.rows(),
            "tick": self.tick,
            "congestion_zones": [{"x": z.x, "y": z.y} for z in self.congestion_zones],
        }

    def get_robots(self) -> list[dict[str, Any]]:
        return [r.snapshot() for r in self._ordered_robots()]

    def get_orders(self) -> list[dict[str, Any]]:
        return [o.snapshot() for o in self.orders.values()]

    def get_metrics(self) -> dict[str, Any]:
        return compute_metrics(self.metrics, self._ordered_robots(), self.clock())

    # ------------------------------------------------------------------ tick

    def step(self) -> None:
        """Advance the simulation by one tick."""
        self.tick += 1
        occupied = {r.position for r in self.robots.values()}
        claimed: set[Position] = set()

        for robot in self._ordered_robots():
            if robot.status == "charging":
                self._charge(robot)
                continue
            if robot.status == "moving" and robot.path:
                self._advance(robot, occupied, claimed)
            if robot.status == "moving" and not robot.path:
                self._on_path_exhausted(robot)
            self._check_battery(robot)

        if self.congestion_interval_ticks > 0 and self.tick % self.congestion_interval_ticks == 0:
            self._scan_congestion()

        if self.replan_interval_ticks > 0 and self.tick % self.replan_interval_ticks == 0:
            for order in list(self.orders.values()):
                if order.status == "pending":
                    self.request_assignment(order.id)

        if self.persist_interval_ticks > 0 and self.tick % self.persist_interval_ticks == 0:
            self.store.save_robots(self.robots.values())

        self._emit("state_update", self.get_state())

    def _charge(self, robot: Robot) -> None:
        robot.battery = min(100.0, robot.battery + self.battery_charge_per_tick)
        if robot.battery >= 100.0:
            robot.status = "idle"
            robot.target_description = "Fully charged"

    def _advance(self, robot: Robot, occupied: set[Position], claimed: set[Position]) -> None:
        """Move one cell unless the next cell is taken at tick start or already claimed this tick."""
        nxt = robot.path[0]
        if nxt in occupied or nxt in claimed:
            return
        robot.x, robot.y = nxt.x, nxt.y
        robot.path.pop(0)
        robot.battery = max(0.0, robot.battery - self.battery_drain_per_move)
        claimed.add(nxt)

    def _on_path_exhausted(self, robot: Robot) -> None:
        """Handle a moving robot with nothing left to traverse: arrival, or a stalled route."""
        dest = self._destinations.get(robot.id)
        if dest is not None and robot.position != dest:
            # no route last time; try again from here
            robot.path = find_path(self.grid, robot.position, dest, self._occupied_except(robot.id))
            return
        self._destinations.pop(robot.id, None)

        if robot.current_order_id is not None:
            order = self.orders.get(robot.current_order_id)
            steps = self.task_steps.get(robot.current_order_id)
            if order is None or steps is None:
                robot.current_order_id = None
                robot.status = "idle"
                robot.target_description = ""
                return
            if steps:
                action, target = split_step(steps[0])
                if action in MOVE_ACTIONS:
                    steps.pop(0)
                    if action == "return_to" and target.startswith("CHARGING"):
                        robot.status = "charging"
                        robot.target_description = "Charging"
                    else:
                        order.status = "in_progress"
                        self._persist_order(order)
            self._execute_next_step(robot, order)
            return

        charger = self._charge_targets.pop(robot.id, None)
        if charger is not None and self.grid.cell_at(robot.x, robot.y) == Cell.CHARGING_STATION:
            robot.status = "charging"
            robot.target_description = "Charging"
        else:
            robot.status = "idle"
            robot.target_description = ""

    def _check_battery(self, robot: Robot) -> None:
        if robot.battery <= self.critical_battery_threshold and robot.current_order_id is not None:
            self._abandon_order(robot, reason="low_battery")

        if robot.battery > self.low_battery_threshold or robot.status == "charging":
            return
        if robot.id in self._charge_targets:
            return
        if robot.current_order_id is not None and robot.id in self._battery_deferred:
            return
        self._spawn(f"battery_{robot.id}", lambda: self._handle_low_battery(robot.id))

    def _scan_congestion(self) -> None:
        zones = detect_congestion(
            self.grid,
            [r.position for r in self._ordered_robots()],
            threshold=self.congestion_threshold,
        )
        self.congestion_zones = zones
        if not zones:
            return
        self.metrics.congestion_events += len(zones)
        self._persist_metrics(congestion_events=len(zones))
        logger.info("congestion detected tick=%s zones=%s", self.tick, len(zones))
        self._spawn("congestion", lambda: self._handle_congestion(list(zones)))

    # ------------------------------------------------------------------ task steps

    def _execute_next_step(self, robot: Robot, order: Order) -> None:
        """Start the head task step, or complete the order when none remain."""
        steps = self.task_steps.get(order.id, [])
        while steps:
            action, target = split_step(steps[0])
            if action in MOVE_ACTIONS:
                pos = self.grid.resolve_location(target)
                if pos is None:
                    logger.warning("skipping step with unknown location order_id=%s step=%s", order.id, steps[0])
                    steps.pop(0)
                    continue
                if target.startswith("CHARGING"):
                    pos = self._pick_charger(robot, pos)
                self._route(robot, pos)
                robot.status = "moving"
                if action == "return_to" and target.startswith("CHARGING"):
                    robot.target_description = "Returning to charging station"
                else:
                    robot.target_description = f"Navigating to {target}"
                return
            if action == "pick_item":
                robot.status = "picking"
                robot.target_description = "Picking item"
                order.status = "picking"
                self._persist_order(order)
                self._schedule(self.pick_dwell_s, robot.id, order.id, action)
                return
            if action == "drop_item":
                robot.status = "delivering"
                robot.target_description = "Dropping item at packing zone"
                order.status = "delivering"
                self._persist_order(order)
                self._schedule(self.drop_dwell_s, robot.id, order.id, action)
                return
            logger.warning("skipping unknown step order_id=%s step=%s", order.id, steps[0])
            steps.pop(0)

        self._complete_order(robot, order)

    def _schedule(self, delay_s: float, robot_id: str, order_id: str, action: str) -> None:
        """Resume the state machine after a dwell, off the tick path."""
        loop = asyncio.get_running_loop()
        loop.call_later(delay_s, self._finish_dwell, robot_id, order_id, action, self._generation)

    def _finish_dwell(self, robot_id: str, order_id: str, action: str, generation: int) -> None:
        try:
            if generation != self._generation:
                return
            robot = self.robots.get(robot_id)
            order = self.orders.get(order_id)
            if robot is None or order is None or robot.current_order_id != order_id:
                return
            if order.status in TERMINAL_ORDER_STATES:
                return
            steps = self.task_steps.get(order_id)
            if not steps or split_step(steps[0])[0] != action:
                return
            steps.pop(0)
            if action == "pick_item":
                order.status = "delivering"
                self._persist_order(order)
            self._execute_next_step(robot, order)
        except Exception as exc:  # noqa: BLE001
            logger.exception("dwell continuation failed robot_id=%s order_id=%s err=%s", robot_id, order_id, exc)

    def _complete_order(self, robot: Robot, order: Order) -> None:
        completed_at = max(self.clock(), order.created_at)
        order.status = "completed"
        order.completed_at = completed_at
        duration_ms = completed_at - order.created_at
        self.metrics.orders_completed += 1
        self.metrics.total_task_time_ms += duration_ms

        self.task_steps.pop(order.id, None)
        self._destinations.pop(robot.id, None)
        self._battery_deferred.discard(robot.id)
        robot.current_order_id = None
        robot.path = []
        robot.status = "idle"
        robot.target_description = ""

        self._persist_order(order)
        self._persist_metrics(orders_completed=1, total_task_time_ms=duration_ms)
        logger.info("order completed order_id=%s robot_id=%s duration_ms=%s", order.id, robot.id, duration_ms)
        self._emit("order_completed", order.snapshot())

    def _abandon_order(self, robot: Robot, reason: str) -> None:
        """Return the robot's order to the pending pool."""
        order_id = robot.current_order_id
        order = self.orders.get(order_id) if order_id else None
        self.task_steps.pop(order_id or "", None)
        self._destinations.pop(robot.id, None)
        self._battery_deferred.discard(robot.id)
        robot.current_order_id = None
        robot.path = []
        robot.status = "idle"
        robot.target_description = "Task abandoned (low battery)"

        if order is None or order.status in TERMINAL_ORDER_STATES:
            return
        order.status = "pending"
        order.assigned_robot = None
        self._persist_order(order)
        self.metrics.reassignments += 1
        self._persist_metrics(reassignments=1)
        logger.warning("order reassigned order_id=%s robot_id=%s reason=%s", order.id, robot.id, reason)
        self._emit("task_reassigned", {"order_id": order.id, "reason": reason, "robot": robot.id})

    # ------------------------------------------------------------------ planning continuations

    async def _assign_order(self, order_id: str) -> None:
        generation = self._generation
        order = self.orders.get(order_id)
        if order is None or order.status != "pending":
            return
        plan = await self.gateway.plan_assignment(replace(order), self._robot_snapshots(), self._order_snapshots())
        if generation != self._generation:
            return

        order = self.orders.get(order_id)
        if order is None or order.status != "pending":
            logger.info("discarding stale assignment order_id=%s", order_id)
            return
        robot = self.robots.get(plan.robot_id)
        if robot is None:
            logger.warning("assignment names missing robot order_id=%s robot_id=%s", order_id, plan.robot_id)
            return
        if not self._can_take_order(robot):
            logger.info("robot unavailable, order stays pending order_id=%s robot_id=%s", order_id, robot.id)
            return
        self._apply_assignment(order, robot, plan)

    def _can_take_order(self, robot: Robot) -> bool:
        if robot.status == "charging" and robot.battery <= CHARGING_AVAILABLE_MIN_BATTERY:
            return False
        return (
            robot.current_order_id is None
            and robot.status in {"idle", "charging"}
            and robot.id not in self._charge_targets
            and robot.battery > self.low_battery_threshold
        )

    def _apply_assignment(self, order: Order, robot: Robot, plan: Plan) -> None:
        order.status = "assigned"
        order.assigned_robot = robot.id
        self.task_steps[order.id] = list(plan.task_sequence)

        robot.current_order_id = order.id
        robot.status = "moving"
        robot.path = []
        robot.target_description = plan.reasoning_summary
        self._persist_order(order)
        logger.info("order assigned order_id=%s robot_id=%s", order.id, robot.id)

        self._execute_next_step(robot, order)
        self._emit("order_assigned", {"order": order.snapshot(), "plan": plan.model_dump()})

    async def _handle_low_battery(self, robot_id: str) -> None:
        generation = self._generation
        robot = self.robots.get(robot_id)
        if robot is None:
            return
        plan = await self.gateway.plan_battery_response(
            replace(robot, path=list(robot.path)), self._robot_snapshots(), self._order_snapshots()
        )
        if generation != self._generation:
            return
        robot = self.robots.get(robot_id)
        if robot is None or robot.status == "charging":
            return

        payload = {"robot": robot.id, "battery": round(robot.battery, 3), "plan": plan.model_dump()}
        if robot.current_order_id is not None:
            # keep working; the critical threshold forces abandonment later
            self._battery_deferred.add(robot.id)
            self._emit("battery_alert", {**payload, "action": "continue_task"})
            return

        target = self.gateway.charging_target(plan) or self.grid.resolve_location(DEFAULT_CHARGING)
        if target is None:
            logger.warning("no charging station available robot_id=%s", robot.id)
            return
        self._send_to_charger(robot, target)
        logger.info("robot heading to charge robot_id=%s battery=%.1f", robot.id, robot.battery)
        self._emit("battery_alert", {**payload, "action": "charge"})

    async def _handle_congestion(self, zones: list[Position]) -> None:
        generation = self._generation
        plans = await self.gateway.plan_congestion_response(zones, self._robot_snapshots(), self._order_snapshots())
        if generation != self._generation:
            return

        rerouted: list[str] = []
        for plan in plans:
            robot = self.robots.get(plan.robot_id)
            if robot is None or robot.status != "moving" or not robot.path:
                continue
            dest = self._destinations.get(robot.id, robot.path[-1])
            robot.path = find_path(self.grid, robot.position, dest, self._occupied_except(robot.id))
            rerouted.append(robot.id)
            self.metrics.reassignments += 1
            self._persist_metrics(reassignments=1)

        if plans:
            logger.info("congestion response plans=%s rerouted=%s", len(plans), rerouted)
            self._emit(
                "congestion_resolved",
                {
                    "zones": [{"x": z.x, "y": z.y} for z in zones],
                    "plans": [p.model_dump() for p in plans],
                    "rerouted": rerouted,
                },
            )

    def _spawn(self, key: str, factory: Callable[[], Awaitable[None]]) -> bool:
        """Run a planning continuation unless one for *key* is already in flight."""
        if key in self._in_flight:
            return False
        task = asyncio.get_running_loop().create_task(self._guarded(key, factory()))
        self._in_flight[key] = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _guarded(self, key: str, awaitable: Awaitable[None]) -> None:
        try:
            await awaitable
        except Exception as exc:  # noqa: BLE001
            logger.exception("planning continuation failed key=%s err=%s", key, exc)
        finally:
            if self._in_flight.get(key) is asyncio.current_task():
                del self._in_flight[key]

    # ------------------------------------------------------------------ helpers

    def _route(self, robot: Robot, goal: Position) -> None:
        target = effective_goal(self.grid, goal)
        if target is None:
            robot.path = []
            return
        self._destinations[robot.id] = target
        robot.path = find_path(self.grid, robot.position, target, self._occupied_except(robot.id))

    def _send_to_charger(self, robot: Robot, preferred: Position) -> None:
        target = self._pick_charger(robot, preferred)
        self._battery_deferred.discard(robot.id)
        self._charge_targets[robot.id] = target
        self._route(robot, target)
        robot.status = "moving"
        robot.target_description = "Heading to charge (low battery)"

    def _pick_charger(self, robot: Robot, preferred: Position) -> Position:
        """Keep *preferred* if free, else the nearest charger nobody occupies or is heading to."""
        taken = {r.position for r in self.robots.values() if r.id != robot.id}
        taken.update(p for rid, p in self._destinations.items() if rid != robot.id)
        taken.update(p for rid, p in self._charge_targets.items() if rid != robot.id)
        if preferred not in taken:
            return preferred
        free = [p for p in self.grid.charging_stations().values() if p not in taken]
        if not free:
            return preferred
        return min(free, key=lambda p: (manhattan(robot.position, p), p))

    def _occupied_except(self, robot_id: str) -> list[Position]:
        return [r.position for r in self.robots.values() if r.id != robot_id]

    def _ordered_robots(self) -> list[Robot]:
        return sorted(self.robots.values(), key=lambda r: r.id)

    def _robot_snapshots(self) -> list[Robot]:
        return [replace(r, path=list(r.path)) for r in self._ordered_robots()]

    def _order_snapshots(self) -> list[Order]:
        return [replace(o) for o in self.orders.values()]

    def _seed_robots(self) -> dict[str, Robot]:
        robots: dict[str, Robot] = {}
        for cfg in self.initial_robots:
            robot = Robot(id=str(cfg["id"]), x=int(cfg["x"]), y=int(cfg["y"]), battery=float(cfg["battery"]))
            if not self.grid.is_walkable(robot.x, robot.y):
                raise ValueError(f"robot {robot.id} starts on a non-walkable cell ({robot.x}, {robot.y})")
            robots[robot.id] = robot
        return robots

    def _robot_from_row(self, row: dict[str, Any]) -> Robot:
        # order linkage and paths are not resumable across restarts
        status = "charging" if row.get("status") == "charging" else "idle"
        return Robot(
            id=str(row["id"]),
            x=int(row["x"]),
            y=int(row["y"]),
            battery=min(100.0, max(0.0, float(row["battery"]))),
            status=status,
            target_description=str(row.get("target_description") or ""),
        )

    def _persist_order(self, order: Order) -> None:
        """Write an order row after its in-memory transition is complete; store failures are logged."""
        try:
            self.store.upsert_order(order)
        except Exception as exc:  # noqa: BLE001
            logger.exception("order persist failed order_id=%s status=%s err=%s", order.id, order.status, exc)

    def _persist_metrics(self, **deltas: int) -> None:
        try:
            self.store.increment_metrics(**deltas)
        except Exception as exc:  # noqa: BLE001
            logger.exception("metrics persist failed deltas=%s err=%s", deltas, exc)

    def _emit(self, event_type: str, payload: dict[str, Any]) -> None:
        try:
            self.event_sink(event_type, payload)
        except Exception as exc:  # noqa: BLE001
            logger.exception("event sink failed event_type=%s err=%s", event_type, exc)
