from __future__ import annotations

"""
File: warehouse_twin/db.py
Purpose: Persistence for robots, orders, fleet counters and planner audit logs.
Key responsibilities:
- MySQL-backed store with idempotent upserts and counter increments.
- In-process store with the same surface for demos and tests.
- Best-effort planner call logging that never raises.
"""

from contextlib import contextmanager
import json
import logging
from typing import Any, Iterable

import pymysql

from warehouse_twin.sim.entities import Metrics, Order, Robot

logger = logging.getLogger("warehouse-twin.db")

METRIC_COUNTERS = ("orders_completed", "orders_total", "total_task_time_ms", "congestion_events", "reassignments")

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS robots (
        id VARCHAR(32) PRIMARY KEY,
        x INT NOT NULL,
        y INT NOT NULL,
        status VARCHAR(16) NOT NULL DEFAULT 'idle',
        battery DOUBLE NOT NULL DEFAULT 100,
        current_order_id VARCHAR(32) NULL,
        path_json TEXT NULL,
        target_description VARCHAR(255) NOT NULL DEFAULT ''
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS orders (
        id VARCHAR(32) PRIMARY KEY,
        item_location VARCHAR(32) NOT NULL,
        quantity INT NOT NULL DEFAULT 1,
        priority VARCHAR(16) NOT NULL DEFAULT 'medium',
        status VARCHAR(16) NOT NULL DEFAULT 'pending',
        assigned_robot VARCHAR(32) NULL,
        created_at BIGINT NOT NULL,
        completed_at BIGINT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS metrics (
        id INT PRIMARY KEY,
        orders_completed INT NOT NULL DEFAULT 0,
        orders_total INT NOT NULL DEFAULT 0,
        total_task_time_ms BIGINT NOT NULL DEFAULT 0,
        congestion_events INT NOT NULL DEFAULT 0,
        reassignments INT NOT NULL DEFAULT 0,
        started_at BIGINT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS planner_logs (
        id BIGINT AUTO_INCREMENT PRIMARY KEY,
        timestamp BIGINT NOT NULL,
        prompt_type VARCHAR(64) NOT NULL,
        request_summary VARCHAR(255) NULL,
        response_json TEXT NULL,
        latency_ms INT NULL
    )
    """,
)


def robot_row(robot: Robot) -> dict[str, Any]:
    return {
        "id": robot.id,
        "x": robot.x,
        "y": robot.y,
        "status": robot.status,
        "battery": robot.battery,
        "current_order_id": robot.current_order_id,
        "path_json": json.dumps([[p.x, p.y] for p in robot.path]),
        "target_description": robot.target_description,
    }


class MemoryStore:
    """Process-local store; state lives as long as the service."""

    def __init__(self) -> None:
        self.robots: dict[str, dict[str, Any]] = {}
        self.orders: dict[str, dict[str, Any]] = {}
        self.metrics: dict[str, int] | None = None
        self.planner_logs: list[dict[str, Any]] = []

    def init_schema(self, started_at: int) -> None:
        if self.metrics is None:
            self.metrics = {name: 0 for name in METRIC_COUNTERS}
            self.metrics["started_at"] = started_at

    def load_robots(self) -> list[dict[str, Any]]:
        return [dict(row) for row in self.robots.values()]

    def load_orders(self) -> list[dict[str, Any]]:
        return [dict(row) for row in self.orders.values()]

    def load_metrics(self) -> dict[str, int] | None:
        return dict(self.metrics) if self.metrics is not None else None

    def save_robots(self, robots: Iterable[Robot]) -> None:
        for robot in robots:
            self.robots[robot.id] = robot_row(robot)

    def upsert_order(self, order: Order) -> None:
        self.orders[order.id] = order.snapshot()

    def increment_metrics(self, **deltas: int) -> None:
        if self.metrics is None:
            return
        for name, delta in deltas.items():
            if name not in METRIC_COUNTERS:
                raise ValueError(f"unknown metric counter: {name}")
            self.metrics[name] += int(delta)

    def reset(self, started_at: int) -> None:
        self.robots.clear()
        self.orders.clear()
        self.metrics = {name: 0 for name in METRIC_COUNTERS}
        self.metrics["started_at"] = started_at

    def log_planner_call(self, prompt_type: str, summary: str, response: str, latency_ms: int) -> None:
        self.planner_logs.append(
            {
                "prompt_type": prompt_type,
                "request_summary": summary,
                "response_json": response,
                "latency_ms": latency_ms,
            }
        )

    def recent_planner_logs(self, limit: int = 50) -> list[dict[str, Any]]:
        return list(reversed(self.planner_logs[-limit:]))


class MySQLStore:
    """MySQL-backed store; one short-lived connection per operation."""

    def __init__(self, host: str, port: int, user: str, password: str, database: str) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.database = database

    def _connect(self):
        """Open a new MySQL connection with dict cursor."""
        return pymysql.connect(
            host=self.host,
            port=self.port,
            user=self.user,
            password=self.password,
            database=self.database,
            autocommit=True,
            cursorclass=pymysql.cursors.DictCursor,
        )

    @contextmanager
    def db_cursor(self):
        """Context manager for a short-lived DB cursor."""
        conn = self._connect()
        try:
            with conn.cursor() as cur:
                yield cur
        finally:
            conn.close()

    def init_schema(self, started_at: int) -> None:
        with self.db_cursor() as cur:
            for ddl in SCHEMA:
                cur.execute(ddl)
            cur.execute("INSERT IGNORE INTO metrics (id, started_at) VALUES (1, %s)", (started_at,))

    def load_robots(self) -> list[dict[str, Any]]:
        with self.db_cursor() as cur:
            cur.execute("SELECT * FROM robots ORDER BY id")
            return list(cur.fetchall())

    def load_orders(self) -> list[dict[str, Any]]:
        with self.db_cursor() as cur:
            cur.execute("SELECT * FROM orders ORDER BY created_at")
            return list(cur.fetchall())

    def load_metrics(self) -> dict[str, int] | None:
        with self.db_cursor() as cur:
            cur.execute("SELECT * FROM metrics WHERE id=1")
            return cur.fetchone()

    def save_robots(self, robots: Iterable[Robot]) -> None:
        rows = [robot_row(r) for r in robots]
        if not rows:
            return
        with self.db_cursor() as cur:
            cur.executemany(
                """
                INSERT INTO robots (id, x, y, status, battery, current_order_id, path_json, target_description)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                ON DUPLICATE KEY UPDATE
                    x=VALUES(x),
                    y=VALUES(y),
                    status=VALUES(status),
                    battery=VALUES(battery),
                    current_order_id=VALUES(current_order_id),
                    path_json=VALUES(path_json),
                    target_description=VALUES(target_description)
                """,
                [
                    (
                        row["id"],
                        int(row["x"]),
                        int(row["y"]),
                        row["status"],
                        float(row["battery"]),
                        row["current_order_id"],
                        row["path_json"],
                        row["target_description"],
                    )
                    for row in rows
                ],
            )

    def upsert_order(self, order: Order) -> None:
        """Insert or update an order row."""
        with self.db_cursor() as cur:
            cur.execute(
                """
                INSERT INTO orders (id, item_location, quantity, priority, status, assigned_robot, created_at, completed_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                ON DUPLICATE KEY UPDATE
                    status=VALUES(status),
                    assigned_robot=VALUES(assigned_robot),
                    completed_at=VALUES(completed_at)
                """,
                (
                    order.id,
                    order.item_location,
                    int(order.quantity),
                    order.priority,
                    order.status,
                    order.assigned_robot,
                    int(order.created_at),
                    order.completed_at,
                ),
            )

    def increment_metrics(self, **deltas: int) -> None:
        unknown = set(deltas) - set(METRIC_COUNTERS)
        if unknown:
            raise ValueError(f"unknown metric counters: {sorted(unknown)}")
        if not deltas:
            return
        # column names come from the fixed METRIC_COUNTERS whitelist
        assignments = ", ".join(f"{name}={name}+%s" for name in deltas)
        with self.db_cursor() as cur:
            cur.execute(f"UPDATE metrics SET {assignments} WHERE id=1", tuple(int(v) for v in deltas.values()))

    def reset(self, started_at: int) -> None:
        with self.db_cursor() as cur:
            cur.execute("DELETE FROM orders")
            cur.execute("DELETE FROM robots")
            cur.execute(
                """
                UPDATE metrics SET orders_completed=0, orders_total=0, total_task_time_ms=0,
                    congestion_events=0, reassignments=0, started_at=%s
                WHERE id=1
                """,
                (started_at,),
            )

    def log_planner_call(self, prompt_type: str, summary: str, response: str, latency_ms: int) -> None:
        """Audit a planner call; failures are logged and swallowed."""
        try:
            with self.db_cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO planner_logs (timestamp, prompt_type, request_summary, response_json, latency_ms)
                    VALUES (UNIX_TIMESTAMP() * 1000, %s, %s, %s, %s)
                    """,
                    (prompt_type, summary, response, int(latency_ms)),
                )
        except Exception as exc:  # noqa: BLE001
            logger.debug("planner log write failed prompt_type=%s err=%s", prompt_type, exc)

    def recent_planner_logs(self, limit: int = 50) -> list[dict[str, Any]]:
        with self.db_cursor() as cur:
            cur.execute("SELECT * FROM planner_logs ORDER BY timestamp DESC, id DESC LIMIT %s", (int(limit),))
            return list(cur.fetchall())


def build_store(backend: str, **mysql_kwargs: Any) -> MemoryStore | MySQLStore:
    """Store for the configured backend name."""
    if backend == "memory":
        return MemoryStore()
    if backend == "mysql":
        return MySQLStore(**mysql_kwargs)
    raise ValueError(f"invalid store backend: {backend}")
