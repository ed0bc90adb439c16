from __future__ import annotations

"""
File: warehouse_twin/sim/metrics.py
Purpose: Derive dashboard KPIs from fleet counters and robot state.
Key responsibilities:
- Average task time, throughput and uptime from monotonic counters.
- Per-robot utilization from current status.
"""

from typing import Iterable

from warehouse_twin.sim.entities import Metrics, Robot

BUSY_STATES = frozenset({"moving", "picking", "delivering"})


def compute_metrics(metrics: Metrics, robots: Iterable[Robot], now_ms: int) -> dict[str, object]:
    """Compute the metrics block served by the API and state broadcasts."""
    uptime_s = max(0.0, (now_ms - metrics.started_at) / 1000.0)
    completed = metrics.orders_completed
    avg_task_time_ms = metrics.total_task_time_ms / completed if completed else 0.0
    throughput = completed / uptime_s * 3600.0 if uptime_s > 0 else 0.0

    return {
        "orders_completed": completed,
        "orders_total": metrics.orders_total,
        "avg_task_time_ms": round(avg_task_time_ms, 3),
        "robot_utilization": {r.id: 1 if r.status in BUSY_STATES else 0 for r in robots},
        "congestion_events": metrics.congestion_events,
        "reassignments": metrics.reassignments,
        "throughput_per_hour": round(throughput, 3),
        "uptime_seconds": round(uptime_s, 3),
    }
