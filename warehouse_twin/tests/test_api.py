import dataclasses
import time

from fastapi.testclient import TestClient

import warehouse_twin.main as main
from warehouse_twin.db import MemoryStore
from warehouse_twin.planner_client import DisabledPlanner
from warehouse_twin.planning import PlanningGateway
from warehouse_twin.sim.engine import DispatchEngine
from warehouse_twin.sim.grid import INITIAL_ROBOTS, default_grid


def _client():
    grid = default_grid()
    store = MemoryStore()
    engine = DispatchEngine(
        grid=grid,
        gateway=PlanningGateway(DisabledPlanner(), grid, 1.0, audit_log=store.log_planner_call),
        event_sink=lambda event_type, payload: None,
        store=store,
        tick_ms=60_000,
    )
    return TestClient(main.create_app(engine)), engine


def test_health_and_state():
    client, engine = _client()
    with client:
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
        assert resp.json()["running"] is True

        state = client.get("/api/state").json()
        assert len(state["robots"]) == 6
        assert state["orders"] == []
        assert client.get("/api/robots").json() == state["robots"]


def test_create_order_validation():
    client, _ = _client()
    with client:
        bad = client.post("/api/orders", json={"item_location": "Z9"})
        assert bad.status_code == 400
        assert "A1" in bad.json()["valid_locations"]
        assert bad.json()["valid_priorities"] == ["low", "medium", "high", "urgent"]
        assert client.post("/api/orders", json={}).status_code == 400
        assert client.post("/api/orders", json={"item_location": "A1", "priority": "soon"}).status_code == 400
        assert client.post("/api/orders", json={"item_location": "A1", "quantity": 0}).status_code == 400
        assert client.post("/api/orders", json={"item_location": "A1", "quantity": "lots"}).status_code == 400
        assert client.get("/api/orders").json() == []

        resp = client.post("/api/orders", json={"item_location": "C3", "quantity": 2, "priority": "urgent"})
        assert resp.status_code == 201
        body = resp.json()
        assert body["id"].startswith("ORD-")
        assert body["item_location"] == "C3"
        assert body["priority"] == "urgent"
        assert [o["id"] for o in client.get("/api/orders").json()] == [body["id"]]
        assert client.get("/api/metrics").json()["orders_total"] == 1


def test_warehouse_layout_endpoint():
    client, _ = _client()
    with client:
        layout = client.get("/api/warehouse").json()
    assert (layout["width"], layout["height"]) == (20, 15)
    assert layout["storage_locations"]["A1"] == {"x": 0, "y": 1}
    assert layout["stations"]["CHARGING_A"] == {"x": 1, "y": 13}


def test_reset_clears_orders():
    client, engine = _client()
    with client:
        client.post("/api/orders", json={"item_location": "A1"})
        resp = client.post("/api/reset")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "reset"
        assert body["state"]["orders"] == []
        assert [(r["id"], r["x"], r["y"], r["battery"]) for r in body["state"]["robots"]] == [
            (cfg["id"], cfg["x"], cfg["y"], cfg["battery"]) for cfg in INITIAL_ROBOTS
        ]
        assert client.get("/api/orders").json() == []
        assert client.get("/api/metrics").json()["orders_total"] == 0
        assert engine.running


def test_planner_logs_limit_validation():
    client, _ = _client()
    with client:
        assert client.get("/api/planner-logs", params={"limit": 0}).status_code == 422
        resp = client.get("/api/planner-logs", params={"limit": 5})
        assert resp.status_code == 200
        assert isinstance(resp.json(), list)


def test_batch_orders_capped(monkeypatch):
    monkeypatch.setattr(main, "settings", dataclasses.replace(main.settings, batch_order_stagger_s=0.0))
    client, engine = _client()
    with client:
        resp = client.post("/api/demo/batch-orders", json={"count": 50})
        assert resp.status_code == 202
        assert resp.json()["count"] == main.MAX_BATCH_ORDERS
        deadline = time.monotonic() + 5
        while len(engine.orders) < main.MAX_BATCH_ORDERS and time.monotonic() < deadline:
            time.sleep(0.05)
    assert len(engine.orders) == main.MAX_BATCH_ORDERS


def test_websocket_greets_with_state():
    client, _ = _client()
    with client:
        with client.websocket_connect("/ws") as ws:
            first = ws.receive_json()
            second = ws.receive_json()
    assert first["type"] == "connected"
    assert second["type"] == "state_update"
    assert len(second["payload"]["robots"]) == 6
