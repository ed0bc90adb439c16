from __future__ import annotations

"""
File: warehouse_twin/main.py
Purpose: FastAPI entrypoint for the warehouse twin dispatch service.
Key responsibilities:
- Wire grid, store, planner gateway and dispatch engine from settings.
- Expose order commands, state queries and reset over HTTP.
- Stream engine events to WebSocket clients (and RabbitMQ when enabled).
Key entrypoints:
- create_app()
- startup_event() / shutdown_event()
- run()
Config/env vars:
- see warehouse_twin/settings.py
"""

import asyncio
import logging
import random
from typing import Any

from fastapi import FastAPI, Query, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
import uvicorn

from warehouse_twin.db import build_store
from warehouse_twin.events import EventHub
from warehouse_twin.mq import EventPublisher
from warehouse_twin.planner_client import DisabledPlanner, GeminiPlanner
from warehouse_twin.planning import PlanningGateway
from warehouse_twin.schemas import BatchOrdersRequest, CreateOrderRequest
from warehouse_twin.settings import rabbit_url, settings
from warehouse_twin.sim.engine import DispatchEngine, InvalidOrderError
from warehouse_twin.sim.entities import PRIORITIES
from warehouse_twin.sim.grid import Grid, default_grid
from warehouse_twin.ws import WSManager

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s warehouse-twin %(message)s")
logger = logging.getLogger("warehouse-twin")

MAX_BATCH_ORDERS = 20


def build_engine(grid: Grid | None = None) -> DispatchEngine:
    """Dispatch engine configured from environment settings."""
    grid = grid or default_grid()
    store = build_store(
        settings.store_backend,
        host=settings.mysql_host,
        port=settings.mysql_port,
        user=settings.mysql_user,
        password=settings.mysql_password,
        database=settings.mysql_db,
    )
    if settings.gemini_api_key:
        planner: Any = GeminiPlanner(
            grid,
            api_key=settings.gemini_api_key,
            model=settings.planner_model,
            base_url=settings.planner_base_url,
            timeout_s=settings.planner_timeout_s,
        )
    else:
        logger.warning("GEMINI_API_KEY not set, planning uses local fallbacks only")
        planner = DisabledPlanner()
    gateway = PlanningGateway(planner, grid, timeout_s=settings.planner_timeout_s, audit_log=store.log_planner_call)
    return DispatchEngine(
        grid=grid,
        gateway=gateway,
        event_sink=lambda event_type, payload: None,
        store=store,
        tick_ms=settings.tick_ms,
        battery_drain_per_move=settings.battery_drain_per_move,
        battery_charge_per_tick=settings.battery_charge_per_tick,
        low_battery_threshold=settings.low_battery_threshold,
        critical_battery_threshold=settings.critical_battery_threshold,
        congestion_interval_ticks=settings.congestion_interval_ticks,
        congestion_threshold=settings.congestion_threshold,
        replan_interval_ticks=settings.replan_interval_ticks,
        persist_interval_ticks=settings.persist_interval_ticks,
        pick_dwell_s=settings.pick_dwell_s,
        drop_dwell_s=settings.drop_dwell_s,
    )


def create_app(engine: DispatchEngine | None = None) -> FastAPI:
    """Build the HTTP/WebSocket surface around one engine instance."""
    engine = engine or build_engine()
    hub = EventHub()
    ws_manager = WSManager()
    hub.subscribe(ws_manager.broadcast)
    engine.event_sink = hub.emit
    publisher = EventPublisher(rabbit_url(), settings.exchange_name) if settings.rabbit_enabled else None
    background: set[asyncio.Task] = set()

    app = FastAPI(title="warehouse-twin", version="1.0.0")
    app.state.engine = engine
    app.state.ws_manager = ws_manager
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_origin],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def startup_event() -> None:
        """Restore state, start the tick loop and the optional publisher."""
        engine.load()
        engine.start()
        if publisher is not None:
            try:
                await publisher.start()
                hub.subscribe(publisher)
            except Exception as exc:  # noqa: BLE001
                logger.warning("rabbitmq publisher disabled err=%s", exc)

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        engine.stop()
        if publisher is not None:
            await publisher.stop()

    @app.get("/health")
    async def health() -> dict[str, Any]:
        """Liveness/readiness endpoint."""
        return {"status": "ok", "running": engine.running, "tick": engine.tick}

    @app.get("/api/state")
    async def state() -> dict[str, Any]:
        return engine.get_state()

    @app.get("/api/robots")
    async def robots() -> list[dict[str, Any]]:
        return engine.get_robots()

    @app.get("/api/orders")
    async def orders() -> list[dict[str, Any]]:
        return engine.get_orders()

    @app.post("/api/orders")
    async def create_order(payload: dict[str, Any]) -> JSONResponse:
        """Validate and enqueue one order; 400 on any invalid field."""
        try:
            req = CreateOrderRequest.model_validate(payload)
            order = engine.create_order(req.item_location, req.quantity, req.priority)
        except (ValidationError, InvalidOrderError) as exc:
            return JSONResponse(
                status_code=400,
                content={
                    "error": str(exc),
                    "valid_locations": list(engine.grid.storage_slots),
                    "valid_priorities": list(PRIORITIES),
                },
            )
        return JSONResponse(status_code=201, content=order.snapshot())

    @app.get("/api/warehouse")
    async def warehouse() -> dict[str, Any]:
        grid = engine.grid
        return {
            "width": grid.width,
            "height": grid.height,
            "grid": grid.rows(),
            "storage_locations": {name: {"x": p.x, "y": p.y} for name, p in grid.storage_slots.items()},
            "stations": {name: {"x": p.x, "y": p.y} for name, p in grid.stations.items()},
        }

    @app.get("/api/metrics")
    async def metrics() -> dict[str, Any]:
        return engine.get_metrics()

    @app.get("/api/planner-logs")
    async def planner_logs(limit: int = Query(default=50, ge=1, le=500)) -> list[dict[str, Any]]:
        return engine.store.recent_planner_logs(limit)

    @app.post("/api/reset")
    async def reset() -> dict[str, Any]:
        """Reset the simulation and return the fresh snapshot."""
        return {"status": "reset", "state": engine.reset()}

    @app.post("/api/demo/batch-orders")
    async def batch_orders(payload: dict[str, Any] | None = None) -> JSONResponse:
        """Create up to MAX_BATCH_ORDERS random orders, staggered in the background."""
        try:
            req = BatchOrdersRequest.model_validate(payload or {})
        except ValidationError as exc:
            return JSONResponse(status_code=400, content={"error": str(exc)})
        count = min(req.count, MAX_BATCH_ORDERS)
        task = asyncio.create_task(_create_batch(engine, count, settings.batch_order_stagger_s))
        background.add(task)
        task.add_done_callback(background.discard)
        return JSONResponse(status_code=202, content={"message": f"Creating {count} orders", "count": count})

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        """Stream engine events; the first frames are the greeting and a full snapshot."""
        await ws_manager.connect(websocket)
        try:
            await websocket.send_json({"type": "state_update", "payload": engine.get_state()})
            while True:
                await websocket.receive_text()
        except Exception:  # noqa: BLE001
            await ws_manager.disconnect(websocket)

    return app


async def _create_batch(engine: DispatchEngine, count: int, stagger_s: float) -> None:
    slots = list(engine.grid.storage_slots)
    for i in range(count):
        if i:
            await asyncio.sleep(stagger_s)
        try:
            engine.create_order(random.choice(slots), random.randint(1, 3), random.choice(PRIORITIES))
        except Exception as exc:  # noqa: BLE001
            logger.exception("batch order failed index=%s err=%s", i, exc)


app = create_app()


def run() -> None:
    uvicorn.run(app, host=settings.host, port=settings.port)
