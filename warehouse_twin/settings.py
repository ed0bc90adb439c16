"""
File: warehouse_twin/settings.py
Purpose: Environment-backed configuration for the dispatch service.
Key responsibilities:
- Parse simulation timing, battery and planning cadence parameters.
- Parse planner, persistence and RabbitMQ settings.
"""

from dataclasses import dataclass
import os


def _int_env(name: str, default: int = 0) -> int:
    """Parse an integer env var with a fallback."""
    raw = os.getenv(name, "")
    if raw == "":
        return default
    return int(raw)


def _float_env(name: str, default: float = 0.0) -> float:
    """Parse a float env var with a fallback."""
    raw = os.getenv(name, "")
    if raw == "":
        return default
    return float(raw)


def _bool_env(name: str, default: bool = False) -> bool:
    raw = os.getenv(name, "")
    if raw == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Service configuration parsed from environment."""
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = _int_env("PORT", 3001)
    cors_origin: str = os.getenv("CORS_ORIGIN", "http://localhost:5173")

    tick_ms: int = _int_env("SIMULATION_TICK_MS", 500)
    battery_drain_per_move: float = _float_env("BATTERY_DRAIN_PER_MOVE", 0.3)
    battery_charge_per_tick: float = _float_env("BATTERY_CHARGE_PER_TICK", 2.0)
    low_battery_threshold: float = _float_env("LOW_BATTERY_THRESHOLD", 20.0)
    critical_battery_threshold: float = _float_env("CRITICAL_BATTERY_THRESHOLD", 10.0)
    congestion_interval_ticks: int = _int_env("CONGESTION_INTERVAL_TICKS", 10)
    congestion_threshold: int = _int_env("CONGESTION_THRESHOLD", 3)
    replan_interval_ticks: int = _int_env("REPLAN_INTERVAL_TICKS", 5)
    persist_interval_ticks: int = _int_env("PERSIST_INTERVAL_TICKS", 10)
    pick_dwell_s: float = _float_env("PICK_DWELL_S", 1.5)
    drop_dwell_s: float = _float_env("DROP_DWELL_S", 1.0)
    batch_order_stagger_s: float = _float_env("BATCH_ORDER_STAGGER_S", 0.3)

    gemini_api_key: str = os.getenv("GEMINI_API_KEY", "")
    planner_model: str = os.getenv("PLANNER_MODEL", "gemini-2.5-flash")
    planner_base_url: str = os.getenv(
        "PLANNER_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
    )
    planner_timeout_s: float = _float_env("PLANNER_TIMEOUT_S", 10.0)

    store_backend: str = os.getenv("STORE_BACKEND", "memory")
    mysql_host: str = os.getenv("MYSQL_HOST", "mysql")
    mysql_port: int = _int_env("MYSQL_PORT", 3306)
    mysql_user: str = os.getenv("MYSQL_USER", "warehouse")
    mysql_password: str = os.getenv("MYSQL_PASSWORD", "warehousepass")
    mysql_db: str = os.getenv("MYSQL_DB", "warehouse_twin")

    rabbit_enabled: bool = _bool_env("RABBITMQ_ENABLED", False)
    rabbit_host: str = os.getenv("RABBITMQ_HOST", "rabbitmq")
    rabbit_port: int = _int_env("RABBITMQ_PORT", 5672)
    rabbit_user: str = os.getenv("RABBITMQ_USER", "warehouse")
    rabbit_pass: str = os.getenv("RABBITMQ_PASS", "warehousepass")
    exchange_name: str = os.getenv("EXCHANGE_NAME", "warehouse.events")


settings = Settings()


def rabbit_url() -> str:
    return f"amqp://{settings.rabbit_user}:{settings.rabbit_pass}@{settings.rabbit_host}:{settings.rabbit_port}/"
