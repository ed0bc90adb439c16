from __future__ import annotations

"""
File: warehouse_twin/mq.py
Purpose: Optional RabbitMQ publisher for engine events.
Key responsibilities:
- Declare the topic exchange.
- Publish events as JSON under warehouse.<event_type>.
"""

import json
import logging
from typing import Any

import aio_pika
from aio_pika import ExchangeType

logger = logging.getLogger("warehouse-twin.mq")


async def connect(rabbit_url: str) -> aio_pika.RobustConnection:
    """Connect to RabbitMQ with robust reconnect behavior."""
    return await aio_pika.connect_robust(rabbit_url)


async def publish_event(exchange: aio_pika.abc.AbstractExchange, routing_key: str, payload: dict[str, Any]) -> None:
    """Publish a JSON message to the configured exchange."""
    body = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
    msg = aio_pika.Message(
        body=body,
        content_type="application/json",
        delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
    )
    await exchange.publish(msg, routing_key=routing_key)


class EventPublisher:
    """Async event sink that mirrors engine events onto the exchange."""

    def __init__(self, rabbit_url: str, exchange_name: str) -> None:
        self.rabbit_url = rabbit_url
        self.exchange_name = exchange_name
        self.connection: aio_pika.RobustConnection | None = None
        self.exchange: aio_pika.abc.AbstractExchange | None = None

    async def start(self) -> None:
        self.connection = await connect(self.rabbit_url)
        channel = await self.connection.channel()
        self.exchange = await channel.declare_exchange(self.exchange_name, ExchangeType.TOPIC, durable=True)
        logger.info("publisher ready exchange=%s", self.exchange_name)

    async def stop(self) -> None:
        if self.connection is not None:
            await self.connection.close()
        self.connection = None
        self.exchange = None

    async def __call__(self, event_type: str, payload: dict[str, Any]) -> None:
        # per-tick snapshots stay on the WebSocket
        if self.exchange is None or event_type == "state_update":
            return
        await publish_event(self.exchange, f"warehouse.{event_type}", payload)
