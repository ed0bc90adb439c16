from __future__ import annotations

"""
File: warehouse_twin/schemas.py
Purpose: Pydantic models for planner plans and HTTP command payloads.
Key responsibilities:
- Validate plans returned by the planning oracle.
- Define order-creation and batch request bodies.
Key entrypoints:
- Plan, CreateOrderRequest, BatchOrdersRequest
"""

from pydantic import BaseModel, Field


class Plan(BaseModel):
    """Robot assignment plus ordered task steps."""
    robot_id: str
    task_sequence: list[str] = Field(default_factory=list)
    reasoning_summary: str = ""


class CreateOrderRequest(BaseModel):
    """Request body for POST /api/orders."""
    item_location: str = ""
    quantity: int = Field(default=1, ge=1)
    priority: str = "medium"


class BatchOrdersRequest(BaseModel):
    """Request body for POST /api/demo/batch-orders."""
    count: int = Field(default=5, ge=1)
