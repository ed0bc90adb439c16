import asyncio
import json

import httpx
import pytest

from warehouse_twin.planner_client import (
    GeminiPlanner,
    PlannerError,
    PlannerUnavailable,
    extract_plan,
    extract_plan_list,
)
from warehouse_twin.sim.entities import Order, Robot
from warehouse_twin.sim.grid import Position, default_grid

ROBOTS = [Robot(id="R1", x=0, y=0, battery=100.0)]
ORDER = Order(id="ORD-1", item_location="B2", quantity=2, priority="urgent", created_at=0)


def _reply(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def _planner(handler, api_key="test-key"):
    return GeminiPlanner(
        default_grid(),
        api_key=api_key,
        model="gemini-test",
        base_url="https://planner.test/v1beta/",
        transport=httpx.MockTransport(handler),
    )


def test_extract_plan_from_fenced_json():
    text = '```json\n{"robot_id": "R1", "task_sequence": ["navigate_to:A1"], "reasoning_summary": "x"}\n```'
    plan = extract_plan(text)
    assert plan.robot_id == "R1"
    assert plan.task_sequence == ["navigate_to:A1"]


def test_extract_plan_rejects_prose_and_bad_shapes():
    with pytest.raises(PlannerError):
        extract_plan("no plan today")
    with pytest.raises(PlannerError):
        extract_plan('{"task_sequence": []}')
    with pytest.raises(PlannerError):
        extract_plan_list('[{"robot_id": 1, "task_sequence": "oops"}]')


def test_extract_plan_list_accepts_empty_array():
    assert extract_plan_list("Nothing to do: []") == []


def test_assignment_request_shape_and_parsing():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["key"] = request.headers.get("x-goog-api-key")
        seen["body"] = json.loads(request.content)
        plan = {"robot_id": "R1", "task_sequence": ["navigate_to:B2", "pick_item"], "reasoning_summary": "near"}
        return httpx.Response(200, json=_reply(json.dumps(plan)))

    plan = asyncio.run(_planner(handler).plan_assignment(ORDER, ROBOTS, [ORDER]))
    assert plan.robot_id == "R1"
    assert seen["url"] == "https://planner.test/v1beta/models/gemini-test:generateContent"
    assert seen["key"] == "test-key"
    prompt = seen["body"]["contents"][0]["parts"][0]["text"]
    assert "ORD-1" in prompt
    assert "B2" in prompt
    assert seen["body"]["generationConfig"]["maxOutputTokens"] == 500


def test_congestion_response_parses_array():
    def handler(request):
        return httpx.Response(200, json=_reply('[{"robot_id": "R1", "task_sequence": [], "reasoning_summary": ""}]'))

    plans = asyncio.run(_planner(handler).plan_congestion_response([Position(1, 1)], ROBOTS, []))
    assert [p.robot_id for p in plans] == ["R1"]


def test_http_error_raises_planner_error():
    def handler(request):
        return httpx.Response(500, json={"error": "overloaded"})

    with pytest.raises(PlannerError):
        asyncio.run(_planner(handler).plan_battery_response(ROBOTS[0], ROBOTS, []))


def test_unexpected_response_shape_raises_planner_error():
    def handler(request):
        return httpx.Response(200, json={"candidates": []})

    with pytest.raises(PlannerError):
        asyncio.run(_planner(handler).plan_assignment(ORDER, ROBOTS, [ORDER]))


def test_missing_api_key_is_unavailable():
    def handler(request):
        raise AssertionError("no request expected")

    with pytest.raises(PlannerUnavailable):
        asyncio.run(_planner(handler, api_key="").plan_assignment(ORDER, ROBOTS, [ORDER]))
