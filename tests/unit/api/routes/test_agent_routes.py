from __future__ import annotations

import json

from typing import Any

from fastapi.testclient import TestClient

from conftest import ScriptedModel, sse_events, sse_frames

from core.constants import SSE_DONE_FRAME
from core.exceptions import AgentError
from models.agent_models import Message, ToolCall
from models.error_models import ErrorCode

CALC_CALL = ToolCall(id="call_calc", name="calculator", args={"expression": "6 * 7"})


def start_suspended(client: TestClient, scripted_model: ScriptedModel, thread_id: str = "thread_calc") -> Any:
    scripted_model.responses = [Message.ai("", tool_calls=[CALC_CALL]), Message.ai("It is 42")]
    return client.post("/api/agent/stream", json={"threadId": thread_id, "content": "What is 6 * 7?"})


class TestStream:
    def test_text_turn(self, client: TestClient, scripted_model: ScriptedModel) -> None:
        scripted_model.responses = [Message.ai("Hi!")]

        response = client.post("/api/agent/stream", json={"threadId": "thread_1", "content": "Hello"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        frames = sse_frames(response.text)
        assert frames[0] == ": connected"
        assert frames[-1] == SSE_DONE_FRAME.strip()
        events = sse_events(response.text)
        assert [e["type"] for e in events] == ["ai"]
        assert events[0]["data"]["content"] == "Hi!"

        thread = client.get("/api/threads/thread_1").json()
        assert thread["title"] == "Hello"

    def test_query_parameter_variant(self, client: TestClient, scripted_model: ScriptedModel) -> None:
        scripted_model.responses = [Message.ai("Hi!")]

        response = client.get(
            "/api/agent/stream",
            params={"threadId": "thread_q", "content": "Hello", "enabledTools": "internal:get_weather"},
        )

        assert response.status_code == 200
        assert [e["type"] for e in sse_events(response.text)] == ["ai"]
        assert scripted_model.tool_names[0] == ["get_weather"]

    def test_streamed_text_arrives_as_deltas(self, client: TestClient, scripted_model: ScriptedModel) -> None:
        scripted_model.streaming = True
        scripted_model.responses = [Message.ai("Hi there")]

        response = client.post("/api/agent/stream", json={"threadId": "thread_s", "content": "Hello"})

        events = sse_events(response.text)
        assert [e["data"].get("chunk", False) for e in events] == [True, True, False]
        assert [e["data"]["content"] for e in events] == ["Hi", " there", "Hi there"]
        assert len({e["data"]["id"] for e in events}) == 1
        assert sse_frames(response.text)[-1] == SSE_DONE_FRAME.strip()

    def test_thread_id_is_generated(self, client: TestClient, scripted_model: ScriptedModel) -> None:
        scripted_model.responses = [Message.ai("Hi!")]

        response = client.post("/api/agent/stream", json={"content": "Hello"})

        assert response.status_code == 200
        assert len(client.get("/api/threads").json()) == 1

    def test_empty_content_is_rejected_before_streaming(self, client: TestClient) -> None:
        response = client.post("/api/agent/stream", json={"threadId": "thread_1", "content": "   "})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == ErrorCode.VALIDATION_ERROR.value
        assert client.get("/api/threads").json() == []

    def test_model_failure_becomes_error_frame(self, client: TestClient, scripted_model: ScriptedModel) -> None:
        scripted_model.responses = [AgentError("provider unavailable")]

        response = client.post("/api/agent/stream", json={"threadId": "thread_err", "content": "Hello"})

        assert response.status_code == 200
        last = sse_frames(response.text)[-1]
        assert last.startswith("event: error\n")
        payload = json.loads(last.split("data: ", 1)[1])
        assert payload["code"] == ErrorCode.AGENT_ERROR.value
        assert payload["threadId"] == "thread_err"
        assert "requestId" in payload

    def test_lock_is_released_after_stream(self, client: TestClient, app: Any, scripted_model: ScriptedModel) -> None:
        scripted_model.responses = [Message.ai("Hi!"), Message.ai("Again!")]
        client.post("/api/agent/stream", json={"threadId": "thread_1", "content": "Hello"})

        response = client.post("/api/agent/stream", json={"threadId": "thread_1", "content": "again"})

        assert response.status_code == 200
        assert app.state.checkpoint_store.is_locked("thread_1") is False


class TestInterrupts:
    def test_gated_tool_suspends_stream(self, client: TestClient, scripted_model: ScriptedModel) -> None:
        response = start_suspended(client, scripted_model)

        events = sse_events(response.text)
        assert [e["type"] for e in events] == ["ai", "interrupt"]
        assert events[1]["data"]["metadata"]["toolName"] == "calculator"
        assert SSE_DONE_FRAME.strip() not in sse_frames(response.text)

        state = client.get("/api/agent/state", params={"threadId": "thread_calc"}).json()
        assert state["hasInterrupt"] is True
        assert state["interruptData"]["id"] == "int_call_calc"
        assert state["next"] == ["tools"]
        assert len(state["values"]["messages"]) == 2

    def test_resume_approve(self, client: TestClient, scripted_model: ScriptedModel) -> None:
        start_suspended(client, scripted_model)

        response = client.post("/api/agent/resume", json={"threadId": "thread_calc", "value": "approve"})

        assert response.status_code == 200
        events = sse_events(response.text)
        assert [e["type"] for e in events] == ["tool", "ai"]
        assert events[0]["data"]["content"] == "Result: 6 * 7 = 42"
        state = client.get("/api/agent/state", params={"threadId": "thread_calc"}).json()
        assert state["hasInterrupt"] is False

    def test_resume_through_stream_body(self, client: TestClient, scripted_model: ScriptedModel) -> None:
        start_suspended(client, scripted_model)

        response = client.post(
            "/api/agent/stream",
            json={"threadId": "thread_calc", "value": {"action": "feedback", "data": "not now"}},
        )

        events = sse_events(response.text)
        assert events[0]["data"]["status"] == "rejected"
        assert "not now" in events[0]["data"]["content"]

    def test_resume_value_wins_over_content(self, client: TestClient, scripted_model: ScriptedModel) -> None:
        start_suspended(client, scripted_model)

        response = client.post(
            "/api/agent/stream",
            json={"threadId": "thread_calc", "content": "ignored", "value": "approve"},
        )

        assert response.status_code == 200
        events = sse_events(response.text)
        assert [e["type"] for e in events] == ["tool", "ai"]
        assert events[0]["data"]["content"] == "Result: 6 * 7 = 42"
        history = client.get("/api/agent/history/thread_calc").json()
        assert [m["type"] for m in history].count("human") == 1

    def test_enabled_tools_json_array_query(self, client: TestClient, scripted_model: ScriptedModel) -> None:
        scripted_model.responses = [Message.ai("Hi!")]

        client.get(
            "/api/agent/stream",
            params={"threadId": "thread_j", "content": "Hello", "enabledTools": '["internal:get_weather"]'},
        )

        assert scripted_model.tool_names[0] == ["get_weather"]

    def test_legacy_allow_tool_deny(self, client: TestClient, scripted_model: ScriptedModel) -> None:
        start_suspended(client, scripted_model)

        response = client.post(
            "/api/agent/stream",
            json={"threadId": "thread_calc", "content": "What is 6 * 7?", "options": {"allowTool": "deny"}},
        )

        events = sse_events(response.text)
        assert [e["type"] for e in events] == ["tool", "ai"]
        assert events[0]["data"]["status"] == "rejected"

    def test_resume_without_interrupt_is_404(self, client: TestClient) -> None:
        response = client.post("/api/agent/resume", json={"threadId": "thread_none", "value": "approve"})

        assert response.status_code == 404
        assert response.json()["error"]["code"] == ErrorCode.INTERRUPT_NOT_FOUND.value

    def test_unrecognized_decision_is_422(self, client: TestClient, scripted_model: ScriptedModel) -> None:
        start_suspended(client, scripted_model)

        response = client.post("/api/agent/resume", json={"threadId": "thread_calc", "value": "perhaps"})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == ErrorCode.VALIDATION_INVALID_DECISION.value
        state = client.get("/api/agent/state", params={"threadId": "thread_calc"}).json()
        assert state["hasInterrupt"] is True

    def test_new_message_discards_interrupt(self, client: TestClient, scripted_model: ScriptedModel) -> None:
        start_suspended(client, scripted_model)
        scripted_model.responses = [Message.ai("Sure, something else")]

        response = client.post("/api/agent/stream", json={"threadId": "thread_calc", "content": "Forget it"})

        events = sse_events(response.text)
        assert [e["type"] for e in events] == ["tool", "ai"]
        assert events[0]["data"]["status"] == "rejected"
        state = client.get("/api/agent/state", params={"threadId": "thread_calc"}).json()
        assert state["hasInterrupt"] is False


class TestStateAndHistory:
    def test_state_for_unknown_thread(self, client: TestClient) -> None:
        response = client.get("/api/agent/state", params={"threadId": "nope"})

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "threadId": "nope",
            "hasInterrupt": False,
            "interruptData": None,
            "next": [],
            "values": {"messages": []},
        }

    def test_history(self, client: TestClient, scripted_model: ScriptedModel) -> None:
        scripted_model.responses = [Message.ai("Hi!")]
        client.post("/api/agent/stream", json={"threadId": "thread_h", "content": "Hello"})

        history = client.get("/api/agent/history/thread_h").json()

        assert [m["type"] for m in history] == ["human", "ai"]
        assert client.get("/api/agent/history/unknown").json() == []

    def test_delete_messages(self, client: TestClient, scripted_model: ScriptedModel) -> None:
        scripted_model.responses = [Message.ai("Hi!")]
        client.post("/api/agent/stream", json={"threadId": "thread_d", "content": "Hello"})
        history = client.get("/api/agent/history/thread_d").json()

        response = client.request(
            "DELETE", "/api/agent/messages", json={"threadId": "thread_d", "messageIds": [history[1]["id"]]}
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "threadId": "thread_d", "deletedCount": 1}
        assert len(client.get("/api/agent/history/thread_d").json()) == 1

    def test_delete_messages_unknown_thread(self, client: TestClient) -> None:
        response = client.request("DELETE", "/api/agent/messages", json={"threadId": "nope", "messageIds": ["m"]})

        assert response.status_code == 404
        assert response.json()["error"]["code"] == ErrorCode.THREAD_NOT_FOUND.value
