"""Tests for the HTTP API."""

from __future__ import annotations

from typing import Any, Dict, List

import pytest
from fastapi.testclient import TestClient

from chatlens.server import create_app
from chatlens.services.settings import Settings


@pytest.fixture
def client() -> TestClient:
    settings = Settings(serving_endpoint="agents-main", database_url="postgres://db")
    return TestClient(create_app(settings))


def test_config_endpoint(client: TestClient) -> None:
    response = client.get("/api/config")

    assert response.status_code == 200
    assert response.json() == {
        "features": {"chatHistory": True},
        "servingEndpoint": "agents-main",
        "servingExperiment": "Unknown experiment",
    }


def test_healthz(client: TestClient) -> None:
    assert client.get("/healthz").json() == {"ok": True}


def test_sanitize_endpoint_filters_conversation(
    client: TestClient, multi_agent_parts: List[Dict[str, Any]]
) -> None:
    body = {
        "messages": [
            {"id": "u1", "role": "user", "parts": [{"type": "text", "text": "hi"}]},
            {"id": "a1", "role": "assistant", "parts": multi_agent_parts},
            {
                "id": "a2",
                "role": "assistant",
                "parts": [{"type": "text", "text": "<name>sub-9</name>"}, {"type": "text", "text": "x"}],
            },
        ]
    }

    response = client.post("/api/sanitize", json=body)

    assert response.status_code == 200
    messages = response.json()["messages"]
    assert [message["id"] for message in messages] == ["u1", "a1"]
    assert [part["text"] for part in messages[1]["parts"]] == ["Hello", '\n>"find docs"\n\n', "Done"]


def test_sanitize_endpoint_rejects_missing_messages(client: TestClient) -> None:
    assert client.post("/api/sanitize", json={"items": []}).status_code == 400


def test_sanitize_endpoint_rejects_invalid_json(client: TestClient) -> None:
    response = client.post(
        "/api/sanitize", content=b"{oops", headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400


class _RecordingTracer:
    def __init__(self, result: bool = True) -> None:
        self.payloads: List[Any] = []
        self._result = result

    def log_trace(self, payload: Any) -> bool:
        self.payloads.append(payload)
        return self._result


def _exchange() -> Dict[str, Any]:
    return {
        "chatId": "chat-1",
        "userEmail": "ada@example.com",
        "startTimeMs": 1_000,
        "endTimeMs": 1_400,
        "userMessage": {"id": "u1", "role": "user", "parts": [{"type": "text", "text": "Status?"}]},
        "assistantMessage": {
            "id": "a1",
            "role": "assistant",
            "parts": [
                {"type": "text", "text": "<name>sub-1</name>"},
                {"type": "text", "text": "scratch work"},
                {"type": "text", "text": "<name>ma-final</name>"},
                {"type": "text", "text": "All green."},
            ],
        },
    }


def test_traces_endpoint_records_sanitized_exchange() -> None:
    tracer = _RecordingTracer()
    client = TestClient(create_app(Settings(), trace_logger=tracer))  # type: ignore[arg-type]

    response = client.post("/api/traces", json=_exchange())

    assert response.status_code == 200
    assert response.json() == {"logged": True}
    payload = tracer.payloads[0]
    assert payload.chat_id == "chat-1"
    assert payload.message_id == "a1"
    assert payload.user_input == "Status?"
    assert payload.model_output == "All green."
    assert payload.end_time_ms - payload.start_time_ms == 400
    assert payload.user_email == "ada@example.com"


def test_traces_endpoint_reports_skipped_upload() -> None:
    client = TestClient(create_app(Settings()))

    response = client.post("/api/traces", json=_exchange())

    assert response.status_code == 200
    assert response.json() == {"logged": False}


def test_traces_endpoint_rejects_incomplete_exchange() -> None:
    tracer = _RecordingTracer()
    client = TestClient(create_app(Settings(), trace_logger=tracer))  # type: ignore[arg-type]
    body = _exchange()
    del body["startTimeMs"]

    assert client.post("/api/traces", json=body).status_code == 400
    assert client.post("/api/traces", json=[1, 2]).status_code == 400
    assert tracer.payloads == []
