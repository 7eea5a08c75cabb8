"""Tests for trace uploads."""

from __future__ import annotations

import json
import logging
from typing import Callable, List

import httpx
import pytest

from chatlens.chat.message_model import Message, TextFragment, ToolInvocationFragment
from chatlens.services.auth import StaticTokenProvider, TokenProviderError
from chatlens.services.settings import Settings
from chatlens.services.tracing import (
    TraceLogger,
    TracePayload,
    build_trace_body,
    payload_from_exchange,
    trace_output_text,
)


def _settings(**overrides: object) -> Settings:
    base = Settings(
        host="adb.example.net",
        serving_experiment="exp-7",
        access_token="dapi-1",
        max_retries=3,
        retry_min_seconds=0.0,
        retry_max_seconds=0.0,
    )
    for key, value in overrides.items():
        setattr(base, key, value)
    return base


def _payload() -> TracePayload:
    return TracePayload(
        chat_id="chat-1",
        message_id="msg-1",
        user_input="What is new?",
        model_output="Everything.",
        start_time_ms=1_000,
        end_time_ms=1_250,
        user_email="ada@example.com",
    )


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


class _FailingProvider:
    def get_token(self) -> str:
        raise TokenProviderError("no credentials")


def test_build_trace_body_shape() -> None:
    body = build_trace_body(_payload(), "exp-7")

    assert body == {
        "experiment_id": "exp-7",
        "timestamp_ms": 1_000,
        "execution_time_ms": 250,
        "request_metadata": {
            "mlflow.trace.session": "chat-1",
            "mlflow.trace.user": "ada@example.com",
            "mlflow.trace.request": "msg-1",
        },
        "name": "chat_interaction",
        "inputs": json.dumps([{"role": "user", "content": "What is new?"}]),
        "outputs": json.dumps([{"role": "assistant", "content": "Everything."}]),
        "status": "OK",
    }


def test_build_trace_body_defaults_unknown_user() -> None:
    payload = _payload()
    payload.user_email = None

    body = build_trace_body(payload, "exp")

    assert body["request_metadata"]["mlflow.trace.user"] == "unknown"


def test_log_trace_posts_with_bearer_token() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={})

    logger = TraceLogger(_settings(), client=_client(handler))

    assert logger.log_trace(_payload()) is True
    request = seen[0]
    assert str(request.url) == "https://adb.example.net/api/2.0/mlflow/traces"
    assert request.headers["Authorization"] == "Bearer dapi-1"
    assert json.loads(request.content)["experiment_id"] == "exp-7"


def test_log_trace_skips_without_experiment(caplog: pytest.LogCaptureFixture) -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - must not run
        raise AssertionError("no request expected")

    logger = TraceLogger(_settings(serving_experiment=""), client=_client(handler))

    with caplog.at_level(logging.WARNING):
        assert logger.log_trace(_payload()) is False

    assert logger.enabled is False
    assert "Experiment ID not configured" in caplog.text


def test_log_trace_skips_without_host() -> None:
    assert TraceLogger(_settings(host="")).log_trace(_payload()) is False


def test_log_trace_returns_false_on_rejection(caplog: pytest.LogCaptureFixture) -> None:
    logger = TraceLogger(
        _settings(), client=_client(lambda request: httpx.Response(403, text="forbidden"))
    )

    with caplog.at_level(logging.ERROR):
        assert logger.log_trace(_payload()) is False

    assert "403" in caplog.text


def test_log_trace_returns_false_when_auth_fails() -> None:
    logger = TraceLogger(
        _settings(),
        token_provider=_FailingProvider(),
        client=_client(lambda request: httpx.Response(200)),
    )

    assert logger.log_trace(_payload()) is False


def test_log_trace_returns_false_without_credentials() -> None:
    logger = TraceLogger(_settings(access_token=""), client=_client(lambda request: httpx.Response(200)))

    assert logger.log_trace(_payload()) is False


def test_log_trace_retries_transport_errors() -> None:
    attempts: List[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        if len(attempts) < 3:
            raise httpx.ConnectError("flaky", request=request)
        return httpx.Response(200)

    logger = TraceLogger(
        _settings(),
        token_provider=StaticTokenProvider("tok"),
        client=_client(handler),
    )

    assert logger.log_trace(_payload()) is True
    assert len(attempts) == 3


def test_log_trace_gives_up_after_max_retries() -> None:
    attempts: List[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        raise httpx.ConnectError("down", request=request)

    logger = TraceLogger(_settings(max_retries=2), client=_client(handler))

    assert logger.log_trace(_payload()) is False
    assert len(attempts) == 2


def test_trace_output_text_uses_sanitized_message() -> None:
    message = Message(
        id="a",
        role="assistant",
        fragments=(
            TextFragment("Looking."),
            ToolInvocationFragment("databricks-tool-call", input={"request": "q"}),
            TextFragment("<name>sub-1</name>"),
            TextFragment("internal"),
        ),
    )

    assert trace_output_text(message) == 'Looking.\n>"q"'


@pytest.mark.parametrize(
    "missing",
    ["chatId", "userMessage", "assistantMessage", "startTimeMs", "endTimeMs"],
)
def test_payload_from_exchange_requires_fields(missing: str) -> None:
    body = {
        "chatId": "c",
        "userMessage": {"role": "user", "parts": []},
        "assistantMessage": {"id": "a", "role": "assistant", "parts": []},
        "startTimeMs": 1,
        "endTimeMs": 2,
    }
    del body[missing]

    with pytest.raises(ValueError):
        payload_from_exchange(body)
