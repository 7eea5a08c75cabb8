"""Upload chat interaction traces to the experiment tracking REST API.

Trace logging is fire-and-forget from the chat flow's point of view:
:meth:`TraceLogger.log_trace` reports success as a boolean and logs every
failure instead of raising.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping

import httpx
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..chat.message_model import Message, display_text, message_from_dict
from ..chat.sanitizer import SanitizerConfig, sanitize_message
from .auth import TokenProvider, TokenProviderError, token_provider_from_settings
from .settings import Settings

__all__ = [
    "TracePayload",
    "TraceLogger",
    "build_trace_body",
    "payload_from_exchange",
    "trace_output_text",
]

LOGGER = logging.getLogger(__name__)
_TRACES_PATH = "/api/2.0/mlflow/traces"
_TRACE_NAME = "chat_interaction"


@dataclass(slots=True)
class TracePayload:
    """One user/assistant exchange to record."""

    chat_id: str
    message_id: str
    user_input: str
    model_output: str
    start_time_ms: int
    end_time_ms: int
    user_email: str | None = None


def build_trace_body(payload: TracePayload, experiment_id: str) -> Dict[str, Any]:
    """Return the JSON body expected by the traces endpoint."""

    inputs = json.dumps([{"role": "user", "content": payload.user_input or ""}])
    outputs = json.dumps([{"role": "assistant", "content": payload.model_output or ""}])
    return {
        "experiment_id": experiment_id,
        "timestamp_ms": payload.start_time_ms,
        "execution_time_ms": payload.end_time_ms - payload.start_time_ms,
        "request_metadata": {
            "mlflow.trace.session": payload.chat_id,
            "mlflow.trace.user": payload.user_email or "unknown",
            "mlflow.trace.request": payload.message_id,
        },
        "name": _TRACE_NAME,
        "inputs": inputs,
        "outputs": outputs,
        "status": "OK",
    }


def trace_output_text(message: Message, config: SanitizerConfig | None = None) -> str:
    """Text of an assistant message as the user saw it."""

    return display_text(sanitize_message(message, config))


def payload_from_exchange(
    body: Mapping[str, Any], config: SanitizerConfig | None = None
) -> TracePayload:
    """Build a payload from a finished exchange posted by the chat front end.

    ``body`` carries ``chatId``, the wire ``userMessage`` and
    ``assistantMessage``, ``startTimeMs``, ``endTimeMs`` and an optional
    ``userEmail``. Raises ``ValueError`` when a required field is missing.
    """

    chat_id = body.get("chatId")
    if not isinstance(chat_id, str) or not chat_id:
        raise ValueError("chatId is required")
    user_part = body.get("userMessage")
    assistant_part = body.get("assistantMessage")
    if not isinstance(user_part, Mapping) or not isinstance(assistant_part, Mapping):
        raise ValueError("userMessage and assistantMessage must be objects")
    start = _timestamp(body, "startTimeMs")
    end = _timestamp(body, "endTimeMs")

    assistant = message_from_dict(assistant_part)
    user_email = body.get("userEmail")
    return TracePayload(
        chat_id=chat_id,
        message_id=assistant.id,
        user_input=display_text(message_from_dict(user_part)),
        model_output=trace_output_text(assistant, config),
        start_time_ms=start,
        end_time_ms=end,
        user_email=user_email if isinstance(user_email, str) and user_email else None,
    )


def _timestamp(body: Mapping[str, Any], key: str) -> int:
    value = body.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return int(value)


class TraceLogger:
    """Posts :class:`TracePayload` records using the configured credentials."""

    def __init__(
        self,
        settings: Settings,
        *,
        token_provider: TokenProvider | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._settings = settings
        self._token_provider = token_provider
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self._settings.serving_experiment)

    def log_trace(self, payload: TracePayload) -> bool:
        """Send ``payload``; returns ``True`` when the trace was accepted."""

        experiment_id = self._settings.serving_experiment
        if not experiment_id:
            LOGGER.warning("Experiment ID not configured. Skipping trace.")
            return False
        if not self._settings.base_url:
            LOGGER.warning("Workspace host not configured. Skipping trace.")
            return False

        try:
            token = self._resolve_token_provider().get_token()
            body = build_trace_body(payload, experiment_id)
            LOGGER.info("Sending trace for session %s", payload.chat_id)
            response = self._post(body, token)
        except TokenProviderError as exc:
            LOGGER.error("Unable to authenticate trace upload: %s", exc)
            return False
        except httpx.HTTPError as exc:
            LOGGER.error("Trace upload failed: %s", exc)
            return False
        except Exception:
            LOGGER.exception("Unexpected error while logging trace")
            return False

        if not response.is_success:
            LOGGER.error("Trace upload rejected (%s): %s", response.status_code, response.text)
            return False
        LOGGER.info("Trace logged successfully for session %s", payload.chat_id)
        return True

    def _resolve_token_provider(self) -> TokenProvider:
        if self._token_provider is None:
            self._token_provider = token_provider_from_settings(self._settings)
        return self._token_provider

    def _post(self, body: Dict[str, Any], token: str) -> httpx.Response:
        url = f"{self._settings.base_url}{_TRACES_PATH}"
        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
        for attempt in self._retrying():
            with attempt:
                if self._client is not None:
                    return self._client.post(url, json=body, headers=headers)
                with httpx.Client(timeout=self._settings.request_timeout) as client:
                    return client.post(url, json=body, headers=headers)
        raise RuntimeError("retry loop exited without a response")  # pragma: no cover

    def _retrying(self) -> Retrying:
        return Retrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception_type(httpx.TransportError),
        )
