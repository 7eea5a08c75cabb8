"""HTTP surface for the chat front end.

Run locally with ``chatlens serve`` or ``uvicorn chatlens.server:create_app --factory``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import FastAPI, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from .chat.message_model import message_from_dict, message_to_dict
from .chat.sanitizer import SanitizerConfig, visible_messages
from .services.app_config import build_config_payload
from .services.settings import Settings, SettingsStore
from .services.tracing import TraceLogger, payload_from_exchange

__all__ = ["create_app"]

LOGGER = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, *, trace_logger: TraceLogger | None = None) -> FastAPI:
    """Build the FastAPI application bound to ``settings``."""

    active_settings = settings if settings is not None else SettingsStore().load()
    sanitizer_config = SanitizerConfig.from_settings(active_settings)
    tracer = trace_logger or TraceLogger(active_settings)
    app = FastAPI(title="chatlens")

    @app.get("/api/config")
    def get_config() -> Dict[str, Any]:
        return build_config_payload(active_settings)

    @app.post("/api/sanitize")
    async def sanitize(request: Request) -> Dict[str, Any]:
        body = await _json_object(request)
        raw_messages = body.get("messages")
        if not isinstance(raw_messages, list):
            raise HTTPException(status_code=400, detail="Expected a 'messages' list")
        messages = [message_from_dict(item) for item in raw_messages if isinstance(item, dict)]
        cleaned = visible_messages(messages, sanitizer_config)
        LOGGER.debug("Sanitized %d message(s); %d visible", len(messages), len(cleaned))
        return {"messages": [message_to_dict(message) for message in cleaned]}

    @app.post("/api/traces")
    async def log_trace(request: Request) -> Dict[str, bool]:
        body = await _json_object(request)
        try:
            payload = payload_from_exchange(body, sanitizer_config)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        logged = await run_in_threadpool(tracer.log_trace, payload)
        return {"logged": logged}

    @app.get("/healthz")
    def healthz() -> Dict[str, bool]:
        return {"ok": True}

    return app


async def _json_object(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Request body must be JSON") from exc
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")
    return body
