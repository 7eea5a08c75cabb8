"""Client-facing configuration payload."""

from __future__ import annotations

from typing import Any, Dict

from .settings import Settings

__all__ = ["build_config_payload", "chat_history_enabled"]

UNKNOWN_ENDPOINT = "Unknown endpoint"
UNKNOWN_EXPERIMENT = "Unknown experiment"


def chat_history_enabled(settings: Settings) -> bool:
    """Chat history is only offered when a database is configured."""

    return bool((settings.database_url or "").strip())


def build_config_payload(settings: Settings) -> Dict[str, Any]:
    return {
        "features": {"chatHistory": chat_history_enabled(settings)},
        "servingEndpoint": settings.serving_endpoint or UNKNOWN_ENDPOINT,
        "servingExperiment": settings.serving_experiment or UNKNOWN_EXPERIMENT,
    }
