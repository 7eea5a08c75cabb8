"""Tests for the client configuration payload."""

from __future__ import annotations

from chatlens.services.app_config import build_config_payload, chat_history_enabled
from chatlens.services.settings import Settings


def test_payload_uses_configured_values() -> None:
    settings = Settings(
        serving_endpoint="agents-main",
        serving_experiment="1234",
        database_url="postgres://db",
    )

    assert build_config_payload(settings) == {
        "features": {"chatHistory": True},
        "servingEndpoint": "agents-main",
        "servingExperiment": "1234",
    }


def test_payload_falls_back_to_placeholders() -> None:
    assert build_config_payload(Settings()) == {
        "features": {"chatHistory": False},
        "servingEndpoint": "Unknown endpoint",
        "servingExperiment": "Unknown experiment",
    }


def test_blank_database_url_disables_history() -> None:
    assert chat_history_enabled(Settings(database_url="   ")) is False
