"""Shared pytest fixtures."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List

import pytest

_ENV_PREFIXES = ("CHATLENS_", "DATABRICKS_")


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in list(os.environ):
        if name.startswith(_ENV_PREFIXES) or name == "DATABASE_URL":
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("CHATLENS_LOG_DIR", str(tmp_path / "logs"))


@pytest.fixture
def multi_agent_parts() -> List[Dict[str, Any]]:
    return [
        {"type": "text", "text": "<name>ma-root</name>"},
        {"type": "text", "text": "Hello"},
        {"type": "tool-databricks-tool-call", "input": {"request": "find docs"}},
        {"type": "text", "text": "<name>sub-1</name>"},
        {"type": "text", "text": "internal"},
        {"type": "data-error", "data": "boom"},
        {"type": "text", "text": "<name>ma-root</name>"},
        {"type": "text", "text": "Done"},
    ]
