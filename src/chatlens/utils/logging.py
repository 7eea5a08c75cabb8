"""Logging bootstrap shared by the CLI and the HTTP server.

All output goes through the root logger: a rotating ``chatlens.log`` file and
an optional stderr stream. Per-logger levels use the ``log_levels`` setting
format (``"chatlens.services=DEBUG,httpx=INFO"``, see :func:`parse_log_levels`).
:func:`route_server_logs` makes uvicorn write to the same handlers.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path
from typing import Dict, Mapping

__all__ = ["get_log_path", "parse_log_levels", "route_server_logs", "setup_logging"]

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_NAME = "chatlens.log"

_DEFAULT_LOG_DIR = Path.home() / ".chatlens" / "logs"
_QUIET_BY_DEFAULT: tuple[str, ...] = ("httpx", "httpcore", "uvicorn.access")
_SERVER_LOGGERS: tuple[str, ...] = ("uvicorn", "uvicorn.error", "uvicorn.access")
_LOG_PATH: Path | None = None


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    module_levels: Mapping[str, int] | None = None,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Install the chatlens handlers on the root logger and return the log file path.

    A second call is a no-op unless ``force`` is set. ``module_levels`` win
    over the default quieting of transport loggers.
    """

    global _LOG_PATH
    if _LOG_PATH is not None and not force:
        return _LOG_PATH

    target_dir = Path(log_dir or os.environ.get("CHATLENS_LOG_DIR") or _DEFAULT_LOG_DIR).expanduser()
    target_dir.mkdir(parents=True, exist_ok=True)
    log_path = target_dir / LOG_FILE_NAME

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(
            log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
    ]
    if console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.captureWarnings(True)

    levels: Dict[str, int] = {}
    quiet_level = max(level, logging.WARNING)
    for name in _QUIET_BY_DEFAULT:
        levels[name] = quiet_level
    levels.update(module_levels or {})
    for name, logger_level in levels.items():
        logging.getLogger(name).setLevel(logger_level)

    _LOG_PATH = log_path
    return log_path


def parse_log_levels(value: str) -> Dict[str, int]:
    """Parse ``"name=LEVEL,name=LEVEL"``; malformed entries are skipped with a warning."""

    levels: Dict[str, int] = {}
    for entry in value.split(","):
        entry = entry.strip()
        if not entry:
            continue
        name, _, raw_level = entry.partition("=")
        resolved = logging.getLevelName(raw_level.strip().upper())
        if not name.strip() or not isinstance(resolved, int):
            logging.getLogger(__name__).warning("Ignoring log level entry %r", entry)
            continue
        levels[name.strip()] = resolved
    return levels


def route_server_logs() -> None:
    """Send uvicorn's records through the root handlers instead of its own."""

    for name in _SERVER_LOGGERS:
        server_logger = logging.getLogger(name)
        server_logger.handlers.clear()
        server_logger.propagate = True


def get_log_path() -> Path | None:
    """Return the currently configured log file if available."""

    return _LOG_PATH
