"""Command line entry point for chatlens."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, TextIO, get_args, get_origin, get_type_hints

from .chat.message_model import message_from_dict, message_to_dict
from .chat.sanitizer import SanitizerConfig, sanitize_message, visible_messages
from .services.app_config import build_config_payload
from .services.settings import Settings, SettingsStore, redact_secret
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_ENV_PREFIXES = ("CHATLENS_", "DATABRICKS_")
_LOGGER = logging.getLogger(__name__)


def configure_logging(debug: bool = False, *, log_levels: str = "", force: bool = False) -> None:
    level = logging.DEBUG if debug else logging.INFO
    module_levels = logging_utils.parse_log_levels(log_levels)
    logging_utils.setup_logging(level, module_levels=module_levels, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        return active_store.load(overrides=overrides)
    except OSError as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        return Settings()


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the ``chatlens`` console script."""

    parser = _build_parser()
    args = parser.parse_args(argv)

    settings_path = args.settings_path or os.environ.get("CHATLENS_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return 2

    settings = load_settings(resolved_path, store=store, overrides=cli_overrides or None)
    debug = args.debug or _env_flag("CHATLENS_DEBUG", default=False) or settings.debug_logging
    configure_logging(debug, log_levels=settings.log_levels)

    if args.dump_settings:
        _dump_settings(settings, store, overrides=cli_overrides)
        return 0

    if args.command == "sanitize":
        return _run_sanitize(args.path, settings, keep_empty=args.keep_empty)
    if args.command == "config":
        json.dump(build_config_payload(settings), sys.stdout, indent=2)
        sys.stdout.write("\n")
        return 0
    if args.command == "serve":
        return _run_server(settings, host=args.host, port=args.port)

    parser.print_usage(sys.stderr)
    return 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chatlens",
        description="Sanitize multi-agent chat transcripts for display and serve the chat config API.",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload (with secrets redacted) and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.chatlens/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings for this run (repeatable).",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")

    commands = parser.add_subparsers(dest="command")
    sanitize = commands.add_parser("sanitize", help="Sanitize a JSON conversation and print it.")
    sanitize.add_argument("path", help="JSON file holding a message list or {'messages': [...]}; '-' reads stdin.")
    sanitize.add_argument(
        "--keep-empty",
        action="store_true",
        help="Keep messages that have no visible content after sanitizing.",
    )
    commands.add_parser("config", help="Print the client configuration payload.")
    serve = commands.add_parser("serve", help="Run the HTTP API.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    return parser


def _run_sanitize(path: str, settings: Settings, *, keep_empty: bool, stream: TextIO | None = None) -> int:
    destination = stream or sys.stdout
    try:
        raw_messages = _read_conversation(path)
    except (OSError, ValueError) as exc:
        print(f"Unable to read conversation from {path}: {exc}", file=sys.stderr)
        return 1

    config = SanitizerConfig.from_settings(settings)
    messages = [message_from_dict(item) for item in raw_messages]
    if keep_empty:
        cleaned = [sanitize_message(message, config) for message in messages]
    else:
        cleaned = visible_messages(messages, config)
    _LOGGER.info("Sanitized %d message(s); %d in output", len(messages), len(cleaned))
    json.dump({"messages": [message_to_dict(message) for message in cleaned]}, destination, indent=2)
    destination.write("\n")
    return 0


def _read_conversation(path: str) -> list[Dict[str, Any]]:
    if path == "-":
        payload = json.load(sys.stdin)
    else:
        payload = json.loads(Path(path).expanduser().read_text(encoding="utf-8"))
    if isinstance(payload, Mapping):
        payload = payload.get("messages")
    if not isinstance(payload, list):
        raise ValueError("expected a list of messages or an object with a 'messages' list")
    return [item for item in payload if isinstance(item, Mapping)]


def _run_server(settings: Settings, *, host: str, port: int) -> int:
    import uvicorn

    from .server import create_app

    logging_utils.route_server_logs()
    _LOGGER.info("Serving chatlens API on %s:%s", host, port)
    uvicorn.run(create_app(settings), host=host, port=port, log_config=None)
    return 0


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides

    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        annotation = type_hints.get(key, fields[key].type)
        overrides[key] = _coerce_value(annotation, raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    target = _resolve_annotation(annotation)
    normalized = raw_value.strip()

    if target is str or target is Any:
        return normalized
    if target is bool:
        return _parse_bool(normalized)
    if target is int:
        return int(normalized, 10)
    if target is float:
        return float(normalized)
    if target is list:
        if not normalized.startswith("["):
            return [item.strip() for item in normalized.split(",") if item.strip()]
        try:
            return json.loads(normalized)
        except json.JSONDecodeError as exc:
            raise ValueError("List overrides must be valid JSON arrays") from exc
    if target is dict:
        try:
            return json.loads(normalized or "{}")
        except json.JSONDecodeError as exc:
            raise ValueError("Dict overrides must be valid JSON objects") from exc
    return normalized


def _resolve_annotation(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is None:
        return annotation
    if origin in {list, dict}:
        return origin
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if not args:
        return origin
    return args[0]


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    payload = asdict(settings)
    for secret_field in ("access_token", "client_secret"):
        value = payload.get(secret_field, "")
        if isinstance(value, str):
            payload[secret_field] = redact_secret(value)
    metadata = {
        "path": str(store.path),
        "secret_backend": store.vault.strategy,
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": _active_env_overrides(),
    }
    json.dump({"settings": payload, "meta": metadata}, destination, indent=2)
    destination.write("\n")


def _active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith(_ENV_PREFIXES))


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
