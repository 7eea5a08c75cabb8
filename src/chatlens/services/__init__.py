"""Service layer helpers (settings, auth, tracing, client config)."""

from .app_config import build_config_payload
from .auth import OAuthTokenProvider, StaticTokenProvider, TokenProviderError
from .settings import Settings, SettingsStore
from .tracing import TraceLogger, TracePayload

__all__ = [
    "OAuthTokenProvider",
    "Settings",
    "SettingsStore",
    "StaticTokenProvider",
    "TokenProviderError",
    "TraceLogger",
    "TracePayload",
    "build_config_payload",
]
