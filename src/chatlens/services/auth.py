"""Access-token providers for workspace REST calls."""

from __future__ import annotations

import logging
import time
from threading import Lock
from typing import Callable, Protocol

import httpx

from .settings import Settings

__all__ = [
    "OAuthTokenProvider",
    "StaticTokenProvider",
    "TokenProvider",
    "TokenProviderError",
    "token_provider_from_settings",
]

LOGGER = logging.getLogger(__name__)
_TOKEN_PATH = "/oidc/v1/token"
_EXPIRY_SKEW_SECONDS = 60.0


class TokenProviderError(RuntimeError):
    """Raised when no usable access token can be obtained."""


class TokenProvider(Protocol):
    """Anything that can hand out a bearer token."""

    def get_token(self) -> str:  # pragma: no cover - protocol stub
        ...


class StaticTokenProvider:
    """Returns a pre-issued personal access token."""

    def __init__(self, token: str) -> None:
        if not token:
            raise TokenProviderError("Access token is empty")
        self._token = token

    def get_token(self) -> str:
        return self._token


class OAuthTokenProvider:
    """Client-credentials OAuth flow with an in-memory token cache."""

    def __init__(
        self,
        host: str,
        client_id: str,
        client_secret: str,
        *,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not host:
            raise TokenProviderError("Workspace host is required for OAuth authentication")
        self._token_url = f"{host.rstrip('/')}{_TOKEN_PATH}"
        self._client_id = client_id
        self._client_secret = client_secret
        self._timeout = timeout
        self._client = client
        self._clock = clock
        self._lock = Lock()
        self._token: str | None = None
        self._expires_at = 0.0

    def get_token(self) -> str:
        with self._lock:
            if self._token is not None and self._clock() < self._expires_at:
                return self._token
            token, expires_in = self._request_token()
            self._token = token
            self._expires_at = self._clock() + max(0.0, expires_in - _EXPIRY_SKEW_SECONDS)
            return token

    def _request_token(self) -> tuple[str, float]:
        data = {"grant_type": "client_credentials", "scope": "all-apis"}
        auth = (self._client_id, self._client_secret)
        try:
            if self._client is not None:
                response = self._client.post(self._token_url, data=data, auth=auth)
            else:
                with httpx.Client(timeout=self._timeout) as client:
                    response = client.post(self._token_url, data=data, auth=auth)
        except httpx.HTTPError as exc:
            raise TokenProviderError(f"Failed to reach token endpoint: {exc}") from exc

        if not response.is_success:
            snippet = (response.text or "").strip()[:120]
            raise TokenProviderError(
                f"Token endpoint responded with {response.status_code}: {snippet or response.reason_phrase}"
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise TokenProviderError("Token endpoint returned invalid JSON") from exc

        token = body.get("access_token") if isinstance(body, dict) else None
        if not isinstance(token, str) or not token:
            raise TokenProviderError("Token endpoint response did not include an access_token")
        try:
            expires_in = float(body.get("expires_in", 3600))
        except (TypeError, ValueError):
            expires_in = 3600.0
        LOGGER.debug("Obtained OAuth access token (expires in %.0fs)", expires_in)
        return token, expires_in


def token_provider_from_settings(
    settings: Settings, *, client: httpx.Client | None = None
) -> TokenProvider:
    """Pick a provider: a configured access token wins over client credentials."""

    if settings.access_token:
        return StaticTokenProvider(settings.access_token)
    if settings.client_id and settings.client_secret:
        return OAuthTokenProvider(
            settings.base_url,
            settings.client_id,
            settings.client_secret,
            timeout=settings.request_timeout,
            client=client,
        )
    raise TokenProviderError(
        "No credentials configured; set DATABRICKS_TOKEN or DATABRICKS_CLIENT_ID/DATABRICKS_CLIENT_SECRET"
    )
