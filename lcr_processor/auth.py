"""
Machine-to-machine token provider.

Fetches a client-credentials token from the identity provider and caches it
for the configured time so every upstream call does not hit the token endpoint.
"""

from __future__ import annotations

import asyncio
import time

import httpx
import structlog

from .config import AuthConfig
from .errors import UpstreamError

log = structlog.get_logger()


class TokenProvider:
    def __init__(self, config: AuthConfig, client: httpx.AsyncClient):
        self._config = config
        self._client = client
        self._token: str | None = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    async def get_token(self) -> str:
        async with self._lock:
            if self._token and time.monotonic() < self._expires_at:
                return self._token

            try:
                resp = await self._client.post(
                    self._config.url,
                    json={
                        "grant_type": "client_credentials",
                        "client_id": self._config.client_id,
                        "client_secret": self._config.client_secret or "",
                        "audience": self._config.audience,
                    },
                )
                resp.raise_for_status()
            except httpx.HTTPStatusError as exc:
                log.error("auth.token_error", status=exc.response.status_code)
                raise UpstreamError(
                    "Failed to obtain M2M token", exc.response.status_code
                ) from exc
            except httpx.HTTPError as exc:
                log.error("auth.token_unreachable", error=str(exc))
                raise UpstreamError(f"Failed to obtain M2M token: {exc}") from exc

            body = resp.json()
            self._token = body["access_token"]
            ttl = min(
                self._config.token_cache_seconds,
                int(body.get("expires_in", self._config.token_cache_seconds)),
            )
            self._expires_at = time.monotonic() + ttl
            log.debug("auth.token_refreshed", ttl=ttl)
            return self._token

    def invalidate(self) -> None:
        self._token = None
        self._expires_at = 0.0
