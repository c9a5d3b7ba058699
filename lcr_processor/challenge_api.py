"""
Client for the upstream challenge, resource-role and project APIs.

All calls carry a bearer M2M token. A 404 becomes NotFoundError; any other
failure (timeout, connection error, 5xx) becomes UpstreamError and fails the
current message.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from .auth import TokenProvider
from .config import AuthConfig, ChallengeApiConfig
from .errors import NotFoundError, UpstreamError
from .schemas import Challenge, Project, ResourceRole

log = structlog.get_logger()


class ChallengeApiClient:
    def __init__(
        self,
        config: ChallengeApiConfig,
        auth: AuthConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._config = config
        self._auth_config = auth
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._tokens: TokenProvider | None = None

    async def open(self) -> None:
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self._config.request_timeout_seconds),
            verify=self._config.verify_tls,
            transport=self._transport,
        )
        self._tokens = TokenProvider(self._auth_config, self._client)

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _get(self, url: str, params: dict[str, Any] | None = None) -> Any:
        assert self._client and self._tokens
        token = await self._tokens.get_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }
        try:
            resp = await self._client.get(url, params=params, headers=headers)
            if resp.status_code == 401:
                # Token revoked or expired early; refresh once.
                self._tokens.invalidate()
                headers["Authorization"] = f"Bearer {await self._tokens.get_token()}"
                resp = await self._client.get(url, params=params, headers=headers)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 404:
                raise NotFoundError(f"Not found: {url}", status) from exc
            log.error("challenge_api.http_error", url=url, status=status)
            raise UpstreamError(f"GET {url} failed with {status}", status) from exc
        except httpx.HTTPError as exc:
            log.error("challenge_api.unreachable", url=url, error=str(exc))
            raise UpstreamError(f"GET {url} failed: {exc}") from exc
        return resp.json()

    async def get_challenge(self, challenge_id: str) -> Challenge:
        url = f"{self._config.challenge_url.rstrip('/')}/{challenge_id}"
        body = await self._get(url)
        log.debug("challenge_api.challenge", challenge_id=challenge_id, legacy_id=body.get("legacyId"))
        return Challenge.model_validate(body)

    async def get_resource_role(self, role_id: str) -> ResourceRole:
        body = await self._get(self._config.resource_role_url, params={"id": role_id})
        if isinstance(body, list):
            if not body:
                raise NotFoundError(f"Resource role {role_id} not found", 404)
            body = body[0]
        return ResourceRole.model_validate(body)

    async def get_project(self, project_id: int) -> Project:
        url = f"{self._config.projects_url.rstrip('/')}/{project_id}"
        return Project.model_validate(await self._get(url))

    async def check_health(self) -> bool:
        if not self._client:
            return False
        try:
            resp = await self._client.get(self._config.challenge_url, params={"perPage": 1})
            return resp.status_code < 500
        except Exception:
            return False
