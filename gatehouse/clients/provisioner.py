"""Client for the bot provisioner's internal lookup endpoints."""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from gatehouse.core.config import ProvisionerSettings
from gatehouse.core.errors import ConfigurationError
from gatehouse.utils.http import build_async_client, ensure_success


class ProvisionerClient:
    """Read bot identity and guild metadata from the provisioner.

    The provisioner offers no idempotency guarantees and is rate limited, so
    callers are expected to go through a ``SingleflightCache``.
    """

    def __init__(
        self,
        settings: ProvisionerSettings,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._settings.url)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._settings.api_key:
            headers["X-API-Key"] = self._settings.api_key
        return headers

    async def _get(self, path: str, params: Dict[str, str]) -> Dict[str, Any]:
        if not self._settings.url:
            raise ConfigurationError("PROVISIONER_URL is not configured.")
        async with build_async_client(
            timeout=self._timeout, transport=self._transport
        ) as client:
            response = await client.get(
                f"{self._settings.url.rstrip('/')}{path}",
                params=params,
                headers=self._headers(),
            )
        ensure_success(response, service="provisioner")
        data = response.json()
        return data if isinstance(data, dict) else {}

    async def fetch_bot_identity(self, tenant_id: str) -> Dict[str, Any]:
        return await self._get("/internal/bot/identity", {"tenant_id": tenant_id})

    async def fetch_guild(
        self, guild_id: str, tenant_id: Optional[str] = None
    ) -> Dict[str, Any]:
        params = {"guild_id": guild_id}
        if tenant_id:
            params["tenant_id"] = tenant_id
        return await self._get("/internal/bot/guild", params)


__all__ = ["ProvisionerClient"]
