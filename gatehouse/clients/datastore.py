"""
Thin client for the PostgREST datastore holding users, sessions and tenants.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

import httpx

from gatehouse.core.config import DatastoreSettings
from gatehouse.core.errors import ConfigurationError
from gatehouse.utils.http import build_async_client, ensure_success, json_or_none


def eq(value: Any) -> str:
    """Render an equality filter value."""
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    return f"eq.{value}"


class DatastoreClient:
    """Filtered GET, upsert-with-conflict-target POST and filtered DELETE."""

    def __init__(
        self,
        settings: DatastoreSettings,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._timeout = timeout
        self._transport = transport

    def _base_url(self) -> str:
        if not self._settings.url or not self._settings.service_key:
            raise ConfigurationError("Datastore URL or service key is not configured.")
        return f"{self._settings.url.rstrip('/')}/rest/v1"

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        key = self._settings.service_key or ""
        headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def select(
        self,
        table: str,
        filters: Mapping[str, Any],
        *,
        columns: str = "*",
        order: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Return rows matching ``col=eq.value`` filters."""
        params: Dict[str, Any] = {key: eq(value) for key, value in filters.items()}
        params["select"] = columns
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = limit
        async with build_async_client(
            timeout=self._timeout, transport=self._transport
        ) as client:
            response = await client.get(
                f"{self._base_url()}/{table}", params=params, headers=self._headers()
            )
        ensure_success(response, service="datastore")
        return json_or_none(response) or []

    async def select_one(
        self, table: str, filters: Mapping[str, Any], *, columns: str = "*"
    ) -> Optional[Dict[str, Any]]:
        rows = await self.select(table, filters, columns=columns, limit=1)
        return rows[0] if rows else None

    async def insert(self, table: str, record: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        async with build_async_client(
            timeout=self._timeout, transport=self._transport
        ) as client:
            response = await client.post(
                f"{self._base_url()}/{table}",
                json=dict(record),
                headers=self._headers("return=representation"),
            )
        ensure_success(response, service="datastore")
        rows = json_or_none(response) or []
        return rows[0] if rows else None

    async def upsert(
        self, table: str, record: Mapping[str, Any], *, on_conflict: str
    ) -> Optional[Dict[str, Any]]:
        """Insert or merge ``record`` on the ``on_conflict`` unique column."""
        async with build_async_client(
            timeout=self._timeout, transport=self._transport
        ) as client:
            response = await client.post(
                f"{self._base_url()}/{table}",
                params={"on_conflict": on_conflict},
                json=dict(record),
                headers=self._headers("resolution=merge-duplicates,return=representation"),
            )
        ensure_success(response, service="datastore")
        rows = json_or_none(response) or []
        return rows[0] if rows else None

    async def delete(self, table: str, filters: Mapping[str, Any]) -> None:
        params = {key: eq(value) for key, value in filters.items()}
        if not params:
            raise ValueError("Refusing to delete without filters")
        async with build_async_client(
            timeout=self._timeout, transport=self._transport
        ) as client:
            response = await client.delete(
                f"{self._base_url()}/{table}", params=params, headers=self._headers()
            )
        ensure_success(response, service="datastore")


__all__ = ["DatastoreClient", "eq"]
