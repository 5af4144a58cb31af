"""Persistence helpers for dashboard users and their tenants."""

from __future__ import annotations

from typing import Any, Dict, Optional

from gatehouse.clients.datastore import DatastoreClient
from gatehouse.models.records import TenantRecord, UserRecord


class UserDirectory:
    """Read and upsert ``users`` rows keyed by Discord user id."""

    USERS_TABLE = "users"
    TENANTS_TABLE = "tenants"

    def __init__(self, datastore: DatastoreClient) -> None:
        self._store = datastore

    async def upsert_user(self, fields: Dict[str, Any]) -> Optional[UserRecord]:
        """Merge ``fields`` into the user row identified by ``discord_user_id``."""
        if not fields.get("discord_user_id"):
            raise ValueError("User upsert requires 'discord_user_id'")
        row = await self._store.upsert(
            self.USERS_TABLE, fields, on_conflict="discord_user_id"
        )
        return UserRecord.model_validate(row) if row else None

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        row = await self._store.select_one(self.USERS_TABLE, {"id": user_id})
        return UserRecord.model_validate(row) if row else None

    async def get_tenant_for_user(self, discord_user_id: str) -> Optional[TenantRecord]:
        row = await self._store.select_one(
            self.TENANTS_TABLE,
            {"owner_id": discord_user_id},
            columns="id,status,guilds(guild_id,guild_name)",
        )
        return TenantRecord.model_validate(row) if row else None


__all__ = ["UserDirectory"]
