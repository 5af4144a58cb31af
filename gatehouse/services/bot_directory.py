"""
Bot identity and guild metadata lookups.

Both lookups hit the provisioner, which is rate limited and not idempotent,
so every path goes through a ``SingleflightCache``: a short-lived one in
front of the provisioner and a longer-lived one for the resolved identity.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from gatehouse.clients.datastore import DatastoreClient
from gatehouse.clients.discord import DiscordBotClient
from gatehouse.clients.provisioner import ProvisionerClient
from gatehouse.core.errors import GatehouseError, UpstreamError
from gatehouse.models.oauth import AVATAR_CDN
from gatehouse.services.foreign_secret import ForeignSecretDecoder
from gatehouse.utils.cache import SingleflightCache

logger = logging.getLogger(__name__)

DEFAULT_GUILD_PERMISSIONS: Dict[str, bool] = {
    "administrator": False,
    "manage_guild": False,
    "manage_roles": False,
    "manage_channels": False,
}


class BotIdentity(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: Optional[str] = None
    name: Optional[str] = None
    avatar: Optional[str] = None


class GuildInfo(BaseModel):
    name: Optional[str] = None
    icon: Optional[str] = None
    member_count: Optional[int] = None
    role_count: Optional[int] = None
    boost_count: Optional[int] = None
    channels_count: Optional[int] = None
    permissions: Dict[str, Any] = Field(
        default_factory=lambda: dict(DEFAULT_GUILD_PERMISSIONS)
    )


class BotDirectoryService:
    """Resolve tenant bot identities and guild metadata with request coalescing."""

    def __init__(
        self,
        *,
        provisioner: ProvisionerClient,
        datastore: DatastoreClient,
        bot_client: DiscordBotClient,
        secret_decoder: ForeignSecretDecoder,
        identity_cache: SingleflightCache,
        provisioner_cache: SingleflightCache,
    ) -> None:
        self._provisioner = provisioner
        self._store = datastore
        self._bot = bot_client
        self._decoder = secret_decoder
        self._identity_cache = identity_cache
        self._provisioner_cache = provisioner_cache

    async def fetch_provisioner_identity(self, tenant_id: str) -> Optional[BotIdentity]:
        if not tenant_id or not self._provisioner.configured:
            return None

        async def _fetch() -> Optional[BotIdentity]:
            try:
                data = await self._provisioner.fetch_bot_identity(tenant_id)
            except UpstreamError as exc:
                logger.error("Provisioner identity error %s: %s", exc.status_code, exc.body)
                return None
            return BotIdentity(
                id=data.get("id") or None,
                name=data.get("name") or None,
                avatar=data.get("avatar") or None,
            )

        try:
            return await self._provisioner_cache.get(f"identity:{tenant_id}", _fetch)
        except httpx.HTTPError:
            logger.exception("Provisioner identity request failed for %s", tenant_id)
            return None

    async def fetch_guild_info(
        self, guild_id: str, tenant_id: Optional[str] = None
    ) -> Optional[GuildInfo]:
        if not guild_id or not self._provisioner.configured:
            return None
        cache_key = f"guild:{tenant_id}:{guild_id}" if tenant_id else f"guild:{guild_id}"

        async def _fetch() -> Optional[GuildInfo]:
            try:
                data = await self._provisioner.fetch_guild(guild_id, tenant_id)
            except UpstreamError as exc:
                if exc.status_code != 404:
                    logger.error("Provisioner guild error %s: %s", exc.status_code, exc.body)
                return None
            return GuildInfo(
                name=data.get("name") or None,
                icon=data.get("icon") or None,
                member_count=data.get("members"),
                role_count=data.get("roles"),
                boost_count=data.get("boosts"),
                channels_count=data.get("channels"),
                permissions=data.get("permissions") or dict(DEFAULT_GUILD_PERMISSIONS),
            )

        try:
            return await self._provisioner_cache.get(cache_key, _fetch)
        except httpx.HTTPError:
            logger.exception("Provisioner guild request failed for %s", guild_id)
            return None

    async def fetch_bot_identity(self, tenant_id: str) -> Optional[BotIdentity]:
        """Resolve a tenant's bot from the provisioner, the datastore, then Discord."""
        if not tenant_id:
            return None
        try:
            return await self._identity_cache.get(
                tenant_id, lambda: self._resolve_identity(tenant_id)
            )
        except (GatehouseError, httpx.HTTPError):
            logger.exception("Bot identity lookup failed for tenant %s", tenant_id)
            return None

    async def _resolve_identity(self, tenant_id: str) -> Optional[BotIdentity]:
        identity = await self.fetch_provisioner_identity(tenant_id)
        if identity is not None and identity.name:
            return identity

        rows = await self._store.select(
            "bot_identity",
            {"tenant_id": tenant_id},
            columns="bot_id,bot_name,bot_avatar_url,updated_at",
            order="updated_at.desc",
            limit=1,
        )
        record = rows[0] if rows else None
        if record and record.get("bot_name"):
            return BotIdentity(
                id=record.get("bot_id") or None,
                name=record.get("bot_name"),
                avatar=record.get("bot_avatar_url") or None,
            )

        return await self._identity_from_discord(tenant_id)

    async def fetch_bot_token(self, tenant_id: str) -> Optional[str]:
        """Return the tenant's bot credential, decrypting it when it is a Fernet token."""
        row = await self._store.select_one(
            "bot_secrets", {"tenant_id": tenant_id}, columns="encrypted_token"
        )
        return self._decoder.resolve((row or {}).get("encrypted_token"))

    async def _identity_from_discord(self, tenant_id: str) -> Optional[BotIdentity]:
        token = await self.fetch_bot_token(tenant_id)
        if not token:
            return None
        user = await self._bot.fetch_bot_user(token)
        if not user:
            return None
        bot_id = user.get("id")
        avatar = user.get("avatar")
        return BotIdentity(
            id=bot_id or None,
            name=user.get("username") or None,
            avatar=f"{AVATAR_CDN}/{bot_id}/{avatar}.png?size=128" if avatar else None,
        )


__all__ = ["BotDirectoryService", "BotIdentity", "DEFAULT_GUILD_PERMISSIONS", "GuildInfo"]
