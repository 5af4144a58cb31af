"""Community guild membership checks, auto-join and invites."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from gatehouse.clients.discord import DiscordBotClient
from gatehouse.core.errors import ConfigurationError, GatehouseError
from gatehouse.models.records import UserRecord
from gatehouse.services.users import UserDirectory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MembershipStatus:
    in_guild: bool
    needs_invite: bool


@dataclass(frozen=True)
class InviteStatus:
    in_guild: bool
    invite_url: Optional[str] = None


class GuildMembershipService:
    """Keep ``is_in_guild`` / ``needs_invite`` in sync with Discord."""

    def __init__(
        self,
        bot_client: DiscordBotClient,
        users: UserDirectory,
        *,
        fallback_invite_url: Optional[str] = None,
    ) -> None:
        self._bot = bot_client
        self._users = users
        self._fallback_invite_url = fallback_invite_url

    async def ensure_membership(
        self, discord_user_id: str, access_token: str
    ) -> MembershipStatus:
        """Check membership and try to auto-join; any failure means an invite is needed."""
        if not self._bot.configured:
            return MembershipStatus(in_guild=False, needs_invite=True)
        try:
            if await self._bot.check_guild_membership(discord_user_id):
                return MembershipStatus(in_guild=True, needs_invite=False)
        except (GatehouseError, httpx.HTTPError):
            logger.exception("Guild membership check failed for %s", discord_user_id)
            return MembershipStatus(in_guild=False, needs_invite=True)

        try:
            await self._bot.add_user_to_guild(discord_user_id, access_token)
        except (GatehouseError, httpx.HTTPError):
            logger.warning("Auto-join failed for %s", discord_user_id, exc_info=True)
            return MembershipStatus(in_guild=False, needs_invite=True)
        logger.info("Joined %s to the community guild", discord_user_id)
        return MembershipStatus(in_guild=True, needs_invite=False)

    async def record(self, discord_user_id: str, status: MembershipStatus) -> None:
        await self._users.upsert_user(
            {
                "discord_user_id": discord_user_id,
                "is_in_guild": status.in_guild,
                "needs_invite": status.needs_invite,
            }
        )

    async def revalidate(self, user: UserRecord) -> bool:
        """Re-check membership for ``user`` and persist the result."""
        if not self._bot.configured:
            raise ConfigurationError("Community guild integration is not configured.")
        is_member = await self._bot.check_guild_membership(user.discord_user_id)
        await self.record(
            user.discord_user_id,
            MembershipStatus(in_guild=is_member, needs_invite=not is_member),
        )
        return is_member

    async def invite(self, user: UserRecord) -> InviteStatus:
        if user.is_in_guild:
            return InviteStatus(in_guild=True)
        invite_url = None
        if self._bot.configured:
            invite_url = await self._bot.create_guild_invite()
        await self._users.upsert_user(
            {"discord_user_id": user.discord_user_id, "needs_invite": True}
        )
        return InviteStatus(in_guild=False, invite_url=invite_url or self._fallback_invite_url)


__all__ = ["GuildMembershipService", "InviteStatus", "MembershipStatus"]
