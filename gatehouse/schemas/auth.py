"""Schemas returned by the auth and bot lookup endpoints."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class MeResponse(BaseModel):
    """Current dashboard user as seen by the front-end."""

    id: Optional[str] = None
    discord_user_id: str
    username: Optional[str] = None
    email: Optional[str] = None
    avatar: Optional[str] = None
    is_in_guild: bool = False
    needs_invite: bool = False
    tenant_id: Optional[str] = None
    selected_guild_id: Optional[str] = None
    selected_guild_name: Optional[str] = None
    has_selected_guild: bool = False


class InviteResponse(BaseModel):
    in_guild: bool
    invite_url: Optional[str] = None


class RevalidateGuildResponse(BaseModel):
    is_in_guild: bool


class BotIdentityResponse(BaseModel):
    name: Optional[str] = Field(None, description="Bot display name, if resolvable.")
    avatar: Optional[str] = None


class GuildInfoResponse(BaseModel):
    guild_id: str
    name: Optional[str] = None
    icon: Optional[str] = None
    member_count: Optional[int] = None
    role_count: Optional[int] = None
    boost_count: Optional[int] = None
    channels_count: Optional[int] = None
    permissions: Dict[str, Any] = Field(default_factory=dict)


class ManagedGuild(BaseModel):
    """Guild the user owns or can administer."""

    id: str
    name: str
    icon: Optional[str] = None
    owner: bool = False
    permissions: int = 0


class GuildListResponse(BaseModel):
    guilds: List[ManagedGuild] = Field(default_factory=list)


class SelectGuildRequest(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    guild_id: str = Field("", description="Discord snowflake of the chosen guild.")


class SelectGuildResponse(BaseModel):
    guild_id: str
    guild_name: str
    guild_icon: Optional[str] = None


class StatusResponse(BaseModel):
    status: str = "ok"


__all__ = [
    "BotIdentityResponse",
    "GuildInfoResponse",
    "GuildListResponse",
    "InviteResponse",
    "ManagedGuild",
    "MeResponse",
    "RevalidateGuildResponse",
    "SelectGuildRequest",
    "SelectGuildResponse",
    "StatusResponse",
]
