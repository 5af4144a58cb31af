"""Public schema exports."""

from .auth import (
    BotIdentityResponse,
    GuildInfoResponse,
    GuildListResponse,
    InviteResponse,
    ManagedGuild,
    MeResponse,
    RevalidateGuildResponse,
    SelectGuildRequest,
    SelectGuildResponse,
    StatusResponse,
)

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
