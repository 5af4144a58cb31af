"""
Domain models for provider OAuth payloads.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

AVATAR_CDN = "https://cdn.discordapp.com/avatars"
ICON_CDN = "https://cdn.discordapp.com/icons"

# Permission bits that let a member install and configure a bot.
ADMINISTRATOR = 0x8
MANAGE_GUILD = 0x20


class ProviderTokens(BaseModel):
    """Token grant returned by the Discord token endpoint."""

    access_token: str
    refresh_token: Optional[str] = Field(
        None, description="Omitted by the provider on some refresh grants."
    )
    expires_in: int = Field(0, description="Access token lifetime in seconds.")
    token_type: Optional[str] = None
    scope: Optional[str] = None


class DiscordProfile(BaseModel):
    """Subset of the ``users/@me`` payload used by the dashboard."""

    id: str
    username: str
    email: Optional[str] = None
    avatar: Optional[str] = Field(None, description="Avatar hash, not a URL.")

    def avatar_url(self, size: int = 256) -> Optional[str]:
        if not self.avatar:
            return None
        return f"{AVATAR_CDN}/{self.id}/{self.avatar}.png?size={size}"


class DiscordGuild(BaseModel):
    """Entry of ``users/@me/guilds`` as seen by the authenticated user."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str
    name: str
    icon: Optional[str] = Field(None, description="Icon hash, not a URL.")
    owner: bool = False
    permissions: int = 0

    @property
    def can_manage(self) -> bool:
        return self.owner or bool(self.permissions & (ADMINISTRATOR | MANAGE_GUILD))

    def icon_url(self, size: int = 128) -> Optional[str]:
        if not self.icon:
            return None
        return f"{ICON_CDN}/{self.id}/{self.icon}.png?size={size}"


__all__ = ["AVATAR_CDN", "DiscordGuild", "DiscordProfile", "ICON_CDN", "ProviderTokens"]
