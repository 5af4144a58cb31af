"""
Domain models for rows stored in the datastore.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class UserRecord(BaseModel):
    """Dashboard user keyed by Discord user id."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: Optional[str] = Field(None, description="Datastore row identifier.")
    discord_user_id: str
    username: Optional[str] = None
    email: Optional[str] = None
    avatar: Optional[str] = None
    encrypted_access_token: Optional[str] = None
    encrypted_refresh_token: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    is_in_guild: Optional[bool] = False
    needs_invite: Optional[bool] = False


class SessionRecord(BaseModel):
    """Session row; only the HMAC digest of the raw token is stored."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: Optional[str] = None
    user_id: str
    token_hash: str
    expires_at: Optional[datetime] = None


class TenantGuild(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    guild_id: str
    guild_name: Optional[str] = None


class TenantRecord(BaseModel):
    """Account owning a provisioned bot and the guilds it is installed in."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: str
    status: Optional[str] = None
    guilds: List[TenantGuild] = Field(default_factory=list)

    @property
    def selected_guild(self) -> Optional[TenantGuild]:
        return self.guilds[0] if self.guilds else None


__all__ = ["SessionRecord", "TenantGuild", "TenantRecord", "UserRecord"]
