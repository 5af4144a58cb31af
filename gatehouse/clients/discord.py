"""
Discord OAuth and bot API utilities.

These helpers manage the user authentication flow, the token refresh
lifecycle and the bot-credential calls used for community guild membership.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from gatehouse.core.config import DiscordSettings, OAuthSettings
from gatehouse.core.errors import ConfigurationError, UpstreamError
from gatehouse.models.oauth import DiscordGuild, DiscordProfile, ProviderTokens
from gatehouse.utils.http import build_async_client, ensure_success

logger = logging.getLogger(__name__)

API_BASE_URL = "https://discord.com/api/v10"


class OAuthTokenExchangeError(UpstreamError):
    """Raised when the token endpoint rejects a grant or returns an incomplete payload."""


class DiscordOAuthClient:
    """Build Discord authorization URLs and exchange or refresh grants."""

    AUTH_BASE_URL = "https://discord.com/api/oauth2/authorize"
    TOKEN_URL = "https://discord.com/api/oauth2/token"

    def __init__(
        self,
        discord_settings: DiscordSettings,
        oauth_settings: OAuthSettings,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._discord = discord_settings
        self._oauth = oauth_settings
        self._timeout = timeout
        self._transport = transport

    def build_authorization_url(self, state: str, code_challenge: str) -> str:
        """Construct the Discord consent URL for a PKCE (S256) login."""
        params = {
            "client_id": self._discord.client_id,
            "redirect_uri": str(self._discord.redirect_uri),
            "response_type": "code",
            "scope": " ".join(self._oauth.scopes),
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
            "prompt": "consent",
        }
        return f"{self.AUTH_BASE_URL}?{urlencode(params)}"

    async def exchange_authorization_code(
        self, code: str, code_verifier: str
    ) -> ProviderTokens:
        """Exchange an authorization code and its PKCE verifier for tokens."""
        payload = {
            "client_id": self._discord.client_id,
            "client_secret": self._discord.client_secret,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": str(self._discord.redirect_uri),
            "code_verifier": code_verifier,
        }
        return await self._request_tokens(payload)

    async def refresh_token(self, refresh_token: str) -> ProviderTokens:
        """Refresh the access token using a stored refresh token."""
        payload = {
            "client_id": self._discord.client_id,
            "client_secret": self._discord.client_secret,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        return await self._request_tokens(payload)

    async def fetch_profile(self, access_token: str) -> DiscordProfile:
        """Fetch the authenticated user's profile."""
        async with build_async_client(
            timeout=self._timeout, transport=self._transport
        ) as client:
            response = await client.get(
                f"{API_BASE_URL}/users/@me",
                headers={"Authorization": f"Bearer {access_token}"},
            )
        ensure_success(response, service="discord user")
        return DiscordProfile.model_validate(response.json())

    async def fetch_user_guilds(self, access_token: str) -> List[DiscordGuild]:
        """List the guilds the authenticated user belongs to."""
        async with build_async_client(
            timeout=self._timeout, transport=self._transport
        ) as client:
            response = await client.get(
                f"{API_BASE_URL}/users/@me/guilds",
                headers={"Authorization": f"Bearer {access_token}"},
            )
        ensure_success(response, service="discord guilds")
        payload = response.json()
        if not isinstance(payload, list):
            return []
        return [DiscordGuild.model_validate(item) for item in payload]

    async def _request_tokens(self, payload: Dict[str, str]) -> ProviderTokens:
        async with build_async_client(
            timeout=self._timeout, transport=self._transport
        ) as client:
            response = await client.post(self.TOKEN_URL, data=payload)

        if not response.is_success:
            raise OAuthTokenExchangeError(
                "discord token", response.status_code, response.text
            )

        token_payload = response.json()
        if not isinstance(token_payload, dict) or not token_payload.get("access_token"):
            raise OAuthTokenExchangeError(
                "discord token",
                response.status_code,
                "Incomplete token payload returned from Discord.",
            )
        return ProviderTokens.model_validate(token_payload)


class DiscordBotClient:
    """Calls made with the bot credential against the community guild."""

    def __init__(
        self,
        discord_settings: DiscordSettings,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._discord = discord_settings
        self._timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return self._discord.guild_integration_enabled

    def _bot_headers(self, token: Optional[str] = None) -> Dict[str, str]:
        credential = token or self._discord.bot_token
        if not credential:
            raise ConfigurationError("DISCORD_BOT_TOKEN is not configured.")
        return {"Authorization": f"Bot {credential}"}

    def _member_url(self, discord_user_id: str) -> str:
        if not self._discord.guild_id:
            raise ConfigurationError("DISCORD_GUILD_ID is not configured.")
        return f"{API_BASE_URL}/guilds/{self._discord.guild_id}/members/{discord_user_id}"

    async def check_guild_membership(self, discord_user_id: str) -> bool:
        """Return whether the user is a member of the community guild."""
        async with build_async_client(
            timeout=self._timeout, transport=self._transport
        ) as client:
            response = await client.get(
                self._member_url(discord_user_id), headers=self._bot_headers()
            )
        if response.status_code == 200:
            return True
        if response.status_code == 404:
            return False
        raise UpstreamError("discord guild check", response.status_code, response.text)

    async def add_user_to_guild(self, discord_user_id: str, access_token: str) -> None:
        """Join the user to the community guild using their ``guilds.join`` grant."""
        async with build_async_client(
            timeout=self._timeout, transport=self._transport
        ) as client:
            response = await client.put(
                self._member_url(discord_user_id),
                headers=self._bot_headers(),
                json={"access_token": access_token},
            )
        ensure_success(response, service="discord guild join")

    async def create_guild_invite(self) -> Optional[str]:
        """Mint a single-use, one-day invite; ``None`` when not possible."""
        channel_id = self._discord.invite_channel_id
        if not channel_id:
            return None
        async with build_async_client(
            timeout=self._timeout, transport=self._transport
        ) as client:
            response = await client.post(
                f"{API_BASE_URL}/channels/{channel_id}/invites",
                headers=self._bot_headers(),
                json={"max_age": 86400, "max_uses": 1, "unique": True},
            )
        if not response.is_success:
            logger.warning("Invite creation failed with status %s", response.status_code)
            return None
        code = (response.json() or {}).get("code")
        return f"https://discord.gg/{code}" if code else None

    async def fetch_bot_user(self, bot_token: str) -> Optional[Dict[str, Any]]:
        """Resolve a tenant bot's own profile from its credential."""
        async with build_async_client(
            timeout=self._timeout, transport=self._transport
        ) as client:
            response = await client.get(
                f"{API_BASE_URL}/users/@me", headers=self._bot_headers(bot_token)
            )
        if not response.is_success:
            return None
        return response.json()


__all__ = [
    "API_BASE_URL",
    "DiscordBotClient",
    "DiscordOAuthClient",
    "OAuthTokenExchangeError",
]
