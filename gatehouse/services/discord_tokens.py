"""
Helpers for retrieving and refreshing Discord OAuth tokens.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from gatehouse.clients.discord import DiscordOAuthClient
from gatehouse.core.errors import GatehouseError, InvalidToken
from gatehouse.models.records import UserRecord
from gatehouse.services.token_cipher import TokenCipherService
from gatehouse.services.users import UserDirectory

logger = logging.getLogger(__name__)


class MissingTokensError(GatehouseError):
    """Raised when no encrypted access token is stored for a user."""


class MissingRefreshTokenError(GatehouseError):
    """Raised when an access token needs refreshing but no refresh token is stored."""


class AccessTokenService:
    """Hands out provider access tokens that are valid for at least the refresh margin."""

    _REFRESH_MARGIN = timedelta(seconds=30)

    def __init__(
        self,
        users: UserDirectory,
        oauth_client: DiscordOAuthClient,
        token_cipher: TokenCipherService,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._users = users
        self._oauth = oauth_client
        self._cipher = token_cipher
        self._clock = clock

    def _usable_access_token(self, user: UserRecord) -> Optional[str]:
        """Return the stored access token when it is decryptable and not near expiry."""
        expires_at = user.token_expires_at
        if expires_at is None:
            return None
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if expires_at <= self._clock() + self._REFRESH_MARGIN:
            return None
        try:
            return self._cipher.decrypt(user.encrypted_access_token or "")
        except InvalidToken:
            logger.warning(
                "Stored access token for %s failed to decrypt; refreshing",
                user.discord_user_id,
            )
            return None

    async def ensure_valid_access_token(self, user: UserRecord) -> str:
        """Return a valid access token for ``user``, refreshing it when necessary."""
        if not user.encrypted_access_token:
            raise MissingTokensError(
                f"No OAuth tokens stored for user {user.discord_user_id}."
            )

        access_token = self._usable_access_token(user)
        if access_token is not None:
            return access_token

        if not user.encrypted_refresh_token:
            raise MissingRefreshTokenError(
                f"No refresh token stored for user {user.discord_user_id}."
            )

        refresh_token = self._cipher.decrypt(user.encrypted_refresh_token)
        if not refresh_token:
            raise MissingRefreshTokenError(
                f"Stored refresh token for user {user.discord_user_id} is empty."
            )
        refreshed_at = self._clock()
        tokens = await self._oauth.refresh_token(refresh_token)
        # TODO: confirm Discord always rotates refresh tokens; an omitted one is reused.
        new_refresh_token = tokens.refresh_token or refresh_token
        expires_at = refreshed_at + timedelta(seconds=tokens.expires_in or 0)

        await self._users.upsert_user(
            {
                "discord_user_id": user.discord_user_id,
                "encrypted_access_token": self._cipher.encrypt(tokens.access_token),
                "encrypted_refresh_token": self._cipher.encrypt(new_refresh_token),
                "token_expires_at": expires_at.isoformat(),
            }
        )
        logger.info("Refreshed Discord access token for %s", user.discord_user_id)
        return tokens.access_token


__all__ = ["AccessTokenService", "MissingRefreshTokenError", "MissingTokensError"]
