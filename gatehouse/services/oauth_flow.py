"""
Discord OAuth2 login with PKCE.

The handshake is stateless on the server: ``begin_login`` hands back three
cookie values (state, verifier, redirect target) and ``complete_login`` only
proceeds when the callback's ``state`` matches the state cookie and the
verifier cookie is present, which binds the callback to the browser that
started the attempt.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Mapping, Optional, Tuple
from urllib.parse import urlencode

from gatehouse.clients.discord import DiscordOAuthClient
from gatehouse.core.config import OAuthSettings
from gatehouse.services.guild_membership import GuildMembershipService
from gatehouse.services.sessions import SessionAuthority
from gatehouse.services.token_cipher import TokenCipherService
from gatehouse.services.users import UserDirectory
from gatehouse.utils.encoding import b64url_encode, random_token, sanitize_next_path

logger = logging.getLogger(__name__)

STATE_COOKIE = "oauth-state"
VERIFIER_COOKIE = "oauth-verifier"
REDIRECT_COOKIE = "oauth-redirect"
HANDSHAKE_COOKIES = (STATE_COOKIE, VERIFIER_COOKIE, REDIRECT_COOKIE)

SELECT_SERVER_PATH = "/select-server"


def pkce_challenge(verifier: str) -> str:
    """Generate the S256 PKCE challenge for ``verifier``."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return b64url_encode(digest)


@dataclass(frozen=True)
class LoginRedirect:
    authorization_url: str
    handshake: Dict[str, str]


@dataclass(frozen=True)
class CallbackOutcome:
    """Where to send the browser after the callback and which session to set."""

    location: str
    session_token: Optional[str] = None
    session_max_age: Optional[int] = None
    clear_cookies: Tuple[str, ...] = HANDSHAKE_COOKIES

    @property
    def succeeded(self) -> bool:
        return self.session_token is not None


class OAuthLoginController:
    """Drive the login and callback halves of the PKCE flow."""

    def __init__(
        self,
        *,
        oauth_client: DiscordOAuthClient,
        token_cipher: TokenCipherService,
        sessions: SessionAuthority,
        users: UserDirectory,
        membership: GuildMembershipService,
        oauth_settings: OAuthSettings,
        app_url: str,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._oauth = oauth_client
        self._cipher = token_cipher
        self._sessions = sessions
        self._users = users
        self._membership = membership
        self._settings = oauth_settings
        self._app_url = app_url.rstrip("/")
        self._clock = clock

    def begin_login(self, redirect_target: Optional[str] = None) -> LoginRedirect:
        state = random_token(16)
        verifier = random_token(32)
        redirect_to = sanitize_next_path(
            redirect_target, default=self._settings.dashboard_path
        )
        authorization_url = self._oauth.build_authorization_url(
            state=state, code_challenge=pkce_challenge(verifier)
        )
        return LoginRedirect(
            authorization_url=authorization_url,
            handshake={
                STATE_COOKIE: state,
                VERIFIER_COOKIE: verifier,
                REDIRECT_COOKIE: redirect_to,
            },
        )

    def _error(self, code: str) -> CallbackOutcome:
        query = urlencode({"error": code})
        return CallbackOutcome(
            location=f"{self._app_url}{self._settings.login_path}?{query}"
        )

    async def complete_login(
        self,
        *,
        code: Optional[str],
        state: Optional[str],
        cookies: Mapping[str, str],
    ) -> CallbackOutcome:
        """Finish the callback; never raises, failures become error redirects."""
        if not code or not state:
            return self._error("missing_code")

        expected_state = cookies.get(STATE_COOKIE)
        verifier = cookies.get(VERIFIER_COOKIE)
        if (
            not expected_state
            or not hmac.compare_digest(expected_state.encode(), state.encode())
            or not verifier
        ):
            logger.warning("Rejected OAuth callback with mismatched state")
            return self._error("invalid_state")

        redirect_to = sanitize_next_path(
            cookies.get(REDIRECT_COOKIE), default=self._settings.dashboard_path
        )
        try:
            return await self._finish(code, verifier, redirect_to)
        except Exception:  # pylint: disable=broad-except
            logger.exception("OAuth callback failed")
            return self._error("callback_failed")

    async def _finish(self, code: str, verifier: str, redirect_to: str) -> CallbackOutcome:
        tokens = await self._oauth.exchange_authorization_code(code, verifier)
        profile = await self._oauth.fetch_profile(tokens.access_token)

        expires_in = tokens.expires_in or 0
        expires_at = self._clock() + timedelta(seconds=expires_in)
        user = await self._users.upsert_user(
            {
                "discord_user_id": profile.id,
                "username": profile.username,
                "email": profile.email,
                "avatar": profile.avatar_url(),
                "encrypted_access_token": self._cipher.encrypt(tokens.access_token),
                "encrypted_refresh_token": (
                    self._cipher.encrypt(tokens.refresh_token)
                    if tokens.refresh_token
                    else None
                ),
                "token_expires_at": expires_at.isoformat(),
                "is_in_guild": False,
                "needs_invite": False,
            }
        )
        if user is None or not user.id:
            raise RuntimeError("User upsert returned no row")

        tenant = await self._users.get_tenant_for_user(profile.id)
        has_selected_guild = bool(tenant and tenant.guilds)

        status = await self._membership.ensure_membership(profile.id, tokens.access_token)
        await self._membership.record(profile.id, status)

        session_max_age = expires_in or self._settings.session_fallback_ttl_seconds
        session_token = await self._sessions.create_session(
            user.id, self._clock() + timedelta(seconds=session_max_age)
        )
        logger.info("Completed Discord login for %s", profile.id)

        next_path = self._next_path(status.needs_invite, has_selected_guild, redirect_to)
        return CallbackOutcome(
            location=f"{self._app_url}{next_path}",
            session_token=session_token,
            session_max_age=session_max_age,
        )

    def _next_path(
        self, needs_invite: bool, has_selected_guild: bool, redirect_to: str
    ) -> str:
        if needs_invite:
            return self._settings.join_path
        if not has_selected_guild:
            return self._settings.onboarding_path
        if redirect_to and redirect_to != SELECT_SERVER_PATH:
            return redirect_to
        return self._settings.dashboard_path


__all__ = [
    "CallbackOutcome",
    "HANDSHAKE_COOKIES",
    "LoginRedirect",
    "OAuthLoginController",
    "REDIRECT_COOKIE",
    "STATE_COOKIE",
    "VERIFIER_COOKIE",
    "pkce_challenge",
]
