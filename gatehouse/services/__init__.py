"""Service layer exports."""

from .bot_directory import BotDirectoryService, BotIdentity, GuildInfo
from .discord_tokens import (
    AccessTokenService,
    MissingRefreshTokenError,
    MissingTokensError,
)
from .foreign_secret import ForeignSecretDecoder
from .guild_membership import GuildMembershipService, InviteStatus, MembershipStatus
from .oauth_flow import CallbackOutcome, LoginRedirect, OAuthLoginController
from .sessions import SessionAuthority, SessionLookup, SessionStatus
from .token_cipher import TokenCipherService
from .users import UserDirectory

__all__ = [
    "AccessTokenService",
    "BotDirectoryService",
    "BotIdentity",
    "CallbackOutcome",
    "ForeignSecretDecoder",
    "GuildInfo",
    "GuildMembershipService",
    "InviteStatus",
    "LoginRedirect",
    "MembershipStatus",
    "MissingRefreshTokenError",
    "MissingTokensError",
    "OAuthLoginController",
    "SessionAuthority",
    "SessionLookup",
    "SessionStatus",
    "TokenCipherService",
    "UserDirectory",
]
