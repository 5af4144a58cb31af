"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache

from gatehouse.clients import (
    DatastoreClient,
    DiscordBotClient,
    DiscordOAuthClient,
    ProvisionerClient,
)
from gatehouse.core.config import get_settings
from gatehouse.services import (
    AccessTokenService,
    BotDirectoryService,
    ForeignSecretDecoder,
    GuildMembershipService,
    OAuthLoginController,
    SessionAuthority,
    TokenCipherService,
    UserDirectory,
)
from gatehouse.utils.cache import SingleflightCache


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_datastore_client() -> DatastoreClient:
    """Provide the shared PostgREST datastore client."""
    settings = _settings()
    return DatastoreClient(settings.datastore, timeout=settings.http_timeout_seconds)


@lru_cache()
def get_discord_oauth_client() -> DiscordOAuthClient:
    """Create a singleton Discord OAuth client."""
    settings = _settings()
    return DiscordOAuthClient(
        settings.discord, settings.oauth, timeout=settings.http_timeout_seconds
    )


@lru_cache()
def get_discord_bot_client() -> DiscordBotClient:
    settings = _settings()
    return DiscordBotClient(settings.discord, timeout=settings.http_timeout_seconds)


@lru_cache()
def get_provisioner_client() -> ProvisionerClient:
    settings = _settings()
    return ProvisionerClient(settings.provisioner, timeout=settings.http_timeout_seconds)


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide authenticated encryption for stored provider tokens."""
    settings = _settings()
    return TokenCipherService(secret=settings.security.token_encryption_key)


@lru_cache()
def get_foreign_secret_decoder() -> ForeignSecretDecoder:
    """Provide the decoder for provisioner-encrypted bot credentials."""
    security = _settings().security
    return ForeignSecretDecoder(
        key=security.bot_token_encryption_key or security.token_encryption_key
    )


@lru_cache()
def get_user_directory() -> UserDirectory:
    return UserDirectory(get_datastore_client())


@lru_cache()
def get_session_authority() -> SessionAuthority:
    """Provide the opaque session token authority."""
    settings = _settings()
    return SessionAuthority(
        get_datastore_client(), secret=settings.security.session_secret
    )


@lru_cache()
def get_access_token_service() -> AccessTokenService:
    """Provide helper for handing out valid Discord access tokens."""
    return AccessTokenService(
        users=get_user_directory(),
        oauth_client=get_discord_oauth_client(),
        token_cipher=get_token_cipher_service(),
    )


@lru_cache()
def get_guild_membership_service() -> GuildMembershipService:
    settings = _settings()
    return GuildMembershipService(
        get_discord_bot_client(),
        get_user_directory(),
        fallback_invite_url=settings.discord.invite_url,
    )


@lru_cache()
def get_oauth_login_controller() -> OAuthLoginController:
    """Provide the PKCE login/callback controller."""
    settings = _settings()
    return OAuthLoginController(
        oauth_client=get_discord_oauth_client(),
        token_cipher=get_token_cipher_service(),
        sessions=get_session_authority(),
        users=get_user_directory(),
        membership=get_guild_membership_service(),
        oauth_settings=settings.oauth,
        app_url=settings.app_url,
    )


@lru_cache()
def get_bot_directory_service() -> BotDirectoryService:
    """Provide bot identity / guild lookups with their process-local caches."""
    settings = _settings()
    return BotDirectoryService(
        provisioner=get_provisioner_client(),
        datastore=get_datastore_client(),
        bot_client=get_discord_bot_client(),
        secret_decoder=get_foreign_secret_decoder(),
        identity_cache=SingleflightCache(
            ttl_seconds=settings.cache.bot_identity_ttl_seconds, name="bot-identity"
        ),
        provisioner_cache=SingleflightCache(
            ttl_seconds=settings.cache.provisioner_ttl_seconds, name="provisioner"
        ),
    )


__all__ = [
    "get_access_token_service",
    "get_bot_directory_service",
    "get_datastore_client",
    "get_discord_bot_client",
    "get_discord_oauth_client",
    "get_foreign_secret_decoder",
    "get_guild_membership_service",
    "get_oauth_login_controller",
    "get_provisioner_client",
    "get_session_authority",
    "get_token_cipher_service",
    "get_user_directory",
]
