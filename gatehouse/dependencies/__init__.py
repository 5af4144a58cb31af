"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_access_token_service,
    get_bot_directory_service,
    get_datastore_client,
    get_discord_bot_client,
    get_discord_oauth_client,
    get_foreign_secret_decoder,
    get_guild_membership_service,
    get_oauth_login_controller,
    get_provisioner_client,
    get_session_authority,
    get_token_cipher_service,
    get_user_directory,
)
from .config import SettingsDependency, get_app_settings, get_cookie_policy

__all__ = [
    "SettingsDependency",
    "get_access_token_service",
    "get_app_settings",
    "get_cookie_policy",
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
