"""
FastAPI dependency utilities for injecting configuration-derived values.
"""

from functools import lru_cache

from fastapi import Depends

from gatehouse.api.cookies import CookiePolicy
from gatehouse.core.config import AppSettings, get_settings


@lru_cache()
def _settings_singleton() -> AppSettings:
    """Ensure configuration is created once per process."""
    return get_settings()


def get_app_settings() -> AppSettings:
    """FastAPI dependency returning application settings."""
    return _settings_singleton()


def get_cookie_policy(settings: AppSettings = Depends(get_app_settings)) -> CookiePolicy:
    """Cookie attributes follow the deployment scheme of the front-end."""
    return CookiePolicy(
        secure=settings.cookie_secure,
        handshake_max_age=settings.oauth.handshake_ttl_seconds,
    )


SettingsDependency = Depends(get_app_settings)

__all__ = ["SettingsDependency", "get_app_settings", "get_cookie_policy"]
