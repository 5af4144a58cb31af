"""Exception hierarchy shared by the session, secret and client layers."""

from __future__ import annotations

from typing import Optional


class GatehouseError(Exception):
    """Base class for errors raised by the gatehouse services."""


class ConfigurationError(GatehouseError):
    """Raised when a required secret or integration setting is missing or invalid."""


class CryptographicError(GatehouseError):
    """Raised when authenticated decryption or signature verification fails."""


class InvalidToken(CryptographicError, ValueError):
    """Raised when an encrypted secret is malformed or fails authentication."""


class UpstreamError(GatehouseError):
    """Raised when an upstream HTTP service answers with a non-2xx status."""

    def __init__(
        self, service: str, status_code: int, body: Optional[str] = None
    ) -> None:
        message = f"{service} error {status_code}"
        if body:
            message = f"{message}: {body}"
        super().__init__(message)
        self.service = service
        self.status_code = status_code
        self.body = body or ""


__all__ = [
    "ConfigurationError",
    "CryptographicError",
    "GatehouseError",
    "InvalidToken",
    "UpstreamError",
]
