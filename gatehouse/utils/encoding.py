"""Base64url and random token helpers shared by the cipher and auth flows."""

from __future__ import annotations

import base64
import os


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def b64url_decode(value: str) -> bytes:
    """Decode URL-safe base64, tolerating stripped padding and standard alphabet."""
    normalized = value.strip().replace("+", "-").replace("/", "_")
    padded = normalized + "=" * (-len(normalized) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def random_token(nbytes: int = 32) -> str:
    return b64url_encode(os.urandom(nbytes))


def sanitize_next_path(next_path: str | None, default: str = "/") -> str:
    """
    Prevent open-redirects: allow only relative paths like `/dashboard`.
    """
    p = (next_path or "").strip()
    if not p:
        return default
    if not p.startswith("/"):
        return default
    # Disallow scheme-relative: `//evil.com`
    if p.startswith("//") or p.startswith("/\\"):
        return default
    p = p.replace("\r", "").replace("\n", "")
    return p or default


__all__ = ["b64url_decode", "b64url_encode", "random_token", "sanitize_next_path"]
