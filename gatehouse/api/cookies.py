"""Cookie attributes for the OAuth handshake and the session cookie."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable

from fastapi import Response

SESSION_COOKIE = "session"


@dataclass(frozen=True)
class CookiePolicy:
    """HttpOnly, SameSite=Lax cookies; Secure only for HTTPS deployments."""

    secure: bool
    handshake_max_age: int = 600

    def _base(self, key: str, value: str, max_age: int) -> Dict[str, Any]:
        return {
            "key": key,
            "value": value,
            "max_age": max_age,
            "httponly": True,
            "secure": self.secure,
            "samesite": "lax",
            "path": "/",
        }

    def set_handshake(self, response: Response, values: Dict[str, str]) -> None:
        for key, value in values.items():
            response.set_cookie(**self._base(key, value, self.handshake_max_age))

    def set_session(self, response: Response, token: str, max_age: int) -> None:
        response.set_cookie(**self._base(SESSION_COOKIE, token, max_age))

    def clear(self, response: Response, keys: Iterable[str]) -> None:
        for key in keys:
            response.set_cookie(**self._base(key, "", 0))


__all__ = ["CookiePolicy", "SESSION_COOKIE"]
