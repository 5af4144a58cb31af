"""
Opaque session tokens backed by HMAC digests.

The raw token only ever travels in the session cookie; the datastore holds
``HMAC-SHA256(session_secret, raw_token)`` so a leaked table cannot be
replayed as cookies.
"""

from __future__ import annotations

import enum
import hashlib
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from gatehouse.clients.datastore import DatastoreClient
from gatehouse.core.errors import ConfigurationError
from gatehouse.models.records import SessionRecord
from gatehouse.utils.encoding import random_token

logger = logging.getLogger(__name__)


class SessionStatus(str, enum.Enum):
    ACTIVE = "active"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"


@dataclass(frozen=True)
class SessionLookup:
    """Outcome of validating a raw session token."""

    status: SessionStatus
    session: Optional[SessionRecord] = None

    @property
    def active(self) -> bool:
        return self.status is SessionStatus.ACTIVE


class SessionAuthority:
    """Issue, validate and revoke opaque session tokens."""

    TABLE = "auth_sessions"
    TOKEN_BYTES = 32

    def __init__(
        self,
        datastore: DatastoreClient,
        *,
        secret: str | None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._store = datastore
        self._secret = secret.encode("utf-8") if secret else None
        self._clock = clock

    def digest(self, raw_token: str) -> str:
        if not self._secret:
            raise ConfigurationError("SESSION_SECRET is not configured.")
        return hmac.new(self._secret, raw_token.encode("utf-8"), hashlib.sha256).hexdigest()

    async def create_session(self, user_id: str, expires_at: datetime) -> str:
        """Persist a new session and return the raw token for the cookie."""
        raw_token = random_token(self.TOKEN_BYTES)
        await self._store.insert(
            self.TABLE,
            {
                "user_id": user_id,
                "token_hash": self.digest(raw_token),
                "expires_at": expires_at.isoformat(),
            },
        )
        logger.info("Issued session for user %s", user_id)
        return raw_token

    async def validate_session(self, raw_token: str) -> SessionLookup:
        if not raw_token:
            return SessionLookup(SessionStatus.NOT_FOUND)
        token_hash = self.digest(raw_token)
        row = await self._store.select_one(self.TABLE, {"token_hash": token_hash})
        if not row:
            return SessionLookup(SessionStatus.NOT_FOUND)

        session = SessionRecord.model_validate(row)
        expires_at = session.expires_at
        if expires_at is not None:
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=timezone.utc)
            if expires_at < self._clock():
                await self._store.delete(self.TABLE, {"token_hash": token_hash})
                logger.info("Removed expired session for user %s", session.user_id)
                return SessionLookup(SessionStatus.EXPIRED)
        return SessionLookup(SessionStatus.ACTIVE, session)

    async def delete_session(self, raw_token: str) -> None:
        """Remove the session for ``raw_token``; a no-op when already gone."""
        await self._store.delete(self.TABLE, {"token_hash": self.digest(raw_token)})


__all__ = ["SessionAuthority", "SessionLookup", "SessionStatus"]
