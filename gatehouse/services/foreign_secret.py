"""
Read-only decoder for bot credentials stored by the provisioner.

The provisioner encrypts bot tokens as Fernet tokens::

    0x80 | timestamp (8) | IV (16) | AES-128-CBC ciphertext | HMAC-SHA256 (32)

Older rows hold the bot token in plaintext, so decoding never raises: any
failure yields ``None`` and callers fall back to the stored value.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from gatehouse.utils.encoding import b64url_decode

logger = logging.getLogger(__name__)

FERNET_VERSION = 0x80
# version + timestamp + IV + HMAC, with an empty ciphertext span.
MIN_TOKEN_LENGTH = 1 + 8 + 16 + 32


def _load_fernet(key: str | None) -> Optional[Fernet]:
    if not key:
        return None
    try:
        raw = b64url_decode(key)
    except (binascii.Error, ValueError):
        return None
    if len(raw) != 32:
        return None
    return Fernet(base64.urlsafe_b64encode(raw))


class ForeignSecretDecoder:
    """Decode Fernet-encrypted bot credentials without ever raising."""

    def __init__(self, *, key: str | None) -> None:
        self._fernet = _load_fernet(key)
        if self._fernet is None:
            logger.warning(
                "Bot token encryption key missing or invalid; "
                "stored bot credentials will be treated as plaintext."
            )

    def decode(self, token: str | None) -> Optional[str]:
        """Return the decrypted text, or ``None`` when the token does not verify."""
        if not token or self._fernet is None:
            return None
        try:
            data = b64url_decode(token)
        except (binascii.Error, ValueError):
            return None
        if len(data) < MIN_TOKEN_LENGTH or data[0] != FERNET_VERSION:
            return None
        # Fernet recomputes the HMAC over everything before the trailing tag
        # and compares it in constant time before touching the ciphertext.
        normalized = base64.urlsafe_b64encode(data)
        try:
            plaintext = self._fernet.decrypt(normalized)
        except InvalidToken:
            return None
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError:
            return None

    def resolve(self, stored: str | None) -> Optional[str]:
        """Decode ``stored`` when possible, otherwise treat it as plaintext."""
        return self.decode(stored) or stored or None


__all__ = ["FERNET_VERSION", "MIN_TOKEN_LENGTH", "ForeignSecretDecoder"]
