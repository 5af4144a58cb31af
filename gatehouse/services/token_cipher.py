"""Authenticated encryption utilities for protecting stored provider tokens."""

from __future__ import annotations

import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from gatehouse.core.errors import ConfigurationError, InvalidToken
from gatehouse.utils.encoding import b64url_decode, b64url_encode

_NONCE_SIZE = 12
_TAG_SIZE = 16


def resolve_encryption_key(secret: str | None) -> bytes:
    """Resolve a 256-bit key from 64 hex characters or base64 text."""
    if not secret:
        raise ConfigurationError("TOKEN_ENCRYPTION_KEY is not configured.")
    value = secret.strip()
    if len(value) == 64:
        try:
            return bytes.fromhex(value)
        except ValueError as exc:
            raise ConfigurationError(
                "TOKEN_ENCRYPTION_KEY is 64 characters but not valid hex."
            ) from exc
    try:
        decoded = b64url_decode(value)
    except (binascii.Error, ValueError) as exc:
        raise ConfigurationError("TOKEN_ENCRYPTION_KEY is not valid base64.") from exc
    if len(decoded) != 32:
        raise ConfigurationError("TOKEN_ENCRYPTION_KEY must decode to 32 bytes.")
    return decoded


class TokenCipherService:
    """Encrypt and decrypt sensitive strings with AES-256-GCM.

    Tokens are rendered as ``nonce.tag.ciphertext`` with each segment encoded
    as unpadded URL-safe base64.
    """

    def __init__(self, *, secret: str | None) -> None:
        self._aead = AESGCM(resolve_encryption_key(secret))

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a plaintext string and return the token."""
        nonce = os.urandom(_NONCE_SIZE)
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-_TAG_SIZE], sealed[-_TAG_SIZE:]
        return ".".join(
            (b64url_encode(nonce), b64url_encode(tag), b64url_encode(ciphertext))
        )

    def decrypt(self, token: str) -> str:
        """Decrypt a token and return the plaintext, rejecting any tampering."""
        parts = str(token or "").split(".")
        if len(parts) != 3:
            raise InvalidToken("Encrypted secret must have exactly three segments.")
        try:
            nonce, tag, ciphertext = (b64url_decode(part) for part in parts)
        except (binascii.Error, ValueError) as exc:
            raise InvalidToken("Encrypted secret is not valid base64.") from exc
        if len(nonce) != _NONCE_SIZE or len(tag) != _TAG_SIZE:
            raise InvalidToken("Encrypted secret has an invalid nonce or tag.")
        try:
            plaintext = self._aead.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as exc:
            raise InvalidToken("Failed to authenticate encrypted secret.") from exc
        return plaintext.decode("utf-8")


__all__ = ["TokenCipherService", "resolve_encryption_key"]
