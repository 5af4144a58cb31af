try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import base64

import pytest

from gatehouse.core.errors import ConfigurationError, InvalidToken
from gatehouse.services.token_cipher import TokenCipherService, resolve_encryption_key
from gatehouse.utils.encoding import b64url_decode, b64url_encode

HEX_KEY = "0f" * 32


def test_token_cipher_roundtrip() -> None:
    cipher = TokenCipherService(secret=HEX_KEY)
    plaintext = "sensitive-token"

    encrypted = cipher.encrypt(plaintext)
    assert encrypted != plaintext
    assert encrypted.count(".") == 2
    assert "=" not in encrypted

    decrypted = cipher.decrypt(encrypted)
    assert decrypted == plaintext


def test_token_cipher_uses_fresh_nonce_per_encryption() -> None:
    cipher = TokenCipherService(secret=HEX_KEY)

    first = cipher.encrypt("same-value")
    second = cipher.encrypt("same-value")

    assert first != second
    assert first.split(".")[0] != second.split(".")[0]


def test_token_cipher_rejects_bad_ciphertext() -> None:
    cipher = TokenCipherService(secret=HEX_KEY)

    with pytest.raises(ValueError):
        cipher.decrypt("not-valid")


def test_token_cipher_rejects_tampered_ciphertext() -> None:
    cipher = TokenCipherService(secret=HEX_KEY)
    nonce, tag, ciphertext = cipher.encrypt("refresh-token").split(".")
    raw = bytearray(b64url_decode(ciphertext))
    raw[0] ^= 0x01
    tampered = ".".join((nonce, tag, b64url_encode(bytes(raw))))

    with pytest.raises(InvalidToken):
        cipher.decrypt(tampered)


def test_token_cipher_rejects_other_key() -> None:
    token = TokenCipherService(secret=HEX_KEY).encrypt("value")
    other = TokenCipherService(secret="1e" * 32)

    with pytest.raises(InvalidToken):
        other.decrypt(token)


def test_token_cipher_rejects_short_nonce() -> None:
    cipher = TokenCipherService(secret=HEX_KEY)
    _, tag, ciphertext = cipher.encrypt("value").split(".")

    with pytest.raises(InvalidToken):
        cipher.decrypt(".".join((b64url_encode(b"short"), tag, ciphertext)))


def test_resolve_encryption_key_accepts_hex_and_base64() -> None:
    raw = bytes(range(32))

    assert resolve_encryption_key(raw.hex()) == raw
    assert resolve_encryption_key(base64.b64encode(raw).decode()) == raw
    assert resolve_encryption_key(b64url_encode(raw)) == raw


@pytest.mark.parametrize("secret", [None, "", "short", "zz" * 32, b64url_encode(b"x" * 16)])
def test_resolve_encryption_key_rejects_unusable_secrets(secret) -> None:
    with pytest.raises(ConfigurationError):
        resolve_encryption_key(secret)
