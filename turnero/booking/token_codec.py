"""
Confirmation token codec: AES-256-CBC with a SHA-256 derived key.

Wire format, kept bit-exact so links issued before a redeploy still work:

    hex(iv) ":" hex(ciphertext)

``iv`` is 16 random bytes generated per token. ``ciphertext`` is the
PKCS7-padded plaintext encrypted with ``SHA-256(secret)`` as the key.

There is no authentication tag. Structural damage and bad padding are
rejected here; a bit flip that still decrypts to valid padding is only
caught later when the payload fails to parse as a booking.
"""

import hashlib
import os
import re
import secrets

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from turnero.errors import InvalidToken

IV_LENGTH = 16
KEY_LENGTH = 32
BLOCK_BITS = algorithms.AES.block_size
DELIMITER = ":"

_HEX_PART = re.compile(r"[0-9a-fA-F]+")


def derive_key(secret: str) -> bytes:
    """Derive the 32-byte AES key from an operator secret of any length."""
    return hashlib.sha256(secret.encode("utf-8")).digest()


def generate_secret() -> str:
    """Return a fresh 256-bit secret as 64 hex characters."""
    return secrets.token_hex(KEY_LENGTH)


def encode(plaintext: bytes, key: bytes) -> str:
    """Encrypt ``plaintext`` into a URL-embeddable token."""
    if len(key) != KEY_LENGTH:
        raise ValueError(f"key must be {KEY_LENGTH} bytes, got {len(key)}")
    iv = os.urandom(IV_LENGTH)
    padder = padding.PKCS7(BLOCK_BITS).padder()
    padded = padder.update(plaintext) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()
    return iv.hex() + DELIMITER + ciphertext.hex()


def decode(token: str, key: bytes) -> bytes:
    """Decrypt a token produced by :func:`encode`.

    Raises:
        InvalidToken: On a wrong number of parts, bad hex, wrong IV or
            ciphertext length, or bad padding.
    """
    parts = token.split(DELIMITER)
    if len(parts) != 2:
        raise InvalidToken(f"expected 2 token parts, got {len(parts)}")
    iv_hex, ciphertext_hex = parts
    if not (_HEX_PART.fullmatch(iv_hex) and _HEX_PART.fullmatch(ciphertext_hex)):
        raise InvalidToken("token parts must be non-empty hex strings")
    try:
        iv = bytes.fromhex(iv_hex)
        ciphertext = bytes.fromhex(ciphertext_hex)
    except ValueError as exc:
        raise InvalidToken("token is not valid hex") from exc
    if len(iv) != IV_LENGTH:
        raise InvalidToken(f"IV must be {IV_LENGTH} bytes, got {len(iv)}")
    if not ciphertext or len(ciphertext) % IV_LENGTH:
        raise InvalidToken(f"ciphertext length {len(ciphertext)} is not block aligned")

    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()
    unpadder = padding.PKCS7(BLOCK_BITS).unpadder()
    try:
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as exc:
        raise InvalidToken("token padding check failed") from exc


class TokenCodec:
    """Holds the derived key so callers never handle raw key bytes."""

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("token secret must not be empty")
        self._key = derive_key(secret)

    def encode(self, plaintext: bytes) -> str:
        return encode(plaintext, self._key)

    def decode(self, token: str) -> bytes:
        return decode(token, self._key)
