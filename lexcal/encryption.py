"""Encryption of OAuth tokens at rest."""

import base64
import os
import secrets
from typing import Optional

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

NONCE_SIZE = 12


class TokenCipher:
    """AES-256-GCM sealing of token strings into base64 text columns."""

    def __init__(self, key: bytes):
        if len(key) < 32:
            raise ValueError("Encryption key must be at least 32 bytes")
        self._aesgcm = AESGCM(key[:32])

    def seal(self, token: str) -> str:
        """Encrypt a token and return base64(nonce + ciphertext)."""
        nonce = os.urandom(NONCE_SIZE)
        ciphertext = self._aesgcm.encrypt(nonce, token.encode("utf-8"), None)
        return base64.b64encode(nonce + ciphertext).decode("ascii")

    def open(self, sealed: str) -> str:
        """Decrypt a value produced by seal()."""
        raw = base64.b64decode(sealed)
        if len(raw) <= NONCE_SIZE:
            raise ValueError("Invalid encrypted token: too short")
        plaintext = self._aesgcm.decrypt(raw[:NONCE_SIZE], raw[NONCE_SIZE:], None)
        return plaintext.decode("utf-8")


def generate_encryption_key() -> bytes:
    """Generate a new 32-byte encryption key."""
    return secrets.token_bytes(32)


_cipher: TokenCipher | None = None


def get_cipher() -> TokenCipher:
    """Get the process-wide cipher, loading the key file on first use."""
    global _cipher
    if _cipher is None:
        from lexcal.config import get_encryption_key
        _cipher = TokenCipher(get_encryption_key())
    return _cipher


def init_cipher(key: bytes) -> TokenCipher:
    """Initialize the process-wide cipher with a specific key."""
    global _cipher
    _cipher = TokenCipher(key)
    return _cipher


def seal_token(token: Optional[str]) -> Optional[str]:
    if token is None:
        return None
    return get_cipher().seal(token)


def open_token(sealed: Optional[str]) -> Optional[str]:
    if sealed is None:
        return None
    return get_cipher().open(sealed)
