"""Tests for token encryption at rest."""

import pytest
from cryptography.exceptions import InvalidTag

from lexcal.encryption import TokenCipher, generate_encryption_key, open_token, seal_token


def test_seal_and_open():
    cipher = TokenCipher(generate_encryption_key())
    sealed = cipher.seal("ya29.access-token")

    assert sealed != "ya29.access-token"
    assert cipher.open(sealed) == "ya29.access-token"


def test_seal_uses_fresh_nonce():
    cipher = TokenCipher(generate_encryption_key())
    assert cipher.seal("same") != cipher.seal("same")


def test_short_key_rejected():
    with pytest.raises(ValueError):
        TokenCipher(b"too-short")


def test_other_key_cannot_open():
    sealed = TokenCipher(generate_encryption_key()).seal("secret")
    with pytest.raises(InvalidTag):
        TokenCipher(generate_encryption_key()).open(sealed)


def test_none_passes_through_module_helpers():
    assert seal_token(None) is None
    assert open_token(None) is None
    assert open_token(seal_token("refresh")) == "refresh"
