"""Tests for token encryption at rest."""

import pytest
from cryptography.fernet import Fernet

from outreach.core import encryption
from outreach.core.config import settings


@pytest.fixture
def fresh_fernet():
    """Rebuild the Fernet instance from whatever key the test sets."""
    encryption.reset_fernet()
    yield
    encryption.reset_fernet()


def test_encrypt_decrypt():
    encrypted = encryption.encrypt_token("ya29.secret")

    assert encrypted != "ya29.secret"
    assert encryption.decrypt_token(encrypted) == "ya29.secret"


def test_decrypt_with_rotated_key_raises_value_error(monkeypatch, fresh_fernet):
    encrypted = encryption.encrypt_token("ya29.secret")

    monkeypatch.setattr(settings, "FERNET_KEY", Fernet.generate_key().decode())
    encryption.reset_fernet()

    with pytest.raises(ValueError):
        encryption.decrypt_token(encrypted)


def test_missing_key(monkeypatch, fresh_fernet):
    monkeypatch.setattr(settings, "FERNET_KEY", "")

    with pytest.raises(RuntimeError):
        encryption.encrypt_token("ya29.secret")
