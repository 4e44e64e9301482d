"""Encryption utilities for OAuth tokens at rest."""

from cryptography.fernet import Fernet, InvalidToken

from outreach.core.config import settings


_fernet: Fernet | None = None


def get_fernet() -> Fernet:
    """Get or create Fernet instance for encryption/decryption."""
    global _fernet
    if _fernet is None:
        if not settings.FERNET_KEY:
            raise RuntimeError(
                "FERNET_KEY not configured. "
                'Generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"'
            )
        _fernet = Fernet(settings.FERNET_KEY.encode())
    return _fernet


def reset_fernet() -> None:
    """Drop the cached Fernet instance (after FERNET_KEY changes)."""
    global _fernet
    _fernet = None


def encrypt_token(token: str) -> str:
    """Encrypt a token for storage."""
    if not token:
        return ""
    return get_fernet().encrypt(token.encode()).decode()


def decrypt_token(encrypted: str) -> str:
    """Decrypt a stored token."""
    if not encrypted:
        return ""
    try:
        return get_fernet().decrypt(encrypted.encode()).decode()
    except InvalidToken:
        raise ValueError("Invalid or corrupted encrypted token")
