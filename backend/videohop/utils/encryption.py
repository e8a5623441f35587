"""Encryption utilities for OAuth tokens at rest"""
import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from videohop.core.config import settings

logger = logging.getLogger(__name__)

_cipher: Optional[Fernet] = None


def get_cipher(key: Optional[str] = None) -> Fernet:
    """Return the Fernet cipher, built lazily so the in-memory store works without a key

    Raises:
        ValueError: If ENCRYPTION_KEY is missing or malformed
    """
    global _cipher
    if key is not None:
        return _build_cipher(key)
    if _cipher is None:
        _cipher = _build_cipher(settings.ENCRYPTION_KEY)
    return _cipher


def _build_cipher(key: str) -> Fernet:
    if not key:
        raise ValueError(
            "ENCRYPTION_KEY environment variable is required when ACCOUNT_STORE=database. "
            "Generate one with: python -c \"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
        )
    try:
        return Fernet(key.encode() if isinstance(key, str) else key)
    except ValueError as e:
        raise ValueError(
            f"Invalid ENCRYPTION_KEY format: {e}. "
            "The key must be 32 bytes, base64-encoded (URL-safe), resulting in 44 characters."
        )


def encrypt(plaintext: str, cipher: Optional[Fernet] = None) -> str:
    """Encrypt a string"""
    if not plaintext:
        return ""
    return (cipher or get_cipher()).encrypt(plaintext.encode()).decode()


def decrypt(ciphertext: str, cipher: Optional[Fernet] = None) -> Optional[str]:
    """Decrypt a string

    Raises:
        ValueError: If decryption fails (invalid token, wrong key, corrupted data)
    """
    if not ciphertext:
        return None
    try:
        return (cipher or get_cipher()).decrypt(ciphertext.encode()).decode()
    except InvalidToken as e:
        logger.error(f"Decryption failed: {type(e).__name__}")
        raise ValueError(f"Decryption failed: {type(e).__name__}")
