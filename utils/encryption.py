"""
Encryption utilities for OAuth tokens and client secrets

This module provides encryption/decryption functionality using AES (Fernet)
for securely storing access tokens, refresh tokens and client secrets.

Stored ciphertext carries a version tag ("enc:v1:") so that values written
before encryption was introduced can be told apart without attempting a
decrypt and catching the failure.
"""
import base64
import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from config.settings import settings

logger = logging.getLogger(__name__)

CIPHERTEXT_PREFIX = "enc:v1:"
MASK = "••••••••"

_KDF_SALT = b"socialhub_token_encryption"
_KDF_ITERATIONS = 100000


class SecretDecryptionError(Exception):
    """Stored value is not valid ciphertext for the configured key."""


def derive_fernet_key(key: str) -> bytes:
    """
    Turn the configured key into a Fernet key.

    A proper Fernet key (32 url-safe base64 encoded bytes) is used as-is;
    any other string is treated as a passphrase and stretched with PBKDF2.
    """
    try:
        Fernet(key.encode())
        return key.encode()
    except ValueError:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=_KDF_SALT,
            iterations=_KDF_ITERATIONS,
        )
        return base64.urlsafe_b64encode(kdf.derive(key.encode()))


class SecretCipher:
    """Versioned Fernet cipher for credential material."""

    def __init__(self, key: str):
        if not key:
            raise ValueError("Encryption key cannot be empty")
        self._fernet = Fernet(derive_fernet_key(key))

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a string value.

        Args:
            plaintext: Plain text string to encrypt

        Returns:
            Tagged ciphertext ("enc:v1:<fernet token>")
        """
        if plaintext is None:
            raise ValueError("Cannot encrypt None")
        token = self._fernet.encrypt(plaintext.encode()).decode()
        return f"{CIPHERTEXT_PREFIX}{token}"

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a tagged ciphertext.

        Raises:
            SecretDecryptionError: value is untagged, malformed or was
                encrypted with a different key
        """
        if not self.is_encrypted(ciphertext):
            raise SecretDecryptionError("Value is not tagged ciphertext")
        token = ciphertext[len(CIPHERTEXT_PREFIX):]
        try:
            return self._fernet.decrypt(token.encode()).decode()
        except (InvalidToken, UnicodeDecodeError) as e:
            raise SecretDecryptionError("Invalid token or encryption key changed") from e

    def reveal(self, value: Optional[str]) -> Optional[str]:
        """
        Return the plaintext for a stored value.

        Untagged values predate encryption and are returned unchanged.
        Tagged values are decrypted strictly.
        """
        if value is None:
            return None
        if not self.is_encrypted(value):
            logger.debug("Stored value is legacy plaintext")
            return value
        return self.decrypt(value)

    @staticmethod
    def is_encrypted(value: Optional[str]) -> bool:
        return isinstance(value, str) and value.startswith(CIPHERTEXT_PREFIX)


def mask_secret(value: Optional[str], show_chars: int = 6) -> str:
    """
    Mask a secret for display.

    Args:
        value: Secret value to mask
        show_chars: Number of leading characters to reveal

    Returns:
        Masked value (e.g., "abc123••••••••")
    """
    if not value:
        return ""

    if len(value) <= show_chars:
        return value[:2] + MASK

    return value[:show_chars] + MASK


# ============================================================================
# Process-wide cipher
# ============================================================================

_cipher: Optional[SecretCipher] = None


def get_cipher() -> SecretCipher:
    """
    Get the process-wide cipher, keyed by ENCRYPTION_KEY.

    Outside production a missing key falls back to an ephemeral key, which
    makes stored values unreadable after a restart.
    """
    global _cipher

    if _cipher is None:
        key = settings.ENCRYPTION_KEY
        if not key:
            if settings.is_production:
                raise RuntimeError("ENCRYPTION_KEY must be set in production")
            logger.warning("ENCRYPTION_KEY not set, using an ephemeral key")
            key = Fernet.generate_key().decode()
        _cipher = SecretCipher(key)

    return _cipher


def validate_encryption_key() -> bool:
    """
    Validate that the encryption key is properly configured.

    Returns:
        True if encryption key is valid, False otherwise
    """
    try:
        cipher = get_cipher()
        test_value = "test_encryption_validation"
        if cipher.decrypt(cipher.encrypt(test_value)) == test_value:
            logger.info("Encryption key validation successful")
            return True
        logger.error("Encryption key validation failed: decryption mismatch")
        return False
    except (RuntimeError, ValueError, SecretDecryptionError) as e:
        logger.error(f"Encryption key validation failed: {str(e)}")
        return False
