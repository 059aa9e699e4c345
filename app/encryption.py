"""
Encryption for vendor OAuth tokens stored in connection tables
"""

import base64
import hashlib
import logging

from cryptography.fernet import Fernet, InvalidToken

from .config import POS_ENCRYPTION_KEY, SECRET_KEY

logger = logging.getLogger(__name__)


def _build_cipher() -> Fernet:
    if POS_ENCRYPTION_KEY:
        return Fernet(POS_ENCRYPTION_KEY.encode())
    # Derive a stable key from SECRET_KEY for development
    logger.warning("⚠️ POS_ENCRYPTION_KEY not set, deriving token key from SECRET_KEY")
    digest = hashlib.sha256(SECRET_KEY.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


cipher_suite = _build_cipher()


def encrypt_token(token: str) -> str:
    """Encrypt a token for storage"""
    return cipher_suite.encrypt(token.encode()).decode()


def decrypt_token(encrypted_token: str) -> str:
    """Decrypt a stored token"""
    try:
        return cipher_suite.decrypt(encrypted_token.encode()).decode()
    except InvalidToken as e:
        logger.error("❌ Failed to decrypt stored token (key rotated?)")
        raise ValueError("Stored token could not be decrypted") from e
