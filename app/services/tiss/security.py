"""
TISS Security Service
Encryption at rest for certificates and WebService credentials, and integrity hashes
"""

import logging
import hashlib
from functools import lru_cache
from typing import Optional
from cryptography.fernet import Fernet, InvalidToken

from config import settings

logger = logging.getLogger(__name__)


class TISSSecurityService:
    """Service for TISS security operations"""

    def __init__(self, encryption_key: Optional[str] = None):
        """
        Args:
            encryption_key: Fernet key (urlsafe base64, 32 bytes). Defaults to
                ``TISS_ENCRYPTION_KEY``.
        """
        key = encryption_key or settings.TISS_ENCRYPTION_KEY
        if key:
            try:
                self._fernet = Fernet(key.encode() if isinstance(key, str) else key)
            except (ValueError, TypeError) as e:
                raise ValueError(f"Invalid TISS_ENCRYPTION_KEY: {e}") from e
        else:
            self._fernet = Fernet(Fernet.generate_key())
            logger.warning("TISS_ENCRYPTION_KEY not set, using generated key (not suitable for production)")

    def encrypt_data(self, data: bytes) -> bytes:
        return self._fernet.encrypt(data)

    def decrypt_data(self, encrypted_data: bytes) -> bytes:
        """Raises ``cryptography.fernet.InvalidToken`` for tampered data or a wrong key."""
        return self._fernet.decrypt(encrypted_data)

    def encrypt_text(self, value: str) -> str:
        return self.encrypt_data(value.encode("utf-8")).decode("ascii")

    def decrypt_text(self, token: str) -> str:
        return self.decrypt_data(token.encode("ascii")).decode("utf-8")

    def calculate_integrity_hash(self, data: bytes) -> str:
        """SHA-256 hex digest"""
        return hashlib.sha256(data).hexdigest()

    def verify_integrity(self, data: bytes, expected_hash: str) -> bool:
        return self.calculate_integrity_hash(data) == expected_hash


@lru_cache(maxsize=1)
def get_security_service() -> TISSSecurityService:
    """Process-wide instance, so a generated development key stays stable."""
    return TISSSecurityService()


__all__ = ["TISSSecurityService", "get_security_service", "InvalidToken"]
