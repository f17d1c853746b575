"""
Credential encryption: encrypt / decrypt stored values at rest.

Uses Fernet (AES-128-CBC + HMAC-SHA256) from the ``cryptography`` library.
The key is loaded from ``config.token_encryption_key``
(env var: ``TOKEN_ENCRYPTION_KEY``).

If no key is configured, encryption is **disabled** and values are stored
as plaintext (with a startup warning).  Generate a key with::

    python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
"""

from __future__ import annotations

import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from config.settings import Settings

logger = logging.getLogger(__name__)


class TokenCipher:
    """Fernet wrapper; a cipher built without a key passes values through."""

    def __init__(self, key: Optional[str | bytes] = None):
        self._fernet: Optional[Fernet] = None
        if key:
            self._fernet = Fernet(key.encode() if isinstance(key, str) else key)

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenCipher":
        key = settings.token_encryption_key
        if not key:
            logger.warning(
                "TOKEN_ENCRYPTION_KEY not set: wearable credentials will be stored as plaintext. "
                "Generate a key: python -c \"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
            )
            return cls(None)

        cipher = cls(key)
        logger.info("Credential encryption enabled (Fernet/AES-128-CBC)")
        return cipher

    @property
    def enabled(self) -> bool:
        return self._fernet is not None

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a value for storage.

        Returns the Fernet ciphertext (URL-safe base64), or the plaintext
        unchanged when encryption is disabled.
        """
        if self._fernet is None:
            return plaintext
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a stored value.

        Raises ``cryptography.fernet.InvalidToken`` if the value was not
        produced with this key; callers translate that into a storage error.
        """
        if self._fernet is None:
            return ciphertext
        return self._fernet.decrypt(ciphertext.encode()).decode()


__all__ = ["TokenCipher", "InvalidToken"]
