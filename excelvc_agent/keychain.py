"""
OS keychain integration for the version encryption key.
Uses the keyring library with the platform's native backend.
"""

import keyring
import keyring.errors
from typing import Optional
from .logger import get_logger

logger = get_logger(__name__)


class KeychainManager:
    """Stores the encryption key in the OS keychain."""

    SERVICE_NAME = "ExcelVC Agent"
    ENCRYPTION_KEY = "encryption_key"

    def store_encryption_key(self, key: str) -> None:
        try:
            keyring.set_password(self.SERVICE_NAME, self.ENCRYPTION_KEY, key)
            logger.info("Encryption key stored in keychain")
        except Exception as e:
            logger.error(f"Failed to store encryption key: {e}")
            raise

    def get_encryption_key(self) -> Optional[str]:
        """Retrieve the encryption key.

        Returns:
            Key or None if not stored or the keychain is unavailable
        """
        try:
            value = keyring.get_password(self.SERVICE_NAME, self.ENCRYPTION_KEY)
        except keyring.errors.KeyringError as e:
            logger.warning(f"Keychain unavailable: {e}")
            return None

        if value:
            logger.debug("Retrieved encryption key from keychain")
        return value
