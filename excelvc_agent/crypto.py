"""
Authenticated encryption of version payloads.

Every sealed payload is laid out as ``nonce || ciphertext || tag`` using
AES-GCM with a fresh random 12-byte nonce per call. The key is a fixed
process-wide secret taken from the environment (or, failing that, the OS
keychain); the agent never generates or rotates it.
"""

import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .codec import PayloadIntegrityError
from .keychain import KeychainManager
from .logger import get_logger

logger = get_logger(__name__)

NONCE_SIZE = 12
VALID_KEY_SIZES = (16, 24, 32)


class KeyConfigurationError(Exception):
    """The encryption key is missing or has an invalid length."""


class DecryptionError(PayloadIntegrityError):
    """A payload failed authentication or is too short to hold a nonce."""


class CryptoEnvelope:
    """Seals and opens payloads with AES-GCM."""

    def __init__(self, key: bytes):
        """Initialize envelope.

        Args:
            key: Raw AES key, 16, 24 or 32 bytes

        Raises:
            KeyConfigurationError: If the key length is not a valid AES size
        """
        if len(key) not in VALID_KEY_SIZES:
            raise KeyConfigurationError(
                f"Encryption key must be 16, 24 or 32 bytes, got {len(key)}"
            )
        self._aead = AESGCM(key)

    @classmethod
    def from_environment(
        cls,
        env_var: str = "EXCELVC_KEY",
        keychain: Optional[KeychainManager] = None
    ) -> "CryptoEnvelope":
        """Build an envelope from the process environment.

        The key is the raw UTF-8 bytes of ``env_var``. When the variable is
        unset and a keychain is given, the key stored there is used instead.

        Raises:
            KeyConfigurationError: If no key is available or its length is wrong
        """
        value = os.environ.get(env_var)
        source = env_var

        if not value and keychain is not None:
            value = keychain.get_encryption_key()
            source = "keychain"

        if not value:
            raise KeyConfigurationError(
                f"Encryption key not configured: set {env_var} or run setup"
            )

        logger.info(f"Loaded encryption key from {source}")
        return cls(value.encode('utf-8'))

    def seal(self, plaintext: bytes) -> bytes:
        nonce = os.urandom(NONCE_SIZE)
        return nonce + self._aead.encrypt(nonce, plaintext, None)

    def open(self, ciphertext: bytes) -> bytes:
        """Decrypt a sealed payload.

        Raises:
            DecryptionError: If the payload is shorter than a nonce or the
                authentication tag does not verify
        """
        if len(ciphertext) < NONCE_SIZE:
            raise DecryptionError(
                f"Payload of {len(ciphertext)} bytes is shorter than the nonce"
            )

        nonce, body = ciphertext[:NONCE_SIZE], ciphertext[NONCE_SIZE:]
        try:
            return self._aead.decrypt(nonce, body, None)
        except InvalidTag as e:
            raise DecryptionError("Payload failed authentication") from e
