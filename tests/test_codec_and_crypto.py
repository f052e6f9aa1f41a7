"""
ExcelVC Agent - Payload Codec and Crypto Envelope Tests
========================================================

Invariants tested:
1. decompress(compress(x)) == x
2. open(seal(x)) == x with a fresh nonce per call
3. Tampered, truncated or foreign-key ciphertext fails, never returns garbage
4. Missing or wrong-length keys fail fast
"""

import os
from unittest.mock import MagicMock, patch

import pytest

from excelvc_agent.codec import ContentCodec, CorruptPayloadError, PayloadIntegrityError
from excelvc_agent.crypto import (
    NONCE_SIZE,
    CryptoEnvelope,
    DecryptionError,
    KeyConfigurationError,
)

TEST_KEY = b"0123456789abcdef0123456789abcdef"

SAMPLES = [
    b"",
    b"A",
    b"PK\x03\x04" + bytes(range(256)) * 40,
    os.urandom(4096),
]


# ============================================================================
# CODEC
# ============================================================================

class TestContentCodec:

    @pytest.mark.parametrize("data", SAMPLES)
    def test_round_trip(self, data):
        codec = ContentCodec()
        assert codec.decompress(codec.compress(data)) == data

    def test_compresses_repetitive_content(self):
        codec = ContentCodec(compression_level=9)
        data = b"row,value\n" * 10000
        assert len(codec.compress(data)) < len(data) // 10

    def test_corrupt_input_raises(self):
        codec = ContentCodec()
        with pytest.raises(CorruptPayloadError):
            codec.decompress(b"definitely not gzip")

    def test_truncated_input_raises(self):
        codec = ContentCodec()
        compressed = codec.compress(b"some spreadsheet bytes" * 100)
        with pytest.raises(CorruptPayloadError):
            codec.decompress(compressed[:-10])

    def test_corruption_is_an_integrity_error(self):
        assert issubclass(CorruptPayloadError, PayloadIntegrityError)
        assert issubclass(DecryptionError, PayloadIntegrityError)


# ============================================================================
# CRYPTO ENVELOPE
# ============================================================================

class TestCryptoEnvelope:

    @pytest.mark.parametrize("data", SAMPLES)
    def test_round_trip(self, envelope, data):
        assert envelope.open(envelope.seal(data)) == data

    def test_nonce_is_prefixed_and_fresh(self, envelope):
        first = envelope.seal(b"same content")
        second = envelope.seal(b"same content")

        assert first[:NONCE_SIZE] != second[:NONCE_SIZE]
        assert first != second
        # nonce + plaintext + 16-byte tag
        assert len(first) == NONCE_SIZE + len(b"same content") + 16

    def test_flipped_bit_fails(self, envelope):
        sealed = bytearray(envelope.seal(b"quarterly numbers"))
        sealed[NONCE_SIZE + 3] ^= 0x01

        with pytest.raises(DecryptionError):
            envelope.open(bytes(sealed))

    def test_flipped_nonce_bit_fails(self, envelope):
        sealed = bytearray(envelope.seal(b"quarterly numbers"))
        sealed[0] ^= 0x80

        with pytest.raises(DecryptionError):
            envelope.open(bytes(sealed))

    def test_input_shorter_than_nonce_fails(self, envelope):
        with pytest.raises(DecryptionError, match="shorter than the nonce"):
            envelope.open(b"\x00" * (NONCE_SIZE - 1))

    def test_nonce_only_input_fails(self, envelope):
        with pytest.raises(DecryptionError):
            envelope.open(b"\x00" * NONCE_SIZE)

    def test_other_key_cannot_open(self, envelope):
        other = CryptoEnvelope(b"fedcba9876543210fedcba9876543210")
        with pytest.raises(DecryptionError):
            other.open(envelope.seal(b"secret"))

    @pytest.mark.parametrize("size", [16, 24, 32])
    def test_accepts_aes_key_sizes(self, size):
        envelope = CryptoEnvelope(b"k" * size)
        assert envelope.open(envelope.seal(b"x")) == b"x"

    @pytest.mark.parametrize("size", [0, 15, 17, 31, 33, 64])
    def test_rejects_wrong_key_length(self, size):
        with pytest.raises(KeyConfigurationError):
            CryptoEnvelope(b"k" * size)


class TestKeyFromEnvironment:

    def test_reads_key_from_env(self, monkeypatch):
        monkeypatch.setenv("EXCELVC_KEY", TEST_KEY.decode())
        envelope = CryptoEnvelope.from_environment("EXCELVC_KEY")
        reference = CryptoEnvelope(TEST_KEY)

        assert reference.open(envelope.seal(b"data")) == b"data"

    def test_custom_variable_name(self, monkeypatch):
        monkeypatch.setenv("MY_SHEET_KEY", "a" * 16)
        envelope = CryptoEnvelope.from_environment("MY_SHEET_KEY")
        assert envelope.open(envelope.seal(b"data")) == b"data"

    def test_missing_key_is_fatal(self, monkeypatch):
        monkeypatch.delenv("EXCELVC_KEY", raising=False)
        with pytest.raises(KeyConfigurationError, match="not configured"):
            CryptoEnvelope.from_environment("EXCELVC_KEY")

    def test_wrong_length_is_fatal(self, monkeypatch):
        monkeypatch.setenv("EXCELVC_KEY", "too-short")
        with pytest.raises(KeyConfigurationError, match="16, 24 or 32"):
            CryptoEnvelope.from_environment("EXCELVC_KEY")

    def test_falls_back_to_keychain(self, monkeypatch):
        monkeypatch.delenv("EXCELVC_KEY", raising=False)
        keychain = MagicMock()
        keychain.get_encryption_key.return_value = TEST_KEY.decode()

        envelope = CryptoEnvelope.from_environment("EXCELVC_KEY", keychain=keychain)

        keychain.get_encryption_key.assert_called_once()
        assert CryptoEnvelope(TEST_KEY).open(envelope.seal(b"data")) == b"data"

    def test_environment_wins_over_keychain(self, monkeypatch):
        monkeypatch.setenv("EXCELVC_KEY", TEST_KEY.decode())
        keychain = MagicMock()

        CryptoEnvelope.from_environment("EXCELVC_KEY", keychain=keychain)

        keychain.get_encryption_key.assert_not_called()

    def test_empty_keychain_is_fatal(self, monkeypatch):
        monkeypatch.delenv("EXCELVC_KEY", raising=False)
        keychain = MagicMock()
        keychain.get_encryption_key.return_value = None

        with pytest.raises(KeyConfigurationError):
            CryptoEnvelope.from_environment("EXCELVC_KEY", keychain=keychain)


class TestKeychainManager:

    def test_unavailable_keychain_returns_none(self):
        import keyring.errors
        from excelvc_agent.keychain import KeychainManager

        with patch('excelvc_agent.keychain.keyring.get_password',
                   side_effect=keyring.errors.NoKeyringError("no backend")):
            assert KeychainManager().get_encryption_key() is None

    def test_store_uses_service_name(self):
        from excelvc_agent.keychain import KeychainManager

        with patch('excelvc_agent.keychain.keyring.set_password') as set_password:
            KeychainManager().store_encryption_key("k" * 32)

        set_password.assert_called_once_with("ExcelVC Agent", "encryption_key", "k" * 32)
