"""
Lossless gzip compression of version payloads.
"""

import gzip
import zlib

from .logger import get_logger

logger = get_logger(__name__)


class PayloadIntegrityError(Exception):
    """A stored payload could not be turned back into file content."""


class CorruptPayloadError(PayloadIntegrityError):
    """Decompression failed on a corrupt or truncated payload."""


class ContentCodec:
    """Compresses file content before encryption and reverses it on restore."""

    def __init__(self, compression_level: int = 6):
        """Initialize codec.

        Args:
            compression_level: gzip level, 1 (fastest) to 9 (smallest)
        """
        self.compression_level = compression_level

    def compress(self, data: bytes) -> bytes:
        compressed = gzip.compress(data, compresslevel=self.compression_level)
        logger.debug(f"Compressed {len(data)} -> {len(compressed)} bytes")
        return compressed

    def decompress(self, data: bytes) -> bytes:
        """Decompress a payload produced by :meth:`compress`.

        Raises:
            CorruptPayloadError: If the payload is not valid gzip data
        """
        try:
            return gzip.decompress(data)
        except (OSError, EOFError, zlib.error) as e:
            raise CorruptPayloadError(f"Payload decompression failed: {e}") from e
