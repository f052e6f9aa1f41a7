"""
SHA256 content hashing used for change detection.
"""

import hashlib


class FileHasher:
    """Computes SHA256 digests of file content."""

    @staticmethod
    def hash_bytes(data: bytes) -> str:
        """Return the hex SHA256 digest of ``data``.

        Collisions are treated as impossible: equal digests mean equal content.
        """
        return hashlib.sha256(data).hexdigest()
