"""
Point-in-time restore of tracked files.
"""

import os
import shutil
import tempfile
import threading
from enum import Enum
from typing import Callable, Optional

from .codec import ContentCodec
from .crypto import CryptoEnvelope
from .database import Database
from .hasher import FileHasher
from .logger import get_logger

logger = get_logger(__name__)


class RestoreResult(Enum):
    SUCCESS = "success"
    FILE_LOCKED = "file_locked"
    NOT_FOUND = "not_found"


def is_locked(path: str) -> bool:
    """Check whether ``path`` can be opened for exclusive writing.

    Opens the file for writing without truncating or creating it and closes
    it again. Any failure to open counts as locked, including a file that
    no longer exists.
    """
    try:
        fd = os.open(path, os.O_WRONLY)
    except OSError as e:
        logger.debug(f"Exclusive write open failed for {path}: {e}")
        return True
    os.close(fd)
    return False


class RestoreWorkflow:
    """Writes a stored version back over its original file."""

    def __init__(
        self,
        db: Database,
        codec: ContentCodec,
        envelope: CryptoEnvelope,
        capture_lock: Optional[threading.Lock] = None,
        lock_check: Callable[[str], bool] = is_locked
    ):
        """Initialize restore workflow.

        Args:
            db: Database instance
            codec: Content codec
            envelope: Crypto envelope
            capture_lock: Lock shared with the capture pipeline
            lock_check: Returns True when the target is held open elsewhere
        """
        self.db = db
        self.codec = codec
        self.envelope = envelope
        self.capture_lock = capture_lock or threading.Lock()
        self.lock_check = lock_check

    def restore(self, file_id: int, version_number: int) -> RestoreResult:
        """Overwrite a tracked file with one of its stored versions.

        Restoring does not create a version. The file's stored hash is set to
        the restored content so the write it causes is seen as unchanged.

        Returns:
            RestoreResult

        Raises:
            PayloadIntegrityError: If the stored payload fails decryption or
                decompression
        """
        path = self.db.get_file_path(file_id)
        if path is None:
            logger.warning(f"Restore requested for unknown file id {file_id}")
            return RestoreResult.NOT_FOUND

        if self.lock_check(path):
            logger.info(f"Restore refused, file is open elsewhere: {path}")
            return RestoreResult.FILE_LOCKED

        payload = self.db.get_version_payload(file_id, version_number)
        if payload is None:
            logger.warning(f"Version {version_number} of file {file_id} not found")
            return RestoreResult.NOT_FOUND

        content = self.codec.decompress(self.envelope.open(payload))

        with self.capture_lock:
            temp_path = self._write_temp(path, content)
            try:
                with self.db.transaction() as conn:
                    self.db.set_file_hash(conn, file_id, FileHasher.hash_bytes(content))
                    # Last step of the unit of work: a failed replace rolls the hash back
                    os.replace(temp_path, path)
            except Exception:
                if os.path.exists(temp_path):
                    os.unlink(temp_path)
                raise

        file_name = os.path.basename(path)
        logger.info(f"Restored {file_name} to version {version_number}")
        self.db.log_activity('version_restored', f"{file_name} restored to version {version_number}", file_id=file_id)

        return RestoreResult.SUCCESS

    @staticmethod
    def _write_temp(path: str, content: bytes) -> str:
        """Write ``content`` beside ``path`` under a name the watcher ignores."""
        directory = os.path.dirname(path) or '.'
        fd, temp_path = tempfile.mkstemp(dir=directory, prefix='.excelvc-restore-', suffix='.tmp')
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(content)
            if os.path.exists(path):
                shutil.copymode(path, temp_path)
        except Exception:
            os.unlink(temp_path)
            raise
        return temp_path
