"""
Version capture pipeline for ExcelVC Agent.
Turns a quiet, stable file into a new encrypted version, at most once per
distinct content.
"""

import os
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .codec import ContentCodec
from .crypto import CryptoEnvelope
from .database import Database
from .hasher import FileHasher
from .logger import get_logger
from .stability import DEFAULT_POLL_INTERVAL, wait_until_stable

logger = get_logger(__name__)


class CaptureStatus(Enum):
    """Result of one capture attempt."""
    CREATED = "created"
    UNCHANGED = "unchanged"
    ABORTED = "aborted"


@dataclass
class CaptureOutcome:
    """Represents the result of capturing one file."""
    status: CaptureStatus
    path: str
    file_id: Optional[int] = None
    version_number: Optional[int] = None


class VersionCapturePipeline:
    """Reads, hashes, deduplicates, compresses, encrypts and stores file versions."""

    def __init__(
        self,
        db: Database,
        codec: ContentCodec,
        envelope: CryptoEnvelope,
        capture_lock: Optional[threading.Lock] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        clock: Callable[[], float] = time.time
    ):
        """Initialize capture pipeline.

        Args:
            db: Database instance
            codec: Content codec
            envelope: Crypto envelope
            capture_lock: Lock serializing captures and restores process-wide
            poll_interval: Stability poll interval in seconds
            clock: Source of version creation timestamps
        """
        self.db = db
        self.codec = codec
        self.envelope = envelope
        self.capture_lock = capture_lock or threading.Lock()
        self.poll_interval = poll_interval
        self.clock = clock

    def handle_change(self, path: str) -> CaptureOutcome:
        """Debounce callback: wait for the write to finish, then capture.

        Failures are logged and recorded; they never propagate to the caller's
        thread so other files keep being watched.
        """
        if not wait_until_stable(path, self.poll_interval):
            logger.info(f"Capture aborted, file disappeared: {path}")
            return CaptureOutcome(CaptureStatus.ABORTED, path)

        try:
            return self.capture(path)
        except Exception as e:
            logger.error(f"Capture failed for {path}: {e}", exc_info=True)
            self.db.log_activity('capture_failed', f"Capture failed for {os.path.basename(path)}: {e}")
            return CaptureOutcome(CaptureStatus.ABORTED, path)

    def capture(self, path: str) -> CaptureOutcome:
        """Capture the current content of ``path`` as a new version.

        Returns:
            CaptureOutcome: CREATED with the new version number, UNCHANGED when
            the content hash matches the last capture, ABORTED when the file
            cannot be read

        Raises:
            Exception: Any store failure, after the unit of work is rolled back
        """
        with self.capture_lock:
            try:
                with open(path, 'rb') as f:
                    content = f.read()
            except OSError as e:
                logger.warning(f"Capture aborted, cannot read {path}: {e}")
                return CaptureOutcome(CaptureStatus.ABORTED, path)

            content_hash = FileHasher.hash_bytes(content)
            file_name = os.path.basename(path)

            with self.db.transaction() as conn:
                existing = self.db.find_file_for_update(conn, path)

                if existing is None:
                    file_id = self.db.insert_file(conn, path, file_name, content_hash)
                    logger.info(f"New file tracked: {file_name}")
                elif existing['last_hash'] == content_hash:
                    conn.rollback()
                    logger.debug(f"Content unchanged, skipping: {file_name}")
                    return CaptureOutcome(CaptureStatus.UNCHANGED, path, file_id=existing['id'])
                else:
                    file_id = existing['id']

                version_number = self.db.next_version_number(conn, file_id)
                payload = self.envelope.seal(self.codec.compress(content))

                self.db.insert_version(
                    conn,
                    file_id=file_id,
                    version_number=version_number,
                    payload=payload,
                    original_size=len(content),
                    created_at=self.clock()
                )
                self.db.record_capture(conn, file_id, content_hash, version_number)

        logger.info(
            f"Captured {file_name} version {version_number} "
            f"({len(content)} -> {len(payload)} bytes)"
        )
        self.db.log_activity('version_created', f"{file_name} version {version_number}", file_id=file_id)

        return CaptureOutcome(CaptureStatus.CREATED, path, file_id=file_id, version_number=version_number)
