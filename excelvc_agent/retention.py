"""
Time-based purge of old versions.
"""

import time
from typing import Callable, Optional

from .database import Database
from .logger import get_logger

logger = get_logger(__name__)

SECONDS_PER_DAY = 86400


class RetentionSweeper:
    """Deletes versions older than the retention window."""

    def __init__(
        self,
        db: Database,
        retention_days: int = 7,
        clock: Callable[[], float] = time.time
    ):
        self.db = db
        self.retention_days = retention_days
        self.clock = clock

    def sweep(self) -> int:
        """Delete all versions created before the retention window.

        Tracked files are kept even when every version is purged.

        Returns:
            Number of versions removed
        """
        cutoff = self.clock() - self.retention_days * SECONDS_PER_DAY
        return self.db.delete_versions_older_than(cutoff)

    def run(self) -> Optional[int]:
        """Scheduled entry point. Failures are logged and left for the next tick."""
        try:
            removed = self.sweep()
        except Exception as e:
            logger.error(f"Retention sweep failed: {e}", exc_info=True)
            return None

        logger.info(f"Retention sweep removed {removed} version(s) older than {self.retention_days} days")
        if removed:
            self.db.log_activity('retention_sweep', f"Removed {removed} version(s)")
        return removed
