"""
Write-completion heuristic for files that may still be mid-save.
"""

import os
import time
from typing import Callable

from .logger import get_logger

logger = get_logger(__name__)

DEFAULT_POLL_INTERVAL = 0.4


def wait_until_stable(
    path: str,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    sleep: Callable[[float], None] = time.sleep
) -> bool:
    """Block until two consecutive size samples of ``path`` are equal.

    There is no timeout: a file whose size keeps changing blocks the caller
    indefinitely. A writer that pauses longer than ``poll_interval`` mid-write
    can still be observed as stable.

    Args:
        path: File to sample
        poll_interval: Seconds between samples
        sleep: Sleep function (injectable for tests)

    Returns:
        True once stable, False if the file disappeared before stabilizing
    """
    last_size = -1
    samples = 0

    while True:
        try:
            size = os.stat(path).st_size
        except OSError:
            logger.debug(f"File vanished while waiting for stability: {path}")
            return False

        samples += 1
        if size == last_size:
            if samples > 2:
                logger.debug(f"{os.path.basename(path)} stable at {size} bytes after {samples} samples")
            return True

        last_size = size
        sleep(poll_interval)
