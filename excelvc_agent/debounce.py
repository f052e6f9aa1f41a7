"""
Per-path coalescing of filesystem event bursts.

Every qualifying event for a path re-arms that path's timer; only the most
recently armed timer ever fires, ``quiet_period`` seconds after the last
event of the burst. Each timer fires on its own thread so a slow capture
never holds up event delivery for other files.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Set

from .logger import get_logger

logger = get_logger(__name__)

DEFAULT_QUIET_PERIOD = 1.0


@dataclass
class PendingChange:
    """An armed debounce timer for one file."""
    path: str
    fire_at: float
    timer: threading.Timer


class DebounceEngine:
    """Coalesces bursts of events per file into one callback invocation."""

    def __init__(
        self,
        callback: Callable[[str], None],
        quiet_period: float = DEFAULT_QUIET_PERIOD
    ):
        """Initialize debounce engine.

        Args:
            callback: Called with the path once its quiet period elapses
            quiet_period: Seconds of silence required before firing
        """
        self.callback = callback
        self.quiet_period = quiet_period
        self._pending: Dict[str, PendingChange] = {}
        self._running: Set[threading.Thread] = set()
        self._lock = threading.Lock()

    def notify(self, path: str) -> None:
        """Record an event for ``path``, replacing any pending timer."""
        with self._lock:
            previous = self._pending.get(path)
            if previous is not None:
                previous.timer.cancel()

            timer = threading.Timer(self.quiet_period, self._fire, args=(path,))
            timer.daemon = True
            pending = PendingChange(
                path=path,
                fire_at=time.monotonic() + self.quiet_period,
                timer=timer
            )
            self._pending[path] = pending
            timer.start()

    def _fire(self, path: str) -> None:
        with self._lock:
            pending = self._pending.get(path)
            # A superseded timer may still run if it expired while being cancelled
            if pending is None or pending.timer is not threading.current_thread():
                return
            del self._pending[path]
            self._running.add(threading.current_thread())

        try:
            self.callback(path)
        except Exception as e:
            logger.error(f"Change handler failed for {path}: {e}", exc_info=True)
        finally:
            with self._lock:
                self._running.discard(threading.current_thread())

    def pending(self, path: str) -> Optional[PendingChange]:
        with self._lock:
            return self._pending.get(path)

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def cancel_all(self) -> int:
        """Cancel every pending timer.

        Returns:
            Number of timers cancelled
        """
        with self._lock:
            pending = list(self._pending.values())
            self._pending.clear()

        for change in pending:
            change.timer.cancel()

        if pending:
            logger.info(f"Cancelled {len(pending)} pending change(s)")
        return len(pending)

    def running_count(self) -> int:
        with self._lock:
            return len(self._running)

    def wait_for_running(self, timeout: Optional[float] = None) -> bool:
        """Wait for callbacks that already fired to return.

        Args:
            timeout: Overall limit in seconds, None to wait indefinitely

        Returns:
            True if no callback is still running
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._lock:
            running = list(self._running)

        for thread in running:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(remaining)

        return self.running_count() == 0
