"""
Utility functions for ExcelVC Agent.
"""

import os
import signal
import sys
from datetime import datetime
from pathlib import Path
from .logger import get_logger

logger = get_logger(__name__)

DEFAULT_PID_FILE = "~/.excelvc/excelvc-agent.pid"


def format_bytes(bytes_size: int) -> str:
    """Format bytes as human-readable string.

    Args:
        bytes_size: Size in bytes

    Returns:
        Formatted string (e.g., "1.5 GB")
    """
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_size < 1024.0:
            return f"{bytes_size:.1f} {unit}"
        bytes_size /= 1024.0
    return f"{bytes_size:.1f} PB"


def format_timestamp(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp).strftime('%Y-%m-%d %H:%M:%S')


def ensure_single_instance(pid_file: str = DEFAULT_PID_FILE) -> bool:
    """Ensure only one instance of agent is running.

    Args:
        pid_file: Path to PID file

    Returns:
        True if this is the only instance
    """
    pid_file_path = Path(pid_file).expanduser()

    if pid_file_path.exists():
        try:
            with open(pid_file_path, 'r') as f:
                old_pid = int(f.read().strip())

            try:
                os.kill(old_pid, 0)
                logger.error(f"Another instance is already running (PID {old_pid})")
                return False
            except OSError:
                logger.warning(f"Removing stale PID file for process {old_pid}")
                pid_file_path.unlink()
        except ValueError as e:
            logger.warning(f"Unreadable PID file, removing: {e}")
            pid_file_path.unlink()

    pid_file_path.parent.mkdir(parents=True, exist_ok=True)
    with open(pid_file_path, 'w') as f:
        f.write(str(os.getpid()))

    logger.info(f"PID file created: {pid_file_path}")

    return True


def remove_pid_file(pid_file: str = DEFAULT_PID_FILE) -> None:
    pid_file_path = Path(pid_file).expanduser()

    if pid_file_path.exists():
        pid_file_path.unlink()
        logger.info("PID file removed")


def setup_signal_handlers(shutdown_callback) -> None:
    """Setup signal handlers for graceful shutdown.

    Args:
        shutdown_callback: Function to call on shutdown signals
    """
    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down gracefully...")
        shutdown_callback()
        sys.exit(0)

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    logger.debug("Signal handlers registered")
