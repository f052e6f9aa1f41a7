#!/usr/bin/env python3
"""
ExcelVC Agent Daemon
Background process that versions spreadsheets in watched folders.
"""

import sys
import threading
import time
from pathlib import Path
from typing import Optional

from excelvc_agent import get_logger
from excelvc_agent.config import Config, ConfigManager
from excelvc_agent.database import Database
from excelvc_agent.keychain import KeychainManager
from excelvc_agent.codec import ContentCodec
from excelvc_agent.crypto import CryptoEnvelope
from excelvc_agent.capture import VersionCapturePipeline
from excelvc_agent.debounce import DebounceEngine
from excelvc_agent.watcher import WatchManager, WatchResult
from excelvc_agent.retention import RetentionSweeper
from excelvc_agent.scheduler import AgentScheduler
from excelvc_agent.utils import (
    ensure_single_instance,
    remove_pid_file,
    setup_signal_handlers
)

logger = get_logger("excelvc_agent.daemon")

SHUTDOWN_DRAIN_SECONDS = 30


class ExcelVCDaemon:
    """Main daemon process for ExcelVC Agent."""

    def __init__(self, config_manager: Optional[ConfigManager] = None):
        self.config_manager = config_manager or ConfigManager()
        self.config: Optional[Config] = None
        self.db: Optional[Database] = None
        self.pipeline: Optional[VersionCapturePipeline] = None
        self.debouncer: Optional[DebounceEngine] = None
        self.watch_manager: Optional[WatchManager] = None
        self.sweeper: Optional[RetentionSweeper] = None
        self.scheduler: Optional[AgentScheduler] = None
        self.running = False

    def initialize(self) -> bool:
        """Initialize all components.

        A missing or invalid encryption key, invalid configuration or a store
        that cannot be opened are fatal.

        Returns:
            True if successful
        """
        try:
            logger.info("Loading configuration")
            self.config = self.config_manager.load()

            from excelvc_agent.logger import init_global_logger
            init_global_logger(
                log_dir=Path(self.config.log_dir).expanduser(),
                log_level=self.config.log_level,
                console=True
            )

            logger.info("=" * 60)
            logger.info("ExcelVC Agent Daemon Starting")
            logger.info("=" * 60)

            self.config_manager.ensure_directories()

            logger.info("Initializing database")
            self.db = Database(self.config.db_path)
            self.db.init()

            logger.info("Loading encryption key")
            envelope = CryptoEnvelope.from_environment(
                env_var=self.config.encryption_key_env,
                keychain=KeychainManager()
            )

            capture_lock = threading.Lock()
            self.pipeline = VersionCapturePipeline(
                db=self.db,
                codec=ContentCodec(self.config.compression_level),
                envelope=envelope,
                capture_lock=capture_lock,
                poll_interval=self.config.stability_poll_seconds
            )

            self.debouncer = DebounceEngine(
                callback=self.pipeline.handle_change,
                quiet_period=self.config.quiet_period_seconds
            )

            self.watch_manager = WatchManager(
                debouncer=self.debouncer,
                watch_new_directories=self.config.watch_new_directories
            )

            self.sweeper = RetentionSweeper(
                db=self.db,
                retention_days=self.config.retention_days
            )

            self.scheduler = AgentScheduler()
            self.scheduler.add_retention_job(
                sweep_func=self.sweeper.run,
                interval_hours=self.config.retention_interval_hours
            )
            self.scheduler.add_config_reload_job(
                reload_func=self.reload_watch_roots,
                interval_minutes=self.config.config_reload_minutes
            )

            logger.info("Initialization complete")
            return True

        except Exception as e:
            logger.error(f"Initialization failed: {e}", exc_info=True)
            return False

    def watch_configured_roots(self, config: Config) -> int:
        """Start watching every configured root not yet watched.

        Returns:
            Number of roots newly watched
        """
        started = 0
        for root in config.watch_roots:
            if root in self.watch_manager.registry:
                continue

            try:
                result = self.watch_manager.watch(root)
            except OSError as e:
                logger.error(f"Failed to watch {root}: {e}", exc_info=True)
                self.db.log_activity('watch_failed', f"Cannot watch {root}: {e}")
                continue

            if result is WatchResult.WATCHING:
                started += 1
                self.db.log_activity('watch_started', f"Now watching: {root}")
            elif result is WatchResult.INVALID_PATH:
                logger.warning(f"Configured watch root is not a directory: {root}")

        return started

    def reload_watch_roots(self) -> None:
        """Pick up roots added with ``excelvc-agent watch`` while running."""
        try:
            config = ConfigManager(self.config_manager.config_path).load()
            started = self.watch_configured_roots(config)
            if started:
                logger.info(f"Started watching {started} new root(s)")
        except Exception as e:
            logger.error(f"Watch root reload failed: {e}", exc_info=True)

    def start(self) -> None:
        """Start the daemon."""
        if not ensure_single_instance():
            logger.error("Another instance is already running")
            sys.exit(1)

        if not self.initialize():
            logger.error("Initialization failed")
            remove_pid_file()
            sys.exit(1)

        setup_signal_handlers(self.shutdown)
        self.running = True

        try:
            self.watch_configured_roots(self.config)
            self.scheduler.start()
            self.db.log_activity('daemon_started', 'Daemon started')

            logger.info("=" * 60)
            logger.info("ExcelVC Agent Daemon Running")
            logger.info("=" * 60)

            while self.running:
                time.sleep(1)

        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")

        finally:
            self.shutdown()

    def shutdown(self) -> None:
        """Shutdown the daemon gracefully."""
        if not self.running:
            return

        logger.info("Shutting down ExcelVC Agent")
        self.running = False

        if self.scheduler:
            self.scheduler.stop()

        if self.watch_manager:
            self.watch_manager.unwatch_all()

        # Unfired timers are dropped; captures already running are waited for
        if self.debouncer:
            self.debouncer.cancel_all()
            if not self.debouncer.wait_for_running(timeout=SHUTDOWN_DRAIN_SECONDS):
                logger.warning("Captures still waiting for a stable file at shutdown")

        # A capture inside its unit of work holds the lock until it commits
        if self.pipeline:
            with self.pipeline.capture_lock:
                pass

        if self.db:
            self.db.log_activity('daemon_stopped', 'Daemon stopped')

        remove_pid_file()

        logger.info("Shutdown complete")


def main():
    """Main entry point."""
    daemon = ExcelVCDaemon()
    daemon.start()


if __name__ == "__main__":
    main()
