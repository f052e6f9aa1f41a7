"""
Scheduler for ExcelVC Agent.
Manages periodic tasks (retention sweeps, watch root reloads).
"""

from typing import Callable
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .logger import get_logger

logger = get_logger(__name__)


class AgentScheduler:
    """Manages scheduled tasks for the agent."""

    def __init__(self):
        self.scheduler = BackgroundScheduler()
        self.is_running = False

    def add_retention_job(
        self,
        sweep_func: Callable,
        interval_hours: int = 24
    ) -> None:
        """Schedule periodic retention sweeps.

        A failed sweep is not retried early; the next run happens on the
        following tick.

        Args:
            sweep_func: Function to call for sweeping
            interval_hours: Sweep interval in hours
        """
        self.scheduler.add_job(
            func=sweep_func,
            trigger=IntervalTrigger(hours=interval_hours),
            id='retention_sweep',
            name='Retention Sweep',
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        logger.info(f"Scheduled retention sweep every {interval_hours} hours")

    def add_config_reload_job(
        self,
        reload_func: Callable,
        interval_minutes: int = 1
    ) -> None:
        """Schedule periodic pickup of newly configured watch roots.

        Args:
            reload_func: Function to call for reloading
            interval_minutes: Reload interval in minutes
        """
        self.scheduler.add_job(
            func=reload_func,
            trigger=IntervalTrigger(minutes=interval_minutes),
            id='config_reload',
            name='Reload Watch Roots',
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        logger.info(f"Scheduled watch root reload every {interval_minutes} minutes")

    def start(self) -> None:
        """Start the scheduler."""
        if self.is_running:
            logger.warning("Scheduler already running")
            return

        logger.info("Starting scheduler")
        self.scheduler.start()
        self.is_running = True

        jobs = self.scheduler.get_jobs()
        logger.info(f"Scheduler started with {len(jobs)} jobs")
        for job in jobs:
            logger.debug(f"  - {job.name} (next run: {job.next_run_time})")

    def stop(self) -> None:
        """Stop the scheduler."""
        if not self.is_running:
            return

        logger.info("Stopping scheduler")
        self.scheduler.shutdown(wait=True)
        self.is_running = False

        logger.info("Scheduler stopped")

    def get_jobs(self) -> list:
        return self.scheduler.get_jobs()
