"""
Expiry reaper - Periodic eviction of stale pending registrations.

Entries are also expired lazily on verify; the reaper bounds how long
abandoned attempts (and their plaintext secrets) stay in memory. The
sweep runs as an APScheduler interval job on a background thread and is
owned by the application lifespan: started on startup, shut down on exit.
"""

import logging

from apscheduler.events import EVENT_JOB_ERROR, JobExecutionEvent
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from src.domain.ports import PendingRegistrationStore

logger = logging.getLogger(__name__)

JOB_ID = "expiry_sweep_job"


class ExpiryReaper:
    """Runs `store.sweep_expired` every `interval_seconds` on a BackgroundScheduler."""

    def __init__(self, store: PendingRegistrationStore, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._store = store
        self._interval = interval_seconds
        self._scheduler: BackgroundScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        """Create the scheduler and register the sweep job. No-op if already running."""
        if self.running:
            return

        scheduler = BackgroundScheduler(
            job_defaults={
                "coalesce": True,  # Collapse missed runs into one sweep
                "max_instances": 1,
            }
        )
        scheduler.add_listener(self._job_listener, EVENT_JOB_ERROR)
        scheduler.add_job(
            func=self.run_once,
            trigger=IntervalTrigger(seconds=self._interval),
            id=JOB_ID,
            name="Pending registration expiry sweep",
            replace_existing=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info("Expiry reaper started (every %.0fs)", self._interval)

    def stop(self, wait: bool = True) -> None:
        """
        Shut the scheduler down.

        Args:
            wait: Whether to wait for a sweep in progress to finish
        """
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=wait)
        self._scheduler = None
        logger.info("Expiry reaper stopped")

    def run_once(self) -> int:
        """Sweep the store once and return how many entries were evicted."""
        removed = self._store.sweep_expired()
        if removed:
            logger.info("Expiry reaper removed %d stale registration(s)", removed)
        return removed

    def _job_listener(self, event: JobExecutionEvent) -> None:
        # The scheduler keeps the job; the next interval retries.
        logger.error(
            "Expiry sweep failed; retrying next interval: %s",
            event.exception.__class__.__name__,
        )
