"""Scheduler service for periodic batch retries."""

import threading
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from email_retry.logging import get_logger

logger = get_logger(__name__, component="scheduler")

JOB_ID = "email-retry"


class SchedulerService:
    """
    Runs the batch retry on a fixed interval with APScheduler.

    The job runs on a BackgroundScheduler worker thread so the main thread
    stays free to handle signals. max_instances=1 keeps a slow run from
    overlapping the next one; the coordinator's own lock covers manual runs.
    """

    def __init__(
        self,
        batch_callable: Callable[[], Any],
        interval_seconds: int,
        shutdown_event: Optional[threading.Event] = None,
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        """
        Args:
            batch_callable: Function executed on each tick (one retry_all run)
            interval_seconds: Interval between runs in seconds
            shutdown_event: Set on shutdown so the main thread can exit
            scheduler: Pre-built scheduler (tests inject a mock)
        """
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got: {interval_seconds}")

        self.batch_callable = batch_callable
        self.interval_seconds = interval_seconds
        self.shutdown_event = shutdown_event

        self.scheduler = scheduler or BackgroundScheduler(
            job_defaults={
                "max_instances": 1,
                "coalesce": True,
                "misfire_grace_time": interval_seconds,
            },
            timezone=timezone.utc,
        )

    def _run_batch(self) -> Any:
        logger.debug("Scheduled batch retry starting", extra={"event": "scheduler.run.started"})
        try:
            return self.batch_callable()
        except Exception as e:
            logger.error(
                f"Scheduled batch retry failed: {e}",
                exc_info=True,
                extra={"event": "scheduler.run.failed", "error_type": type(e).__name__},
            )
            raise

    def start(self, run_immediately: bool = True) -> None:
        """
        Register the retry job and start the scheduler.

        Args:
            run_immediately: Run the first batch now instead of after one interval
        """
        next_run = datetime.now(timezone.utc) if run_immediately else None
        job_kwargs = {"next_run_time": next_run} if next_run else {}

        self.scheduler.add_job(
            func=self._run_batch,
            trigger=IntervalTrigger(seconds=self.interval_seconds, timezone=timezone.utc),
            id=JOB_ID,
            name="Email failure batch retry",
            replace_existing=True,
            **job_kwargs,
        )
        self.scheduler.start()

        logger.info(
            f"Scheduler started with interval: {self.interval_seconds} seconds",
            extra={
                "event": "scheduler.started",
                "interval_seconds": self.interval_seconds,
                "next_run_time": next_run.isoformat() if next_run else None,
            },
        )

    def shutdown(self, wait: bool = False) -> None:
        """
        Stop the scheduler.

        Args:
            wait: Wait for a running batch to finish before returning
        """
        logger.info(
            "Shutting down scheduler",
            extra={"event": "scheduler.stopping", "wait_for_jobs": wait},
        )

        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

        if self.shutdown_event:
            self.shutdown_event.set()

        logger.info("Scheduler shutdown complete", extra={"event": "scheduler.stopped"})

    def trigger_now(self) -> Any:
        """Run one batch synchronously in the calling thread."""
        logger.info("Triggering immediate batch retry", extra={"event": "scheduler.trigger_now"})
        return self._run_batch()

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_next_run_time(self) -> Optional[datetime]:
        job = self.scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None
