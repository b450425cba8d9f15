"""Background executor for fire-and-forget notification jobs."""

import threading
import uuid
from datetime import timezone
from typing import Any, Callable, Optional

from apscheduler.events import (
    EVENT_JOB_ERROR,
    EVENT_JOB_EXECUTED,
    EVENT_JOB_MISSED,
    JobExecutionEvent,
)
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler

from helpdesk_notify.logging import get_logger

logger = get_logger(__name__, component="scheduler")


class BackgroundDispatcher:
    """
    Wraps APScheduler to run one-off jobs on a thread pool.

    Every submitted callable becomes a date-triggered job that runs as soon
    as a worker is free. Jobs submitted before start() are held by the
    scheduler and run once it starts.
    """

    def __init__(self, max_workers: int = 4, scheduler: Optional[BackgroundScheduler] = None):
        """
        Initialize the background dispatcher.

        Args:
            max_workers: Size of the worker thread pool
            scheduler: Preconfigured scheduler (built from max_workers if None)
        """
        self.max_workers = max_workers
        self.scheduler = scheduler or BackgroundScheduler(
            executors={"default": ThreadPoolExecutor(max_workers)},
            job_defaults={
                "coalesce": False,
                "max_instances": 1,
                "misfire_grace_time": None,  # A late notification is still sent
            },
            timezone=timezone.utc,
        )

        self._pending = 0
        self._idle = threading.Condition()

        self.scheduler.add_listener(
            self._on_job_finished, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MISSED
        )

    def start(self) -> None:
        """Start the scheduler thread (no-op if already running)."""
        if self.scheduler.running:
            return

        self.scheduler.start()
        logger.info(
            f"Background dispatcher started with {self.max_workers} worker(s)",
            extra={"event": "scheduler.started", "max_workers": self.max_workers},
        )

    def submit(self, func: Callable[..., Any], *args, **kwargs) -> str:
        """
        Queue a callable to run once in the background.

        Args:
            func: Callable to run
            *args: Positional arguments for func
            **kwargs: Keyword arguments for func

        Returns:
            The id of the scheduled job
        """
        job_id = f"dispatch-{uuid.uuid4().hex}"

        with self._idle:
            self._pending += 1

        try:
            self.scheduler.add_job(
                func,
                args=args,
                kwargs=kwargs,
                id=job_id,
                name=getattr(func, "__name__", "dispatch"),
                misfire_grace_time=None,
            )
        except Exception:
            self._job_done()
            raise

        logger.debug(f"Submitted background job {job_id}", extra={"event": "scheduler.job_submitted"})
        return job_id

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Block until every submitted job has finished.

        Args:
            timeout: Maximum seconds to wait (None waits forever)

        Returns:
            True if all jobs finished, False on timeout
        """
        with self._idle:
            return self._idle.wait_for(lambda: self._pending == 0, timeout)

    def shutdown(self, wait: bool = True) -> None:
        """
        Stop the scheduler.

        Args:
            wait: If True, wait for running jobs to complete before returning
        """
        logger.info(
            "Shutting down background dispatcher",
            extra={"event": "scheduler.stopping", "wait_for_jobs": wait},
        )

        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

        logger.info("Background dispatcher stopped", extra={"event": "scheduler.stopped"})

    def is_running(self) -> bool:
        """Return True if the scheduler is currently running."""
        return self.scheduler.running

    def _on_job_finished(self, event: JobExecutionEvent) -> None:
        if event.code == EVENT_JOB_ERROR:
            logger.error(
                f"Background job {event.job_id} failed: {event.exception}",
                extra={
                    "event": "scheduler.job_failed",
                    "job_id": event.job_id,
                    "error_type": type(event.exception).__name__,
                    "traceback": event.traceback,
                },
            )
        elif event.code == EVENT_JOB_MISSED:
            logger.warning(
                f"Background job {event.job_id} missed its run time",
                extra={"event": "scheduler.job_missed", "job_id": event.job_id},
            )

        self._job_done()

    def _job_done(self) -> None:
        with self._idle:
            self._pending = max(0, self._pending - 1)
            self._idle.notify_all()
