"""Periodic invocation of sync passes.

This module provides:
- JobResult: SUCCESS / RETRY / FAILURE reported for one invocation
- SyncJob: Turns a SyncResult into a JobResult using per-kind retry budgets
- PeriodicSyncTrigger: APScheduler interval job plus backoff retries

Backoff: after a RETRY the trigger schedules a one-shot retry after
``initial_backoff * 2**(attempt-1)``, capped at the check interval. The
regular interval keeps running; SUCCESS and FAILURE reset the attempt count.
"""

from __future__ import annotations

import contextlib
import logging
import threading
from collections.abc import Callable
from datetime import timedelta
from enum import Enum, auto

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from giftsync.client.sync.retry import max_attempts_for
from giftsync.client.sync.types import ErrorKind, SyncResult
from giftsync.core.timeutil import Clock, system_clock

logger = logging.getLogger(__name__)

PERIODIC_JOB_ID = "daily_file_check"
RETRY_JOB_ID = "daily_file_check_retry"


class JobResult(Enum):
    """Outcome reported back to the host scheduler."""

    SUCCESS = auto()
    RETRY = auto()
    FAILURE = auto()


class SyncJob:
    """One named unit of work wrapping a sync pass.

    Tracks the attempt count across invocations so the retry budget of
    each error kind can be enforced.
    """

    def __init__(
        self,
        run_pass: Callable[[], SyncResult],
        on_error: Callable[[SyncResult], None] | None = None,
    ) -> None:
        """Initialize the job.

        Args:
            run_pass: Callable running one sync pass.
            on_error: Optional callback for failed passes (e.g. persist last error).
        """
        self._run_pass = run_pass
        self._on_error = on_error
        self._attempt = 0
        self._lock = threading.Lock()

    @property
    def attempt(self) -> int:
        """Number of consecutive failed attempts so far."""
        return self._attempt

    def run(self) -> JobResult:
        """Run the pass once and classify the outcome. Never raises."""
        with self._lock:
            try:
                result = self._run_pass()
            except Exception as e:
                logger.exception("Sync pass raised unexpectedly")
                result = SyncResult(error=e, error_kind=ErrorKind.UNKNOWN)

            if result.success:
                self._attempt = 0
                return JobResult.SUCCESS

            self._attempt += 1
            kind = result.error_kind or ErrorKind.UNKNOWN
            if self._on_error is not None:
                try:
                    self._on_error(result)
                except Exception:
                    logger.exception("Error callback failed")

            budget = max_attempts_for(kind)
            if self._attempt < budget:
                logger.info(
                    "Sync pass failed with %s - will retry (attempt %d of %d)",
                    kind.name,
                    self._attempt,
                    budget,
                )
                return JobResult.RETRY

            logger.error(
                "Sync pass failed with %s - giving up after %d attempts: %s",
                kind.name,
                self._attempt,
                result.error,
            )
            self._attempt = 0
            return JobResult.FAILURE


class PeriodicSyncTrigger:
    """Runs a SyncJob every N hours on an APScheduler background thread.

    APScheduler's ``max_instances=1`` guarantees at most one live execution
    of the named job at a time.
    """

    def __init__(
        self,
        job: SyncJob,
        interval_hours: int = 24,
        initial_backoff: timedelta = timedelta(minutes=30),
        clock: Clock = system_clock,
        scheduler: BackgroundScheduler | None = None,
    ) -> None:
        """Initialize the trigger.

        Args:
            job: The job to run.
            interval_hours: Hours between regular runs.
            initial_backoff: Delay before the first retry after a RETRY result.
            clock: Source of "now" for retry scheduling.
            scheduler: Optional pre-built APScheduler instance.
        """
        self._job = job
        self._interval = timedelta(hours=interval_hours)
        self._initial_backoff = initial_backoff
        self._clock = clock
        self._scheduler = scheduler or BackgroundScheduler()

    @property
    def running(self) -> bool:
        return bool(self._scheduler.running)

    def backoff_for(self, attempt: int) -> timedelta:
        """Get the retry delay after the given failed attempt (1-based)."""
        # Exponent bounded to keep the timedelta in range
        exponent = min(max(attempt - 1, 0), 20)
        delay = self._initial_backoff * (2 ** exponent)
        return min(delay, self._interval)

    def _execute(self) -> JobResult:
        result = self._job.run()
        if result is JobResult.RETRY:
            delay = self.backoff_for(self._job.attempt)
            run_at = self._clock() + delay
            self._scheduler.add_job(
                self._execute,
                trigger=DateTrigger(run_date=run_at),
                id=RETRY_JOB_ID,
                name="File check retry",
                replace_existing=True,
                max_instances=1,
            )
            logger.info("Retrying file check in %s", delay)
        else:
            # The one-shot job may already be gone if it is the one running
            with contextlib.suppress(JobLookupError):
                self._scheduler.remove_job(RETRY_JOB_ID)
        return result

    def start(self, run_immediately: bool = False) -> None:
        """Start the periodic job.

        Args:
            run_immediately: Also run one pass right away (first run).
        """
        if self._scheduler.running:
            return

        self._scheduler.add_job(
            self._execute,
            trigger=IntervalTrigger(seconds=self._interval.total_seconds()),
            id=PERIODIC_JOB_ID,
            name="Periodic file check",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        if run_immediately:
            self._scheduler.add_job(
                self._execute,
                id=RETRY_JOB_ID,
                name="Initial file check",
                replace_existing=True,
                max_instances=1,
            )
        self._scheduler.start()
        logger.info(
            "File check scheduler started (every %s)", self._interval
        )

    def stop(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("File check scheduler stopped")

    def run_now(self) -> JobResult:
        """Run the job immediately on the calling thread (manual trigger)."""
        return self._execute()
