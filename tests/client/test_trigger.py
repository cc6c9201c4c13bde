"""Tests for the periodic sync trigger."""

from __future__ import annotations

import threading
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from apscheduler.schedulers.background import BackgroundScheduler

from giftsync.client.api import AuthInitError, NetworkError
from giftsync.client.sync.trigger import (
    PERIODIC_JOB_ID,
    RETRY_JOB_ID,
    JobResult,
    PeriodicSyncTrigger,
    SyncJob,
)
from giftsync.client.sync.types import ErrorKind, NoCandidates, SyncResult
from tests.fakes import T0, FakeClock


def ok() -> SyncResult:
    return SyncResult(decision=NoCandidates())


def failed(kind: ErrorKind) -> SyncResult:
    return SyncResult(error=NetworkError("offline"), error_kind=kind)


class SequencePass:
    """Returns queued results, then successes."""

    def __init__(self, *results: SyncResult) -> None:
        self.results = list(results)
        self.calls = 0

    def __call__(self) -> SyncResult:
        self.calls += 1
        return self.results.pop(0) if self.results else ok()


class TestSyncJob:
    """Tests for SyncJob."""

    def test_success(self) -> None:
        """Should report SUCCESS for a successful pass."""
        assert SyncJob(ok).run() is JobResult.SUCCESS

    def test_retry_until_budget(self) -> None:
        """Should report RETRY until the kind's budget is used up."""
        job = SyncJob(SequencePass(*[failed(ErrorKind.NO_INTERNET)] * 3))
        assert job.run() is JobResult.RETRY
        assert job.run() is JobResult.RETRY
        assert job.run() is JobResult.FAILURE
        assert job.attempt == 0

    def test_auth_error_fails_immediately(self) -> None:
        """Should give up on the first auth failure."""
        result = SyncResult(error=AuthInitError("bad key"), error_kind=ErrorKind.AUTH_ERROR)
        assert SyncJob(lambda: result).run() is JobResult.FAILURE

    def test_success_resets_attempts(self) -> None:
        """Should reset the attempt count after a success."""
        job = SyncJob(SequencePass(failed(ErrorKind.SERVER_ERROR), ok()))
        job.run()
        assert job.attempt == 1
        assert job.run() is JobResult.SUCCESS
        assert job.attempt == 0

    def test_exception_does_not_escape(self) -> None:
        """Should turn an unexpected exception into a RETRY."""

        def explode() -> SyncResult:
            raise RuntimeError("bug")

        assert SyncJob(explode).run() is JobResult.RETRY

    def test_on_error_called(self) -> None:
        """Should hand failed results to the error callback."""
        on_error = MagicMock()
        result = failed(ErrorKind.TIMEOUT)
        SyncJob(lambda: result, on_error=on_error).run()
        on_error.assert_called_once_with(result)

    def test_on_error_failure_ignored(self) -> None:
        """Should survive a failing error callback."""
        job = SyncJob(lambda: failed(ErrorKind.TIMEOUT), on_error=MagicMock(side_effect=OSError))
        assert job.run() is JobResult.RETRY


class TestBackoff:
    """Tests for PeriodicSyncTrigger.backoff_for."""

    def test_doubles_and_caps(self) -> None:
        """Should double the delay per attempt, capped at the interval."""
        trigger = PeriodicSyncTrigger(SyncJob(ok), interval_hours=2,
                                      initial_backoff=timedelta(minutes=30))
        assert trigger.backoff_for(1) == timedelta(minutes=30)
        assert trigger.backoff_for(2) == timedelta(hours=1)
        assert trigger.backoff_for(3) == timedelta(hours=2)
        assert trigger.backoff_for(4) == timedelta(hours=2)


class TestRunNow:
    """Tests for manual runs and retry scheduling."""

    def test_retry_schedules_one_shot(self) -> None:
        """Should schedule a retry job after a RETRY result."""
        scheduler = BackgroundScheduler()
        clock = FakeClock()
        trigger = PeriodicSyncTrigger(
            SyncJob(SequencePass(failed(ErrorKind.NO_INTERNET))),
            clock=clock,
            scheduler=scheduler,
        )

        assert trigger.run_now() is JobResult.RETRY

        job = scheduler.get_job(RETRY_JOB_ID)
        assert job is not None
        assert job.trigger.run_date == T0 + timedelta(minutes=30)

    def test_success_removes_retry(self) -> None:
        """Should drop a pending retry after a successful run."""
        scheduler = BackgroundScheduler()
        trigger = PeriodicSyncTrigger(
            SyncJob(SequencePass(failed(ErrorKind.NO_INTERNET))),
            clock=FakeClock(),
            scheduler=scheduler,
        )
        trigger.run_now()
        assert trigger.run_now() is JobResult.SUCCESS
        assert scheduler.get_job(RETRY_JOB_ID) is None


class TestPeriodicSyncTrigger:
    """Tests for the scheduled trigger."""

    def test_start_and_stop(self) -> None:
        """Should add the interval job and run immediately when asked."""
        ran = threading.Event()

        def run_pass() -> SyncResult:
            ran.set()
            return ok()

        trigger = PeriodicSyncTrigger(SyncJob(run_pass), interval_hours=24)
        try:
            trigger.start(run_immediately=True)
            assert trigger.running
            assert ran.wait(timeout=5)
            job = trigger._scheduler.get_job(PERIODIC_JOB_ID)
            assert job is not None
            assert job.trigger.interval == timedelta(hours=24)
            assert job.max_instances == 1
        finally:
            trigger.stop()
        assert not trigger.running

    def test_start_twice_is_noop(self) -> None:
        """Should ignore a second start()."""
        trigger = PeriodicSyncTrigger(SyncJob(ok))
        try:
            trigger.start()
            trigger.start()
            assert len(trigger._scheduler.get_jobs()) == 1
        finally:
            trigger.stop()

    @pytest.mark.parametrize("interval", [1, 6, 24])
    def test_interval_hours(self, interval: int) -> None:
        """Should schedule the configured interval."""
        trigger = PeriodicSyncTrigger(SyncJob(ok), interval_hours=interval)
        try:
            trigger.start()
            job = trigger._scheduler.get_job(PERIODIC_JOB_ID)
            assert job.trigger.interval == timedelta(hours=interval)
        finally:
            trigger.stop()
