"""One-shot wake-up alarms for the gift reveal.

This module provides:
- ScheduleRequest: Identity + absolute fire time
- AlarmState: Unarmed -> Armed -> Fired | Cancelled
- AlarmScheduler: Interface used by the app
- BackgroundAlarmScheduler: APScheduler implementation

Precise alarms fire at the requested instant. When the host does not allow
precise alarms, the alarm degrades to an inexact one: the fire time is
rounded up to the next multiple of the inexact window, so delivery still
happens at or after the requested instant. Both kinds are delivered even
if the process was suspended past the fire time (no misfire grace limit).
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger

from giftsync.core.timeutil import (
    Clock,
    format_instant,
    from_epoch_millis,
    system_clock,
    to_epoch_millis,
)

logger = logging.getLogger(__name__)

GIFT_REVEAL_ALARM = "gift_reveal"


class AlarmState(Enum):
    """Lifecycle of an alarm identity."""

    UNARMED = "unarmed"
    ARMED = "armed"
    FIRED = "fired"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ScheduleRequest:
    """Request to arm one alarm.

    Attributes:
        identity: Stable key; a new request with the same identity supersedes the old one.
        fire_at_epoch_millis: Absolute fire time in epoch milliseconds.
    """

    identity: str
    fire_at_epoch_millis: int

    @property
    def fire_at(self) -> datetime:
        return from_epoch_millis(self.fire_at_epoch_millis)


@dataclass(frozen=True)
class ArmedAlarm:
    """An alarm as actually armed (after any inexact rounding)."""

    identity: str
    fire_at: datetime
    exact: bool


# Fixed delivery handler: receives the alarm identity
AlarmHandler = Callable[[str], None]


class AlarmScheduler(ABC):
    """Schedules at most one armed alarm per identity."""

    def start(self) -> None:  # noqa: B027
        """Begin delivering alarms (no-op unless the backend needs a thread)."""

    def stop(self) -> None:  # noqa: B027
        """Stop delivering alarms."""

    @abstractmethod
    def is_running(self) -> bool:
        """Whether armed alarms are currently being delivered."""

    @abstractmethod
    def can_schedule_exact(self) -> bool:
        """Whether precise alarms are currently permitted."""

    @abstractmethod
    def schedule(self, request: ScheduleRequest) -> ArmedAlarm | None:
        """Arm an alarm, replacing any armed alarm with the same identity.

        Returns:
            The armed alarm, or None if the instant is not in the future.
        """

    @abstractmethod
    def cancel(self, identity: str) -> None:
        """Cancel an alarm; safe when nothing is armed."""

    @abstractmethod
    def state(self, identity: str) -> AlarmState:
        """Get the lifecycle state of an identity."""


def round_up_to_window(fire_at: datetime, window_seconds: int) -> datetime:
    """Round an instant up to the next multiple of the window (epoch aligned)."""
    if window_seconds <= 0:
        return fire_at
    window_ms = window_seconds * 1000
    millis = to_epoch_millis(fire_at)
    remainder = millis % window_ms
    if remainder == 0:
        return fire_at
    return from_epoch_millis(millis + window_ms - remainder)


class BackgroundAlarmScheduler(AlarmScheduler):
    """Alarm scheduler backed by an APScheduler background thread.

    Each identity maps to one DateTrigger job whose id is the identity;
    ``replace_existing=True`` makes re-scheduling supersede, never duplicate.
    Alarm state is held in memory only; callers re-arm after restarts.
    """

    def __init__(
        self,
        handler: AlarmHandler,
        exact_permission: Callable[[], bool] = lambda: True,
        inexact_window_seconds: int = 600,
        clock: Clock = system_clock,
        scheduler: BackgroundScheduler | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            handler: Fixed callback invoked with the identity at fire time.
            exact_permission: Capability check for precise alarms.
            inexact_window_seconds: Rounding window for the inexact fallback.
            clock: Source of "now" for the future-instant check.
            scheduler: Optional pre-built APScheduler instance.
        """
        self._handler = handler
        self._exact_permission = exact_permission
        self._inexact_window = inexact_window_seconds
        self._clock = clock
        self._scheduler = scheduler or BackgroundScheduler()
        self._states: dict[str, AlarmState] = {}
        self._lock = threading.Lock()

    def start(self) -> None:
        """Start the scheduler thread."""
        if not self._scheduler.running:
            self._scheduler.start()
            logger.debug("Alarm scheduler started")

    def stop(self) -> None:
        """Stop the scheduler thread, dropping armed alarms."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.debug("Alarm scheduler stopped")

    def is_running(self) -> bool:
        return bool(self._scheduler.running)

    def can_schedule_exact(self) -> bool:
        try:
            return bool(self._exact_permission())
        except Exception:
            logger.exception("Exact alarm permission check failed, assuming not granted")
            return False

    def _deliver(self, identity: str) -> None:
        with self._lock:
            if self._states.get(identity) is not AlarmState.ARMED:
                return
            self._states[identity] = AlarmState.FIRED
        logger.info("Alarm %s fired", identity)
        try:
            self._handler(identity)
        except Exception:
            logger.exception("Alarm handler for %s failed", identity)

    def schedule(self, request: ScheduleRequest) -> ArmedAlarm | None:
        requested = request.fire_at
        if requested <= self._clock():
            logger.debug(
                "Not arming %s: %s is not in the future",
                request.identity,
                format_instant(requested),
            )
            return None

        exact = self.can_schedule_exact()
        if exact:
            fire_at = requested
        else:
            fire_at = round_up_to_window(requested, self._inexact_window)
            logger.warning(
                "Precise alarms not permitted, scheduling inexact alarm %s for %s",
                request.identity,
                format_instant(fire_at),
            )

        with self._lock:
            self._scheduler.add_job(
                self._deliver,
                trigger=DateTrigger(run_date=fire_at),
                args=[request.identity],
                id=request.identity,
                name=f"Alarm {request.identity}",
                replace_existing=True,
                misfire_grace_time=None,
                coalesce=True,
            )
            self._states[request.identity] = AlarmState.ARMED

        logger.info(
            "Armed %s alarm %s for %s",
            "exact" if exact else "inexact",
            request.identity,
            format_instant(fire_at),
        )
        return ArmedAlarm(identity=request.identity, fire_at=fire_at, exact=exact)

    def cancel(self, identity: str) -> None:
        with self._lock:
            if self._scheduler.get_job(identity) is not None:
                self._scheduler.remove_job(identity)
            if self._states.get(identity) is AlarmState.ARMED:
                self._states[identity] = AlarmState.CANCELLED
                logger.info("Cancelled alarm %s", identity)

    def state(self, identity: str) -> AlarmState:
        with self._lock:
            return self._states.get(identity, AlarmState.UNARMED)

    def next_fire_time(self, identity: str) -> datetime | None:
        """Get the pending fire time of an armed alarm."""
        job = self._scheduler.get_job(identity)
        if job is None:
            return None
        return getattr(job, "next_run_time", None) or job.trigger.run_date
