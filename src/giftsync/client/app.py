"""Composition root for GiftSync.

GiftSyncApp wires the configuration layers, the Drive client, the sync
engine and the alarm scheduler together and exposes the operations the
CLI and the daemon call:

- run_sync_pass: One staleness check + optional download
- arm_notification / cancel_notification: The gift reveal alarm
- fetch_remote_config: Refresh app_config.json from the Drive folder
- restore_after_boot: Re-arm the alarm after a restart
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from giftsync.client.alarm import (
    GIFT_REVEAL_ALARM,
    AlarmScheduler,
    ArmedAlarm,
    BackgroundAlarmScheduler,
    ScheduleRequest,
)
from giftsync.client.api import DriveClient, RemoteStore
from giftsync.client.config_source import LayeredConfigSource
from giftsync.client.credentials import ServiceAccountFileCredentials
from giftsync.client.notifications import (
    notify_download_complete,
    notify_error,
    notify_gift_ready,
)
from giftsync.client.remote_config import RemoteConfigManager
from giftsync.client.sync.cache import LocalCache
from giftsync.client.sync.engine import SyncEngine
from giftsync.client.sync.trigger import PeriodicSyncTrigger, SyncJob
from giftsync.client.sync.types import ErrorKind, SyncResult
from giftsync.core.config import AppConfig, ConfigError, get_config_dir, load_app_config
from giftsync.core.settings import SETTINGS_FILE_NAME, AdminSettings, SettingsStore
from giftsync.core.timeutil import (
    Clock,
    format_instant,
    from_epoch_millis,
    system_clock,
    to_epoch_millis,
)

logger = logging.getLogger(__name__)

LOG_FILE_NAME = "giftsync.log"

KEY_LAST_CHECK_TIME = "last_check_time"
KEY_LAST_ERROR_KIND = "last_error_kind"
KEY_LAST_ERROR_MESSAGE = "last_error_message"
KEY_LAST_ERROR_TIME = "last_error_time"
KEY_FIRST_DOWNLOAD_NOTIFIED = "first_download_notified"
KEY_NOTIFICATION_SCHEDULED_AT = "notification_scheduled_at"
KEY_NOTIFICATION_REQUESTED_AT = "notification_requested_at"
KEY_NOTIFICATION_CANCELLED = "notification_cancelled"

MIN_CHECK_SPACING_MS = 2_000
NETWORK_ERROR_COOLDOWN_MS = 10 * 60 * 1000

_NETWORK_KINDS = frozenset({
    ErrorKind.NO_INTERNET,
    ErrorKind.DNS_FAILURE,
    ErrorKind.TIMEOUT,
    ErrorKind.SSL_ERROR,
})


def setup_logging(
    log_path: Path | None,
    verbose: bool = False,
    console_level: int | None = None,
) -> None:
    """Configure logging to output to both file and stdout.

    Calling it again replaces the handlers installed by a previous call.

    Args:
        log_path: Path to the log file (None for console only).
        verbose: Log at DEBUG instead of INFO.
        console_level: Optional stricter level for the stdout handler.
    """
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = logging.Formatter(log_format)

    root_logger = logging.getLogger("giftsync")
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    if console_level is not None:
        stdout_handler.setLevel(console_level)
    root_logger.addHandler(stdout_handler)

    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


class GiftSyncApp:
    """Owns the long-lived collaborators of one installation."""

    def __init__(
        self,
        config_dir: Path,
        app_config: AppConfig,
        settings: SettingsStore,
        store: RemoteStore,
        alarms: AlarmScheduler,
        clock: Clock = system_clock,
    ) -> None:
        """Initialize the app.

        Args:
            config_dir: Directory holding config.json, settings.json and the log.
            app_config: Bundled defaults after config.json and env overrides.
            settings: Persistent key/value settings.
            store: Remote store the export file lives in.
            alarms: Scheduler for the gift reveal alarm.
            clock: Source of "now".
        """
        self.config_dir = config_dir
        self.app_config = app_config
        self.settings = settings
        self.store = store
        self.alarms = alarms
        self._clock = clock
        self.admin = AdminSettings(settings)
        self.remote_config = RemoteConfigManager(store, settings)
        self.config_source = LayeredConfigSource(app_config, self.admin, self.remote_config)
        self.engine = SyncEngine(store)

    @classmethod
    def from_config_dir(cls, config_dir: Path | None = None) -> GiftSyncApp:
        """Build an app with the Drive client and the background alarm scheduler.

        Raises:
            ConfigError: If config.json is invalid.
        """
        config_dir = config_dir or get_config_dir()
        app_config = load_app_config(config_dir)
        settings = SettingsStore(config_dir / SETTINGS_FILE_NAME)
        store = DriveClient(
            ServiceAccountFileCredentials(app_config.service_account_file),
            timeout=app_config.request_timeout,
            connect_timeout=app_config.connect_timeout,
        )
        alarms = BackgroundAlarmScheduler(
            handler=notify_gift_ready,
            exact_permission=lambda: app_config.exact_alarms_allowed,
            inexact_window_seconds=app_config.inexact_window_seconds,
        )
        return cls(config_dir, app_config, settings, store, alarms)

    @property
    def log_path(self) -> Path:
        return self.config_dir / LOG_FILE_NAME

    def cache(self) -> LocalCache:
        """Get the local cache for the currently configured file name."""
        cache_dir = self.app_config.resolve_cache_dir(self.config_dir)
        return LocalCache(cache_dir / self.config_source.file_name())

    def start(self) -> None:
        self.alarms.start()

    def stop(self) -> None:
        self.alarms.stop()
        if self.settings.contains(KEY_NOTIFICATION_SCHEDULED_AT):
            self.settings.remove(KEY_NOTIFICATION_SCHEDULED_AT)
        self.store.close()

    # Sync

    def run_sync_pass(self, force: bool = False) -> SyncResult:
        """Run one sync pass against the configured folder.

        Args:
            force: Download the newest candidate even when the cache is current.

        Returns:
            The pass result; failures are recorded, not raised.
        """
        try:
            folder_id = self.config_source.folder_id()
        except ConfigError as e:
            logger.error("Cannot sync: %s", e)
            result = SyncResult(error=e, error_kind=ErrorKind.UNKNOWN)
            self.record_error(result)
            return result

        cache = self.cache()
        result = self.engine.run_pass(
            folder_id,
            self.config_source.target_suffix(),
            cache,
            force=force,
        )
        self.settings.set(KEY_LAST_CHECK_TIME, to_epoch_millis(self._clock()))

        if result.success:
            self.clear_last_error()
            if result.downloaded and not self.settings.get(KEY_FIRST_DOWNLOAD_NOTIFIED, False):
                notify_download_complete(cache.path.name)
                self.settings.set(KEY_FIRST_DOWNLOAD_NOTIFIED, True)
        else:
            self.record_error(result)
            if force:
                notify_error(f"Download failed: {result.error}")
        return result

    def periodic_check(self) -> SyncResult:
        """Work done by the periodic job: refresh config, re-arm, then sync.

        Settings are re-read first so requests saved by `giftsync arm` or
        `giftsync cancel` in another process take effect here.
        """
        self.settings.reload()
        if self.app_config.remote_config_enabled:
            self.fetch_remote_config()
        self.restore_after_boot()
        return self.run_sync_pass()

    def build_trigger(self) -> PeriodicSyncTrigger:
        """Build the periodic trigger for the daemon."""
        return PeriodicSyncTrigger(
            SyncJob(self.periodic_check),
            interval_hours=self.config_source.check_interval_hours(),
            initial_backoff=timedelta(minutes=self.app_config.retry_backoff_minutes),
            clock=self._clock,
        )

    def can_check_now(self) -> bool:
        """Check whether an ad-hoc (non-forced) check is allowed right now.

        Checks are refused within 2 seconds of the previous check and
        within 10 minutes of a recorded network error.
        """
        now_ms = to_epoch_millis(self._clock())

        last_check = self.settings.get(KEY_LAST_CHECK_TIME)
        if last_check is not None and now_ms - int(last_check) < MIN_CHECK_SPACING_MS:
            logger.debug("Check requested too soon after the previous one")
            return False

        error = self.last_error()
        if error is not None and error["kind"] in {k.name for k in _NETWORK_KINDS}:
            if now_ms - int(error["time"]) < NETWORK_ERROR_COOLDOWN_MS:
                logger.debug("Recent network error, postponing check")
                return False
        return True

    # Errors

    def record_error(self, result: SyncResult) -> None:
        kind = result.error_kind or ErrorKind.UNKNOWN
        self.settings.update({
            KEY_LAST_ERROR_KIND: kind.name,
            KEY_LAST_ERROR_MESSAGE: str(result.error),
            KEY_LAST_ERROR_TIME: to_epoch_millis(self._clock()),
        })

    def clear_last_error(self) -> None:
        if self.settings.contains(KEY_LAST_ERROR_KIND):
            self.settings.remove(KEY_LAST_ERROR_KIND, KEY_LAST_ERROR_MESSAGE, KEY_LAST_ERROR_TIME)

    def last_error(self) -> dict[str, Any] | None:
        """Get the last recorded error as {kind, message, time}, or None."""
        kind = self.settings.get(KEY_LAST_ERROR_KIND)
        if kind is None:
            return None
        return {
            "kind": kind,
            "message": self.settings.get(KEY_LAST_ERROR_MESSAGE, ""),
            "time": int(self.settings.get(KEY_LAST_ERROR_TIME, 0)),
        }

    # Alarm

    def request_notification(self, fire_instant: datetime | None = None) -> datetime | None:
        """Save the reveal request that restore_after_boot() arms.

        An explicit instant overrides the configured birthday until the next
        request without one. Any earlier cancellation is dropped.

        Args:
            fire_instant: Instant to fire at (default: the configured birthday).

        Returns:
            The requested instant, or None if it is not in the future (nothing saved).

        Raises:
            ConfigError: If the configured birthday is not a real date.
        """
        instant = fire_instant if fire_instant is not None else self.config_source.fire_instant()
        if instant <= self._clock():
            logger.info("Not saving notification for %s: not in the future", format_instant(instant))
            return None

        if fire_instant is not None:
            self.settings.update({
                KEY_NOTIFICATION_REQUESTED_AT: to_epoch_millis(instant),
                KEY_NOTIFICATION_CANCELLED: False,
            })
        else:
            self.settings.remove(KEY_NOTIFICATION_REQUESTED_AT, KEY_NOTIFICATION_CANCELLED)
        return instant

    def arm_notification(self, fire_instant: datetime | None = None) -> ArmedAlarm | None:
        """Arm the gift reveal alarm and save the request.

        Re-arming replaces the previous alarm. An instant that is not in
        the future arms nothing.

        Args:
            fire_instant: Instant to fire at (default: the configured birthday).

        Returns:
            The armed alarm, or None if nothing was armed.

        Raises:
            ConfigError: If the configured birthday is not a real date.
        """
        instant = self.request_notification(fire_instant)
        if instant is None:
            return None
        return self._arm(instant)

    def _arm(self, instant: datetime) -> ArmedAlarm | None:
        armed = self.alarms.schedule(ScheduleRequest(GIFT_REVEAL_ALARM, to_epoch_millis(instant)))
        if armed is None:
            return None
        if self.alarms.is_running():
            self.settings.set(KEY_NOTIFICATION_SCHEDULED_AT, to_epoch_millis(armed.fire_at))
        else:
            logger.info("Alarm scheduler not running, %s fires only after start", GIFT_REVEAL_ALARM)
        return armed

    def cancel_notification(self) -> None:
        """Cancel the reveal alarm and keep it cancelled across restarts."""
        self.alarms.cancel(GIFT_REVEAL_ALARM)
        self.settings.update({KEY_NOTIFICATION_CANCELLED: True})
        self.settings.remove(KEY_NOTIFICATION_REQUESTED_AT, KEY_NOTIFICATION_SCHEDULED_AT)

    def notification_cancelled(self) -> bool:
        return bool(self.settings.get(KEY_NOTIFICATION_CANCELLED, False))

    def requested_notification(self) -> datetime | None:
        """Get the explicitly requested reveal instant, if any."""
        value = self.settings.get(KEY_NOTIFICATION_REQUESTED_AT)
        return from_epoch_millis(int(value)) if value is not None else None

    def scheduled_notification(self) -> datetime | None:
        """Get the instant of the alarm armed in a running scheduler."""
        value = self.settings.get(KEY_NOTIFICATION_SCHEDULED_AT)
        return from_epoch_millis(int(value)) if value is not None else None

    def restore_after_boot(self) -> ArmedAlarm | None:
        """Re-arm the reveal alarm after a restart if it still lies ahead.

        A saved cancellation keeps the alarm disarmed; a saved explicit
        instant takes precedence over the configured birthday.
        """
        if not self.app_config.birthday_notification_enabled:
            logger.info("Birthday notification disabled, not arming")
            return None
        if self.notification_cancelled():
            logger.info("Birthday notification cancelled, not arming")
            self.alarms.cancel(GIFT_REVEAL_ALARM)
            return None

        fire_instant = self.requested_notification()
        if fire_instant is None:
            try:
                fire_instant = self.config_source.fire_instant()
            except ConfigError as e:
                logger.error("Cannot arm birthday notification: %s", e)
                return None
        if fire_instant <= self._clock():
            logger.info("Birthday %s has passed, not arming", format_instant(fire_instant))
            return None
        return self._arm(fire_instant)

    # Remote config

    def fetch_remote_config(self, folder_id: str | None = None) -> bool:
        """Refresh the cached app_config.json.

        Args:
            folder_id: Folder to read from (default: the configured folder).

        Returns:
            True if the cache holds the current remote document.
        """
        if folder_id is None:
            try:
                folder_id = self.config_source.folder_id()
            except ConfigError as e:
                logger.warning("Cannot fetch remote config: %s", e)
                return False
        return self.remote_config.fetch_remote_config(folder_id)

    def status(self) -> dict[str, Any]:
        """Get a snapshot of configuration, cache and alarm state."""
        entry = self.cache().entry()
        last_check = self.settings.get(KEY_LAST_CHECK_TIME)
        return {
            "config": self.config_source.describe(),
            "admin_enabled": self.admin.is_enabled(),
            "cache_path": str(entry.path),
            "cache_modified": format_instant(entry.last_modified_at) if entry.last_modified_at else None,
            "last_check": format_instant(from_epoch_millis(int(last_check))) if last_check else None,
            "last_error": self.last_error(),
            "notification_scheduled_at": (
                format_instant(scheduled) if (scheduled := self.scheduled_notification()) else None
            ),
            "notification_requested_at": (
                format_instant(requested) if (requested := self.requested_notification()) else None
            ),
            "notification_cancelled": self.notification_cancelled(),
            "remote_config_last_updated": self.remote_config.last_update_time() or None,
        }
