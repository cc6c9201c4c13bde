"""Tests for the GiftSync CLI."""

from __future__ import annotations

import logging
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from giftsync.client.alarm import GIFT_REVEAL_ALARM, BackgroundAlarmScheduler
from giftsync.client.api import NetworkError
from giftsync.client.app import GiftSyncApp
from giftsync.client.cli import cli
from giftsync.core.config import AppConfig
from giftsync.core.settings import SettingsStore
from giftsync.core.timeutil import compose_fire_instant
from tests.fakes import T0, FakeAlarmScheduler, FakeClock, FakeRemoteStore, make_file


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def store() -> FakeRemoteStore:
    return FakeRemoteStore(files=[make_file("f1", "data.daylio", T0, b"diary")])


@pytest.fixture
def app(tmp_path: Path, store: FakeRemoteStore) -> GiftSyncApp:
    """Create an app wired to fakes for CLI invocation."""
    clock = FakeClock()
    config = AppConfig(drive_folder_id="folder-1")
    return GiftSyncApp(
        tmp_path,
        config,
        SettingsStore(tmp_path / "settings.json"),
        store,
        FakeAlarmScheduler(now=clock.now),
        clock=clock,
    )


@pytest.fixture(autouse=True)
def no_notifications():
    with patch("giftsync.client.app.notify_download_complete"), \
            patch("giftsync.client.app.notify_error"):
        yield


class TestCLI:
    """Tests for the command group."""

    def test_help(self, runner: CliRunner) -> None:
        """Should list the commands."""
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("sync", "download", "status", "arm", "cancel", "run", "admin"):
            assert command in result.output


class TestSyncCommands:
    """Tests for sync, download and fetch-config."""

    def test_sync_downloads(self, runner: CliRunner, app: GiftSyncApp) -> None:
        """Should report the downloaded file."""
        result = runner.invoke(cli, ["sync"], obj=app)
        assert result.exit_code == 0
        assert "Downloaded data.daylio" in result.output

    def test_sync_up_to_date(self, runner: CliRunner, app: GiftSyncApp) -> None:
        """Should report an up-to-date cache."""
        runner.invoke(cli, ["sync"], obj=app)
        app._clock.advance(seconds=5)
        result = runner.invoke(cli, ["sync"], obj=app)
        assert result.exit_code == 0
        assert "Up to date with data.daylio" in result.output

    def test_sync_throttled(self, runner: CliRunner, app: GiftSyncApp) -> None:
        """Should refuse a check right after the previous one."""
        runner.invoke(cli, ["sync"], obj=app)
        result = runner.invoke(cli, ["sync"], obj=app)
        assert result.exit_code == 1
        assert "too recently" in result.output

    def test_sync_failure(self, runner: CliRunner, app: GiftSyncApp,
                          store: FakeRemoteStore) -> None:
        """Should print the classified error and exit 1."""
        store.init_error = NetworkError("offline")
        result = runner.invoke(cli, ["sync"], obj=app)
        assert result.exit_code == 1
        assert "Error (NO_INTERNET): offline" in result.output

    def test_download_forces(self, runner: CliRunner, app: GiftSyncApp,
                             store: FakeRemoteStore) -> None:
        """Should download even when the cache is current."""
        runner.invoke(cli, ["sync"], obj=app)
        result = runner.invoke(cli, ["download"], obj=app)
        assert result.exit_code == 0
        assert store.downloads == ["f1", "f1"]

    def test_no_files(self, runner: CliRunner, app: GiftSyncApp,
                      store: FakeRemoteStore) -> None:
        """Should report an empty folder."""
        store.files = []
        result = runner.invoke(cli, ["sync"], obj=app)
        assert result.exit_code == 0
        assert "No export files" in result.output

    def test_fetch_config_missing(self, runner: CliRunner, app: GiftSyncApp) -> None:
        """Should exit 1 when app_config.json is missing."""
        result = runner.invoke(cli, ["fetch-config"], obj=app)
        assert result.exit_code == 1


class TestAlarmCommands:
    """Tests for arm and cancel."""

    def test_arm_default(self, runner: CliRunner, app: GiftSyncApp) -> None:
        """Should request the configured birthday."""
        result = runner.invoke(cli, ["arm"], obj=app)
        assert result.exit_code == 0
        assert "Notification requested for 2025-05-15 12:00:00" in result.output
        assert app.requested_notification() is None
        assert app.notification_cancelled() is False

    def test_arm_at(self, runner: CliRunner, app: GiftSyncApp) -> None:
        """Should save an explicit Warsaw time for the daemon."""
        result = runner.invoke(cli, ["arm", "--at", "2025-02-01 18:30"], obj=app)
        assert result.exit_code == 0
        assert app.requested_notification() == compose_fire_instant(2025, 2, 1, 18, 30)
        assert app.restore_after_boot().fire_at == compose_fire_instant(2025, 2, 1, 18, 30)

    def test_arm_bad_format(self, runner: CliRunner, app: GiftSyncApp) -> None:
        """Should reject a malformed time."""
        result = runner.invoke(cli, ["arm", "--at", "tomorrow"], obj=app)
        assert result.exit_code == 2

    def test_arm_past(self, runner: CliRunner, app: GiftSyncApp) -> None:
        """Should exit 1 for a past time and save nothing."""
        result = runner.invoke(cli, ["arm", "--at", "2024-01-01 00:00"], obj=app)
        assert result.exit_code == 1
        assert "not in the future" in result.output
        assert app.requested_notification() is None

    def test_arm_invalid_birthday(self, runner: CliRunner, app: GiftSyncApp) -> None:
        """Should exit 1 with a readable error for an impossible birthday."""
        app.app_config.birthday_month = 2
        app.app_config.birthday_day = 31
        result = runner.invoke(cli, ["arm"], obj=app)
        assert result.exit_code == 1
        assert "Invalid birthday" in result.output

    def test_arm_does_not_claim_scheduled(self, runner: CliRunner, tmp_path: Path,
                                          store: FakeRemoteStore) -> None:
        """Should leave the alarm to the daemon when no scheduler is running."""
        clock = FakeClock()
        alarms = BackgroundAlarmScheduler(handler=MagicMock(), clock=clock)
        app = GiftSyncApp(tmp_path, AppConfig(drive_folder_id="folder-1"),
                          SettingsStore(tmp_path / "settings.json"), store, alarms, clock=clock)

        result = runner.invoke(cli, ["arm", "--at", "2099-05-01 10:00"], obj=app)
        assert result.exit_code == 0
        assert app.scheduled_notification() is None

        restarted = GiftSyncApp(tmp_path, AppConfig(drive_folder_id="folder-1"),
                                SettingsStore(tmp_path / "settings.json"), FakeRemoteStore(),
                                BackgroundAlarmScheduler(handler=MagicMock(), clock=clock),
                                clock=clock)
        restarted.start()
        try:
            armed = restarted.restore_after_boot()
            assert armed.fire_at == compose_fire_instant(2099, 5, 1, 10, 0)
            assert restarted.scheduled_notification() == armed.fire_at
        finally:
            restarted.stop()
        assert restarted.scheduled_notification() is None

    def test_cancel(self, runner: CliRunner, app: GiftSyncApp) -> None:
        """Should save the cancellation so the daemon stays disarmed."""
        runner.invoke(cli, ["arm", "--at", "2025-02-01 18:30"], obj=app)
        app.restore_after_boot()
        result = runner.invoke(cli, ["cancel"], obj=app)
        assert result.exit_code == 0
        assert "Notification cancelled." in result.output
        assert GIFT_REVEAL_ALARM not in app.alarms.armed
        assert app.notification_cancelled() is True
        assert app.restore_after_boot() is None


class TestStatusCommands:
    """Tests for status and validate."""

    def test_status(self, runner: CliRunner, app: GiftSyncApp) -> None:
        """Should print configuration and cache state."""
        result = runner.invoke(cli, ["status"], obj=app)
        assert result.exit_code == 0
        assert "folder-1" in result.output
        assert "never downloaded" in result.output

    def test_status_shows_last_error(self, runner: CliRunner, app: GiftSyncApp,
                                     store: FakeRemoteStore) -> None:
        """Should show the last recorded error."""
        store.init_error = NetworkError("offline")
        runner.invoke(cli, ["sync"], obj=app)
        result = runner.invoke(cli, ["status"], obj=app)
        assert "NO_INTERNET" in result.output

    def test_status_shows_cancelled(self, runner: CliRunner, app: GiftSyncApp) -> None:
        """Should show a saved cancellation."""
        runner.invoke(cli, ["cancel"], obj=app)
        result = runner.invoke(cli, ["status"], obj=app)
        assert "Notification:      cancelled" in result.output

    def test_status_shows_request(self, runner: CliRunner, app: GiftSyncApp) -> None:
        """Should show a requested but not yet armed notification."""
        runner.invoke(cli, ["arm", "--at", "2025-02-01 18:30"], obj=app)
        result = runner.invoke(cli, ["status"], obj=app)
        assert "not armed" in result.output
        assert "Requested for:     2025-02-01 18:30:00" in result.output

    def test_status_invalid_birthday(self, runner: CliRunner, app: GiftSyncApp) -> None:
        """Should still print status for an impossible bundled birthday."""
        app.app_config.birthday_month = 2
        app.app_config.birthday_day = 31
        result = runner.invoke(cli, ["status"], obj=app)
        assert result.exit_code == 0, result.output
        assert "(invalid)" in result.output

    def test_validate_reports_problems(self, runner: CliRunner, app: GiftSyncApp) -> None:
        """Should list configuration problems and exit 1."""
        result = runner.invoke(cli, ["validate"], obj=app)
        assert result.exit_code == 1
        assert "Service account file is not configured" in result.output


class TestAdminCommands:
    """Tests for the admin group."""

    def test_show_default(self, runner: CliRunner, app: GiftSyncApp) -> None:
        """Should report bundled defaults."""
        result = runner.invoke(cli, ["admin", "show"], obj=app)
        assert "Using bundled default configuration" in result.output

    def test_set_birthday(self, runner: CliRunner, app: GiftSyncApp) -> None:
        """Should store the admin birthday."""
        result = runner.invoke(cli, ["admin", "set-birthday", "2025-07-04 09:00"], obj=app)
        assert result.exit_code == 0
        assert app.config_source.fire_instant() == compose_fire_instant(2025, 7, 4, 9, 0)

    def test_set_folder_and_file(self, runner: CliRunner, app: GiftSyncApp) -> None:
        """Should override folder and file name."""
        runner.invoke(cli, ["admin", "set-folder", "other-folder"], obj=app)
        runner.invoke(cli, ["admin", "set-file-name", "x.daylio"], obj=app)
        assert app.config_source.folder_id() == "other-folder"
        assert app.config_source.file_name() == "x.daylio"

    def test_disable_and_enable(self, runner: CliRunner, app: GiftSyncApp) -> None:
        """Should toggle admin overrides."""
        runner.invoke(cli, ["admin", "set-folder", "other-folder"], obj=app)
        runner.invoke(cli, ["admin", "disable"], obj=app)
        assert app.config_source.folder_id() == "folder-1"
        runner.invoke(cli, ["admin", "enable"], obj=app)
        assert app.config_source.folder_id() == "other-folder"

    def test_clear(self, runner: CliRunner, app: GiftSyncApp) -> None:
        """Should drop overrides after confirmation."""
        runner.invoke(cli, ["admin", "set-folder", "other-folder"], obj=app)
        result = runner.invoke(cli, ["admin", "clear", "--yes"], obj=app)
        assert result.exit_code == 0
        assert not app.admin.is_enabled()

    @pytest.mark.parametrize("name", ["../x.daylio", "/etc/passwd", "a/b.daylio"])
    def test_file_name_with_path_rejected(self, runner: CliRunner, app: GiftSyncApp,
                                          name: str) -> None:
        """Should refuse a file name that leaves the cache directory."""
        result = runner.invoke(cli, ["admin", "set-file-name", name], obj=app)
        assert result.exit_code == 1
        assert "Invalid file name" in result.output
        assert app.config_source.file_name() == "backup.daylio"

    def test_empty_folder_rejected(self, runner: CliRunner, app: GiftSyncApp) -> None:
        """Should refuse an empty folder id."""
        result = runner.invoke(cli, ["admin", "set-folder", "  "], obj=app)
        assert result.exit_code == 1


class TestRunCommand:
    """Tests for the daemon command."""

    def test_run_starts_and_stops(self, runner: CliRunner, app: GiftSyncApp) -> None:
        """Should arm the alarm, start the trigger and shut down cleanly."""
        with patch("giftsync.client.cli.daemon.threading.Event") as event_cls, \
                patch("giftsync.client.cli.daemon.signal.signal"), \
                patch.object(GiftSyncApp, "build_trigger") as build_trigger:
            event_cls.return_value.wait.return_value = True
            result = runner.invoke(cli, ["run", "--no-initial-check"], obj=app)

        assert result.exit_code == 0, result.output
        assert "Reveal alarm armed" in result.output
        build_trigger.return_value.start.assert_called_once_with(run_immediately=False)
        build_trigger.return_value.stop.assert_called_once()

    def test_run_honors_cancel(self, runner: CliRunner, app: GiftSyncApp) -> None:
        """Should keep the alarm disarmed after a cancel from another command."""
        runner.invoke(cli, ["cancel"], obj=app)
        with patch("giftsync.client.cli.daemon.threading.Event") as event_cls, \
                patch("giftsync.client.cli.daemon.signal.signal"), \
                patch.object(GiftSyncApp, "build_trigger"):
            event_cls.return_value.wait.return_value = True
            result = runner.invoke(cli, ["run", "--no-initial-check"], obj=app)

        assert result.exit_code == 0, result.output
        assert "Reveal alarm not armed" in result.output
        assert GIFT_REVEAL_ALARM not in app.alarms.armed

    def test_run_uses_requested_time(self, runner: CliRunner, app: GiftSyncApp) -> None:
        """Should arm the time saved by an earlier arm --at."""
        runner.invoke(cli, ["arm", "--at", "2025-02-01 18:30"], obj=app)
        with patch("giftsync.client.cli.daemon.threading.Event") as event_cls, \
                patch("giftsync.client.cli.daemon.signal.signal"), \
                patch.object(GiftSyncApp, "build_trigger"):
            event_cls.return_value.wait.return_value = True
            result = runner.invoke(cli, ["run", "--no-initial-check"], obj=app)

        assert "Reveal alarm armed for 2025-02-01 18:30" in result.output
        assert app.alarms.armed[GIFT_REVEAL_ALARM].fire_at == compose_fire_instant(2025, 2, 1, 18, 30)

    def test_run_check_disabled(self, runner: CliRunner, app: GiftSyncApp) -> None:
        """Should not start the trigger when the daily check is disabled."""
        app.app_config.daily_file_check_enabled = False
        with patch("giftsync.client.cli.daemon.threading.Event"), \
                patch("giftsync.client.cli.daemon.signal.signal"), \
                patch.object(GiftSyncApp, "build_trigger") as build_trigger:
            result = runner.invoke(cli, ["run"], obj=app)

        assert "Daily file check disabled" in result.output
        build_trigger.assert_not_called()


@pytest.fixture
def reset_logging():
    """Drop the handlers setup_logging installs on the package logger."""
    yield
    package_logger = logging.getLogger("giftsync")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()


@pytest.mark.usefixtures("reset_logging")
def test_default_app_built_from_config_dir(runner: CliRunner, tmp_path: Path,
                                           monkeypatch: pytest.MonkeyPatch) -> None:
    """Should build the app from GIFTSYNC_HOME when none is injected."""
    monkeypatch.setenv("GIFTSYNC_HOME", str(tmp_path))
    result = runner.invoke(cli, ["admin", "show"])
    assert result.exit_code == 0
    assert "Using bundled default configuration" in result.output
    assert (tmp_path / "giftsync.log").exists()


@pytest.mark.usefixtures("reset_logging")
def test_invalid_config_file(runner: CliRunner, tmp_path: Path,
                             monkeypatch: pytest.MonkeyPatch) -> None:
    """Should exit 1 with a readable error for a broken config.json."""
    monkeypatch.setenv("GIFTSYNC_HOME", str(tmp_path))
    (tmp_path / "config.json").write_text("{oops")
    result = runner.invoke(cli, ["status"])
    assert result.exit_code == 1
    assert "Error:" in result.output
