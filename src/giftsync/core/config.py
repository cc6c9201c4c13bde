"""Bundled configuration for GiftSync.

This module defines the default configuration values shipped with the
application and the loader that applies the local ``config.json`` file and
environment overrides on top of them.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields
from datetime import datetime
from pathlib import Path
from typing import Any

from giftsync.core.timeutil import Clock, compose_fire_instant, system_clock

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.json"


class ConfigError(Exception):
    """Required configuration value is missing or invalid."""


def check_file_name(name: str) -> str:
    """Check that a cache file name is a bare name inside the cache directory.

    Args:
        name: Candidate file name.

    Returns:
        The unchanged name.

    Raises:
        ValueError: If the name is empty, absolute or contains path components.
    """
    if (
        not name
        or "/" in name
        or "\\" in name
        or ".." in name
        or "\0" in name
        or Path(name).is_absolute()
        or Path(name).name != name
    ):
        raise ValueError(f"Invalid file name: {name!r}")
    return name


def get_config_dir() -> Path:
    """Get the configuration directory for GiftSync.

    Returns:
        Path from $GIFTSYNC_HOME, or ~/.giftsync.
    """
    override = os.environ.get("GIFTSYNC_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".giftsync"


@dataclass
class AppConfig:
    """Bundled defaults for the sync and alarm core.

    Attributes:
        drive_folder_id: Drive folder holding the export file and app_config.json.
        target_file_name: Local cache file name for the downloaded export.
        target_suffix: Only remote files ending with this suffix are candidates.
        birthday_year: Year of the reveal instant.
        birthday_month: Month of the reveal instant (1-12).
        birthday_day: Day of the reveal instant.
        birthday_hour: Hour of the reveal instant (0-23).
        birthday_minute: Minute of the reveal instant (0-59).
        check_interval_hours: Interval between periodic sync passes.
        request_timeout: Per-request read timeout in seconds.
        connect_timeout: Per-request connect timeout in seconds.
        daily_file_check_enabled: Whether the periodic sync job runs at all.
        birthday_notification_enabled: Whether the reveal alarm is armed.
        remote_config_enabled: Whether app_config.json is fetched before passes.
        verbose_logging: Log at DEBUG instead of INFO.
        exact_alarms_allowed: Whether precise alarms are permitted on this host.
        inexact_window_seconds: Delivery granularity of the inexact fallback.
        retry_backoff_minutes: Initial delay before retrying a failed pass.
        service_account_file: Path to the Drive service account JSON key.
        cache_dir: Directory holding the cached export file.
    """

    drive_folder_id: str = ""
    target_file_name: str = "backup.daylio"
    target_suffix: str = ".daylio"
    birthday_year: int = 2025
    birthday_month: int = 5
    birthday_day: int = 15
    birthday_hour: int = 12
    birthday_minute: int = 0
    check_interval_hours: int = 24
    request_timeout: float = 60.0
    connect_timeout: float = 45.0
    daily_file_check_enabled: bool = True
    birthday_notification_enabled: bool = True
    remote_config_enabled: bool = True
    verbose_logging: bool = False
    exact_alarms_allowed: bool = True
    inexact_window_seconds: int = 600
    retry_backoff_minutes: int = 30
    service_account_file: str | None = None
    cache_dir: str | None = None

    def __post_init__(self) -> None:
        """Normalize string values."""
        self.drive_folder_id = self.drive_folder_id.strip()
        self.target_suffix = self.target_suffix.strip()

    @property
    def birthday(self) -> datetime:
        """Bundled reveal instant in the Warsaw zone."""
        return compose_fire_instant(
            self.birthday_year,
            self.birthday_month,
            self.birthday_day,
            self.birthday_hour,
            self.birthday_minute,
        )

    def resolve_cache_dir(self, config_dir: Path) -> Path:
        """Get the cache directory, defaulting to <config_dir>/cache."""
        if self.cache_dir:
            return Path(self.cache_dir).expanduser()
        return config_dir / "cache"

    def validate(self, clock: Clock = system_clock) -> list[str]:
        """Check the configuration and return a list of problems.

        Args:
            clock: Source of "now" for the past-birthday check.

        Returns:
            Human-readable error messages (empty if all OK).
        """
        errors: list[str] = []

        try:
            if self.birthday <= clock():
                errors.append("Birthday date is in the past")
        except ValueError as e:
            errors.append(f"Error in birthday date configuration: {e}")

        if not self.drive_folder_id:
            errors.append("Google Drive folder ID is not configured")

        if not self.target_file_name:
            errors.append("Target file name is empty")
        else:
            try:
                check_file_name(self.target_file_name)
            except ValueError as e:
                errors.append(str(e))

        if self.check_interval_hours <= 0:
            errors.append(
                f"Check interval must be positive, got {self.check_interval_hours}"
            )

        if self.service_account_file is None:
            errors.append("Service account file is not configured")
        elif not Path(self.service_account_file).expanduser().exists():
            errors.append(f"Service account file not found: {self.service_account_file}")

        return errors


# Environment variable -> (field name, converter)
_ENV_OVERRIDES: dict[str, tuple[str, Any]] = {
    "GIFTSYNC_FOLDER_ID": ("drive_folder_id", str),
    "GIFTSYNC_FILE_NAME": ("target_file_name", str),
    "GIFTSYNC_SERVICE_ACCOUNT": ("service_account_file", str),
    "GIFTSYNC_INTERVAL_HOURS": ("check_interval_hours", int),
    "GIFTSYNC_VERBOSE": ("verbose_logging", lambda v: v.lower() in ("1", "true", "yes")),
}


def load_app_config(config_dir: Path | None = None) -> AppConfig:
    """Load bundled defaults, then config.json, then environment overrides.

    Unknown keys in config.json are ignored with a warning.

    Args:
        config_dir: Directory holding config.json (default: get_config_dir()).

    Returns:
        Populated AppConfig.

    Raises:
        ConfigError: If config.json is not valid JSON, a value has the wrong type,
            the birthday is not a real date or the file name is not a bare name.
    """
    config_dir = config_dir or get_config_dir()
    values: dict[str, Any] = {}

    config_file = config_dir / CONFIG_FILE_NAME
    if config_file.exists():
        try:
            data = json.loads(config_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid {config_file}: {e}") from e
        known = {f.name for f in fields(AppConfig)}
        for key, value in data.items():
            if key in known:
                values[key] = value
            else:
                logger.warning("Ignoring unknown config key %r in %s", key, config_file)

    for env_name, (field_name, convert) in _ENV_OVERRIDES.items():
        raw = os.environ.get(env_name)
        if raw is None:
            continue
        try:
            values[field_name] = convert(raw)
        except ValueError as e:
            raise ConfigError(f"Invalid value for {env_name}: {raw!r}") from e

    try:
        config = AppConfig(**values)
    except (TypeError, AttributeError) as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    try:
        config.birthday  # noqa: B018 - validates the calendar date
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid birthday in configuration: {e}") from e
    try:
        check_file_name(config.target_file_name)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid target_file_name in configuration: {e}") from e
    return config
