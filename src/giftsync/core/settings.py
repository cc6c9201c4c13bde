"""Flat key/value settings persisted on local storage.

This module provides:
- SettingsStore: Thread-safe JSON key/value file with atomic writes
- AdminSettings: Local admin overrides of the bundled configuration

Keys written by the core:
    admin_enabled, admin_birthday_*, admin_drive_folder_id,
    admin_daylio_file_name, remote_*, notification_scheduled_at,
    last_check_time, last_error_*, first_download_notified
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

from giftsync.core.config import check_file_name
from giftsync.core.timeutil import compose_fire_instant

logger = logging.getLogger(__name__)

SETTINGS_FILE_NAME = "settings.json"


class SettingsStore:
    """Flat JSON key/value store.

    Every mutation rewrites the whole file through a temporary file and
    ``os.replace`` so a crash never leaves a truncated settings file. The
    new contents are built from the file as currently on disk, so keys
    written by another process (the CLI next to a running daemon) survive.
    Memory is only updated once the write succeeded.
    """

    def __init__(self, path: Path) -> None:
        """Initialize the store.

        Args:
            path: Location of the JSON file (created on first write).
        """
        self._path = path
        self._lock = threading.Lock()
        self._data: dict[str, Any] = self._read() or {}

    @property
    def path(self) -> Path:
        """Location of the backing file."""
        return self._path

    def _read(self) -> dict[str, Any] | None:
        if not self._path.exists():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not read settings from %s: %s", self._path, e)
            return None
        if not isinstance(data, dict):
            logger.warning("Settings file %s is not an object, ignoring", self._path)
            return None
        return data

    def _current(self) -> dict[str, Any]:
        data = self._read()
        return data if data is not None else dict(self._data)

    def _commit(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            tmp_path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError:
            with contextlib.suppress(OSError):
                tmp_path.unlink()
            raise
        self._data = data

    def reload(self) -> None:
        """Re-read the file, picking up changes made by other processes."""
        with self._lock:
            data = self._read()
            if data is not None:
                self._data = data

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value, or default if absent."""
        with self._lock:
            return self._data.get(key, default)

    def contains(self, key: str) -> bool:
        """Check whether a key is present."""
        with self._lock:
            return key in self._data

    def set(self, key: str, value: Any) -> None:
        """Set a single value and persist."""
        self.update({key: value})

    def update(self, values: dict[str, Any]) -> None:
        """Set several values in one write.

        Raises:
            OSError: If the file cannot be written; memory is left unchanged.
        """
        with self._lock:
            data = self._current()
            data.update(values)
            self._commit(data)

    def remove(self, *keys: str) -> None:
        """Remove keys (missing keys are ignored) and persist."""
        with self._lock:
            data = self._current()
            for key in keys:
                data.pop(key, None)
            self._commit(data)

    def remove_prefix(self, prefix: str) -> None:
        """Remove every key starting with prefix."""
        with self._lock:
            data = {k: v for k, v in self._current().items() if not k.startswith(prefix)}
            self._commit(data)

    def snapshot(self) -> dict[str, Any]:
        """Get a shallow copy of all values."""
        with self._lock:
            return dict(self._data)


# Admin override keys
KEY_ADMIN_ENABLED = "admin_enabled"
KEY_ADMIN_BIRTHDAY_YEAR = "admin_birthday_year"
KEY_ADMIN_BIRTHDAY_MONTH = "admin_birthday_month"
KEY_ADMIN_BIRTHDAY_DAY = "admin_birthday_day"
KEY_ADMIN_BIRTHDAY_HOUR = "admin_birthday_hour"
KEY_ADMIN_BIRTHDAY_MINUTE = "admin_birthday_minute"
KEY_ADMIN_DRIVE_FOLDER_ID = "admin_drive_folder_id"
KEY_ADMIN_DAYLIO_FILE_NAME = "admin_daylio_file_name"

_BIRTHDAY_KEYS = (
    KEY_ADMIN_BIRTHDAY_YEAR,
    KEY_ADMIN_BIRTHDAY_MONTH,
    KEY_ADMIN_BIRTHDAY_DAY,
    KEY_ADMIN_BIRTHDAY_HOUR,
    KEY_ADMIN_BIRTHDAY_MINUTE,
)


class AdminSettings:
    """Local admin overrides for birthday, folder and file name.

    Overrides are only reported while admin mode is enabled. Setting any
    override enables admin mode.
    """

    def __init__(self, store: SettingsStore) -> None:
        self._store = store

    def is_enabled(self) -> bool:
        return bool(self._store.get(KEY_ADMIN_ENABLED, False))

    def set_enabled(self, enabled: bool) -> None:
        self._store.set(KEY_ADMIN_ENABLED, enabled)
        logger.info("Admin config %s", "enabled" if enabled else "disabled")

    def birthday(self) -> datetime | None:
        """Get the admin birthday in the Warsaw zone, or None if not set."""
        if not self.is_enabled():
            return None
        values = [self._store.get(key) for key in _BIRTHDAY_KEYS]
        if any(v is None for v in values):
            return None
        year, month, day, hour, minute = (int(v) for v in values)
        try:
            return compose_fire_instant(year, month, day, hour, minute)
        except ValueError as e:
            logger.warning("Ignoring invalid admin birthday: %s", e)
            return None

    def set_birthday(self, year: int, month: int, day: int, hour: int, minute: int) -> None:
        """Set the admin birthday (month 1-12).

        Raises:
            ValueError: If the fields do not form a real date/time.
        """
        compose_fire_instant(year, month, day, hour, minute)
        self._store.update({
            KEY_ADMIN_ENABLED: True,
            KEY_ADMIN_BIRTHDAY_YEAR: year,
            KEY_ADMIN_BIRTHDAY_MONTH: month,
            KEY_ADMIN_BIRTHDAY_DAY: day,
            KEY_ADMIN_BIRTHDAY_HOUR: hour,
            KEY_ADMIN_BIRTHDAY_MINUTE: minute,
        })
        logger.info("Admin birthday set to %d-%02d-%02d %02d:%02d", year, month, day, hour, minute)

    def drive_folder_id(self) -> str | None:
        if not self.is_enabled():
            return None
        return self._store.get(KEY_ADMIN_DRIVE_FOLDER_ID) or None

    def set_drive_folder_id(self, folder_id: str) -> None:
        self._store.update({KEY_ADMIN_ENABLED: True, KEY_ADMIN_DRIVE_FOLDER_ID: folder_id})
        logger.info("Admin Drive folder ID set")

    def file_name(self) -> str | None:
        if not self.is_enabled():
            return None
        return self._store.get(KEY_ADMIN_DAYLIO_FILE_NAME) or None

    def set_file_name(self, file_name: str) -> None:
        """Set the admin cache file name.

        Raises:
            ValueError: If the name is not a bare file name.
        """
        check_file_name(file_name)
        self._store.update({KEY_ADMIN_ENABLED: True, KEY_ADMIN_DAYLIO_FILE_NAME: file_name})
        logger.info("Admin file name set to %s", file_name)

    def clear(self) -> None:
        """Drop all admin overrides and return to bundled defaults."""
        self._store.remove_prefix("admin_")
        logger.info("Admin config cleared - using bundled defaults")

    def summary(self) -> str:
        """Get a multi-line summary of the active admin overrides."""
        if not self.is_enabled():
            return "Using bundled default configuration"

        birthday = self.birthday()
        folder_id = self.drive_folder_id()
        file_name = self.file_name()

        lines = ["Admin Configuration Active:"]
        if birthday is not None:
            lines.append(f"Birthday: {birthday:%Y-%m-%d %H:%M}")
        else:
            lines.append("Birthday: Using default")
        if folder_id is not None:
            lines.append(f"Drive Folder: {folder_id[:20]}...")
        else:
            lines.append("Drive Folder: Using default")
        lines.append(f"File Name: {file_name}" if file_name else "File Name: Using default")
        return "\n".join(lines)
