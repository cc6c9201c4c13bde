"""Cross-device configuration stored in the Drive folder.

One admin drops ``app_config.json`` into the shared folder and every
installation picks it up:

    {
      "version": 1,
      "birthday_year": 2025,
      "birthday_month": 5,
      "birthday_day": 15,
      "birthday_hour": 12,
      "birthday_minute": 0,
      "daylio_file_name": "backup.daylio",
      "last_updated": 1734567890000
    }

The last good document is cached in the settings store. A newer document
(greater ``last_updated``) replaces the cached one wholesale; a malformed
one is rejected and the cache is left as it was.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from giftsync.core.config import check_file_name
from giftsync.core.timeutil import compose_fire_instant, to_epoch_millis

if TYPE_CHECKING:
    from giftsync.client.api import RemoteStore
    from giftsync.core.settings import SettingsStore

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "app_config.json"

KEY_BIRTHDAY_YEAR = "remote_birthday_year"
KEY_BIRTHDAY_MONTH = "remote_birthday_month"
KEY_BIRTHDAY_DAY = "remote_birthday_day"
KEY_BIRTHDAY_HOUR = "remote_birthday_hour"
KEY_BIRTHDAY_MINUTE = "remote_birthday_minute"
KEY_DAYLIO_FILE_NAME = "remote_daylio_file_name"
KEY_LAST_UPDATED = "remote_last_updated"
KEY_VERSION = "remote_version"


class RemoteConfigError(Exception):
    """Remote config document is malformed."""


def _require_int(data: dict[str, Any], key: str, low: int | None = None, high: int | None = None) -> int:
    if key not in data:
        raise RemoteConfigError(f"Missing required field: {key}")
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise RemoteConfigError(f"Field {key} must be an integer, got {value!r}")
    if (low is not None and value < low) or (high is not None and value > high):
        raise RemoteConfigError(f"Field {key} out of range: {value}")
    return value


@dataclass(frozen=True)
class RemoteConfigDocument:
    """Immutable snapshot of app_config.json."""

    version: int
    birthday_year: int
    birthday_month: int
    birthday_day: int
    birthday_hour: int
    birthday_minute: int
    daylio_file_name: str
    last_updated: int  # epoch millis

    @property
    def birthday(self) -> datetime:
        """Reveal instant in the Warsaw zone."""
        return compose_fire_instant(
            self.birthday_year,
            self.birthday_month,
            self.birthday_day,
            self.birthday_hour,
            self.birthday_minute,
        )

    @classmethod
    def parse(cls, content: str | bytes, default_last_updated: int) -> RemoteConfigDocument:
        """Parse and validate a document.

        Args:
            content: Raw JSON.
            default_last_updated: Used when the document has no last_updated.

        Raises:
            RemoteConfigError: If the JSON is malformed, a field is missing,
                the version is below 1, the date is not a real date or the
                file name is not a bare name.
        """
        try:
            data = json.loads(content)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise RemoteConfigError(f"Invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise RemoteConfigError("Document must be a JSON object")

        version = data.get("version", 0)
        if isinstance(version, bool) or not isinstance(version, int) or version < 1:
            raise RemoteConfigError(f"Invalid config version: {version!r}")

        file_name = data.get("daylio_file_name")
        if not isinstance(file_name, str):
            raise RemoteConfigError("Missing required field: daylio_file_name")
        try:
            check_file_name(file_name)
        except ValueError as e:
            raise RemoteConfigError(f"Field daylio_file_name: {e}") from e

        last_updated = data.get("last_updated", default_last_updated)
        if isinstance(last_updated, bool) or not isinstance(last_updated, int):
            raise RemoteConfigError(f"Field last_updated must be an integer, got {last_updated!r}")

        document = cls(
            version=version,
            birthday_year=_require_int(data, "birthday_year", 1),
            birthday_month=_require_int(data, "birthday_month", 1, 12),
            birthday_day=_require_int(data, "birthday_day", 1, 31),
            birthday_hour=_require_int(data, "birthday_hour", 0, 23),
            birthday_minute=_require_int(data, "birthday_minute", 0, 59),
            daylio_file_name=file_name,
            last_updated=last_updated,
        )
        try:
            document.birthday  # noqa: B018 - validates the calendar date
        except ValueError as e:
            raise RemoteConfigError(f"Invalid birthday date: {e}") from e
        return document

    def to_settings(self) -> dict[str, Any]:
        return {
            KEY_VERSION: self.version,
            KEY_BIRTHDAY_YEAR: self.birthday_year,
            KEY_BIRTHDAY_MONTH: self.birthday_month,
            KEY_BIRTHDAY_DAY: self.birthday_day,
            KEY_BIRTHDAY_HOUR: self.birthday_hour,
            KEY_BIRTHDAY_MINUTE: self.birthday_minute,
            KEY_DAYLIO_FILE_NAME: self.daylio_file_name,
            KEY_LAST_UPDATED: self.last_updated,
        }

    @classmethod
    def from_settings(cls, values: dict[str, Any]) -> RemoteConfigDocument | None:
        if KEY_BIRTHDAY_YEAR not in values:
            return None
        try:
            return cls(
                version=int(values.get(KEY_VERSION, 1)),
                birthday_year=int(values[KEY_BIRTHDAY_YEAR]),
                birthday_month=int(values[KEY_BIRTHDAY_MONTH]),
                birthday_day=int(values[KEY_BIRTHDAY_DAY]),
                birthday_hour=int(values[KEY_BIRTHDAY_HOUR]),
                birthday_minute=int(values[KEY_BIRTHDAY_MINUTE]),
                daylio_file_name=str(values.get(KEY_DAYLIO_FILE_NAME, "")),
                last_updated=int(values.get(KEY_LAST_UPDATED, 0)),
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.error("Error reading cached remote config: %s", e)
            return None


class RemoteConfigManager:
    """Fetches app_config.json and keeps the last good copy."""

    def __init__(self, store: RemoteStore, settings: SettingsStore) -> None:
        self._store = store
        self._settings = settings

    def cached(self) -> RemoteConfigDocument | None:
        """Get the last good document, or None if none was ever fetched."""
        return RemoteConfigDocument.from_settings(self._settings.snapshot())

    def last_update_time(self) -> int:
        """Get last_updated of the cached document (0 if none)."""
        return int(self._settings.get(KEY_LAST_UPDATED, 0))

    def clear(self) -> None:
        self._settings.remove_prefix("remote_")
        logger.info("Cleared remote config cache")

    def fetch_remote_config(self, folder_id: str) -> bool:
        """Fetch app_config.json from the folder into the local cache.

        Never raises: network, auth and parse failures are logged and
        reported as False, and the cached document is left unchanged.

        Args:
            folder_id: Drive folder containing app_config.json.

        Returns:
            True if the cache holds the current remote document afterwards.
        """
        try:
            logger.debug("Fetching remote config from folder %s", folder_id)
            self._store.initialize()
            files = self._store.list_files_in_folder(folder_id)
            config_file = next((f for f in files if f.name == CONFIG_FILE_NAME), None)
            if config_file is None:
                logger.info("Remote config file not found in Drive folder")
                return False

            modified_ms = to_epoch_millis(config_file.modified_at)
            cached_last_updated = self.last_update_time()
            if self.cached() is not None and modified_ms <= cached_last_updated:
                logger.debug("Remote config is not newer than cached version, skipping download")
                return True

            with self._store.download_file(config_file.id) as stream:
                content = stream.read()
            document = RemoteConfigDocument.parse(content, default_last_updated=modified_ms)
        except RemoteConfigError as e:
            logger.error("Rejected remote config: %s", e)
            return False
        except Exception as e:
            logger.warning("Error fetching remote config: %s", e)
            return False

        current = self.cached()
        if current is not None and document.last_updated <= current.last_updated:
            logger.info("Remote config last_updated is not newer than cached, keeping cache")
            return True

        try:
            self._settings.update(document.to_settings())
        except OSError as e:
            logger.error("Could not persist remote config: %s", e)
            return False
        logger.info(
            "Cached remote config: birthday=%s, file=%s",
            document.birthday.strftime("%Y-%m-%d %H:%M"),
            document.daylio_file_name,
        )
        return True
