"""Read-only view of the effective configuration.

Priority per value:
    birthday, file name: remote config cache > admin settings > bundled
    folder id:           admin settings > bundled
    interval, suffix:    bundled
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING

from giftsync.core.config import ConfigError, check_file_name

if TYPE_CHECKING:
    from giftsync.client.remote_config import RemoteConfigManager
    from giftsync.core.config import AppConfig
    from giftsync.core.settings import AdminSettings

logger = logging.getLogger(__name__)


def _usable_name(name: str, layer: str) -> bool:
    try:
        check_file_name(name)
    except ValueError as e:
        logger.warning("Ignoring %s file name: %s", layer, e)
        return False
    return True


class ConfigSource(ABC):
    """Supplies folder id, file name and fire instant to the core."""

    @abstractmethod
    def folder_id(self) -> str:
        """Get the Drive folder id.

        Raises:
            ConfigError: If no folder id is configured.
        """

    @abstractmethod
    def file_name(self) -> str:
        """Get the local cache file name."""

    @abstractmethod
    def target_suffix(self) -> str:
        """Get the suffix remote candidates must end with."""

    @abstractmethod
    def fire_instant(self) -> datetime:
        """Get the reveal instant (Europe/Warsaw, seconds = 0).

        Raises:
            ConfigError: If the bundled birthday is not a real date.
        """

    @abstractmethod
    def check_interval_hours(self) -> int:
        """Get hours between periodic sync passes."""


class LayeredConfigSource(ConfigSource):
    """Bundled defaults overlaid with admin settings and remote config."""

    def __init__(
        self,
        app_config: AppConfig,
        admin: AdminSettings | None = None,
        remote: RemoteConfigManager | None = None,
    ) -> None:
        self._app_config = app_config
        self._admin = admin
        self._remote = remote

    def folder_id(self) -> str:
        if self._admin is not None:
            admin_folder = self._admin.drive_folder_id()
            if admin_folder:
                return admin_folder
        if not self._app_config.drive_folder_id:
            raise ConfigError("Google Drive folder ID is not configured")
        return self._app_config.drive_folder_id

    def file_name(self) -> str:
        if self._remote is not None:
            cached = self._remote.cached()
            if cached is not None and _usable_name(cached.daylio_file_name, "remote"):
                return cached.daylio_file_name
        if self._admin is not None:
            admin_name = self._admin.file_name()
            if admin_name and _usable_name(admin_name, "admin"):
                return admin_name
        return self._app_config.target_file_name

    def target_suffix(self) -> str:
        return self._app_config.target_suffix

    def fire_instant(self) -> datetime:
        if self._remote is not None:
            cached = self._remote.cached()
            if cached is not None:
                try:
                    return cached.birthday
                except ValueError as e:
                    logger.warning("Ignoring invalid remote birthday: %s", e)
        if self._admin is not None:
            admin_birthday = self._admin.birthday()
            if admin_birthday is not None:
                return admin_birthday
        try:
            return self._app_config.birthday
        except ValueError as e:
            raise ConfigError(f"Invalid birthday in configuration: {e}") from e

    def check_interval_hours(self) -> int:
        return self._app_config.check_interval_hours

    def describe(self) -> dict[str, str]:
        """Get the effective values and where each one comes from."""
        remote = self._remote.cached() if self._remote is not None else None
        admin_on = self._admin is not None and self._admin.is_enabled()

        if remote is not None:
            birthday_source = "remote"
        elif admin_on and self._admin is not None and self._admin.birthday() is not None:
            birthday_source = "admin"
        else:
            birthday_source = "bundled"

        try:
            folder = self.folder_id()
        except ConfigError:
            folder = "(not configured)"

        try:
            fire_instant = self.fire_instant().strftime("%Y-%m-%d %H:%M %Z")
        except ConfigError:
            fire_instant = "(invalid)"

        return {
            "folder_id": folder,
            "file_name": self.file_name(),
            "target_suffix": self.target_suffix(),
            "fire_instant": fire_instant,
            "birthday_source": birthday_source,
            "check_interval_hours": str(self.check_interval_hours()),
        }
