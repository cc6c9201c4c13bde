"""Core module - Configuration, settings storage and time helpers."""

from giftsync.core.config import AppConfig, ConfigError, get_config_dir, load_app_config
from giftsync.core.settings import AdminSettings, SettingsStore
from giftsync.core.timeutil import (
    WARSAW,
    Clock,
    compose_fire_instant,
    from_epoch_millis,
    system_clock,
    to_epoch_millis,
)

__all__ = [
    # Config
    "AppConfig",
    "ConfigError",
    "get_config_dir",
    "load_app_config",
    # Settings
    "AdminSettings",
    "SettingsStore",
    # Time
    "WARSAW",
    "Clock",
    "compose_fire_instant",
    "from_epoch_millis",
    "system_clock",
    "to_epoch_millis",
]
