"""Cross-platform desktop notifications for GiftSync.

This module provides:
- Native OS notifications (Windows toast, macOS notification center, Linux notify-send)
- Helpers for the gift reveal, first download and error notices
"""

from __future__ import annotations

import logging
import os
import platform
import subprocess
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any

logger = logging.getLogger(__name__)

APP_NAME = "GiftSync"


class NotificationType(Enum):
    """Type of notification."""

    INFO = auto()
    GIFT = auto()
    ERROR = auto()


@dataclass
class Notification:
    """Represents a notification to display."""

    title: str
    message: str
    type: NotificationType = NotificationType.INFO


_TOAST_SCRIPT = """
$null = [Windows.UI.Notifications.ToastNotificationManager, Windows.UI.Notifications, ContentType = WindowsRuntime]
$template = [Windows.UI.Notifications.ToastNotificationManager]::GetTemplateContent(
    [Windows.UI.Notifications.ToastTemplateType]::ToastText02)
$lines = $template.GetElementsByTagName("text")
$null = $lines.Item(0).AppendChild($template.CreateTextNode($env:GIFTSYNC_TITLE))
$null = $lines.Item(1).AppendChild($template.CreateTextNode($env:GIFTSYNC_MESSAGE))
$toast = [Windows.UI.Notifications.ToastNotification]::new($template)
[Windows.UI.Notifications.ToastNotificationManager]::CreateToastNotifier($env:GIFTSYNC_APP).Show($toast)
"""


def _run(args: list[str], backend: str, **kwargs: Any) -> bool:
    """Run a notification helper program; False if it is missing or fails."""
    try:
        subprocess.run(args, capture_output=True, check=True, **kwargs)
    except FileNotFoundError:
        logger.debug("%s notifier not available: %s not found", backend, args[0])
        return False
    except (OSError, subprocess.CalledProcessError) as e:
        logger.debug("%s notification failed: %s", backend, e)
        return False
    return True


def _notify_windows(notification: Notification) -> bool:
    # Text goes through the environment so it never has to be quoted into the script
    env = dict(
        os.environ,
        GIFTSYNC_APP=APP_NAME,
        GIFTSYNC_TITLE=notification.title,
        GIFTSYNC_MESSAGE=notification.message,
    )
    return _run(
        ["powershell", "-NoProfile", "-ExecutionPolicy", "Bypass", "-Command", _TOAST_SCRIPT],
        "Windows",
        env=env,
        creationflags=getattr(subprocess, "CREATE_NO_WINDOW", 0),
    )


def _applescript_string(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _notify_macos(notification: Notification) -> bool:
    script = (
        f"display notification {_applescript_string(notification.message)} "
        f"with title {_applescript_string(notification.title)}"
    )
    if notification.type is NotificationType.GIFT:
        script += ' sound name "Glass"'
    return _run(["osascript", "-e", script], "macOS")


def _notify_linux(notification: Notification) -> bool:
    urgency = "critical" if notification.type is NotificationType.ERROR else "normal"
    return _run(
        ["notify-send", f"--urgency={urgency}", f"--app-name={APP_NAME}",
         notification.title, notification.message],
        "Linux",
    )


def send_notification(notification: Notification) -> bool:
    """Show a desktop notification with the platform's own notifier.

    Falls back to an INFO log line when the platform has no notifier or
    the notifier fails.

    Args:
        notification: The notification to show.

    Returns:
        True if the notifier accepted it.
    """
    backends = {
        "Windows": _notify_windows,
        "Darwin": _notify_macos,
        "Linux": _notify_linux,
    }
    system = platform.system()
    backend = backends.get(system)
    if backend is None:
        logger.warning("Notifications not supported on %s", system)
        sent = False
    else:
        sent = backend(notification)

    if not sent:
        logger.info("%s: %s", notification.title, notification.message)
    return sent


def notify_gift_ready(identity: str) -> bool:
    """Show the gift reveal notification.

    Args:
        identity: Identity of the alarm that fired.

    Returns:
        True if notification was sent.
    """
    logger.debug("Showing gift notification for alarm %s", identity)
    return send_notification(Notification(
        title="Happy Birthday!",
        message="Your gift is ready. Open GiftSync to see it.",
        type=NotificationType.GIFT,
    ))


def notify_download_complete(file_name: str) -> bool:
    """Notify that the export file was downloaded for the first time."""
    return send_notification(Notification(
        title=f"{APP_NAME} - Download Complete",
        message=f"'{file_name}' has been downloaded and is ready.",
        type=NotificationType.INFO,
    ))


def notify_error(message: str) -> bool:
    """Send an error notification.

    Args:
        message: Error message.

    Returns:
        True if notification was sent.
    """
    return send_notification(Notification(
        title=f"{APP_NAME} - Error",
        message=message,
        type=NotificationType.ERROR,
    ))
