"""
Desktop notifications.

Fire-and-forget: a notification that cannot be shown is logged at debug
level and otherwise ignored.
"""

import logging
import shutil
import sys
from typing import List, Optional

from .system_utils import SystemUtils

logger = logging.getLogger(__name__)

NOTIFY_TIMEOUT = 10


def _applescript_string(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


def notification_command(title: str, message: str, platform: Optional[str] = None) -> Optional[List[str]]:
    """Return the command that shows a notification on this platform, if any."""
    platform = platform or sys.platform
    if platform == "darwin":
        script = (
            f"display notification {_applescript_string(message)} "
            f"with title {_applescript_string(title)} sound name \"Glass\""
        )
        return ["osascript", "-e", script]
    if shutil.which("notify-send"):
        return ["notify-send", title, message]
    return None


def notify(title: str, message: str) -> None:
    command = notification_command(title, message)
    if command is None:
        logger.debug("No notification mechanism available")
        return
    returncode, _, stderr = SystemUtils.run_command(command, timeout=NOTIFY_TIMEOUT)
    if returncode != 0:
        logger.debug(f"Notification failed: {stderr.strip()}")
