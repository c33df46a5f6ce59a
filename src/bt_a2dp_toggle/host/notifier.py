"""Transient status messages for the user."""

import asyncio
import logging
import shutil

logger = logging.getLogger(__name__)

APP_NAME = "Bluetooth Connector"


class Notifier:
    """Logs every status message and mirrors it as a desktop notification.

    Notifications go through ``notify-send``; when it is missing (or
    notifications are disabled) the log line is all the user gets.
    """

    EXPIRE_MS = 2000  # matches a short toast

    def __init__(self, enabled: bool = True, executable: str | None = None):
        self._enabled = enabled
        self._executable = executable

    async def show(self, message: str, *, error: bool = False) -> None:
        """Display *message*; returns once the notification was handed off."""
        if error:
            logger.error("%s", message)
        else:
            logger.info("%s", message)

        if not self._enabled:
            return
        executable = self._executable or shutil.which("notify-send")
        if not executable:
            logger.debug("notify-send not found, status shown in log only")
            return

        try:
            proc = await asyncio.create_subprocess_exec(
                executable,
                "--app-name", APP_NAME,
                "--urgency", "critical" if error else "low",
                "--expire-time", str(self.EXPIRE_MS),
                APP_NAME, message,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
            _, stderr = await proc.communicate()
            if proc.returncode != 0:
                logger.debug(
                    "notify-send exited %d: %s",
                    proc.returncode, stderr.decode(errors="replace").strip(),
                )
        except OSError as e:
            logger.debug("Could not send desktop notification: %s", e)
