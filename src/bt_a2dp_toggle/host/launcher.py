"""Bring an installed desktop application to the foreground."""

import asyncio
import logging
import shutil

logger = logging.getLogger(__name__)


class AppLauncher:
    """Starts an application by desktop id (e.g. ``org.gnome.Rhythmbox3``)."""

    def __init__(self, executable: str | None = None):
        self._executable = executable

    async def launch(self, app_id: str) -> bool:
        """Launch *app_id* via ``gtk-launch``.  Returns True on success."""
        executable = self._executable or shutil.which("gtk-launch")
        if not executable:
            logger.warning("gtk-launch not found, cannot launch %s", app_id)
            return False

        logger.info("Launching %s...", app_id)
        try:
            proc = await asyncio.create_subprocess_exec(
                executable, app_id,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
            _, stderr = await proc.communicate()
        except OSError as e:
            logger.error("Unable to launch %s: %s", app_id, e)
            return False

        if proc.returncode != 0:
            logger.error(
                "Unable to launch %s: %s",
                app_id, stderr.decode(errors="replace").strip() or f"exit {proc.returncode}",
            )
            return False
        logger.info("Launched %s", app_id)
        return True
