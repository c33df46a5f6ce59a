"""Entry point: one tap toggles the configured A2DP sink."""

import asyncio
import logging
import sys

from dbus_next import BusType
from dbus_next.aio import MessageBus
from dbus_next.errors import DBusError

from .bluez.adapter import RadioController
from .bluez.constants import adapter_path
from .bluez.profile import A2dpProfileAcquirer
from .config import LauncherConfig
from .errors import ConfigError, ExitCode
from .host.launcher import AppLauncher
from .host.notifier import Notifier
from .toggle import ConnectionToggle

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger(__name__)


def setup_logging(level_name: str) -> None:
    """Configure logging to stdout."""
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        stream=sys.stdout,
    )
    # Quiet noisy libraries
    logging.getLogger("dbus_next").setLevel(logging.WARNING)


async def run(config: LauncherConfig) -> ExitCode:
    """Connect to the system bus and run one toggle."""
    path = adapter_path(config.adapter)
    try:
        bus = await MessageBus(bus_type=BusType.SYSTEM).connect()
    except (DBusError, OSError) as e:
        logger.error("Unable to connect to the system D-Bus: %s", e)
        return ExitCode.RADIO_REFUSED
    logger.debug("Connected to system D-Bus")

    try:
        toggle = ConnectionToggle(
            config,
            RadioController(bus, path, config.accept_window_seconds),
            A2dpProfileAcquirer(bus, path, config.accept_window_seconds),
            Notifier(enabled=config.notify),
            AppLauncher(),
        )
        return await toggle.run()
    finally:
        bus.disconnect()


def main() -> int:
    try:
        config = LauncherConfig.load()
    except ConfigError as e:
        setup_logging("info")
        logger.error("Invalid configuration: %s", e)
        return ExitCode.CONFIG_INVALID
    setup_logging(config.log_level)

    try:
        return asyncio.run(run(config))
    except Exception as e:
        logger.error("Fatal error: %s", e, exc_info=True)
        return ExitCode.FAILURE


if __name__ == "__main__":
    sys.exit(main())
