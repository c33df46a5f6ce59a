"""BlueZ Adapter1 wrapper that powers the local radio on and reports it."""

import asyncio
import logging
from enum import Enum
from typing import Callable

from dbus_next import Variant
from dbus_next.aio import MessageBus
from dbus_next.errors import DBusError, InterfaceNotFoundError

from ..errors import RadioError, RadioUnavailable, ToggleError
from .constants import (
    ADAPTER_INTERFACE,
    BLUEZ_SERVICE,
    DEFAULT_ADAPTER_PATH,
    ERROR_BUSY,
    POWER_STATE_OFF,
    POWER_STATE_OFF_BLOCKED,
    POWER_STATE_OFF_ENABLING,
    POWER_STATE_ON,
    PROPERTIES_INTERFACE,
)

logger = logging.getLogger(__name__)


class RadioState(Enum):
    """Power state of the local Bluetooth radio."""

    OFF = "off"
    TURNING_ON = "turning_on"
    ON = "on"
    UNAVAILABLE = "unavailable"


class EnableResult(Enum):
    """Immediate answer to a power-on request."""

    ACCEPTED = "accepted"
    REJECTED = "rejected"


class RadioController:
    """Wraps org.bluez.Adapter1 power control for a single adapter.

    The radio is only ever asked to turn on.  It is never switched off
    here because other applications may depend on it.

    Callbacks registered through on_enabled()/on_error() are one-shot and
    always run on the event loop thread that called initialize().
    """

    def __init__(
        self,
        bus: MessageBus,
        adapter_path: str = DEFAULT_ADAPTER_PATH,
        accept_window: float = 2.0,
    ):
        self._bus = bus
        self._adapter_path = adapter_path
        self._accept_window = accept_window
        self._properties_iface = None
        self._props: dict = {}
        self._loop: asyncio.AbstractEventLoop | None = None
        self._enabled_callbacks: list[Callable[[], None]] = []
        self._error_callbacks: list[Callable[[ToggleError], None]] = []
        self._listening = False
        self._fired = False
        self._enabling = False

    async def initialize(self) -> None:
        """Bind the adapter's D-Bus interfaces and snapshot its properties.

        Raises RadioUnavailable when the adapter (or bluetoothd) is missing.
        """
        self._loop = asyncio.get_running_loop()
        try:
            introspection = await self._bus.introspect(BLUEZ_SERVICE, self._adapter_path)
            proxy = self._bus.get_proxy_object(
                BLUEZ_SERVICE, self._adapter_path, introspection
            )
            proxy.get_interface(ADAPTER_INTERFACE)  # presence check
            self._properties_iface = proxy.get_interface(PROPERTIES_INTERFACE)
            props = await self._properties_iface.call_get_all(ADAPTER_INTERFACE)
        except (DBusError, InterfaceNotFoundError) as e:
            raise RadioUnavailable(
                f"Bluetooth adapter {self._adapter_path} not available: {e}"
            ) from e
        self._props = {k: v.value for k, v in props.items()}
        logger.info(
            "Adapter %s at %s (powered=%s)",
            self._props.get("Address", "??:??"), self._adapter_path, self.is_on(),
        )

    def is_on(self) -> bool:
        return bool(self._props.get("Powered", False))

    @property
    def state(self) -> RadioState:
        power_state = self._props.get("PowerState")
        if power_state == POWER_STATE_OFF_BLOCKED:
            return RadioState.UNAVAILABLE
        if power_state == POWER_STATE_OFF_ENABLING:
            return RadioState.TURNING_ON
        if power_state == POWER_STATE_ON or (power_state is None and self.is_on()):
            return RadioState.ON
        return RadioState.OFF

    @property
    def adapter_path(self) -> str:
        return self._adapter_path

    @property
    def listening(self) -> bool:
        return self._listening

    def on_enabled(self, callback: Callable[[], None]) -> None:
        """Register a one-shot callback for the radio reaching ON."""
        if callback not in self._enabled_callbacks:
            self._enabled_callbacks.append(callback)

    def on_error(self, callback: Callable[[ToggleError], None]) -> None:
        """Register a one-shot callback for a radio failure."""
        if callback not in self._error_callbacks:
            self._error_callbacks.append(callback)

    async def request_enable(self) -> EnableResult:
        """Ask BlueZ to power the adapter on.

        BlueZ only replies once the controller is up, so a reply that is
        still outstanding after the accept window counts as accepted; the
        PropertiesChanged listener reports the outcome.
        """
        logger.info("Requesting power on for %s", self._adapter_path)
        try:
            await asyncio.wait_for(
                self._properties_iface.call_set(
                    ADAPTER_INTERFACE, "Powered", Variant("b", True)
                ),
                self._accept_window,
            )
        except asyncio.TimeoutError:
            logger.debug("Power on still in progress after %.1fs", self._accept_window)
            return EnableResult.ACCEPTED
        except DBusError as e:
            if e.type == ERROR_BUSY:
                logger.info("Power change already pending on %s", self._adapter_path)
                return EnableResult.ACCEPTED
            logger.error("Unable to enable Bluetooth on %s: %s", self._adapter_path, e)
            return EnableResult.REJECTED
        return EnableResult.ACCEPTED

    async def start(
        self,
        on_enabled: Callable[[], None],
        on_error: Callable[[ToggleError], None],
    ) -> None:
        """Make sure the radio is on, reporting through the callbacks.

        Already on: *on_enabled* runs synchronously and nothing is
        installed.  Otherwise the listener goes in first, then the power
        request is sent, unless another client is already powering the
        adapter up.
        """
        if self.is_on():
            logger.info("Bluetooth radio already on")
            on_enabled()
            return

        self.on_enabled(on_enabled)
        self.on_error(on_error)
        self._listen()

        if self.state is RadioState.TURNING_ON:
            logger.info("Bluetooth radio already turning on, waiting")
            self._enabling = True
            return

        result = await self.request_enable()
        if result is EnableResult.REJECTED:
            self.detach()
            on_error(
                RadioUnavailable(
                    "Unable to enable Bluetooth. Is the radio blocked (rfkill / airplane mode)?"
                )
            )
            return

        # The reply can overtake the PropertiesChanged signal; re-read once.
        if not self._fired and self._listening:
            try:
                powered = await self._properties_iface.call_get(ADAPTER_INTERFACE, "Powered")
            except DBusError as e:
                logger.debug("Could not re-read Powered: %s", e)
                return
            if powered.value:
                self._apply_changes({"Powered": True})

    def detach(self) -> None:
        """Remove the signal subscription and drop pending callbacks."""
        if self._listening and self._properties_iface:
            self._properties_iface.off_properties_changed(self._on_properties_changed)
        self._listening = False
        self._enabled_callbacks.clear()
        self._error_callbacks.clear()

    def _listen(self) -> None:
        if self._listening:
            return
        self._properties_iface.on_properties_changed(self._on_properties_changed)
        self._listening = True
        logger.debug("Listening for power changes on %s", self._adapter_path)

    def _on_properties_changed(
        self, interface_name: str, changed: dict, invalidated: list
    ) -> None:
        """Handle D-Bus PropertiesChanged signals (any thread)."""
        if interface_name != ADAPTER_INTERFACE:
            return
        values = {k: (v.value if hasattr(v, "value") else v) for k, v in changed.items()}
        self._loop.call_soon_threadsafe(self._apply_changes, values)

    def _apply_changes(self, changed: dict) -> None:
        self._props.update(changed)
        if self._fired or not self._listening:
            return
        power_state = changed.get("PowerState")
        if power_state == POWER_STATE_OFF_ENABLING:
            self._enabling = True
        if changed.get("Powered") is True:
            logger.info("Bluetooth radio is on")
            self._fire(self._enabled_callbacks)
        elif power_state == POWER_STATE_OFF_BLOCKED:
            logger.error("Bluetooth radio blocked while powering on")
            error = RadioError("There was an error enabling the Bluetooth adapter")
            self._fire(self._error_callbacks, error)
        elif self._enabling and (
            power_state == POWER_STATE_OFF or changed.get("Powered") is False
        ):
            # off-enabling fell back to off
            logger.error("Bluetooth radio failed to power on")
            error = RadioError("There was an error enabling the Bluetooth adapter")
            self._fire(self._error_callbacks, error)

    def _fire(self, callbacks: list, *args) -> None:
        self._fired = True
        pending = list(callbacks)
        self.detach()
        for cb in pending:
            cb(*args)
