"""Privileged A2DP connect/disconnect primitives.

BlueZ's plain Device1.Connect()/Disconnect() act on every profile at
once.  Toggling A2DP alone needs the per-profile ConnectProfile and
DisconnectProfile methods, which some builds do not export.  Each
primitive here hides one way of reaching them:

* DBusProfileTransition: late-bound lookup of the generated
  ``call_connect_profile``/``call_disconnect_profile`` methods on the
  dbus-next proxy interface.
* BluetoothctlTransition: the ``bluetoothctl`` system tool, which talks
  to bluetoothd over its own connection.

Resolution happens once per run; callers only see ProfileTransition.
"""

import asyncio
import logging
import shutil
from dataclasses import dataclass

from dbus_next.aio import MessageBus
from dbus_next.errors import DBusError, InterfaceNotFoundError

from ..errors import OperationUnavailable, TransitionRefused
from .constants import (
    A2DP_SINK_UUID,
    BLUEZ_SERVICE,
    CONNECT_PROFILE_METHOD,
    DEVICE_INTERFACE,
    DISCONNECT_PROFILE_METHOD,
    ERROR_ALREADY_CONNECTED,
    ERROR_NOT_CONNECTED,
)
from .device import BondedDevice

logger = logging.getLogger(__name__)

CONNECT = "connect"
DISCONNECT = "disconnect"

# Errors meaning the device is already where the transition would take it
_SETTLED_ERRORS = {
    CONNECT: ERROR_ALREADY_CONNECTED,
    DISCONNECT: ERROR_NOT_CONNECTED,
}


class ProfileTransition:
    """One A2DP transition (connect or disconnect) on a remote device.

    invoke() returns once the host has accepted the request.  A request
    still in flight after the accept window is treated as accepted; the
    transition carries on without us.
    """

    backend = "abstract"

    def __init__(self, operation: str, accept_window: float = 2.0):
        if operation not in (CONNECT, DISCONNECT):
            raise ValueError(f"unknown transition {operation!r}")
        self.operation = operation
        self._accept_window = accept_window

    async def invoke(self, device: BondedDevice) -> None:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.operation}>"


class DBusProfileTransition(ProfileTransition):
    """Calls Device1.ConnectProfile/DisconnectProfile with the A2DP sink UUID."""

    backend = "dbus"

    _METHODS = {
        CONNECT: "call_connect_profile",
        DISCONNECT: "call_disconnect_profile",
    }

    def __init__(self, bus: MessageBus, operation: str, accept_window: float = 2.0):
        super().__init__(operation, accept_window)
        self._bus = bus

    async def invoke(self, device: BondedDevice) -> None:
        try:
            introspection = await self._bus.introspect(BLUEZ_SERVICE, device.path)
            proxy = self._bus.get_proxy_object(BLUEZ_SERVICE, device.path, introspection)
            device_iface = proxy.get_interface(DEVICE_INTERFACE)
        except InterfaceNotFoundError as e:
            raise OperationUnavailable(self.operation) from e
        except DBusError as e:
            raise TransitionRefused(self.operation, e.text) from e

        method = getattr(device_iface, self._METHODS[self.operation], None)
        if method is None:
            raise OperationUnavailable(self.operation)

        logger.info("%s A2DP on %s via D-Bus...", self.operation.capitalize(), device.address)
        try:
            await asyncio.wait_for(method(A2DP_SINK_UUID), self._accept_window)
        except asyncio.TimeoutError:
            logger.info("A2DP %s on %s in progress", self.operation, device.address)
            return
        except DBusError as e:
            if e.type == _SETTLED_ERRORS[self.operation]:
                logger.info("A2DP %s on %s already done (%s)", self.operation, device.address, e.type)
                return
            raise TransitionRefused(self.operation, e.text or e.type) from e
        logger.info("A2DP %s on %s succeeded", self.operation, device.address)


class BluetoothctlTransition(ProfileTransition):
    """Runs ``bluetoothctl connect|disconnect <address> <uuid>``."""

    backend = "bluetoothctl"

    def __init__(self, executable: str, operation: str, accept_window: float = 2.0):
        super().__init__(operation, accept_window)
        self._executable = executable

    async def invoke(self, device: BondedDevice) -> None:
        logger.info(
            "%s A2DP on %s via %s...",
            self.operation.capitalize(), device.address, self._executable,
        )
        try:
            proc = await asyncio.create_subprocess_exec(
                self._executable, self.operation, device.address, A2DP_SINK_UUID,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise OperationUnavailable(self.operation) from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), self._accept_window)
        except asyncio.TimeoutError:
            logger.info("A2DP %s on %s in progress (bluetoothctl pid=%d)", self.operation, device.address, proc.pid)
            return

        output = (stdout or b"").decode(errors="replace") + (stderr or b"").decode(errors="replace")
        if _SETTLED_ERRORS[self.operation] in output:
            logger.info("A2DP %s on %s already done", self.operation, device.address)
            return
        if proc.returncode != 0 or "Failed to" in output:
            lines = [line.strip() for line in output.splitlines() if line.strip()]
            detail = lines[-1] if lines else f"exit status {proc.returncode}"
            raise TransitionRefused(self.operation, detail)
        logger.info("A2DP %s on %s succeeded", self.operation, device.address)


@dataclass(frozen=True)
class Transitions:
    """Resolved primitives; either may be None when the host hides it."""

    connect: ProfileTransition | None
    disconnect: ProfileTransition | None


def resolve_transitions(
    bus: MessageBus,
    device_methods: set[str],
    bluetoothctl: str | None = None,
    accept_window: float = 2.0,
) -> Transitions:
    """Pick a primitive for each operation.

    *device_methods* are the method names the introspected Device1
    interface declares.  The D-Bus binding wins where available; the
    ``bluetoothctl`` executable (looked up on PATH when not given) is the
    fallback.
    """
    if bluetoothctl is None:
        bluetoothctl = shutil.which("bluetoothctl")

    def _pick(operation: str, method_name: str) -> ProfileTransition | None:
        if method_name in device_methods:
            return DBusProfileTransition(bus, operation, accept_window)
        if bluetoothctl:
            logger.debug("Device1.%s not exported, using %s", method_name, bluetoothctl)
            return BluetoothctlTransition(bluetoothctl, operation, accept_window)
        logger.warning("Unable to find a %s primitive for A2DP", operation)
        return None

    transitions = Transitions(
        connect=_pick(CONNECT, CONNECT_PROFILE_METHOD),
        disconnect=_pick(DISCONNECT, DISCONNECT_PROFILE_METHOD),
    )
    logger.debug("Resolved A2DP transitions: %s", transitions)
    return transitions
