"""A2DP profile handle: bonded devices, connection state, transitions."""

import logging
from typing import Callable

from dbus_next.aio import MessageBus
from dbus_next.errors import DBusError, InterfaceNotFoundError

from ..errors import DeviceNotPaired, OperationUnavailable, ProxyUnavailable, ToggleError
from .constants import (
    A2DP_SOURCE_UUID,
    ADAPTER_INTERFACE,
    BLUEZ_SERVICE,
    DEFAULT_ADAPTER_PATH,
    DEVICE_INTERFACE,
    OBJECT_MANAGER_INTERFACE,
)
from .device import BondedDevice, ConnectionState, bonded_devices_from_objects, prop_value
from .transitions import CONNECT, DISCONNECT, Transitions, resolve_transitions

logger = logging.getLogger(__name__)


class A2dpProxy:
    """Handle scoped to the local adapter's A2DP role.

    Only valid while the radio is on and until release() is called.
    """

    def __init__(self, obj_manager, adapter_path: str, transitions: Transitions):
        self._obj_manager = obj_manager
        self._adapter_path = adapter_path
        self._transitions = transitions
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    @property
    def has_connect(self) -> bool:
        return self._transitions.connect is not None

    @property
    def has_disconnect(self) -> bool:
        return self._transitions.disconnect is not None

    def _check_usable(self) -> None:
        if self._released:
            raise RuntimeError("A2DP proxy used after release")

    async def _managed_objects(self) -> dict:
        self._check_usable()
        try:
            return await self._obj_manager.call_get_managed_objects()
        except DBusError as e:
            raise ProxyUnavailable(f"BlueZ object tree unavailable: {e}") from e

    async def bonded_devices(self) -> list[BondedDevice]:
        """Enumerate bonded devices on this adapter, in BlueZ order."""
        objects = await self._managed_objects()
        devices = bonded_devices_from_objects(objects, self._adapter_path)
        logger.debug("%d bonded device(s) on %s", len(devices), self._adapter_path)
        return devices

    async def connection_state(self, device: BondedDevice) -> ConnectionState:
        """Read the current A2DP state of *device* from a fresh object tree."""
        for current in await self.bonded_devices():
            if current.path == device.path:
                return current.state
        raise DeviceNotPaired(device.address)

    async def connect(self, device: BondedDevice) -> None:
        self._check_usable()
        if self._transitions.connect is None:
            raise OperationUnavailable(CONNECT)
        await self._transitions.connect.invoke(device)

    async def disconnect(self, device: BondedDevice) -> None:
        self._check_usable()
        if self._transitions.disconnect is None:
            raise OperationUnavailable(DISCONNECT)
        await self._transitions.disconnect.invoke(device)

    def release(self) -> None:
        """Release the handle.  Safe to call more than once."""
        if self._released:
            return
        self._released = True
        logger.debug("A2DP proxy for %s released", self._adapter_path)


class A2dpProfileAcquirer:
    """Obtains an A2dpProxy once the radio is powered.

    BlueZ only offers A2DP when an audio server (PipeWire, PulseAudio)
    has registered an A2DP source endpoint on the adapter, which shows up
    as the A2DP Source UUID in Adapter1.UUIDs.  Without it there is no
    profile to hand over.
    """

    def __init__(
        self,
        bus: MessageBus,
        adapter_path: str = DEFAULT_ADAPTER_PATH,
        accept_window: float = 2.0,
        bluetoothctl: str | None = None,
    ):
        self._bus = bus
        self._adapter_path = adapter_path
        self._accept_window = accept_window
        self._bluetoothctl = bluetoothctl

    async def acquire(
        self,
        callback: Callable[[A2dpProxy], None],
        on_error: Callable[[ToggleError], None],
    ) -> None:
        """Hand an A2dpProxy to *callback*, or the failure to *on_error*."""
        try:
            proxy = await self._acquire()
        except ProxyUnavailable as e:
            logger.error("A2DP proxy unavailable: %s", e)
            on_error(e)
            return
        logger.info("A2DP proxy acquired on %s", self._adapter_path)
        callback(proxy)

    async def _acquire(self) -> A2dpProxy:
        try:
            introspection = await self._bus.introspect(BLUEZ_SERVICE, "/")
            proxy = self._bus.get_proxy_object(BLUEZ_SERVICE, "/", introspection)
            obj_manager = proxy.get_interface(OBJECT_MANAGER_INTERFACE)
            objects = await obj_manager.call_get_managed_objects()
        except (DBusError, InterfaceNotFoundError) as e:
            raise ProxyUnavailable(f"BlueZ object manager unavailable: {e}") from e

        adapter = objects.get(self._adapter_path, {})
        if ADAPTER_INTERFACE not in adapter:
            raise ProxyUnavailable(f"adapter {self._adapter_path} not found")
        props = adapter[ADAPTER_INTERFACE]
        if not prop_value(props, "Powered", False):
            raise ProxyUnavailable(f"adapter {self._adapter_path} is not powered")
        uuids = set(prop_value(props, "UUIDs") or [])
        if A2DP_SOURCE_UUID not in uuids:
            raise ProxyUnavailable(
                f"no A2DP source endpoint registered on {self._adapter_path} "
                "(is PipeWire or PulseAudio running?)"
            )

        device_methods = await self._device_methods(objects)
        transitions = resolve_transitions(
            self._bus, device_methods, self._bluetoothctl, self._accept_window
        )
        return A2dpProxy(obj_manager, self._adapter_path, transitions)

    async def _device_methods(self, objects: dict) -> set[str]:
        """Method names Device1 exports, read from one device node."""
        prefix = self._adapter_path + "/"
        device_path = next(
            (
                path for path, interfaces in objects.items()
                if path.startswith(prefix) and DEVICE_INTERFACE in interfaces
            ),
            None,
        )
        if device_path is None:
            logger.debug("No device objects on %s to introspect", self._adapter_path)
            return set()
        try:
            node = await self._bus.introspect(BLUEZ_SERVICE, device_path)
        except DBusError as e:
            logger.debug("Introspection of %s failed: %s", device_path, e)
            return set()
        for iface in node.interfaces:
            if iface.name == DEVICE_INTERFACE:
                return {method.name for method in iface.methods}
        return set()
