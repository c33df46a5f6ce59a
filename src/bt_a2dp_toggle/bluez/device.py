"""Bonded-device model: addresses, A2DP connection state, and lookup."""

import logging
import re
from dataclasses import dataclass
from enum import Enum

from .constants import DEFAULT_ADAPTER_PATH, DEVICE_INTERFACE, MEDIA_TRANSPORT_INTERFACE

logger = logging.getLogger(__name__)

_ADDRESS_RE = re.compile(r"^([0-9A-Fa-f]{2}[:\-_]){5}[0-9A-Fa-f]{2}$")


class ConnectionState(Enum):
    """A2DP connection state of a remote device."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"


@dataclass(frozen=True)
class BondedDevice:
    """A remote device BlueZ holds pairing keys for."""

    address: str
    name: str | None
    path: str
    state: ConnectionState = ConnectionState.DISCONNECTED


def is_valid_address(address: str) -> bool:
    """Return True if *address* looks like six hex octets."""
    return bool(_ADDRESS_RE.match(address))


def canonical_address(address: str) -> str:
    """Normalise a hardware address to upper-case colon-separated octets.

    Accepts ``-`` and ``_`` separators (the latter as found in BlueZ
    object paths).  Raises ValueError for anything else.
    """
    address = address.strip()
    if not is_valid_address(address):
        raise ValueError(f'"{address}" is not a valid Bluetooth address')
    return address.replace("-", ":").replace("_", ":").upper()


def address_to_path(address: str, adapter_path: str = DEFAULT_ADAPTER_PATH) -> str:
    """Convert a MAC address to a BlueZ D-Bus object path."""
    return f"{adapter_path}/dev_{canonical_address(address).replace(':', '_')}"


def prop_value(props: dict, key: str, default=None):
    """Read a property from a D-Bus property dict, unwrapping Variants."""
    v = props.get(key)
    if v is None:
        return default
    return v.value if hasattr(v, "value") else v


def derive_connection_state(device_props: dict, has_transport: bool) -> ConnectionState:
    """Map Device1 properties plus MediaTransport1 presence to an A2DP state.

    BlueZ publishes no per-profile "connecting" flag, so the transient
    states are inferred: a link that is up but still resolving services
    is CONNECTING, and a transport that outlives its link is
    DISCONNECTING.  A link that is up with services resolved but no
    transport is DISCONNECTED as far as A2DP is concerned (e.g. only
    HFP came up).
    """
    connected = bool(prop_value(device_props, "Connected", False))
    if has_transport:
        return ConnectionState.CONNECTED if connected else ConnectionState.DISCONNECTING
    if connected and not prop_value(device_props, "ServicesResolved", False):
        return ConnectionState.CONNECTING
    return ConnectionState.DISCONNECTED


def _is_bonded(device_props: dict) -> bool:
    # Bonded appeared in BlueZ 5.67; older daemons only publish Paired
    if "Bonded" in device_props:
        return bool(prop_value(device_props, "Bonded"))
    return bool(prop_value(device_props, "Paired", False))


def _has_transport(objects: dict, device_path: str) -> bool:
    prefix = device_path + "/"
    return any(
        path.startswith(prefix) and MEDIA_TRANSPORT_INTERFACE in interfaces
        for path, interfaces in objects.items()
    )


def bonded_devices_from_objects(objects: dict, adapter_path: str) -> list[BondedDevice]:
    """Build the bonded set for one adapter from GetManagedObjects output.

    Order follows the object tree as BlueZ returned it.
    """
    prefix = adapter_path + "/"
    devices = []
    for path, interfaces in objects.items():
        if DEVICE_INTERFACE not in interfaces or not path.startswith(prefix):
            continue
        props = interfaces[DEVICE_INTERFACE]
        if not _is_bonded(props):
            continue
        raw_address = prop_value(props, "Address")
        if not raw_address or not is_valid_address(raw_address):
            logger.debug("Skipping %s: no usable address", path)
            continue
        devices.append(
            BondedDevice(
                address=canonical_address(raw_address),
                name=prop_value(props, "Name") or prop_value(props, "Alias"),
                path=path,
                state=derive_connection_state(props, _has_transport(objects, path)),
            )
        )
    return devices


def find_bonded_by_address(devices: list[BondedDevice], address: str) -> BondedDevice | None:
    """Return the first bonded device whose address matches, ignoring case."""
    wanted = canonical_address(address)
    for device in devices:
        if device.address.upper() == wanted:
            logger.debug("Found device with name %s and address %s", device.name, device.address)
            return device
    logger.warning("Unable to find bonded device with address %s", wanted)
    return None


def find_bonded_by_name(devices: list[BondedDevice], name: str) -> BondedDevice | None:
    """Return the first bonded device whose name equals *name* exactly."""
    for device in devices:
        if device.name == name:
            logger.debug("Found device with name %s and address %s", device.name, device.address)
            return device
    logger.warning("Unable to find bonded device with name %s", name)
    return None
