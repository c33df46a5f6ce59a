"""BlueZ D-Bus names and Bluetooth UUIDs used for A2DP toggling."""

# Advanced Audio Distribution Profile (A2DP)
A2DP_SINK_UUID = "0000110b-0000-1000-8000-00805f9b34fb"
A2DP_SOURCE_UUID = "0000110a-0000-1000-8000-00805f9b34fb"

# BlueZ D-Bus service and interface names
BLUEZ_SERVICE = "org.bluez"
ADAPTER_INTERFACE = "org.bluez.Adapter1"
DEVICE_INTERFACE = "org.bluez.Device1"
MEDIA_TRANSPORT_INTERFACE = "org.bluez.MediaTransport1"
PROPERTIES_INTERFACE = "org.freedesktop.DBus.Properties"
OBJECT_MANAGER_INTERFACE = "org.freedesktop.DBus.ObjectManager"

# Default adapter
DEFAULT_ADAPTER = "hci0"
DEFAULT_ADAPTER_PATH = "/org/bluez/hci0"

# Device1 methods that carry the per-profile transitions
CONNECT_PROFILE_METHOD = "ConnectProfile"
DISCONNECT_PROFILE_METHOD = "DisconnectProfile"

# BlueZ errors that mean the requested transition already happened
ERROR_ALREADY_CONNECTED = "org.bluez.Error.AlreadyConnected"
ERROR_NOT_CONNECTED = "org.bluez.Error.NotConnected"

# Adapter power change already pending
ERROR_BUSY = "org.bluez.Error.Busy"

# Adapter1.PowerState values (BlueZ 5.66+)
POWER_STATE_ON = "on"
POWER_STATE_OFF = "off"
POWER_STATE_OFF_ENABLING = "off-enabling"
POWER_STATE_ON_DISABLING = "on-disabling"
POWER_STATE_OFF_BLOCKED = "off-blocked"


def adapter_path(adapter: str) -> str:
    """Return the D-Bus object path for an adapter name like ``hci0``.

    Full paths (``/org/bluez/hci1``) are passed through unchanged.
    """
    if adapter.startswith("/"):
        return adapter
    return f"/org/bluez/{adapter}"
