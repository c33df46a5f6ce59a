"""BlueZ D-Bus wrappers for the A2DP toggle."""

from .adapter import EnableResult, RadioController, RadioState
from .constants import A2DP_SINK_UUID, A2DP_SOURCE_UUID
from .device import BondedDevice, ConnectionState
from .profile import A2dpProfileAcquirer, A2dpProxy

__all__ = [
    "A2dpProfileAcquirer",
    "A2dpProxy",
    "BondedDevice",
    "ConnectionState",
    "EnableResult",
    "RadioController",
    "RadioState",
    "A2DP_SINK_UUID",
    "A2DP_SOURCE_UUID",
]
