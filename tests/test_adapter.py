"""Tests for bluez.adapter: RadioController."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from dbus_next import Variant
from dbus_next.errors import DBusError

from bt_a2dp_toggle.bluez.adapter import EnableResult, RadioController, RadioState
from bt_a2dp_toggle.bluez.constants import ADAPTER_INTERFACE
from bt_a2dp_toggle.errors import RadioError, RadioUnavailable


def _make_bus(powered=False, power_state=None, reread=False):
    """Mock MessageBus whose adapter answers with the given power state."""
    props = {
        "Address": Variant("s", "00:1A:7D:DA:71:13"),
        "Powered": Variant("b", powered),
    }
    if power_state is not None:
        props["PowerState"] = Variant("s", power_state)

    props_iface = MagicMock()
    props_iface.call_get_all = AsyncMock(return_value=props)
    props_iface.call_set = AsyncMock(return_value=None)
    props_iface.call_get = AsyncMock(return_value=Variant("b", reread))

    proxy = MagicMock()
    proxy.get_interface.return_value = props_iface

    bus = MagicMock()
    bus.introspect = AsyncMock(return_value=MagicMock())
    bus.get_proxy_object.return_value = proxy
    return bus, props_iface


def _signal_handler(props_iface):
    return props_iface.on_properties_changed.call_args[0][0]


@pytest.mark.asyncio
async def test_initialize_reads_power():
    bus, _ = _make_bus(powered=True)
    radio = RadioController(bus)
    await radio.initialize()
    assert radio.is_on() is True
    assert radio.state is RadioState.ON


@pytest.mark.asyncio
async def test_initialize_missing_adapter():
    bus, _ = _make_bus()
    bus.introspect = AsyncMock(
        side_effect=DBusError("org.freedesktop.DBus.Error.ServiceUnknown", "bluetoothd not running")
    )
    radio = RadioController(bus)
    with pytest.raises(RadioUnavailable):
        await radio.initialize()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "powered,power_state,expected",
    [
        (False, "off", RadioState.OFF),
        (False, "off-enabling", RadioState.TURNING_ON),
        (True, "on", RadioState.ON),
        (True, "on-disabling", RadioState.OFF),
        (False, "off-blocked", RadioState.UNAVAILABLE),
        (False, None, RadioState.OFF),
    ],
)
async def test_state_mapping(powered, power_state, expected):
    bus, _ = _make_bus(powered=powered, power_state=power_state)
    radio = RadioController(bus)
    await radio.initialize()
    assert radio.state is expected


@pytest.mark.asyncio
async def test_start_short_circuits_when_on():
    bus, props_iface = _make_bus(powered=True)
    radio = RadioController(bus)
    await radio.initialize()

    enabled = MagicMock()
    error = MagicMock()
    await radio.start(enabled, error)

    enabled.assert_called_once_with()
    error.assert_not_called()
    props_iface.call_set.assert_not_awaited()
    props_iface.on_properties_changed.assert_not_called()
    assert radio.listening is False


@pytest.mark.asyncio
async def test_start_requests_power_and_waits_for_signal():
    bus, props_iface = _make_bus(powered=False)
    radio = RadioController(bus)
    await radio.initialize()

    enabled = MagicMock()
    error = MagicMock()
    await radio.start(enabled, error)

    props_iface.call_set.assert_awaited_once()
    iface, prop, value = props_iface.call_set.await_args[0]
    assert (iface, prop, value.value) == (ADAPTER_INTERFACE, "Powered", True)
    assert radio.listening is True
    enabled.assert_not_called()

    handler = _signal_handler(props_iface)
    handler(ADAPTER_INTERFACE, {"Powered": Variant("b", True)}, [])
    handler(ADAPTER_INTERFACE, {"Powered": Variant("b", True)}, [])
    await asyncio.sleep(0)

    enabled.assert_called_once_with()
    error.assert_not_called()
    assert radio.is_on() is True
    assert radio.listening is False
    props_iface.off_properties_changed.assert_called_once()


@pytest.mark.asyncio
async def test_start_rereads_power_when_reply_wins():
    bus, props_iface = _make_bus(powered=False, reread=True)
    radio = RadioController(bus)
    await radio.initialize()

    enabled = MagicMock()
    await radio.start(enabled, MagicMock())

    enabled.assert_called_once_with()
    assert radio.listening is False


@pytest.mark.asyncio
async def test_start_rejected():
    bus, props_iface = _make_bus(powered=False)
    props_iface.call_set = AsyncMock(
        side_effect=DBusError("org.bluez.Error.Blocked", "Blocked through rfkill")
    )
    radio = RadioController(bus)
    await radio.initialize()

    enabled = MagicMock()
    error = MagicMock()
    await radio.start(enabled, error)

    enabled.assert_not_called()
    error.assert_called_once()
    assert isinstance(error.call_args[0][0], RadioUnavailable)
    assert radio.listening is False
    props_iface.off_properties_changed.assert_called_once()


@pytest.mark.asyncio
async def test_request_enable_in_flight_counts_as_accepted():
    bus, props_iface = _make_bus(powered=False)

    async def slow_set(*args):
        await asyncio.sleep(1)

    props_iface.call_set = AsyncMock(side_effect=slow_set)
    radio = RadioController(bus, accept_window=0.05)
    await radio.initialize()
    assert await radio.request_enable() is EnableResult.ACCEPTED


@pytest.mark.asyncio
async def test_blocked_signal_reports_error():
    bus, props_iface = _make_bus(powered=False)
    radio = RadioController(bus)
    await radio.initialize()

    enabled = MagicMock()
    error = MagicMock()
    await radio.start(enabled, error)

    handler = _signal_handler(props_iface)
    handler(ADAPTER_INTERFACE, {"PowerState": Variant("s", "off-blocked")}, [])
    await asyncio.sleep(0)

    enabled.assert_not_called()
    error.assert_called_once()
    assert isinstance(error.call_args[0][0], RadioError)
    assert radio.state is RadioState.UNAVAILABLE


@pytest.mark.asyncio
async def test_signal_for_other_interface_ignored():
    bus, props_iface = _make_bus(powered=False)
    radio = RadioController(bus)
    await radio.initialize()

    enabled = MagicMock()
    await radio.start(enabled, MagicMock())
    _signal_handler(props_iface)("org.bluez.Device1", {"Powered": Variant("b", True)}, [])
    await asyncio.sleep(0)
    enabled.assert_not_called()


@pytest.mark.asyncio
async def test_signal_from_another_thread_is_marshalled():
    bus, props_iface = _make_bus(powered=False)
    radio = RadioController(bus)
    await radio.initialize()

    loop = asyncio.get_running_loop()
    seen = loop.create_future()

    def enabled():
        seen.set_result(asyncio.get_running_loop() is loop)

    await radio.start(enabled, MagicMock())
    handler = _signal_handler(props_iface)
    await asyncio.to_thread(handler, ADAPTER_INTERFACE, {"Powered": Variant("b", True)}, [])
    assert await asyncio.wait_for(seen, 1) is True


def test_registration_is_idempotent():
    radio = RadioController(MagicMock())
    callback = MagicMock()
    radio.on_enabled(callback)
    radio.on_enabled(callback)
    radio._listening = True
    radio._apply_changes({"Powered": True})
    callback.assert_called_once_with()


def test_detach_clears_callbacks():
    radio = RadioController(MagicMock())
    callback = MagicMock()
    radio.on_enabled(callback)
    radio.detach()
    radio._listening = True
    radio._apply_changes({"Powered": True})
    callback.assert_not_called()


@pytest.mark.asyncio
async def test_power_on_falling_back_to_off_reports_error():
    bus, props_iface = _make_bus(powered=False, power_state="off")
    radio = RadioController(bus)
    await radio.initialize()

    enabled = MagicMock()
    error = MagicMock()
    await radio.start(enabled, error)

    handler = _signal_handler(props_iface)
    handler(ADAPTER_INTERFACE, {"PowerState": Variant("s", "off-enabling")}, [])
    handler(
        ADAPTER_INTERFACE,
        {"PowerState": Variant("s", "off"), "Powered": Variant("b", False)},
        [],
    )
    await asyncio.sleep(0)

    enabled.assert_not_called()
    error.assert_called_once()
    assert isinstance(error.call_args[0][0], RadioError)
    assert radio.listening is False
    props_iface.off_properties_changed.assert_called_once()


@pytest.mark.asyncio
async def test_off_without_enabling_is_not_an_error():
    bus, props_iface = _make_bus(powered=False, power_state="off")
    radio = RadioController(bus)
    await radio.initialize()

    error = MagicMock()
    await radio.start(MagicMock(), error)
    _signal_handler(props_iface)(ADAPTER_INTERFACE, {"PowerState": Variant("s", "off")}, [])
    await asyncio.sleep(0)

    error.assert_not_called()
    assert radio.listening is True


@pytest.mark.asyncio
async def test_start_waits_when_already_turning_on():
    bus, props_iface = _make_bus(powered=False, power_state="off-enabling")
    radio = RadioController(bus)
    await radio.initialize()

    enabled = MagicMock()
    error = MagicMock()
    await radio.start(enabled, error)

    props_iface.call_set.assert_not_awaited()
    assert radio.listening is True
    error.assert_not_called()

    _signal_handler(props_iface)(
        ADAPTER_INTERFACE,
        {"PowerState": Variant("s", "on"), "Powered": Variant("b", True)},
        [],
    )
    await asyncio.sleep(0)
    enabled.assert_called_once_with()


@pytest.mark.asyncio
async def test_turning_on_then_off_reports_error():
    bus, props_iface = _make_bus(powered=False, power_state="off-enabling")
    radio = RadioController(bus)
    await radio.initialize()

    error = MagicMock()
    await radio.start(MagicMock(), error)
    _signal_handler(props_iface)(ADAPTER_INTERFACE, {"PowerState": Variant("s", "off")}, [])
    await asyncio.sleep(0)

    error.assert_called_once()
    assert isinstance(error.call_args[0][0], RadioError)


@pytest.mark.asyncio
async def test_busy_reply_counts_as_accepted():
    bus, props_iface = _make_bus(powered=False)
    props_iface.call_set = AsyncMock(
        side_effect=DBusError("org.bluez.Error.Busy", "Operation already in progress")
    )
    radio = RadioController(bus)
    await radio.initialize()

    assert await radio.request_enable() is EnableResult.ACCEPTED

    error = MagicMock()
    await radio.start(MagicMock(), error)
    error.assert_not_called()
    assert radio.listening is True
