"""Connection toggle: the state machine behind one launcher tap.

Sequences radio power-on, A2DP proxy acquisition and a single
connect/disconnect decision for the configured device.  All state lives
on the event loop thread; components report back through plain
callbacks and the follow-up work runs as tracked tasks.
"""

import asyncio
import logging
from enum import Enum

from .bluez.adapter import RadioController
from .bluez.device import (
    BondedDevice,
    ConnectionState,
    find_bonded_by_address,
    find_bonded_by_name,
)
from .bluez.profile import A2dpProfileAcquirer, A2dpProxy
from .config import LauncherConfig
from .errors import DeviceNotPaired, ExitCode, ToggleError, ToggleTimeout
from .host.launcher import AppLauncher
from .host.notifier import Notifier

logger = logging.getLogger(__name__)

MSG_CONNECTED = "Bluetooth Connected"
MSG_DISCONNECTED = "Bluetooth Disconnected"


class OrchestratorState(Enum):
    INIT = "init"
    AWAIT_RADIO = "await_radio"
    AWAIT_PROXY = "await_proxy"
    TOGGLING = "toggling"
    DONE = "done"
    FAILED = "failed"


_TERMINAL = frozenset({OrchestratorState.DONE, OrchestratorState.FAILED})

_ALLOWED = {
    OrchestratorState.INIT: {
        OrchestratorState.AWAIT_RADIO,
        OrchestratorState.AWAIT_PROXY,
        OrchestratorState.FAILED,
    },
    OrchestratorState.AWAIT_RADIO: {OrchestratorState.AWAIT_PROXY, OrchestratorState.FAILED},
    OrchestratorState.AWAIT_PROXY: {OrchestratorState.TOGGLING, OrchestratorState.FAILED},
    OrchestratorState.TOGGLING: {OrchestratorState.DONE, OrchestratorState.FAILED},
    OrchestratorState.DONE: set(),
    OrchestratorState.FAILED: set(),
}


class Decision(Enum):
    CONNECT = "connect"
    DISCONNECT = "disconnect"
    NONE = "none"


def decide(state: ConnectionState) -> Decision:
    """Pick the single action for an observed A2DP state."""
    if state is ConnectionState.DISCONNECTED:
        return Decision.CONNECT
    if state is ConnectionState.CONNECTED:
        return Decision.DISCONNECT
    # CONNECTING / DISCONNECTING: someone else's transition is in flight
    return Decision.NONE


class ConnectionToggle:
    """Top-level orchestrator for one toggle run."""

    def __init__(
        self,
        config: LauncherConfig,
        radio: RadioController,
        acquirer: A2dpProfileAcquirer,
        notifier: Notifier,
        launcher: AppLauncher,
    ):
        self._config = config
        self._radio = radio
        self._acquirer = acquirer
        self._notifier = notifier
        self._launcher = launcher
        self._state = OrchestratorState.INIT
        self._proxy: A2dpProxy | None = None
        self._tasks: set[asyncio.Task] = set()
        self._deadline: asyncio.TimerHandle | None = None
        self._finished: asyncio.Future | None = None
        self.failure: ToggleError | None = None
        self.decision: Decision | None = None
        self.target: BondedDevice | None = None

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def exit_code(self) -> ExitCode:
        if self._state is OrchestratorState.DONE:
            return ExitCode.DONE
        if self.failure is not None:
            return self.failure.exit_code
        raise RuntimeError(f"run not finished (state {self._state.name})")

    async def run(self) -> ExitCode:
        """Run the toggle to completion and return the exit code."""
        if self._state is not OrchestratorState.INIT:
            raise RuntimeError("a ConnectionToggle runs only once")
        loop = asyncio.get_running_loop()
        self._finished = loop.create_future()
        self._deadline = loop.call_later(self._config.timeout_seconds, self._on_timeout)
        logger.info("Toggling A2DP for %s", self._config.target_device_address)

        self._spawn(self._start_radio())
        try:
            await self._finished
        finally:
            await self._cleanup()

        if self._state is OrchestratorState.FAILED:
            await self._notifier.show(f"Bluetooth: {self.failure}", error=True)
        logger.info("Finished %s (exit %d)", self._state.name, self.exit_code)
        return self.exit_code

    # ── state handling ──────────────────────────────────────────────

    def _transition(self, new_state: OrchestratorState) -> None:
        if new_state not in _ALLOWED[self._state]:
            raise RuntimeError(f"illegal transition {self._state.name} -> {new_state.name}")
        logger.debug("State %s -> %s", self._state.name, new_state.name)
        self._state = new_state

    @property
    def _terminal(self) -> bool:
        return self._state in _TERMINAL

    def _finish(self) -> None:
        self._transition(OrchestratorState.DONE)
        self._resolve()

    def _fail(self, error: ToggleError) -> None:
        if self._terminal:
            logger.debug("Ignoring %s after %s", error, self._state.name)
            return
        logger.error("Failed while %s: %s", self._state.name, error)
        self.failure = error
        self._transition(OrchestratorState.FAILED)
        self._resolve()

    def _resolve(self) -> None:
        if self._finished is not None and not self._finished.done():
            self._finished.set_result(self._state)

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        if isinstance(exc, ToggleError):
            self._fail(exc)
        elif self._finished is not None and not self._finished.done():
            self._finished.set_exception(exc)

    def _cancel_deadline(self) -> None:
        if self._deadline is not None:
            self._deadline.cancel()
            self._deadline = None

    async def _cleanup(self) -> None:
        self._cancel_deadline()
        pending = [task for task in self._tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._radio.detach()
        if self._proxy is not None:
            self._proxy.release()

    # ── event handlers ──────────────────────────────────────────────

    async def _start_radio(self) -> None:
        await self._radio.initialize()
        if not self._radio.is_on():
            self._transition(OrchestratorState.AWAIT_RADIO)
        await self._radio.start(self._on_radio_on, self._on_error)

    def _on_radio_on(self) -> None:
        if self._terminal:
            logger.debug("Ignoring radio-on after %s", self._state.name)
            return
        self._transition(OrchestratorState.AWAIT_PROXY)
        self._spawn(self._acquirer.acquire(self._on_proxy, self._on_error))

    def _on_error(self, error: ToggleError) -> None:
        self._fail(error)

    def _on_proxy(self, proxy: A2dpProxy) -> None:
        if self._terminal:
            logger.debug("Releasing A2DP proxy delivered after %s", self._state.name)
            proxy.release()
            return
        self._proxy = proxy
        self._transition(OrchestratorState.TOGGLING)
        self._spawn(self._toggle())

    def _on_timeout(self) -> None:
        self._deadline = None
        self._fail(ToggleTimeout(self._config.timeout_seconds))

    # ── the decision ────────────────────────────────────────────────

    def _find_target(self, devices: list[BondedDevice]) -> BondedDevice:
        address = self._config.target_device_address
        target = find_bonded_by_address(devices, address)
        name = self._config.target_device_name
        if target is None and self._config.match_name_fallback and name:
            target = find_bonded_by_name(devices, name)
        if target is None:
            raise DeviceNotPaired(address)
        return target

    async def _toggle(self) -> None:
        proxy = self._proxy
        self.target = target = self._find_target(await proxy.bonded_devices())
        observed = await proxy.connection_state(target)

        self._cancel_deadline()
        self.decision = decide(observed)
        logger.info(
            "%s (%s) is %s: %s",
            target.name or "unknown", target.address, observed.value, self.decision.value,
        )

        if self.decision is Decision.CONNECT:
            await proxy.connect(target)
            await self._notifier.show(MSG_CONNECTED)
            if self._config.launch_target:
                await self._launcher.launch(self._config.launch_target)
        elif self.decision is Decision.DISCONNECT:
            await proxy.disconnect(target)
            await self._notifier.show(MSG_DISCONNECTED)

        self._finish()
