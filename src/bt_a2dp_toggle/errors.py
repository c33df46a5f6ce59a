"""Failure kinds and process exit codes for a toggle run."""

from enum import IntEnum


class ExitCode(IntEnum):
    """Process exit status, one per terminal outcome."""

    DONE = 0
    FAILURE = 1
    RADIO_REFUSED = 2
    RADIO_ERROR = 3
    PROXY_UNAVAILABLE = 4
    OPERATION_UNAVAILABLE = 5
    DEVICE_NOT_PAIRED = 6
    CONNECT_REFUSED = 7
    DISCONNECT_REFUSED = 8
    TIMED_OUT = 9
    CONFIG_INVALID = 10


class ToggleError(Exception):
    """Base class for every error that ends a toggle run."""

    exit_code = ExitCode.FAILURE


class ConfigError(ToggleError):
    """Raised when the launcher configuration is missing or invalid."""

    exit_code = ExitCode.CONFIG_INVALID


class RadioUnavailable(ToggleError):
    """Raised when the host refuses to power the Bluetooth radio on."""

    exit_code = ExitCode.RADIO_REFUSED


class RadioError(ToggleError):
    """Raised when the radio reports a failure after enabling was requested."""

    exit_code = ExitCode.RADIO_ERROR


class ProxyUnavailable(ToggleError):
    """Raised when the host will not hand over an A2DP profile handle."""

    exit_code = ExitCode.PROXY_UNAVAILABLE


class OperationUnavailable(ToggleError):
    """Raised when a connect or disconnect primitive cannot be resolved."""

    exit_code = ExitCode.OPERATION_UNAVAILABLE

    def __init__(self, operation: str):
        super().__init__(f"{operation} operation unavailable on this platform")
        self.operation = operation


class DeviceNotPaired(ToggleError):
    """Raised when the target address is not in the bonded set."""

    exit_code = ExitCode.DEVICE_NOT_PAIRED

    def __init__(self, address: str):
        super().__init__(f"device {address} not paired")
        self.address = address


class TransitionRefused(ToggleError):
    """Raised when the host synchronously rejects a connect or disconnect."""

    def __init__(self, operation: str, detail: str = ""):
        message = f"{operation} refused"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.operation = operation
        self.exit_code = (
            ExitCode.CONNECT_REFUSED if operation == "connect"
            else ExitCode.DISCONNECT_REFUSED
        )


class ToggleTimeout(ToggleError):
    """Raised when the overall deadline passes before the toggle decision."""

    exit_code = ExitCode.TIMED_OUT

    def __init__(self, seconds: float):
        super().__init__(f"timed out after {seconds:g}s")
        self.seconds = seconds
