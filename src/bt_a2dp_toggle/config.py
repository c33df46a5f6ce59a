"""Configuration loader for the A2DP toggle launcher.

Reads a small JSON file once at start:

    {
      "target_device_address": "C8:84:47:03:F6:5C",
      "target_device_name": "(5C)Logitech Adapter",
      "launch_target": "com.example.media"
    }

The file lives at $BT_A2DP_TOGGLE_CONFIG, or else
$XDG_CONFIG_HOME/bt-a2dp-toggle/config.json.
"""

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path

from .bluez.constants import DEFAULT_ADAPTER
from .bluez.device import canonical_address
from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV = "BT_A2DP_TOGGLE_CONFIG"
LOG_LEVEL_ENV = "BT_A2DP_TOGGLE_LOG_LEVEL"
CONFIG_DIR_NAME = "bt-a2dp-toggle"
CONFIG_FILE_NAME = "config.json"


def default_config_path() -> Path:
    """Resolve the config file path from the environment."""
    explicit = os.environ.get(CONFIG_ENV)
    if explicit:
        return Path(explicit).expanduser()
    base = os.environ.get("XDG_CONFIG_HOME") or os.path.join(Path.home(), ".config")
    return Path(base) / CONFIG_DIR_NAME / CONFIG_FILE_NAME


@dataclass
class LauncherConfig:
    """Target device and launch settings for one toggle run."""

    target_device_address: str
    target_device_name: str | None = None
    launch_target: str | None = None
    adapter: str = DEFAULT_ADAPTER
    timeout_seconds: float = 10.0
    accept_window_seconds: float = 2.0
    match_name_fallback: bool = False
    notify: bool = True
    log_level: str = "info"

    def __post_init__(self) -> None:
        try:
            self.target_device_address = canonical_address(self.target_device_address)
        except (ValueError, AttributeError) as e:
            raise ConfigError(f"target_device_address: {e}") from e
        if self.timeout_seconds <= 0:
            raise ConfigError("timeout_seconds must be positive")
        if self.accept_window_seconds <= 0:
            raise ConfigError("accept_window_seconds must be positive")
        if self.accept_window_seconds >= self.timeout_seconds:
            raise ConfigError("accept_window_seconds must be shorter than timeout_seconds")

    @classmethod
    def from_dict(cls, data: dict) -> "LauncherConfig":
        if "target_device_address" not in data:
            raise ConfigError("target_device_address is required")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning("Ignoring unknown config keys: %s", ", ".join(unknown))
        try:
            return cls(**{k: v for k, v in data.items() if k in known})
        except TypeError as e:
            raise ConfigError(f"invalid config value: {e}") from e

    @classmethod
    def load(cls, path: Path | None = None) -> "LauncherConfig":
        """Load configuration from *path* (default: default_config_path())."""
        path = path or default_config_path()
        try:
            data = json.loads(path.read_text())
        except FileNotFoundError as e:
            raise ConfigError(f"config file {path} not found") from e
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"failed to read {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{path} must hold a JSON object")

        config = cls.from_dict(data)
        env_level = os.environ.get(LOG_LEVEL_ENV)
        if env_level:
            config.log_level = env_level
        logger.debug("Loaded config from %s", path)
        return config
