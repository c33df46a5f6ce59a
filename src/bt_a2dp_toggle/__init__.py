"""One-tap A2DP toggle for a paired Bluetooth audio sink."""

__version__ = "0.1.0"
