"""Desktop collaborators: status notifications and application launch."""

from .launcher import AppLauncher
from .notifier import Notifier

__all__ = ["AppLauncher", "Notifier"]
