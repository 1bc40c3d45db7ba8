"""
The watcher package.
Converts filesystem notifications on the target file into restart triggers.
"""
from .handler import ChangeWatcher, WatchSetupError

__all__ = ["ChangeWatcher", "WatchSetupError"]
