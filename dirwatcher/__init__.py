"""dirwatcher package exports."""

from .config import WatcherOptions
from .dir_watcher import DirWatcher, WatcherState
from .errors import DirWatcherError, NullArgumentError, PathResolutionError, WatcherStoppedError
from .watch_service import WatchdogWatchService, WatchHandle, WatchService
from .watcher.types import ALL_KINDS, EventKind, WatchEvent

__all__ = [
    "ALL_KINDS",
    "DirWatcher",
    "DirWatcherError",
    "EventKind",
    "NullArgumentError",
    "PathResolutionError",
    "WatchEvent",
    "WatchHandle",
    "WatchService",
    "WatchdogWatchService",
    "WatcherOptions",
    "WatcherState",
    "WatcherStoppedError",
]
