"""Configuration for :class:`~dirwatcher.dir_watcher.DirWatcher`."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class WatcherOptions:
    """Options that control how a watcher polls and dispatches."""

    # Upper bound on how long the loop blocks before re-checking the stop flag.
    poll_interval: float = 0.05
    thread_name_prefix: str = "DirWatcher"
    daemon: bool = True
    # Pending events per handle before they collapse into one OVERFLOW event.
    max_pending_events: int = 512
    use_polling: bool = False
    polling_interval: float = 1.0

    def __post_init__(self) -> None:
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        if self.max_pending_events < 1:
            raise ValueError("max_pending_events must be at least 1")
        if self.polling_interval <= 0:
            raise ValueError("polling_interval must be positive")
