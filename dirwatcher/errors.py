"""Exceptions raised synchronously by the dirwatcher registration API."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


class DirWatcherError(Exception):
    """Base class for all dirwatcher errors."""


@dataclass(slots=True, eq=False)
class PathResolutionError(DirWatcherError):
    """Raised when a directory does not exist or cannot be canonicalized."""

    path: str | Path
    reason: str = "cannot be resolved"

    def __str__(self) -> str:
        return f"{self.path}: {self.reason}"


@dataclass(slots=True, eq=False)
class NullArgumentError(DirWatcherError):
    """Raised when a required registration argument is missing."""

    argument: str

    def __str__(self) -> str:
        return f"'{self.argument}' must not be None"


class WatcherStoppedError(DirWatcherError):
    """Raised when registering on a watcher that has been stopped."""


__all__ = [
    "DirWatcherError",
    "NullArgumentError",
    "PathResolutionError",
    "WatcherStoppedError",
]
