"""Shared type definitions for the watcher subsystem."""
from __future__ import annotations

from concurrent.futures import Executor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Union


class EventKind(str, Enum):
    """The fixed set of event kinds a subscription can filter on."""

    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"
    OVERFLOW = "overflow"


ALL_KINDS: frozenset[EventKind] = frozenset(EventKind)

# callback(directory, relative_path, kind); relative_path is None for OVERFLOW.
Callback = Callable[[Path, Union[Path, None], EventKind], None]

KindsArgument = Union[EventKind, str, Iterable[Union[EventKind, str]]]


def normalize_kinds(kinds: KindsArgument) -> frozenset[EventKind]:
    """Coerce *kinds* into a frozenset of :class:`EventKind`.

    Accepts a single kind, a kind value such as ``"create"`` or an iterable of
    either. Unknown kinds raise :class:`ValueError`.
    """

    if isinstance(kinds, (EventKind, str)):
        kinds = (kinds,)
    return frozenset(EventKind(kind) for kind in kinds)


@dataclass(frozen=True, slots=True)
class WatchEvent:
    """A single event drained from a watch handle."""

    relative_path: Path | None
    kind: EventKind


@dataclass(frozen=True, slots=True)
class Subscription:
    """One registered callback for one canonical directory.

    Two subscriptions are equal when they share the directory and the
    callback, so registering the same callback again replaces the earlier
    kind filter instead of adding a second entry.
    """

    directory: Path
    callback: Callback
    kinds: frozenset[EventKind] = field(default=ALL_KINDS, compare=False)
    recursive: bool = field(default=False, compare=False)
    executor: Executor | None = field(default=None, compare=False, repr=False)

    def matches(self, kind: EventKind) -> bool:
        return kind in self.kinds


__all__ = [
    "ALL_KINDS",
    "Callback",
    "EventKind",
    "KindsArgument",
    "Subscription",
    "WatchEvent",
    "normalize_kinds",
]
