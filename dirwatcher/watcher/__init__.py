"""Registration and dispatch internals for dirwatcher."""
from .dispatch import Dispatcher
from .registry import HandleRegistry
from .types import ALL_KINDS, Callback, EventKind, Subscription, WatchEvent, normalize_kinds

__all__ = [
    "ALL_KINDS",
    "Callback",
    "Dispatcher",
    "EventKind",
    "HandleRegistry",
    "Subscription",
    "WatchEvent",
    "normalize_kinds",
]
