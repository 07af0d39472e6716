"""Bookkeeping between canonical directories, watch handles and subscriptions."""
from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable, Dict, Generic, Protocol, TypeVar

from .types import Callback, Subscription


class _Handle(Protocol):
    @property
    def valid(self) -> bool: ...


H = TypeVar("H", bound=_Handle)

_EMPTY: frozenset[Subscription] = frozenset()


class HandleRegistry(Generic[H]):
    """Maps directories to handles and handles to immutable subscription sets.

    Every mutation publishes a brand-new ``frozenset`` so the watch loop can
    hold a snapshot for a whole dispatch pass without taking the lock. All
    mutations share :attr:`lock`, which is reentrant because registrations
    triggered from the watch loop may nest.
    """

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self._handles: Dict[Path, H] = {}
        self._subscriptions: Dict[H, frozenset[Subscription]] = {}

    def subscribe(self, subscription: Subscription, arm: Callable[[Path], H]) -> tuple[H, bool]:
        """Insert or override *subscription*, arming a handle if needed.

        Returns the handle and whether an existing subscription with the same
        directory and callback was replaced. A mapped handle that is no longer
        valid is dropped together with its subscriptions and a fresh one is
        armed, so the new subscription is not lost when the watch loop purges
        the dead handle.
        """

        with self.lock:
            handle = self.handle_for(subscription.directory)
            if handle is not None and not handle.valid:
                del self._handles[subscription.directory]
                self._subscriptions.pop(handle, None)
                handle = None
            if handle is None:
                handle = arm(subscription.directory)
                self._handles[subscription.directory] = handle
            current = self._subscriptions.get(handle, _EMPTY)
            overridden = subscription in current
            if overridden:
                current = current - {subscription}
            self._subscriptions[handle] = current | {subscription}
            return handle, overridden

    def remove_all(self, directory: Path) -> bool:
        """Drop the handle and every subscription for *directory*."""

        with self.lock:
            handle = self._handles.pop(directory, None)
            if handle is None:
                return False
            self._subscriptions.pop(handle, None)
            return True

    def remove_callback(self, directory: Path, callback: Callback) -> bool:
        """Drop the subscriptions of *callback* on *directory*.

        Returns whether the subscription set shrank.
        """

        with self.lock:
            handle = self.handle_for(directory)
            if handle is None:
                return False
            current = self._subscriptions.get(handle, _EMPTY)
            remaining = frozenset(sub for sub in current if sub.callback != callback)
            if not remaining:
                del self._handles[directory]
                self._subscriptions.pop(handle, None)
            else:
                self._subscriptions[handle] = remaining
            return len(remaining) != len(current)

    def purge(self, handle: H) -> Path | None:
        """Forget an invalidated *handle*; returns the directory it watched."""

        with self.lock:
            self._subscriptions.pop(handle, None)
            for directory, registered in list(self._handles.items()):
                if registered is handle:
                    del self._handles[directory]
                    return directory
            return None

    def snapshot(self, handle: H) -> frozenset[Subscription]:
        """Current subscription set of *handle*; safe to iterate without the lock."""

        return self._subscriptions.get(handle, _EMPTY)

    def handle_for(self, directory: Path) -> H | None:
        return self._handles.get(directory)


__all__ = ["HandleRegistry"]
