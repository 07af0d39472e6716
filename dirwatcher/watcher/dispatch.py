"""Fan drained watch events out to matching subscriptions."""
from __future__ import annotations

import logging
from concurrent.futures import Executor, Future
from pathlib import Path
from typing import Callable, Iterable

from ..logger import log_event
from ..utils.fs import is_directory
from .types import EventKind, Subscription, WatchEvent

RegisterFn = Callable[[Subscription, Path], None]


class Dispatcher:
    """Route events for one handle to the callbacks subscribed to them.

    ``register`` is called as ``register(subscription, new_directory)`` to
    pick up directories created under a recursive subscription.
    """

    def __init__(
        self,
        register: RegisterFn,
        logger: logging.Logger,
        *,
        default_executor: Executor | None = None,
        is_dir: Callable[[Path], bool] = is_directory,
    ) -> None:
        self._register = register
        self._default_executor = default_executor
        self._is_dir = is_dir
        self.logger = logger

    def dispatch(
        self,
        directory: Path,
        subscriptions: frozenset[Subscription],
        events: Iterable[WatchEvent],
    ) -> None:
        for event in events:
            if event.kind is EventKind.CREATE and event.relative_path is not None:
                self._register_created_directory(directory, subscriptions, event.relative_path)
            for subscription in subscriptions:
                if subscription.matches(event.kind):
                    self._run_callback(subscription, event)

    def _register_created_directory(
        self,
        directory: Path,
        subscriptions: frozenset[Subscription],
        relative_path: Path,
    ) -> None:
        recursive = [sub for sub in subscriptions if sub.recursive]
        if not recursive:
            return
        created = directory / relative_path
        if not self._is_dir(created):
            return
        for subscription in recursive:
            try:
                self._register(subscription, created)
            except Exception as exc:
                log_event(
                    self.logger,
                    level=logging.ERROR,
                    action="watcher.recursive_register_failed",
                    message="Failed to register newly created directory",
                    directory=created,
                    extra={"error": repr(exc)},
                )

    def _run_callback(self, subscription: Subscription, event: WatchEvent) -> None:
        executor = subscription.executor or self._default_executor
        args = (subscription.directory, event.relative_path, event.kind)
        if executor is None:
            try:
                subscription.callback(*args)
            except Exception as exc:
                self._callback_failed(subscription, event, exc)
            return

        try:
            future = executor.submit(subscription.callback, *args)
        except Exception as exc:
            self._callback_failed(subscription, event, exc)
            return
        future.add_done_callback(lambda done: self._check_future(subscription, event, done))

    def _check_future(self, subscription: Subscription, event: WatchEvent, future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            self._callback_failed(subscription, event, exc)

    def _callback_failed(self, subscription: Subscription, event: WatchEvent, exc: BaseException) -> None:
        log_event(
            self.logger,
            level=logging.ERROR,
            action="watcher.callback_error",
            message="Callback raised an exception",
            directory=subscription.directory,
            extra={
                "path": str(event.relative_path) if event.relative_path is not None else None,
                "kind": event.kind.value,
                "error": repr(exc),
            },
        )


__all__ = ["Dispatcher"]
