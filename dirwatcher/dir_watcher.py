"""Directory watcher multiplexing many callbacks onto one watch per directory."""
from __future__ import annotations

import itertools
import logging
import threading
from concurrent.futures import Executor
from enum import Enum
from pathlib import Path

from .config import WatcherOptions
from .errors import NullArgumentError, PathResolutionError, WatcherStoppedError
from .logger import configure_logging, log_event
from .utils.fs import is_directory, list_immediate_children, resolve_canonical
from .watch_service import WatchdogWatchService, WatchHandle, WatchService
from .watcher.dispatch import Dispatcher
from .watcher.registry import HandleRegistry
from .watcher.types import ALL_KINDS, Callback, KindsArgument, Subscription, normalize_kinds

LOGGER_NAME = "dirwatcher.watcher"

_WATCHER_COUNT = itertools.count()


class WatcherState(Enum):
    """Lifecycle of a :class:`DirWatcher`; ``STOPPED`` is terminal."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class DirWatcher:
    """Watch directories for changes and call back registered listeners.

    Several callbacks may be registered for one directory, each with its own
    event kinds. The underlying watch service only supports one kind set per
    directory, so every directory is watched for all kinds and events are
    filtered per callback.

    Callbacks run on the executor given at registration, else on
    *default_executor*, else inline on the watch thread. Inline callbacks
    block event processing until they return.

    Unregistering a directory does not unregister its subdirectories, even
    when they were registered recursively.
    """

    def __init__(
        self,
        service: WatchService | None = None,
        default_executor: Executor | None = None,
        *,
        options: WatcherOptions | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.options = options or WatcherOptions()
        self.default_executor = default_executor
        self.logger = logger or logging.getLogger(LOGGER_NAME)
        if logger is None and not logging.getLogger().handlers:
            configure_logging()

        if service is None:
            service = self._default_service_factory(self.options)
        self._service = service
        self._registry: HandleRegistry[WatchHandle] = HandleRegistry()
        self._dispatcher = Dispatcher(
            self._register_subscription,
            self.logger,
            default_executor=default_executor,
        )
        self._stop_event = threading.Event()
        self._state = WatcherState.NOT_STARTED
        self._worker: threading.Thread | None = None

    def __enter__(self) -> "DirWatcher":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    @property
    def state(self) -> WatcherState:
        return self._state

    def register_all(
        self,
        directory: str | Path,
        callback: Callback,
        *,
        recursive: bool = False,
        executor: Executor | None = None,
    ) -> None:
        """Register *callback* for every event kind on *directory*."""

        self.register(directory, callback, ALL_KINDS, recursive=recursive, executor=executor)

    def register(
        self,
        directory: str | Path,
        callback: Callback,
        kinds: KindsArgument,
        *,
        recursive: bool = False,
        executor: Executor | None = None,
    ) -> None:
        """Register *callback* for *kinds* events on *directory*.

        With ``recursive=True`` every existing subdirectory is registered with
        the same arguments, as is every subdirectory created later. Walking a
        large tree happens on the calling thread.

        Registering a callback that is already registered for the directory
        replaces its kinds, recursive flag and executor.
        """

        if callback is None:
            raise NullArgumentError("callback")
        if kinds is None:
            raise NullArgumentError("kinds")
        if not callable(callback):
            raise TypeError("callback must be callable")
        kind_set = normalize_kinds(kinds)
        self._ensure_accepting()

        canonical = resolve_canonical(directory)
        subscription = Subscription(
            directory=canonical,
            callback=callback,
            kinds=kind_set,
            recursive=recursive,
            executor=executor,
        )
        self._register_subscription(subscription, canonical)

    def unregister_all(self, directory: str | Path) -> bool:
        """Remove every callback registered for *directory*.

        Returns ``True`` if the directory was registered.
        """

        return self._registry.remove_all(resolve_canonical(directory))

    def unregister(self, directory: str | Path, callback: Callback) -> bool:
        """Remove *callback* from *directory*.

        Returns ``True`` if the callback was registered for the directory.
        """

        return self._registry.remove_callback(resolve_canonical(directory), callback)

    def stop(self) -> None:
        """Stop watching without waiting for the watch thread to exit.

        The watch service is closed by the watch thread, so no further events
        are delivered once it notices the request. A callback already running
        is allowed to finish.
        """

        with self._registry.lock:
            if self._state in (WatcherState.STOPPING, WatcherState.STOPPED):
                return
            never_started = self._state is WatcherState.NOT_STARTED
            self._state = WatcherState.STOPPING
            self._stop_event.set()
        if never_started:
            self._close_service()
            self._state = WatcherState.STOPPED

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the watch thread to exit; returns whether it has."""

        worker = self._worker
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout)
            return not worker.is_alive()
        return self._state is WatcherState.STOPPED

    def _ensure_accepting(self) -> None:
        if self._state in (WatcherState.STOPPING, WatcherState.STOPPED):
            raise WatcherStoppedError("watcher has been stopped")

    def _register_subscription(self, subscription: Subscription, directory: Path) -> None:
        if directory != subscription.directory:
            directory = resolve_canonical(directory)
            subscription = Subscription(
                directory=directory,
                callback=subscription.callback,
                kinds=subscription.kinds,
                recursive=subscription.recursive,
                executor=subscription.executor,
            )
        if not directory.is_dir():
            raise PathResolutionError(directory, "is not a directory")

        with self._registry.lock:
            self._ensure_accepting()
            _, overridden = self._registry.subscribe(subscription, self._arm)
            self._start()

        if overridden:
            log_event(
                self.logger,
                level=logging.WARNING,
                action="watcher.override",
                message="Overriding callback for directory",
                directory=directory,
                extra={"kinds": sorted(kind.value for kind in subscription.kinds)},
            )

        if subscription.recursive:
            self._register_children(subscription)

    def _arm(self, directory: Path) -> WatchHandle:
        try:
            return self._service.register(directory, ALL_KINDS)
        except (FileNotFoundError, NotADirectoryError) as exc:
            raise PathResolutionError(directory, "disappeared before it could be watched") from exc

    def _register_children(self, subscription: Subscription) -> None:
        try:
            children = list_immediate_children(subscription.directory)
        except OSError as exc:
            log_event(
                self.logger,
                level=logging.ERROR,
                action="watcher.recursive_register_failed",
                message="Failed to list directory",
                directory=subscription.directory,
                extra={"error": repr(exc)},
            )
            return

        for child in children:
            if not is_directory(child):
                continue
            try:
                self._register_subscription(subscription, child)
            except WatcherStoppedError:
                raise
            except Exception as exc:
                log_event(
                    self.logger,
                    level=logging.ERROR,
                    action="watcher.recursive_register_failed",
                    message="Failed to recursively register directory",
                    directory=child,
                    extra={"error": repr(exc)},
                )

    def _start(self) -> None:
        if self._state is not WatcherState.NOT_STARTED:
            return
        name = f"{self.options.thread_name_prefix}-{next(_WATCHER_COUNT)}"
        self._worker = threading.Thread(target=self._run, name=name, daemon=self.options.daemon)
        self._state = WatcherState.RUNNING
        self._worker.start()
        log_event(
            self.logger,
            level=logging.DEBUG,
            action="watcher.started",
            message=f"Started watch thread {name}",
        )

    def _run(self) -> None:
        try:
            while not self._stop_event.is_set():
                try:
                    handle = self._service.poll(self.options.poll_interval)
                except Exception as exc:
                    log_event(
                        self.logger,
                        level=logging.ERROR,
                        action="watcher.loop_error",
                        message="Watch service failed; stopping watch loop",
                        extra={"error": repr(exc)},
                        exc_info=True,
                    )
                    return
                if handle is not None:
                    self._process(handle)
        finally:
            self._close_service()
            self._state = WatcherState.STOPPED

    def _process(self, handle: WatchHandle) -> None:
        try:
            events = handle.drain_events()
            subscriptions = self._registry.snapshot(handle)
            if subscriptions and events:
                self._dispatcher.dispatch(handle.directory, subscriptions, events)
            if not handle.rearm():
                self._handle_invalidated(handle)
        except Exception as exc:
            log_event(
                self.logger,
                level=logging.ERROR,
                action="watcher.loop_error",
                message="Failed to process events for directory",
                directory=handle.directory,
                extra={"error": repr(exc)},
                exc_info=True,
            )

    def _handle_invalidated(self, handle: WatchHandle) -> None:
        directory = self._registry.purge(handle)
        if directory is None:
            return
        log_event(
            self.logger,
            level=logging.INFO,
            action="watcher.handle_invalidated",
            message="Watched directory is gone; its callbacks were removed",
            directory=directory,
        )

    def _close_service(self) -> None:
        try:
            self._service.close()
        except Exception as exc:
            log_event(
                self.logger,
                level=logging.WARNING,
                action="watcher.close_error",
                message="Failed to close watch service",
                extra={"error": repr(exc)},
            )

    @staticmethod
    def _default_service_factory(options: WatcherOptions) -> WatchService:
        return WatchdogWatchService(options)


__all__ = ["DirWatcher", "LOGGER_NAME", "WatcherState"]
