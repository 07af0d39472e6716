"""Watch-service primitive backed by the ``watchdog`` library.

A :class:`WatchService` hands out one :class:`WatchHandle` per directory. A
handle collects the events of the directory's immediate children until the
consumer drains it, and it is queued on the service once per signal cycle, so
a consumer sees the directory at most once until it calls
:meth:`WatchHandle.rearm`.
"""
from __future__ import annotations

import os
import threading
from pathlib import Path
from queue import Empty, Queue
from typing import Iterable

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from .config import WatcherOptions
from .utils.fs import is_directory
from .watcher.types import ALL_KINDS, EventKind, WatchEvent

_KIND_FOR_EVENT_TYPE = {
    EVENT_TYPE_CREATED: EventKind.CREATE,
    EVENT_TYPE_MODIFIED: EventKind.MODIFY,
    EVENT_TYPE_DELETED: EventKind.DELETE,
}


class WatchHandle:
    """Base protocol for a watch on a single directory."""

    directory: Path

    @property
    def valid(self) -> bool:  # pragma: no cover - interface
        raise NotImplementedError

    def drain_events(self) -> list[WatchEvent]:  # pragma: no cover - interface
        raise NotImplementedError

    def rearm(self) -> bool:  # pragma: no cover - interface
        raise NotImplementedError


class WatchService:
    """Base protocol for the OS watch primitive driven by the watcher."""

    def register(self, path: Path, kinds: Iterable[EventKind]) -> WatchHandle:  # pragma: no cover - interface
        raise NotImplementedError

    def poll(self, timeout: float) -> WatchHandle | None:  # pragma: no cover - interface
        raise NotImplementedError

    def close(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class _EventForwarder(FileSystemEventHandler):
    def __init__(self, handle: "_WatchdogHandle") -> None:
        super().__init__()
        self._handle = handle

    def on_any_event(self, event: FileSystemEvent) -> None:
        self._handle.on_filesystem_event(event)


class _WatchdogHandle(WatchHandle):
    def __init__(
        self,
        service: "WatchdogWatchService",
        directory: Path,
        kinds: frozenset[EventKind],
        max_pending: int,
    ) -> None:
        self.directory = directory
        self.kinds = kinds
        self.watch = None
        self._service = service
        self._max_pending = max_pending
        self._lock = threading.Lock()
        self._pending: list[WatchEvent] = []
        self._signalled = False
        self._valid = True

    def __repr__(self) -> str:
        return f"<WatchHandle {self.directory} valid={self._valid}>"

    @property
    def valid(self) -> bool:
        return self._valid

    def on_filesystem_event(self, event: FileSystemEvent) -> None:
        src = _as_path(event.src_path)
        if src == self.directory:
            if event.event_type == EVENT_TYPE_DELETED:
                self.invalidate()
            return
        for watch_event in self._translate(event, src):
            self._signal(watch_event)

    def _translate(self, event: FileSystemEvent, src: Path) -> list[WatchEvent]:
        if event.event_type == EVENT_TYPE_MOVED:
            translated = []
            source = self._relative(src)
            if source is not None:
                translated.append(WatchEvent(source, EventKind.DELETE))
            destination = self._relative(_as_path(event.dest_path))
            if destination is not None:
                translated.append(WatchEvent(destination, EventKind.CREATE))
            return translated
        kind = _KIND_FOR_EVENT_TYPE.get(event.event_type)
        relative = self._relative(src)
        if kind is None or relative is None:
            return []
        return [WatchEvent(relative, kind)]

    def _relative(self, path: Path) -> Path | None:
        if path.parent != self.directory:
            return None
        return Path(path.name)

    def _signal(self, event: WatchEvent) -> None:
        if event.kind not in self.kinds:
            return
        with self._lock:
            if not self._valid:
                return
            if len(self._pending) >= self._max_pending:
                if self._pending[-1].kind is not EventKind.OVERFLOW:
                    self._pending.append(WatchEvent(None, EventKind.OVERFLOW))
            else:
                self._pending.append(event)
            self._queue_locked()

    def _queue_locked(self) -> None:
        if not self._signalled:
            self._signalled = True
            self._service.ready.put(self)

    def invalidate(self, *, signal: bool = True) -> None:
        with self._lock:
            if not self._valid:
                return
            self._valid = False
            if signal:
                self._queue_locked()

    def drain_events(self) -> list[WatchEvent]:
        with self._lock:
            events, self._pending = self._pending, []
            return events

    def rearm(self) -> bool:
        # Not every backend reports removal of the watched directory itself.
        if self._valid and not is_directory(self.directory, follow_symlinks=True):
            self.invalidate(signal=False)
        with self._lock:
            if self._valid:
                if self._pending:
                    self._service.ready.put(self)
                else:
                    self._signalled = False
                return True
        self._service.forget(self)
        return False


class WatchdogWatchService(WatchService):
    """:class:`WatchService` built on a watchdog observer.

    Each directory is scheduled non-recursively; subdirectories are the
    caller's business. Registering a path that already has a live handle
    returns that handle with its kind set replaced, so one kind set is active
    per path at a time.
    """

    def __init__(self, options: WatcherOptions | None = None, *, observer=None) -> None:
        self.options = options or WatcherOptions()
        if observer is None:
            if self.options.use_polling:
                observer = PollingObserver(timeout=self.options.polling_interval)
            else:
                observer = Observer()
        self._observer = observer
        self.ready: Queue[_WatchdogHandle] = Queue()
        self._handles: dict[Path, _WatchdogHandle] = {}
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def register(self, path: Path, kinds: Iterable[EventKind] = ALL_KINDS) -> _WatchdogHandle:
        directory = Path(path)
        kind_set = frozenset(kinds)
        with self._lock:
            if self._closed:
                raise RuntimeError("watch service is closed")
            handle = self._handles.get(directory)
            if handle is not None:
                if handle.valid:
                    handle.kinds = kind_set
                    return handle
                self._unschedule_locked(handle)

            handle = _WatchdogHandle(self, directory, kind_set, self.options.max_pending_events)
            handle.watch = self._observer.schedule(_EventForwarder(handle), str(directory), recursive=False)
            self._handles[directory] = handle
            if not self._observer.is_alive():
                self._observer.start()
            return handle

    def poll(self, timeout: float) -> _WatchdogHandle | None:
        if self.closed:
            raise RuntimeError("watch service is closed")
        try:
            return self.ready.get(timeout=timeout)
        except Empty:
            return None

    def forget(self, handle: _WatchdogHandle) -> None:
        """Drop an invalidated *handle* so the path can be registered afresh."""

        with self._lock:
            self._unschedule_locked(handle)

    def _unschedule_locked(self, handle: _WatchdogHandle) -> None:
        if self._handles.get(handle.directory) is handle:
            del self._handles[handle.directory]
        watch, handle.watch = handle.watch, None
        if watch is not None and not self._closed:
            try:
                self._observer.unschedule(watch)
            except KeyError:
                pass

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            handles = list(self._handles.values())
            self._handles.clear()
        for handle in handles:
            handle.invalidate(signal=False)
        self._observer.stop()
        if self._observer.is_alive():
            self._observer.join()


def _as_path(raw: str | bytes) -> Path:
    return Path(os.fsdecode(raw))


__all__ = ["WatchHandle", "WatchService", "WatchdogWatchService"]
