"""Shared fixtures for dirwatcher unit tests."""
from __future__ import annotations

import threading
import time
from pathlib import Path
from queue import Empty, Queue
from typing import Callable, Iterable

import pytest

from dirwatcher.config import WatcherOptions
from dirwatcher.dir_watcher import DirWatcher
from dirwatcher.watch_service import WatchHandle, WatchService
from dirwatcher.watcher.types import EventKind, WatchEvent


class FakeHandle(WatchHandle):
    def __init__(self, service: "FakeWatchService", directory: Path) -> None:
        self.directory = directory
        self.kinds: frozenset[EventKind] = frozenset()
        self._service = service
        self._pending: list[WatchEvent] = []
        self._signalled = False
        self._valid = True

    @property
    def valid(self) -> bool:
        return self._valid

    def drain_events(self) -> list[WatchEvent]:
        with self._service.lock:
            events, self._pending = self._pending, []
            return events

    def rearm(self) -> bool:
        with self._service.lock:
            if not self._valid:
                return False
            if self._pending:
                self._service.ready.put(self)
            else:
                self._signalled = False
            return True

    def signal(self, event: WatchEvent | None = None) -> None:
        with self._service.lock:
            if event is not None:
                self._pending.append(event)
            if not self._signalled:
                self._signalled = True
                self._service.ready.put(self)


class FakeWatchService(WatchService):
    """In-memory watch service; tests inject events with :meth:`emit`."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.ready: Queue[FakeHandle] = Queue()
        self.handles: dict[Path, FakeHandle] = {}
        self.register_calls: list[tuple[Path, frozenset[EventKind]]] = []
        self.close_calls = 0
        self.fail_close = False

    def register(self, path: Path, kinds: Iterable[EventKind]) -> FakeHandle:
        kind_set = frozenset(kinds)
        self.register_calls.append((path, kind_set))
        handle = self.handles.get(path)
        if handle is None or not handle.valid:
            handle = FakeHandle(self, path)
            self.handles[path] = handle
        handle.kinds = kind_set
        return handle

    def poll(self, timeout: float) -> FakeHandle | None:
        try:
            return self.ready.get(timeout=timeout)
        except Empty:
            return None

    def close(self) -> None:
        self.close_calls += 1
        if self.fail_close:
            raise OSError("close failed")

    def emit(self, directory: Path, name: str | None, kind: EventKind) -> None:
        handle = self.handles[Path(directory).resolve()]
        relative = Path(name) if name is not None else None
        handle.signal(WatchEvent(relative, kind))

    def invalidate(self, directory: Path) -> None:
        handle = self.handles[Path(directory).resolve()]
        with self.lock:
            handle._valid = False
        handle.signal()


class Recorder:
    """Callback that records every invocation."""

    def __init__(self) -> None:
        self.calls: list[tuple[Path, Path | None, EventKind]] = []
        self.threads: list[str] = []
        self._lock = threading.Lock()

    def __call__(self, directory: Path, relative_path: Path | None, kind: EventKind) -> None:
        with self._lock:
            self.calls.append((directory, relative_path, kind))
            self.threads.append(threading.current_thread().name)

    def kinds(self) -> list[EventKind]:
        with self._lock:
            return [kind for _, _, kind in self.calls]


def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture()
def wait_until():
    return _wait_until


@pytest.fixture()
def fake_service() -> FakeWatchService:
    return FakeWatchService()


@pytest.fixture()
def watcher_factory(fake_service: FakeWatchService):
    created: list[DirWatcher] = []

    def factory(**kwargs: object) -> DirWatcher:
        kwargs.setdefault("options", WatcherOptions(poll_interval=0.01))
        watcher = DirWatcher(fake_service, **kwargs)
        created.append(watcher)
        return watcher

    yield factory

    for watcher in created:
        watcher.stop()
        watcher.join(timeout=2.0)


@pytest.fixture()
def recorder_factory():
    return Recorder
