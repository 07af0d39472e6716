"""Tests for the copy-on-write handle registry."""
from __future__ import annotations

from pathlib import Path

from dirwatcher.watcher.registry import HandleRegistry
from dirwatcher.watcher.types import EventKind, Subscription

ROOT = Path("/watched")


class Handle:
    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self.valid = True


def arm_counter():
    armed: list[Path] = []

    def arm(directory: Path) -> Handle:
        armed.append(directory)
        return Handle(directory)

    return arm, armed


def noop(directory, relative_path, kind):
    return None


def other(directory, relative_path, kind):
    return None


def test_subscribe_arms_each_directory_once():
    registry: HandleRegistry[Handle] = HandleRegistry()
    arm, armed = arm_counter()

    first, overridden_first = registry.subscribe(Subscription(ROOT, noop), arm)
    second, overridden_second = registry.subscribe(Subscription(ROOT, other), arm)

    assert first is second
    assert armed == [ROOT]
    assert not overridden_first and not overridden_second
    assert len(registry.snapshot(first)) == 2


def test_override_replaces_subscription():
    registry: HandleRegistry[Handle] = HandleRegistry()
    arm, _ = arm_counter()
    handle, _ = registry.subscribe(Subscription(ROOT, noop, frozenset({EventKind.MODIFY})), arm)

    _, overridden = registry.subscribe(Subscription(ROOT, noop, frozenset({EventKind.DELETE})), arm)

    snapshot = registry.snapshot(handle)
    assert overridden
    assert len(snapshot) == 1
    assert next(iter(snapshot)).kinds == frozenset({EventKind.DELETE})


def test_snapshots_are_not_mutated():
    registry: HandleRegistry[Handle] = HandleRegistry()
    arm, _ = arm_counter()
    handle, _ = registry.subscribe(Subscription(ROOT, noop), arm)
    before = registry.snapshot(handle)

    registry.subscribe(Subscription(ROOT, other), arm)
    registry.remove_callback(ROOT, noop)

    assert before == frozenset({Subscription(ROOT, noop)})
    assert registry.snapshot(handle) == frozenset({Subscription(ROOT, other)})


def test_remove_callback_reports_shrink():
    registry: HandleRegistry[Handle] = HandleRegistry()
    arm, _ = arm_counter()
    handle, _ = registry.subscribe(Subscription(ROOT, noop), arm)
    registry.subscribe(Subscription(ROOT, other), arm)

    assert registry.remove_callback(ROOT, noop) is True
    assert registry.remove_callback(ROOT, noop) is False
    assert registry.handle_for(ROOT) is handle

    assert registry.remove_callback(ROOT, other) is True
    assert registry.handle_for(ROOT) is None
    assert registry.snapshot(handle) == frozenset()
    assert registry.remove_callback(Path("/never"), other) is False


def test_remove_all_is_idempotent():
    registry: HandleRegistry[Handle] = HandleRegistry()
    arm, armed = arm_counter()
    handle, _ = registry.subscribe(Subscription(ROOT, noop), arm)

    assert registry.remove_all(ROOT) is True
    assert registry.remove_all(ROOT) is False
    assert registry.snapshot(handle) == frozenset()
    assert registry.handle_for(ROOT) is None

    registry.subscribe(Subscription(ROOT, noop), arm)
    assert armed == [ROOT, ROOT]


def test_purge_forgets_invalidated_handle():
    registry: HandleRegistry[Handle] = HandleRegistry()
    arm, _ = arm_counter()
    handle, _ = registry.subscribe(Subscription(ROOT, noop), arm)
    sibling, _ = registry.subscribe(Subscription(Path("/other"), noop), arm)

    assert registry.purge(handle) == ROOT
    assert registry.purge(handle) is None
    assert registry.handle_for(ROOT) is None
    assert registry.handle_for(Path("/other")) is sibling
    assert registry.snapshot(sibling)


def test_subscribe_replaces_invalidated_handle():
    registry: HandleRegistry[Handle] = HandleRegistry()
    arm, armed = arm_counter()
    dead, _ = registry.subscribe(Subscription(ROOT, noop), arm)
    dead.valid = False

    fresh, overridden = registry.subscribe(Subscription(ROOT, other), arm)

    assert fresh is not dead
    assert not overridden
    assert armed == [ROOT, ROOT]
    assert registry.snapshot(fresh) == frozenset({Subscription(ROOT, other)})
    assert registry.snapshot(dead) == frozenset()
    assert registry.purge(dead) is None
    assert registry.handle_for(ROOT) is fresh
