"""Filesystem helpers used by the watcher."""
from __future__ import annotations

from pathlib import Path

from ..errors import PathResolutionError


def resolve_canonical(path: str | Path) -> Path:
    """Return the absolute, symlink-free form of *path*.

    Raises :class:`PathResolutionError` when the path does not exist or the
    resolution fails (symlink loops, permission errors).
    """

    try:
        return Path(path).expanduser().resolve(strict=True)
    except FileNotFoundError as exc:
        raise PathResolutionError(path, "does not exist") from exc
    except (OSError, RuntimeError) as exc:
        raise PathResolutionError(path, f"cannot be resolved ({exc})") from exc


def list_immediate_children(path: Path) -> list[Path]:
    """List the entries directly inside *path* without descending."""

    return sorted(path.iterdir())


def is_directory(path: Path, *, follow_symlinks: bool = False) -> bool:
    """Return whether *path* is a directory; symlinks are not followed by default."""

    try:
        if not follow_symlinks and path.is_symlink():
            return False
        return path.is_dir()
    except OSError:
        return False


__all__ = ["is_directory", "list_immediate_children", "resolve_canonical"]
