"""
state.py — In-memory file state for dinorelay.

Holds the last-known content of every tracked save file (so a delete can
still report what the file contained) and the last-known modification time
(so coalesced write notifications are reported only once).

Nothing here is persisted: a restart re-seeds both tables through the
bootstrap scan.  The store is touched only from the reconciliation loop, so
there is no locking.
"""

from __future__ import annotations


class ContentCache:
    """Mapping of absolute file path → last-known file content."""

    def __init__(self) -> None:
        self._content: dict[str, str] = {}

    def put(self, path: str, content: str) -> None:
        self._content[path] = content

    def get(self, path: str) -> str | None:
        """Return the cached content for *path*, or ``None`` if absent."""
        return self._content.get(path)

    def remove(self, path: str) -> None:
        self._content.pop(path, None)

    def __contains__(self, path: object) -> bool:
        return path in self._content

    def __len__(self) -> int:
        return len(self._content)


class FileStateStore:
    """Owns the content cache and the modification-time table.

    A path is *tracked* when it has a modification-time entry.  The content
    entry may be missing for a tracked path whose read failed during the
    bootstrap scan.
    """

    def __init__(self) -> None:
        self.cache = ContentCache()
        self._mtimes: dict[str, float] = {}

    # ------------------------------------------------------------------
    # Modification times
    # ------------------------------------------------------------------

    def get_mtime(self, path: str) -> float | None:
        return self._mtimes.get(path)

    def set_mtime(self, path: str, mtime: float) -> None:
        self._mtimes[path] = mtime

    def tracked_paths(self) -> list[str]:
        """Snapshot of tracked paths, safe to iterate while forgetting."""
        return list(self._mtimes)

    def is_tracked(self, path: str) -> bool:
        return path in self._mtimes

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def forget(self, path: str) -> None:
        """Purge both the modification-time and the content entry."""
        self._mtimes.pop(path, None)
        self.cache.remove(path)

    def __len__(self) -> int:
        return len(self._mtimes)
