"""
monitor.py — File-system event monitor for dinorelay.

Uses the ``watchdog`` library to watch the save directory and converts raw
events into ``FileEvent`` objects placed on a queue.  The reconciliation loop
is the only consumer of that queue; watchdog's observer thread only ever
enqueues.

Besides ``FileEvent`` objects the queue carries exceptions (the error
channel) and, once the monitor stops, ``END_OF_STREAM``.
"""

from __future__ import annotations

import logging
import os
import queue
import time

from watchdog.events import (
    DirCreatedEvent,
    DirDeletedEvent,
    DirMovedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from dinorelay.events import END_OF_STREAM, FileEvent

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Mapping watchdog event types → dinorelay event_type strings
# ---------------------------------------------------------------------------
# DirModifiedEvent is left out: it fires for every write inside a directory.
_EVENT_MAP = {
    FileCreatedEvent: "create",
    FileModifiedEvent: "modify",
    FileDeletedEvent: "delete",
    FileMovedEvent: "rename",
    DirCreatedEvent: "create",
    DirDeletedEvent: "delete",
    DirMovedEvent: "rename",
}


def _fs_path(path: str | bytes) -> str:
    return os.fsdecode(path)


class _RelayHandler(FileSystemEventHandler):
    """Translates watchdog events into FileEvents on a queue."""

    def __init__(self, sink: queue.Queue) -> None:
        super().__init__()
        self._sink = sink

    def on_any_event(self, event) -> None:  # noqa: ANN001
        event_type = _EVENT_MAP.get(type(event))
        if event_type is None:
            return

        dest_path = getattr(event, "dest_path", None) or None
        fe = FileEvent(
            timestamp=time.time(),
            event_type=event_type,
            file_path=_fs_path(event.src_path),
            is_directory=event.is_directory,
            dest_path=_fs_path(dest_path) if dest_path else None,
        )
        self._sink.put(fe)


class Monitor:
    """Watches a set of directories and feeds a single event queue.

    Each directory is watched non-recursively; subdirectories are added to
    the watch set explicitly through :meth:`add_path`.

    Parameters:
        events: Queue to publish to.  A new one is created if omitted.
    """

    def __init__(self, events: queue.Queue | None = None) -> None:
        self.events: queue.Queue = events if events is not None else queue.Queue()
        self._handler = _RelayHandler(self.events)
        self._observer = Observer()
        self._watches: dict = {}
        self._running = False

    # ------------------------------------------------------------------
    # Watch set
    # ------------------------------------------------------------------

    def add_path(self, path: str) -> bool:
        """Add *path* to the watch set.

        Failures after the monitor has started are reported on the error
        channel.  Before :meth:`start`, scheduling errors surface from
        :meth:`start` itself.
        """
        path = os.path.abspath(path)
        if path in self._watches:
            return True
        try:
            watch = self._observer.schedule(self._handler, path, recursive=False)
        except OSError as exc:
            logger.warning("Cannot watch %s: %s", path, exc)
            self.events.put(exc)
            return False
        self._watches[path] = watch
        logger.info("Watching: %s", path)
        return True

    def remove_path(self, path: str) -> None:
        """Drop *path* from the watch set (no-op if it is not watched)."""
        watch = self._watches.pop(os.path.abspath(path), None)
        if watch is None:
            return
        try:
            self._observer.unschedule(watch)
        except (KeyError, OSError) as exc:
            logger.debug("Unschedule of %s failed: %s", path, exc)

    @property
    def watched_paths(self) -> list[str]:
        return list(self._watches)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the background observer thread.

        Raises:
            OSError: If a scheduled directory cannot be watched.
        """
        self._observer.daemon = True
        self._observer.start()
        self._running = True
        logger.info("Monitor started.")

    def stop(self) -> None:
        """Stop the observer and close the event stream."""
        if self._running:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._running = False
            logger.info("Monitor stopped.")
        self.events.put(END_OF_STREAM)
