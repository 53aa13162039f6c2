"""
reconciler.py — File-state reconciliation loop for dinorelay.

Consumes ``FileEvent`` objects from the monitor, decides which of them are
real changes to a player save file, keeps the ``FileStateStore`` up to date
and hands the resulting ``RelayEvent`` to the sender.

Everything here runs on one thread.  The settle delay after a create, the
HTTP call and the retry delay all block the loop; file writes arrive at game
tick rate, so head-of-line blocking is acceptable.
"""

from __future__ import annotations

import logging
import os
import queue
import time
from typing import Callable, Protocol

from dinorelay.bootstrap import read_content
from dinorelay.config import DEFAULT_POLL_INTERVAL, DEFAULT_SETTLE_DELAY
from dinorelay.delivery import normalize_payload
from dinorelay.events import (
    END_OF_STREAM,
    DeliveryOutcome,
    EventKind,
    FileEvent,
    RelayEvent,
    truncate_body,
)
from dinorelay.identity import subject_id_from_path
from dinorelay.state import FileStateStore

logger = logging.getLogger(__name__)


class Sender(Protocol):
    def deliver(self, event: RelayEvent) -> DeliveryOutcome: ...


class Reconciler:
    """Stateful per-file state machine driven by file events and a timer.

    Parameters:
        store:             State shared with the bootstrap scan.
        sender:            Object whose ``deliver`` transmits a RelayEvent.
        settle_delay:      Seconds to wait after a create before reading.
        poll_interval:     Seconds between sweeps for missed deletions.
        recursive:         Follow subdirectories created at runtime.
        watch_directory:   Called with a new directory to add it to the
                           watch set (recursive mode).
        unwatch_directory: Called with a removed directory.
        sleep:             Blocking sleep (settle delay).
        clock:             Wall clock recorded as last-modified on create.
        monotonic:         Clock used for the sweep deadline.
    """

    def __init__(
        self,
        store: FileStateStore,
        sender: Sender,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        recursive: bool = False,
        watch_directory: Callable[[str], object] | None = None,
        unwatch_directory: Callable[[str], object] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.sender = sender
        self.settle_delay = settle_delay
        self.poll_interval = poll_interval
        self.recursive = recursive
        self.known_directories: set[str] = set()
        self._watch_directory = watch_directory
        self._unwatch_directory = unwatch_directory
        self._sleep = sleep
        self._clock = clock
        self._monotonic = monotonic

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def run(self, source: queue.Queue) -> None:
        """Process *source* until it yields ``END_OF_STREAM``.

        Items are either ``FileEvent`` objects or exceptions reported by the
        monitor.  Whenever the sweep deadline passes, tracked files are
        checked for deletions the monitor did not report.
        """
        next_tick = self._monotonic() + self.poll_interval
        while True:
            now = self._monotonic()
            if now >= next_tick:
                self.sweep_deleted()
                next_tick = self._monotonic() + self.poll_interval
                continue

            try:
                item = source.get(timeout=max(0.0, next_tick - now))
            except queue.Empty:
                continue

            if item is END_OF_STREAM:
                logger.info("Event stream closed, leaving reconciliation loop.")
                return

            if isinstance(item, BaseException):
                logger.error("Watcher error: %s", item)
                continue

            try:
                self.handle_event(item)
            except Exception:
                logger.exception("Unhandled error processing event: %s", item)

    # ------------------------------------------------------------------
    # Event dispatch
    # ------------------------------------------------------------------

    def handle_event(self, event: FileEvent) -> None:
        """Route one file event to the matching transition."""
        if event.event_type == "rename":
            self._on_rename(event)
            return

        path = event.file_path
        if (
            event.is_directory
            or os.path.isdir(path)
            or os.path.abspath(path) in self.known_directories
        ):
            self._on_directory_event(event)
            return

        steam_id = subject_id_from_path(path)
        if not steam_id:
            return

        logger.info(
            "File event: %s, File: %s, SteamID: %s",
            event.event_type,
            os.path.basename(path),
            steam_id,
        )

        if event.event_type == "create":
            self._sleep(self.settle_delay)
            self._on_create(path, steam_id)
        elif event.event_type == "modify":
            self._on_write(path, steam_id)
        elif event.event_type == "delete":
            self._on_remove(path, steam_id)

    def sweep_deleted(self) -> int:
        """Treat every tracked path that vanished from disk as deleted.

        Returns the number of delete events dispatched.
        """
        removed = 0
        for path in self.store.tracked_paths():
            try:
                os.stat(path)
                continue
            except FileNotFoundError:
                pass
            except OSError as exc:
                logger.debug("Error stating file %s during sweep: %s", path, exc)
                continue

            steam_id = subject_id_from_path(path)
            if not steam_id:
                self.store.forget(path)
                continue

            logger.info("Detected deleted file: %s", os.path.basename(path))
            self._on_remove(path, steam_id)
            removed += 1
        return removed

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _on_create(self, path: str, steam_id: str) -> None:
        try:
            content = read_content(path)
        except OSError as exc:
            logger.warning("Error reading created file %s: %s", path, exc)
            return

        self.store.cache.put(path, content)
        self._dispatch(EventKind.ADDED, steam_id, content)
        self.store.set_mtime(path, self._clock())

    def _on_write(self, path: str, steam_id: str) -> None:
        try:
            mtime = os.stat(path).st_mtime
        except OSError as exc:
            logger.warning("Error stating file %s: %s", path, exc)
            return

        if self.store.get_mtime(path) == mtime:
            return

        try:
            content = read_content(path)
        except OSError as exc:
            logger.warning("Error reading modified file %s: %s", path, exc)
            return

        self.store.cache.put(path, content)
        self._dispatch(EventKind.CHANGED, steam_id, content)
        self.store.set_mtime(path, mtime)

    def _on_remove(self, path: str, steam_id: str) -> None:
        content = self.store.cache.get(path) or ""
        self._dispatch(EventKind.DELETED, steam_id, content)
        self.store.forget(path)

    def _on_rename(self, event: FileEvent) -> None:
        # Only a tracked source that is really gone is reported as deleted
        source_known = (
            self.store.is_tracked(event.file_path)
            or event.file_path in self.store.cache
            or os.path.abspath(event.file_path) in self.known_directories
        )
        if source_known and not os.path.lexists(event.file_path):
            self.handle_event(
                FileEvent(
                    timestamp=event.timestamp,
                    event_type="delete",
                    file_path=event.file_path,
                    is_directory=event.is_directory,
                )
            )
        if event.dest_path:
            self.handle_event(
                FileEvent(
                    timestamp=event.timestamp,
                    event_type="create",
                    file_path=event.dest_path,
                    is_directory=event.is_directory,
                )
            )

    def _on_directory_event(self, event: FileEvent) -> None:
        if not self.recursive:
            return

        path = os.path.abspath(event.file_path)
        if event.event_type == "delete":
            if path in self.known_directories:
                self.known_directories.discard(path)
                if self._unwatch_directory is not None:
                    self._unwatch_directory(path)
                logger.info("Stopped watching removed directory: %s", path)
            return

        if event.event_type != "create" or path in self.known_directories:
            return

        self.known_directories.add(path)
        if self._watch_directory is not None:
            self._watch_directory(path)
        logger.info("Watching new directory: %s", path)

        # Files written before the watch was registered produced no events
        try:
            entries = sorted(os.scandir(path), key=lambda e: e.name)
        except OSError as exc:
            logger.warning("Error reading new directory %s: %s", path, exc)
            return
        for entry in entries:
            if self.store.is_tracked(entry.path):
                continue
            self.handle_event(
                FileEvent(
                    timestamp=event.timestamp,
                    event_type="create",
                    file_path=entry.path,
                    is_directory=entry.is_dir(),
                )
            )

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def _dispatch(self, kind: EventKind, steam_id: str, content: str) -> DeliveryOutcome:
        event = RelayEvent(
            steamid64=steam_id,
            event=kind,
            data=normalize_payload(content),
        )
        logger.info(
            "Sending %s event for SteamID %s, Data: %s",
            kind.value,
            steam_id,
            truncate_body(event.data),
        )
        return self.sender.deliver(event)
