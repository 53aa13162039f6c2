"""Shared fixtures for the dinorelay test suite."""

from __future__ import annotations

import os

import pytest

from dinorelay.events import DeliveryOutcome, RelayEvent
from dinorelay.reconciler import Reconciler
from dinorelay.state import FileStateStore

API_URL = "https://relay.test/api/get-event"
STEAM_ID = "76561198000000001"
FIXED_NOW = 1_700_000_000.0


class RecordingSender:
    """Stands in for EventSender; records every event and reports success."""

    def __init__(self) -> None:
        self.events: list[RelayEvent] = []

    def deliver(self, event: RelayEvent) -> DeliveryOutcome:
        self.events.append(event)
        return DeliveryOutcome(
            event_type=event.event.value,
            steam_id=event.steamid64,
            timestamp="",
            status_code=200,
            success=True,
        )


class SleepRecorder:
    """Replaces time.sleep; remembers the requested delays."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def save_dir(tmp_path) -> str:
    path = tmp_path / "Players"
    path.mkdir()
    return str(path)


@pytest.fixture
def store() -> FileStateStore:
    return FileStateStore()


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def reconciler(store, sender, sleeper) -> Reconciler:
    return Reconciler(
        store,
        sender,
        sleep=sleeper,
        clock=lambda: FIXED_NOW,
    )


def write_save(directory: str, name: str, content: str, mtime: float | None = None) -> str:
    """Write a save file and optionally pin its modification time."""
    path = os.path.join(directory, name)
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(content)
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path
