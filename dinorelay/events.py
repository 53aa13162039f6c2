"""
events.py — Shared event schema for dinorelay.

Defines the inbound ``FileEvent`` that the monitoring layer emits, the
outbound ``RelayEvent`` that the delivery layer POSTs, and the
``DeliveryOutcome`` describing what happened to one delivery attempt.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class EventKind(str, Enum):
    """Outbound event kinds.  Values are the strings sent on the wire."""

    ADDED = "add-dino-data"
    CHANGED = "change-dino-data"
    DELETED = "delete-dino-data"


# Category tag carried by every outbound event
PLAYER_CATEGORY = "player"

# File contents and response bodies are capped at this length in log lines
BODY_LOG_LIMIT = 500


def truncate_body(body: str, limit: int = BODY_LOG_LIMIT) -> str:
    """Cap *body* at *limit* characters for logging."""
    if len(body) > limit:
        return body[:limit] + "... [truncated]"
    return body


@dataclass
class FileEvent:
    """Represents a single file-system event captured by the monitor.

    Attributes:
        timestamp:    Unix epoch time when the event occurred.
        event_type:   One of "create", "modify", "delete", "rename".
        file_path:    Absolute path of the affected file (source path for
                      renames).
        is_directory: Whether the event refers to a directory.
        dest_path:    New path for "rename" events, else ``None``.
    """

    timestamp: float
    event_type: str
    file_path: str
    is_directory: bool = False
    dest_path: str | None = None


@dataclass
class RelayEvent:
    """A normalized outbound notification for one player save file."""

    steamid64: str
    event: EventKind
    data: str
    type: str = PLAYER_CATEGORY

    def as_dict(self) -> dict[str, str]:
        return {
            "steamid64": self.steamid64,
            "type": self.type,
            "event": self.event.value,
            "data": self.data,
        }


@dataclass
class DeliveryOutcome:
    """Result of a single POST of a :class:`RelayEvent`.

    ``status_code`` is 0 when no HTTP response was received.  ``is_html``
    flags a nominally successful response that is really an HTML login
    page; such an outcome is never retried.
    """

    event_type: str
    steam_id: str
    timestamp: str
    status_code: int = 0
    body: str = ""
    success: bool = False
    is_html: bool = False
    error: str = ""
    response_time: float = 0.0


# Placed on an event queue by the monitor when it stops; the reconciliation
# loop returns when it reads it.
END_OF_STREAM = object()
