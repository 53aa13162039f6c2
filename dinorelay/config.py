"""
config.py — Runtime configuration for dinorelay.

All values are supplied once at startup (from CLI flags) and never change
for the lifetime of the process.
"""

from __future__ import annotations

from dataclasses import dataclass

VERSION = "1.0.0"
USER_AGENT = f"dinorelay/{VERSION}"

DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 2.0
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_SETTLE_DELAY = 0.1


@dataclass(frozen=True)
class RelayConfig:
    """Immutable relay settings.

    Attributes:
        watch_path:      Directory holding the per-player save files.
        api_url:         Endpoint that receives the JSON events.
        log_file:        Optional path of an append-mode log file.
        poll_interval:   Seconds between sweeps for missed deletions.
        max_attempts:    Delivery attempts per event (including the first).
        retry_delay:     Fixed pause between delivery attempts, in seconds.
        request_timeout: Per-attempt HTTP timeout, in seconds.
        settle_delay:    Pause after a create notification before reading.
        recursive:       Also watch (and seed) subdirectories.
    """

    watch_path: str
    api_url: str
    log_file: str | None = None
    poll_interval: float = DEFAULT_POLL_INTERVAL
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    retry_delay: float = DEFAULT_RETRY_DELAY
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    settle_delay: float = DEFAULT_SETTLE_DELAY
    recursive: bool = False
