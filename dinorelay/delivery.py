"""
delivery.py — Outbound event delivery for dinorelay.

Turns a :class:`RelayEvent` into an HTTP POST against the configured
endpoint, classifies the response, and retries transient failures with a
fixed delay.

Public API
----------
normalize_payload(content)
    Make sure a file's content is a valid JSON document before it is sent.

looks_like_auth_wall(body, markers)
    Heuristic that recognises an HTML login page served in place of the API.

EventSender
    Sends one event (``send``) or one event with retries (``deliver``).
    Delivery never raises; a failed event is logged and dropped.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Iterable

import requests

from dinorelay.config import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_RETRY_DELAY,
    USER_AGENT,
)
from dinorelay.events import DeliveryOutcome, RelayEvent, truncate_body

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Authentication-wall signature
# ---------------------------------------------------------------------------
# The endpoint sits behind a Steam sign-in page.  When the session is not
# accepted it answers 200 with that page instead of JSON.
AUTH_WALL_MARKERS: tuple[str, ...] = ("<!DOCTYPE html>", "<html", "Steam", "Sign In")


def _reject_constant(name: str) -> float:
    # json.loads accepts NaN/Infinity, which are not valid JSON
    raise ValueError(f"invalid JSON constant: {name}")


def normalize_payload(content: str) -> str:
    """Return *content* as a string that always parses as JSON.

    * empty or whitespace-only content → ``{}``
    * content that is not valid JSON → the content encoded as a JSON string
      literal (never dropped, only re-encoded)
    * valid JSON → returned unchanged

    Normalizing an already-normalized value returns it unchanged.
    """
    if not content.strip():
        return "{}"

    try:
        json.loads(content, parse_constant=_reject_constant)
    except (ValueError, RecursionError) as exc:
        # RecursionError: nesting deeper than the decoder's stack allows
        logger.info(
            "Data is not valid JSON, wrapping as string. Error: %s, Data: %s",
            exc,
            truncate_body(content),
        )
        return json.dumps(content)

    return content


def looks_like_auth_wall(
    body: str, markers: Iterable[str] = AUTH_WALL_MARKERS
) -> bool:
    """Return ``True`` if *body* looks like an HTML login page."""
    return any(marker in body for marker in markers)


class EventSender:
    """POSTs relay events and retries transient failures.

    Parameters:
        api_url:      Endpoint receiving the events.
        session:      Optional ``requests.Session`` (one is created if omitted).
        timeout:      Per-attempt timeout in seconds.
        max_attempts: Total attempts per event, including the first.
        retry_delay:  Fixed pause between attempts, in seconds.
        markers:      Substrings that identify an authentication wall.
        sleep:        Blocking sleep used between attempts.
    """

    def __init__(
        self,
        api_url: str,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        markers: Iterable[str] = AUTH_WALL_MARKERS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.api_url = api_url
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.markers = tuple(markers)
        self._sleep = sleep
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Content-Type": "application/json",
                "User-Agent": USER_AGENT,
                "Cache-Control": "no-cache",
                "Pragma": "no-cache",
            }
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def deliver(self, event: RelayEvent) -> DeliveryOutcome:
        """Send *event*, retrying transient failures.

        Stops after the first attempt if the endpoint returned an
        authentication wall.  Returns the outcome of the last attempt.
        """
        outcome = self.send(event)
        attempt = 1
        while not outcome.success:
            if outcome.is_html:
                logger.error(
                    "API returned HTML page (likely authentication required), "
                    "stopping retries for SteamID %s",
                    event.steamid64,
                )
                return outcome

            if attempt >= self.max_attempts:
                logger.error(
                    "All %d attempts failed for SteamID %s",
                    self.max_attempts,
                    event.steamid64,
                )
                return outcome

            logger.warning(
                "Attempt %d failed for SteamID %s, retrying in %.1fs ...",
                attempt,
                event.steamid64,
                self.retry_delay,
            )
            self._sleep(self.retry_delay)
            attempt += 1
            outcome = self.send(event)

        return outcome

    def send(self, event: RelayEvent) -> DeliveryOutcome:
        """Perform exactly one POST of *event* and classify the response."""
        outcome = DeliveryOutcome(
            event_type=event.event.value,
            steam_id=event.steamid64,
            timestamp=datetime.now(timezone.utc).isoformat(timespec="seconds"),
        )

        started = time.monotonic()
        try:
            response = self._session.post(
                self.api_url,
                data=json.dumps(event.as_dict()),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            outcome.response_time = time.monotonic() - started
            outcome.error = str(exc)
            _log_api_response(outcome)
            return outcome
        outcome.response_time = time.monotonic() - started

        body = response.text
        is_html = looks_like_auth_wall(body, self.markers)

        outcome.status_code = response.status_code
        outcome.body = truncate_body(body)
        outcome.is_html = is_html
        outcome.success = 200 <= response.status_code < 300 and not is_html
        if is_html:
            outcome.error = (
                "Server returned HTML page instead of JSON "
                "(likely authentication required or wrong endpoint)"
            )
        elif not outcome.success:
            outcome.error = f"HTTP {response.status_code}"

        _log_api_response(outcome)
        return outcome

    def close(self) -> None:
        self._session.close()


# ---------------------------------------------------------------------------
# Logging helper
# ---------------------------------------------------------------------------

def _log_api_response(outcome: DeliveryOutcome) -> None:
    """Emit one API_RESPONSE line plus a short human-readable summary."""
    if outcome.success:
        status = "SUCCESS"
    elif outcome.is_html:
        status = "HTML_RESPONSE"
    else:
        status = "ERROR"

    logger.info(
        "API_RESPONSE | Status: %s | Time: %s | Event: %s | SteamID: %s | "
        "HTTP: %d | ResponseTime: %.3fs | Error: %s | Body: %s",
        status,
        outcome.timestamp,
        outcome.event_type,
        outcome.steam_id,
        outcome.status_code,
        outcome.response_time,
        outcome.error,
        outcome.body,
    )

    if outcome.success:
        logger.info(
            "Successfully sent event %s for SteamID %s",
            outcome.event_type,
            outcome.steam_id,
        )
    elif outcome.is_html:
        logger.warning(
            "API returned login page for SteamID %s (HTTP %d) - "
            "check API endpoint and authentication",
            outcome.steam_id,
            outcome.status_code,
        )
    else:
        logger.warning(
            "API error - Event: %s, SteamID: %s, Status: %d, Error: %s",
            outcome.event_type,
            outcome.steam_id,
            outcome.status_code,
            outcome.error,
        )
