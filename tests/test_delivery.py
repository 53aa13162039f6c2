"""Tests for payload normalization, response classification and retries."""

import json

import pytest
import requests
import responses

from dinorelay.delivery import (
    AUTH_WALL_MARKERS,
    EventSender,
    looks_like_auth_wall,
    normalize_payload,
)
from dinorelay.events import EventKind, RelayEvent, truncate_body

from conftest import API_URL, STEAM_ID, SleepRecorder

OK_BODY = '{"status":"ok"}'
LOGIN_PAGE = "<!DOCTYPE html><html><head><title>Sign In</title></head></html>"


def _event(data='{"hp":100}', kind=EventKind.ADDED):
    return RelayEvent(steamid64=STEAM_ID, event=kind, data=data)


def _sender(**kwargs):
    sleeper = SleepRecorder()
    kwargs.setdefault("retry_delay", 2.0)
    return EventSender(API_URL, sleep=sleeper, **kwargs), sleeper


# ==============================================================================
# normalize_payload
# ==============================================================================

@pytest.mark.parametrize("content", ["", "   ", "\n\t  \r\n"])
def test_blank_content_becomes_empty_object(content):
    assert normalize_payload(content) == "{}"


@pytest.mark.parametrize(
    "content",
    ['{"hp":100}', "[1, 2, 3]", '"text"', "42", "null", '  {"a": {"b": []}}\n'],
)
def test_valid_json_is_unchanged(content):
    assert normalize_payload(content) == content


def test_invalid_json_is_wrapped_as_string_literal():
    content = 'Health="100" broken {'
    result = normalize_payload(content)

    assert json.loads(result) == content
    assert '\\"100\\"' in result


@pytest.mark.parametrize("content", ["NaN", "Infinity", '{"hp": NaN}'])
def test_non_standard_constants_are_wrapped(content):
    assert json.loads(normalize_payload(content)) == content


@pytest.mark.parametrize(
    "content",
    ["[" * 200_000, "[" * 200_000 + "]" * 200_000, '{"a":' * 100_000],
)
def test_deeply_nested_content_is_wrapped(content):
    result = normalize_payload(content)

    assert json.loads(result) == content


def test_binary_like_content_stays_parseable():
    content = "\x00\x01��GVAS\x02"
    assert json.loads(normalize_payload(content)) == content


@pytest.mark.parametrize(
    "content",
    ["", "   ", '{"hp":100}', "not json", 'say "hi"\nline2\\', "NaN"],
)
def test_normalize_is_idempotent(content):
    once = normalize_payload(content)
    assert normalize_payload(once) == once
    json.loads(once)


# ==============================================================================
# Authentication wall predicate
# ==============================================================================

@pytest.mark.parametrize(
    "body",
    [
        "<!DOCTYPE html><body></body>",
        "<html lang='en'>",
        "Sign In through Steam",
    ],
)
def test_login_pages_are_detected(body):
    assert looks_like_auth_wall(body)


def test_json_body_is_not_an_auth_wall():
    assert not looks_like_auth_wall(OK_BODY)


def test_markers_are_swappable():
    assert looks_like_auth_wall("captcha required", markers=["captcha"])
    assert not looks_like_auth_wall(LOGIN_PAGE, markers=["captcha"])


def test_default_markers():
    assert "<!DOCTYPE html>" in AUTH_WALL_MARKERS
    assert "<html" in AUTH_WALL_MARKERS


def test_truncate_body():
    assert truncate_body("short") == "short"
    long_body = "x" * 600
    assert truncate_body(long_body) == "x" * 500 + "... [truncated]"


# ==============================================================================
# EventSender.send
# ==============================================================================

@responses.activate
def test_send_posts_wire_format_with_headers():
    responses.add(responses.POST, API_URL, body=OK_BODY, status=200)
    sender, _ = _sender()

    outcome = sender.send(_event())

    assert outcome.success
    assert outcome.status_code == 200
    assert not outcome.is_html

    request = responses.calls[0].request
    assert json.loads(request.body) == {
        "steamid64": STEAM_ID,
        "type": "player",
        "event": "add-dino-data",
        "data": '{"hp":100}',
    }
    assert request.headers["Content-Type"] == "application/json"
    assert request.headers["User-Agent"].startswith("dinorelay/")


@responses.activate
def test_send_flags_html_login_page():
    responses.add(responses.POST, API_URL, body=LOGIN_PAGE, status=200)
    sender, _ = _sender()

    outcome = sender.send(_event())

    assert not outcome.success
    assert outcome.is_html
    assert "HTML" in outcome.error


@responses.activate
def test_send_non_2xx_is_failure():
    responses.add(responses.POST, API_URL, body='{"error":"bad"}', status=422)
    sender, _ = _sender()

    outcome = sender.send(_event())

    assert not outcome.success
    assert not outcome.is_html
    assert outcome.status_code == 422


@responses.activate
def test_send_transport_error_has_no_status():
    responses.add(responses.POST, API_URL, body=requests.ConnectionError("refused"))
    sender, _ = _sender()

    outcome = sender.send(_event())

    assert not outcome.success
    assert outcome.status_code == 0
    assert "refused" in outcome.error


@responses.activate
def test_send_truncates_logged_body():
    responses.add(responses.POST, API_URL, body='{"x":"' + "a" * 1000 + '"}', status=500)
    sender, _ = _sender()

    outcome = sender.send(_event())

    assert outcome.body.endswith("... [truncated]")
    assert len(outcome.body) == 500 + len("... [truncated]")


# ==============================================================================
# EventSender.deliver (retry policy)
# ==============================================================================

@pytest.mark.parametrize("failures", [0, 1, 2])
@responses.activate
def test_transient_failures_then_success(failures):
    for _ in range(failures):
        responses.add(responses.POST, API_URL, body='{"error":"busy"}', status=503)
    responses.add(responses.POST, API_URL, body=OK_BODY, status=200)
    sender, sleeper = _sender(max_attempts=3, retry_delay=2.0)

    outcome = sender.deliver(_event())

    assert outcome.success
    assert len(responses.calls) == failures + 1
    assert sleeper.calls == [2.0] * failures


@responses.activate
def test_transport_errors_are_retried():
    responses.add(responses.POST, API_URL, body=requests.ConnectionError("reset"))
    responses.add(responses.POST, API_URL, body=OK_BODY, status=200)
    sender, sleeper = _sender()

    outcome = sender.deliver(_event())

    assert outcome.success
    assert len(responses.calls) == 2
    assert sleeper.calls == [2.0]


@responses.activate
def test_gives_up_after_max_attempts():
    responses.add(responses.POST, API_URL, body='{"error":"down"}', status=500)
    sender, sleeper = _sender(max_attempts=3, retry_delay=0.5)

    outcome = sender.deliver(_event())

    assert not outcome.success
    assert outcome.status_code == 500
    assert len(responses.calls) == 3
    assert sleeper.calls == [0.5, 0.5]


@responses.activate
def test_auth_wall_stops_retries_immediately():
    responses.add(responses.POST, API_URL, body=LOGIN_PAGE, status=200)
    sender, sleeper = _sender(max_attempts=3)

    outcome = sender.deliver(_event())

    assert not outcome.success
    assert outcome.is_html
    assert len(responses.calls) == 1
    assert sleeper.calls == []


@responses.activate
def test_single_attempt_configuration():
    responses.add(responses.POST, API_URL, status=502)
    sender, sleeper = _sender(max_attempts=1)

    sender.deliver(_event())

    assert len(responses.calls) == 1
    assert sleeper.calls == []
