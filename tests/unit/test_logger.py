"""Unit tests for the JSON logging setup."""

from __future__ import annotations

import json
import logging

import pytest

from subtrack.core.logger import (
    MASK,
    QUIET_LOGGERS,
    REQUEST_ID_HEADER,
    JSONFormatter,
    bind_user,
    configure_logging,
    ensure_request_id,
    redact,
)


@pytest.fixture()
def restore_root():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def _record(msg: str = "load %s", args: tuple = ("failed",), **extra) -> logging.LogRecord:
    record = logging.LogRecord("subtrack.test", logging.WARNING, __file__, 1, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_emits_json_with_extras():
    payload = json.loads(JSONFormatter().format(_record(operation="load", attempt=2, unrelated="x")))

    assert payload["level"] == "WARNING"
    assert payload["name"] == "subtrack.test"
    assert payload["message"] == "load failed"
    assert payload["operation"] == "load"
    assert payload["attempt"] == 2
    assert payload["request_id"] is None
    assert "unrelated" not in payload
    assert "user_id" not in payload


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("Authorization: Bearer abc.def-123", f"Authorization: Bearer {MASK}"),
        ("GET /rest/v1/x?apikey=sekret&limit=5", f"GET /rest/v1/x?apikey={MASK}&limit=5"),
        ('{"password": "Str0ngPassw0rd"}', f'{{"password": "{MASK}"}}'),
        ("token eyJhbGciOi.eyJzdWIiOi.c2lnbmF0dXJl seen", f"token {MASK} seen"),
        ("nothing to hide", "nothing to hide"),
    ],
)
def test_redact(raw, expected):
    assert redact(raw) == expected


def test_formatter_redacts_the_message():
    payload = json.loads(JSONFormatter().format(_record("sign in with %s", ("Bearer abc",))))
    assert payload["message"] == f"sign in with Bearer {MASK}"


def test_configure_logging_replaces_root_handlers(restore_root):
    configure_logging("debug")

    assert restore_root.level == logging.DEBUG
    assert len(restore_root.handlers) == 1
    assert isinstance(restore_root.handlers[0].formatter, JSONFormatter)
    for name, level in QUIET_LOGGERS.items():
        assert logging.getLogger(name).level == level


def test_records_carry_request_and_user(app, restore_root):
    configure_logging("INFO")
    handler = restore_root.handlers[0]

    with app.test_request_context(headers={"X-Correlation-ID": "corr-7"}):
        bind_user("user-1")
        record = _record()
        assert handler.filter(record)

    assert record.request_id == "corr-7"
    assert record.user_id == "user-1"


def test_request_id_comes_from_the_correlation_header(app):
    with app.test_request_context(headers={"X-Correlation-ID": "corr-7"}):
        assert ensure_request_id() == "corr-7"
        assert ensure_request_id() == "corr-7"


def test_response_carries_the_request_id(client):
    response = client.get("/api/v1/health", headers={REQUEST_ID_HEADER: "req-1"})
    assert response.headers[REQUEST_ID_HEADER] == "req-1"
