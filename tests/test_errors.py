"""Tests for the error taxonomy and classifier."""

import socket

import httplib2
import pytest
from googleapiclient.errors import HttpError

from mcp_calendar_scheduler.errors import (
    CalendarError,
    RemoteErrorKind,
    classify,
    classify_exception,
    to_calendar_error,
)


def _http_error(status: int) -> HttpError:
    return HttpError(httplib2.Response({"status": status}), b"{}")


# ---------------------------------------------------------------------------
# classify
# ---------------------------------------------------------------------------

class TestClassify:
    @pytest.mark.parametrize("status,kind,retryable", [
        (400, RemoteErrorKind.INVALID_INPUT, False),
        (401, RemoteErrorKind.AUTH_FAILED, False),
        (403, RemoteErrorKind.PERMISSION_DENIED, False),
        (404, RemoteErrorKind.NOT_FOUND, False),
        (409, RemoteErrorKind.INVALID_INPUT, False),
        (429, RemoteErrorKind.RATE_LIMITED, True),
        (500, RemoteErrorKind.SERVER_ERROR, True),
        (502, RemoteErrorKind.SERVER_ERROR, True),
        (503, RemoteErrorKind.SERVER_ERROR, True),
        (504, RemoteErrorKind.SERVER_ERROR, True),
        (418, RemoteErrorKind.UNKNOWN, False),
        (501, RemoteErrorKind.UNKNOWN, False),
    ])
    def test_status_table(self, status, kind, retryable):
        c = classify(status, "boom")
        assert c.kind is kind
        assert c.retryable is retryable

    def test_auth_suggests_reauth(self):
        c = classify(401, None)
        assert "--auth google" in c.suggested_action

    def test_conflict_message(self):
        c = classify(409, "The requested identifier already exists.")
        assert c.message == "conflict with existing event"

    @pytest.mark.parametrize("status", [None, "abc", object(), ""])
    def test_total_on_garbage(self, status):
        c = classify(status, None)
        assert c.kind is RemoteErrorKind.UNKNOWN
        assert c.retryable is False

    def test_string_status(self):
        assert classify("503", None).kind is RemoteErrorKind.SERVER_ERROR


# ---------------------------------------------------------------------------
# classify_exception
# ---------------------------------------------------------------------------

class TestClassifyException:
    def test_http_error(self):
        assert classify_exception(_http_error(429)).kind is RemoteErrorKind.RATE_LIMITED
        assert classify_exception(_http_error(404)).kind is RemoteErrorKind.NOT_FOUND

    @pytest.mark.parametrize("exc", [
        ConnectionResetError("reset"),
        TimeoutError("timed out"),
        socket.timeout("timed out"),
        httplib2.ServerNotFoundError("no such host"),
    ])
    def test_network_errors_are_retryable(self, exc):
        c = classify_exception(exc)
        assert c.kind is RemoteErrorKind.NETWORK_ERROR
        assert c.retryable is True

    @pytest.mark.parametrize("exc", [
        PermissionError(13, "Permission denied"),
        FileNotFoundError(2, "No such file or directory"),
        IsADirectoryError(21, "Is a directory"),
    ])
    def test_local_os_errors_are_not_network_errors(self, exc):
        c = classify_exception(exc)
        assert c.kind is RemoteErrorKind.UNKNOWN
        assert c.retryable is False

    def test_calendar_error_keeps_kind(self):
        err = CalendarError(RemoteErrorKind.PERMISSION_DENIED, "nope")
        assert classify_exception(err).kind is RemoteErrorKind.PERMISSION_DENIED

    def test_unknown_exception(self):
        c = classify_exception(RuntimeError("weird"))
        assert c.kind is RemoteErrorKind.UNKNOWN
        assert c.message == "weird"


# ---------------------------------------------------------------------------
# CalendarError
# ---------------------------------------------------------------------------

class TestCalendarError:
    def test_kind_flags(self):
        assert RemoteErrorKind.RATE_LIMITED.retryable
        assert not RemoteErrorKind.NOT_FOUND.recoverable
        assert RemoteErrorKind.AUTH_FAILED.recoverable

    def test_to_dict(self):
        err = CalendarError(
            RemoteErrorKind.RATE_LIMITED, "slow down",
            details="create event failed", suggested_action="wait", operation="create event", attempts=3,
        )
        d = err.to_dict()
        assert d["code"] == "RATE_LIMITED"
        assert d["error"] == "slow down"
        assert d["recoverable"] is True
        assert d["suggested_action"] == "wait"
        assert d["attempts"] == 3

    def test_to_calendar_error_wraps_cause(self):
        original = _http_error(503)
        err = to_calendar_error(original, operation="list events", attempts=3)
        assert err.kind is RemoteErrorKind.SERVER_ERROR
        assert err.__cause__ is original
        assert err.operation == "list events"
        assert "3 attempt" in err.details

    def test_to_calendar_error_passthrough(self):
        err = CalendarError(RemoteErrorKind.INVALID_INPUT, "bad")
        assert to_calendar_error(err, operation="x") is err
        assert err.operation == "x"
