"""Error taxonomy and remote-error classification."""

from __future__ import annotations

import enum
import socket
from dataclasses import dataclass
from typing import Any

import httplib2


class RemoteErrorKind(enum.Enum):
    """Caller-facing error kinds.

    Each kind knows whether it is worth retrying automatically and whether a
    caller can plausibly fix the cause and try again.
    """

    INVALID_INPUT = ("INVALID_INPUT", False, True)
    AUTH_FAILED = ("AUTH_FAILED", False, True)
    PERMISSION_DENIED = ("PERMISSION_DENIED", False, True)
    NOT_FOUND = ("NOT_FOUND", False, False)
    RATE_LIMITED = ("RATE_LIMITED", True, True)
    SERVER_ERROR = ("SERVER_ERROR", True, True)
    NETWORK_ERROR = ("NETWORK_ERROR", True, True)
    UNKNOWN = ("UNKNOWN", False, False)

    def __init__(self, code: str, retryable: bool, recoverable: bool):
        self.code = code
        self.retryable = retryable
        self.recoverable = recoverable


class CalendarError(Exception):
    """Structured error surfaced by every part of the scheduler."""

    def __init__(
        self,
        kind: RemoteErrorKind,
        message: str,
        *,
        details: str = "",
        suggested_action: str | None = None,
        operation: str | None = None,
        attempts: int | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details
        self.suggested_action = suggested_action
        self.operation = operation
        self.attempts = attempts

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    @property
    def recoverable(self) -> bool:
        return self.kind.recoverable

    def __str__(self) -> str:
        if self.details:
            return f"{self.kind.code}: {self.message} ({self.details})"
        return f"{self.kind.code}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON-friendly shape returned by the server tools."""
        result: dict[str, Any] = {
            "error": self.message,
            "code": self.kind.code,
            "recoverable": self.recoverable,
        }
        if self.details:
            result["details"] = self.details
        if self.suggested_action:
            result["suggested_action"] = self.suggested_action
        if self.operation:
            result["operation"] = self.operation
        if self.attempts is not None:
            result["attempts"] = self.attempts
        return result


def invalid_input(field: str, reason: str) -> CalendarError:
    return CalendarError(
        RemoteErrorKind.INVALID_INPUT, f"Invalid value for {field}", details=reason
    )


def missing_required(field: str) -> CalendarError:
    return CalendarError(
        RemoteErrorKind.INVALID_INPUT,
        f"Required field '{field}' is missing",
        suggested_action=f"Provide a value for '{field}'",
    )


def not_found(resource: str, resource_id: str) -> CalendarError:
    return CalendarError(
        RemoteErrorKind.NOT_FOUND, f"{resource} not found", details=f"ID: {resource_id}"
    )


def cancelled() -> CalendarError:
    return CalendarError(
        RemoteErrorKind.NETWORK_ERROR,
        "operation cancelled",
        suggested_action="Check your internet connection and try again",
    )


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Classification:
    kind: RemoteErrorKind
    retryable: bool
    suggested_action: str | None = None
    message: str = ""


_REAUTH = "Run 'mcp-calendar-scheduler --auth google' to re-authenticate"

# status -> (kind, default message, suggested action)
_STATUS_TABLE: dict[int, tuple[RemoteErrorKind, str, str | None]] = {
    400: (RemoteErrorKind.INVALID_INPUT, "invalid request", None),
    401: (RemoteErrorKind.AUTH_FAILED, "invalid or expired credentials", _REAUTH),
    403: (RemoteErrorKind.PERMISSION_DENIED, "insufficient permissions", "Check calendar sharing settings"),
    404: (RemoteErrorKind.NOT_FOUND, "resource not found", None),
    409: (RemoteErrorKind.INVALID_INPUT, "conflict with existing event", None),
    429: (RemoteErrorKind.RATE_LIMITED, "API rate limit exceeded", "Wait a moment and try again"),
    500: (RemoteErrorKind.SERVER_ERROR, "Google Calendar service error", "Try again in a few moments"),
    502: (RemoteErrorKind.SERVER_ERROR, "Google Calendar service error", "Try again in a few moments"),
    503: (RemoteErrorKind.SERVER_ERROR, "Google Calendar service error", "Try again in a few moments"),
    504: (RemoteErrorKind.SERVER_ERROR, "Google Calendar service error", "Try again in a few moments"),
}


def classify(status: Any, message: str | None = None) -> Classification:
    """Map a raw remote status code to an error kind.

    Total: unknown, missing or malformed statuses classify as UNKNOWN so the
    original error is never masked by a failure in here.
    """
    try:
        code = int(status)
    except (TypeError, ValueError):
        code = None

    entry = _STATUS_TABLE.get(code) if code is not None else None
    if entry is None:
        text = message or (f"API error {code}" if code is not None else "unknown error")
        return Classification(RemoteErrorKind.UNKNOWN, False, None, str(text))

    kind, default_message, action = entry
    text = default_message
    # 409 keeps its fixed wording
    if message and code != 409:
        text = str(message)
    return Classification(kind, kind.retryable, action, text)


def _status_of(exc: BaseException) -> Any:
    status = getattr(exc, "status_code", None)
    if status is None:
        resp = getattr(exc, "resp", None)
        status = getattr(resp, "status", None)
    if status is None:
        status = getattr(exc, "status", None)
    return status


def _is_network_error(exc: BaseException) -> bool:
    # other OSErrors (token file permissions, missing files) are local and not retried
    return isinstance(
        exc, (ConnectionError, TimeoutError, socket.timeout, socket.gaierror, httplib2.ServerNotFoundError)
    )


def classify_exception(exc: BaseException) -> Classification:
    """Classify any exception raised by a transport call. Never raises."""
    if isinstance(exc, CalendarError):
        return Classification(exc.kind, exc.kind.retryable, exc.suggested_action, exc.message)

    status = _status_of(exc)
    if status is not None:
        reason = getattr(exc, "reason", None)
        return classify(status, reason if isinstance(reason, str) and reason else None)

    if _is_network_error(exc):
        return Classification(
            RemoteErrorKind.NETWORK_ERROR,
            True,
            "Check your internet connection and try again",
            str(exc) or "network error",
        )

    return Classification(RemoteErrorKind.UNKNOWN, False, None, str(exc) or type(exc).__name__)


def to_calendar_error(
    exc: BaseException,
    operation: str | None = None,
    attempts: int | None = None,
) -> CalendarError:
    """Wrap an exception into a CalendarError, keeping the original as cause."""
    if isinstance(exc, CalendarError):
        if operation and exc.operation is None:
            exc.operation = operation
        if attempts is not None:
            exc.attempts = attempts
        return exc

    c = classify_exception(exc)
    details = ""
    if operation:
        details = f"{operation} failed after {attempts} attempt(s)" if attempts else f"{operation} failed"
    err = CalendarError(
        c.kind,
        c.message,
        details=details,
        suggested_action=c.suggested_action,
        operation=operation,
        attempts=attempts,
    )
    err.__cause__ = exc
    return err
