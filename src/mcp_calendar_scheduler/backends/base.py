"""Base types and protocol for calendar transports."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

from ..errors import CalendarError, RemoteErrorKind

T = TypeVar("T")


@dataclass
class CalendarEvent:
    """Unified calendar event representation."""

    id: str
    calendar: str  # calendar ID the event lives in
    title: str
    start: datetime
    end: datetime
    description: str = ""
    location: str = ""
    all_day: bool = False
    attendees: list[str] = field(default_factory=list)
    recurrence: list[str] = field(default_factory=list)
    status: str = ""
    timezone: str = ""
    html_link: str = ""
    recurring_event_id: str = ""  # set on expanded instances of a series

    @property
    def is_recurring(self) -> bool:
        return bool(self.recurrence or self.recurring_event_id)

    def to_draft(self) -> EventDraft:
        """Copy of this event's content, ready to be created elsewhere."""
        return EventDraft(
            title=self.title,
            start=self.start,
            end=self.end,
            description=self.description,
            location=self.location,
            timezone=self.timezone,
            attendees=list(self.attendees),
            recurrence=list(self.recurrence),
            all_day=self.all_day,
        )


@dataclass
class EventDraft:
    """Fields for creating an event, or the changed fields of an update.

    In an update, ``attendees=None`` leaves the guest list alone while an
    empty list removes every attendee.
    """

    title: str = ""
    start: datetime | None = None
    end: datetime | None = None
    description: str = ""
    location: str = ""
    timezone: str = ""
    attendees: list[str] | None = None
    recurrence: list[str] = field(default_factory=list)
    all_day: bool = False
    reminder_minutes: int | None = None
    visibility: str = ""
    color_id: str = ""


@dataclass
class CalendarInfo:
    id: str
    summary: str
    description: str = ""
    timezone: str = ""
    access_role: str = ""
    primary: bool = False


@dataclass
class AclRule:
    """One entry of a calendar's sharing settings."""

    id: str
    role: str
    scope_type: str
    scope_value: str = ""


@dataclass(frozen=True)
class BusyInterval:
    """Half-open interval [start, end) during which a calendar is occupied."""

    start: datetime
    end: datetime

    def __post_init__(self):
        if not self.start < self.end:
            raise ValueError(f"busy interval start must be before end: {self.start} >= {self.end}")

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.start < end and self.end > start


@dataclass
class AvailabilityRequest:
    calendar_ids: list[str]
    time_min: datetime
    time_max: datetime


@dataclass
class ResourceAvailability:
    busy: list[BusyInterval] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    error_kind: RemoteErrorKind | None = None

    @property
    def failed(self) -> bool:
        return self.error_kind is not None


@dataclass
class AvailabilityReport:
    time_min: datetime
    time_max: datetime
    per_resource: dict[str, ResourceAvailability] = field(default_factory=dict)

    def busy_for(self, calendar_id: str) -> list[BusyInterval]:
        """Busy intervals of one calendar; raises if it could not be fetched."""
        entry = self.per_resource.get(calendar_id)
        if entry is None:
            raise CalendarError(
                RemoteErrorKind.NOT_FOUND, "calendar not found", details=f"ID: {calendar_id}"
            )
        if entry.failed:
            raise CalendarError(
                entry.error_kind or RemoteErrorKind.NOT_FOUND,
                f"availability unknown for calendar '{calendar_id}'",
                details="; ".join(entry.errors),
            )
        return entry.busy

    def to_dict(self) -> dict[str, Any]:
        calendars: dict[str, Any] = {}
        for cal_id, entry in self.per_resource.items():
            item: dict[str, Any] = {
                "busy": [{"start": b.start.isoformat(), "end": b.end.isoformat()} for b in entry.busy],
            }
            if entry.errors:
                item["errors"] = list(entry.errors)
            calendars[cal_id] = item
        return {
            "time_min": self.time_min.isoformat(),
            "time_max": self.time_max.isoformat(),
            "calendars": calendars,
        }


@dataclass
class OperationResult(Generic[T]):
    """Outcome of one item in a fan-out or bulk call."""

    index: int
    item_id: str
    success: bool
    value: T | None = None
    error: CalendarError | None = None


@dataclass(frozen=True)
class BatchSummary:
    total: int
    succeeded: int
    failed: int


@runtime_checkable
class CalendarTransport(Protocol):
    """Protocol that all calendar transports must satisfy.

    Failures are raised as exceptions carrying an HTTP status (or as
    connection errors) so the retry executor can classify them.
    """

    async def get_event(self, calendar_id: str, event_id: str) -> CalendarEvent: ...

    async def create_event(self, calendar_id: str, draft: EventDraft) -> CalendarEvent: ...

    async def update_event(self, calendar_id: str, event_id: str, changes: EventDraft) -> CalendarEvent: ...

    async def delete_event(self, calendar_id: str, event_id: str) -> None: ...

    async def list_events(
        self,
        calendar_id: str,
        start: datetime,
        end: datetime,
        query: str = "",
        max_results: int = 250,
    ) -> list[CalendarEvent]: ...

    async def query_free_busy(
        self, calendar_ids: list[str], time_min: datetime, time_max: datetime
    ) -> dict[str, dict[str, Any]]: ...

    async def list_calendars(self) -> list[CalendarInfo]: ...

    async def get_calendar(self, calendar_id: str) -> CalendarInfo: ...

    async def list_acl(self, calendar_id: str) -> list[AclRule]: ...

    async def insert_acl(self, calendar_id: str, email: str, role: str) -> AclRule: ...

    async def delete_acl(self, calendar_id: str, rule_id: str) -> None: ...
