"""Single-calendar operations with retry."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Iterable, TypeVar

from .backends.base import AclRule, CalendarEvent, CalendarInfo, CalendarTransport, EventDraft
from .errors import CalendarError, RemoteErrorKind, invalid_input, missing_required, not_found
from .retry import DEFAULT_BASE_DELAY, DEFAULT_MAX_ATTEMPTS, execute

logger = logging.getLogger("mcp-calendar-scheduler")

T = TypeVar("T")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+$")
VALID_STATUSES = {"confirmed", "tentative", "cancelled"}
VALID_ROLES = {"owner", "writer", "reader", "freeBusyReader"}


def validate_window(start: datetime | None, end: datetime | None, start_field: str = "start",
                    end_field: str = "end") -> None:
    """Both bounds present and start strictly before end."""
    if start is None:
        raise missing_required(start_field)
    if end is None:
        raise missing_required(end_field)
    if not start < end:
        raise CalendarError(
            RemoteErrorKind.INVALID_INPUT,
            f"{start_field} must be before {end_field}",
            details=f"{start_field}: {start.isoformat()}, {end_field}: {end.isoformat()}",
            suggested_action="Adjust the time range",
        )


def validate_draft(draft: EventDraft) -> None:
    if not draft.title:
        raise missing_required("title")
    validate_window(draft.start, draft.end)
    validate_emails(draft.attendees or [])


def validate_emails(emails: Iterable[str], field: str = "attendees") -> None:
    for email in emails:
        if not _EMAIL_RE.match(email or ""):
            raise invalid_input(field, f"invalid email address: {email}")


@dataclass
class SearchFilter:
    """Client-side criteria applied on top of the API's text query."""

    query: str = ""
    attendee: str = ""
    location: str = ""
    status: str = ""
    has_attendees: bool | None = None
    all_day: bool | None = None
    recurring: bool | None = None

    def validate(self) -> None:
        if self.attendee and not _EMAIL_RE.match(self.attendee):
            raise invalid_input("attendee", "invalid email address")
        if self.status and self.status.lower() not in VALID_STATUSES:
            raise invalid_input("status", f"must be one of: {sorted(VALID_STATUSES)}")

    def matches(self, event: CalendarEvent) -> bool:
        if self.attendee and not any(a.lower() == self.attendee.lower() for a in event.attendees):
            return False
        if self.location and self.location.lower() not in event.location.lower():
            return False
        if self.status and event.status.lower() != self.status.lower():
            return False
        if self.has_attendees is not None and bool(event.attendees) != self.has_attendees:
            return False
        if self.all_day is not None and event.all_day != self.all_day:
            return False
        if self.recurring is not None and event.is_recurring != self.recurring:
            return False
        return True


class CalendarClient:
    """Wraps a transport so every remote call goes through the retry executor."""

    def __init__(
        self,
        transport: CalendarTransport,
        *,
        default_calendar: str = "primary",
        timezone: str = "UTC",
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
    ):
        self.transport = transport
        self.default_calendar = default_calendar
        self.timezone = timezone
        self.max_attempts = max_attempts
        self.base_delay = base_delay

    def _calendar(self, calendar_id: str | None) -> str:
        return calendar_id or self.default_calendar

    async def call(
        self,
        operation: str,
        fn: Callable[[], Awaitable[T]],
        cancel: asyncio.Event | None = None,
    ) -> T:
        return await execute(
            operation, fn,
            max_attempts=self.max_attempts, base_delay=self.base_delay, cancel=cancel,
        )

    async def get_event(
        self, event_id: str, calendar_id: str | None = None, *, cancel: asyncio.Event | None = None
    ) -> CalendarEvent:
        if not event_id:
            raise missing_required("event_id")
        cal = self._calendar(calendar_id)
        return await self.call("get event", lambda: self.transport.get_event(cal, event_id), cancel)

    async def create_event(
        self, draft: EventDraft, calendar_id: str | None = None, *, cancel: asyncio.Event | None = None
    ) -> CalendarEvent:
        validate_draft(draft)
        cal = self._calendar(calendar_id)
        return await self.call("create event", lambda: self.transport.create_event(cal, draft), cancel)

    async def update_event(
        self,
        event_id: str,
        changes: EventDraft,
        calendar_id: str | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> CalendarEvent:
        if not event_id:
            raise missing_required("event_id")
        if (changes.start is None) != (changes.end is None):
            raise invalid_input("start/end", "start and end must be changed together")
        if changes.start is not None:
            validate_window(changes.start, changes.end)
        validate_emails(changes.attendees or [])
        cal = self._calendar(calendar_id)
        return await self.call(
            "update event", lambda: self.transport.update_event(cal, event_id, changes), cancel
        )

    async def delete_event(
        self, event_id: str, calendar_id: str | None = None, *, cancel: asyncio.Event | None = None
    ) -> None:
        if not event_id:
            raise missing_required("event_id")
        cal = self._calendar(calendar_id)
        await self.call("delete event", lambda: self.transport.delete_event(cal, event_id), cancel)

    async def list_events(
        self,
        start: datetime | None,
        end: datetime | None,
        calendar_id: str | None = None,
        *,
        query: str = "",
        max_results: int = 250,
        cancel: asyncio.Event | None = None,
    ) -> list[CalendarEvent]:
        validate_window(start, end, "from", "to")
        if max_results <= 0:
            raise invalid_input("max_results", "must be a positive number")
        cal = self._calendar(calendar_id)
        return await self.call(
            "list events",
            lambda: self.transport.list_events(cal, start, end, query, max_results),
            cancel,
        )

    async def search_events(
        self,
        start: datetime | None,
        end: datetime | None,
        search: SearchFilter,
        calendar_id: str | None = None,
        *,
        max_results: int = 250,
        cancel: asyncio.Event | None = None,
    ) -> list[CalendarEvent]:
        search.validate()
        events = await self.list_events(
            start, end, calendar_id, query=search.query, max_results=max_results, cancel=cancel
        )
        return [e for e in events if search.matches(e)]

    async def list_calendars(self, *, cancel: asyncio.Event | None = None) -> list[CalendarInfo]:
        return await self.call("list calendars", self.transport.list_calendars, cancel)

    async def query_free_busy(
        self,
        calendar_ids: list[str],
        time_min: datetime,
        time_max: datetime,
        *,
        cancel: asyncio.Event | None = None,
    ) -> dict[str, dict[str, Any]]:
        return await self.call(
            "free/busy query",
            lambda: self.transport.query_free_busy(calendar_ids, time_min, time_max),
            cancel,
        )

    # -----------------------------------------------------------------------
    # Attendees
    # -----------------------------------------------------------------------

    async def manage_attendees(
        self,
        event_id: str,
        *,
        add: Iterable[str] = (),
        remove: Iterable[str] = (),
        calendar_id: str | None = None,
        cancel: asyncio.Event | None = None,
    ) -> CalendarEvent:
        """Add and remove guests, keeping everyone else on the event.

        Emails compare case-insensitively. An address both removed and added
        ends up on the event.
        """
        if not event_id:
            raise missing_required("event_id")
        add, remove = list(add), list(remove)
        if not add and not remove:
            raise invalid_input("attendees", "nothing to add or remove")
        validate_emails(add)
        validate_emails(remove)

        event = await self.get_event(event_id, calendar_id, cancel=cancel)
        dropped = {email.lower() for email in remove}
        attendees = [email for email in event.attendees if email.lower() not in dropped]
        present = {email.lower() for email in attendees}
        for email in add:
            if email.lower() not in present:
                attendees.append(email)
                present.add(email.lower())
        return await self.update_event(event_id, EventDraft(attendees=attendees), calendar_id, cancel=cancel)

    async def add_attendees(self, event_id: str, emails: Iterable[str], calendar_id: str | None = None,
                            *, cancel: asyncio.Event | None = None) -> CalendarEvent:
        return await self.manage_attendees(event_id, add=emails, calendar_id=calendar_id, cancel=cancel)

    async def remove_attendees(self, event_id: str, emails: Iterable[str], calendar_id: str | None = None,
                               *, cancel: asyncio.Event | None = None) -> CalendarEvent:
        return await self.manage_attendees(event_id, remove=emails, calendar_id=calendar_id, cancel=cancel)

    async def replace_attendees(self, event_id: str, emails: Iterable[str], calendar_id: str | None = None,
                                *, cancel: asyncio.Event | None = None) -> CalendarEvent:
        """Set the guest list to exactly ``emails``; an empty list removes everyone."""
        emails = list(emails)
        validate_emails(emails)
        return await self.update_event(event_id, EventDraft(attendees=emails), calendar_id, cancel=cancel)

    async def get_attendees(self, event_id: str, calendar_id: str | None = None,
                            *, cancel: asyncio.Event | None = None) -> list[str]:
        event = await self.get_event(event_id, calendar_id, cancel=cancel)
        return list(event.attendees)

    async def find_attendee(self, event_id: str, email: str, calendar_id: str | None = None,
                            *, cancel: asyncio.Event | None = None) -> str:
        """The attendee's address as stored on the event; NOT_FOUND if not invited."""
        for attendee in await self.get_attendees(event_id, calendar_id, cancel=cancel):
            if attendee.lower() == (email or "").lower():
                return attendee
        raise not_found("attendee", email)

    # -----------------------------------------------------------------------
    # Calendars and sharing
    # -----------------------------------------------------------------------

    async def get_calendar(self, calendar_id: str | None = None,
                           *, cancel: asyncio.Event | None = None) -> CalendarInfo:
        cal = self._calendar(calendar_id)
        return await self.call("get calendar", lambda: self.transport.get_calendar(cal), cancel)

    async def get_primary_calendar(self, *, cancel: asyncio.Event | None = None) -> CalendarInfo:
        for info in await self.list_calendars(cancel=cancel):
            if info.primary:
                return info
        return await self.get_calendar("primary", cancel=cancel)

    async def get_calendar_permissions(self, calendar_id: str | None = None,
                                       *, cancel: asyncio.Event | None = None) -> list[AclRule]:
        cal = self._calendar(calendar_id)
        return await self.call("get calendar permissions", lambda: self.transport.list_acl(cal), cancel)

    async def share_calendar(self, email: str, role: str = "reader", calendar_id: str | None = None,
                             *, cancel: asyncio.Event | None = None) -> AclRule:
        if not email:
            raise missing_required("email")
        validate_emails([email], "email")
        if role not in VALID_ROLES:
            raise invalid_input("role", f"must be one of: {sorted(VALID_ROLES)}")
        cal = self._calendar(calendar_id)
        return await self.call("share calendar", lambda: self.transport.insert_acl(cal, email, role), cancel)

    async def unshare_calendar(self, rule_id: str, calendar_id: str | None = None,
                               *, cancel: asyncio.Event | None = None) -> None:
        if not rule_id:
            raise missing_required("rule_id")
        cal = self._calendar(calendar_id)
        await self.call("unshare calendar", lambda: self.transport.delete_acl(cal, rule_id), cancel)

    # -----------------------------------------------------------------------
    # Search presets
    # -----------------------------------------------------------------------

    async def search_upcoming(self, now: datetime, days: int = 7, query: str = "",
                              calendar_id: str | None = None) -> list[CalendarEvent]:
        if days <= 0:
            raise invalid_input("days", "must be a positive number")
        return await self.search_events(now, now + timedelta(days=days), SearchFilter(query=query), calendar_id)

    async def search_by_attendee(self, email: str, start: datetime | None, end: datetime | None,
                                 calendar_id: str | None = None) -> list[CalendarEvent]:
        if not email:
            raise missing_required("attendee")
        return await self.search_events(start, end, SearchFilter(attendee=email), calendar_id)

    async def search_by_location(self, location: str, start: datetime | None, end: datetime | None,
                                 calendar_id: str | None = None) -> list[CalendarEvent]:
        if not location:
            raise missing_required("location")
        return await self.search_events(start, end, SearchFilter(location=location), calendar_id)

    async def search_recurring(self, start: datetime | None, end: datetime | None,
                               calendar_id: str | None = None) -> list[CalendarEvent]:
        return await self.search_events(start, end, SearchFilter(recurring=True), calendar_id)
