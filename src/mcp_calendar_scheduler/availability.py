"""Availability engine: free/busy, conflicts and common free time.

Busy data is fetched once per calendar through the aggregator, so a failing
calendar never hides the others. All interval arithmetic is half-open:
``[10:00, 11:00)`` and ``[11:00, 12:00)`` touch but do not overlap.

Free slots are enumerated at a fixed stride from the window start. Each
stride position is tested on its own; adjacent free slots are neither merged
into ranges nor shifted to line up with the end of a busy interval.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Iterable

from dateutil.parser import isoparse

from .aggregator import fan_out, unique_ids
from .backends.base import AvailabilityReport, AvailabilityRequest, BusyInterval, ResourceAvailability
from .client import CalendarClient, validate_window
from .errors import CalendarError, RemoteErrorKind, invalid_input

logger = logging.getLogger("mcp-calendar-scheduler")

# upstream per-calendar error reasons that mean the calendar does not exist
# or is not visible to us
_NOT_FOUND_REASONS = {"notFound", "notfound"}


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and a_end > b_start


def _validate_duration(slot_duration: timedelta) -> None:
    if slot_duration is None or slot_duration <= timedelta(0):
        raise invalid_input("slot_duration", "must be a positive duration")


def free_slots(
    busy: Iterable[BusyInterval],
    start: datetime,
    end: datetime,
    slot_duration: timedelta,
) -> list[datetime]:
    """Start times of every free ``slot_duration`` slot in ``[start, end)``."""
    _validate_duration(slot_duration)
    intervals = list(busy)
    slots: list[datetime] = []
    current = start
    while current + slot_duration <= end:
        slot_end = current + slot_duration
        if not any(b.overlaps(current, slot_end) for b in intervals):
            slots.append(current)
        current = slot_end
    return slots


def find_conflicts(busy: Iterable[BusyInterval], start: datetime, end: datetime) -> list[BusyInterval]:
    """Every busy interval overlapping ``[start, end)``, in start order."""
    return sorted((b for b in busy if b.overlaps(start, end)), key=lambda b: (b.start, b.end))


def union_busy(report: AvailabilityReport, calendar_ids: Iterable[str]) -> list[BusyInterval]:
    """Busy intervals of all given calendars, merged into one sorted list.

    Raises if any of the calendars could not be fetched: its busy time is
    unknown, so nothing can be claimed free on its behalf.
    """
    ids = unique_ids(calendar_ids)
    unknown = [cal_id for cal_id in ids if report.per_resource.get(cal_id) is None
               or report.per_resource[cal_id].failed]
    if unknown:
        kinds = {
            report.per_resource[c].error_kind for c in unknown if c in report.per_resource
        }
        kind = kinds.pop() if len(kinds) == 1 else RemoteErrorKind.NOT_FOUND
        raise CalendarError(
            kind or RemoteErrorKind.NOT_FOUND,
            "availability unknown for some calendars",
            details=f"calendars: {', '.join(unknown)}",
            suggested_action="Check the calendar IDs and sharing settings, then try again",
        )
    merged: list[BusyInterval] = []
    for cal_id in ids:
        merged.extend(report.per_resource[cal_id].busy)
    merged.sort(key=lambda b: (b.start, b.end))
    return merged


def parse_busy_periods(raw: Iterable[dict[str, Any]]) -> tuple[list[BusyInterval], list[str]]:
    """Convert raw ``{"start", "end"}`` periods, discarding malformed ones."""
    busy: list[BusyInterval] = []
    errors: list[str] = []
    for period in raw or []:
        try:
            busy.append(BusyInterval(isoparse(period["start"]), isoparse(period["end"])))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Discarding malformed busy interval %r: %s", period, e)
            errors.append(f"malformed busy interval {period!r}: {e}")
    busy.sort(key=lambda b: (b.start, b.end))
    return busy, errors


def _resource_from_raw(raw: dict[str, Any] | None) -> ResourceAvailability:
    if raw is None:
        return ResourceAvailability(
            errors=["calendar missing from free/busy response"],
            error_kind=RemoteErrorKind.NOT_FOUND,
        )
    busy, errors = parse_busy_periods(raw.get("busy", []))
    entry = ResourceAvailability(busy=busy, errors=errors)
    upstream = raw.get("errors") or []
    for item in upstream:
        reason = item.get("reason", "") if isinstance(item, dict) else str(item)
        domain = item.get("domain", "") if isinstance(item, dict) else ""
        entry.errors.append(f"{domain}: {reason}" if domain else reason)
    if upstream:
        # google returns errors instead of busy data for calendars it cannot read
        reasons = {i.get("reason") for i in upstream if isinstance(i, dict)}
        entry.error_kind = (
            RemoteErrorKind.NOT_FOUND if reasons & _NOT_FOUND_REASONS else RemoteErrorKind.UNKNOWN
        )
        entry.busy = []
    return entry


# ---------------------------------------------------------------------------
# Operations against the remote calendar
# ---------------------------------------------------------------------------

async def query_availability(
    client: CalendarClient,
    request: AvailabilityRequest,
    *,
    cancel: asyncio.Event | None = None,
) -> AvailabilityReport:
    """Busy intervals for every requested calendar.

    Every requested calendar gets an entry. When fetching one fails, its
    entry has no busy intervals and carries the error instead.
    """
    validate_window(request.time_min, request.time_max, "time_min", "time_max")
    targets = unique_ids(request.calendar_ids)
    if not targets:
        raise invalid_input("calendar_ids", "at least one calendar ID required")

    outcome = await fan_out(
        targets,
        lambda cal: client.transport.query_free_busy([cal], request.time_min, request.time_max),
        operation="free/busy query",
        max_attempts=client.max_attempts,
        base_delay=client.base_delay,
        cancel=cancel,
    )

    report = AvailabilityReport(time_min=request.time_min, time_max=request.time_max)
    for cal_id in targets:
        if cal_id in outcome.errors:
            err = outcome.errors[cal_id]
            report.per_resource[cal_id] = ResourceAvailability(errors=[str(err)], error_kind=err.kind)
        else:
            calendars = outcome.results[cal_id] or {}
            raw = calendars.get(cal_id)
            if raw is None and len(calendars) == 1:
                # the API may echo a normalized ID (e.g. for "primary")
                raw = next(iter(calendars.values()))
            report.per_resource[cal_id] = _resource_from_raw(raw)
    return report


async def _busy_for(
    client: CalendarClient,
    calendar_id: str,
    start: datetime | None,
    end: datetime | None,
    cancel: asyncio.Event | None,
) -> list[BusyInterval]:
    if not calendar_id:
        raise invalid_input("calendar_id", "a calendar ID is required")
    report = await query_availability(
        client, AvailabilityRequest([calendar_id], start, end), cancel=cancel
    )
    return report.busy_for(calendar_id)


async def is_busy(
    client: CalendarClient,
    calendar_id: str,
    start: datetime | None,
    end: datetime | None,
    *,
    cancel: asyncio.Event | None = None,
) -> bool:
    busy = await _busy_for(client, calendar_id, start, end, cancel)
    return any(b.overlaps(start, end) for b in busy)


async def find_free_slots(
    client: CalendarClient,
    calendar_id: str,
    start: datetime | None,
    end: datetime | None,
    slot_duration: timedelta,
    *,
    cancel: asyncio.Event | None = None,
) -> list[datetime]:
    _validate_duration(slot_duration)
    busy = await _busy_for(client, calendar_id, start, end, cancel)
    return free_slots(busy, start, end, slot_duration)


async def check_conflicts(
    client: CalendarClient,
    calendar_id: str,
    start: datetime | None,
    end: datetime | None,
    *,
    cancel: asyncio.Event | None = None,
) -> tuple[bool, list[BusyInterval]]:
    busy = await _busy_for(client, calendar_id, start, end, cancel)
    conflicts = find_conflicts(busy, start, end)
    return bool(conflicts), conflicts


async def find_common_free_time(
    client: CalendarClient,
    calendar_ids: Iterable[str],
    start: datetime | None,
    end: datetime | None,
    slot_duration: timedelta,
    *,
    cancel: asyncio.Event | None = None,
) -> list[datetime]:
    """Slots that are free in every one of the calendars."""
    _validate_duration(slot_duration)
    ids = unique_ids(calendar_ids)
    report = await query_availability(client, AvailabilityRequest(ids, start, end), cancel=cancel)
    return free_slots(union_busy(report, ids), start, end, slot_duration)
