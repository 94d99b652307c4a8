"""Concurrent fan-out of one operation across several calendars."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Generic, Iterable, TypeVar

from .backends.base import CalendarEvent, EventDraft
from .client import CalendarClient, validate_draft, validate_window
from .errors import CalendarError, invalid_input
from .retry import DEFAULT_BASE_DELAY, DEFAULT_MAX_ATTEMPTS, execute

logger = logging.getLogger("mcp-calendar-scheduler")

T = TypeVar("T")


@dataclass
class FanOutResult(Generic[T]):
    """Per-resource outcomes. A resource appears in exactly one of the maps."""

    results: dict[str, T] = field(default_factory=dict)
    errors: dict[str, CalendarError] = field(default_factory=dict)


def unique_ids(ids: Iterable[str]) -> list[str]:
    """Drop blanks and duplicates, keeping first-seen order."""
    seen: dict[str, None] = {}
    for resource_id in ids:
        resource_id = (resource_id or "").strip()
        if resource_id:
            seen.setdefault(resource_id, None)
    return list(seen)


async def fan_out(
    resource_ids: Iterable[str],
    op: Callable[[str], Awaitable[T]],
    *,
    operation: str = "fan-out",
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    cancel: asyncio.Event | None = None,
) -> FanOutResult[T]:
    """Run ``op`` once per resource concurrently, each branch with retry.

    Every resource is attempted; a failure in one branch never stops the
    others. Returns only after all branches have finished.
    """
    targets = unique_ids(resource_ids)
    if not targets:
        raise invalid_input("calendar_ids", "at least one calendar ID required")

    outcome: FanOutResult[T] = FanOutResult()
    lock = asyncio.Lock()

    async def run(resource_id: str) -> None:
        try:
            value = await execute(
                f"{operation} [{resource_id}]",
                lambda: op(resource_id),
                max_attempts=max_attempts,
                base_delay=base_delay,
                cancel=cancel,
            )
        except CalendarError as err:
            logger.warning("%s failed for '%s': %s", operation, resource_id, err)
            async with lock:
                outcome.errors[resource_id] = err
            return
        async with lock:
            outcome.results[resource_id] = value

    logger.debug("%s: dispatching to %d calendar(s)", operation, len(targets))
    await asyncio.gather(*(run(resource_id) for resource_id in targets))
    return outcome


# ---------------------------------------------------------------------------
# Multi-calendar operations
# ---------------------------------------------------------------------------

@dataclass
class MultiCalendarListResult:
    events: list[CalendarEvent] = field(default_factory=list)
    by_calendar: dict[str, int] = field(default_factory=dict)
    errors: dict[str, CalendarError] = field(default_factory=dict)

    @property
    def total_count(self) -> int:
        return len(self.events)


def _fan_out_options(client: CalendarClient, cancel: asyncio.Event | None) -> dict[str, Any]:
    return {"max_attempts": client.max_attempts, "base_delay": client.base_delay, "cancel": cancel}


async def list_events_multi_calendar(
    client: CalendarClient,
    calendar_ids: Iterable[str],
    start: datetime | None,
    end: datetime | None,
    *,
    max_results: int | None = None,
    cancel: asyncio.Event | None = None,
) -> MultiCalendarListResult:
    """Merged events of several calendars, sorted by start time.

    Calendars that fail are reported in ``errors``; the others still
    contribute their events.
    """
    validate_window(start, end, "from", "to")
    targets = unique_ids(calendar_ids)
    limit = max_results if max_results and max_results > 0 else 250

    outcome = await fan_out(
        targets,
        lambda cal: client.transport.list_events(cal, start, end, "", limit),
        operation="list events",
        **_fan_out_options(client, cancel),
    )

    result = MultiCalendarListResult(errors=outcome.errors)
    # walk in request order so equal start times keep a deterministic order
    for cal_id in targets:
        if cal_id in outcome.results:
            events = outcome.results[cal_id]
            result.by_calendar[cal_id] = len(events)
            result.events.extend(events)
    result.events.sort(key=lambda e: e.start)
    return result


async def create_event_multi_calendar(
    client: CalendarClient,
    calendar_ids: Iterable[str],
    draft: EventDraft,
    *,
    cancel: asyncio.Event | None = None,
) -> FanOutResult[CalendarEvent]:
    """Create the same event in every calendar."""
    validate_draft(draft)
    return await fan_out(
        calendar_ids,
        lambda cal: client.transport.create_event(cal, draft),
        operation="create event",
        **_fan_out_options(client, cancel),
    )


async def sync_event_across_calendars(
    client: CalendarClient,
    source_calendar_id: str,
    event_id: str,
    target_calendar_ids: Iterable[str],
    *,
    cancel: asyncio.Event | None = None,
) -> FanOutResult[CalendarEvent]:
    """Copy an existing event into other calendars."""
    source = await client.get_event(event_id, source_calendar_id, cancel=cancel)
    targets = [c for c in unique_ids(target_calendar_ids) if c != source_calendar_id]
    return await create_event_multi_calendar(client, targets, source.to_draft(), cancel=cancel)
