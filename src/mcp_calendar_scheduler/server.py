#!/usr/bin/env python3
"""
mcp-calendar-scheduler: Calendar scheduling MCP server.

Google Calendar CRUD with retry, free/busy and conflict checks across
calendars, informal time expressions and bulk operations.

Environment variables:
    CALENDAR_CONFIG     Path to the YAML config (default: /config/calendar_accounts.yaml)
    CALENDAR_LOG_LEVEL  Overrides log_level from the config file
"""

import logging
import os
import sys
from datetime import datetime, timedelta
from typing import Any

from dateutil import tz as dateutil_tz
from mcp.server.fastmcp import FastMCP

from .aggregator import create_event_multi_calendar, list_events_multi_calendar, sync_event_across_calendars
from .availability import check_conflicts as engine_check_conflicts
from .availability import find_common_free_time as engine_find_common_free_time
from .availability import find_free_slots as engine_find_free_slots
from .availability import query_availability
from .backends.base import AclRule, AvailabilityRequest, CalendarEvent, CalendarInfo, EventDraft, OperationResult
from .bulk import batch_delete_events as bulk_delete, batch_summary, run_bulk
from .client import CalendarClient, SearchFilter
from .config import SchedulerConfig, load_config
from .errors import CalendarError
from .templates import create_event_from_template as template_create, get_template
from .timeparse import TimeExpressionError, parse_time_expression, resolve_datetime

# MCP stdio servers must NEVER write to stdout; log to stderr only.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger("mcp-calendar-scheduler")


# ---------------------------------------------------------------------------
# Module-level state
# ---------------------------------------------------------------------------

_config: SchedulerConfig = SchedulerConfig()
_client: CalendarClient | None = None


def _init_client(config: SchedulerConfig) -> CalendarClient | None:
    """Create the Google-backed client, or None when no account is configured."""
    if not config.google:
        return None
    from .backends.google import GoogleCalendarTransport
    transport = GoogleCalendarTransport(config.google, timezone=config.timezone)
    return CalendarClient(
        transport,
        default_calendar=config.default_calendar,
        timezone=config.timezone,
        max_attempts=config.max_attempts,
        base_delay=config.base_delay,
    )


def _now() -> datetime:
    """Current time in the configured timezone (the only place the clock is read)."""
    return datetime.now(dateutil_tz.gettz(_config.timezone) or dateutil_tz.UTC)


def _no_client() -> dict:
    return {"error": "No Google account configured. Set CALENDAR_CONFIG env var."}


def _failure(action: str, exc: Exception) -> dict[str, Any]:
    if isinstance(exc, CalendarError):
        return exc.to_dict()
    logger.exception("Failed to %s", action)
    return {"error": f"Failed to {action}: {exc}"}


def _split(value: str) -> list[str]:
    return [part.strip() for part in (value or "").split(",") if part.strip()]


def _calendars(value: str) -> list[str]:
    """Resolve a comma-separated list of aliases/IDs. Empty = all configured."""
    names = _split(value)
    if not names:
        names = list(_config.calendars) or [_config.default_calendar]
    return [_config.resolve_calendar(name) for name in names]


def _parse_datetime(value: str) -> datetime:
    """Parse ISO 8601 or an informal time expression ("tomorrow at 2pm")."""
    return resolve_datetime(value, _now(), _config.timezone)


def _event_to_dict(event: CalendarEvent) -> dict[str, Any]:
    """Convert CalendarEvent to JSON-friendly dict."""
    result = {
        "id": event.id,
        "calendar": event.calendar,
        "title": event.title,
        "start": event.start.isoformat(),
        "end": event.end.isoformat(),
        "description": event.description,
        "location": event.location,
        "all_day": event.all_day,
    }
    if event.attendees:
        result["attendees"] = event.attendees
    if event.status:
        result["status"] = event.status
    if event.html_link:
        result["link"] = event.html_link
    return result


def _result_to_dict(result: OperationResult) -> dict[str, Any]:
    item: dict[str, Any] = {"index": result.index, "id": result.item_id, "success": result.success}
    if isinstance(result.value, CalendarEvent):
        item["event"] = _event_to_dict(result.value)
    if result.error is not None:
        item["error"] = result.error.to_dict()
    return item


def _calendar_to_dict(info: CalendarInfo) -> dict[str, Any]:
    return {"id": info.id, "summary": info.summary, "timezone": info.timezone,
            "access_role": info.access_role, "primary": info.primary}


def _acl_to_dict(rule: AclRule) -> dict[str, Any]:
    return {"id": rule.id, "role": rule.role, "scope_type": rule.scope_type, "scope_value": rule.scope_value}


def _draft_from_dict(data: dict[str, Any]) -> EventDraft:
    # no "attendees" key leaves the guest list untouched on update
    attendees = data.get("attendees")
    if isinstance(attendees, str):
        attendees = _split(attendees)
    return EventDraft(
        title=data.get("title", ""),
        start=_parse_datetime(data["start"]) if data.get("start") else None,
        end=_parse_datetime(data["end"]) if data.get("end") else None,
        description=data.get("description", ""),
        location=data.get("location", ""),
        attendees=list(attendees) if attendees is not None else None,
        all_day=bool(data.get("all_day", False)),
    )


def _window(start: str, end: str) -> tuple[datetime, datetime]:
    """Parse a date range; defaults to the rest of today."""
    dt_start = _parse_datetime(start) if start else _now().replace(hour=0, minute=0, second=0, microsecond=0)
    dt_end = _parse_datetime(end) if end else dt_start.replace(hour=23, minute=59, second=59)
    return dt_start, dt_end


# ---------------------------------------------------------------------------
# MCP Server + Tools
# ---------------------------------------------------------------------------

mcp = FastMCP("calendar-scheduler")


@mcp.tool()
async def list_calendars() -> dict:
    """List configured calendar aliases and the calendars visible to the account."""
    if _client is None:
        return _no_client()
    try:
        remote = await _client.list_calendars()
    except Exception as e:
        return _failure("list calendars", e)
    return {
        "aliases": [
            {"name": a.name, "label": a.label, "calendar_id": a.calendar_id}
            for a in _config.calendars.values()
        ],
        "calendars": [_calendar_to_dict(c) for c in remote],
    }


@mcp.tool()
async def list_events(calendar: str = "", start: str = "", end: str = "") -> dict:
    """List events from one, several or all calendars.

    Events from several calendars are merged and sorted chronologically.

    Args:
        calendar: Calendar alias or ID; comma-separated for several. Empty = all configured.
        start: Start (ISO 8601 or e.g. "tomorrow", "next monday"). Default: today 00:00.
        end: End (ISO 8601 or expression). Default: end of the start day.
    """
    if _client is None:
        return _no_client()
    try:
        dt_start, dt_end = _window(start, end)
    except CalendarError as e:
        return e.to_dict()

    calendars = _calendars(calendar)
    try:
        listing = await list_events_multi_calendar(_client, calendars, dt_start, dt_end)
    except Exception as e:
        return _failure("list events", e)

    result: dict[str, Any] = {
        "calendars_queried": calendars,
        "start": dt_start.isoformat(),
        "end": dt_end.isoformat(),
        "count": listing.total_count,
        "by_calendar": listing.by_calendar,
        "events": [_event_to_dict(e) for e in listing.events],
    }
    if listing.errors:
        result["errors"] = {cal: err.to_dict() for cal, err in listing.errors.items()}
    return result


@mcp.tool()
async def get_event(calendar: str, event_id: str) -> dict:
    """Get a single event with full details.

    Args:
        calendar: Calendar alias or ID
        event_id: Event ID
    """
    if _client is None:
        return _no_client()
    try:
        event = await _client.get_event(event_id, _config.resolve_calendar(calendar))
    except Exception as e:
        return _failure("get event", e)
    return {"event": _event_to_dict(event)}


@mcp.tool()
async def create_event(
    calendar: str,
    title: str,
    start: str,
    end: str,
    description: str = "",
    location: str = "",
    attendees: str = "",
) -> dict:
    """Create a new calendar event, in one or several calendars.

    Args:
        calendar: Calendar alias or ID; comma-separated to create the same event in several
        title: Event title/summary
        start: Start (ISO 8601 or e.g. "tomorrow at 2pm")
        end: End (ISO 8601 or expression)
        description: Event description (optional)
        location: Event location (optional)
        attendees: Comma-separated attendee emails (optional)
    """
    if _client is None:
        return _no_client()
    try:
        draft = _draft_from_dict({
            "title": title, "start": start, "end": end, "description": description,
            "location": location, "attendees": attendees,
        })
        calendars = _calendars(calendar)
        if len(calendars) == 1:
            event = await _client.create_event(draft, calendars[0])
            return {"success": True, "event": _event_to_dict(event)}
        outcome = await create_event_multi_calendar(_client, calendars, draft)
    except Exception as e:
        return _failure("create event", e)

    result: dict[str, Any] = {
        "success": not outcome.errors,
        "events": {cal: _event_to_dict(ev) for cal, ev in outcome.results.items()},
    }
    if outcome.errors:
        result["errors"] = {cal: err.to_dict() for cal, err in outcome.errors.items()}
    return result


@mcp.tool()
async def update_event(
    calendar: str,
    event_id: str,
    title: str = "",
    start: str = "",
    end: str = "",
    description: str = "",
    location: str = "",
) -> dict:
    """Update an existing calendar event. Only provided fields are changed.

    Args:
        calendar: Calendar alias or ID
        event_id: Event ID (from list_events or get_event)
        title: New title (optional)
        start: New start (optional, requires end)
        end: New end (optional, requires start)
        description: New description (optional)
        location: New location (optional)
    """
    if _client is None:
        return _no_client()
    if not any((title, start, end, description, location)):
        return {"error": "No fields to update"}
    try:
        changes = _draft_from_dict({
            "title": title, "start": start, "end": end,
            "description": description, "location": location,
        })
        event = await _client.update_event(event_id, changes, _config.resolve_calendar(calendar))
    except Exception as e:
        return _failure("update event", e)
    return {"success": True, "event": _event_to_dict(event)}


@mcp.tool()
async def delete_event(calendar: str, event_id: str) -> dict:
    """Delete a calendar event.

    Args:
        calendar: Calendar alias or ID
        event_id: Event ID (from list_events or get_event)
    """
    if _client is None:
        return _no_client()
    try:
        await _client.delete_event(event_id, _config.resolve_calendar(calendar))
    except Exception as e:
        return _failure("delete event", e)
    return {"success": True, "message": f"Event deleted from {calendar or _config.default_calendar}"}


@mcp.tool()
async def search_events(
    query: str = "",
    start: str = "",
    end: str = "",
    calendar: str = "",
    attendee: str = "",
    location: str = "",
    status: str = "",
    recurring: bool = False,
) -> dict:
    """Search events by text and optional attendee/location/status filters.

    Args:
        query: Free-text query matched by the calendar service
        start: Start of the range. Default: today 00:00.
        end: End of the range. Default: 7 days after start.
        calendar: Calendar alias or ID. Empty = default calendar.
        attendee: Only events with this attendee email
        location: Only events whose location contains this text
        status: confirmed, tentative or cancelled
        recurring: Only occurrences of recurring series
    """
    if _client is None:
        return _no_client()
    try:
        dt_start, _ = _window(start, "")
        dt_end = _parse_datetime(end) if end else dt_start + timedelta(days=7)
        search = SearchFilter(
            query=query, attendee=attendee, location=location, status=status,
            recurring=True if recurring else None,
        )
        events = await _client.search_events(dt_start, dt_end, search, _config.resolve_calendar(calendar))
    except Exception as e:
        return _failure("search events", e)
    return {"count": len(events), "events": [_event_to_dict(e) for e in events]}


@mcp.tool()
async def query_free_busy(calendars: str, start: str, end: str) -> dict:
    """Busy periods of one or more calendars.

    Args:
        calendars: Comma-separated calendar aliases or IDs
        start: Start of the window
        end: End of the window
    """
    if _client is None:
        return _no_client()
    try:
        request = AvailabilityRequest(_calendars(calendars), _parse_datetime(start), _parse_datetime(end))
        report = await query_availability(_client, request)
    except Exception as e:
        return _failure("query free/busy", e)
    return report.to_dict()


@mcp.tool()
async def check_conflicts(calendar: str, start: str, end: str) -> dict:
    """Check whether a proposed time overlaps existing busy periods.

    Args:
        calendar: Calendar alias or ID
        start: Proposed start
        end: Proposed end
    """
    if _client is None:
        return _no_client()
    try:
        has_conflict, conflicts = await engine_check_conflicts(
            _client, _config.resolve_calendar(calendar), _parse_datetime(start), _parse_datetime(end)
        )
    except Exception as e:
        return _failure("check conflicts", e)
    return {
        "has_conflict": has_conflict,
        "conflicts": [{"start": c.start.isoformat(), "end": c.end.isoformat()} for c in conflicts],
    }


@mcp.tool()
async def find_free_slots(calendar: str, start: str, end: str, duration_minutes: int = 30) -> dict:
    """Free fixed-length slots in one calendar.

    Args:
        calendar: Calendar alias or ID
        start: Start of the search window
        end: End of the search window
        duration_minutes: Slot length; slots are tested at this stride from start
    """
    if _client is None:
        return _no_client()
    try:
        slots = await engine_find_free_slots(
            _client, _config.resolve_calendar(calendar),
            _parse_datetime(start), _parse_datetime(end), timedelta(minutes=duration_minutes),
        )
    except Exception as e:
        return _failure("find free slots", e)
    return {"duration_minutes": duration_minutes, "count": len(slots), "slots": [s.isoformat() for s in slots]}


@mcp.tool()
async def find_common_free_time(calendars: str, start: str, end: str, duration_minutes: int = 30) -> dict:
    """Slots that are free in every one of the given calendars.

    Args:
        calendars: Comma-separated calendar aliases or IDs. Empty = all configured.
        start: Start of the search window
        end: End of the search window
        duration_minutes: Slot length
    """
    if _client is None:
        return _no_client()
    ids = _calendars(calendars)
    try:
        slots = await engine_find_common_free_time(
            _client, ids, _parse_datetime(start), _parse_datetime(end), timedelta(minutes=duration_minutes),
        )
    except Exception as e:
        return _failure("find common free time", e)
    return {
        "calendars": ids,
        "duration_minutes": duration_minutes,
        "count": len(slots),
        "slots": [s.isoformat() for s in slots],
    }


@mcp.tool()
async def parse_time(expression: str) -> dict:
    """Resolve an informal time expression like "next friday at 3pm" or "in 2 hours".

    Args:
        expression: The expression to resolve
    """
    try:
        parsed = parse_time_expression(expression, _now(), _config.timezone)
    except TimeExpressionError as e:
        return e.to_dict()
    return {"input": expression, "datetime": parsed.isoformat(), "timezone": parsed.timezone}


@mcp.tool()
async def batch_create_events(
    calendar: str,
    events: list[dict],
    continue_on_error: bool = True,
    max_concurrent: int = 0,
) -> dict:
    """Create many events concurrently. One result per input event, in input order.

    Args:
        calendar: Calendar alias or ID
        events: List of {"title", "start", "end", "description"?, "location"?, "attendees"?}
        continue_on_error: If false, the call reports failure when any event fails
        max_concurrent: Parallel requests (1-10, default from config)
    """
    if _client is None:
        return _no_client()
    cal = _config.resolve_calendar(calendar)

    async def create(data: dict) -> CalendarEvent:
        # parsed per item so one bad start/end only fails its own entry
        return await _client.create_event(_draft_from_dict(data), cal)

    return await _run_batch(
        run_bulk(
            events, create,
            max_concurrent=max_concurrent or _config.max_concurrent,
            continue_on_error=continue_on_error,
            item_id=lambda data: str(data.get("title", "")),
            operation="batch create",
        ),
        "batch create events",
    )


@mcp.tool()
async def batch_delete_events(
    calendar: str,
    event_ids: list[str],
    continue_on_error: bool = True,
    max_concurrent: int = 0,
) -> dict:
    """Delete many events concurrently. One result per event ID, in input order.

    Args:
        calendar: Calendar alias or ID
        event_ids: Event IDs to delete
        continue_on_error: If false, the call reports failure when any deletion fails
        max_concurrent: Parallel requests (1-10, default from config)
    """
    if _client is None:
        return _no_client()
    return await _run_batch(
        bulk_delete(
            _client, event_ids, _config.resolve_calendar(calendar),
            max_concurrent=max_concurrent or _config.max_concurrent,
            continue_on_error=continue_on_error,
        ),
        "batch delete events",
    )


async def _run_batch(coro, action: str) -> dict:
    try:
        results = await coro
    except CalendarError as e:
        failure = e.to_dict()
        partial = getattr(e, "results", None)
        if partial is not None:
            summary = batch_summary(partial)
            failure["summary"] = {"total": summary.total, "succeeded": summary.succeeded, "failed": summary.failed}
            failure["results"] = [_result_to_dict(r) for r in partial]
        return failure
    except Exception as e:
        return _failure(action, e)
    summary = batch_summary(results)
    return {
        "success": True,
        "summary": {"total": summary.total, "succeeded": summary.succeeded, "failed": summary.failed},
        "results": [_result_to_dict(r) for r in results],
    }


@mcp.tool()
async def mirror_event(source_calendar: str, event_id: str, target_calendars: str) -> dict:
    """Copy an existing event into other calendars.

    Args:
        source_calendar: Alias or ID of the calendar holding the event
        event_id: Event ID in the source calendar
        target_calendars: Comma-separated aliases or IDs to copy into
    """
    if _client is None:
        return _no_client()
    try:
        outcome = await sync_event_across_calendars(
            _client, _config.resolve_calendar(source_calendar), event_id, _calendars(target_calendars)
        )
    except Exception as e:
        return _failure("mirror event", e)
    result: dict[str, Any] = {
        "success": not outcome.errors,
        "events": {cal: _event_to_dict(ev) for cal, ev in outcome.results.items()},
    }
    if outcome.errors:
        result["errors"] = {cal: err.to_dict() for cal, err in outcome.errors.items()}
    return result


@mcp.tool()
async def manage_attendees(calendar: str, event_id: str, add: str = "", remove: str = "") -> dict:
    """Add and/or remove guests on an event; everyone else stays invited.

    Args:
        calendar: Calendar alias or ID
        event_id: Event ID
        add: Comma-separated emails to invite
        remove: Comma-separated emails to uninvite
    """
    if _client is None:
        return _no_client()
    try:
        event = await _client.manage_attendees(
            event_id, add=_split(add), remove=_split(remove), calendar_id=_config.resolve_calendar(calendar)
        )
    except Exception as e:
        return _failure("manage attendees", e)
    return {"success": True, "attendees": event.attendees, "event": _event_to_dict(event)}


@mcp.tool()
async def replace_attendees(calendar: str, event_id: str, attendees: str = "") -> dict:
    """Set the guest list of an event. An empty list removes every guest.

    Args:
        calendar: Calendar alias or ID
        event_id: Event ID
        attendees: Comma-separated emails; empty to clear
    """
    if _client is None:
        return _no_client()
    try:
        event = await _client.replace_attendees(event_id, _split(attendees), _config.resolve_calendar(calendar))
    except Exception as e:
        return _failure("replace attendees", e)
    return {"success": True, "attendees": event.attendees, "event": _event_to_dict(event)}


@mcp.tool()
async def get_calendar(calendar: str = "") -> dict:
    """Details of one calendar. Empty = the account's primary calendar.

    Args:
        calendar: Calendar alias or ID (optional)
    """
    if _client is None:
        return _no_client()
    try:
        if calendar:
            info = await _client.get_calendar(_config.resolve_calendar(calendar))
        else:
            info = await _client.get_primary_calendar()
    except Exception as e:
        return _failure("get calendar", e)
    return {"calendar": _calendar_to_dict(info)}


@mcp.tool()
async def calendar_permissions(calendar: str = "") -> dict:
    """Who a calendar is shared with, and with which role.

    Args:
        calendar: Calendar alias or ID. Empty = default calendar.
    """
    if _client is None:
        return _no_client()
    try:
        rules = await _client.get_calendar_permissions(_config.resolve_calendar(calendar))
    except Exception as e:
        return _failure("get calendar permissions", e)
    return {"count": len(rules), "rules": [_acl_to_dict(r) for r in rules]}


@mcp.tool()
async def share_calendar(calendar: str, email: str, role: str = "reader") -> dict:
    """Share a calendar with a user.

    Args:
        calendar: Calendar alias or ID
        email: User to share with
        role: owner, writer, reader or freeBusyReader
    """
    if _client is None:
        return _no_client()
    try:
        rule = await _client.share_calendar(email, role, _config.resolve_calendar(calendar))
    except Exception as e:
        return _failure("share calendar", e)
    return {"success": True, "rule": _acl_to_dict(rule)}


@mcp.tool()
async def unshare_calendar(calendar: str, rule_id: str) -> dict:
    """Revoke a sharing rule (IDs come from calendar_permissions).

    Args:
        calendar: Calendar alias or ID
        rule_id: ACL rule ID, e.g. "user:alice@example.com"
    """
    if _client is None:
        return _no_client()
    try:
        await _client.unshare_calendar(rule_id, _config.resolve_calendar(calendar))
    except Exception as e:
        return _failure("unshare calendar", e)
    return {"success": True, "message": f"Rule {rule_id} removed"}


@mcp.tool()
async def upcoming_events(days: int = 7, query: str = "", calendar: str = "") -> dict:
    """Events from now over the next few days.

    Args:
        days: How many days ahead to look
        query: Optional free-text query
        calendar: Calendar alias or ID. Empty = default calendar.
    """
    if _client is None:
        return _no_client()
    try:
        events = await _client.search_upcoming(_now(), days, query, _config.resolve_calendar(calendar))
    except Exception as e:
        return _failure("search upcoming events", e)
    return {"days": days, "count": len(events), "events": [_event_to_dict(e) for e in events]}


@mcp.tool()
async def list_templates() -> dict:
    """Event templates available to create_event_from_template."""
    return {
        "templates": [
            {"name": t.name, "title": t.title, "duration_minutes": t.duration_minutes,
             "description": t.description, "recurring": bool(t.recurrence)}
            for t in _config.templates.values()
        ],
    }


@mcp.tool()
async def create_event_from_template(
    template: str,
    start: str,
    calendar: str = "",
    title: str = "",
    description: str = "",
    location: str = "",
) -> dict:
    """Create an event from a named template (see list_templates).

    Args:
        template: Template name, e.g. "meeting" or "standup"
        start: Start (ISO 8601 or e.g. "tomorrow at 10am"); the end follows from the template
        calendar: Calendar alias or ID. Empty = default calendar.
        title: Replaces the template title (optional)
        description: Replaces the template description (optional)
        location: Replaces the template location (optional)
    """
    if _client is None:
        return _no_client()
    try:
        tmpl = get_template(_config.templates, template)
        event = await template_create(
            _client, tmpl, _parse_datetime(start), _config.resolve_calendar(calendar),
            overrides={"title": title, "description": description, "location": location},
        )
    except Exception as e:
        return _failure("create event from template", e)
    return {"success": True, "template": tmpl.name, "event": _event_to_dict(event)}


# ---------------------------------------------------------------------------
# Google OAuth2 CLI helper
# ---------------------------------------------------------------------------

def _run_google_auth() -> None:
    """Interactive OAuth2 flow for Google Calendar. Run once to obtain token."""
    if not _config.google:
        print("No 'google' section in config", file=sys.stderr)
        sys.exit(1)

    import json

    from google_auth_oauthlib.flow import InstalledAppFlow

    from .backends.google import SCOPES

    credentials_file = _config.google["credentials_file"]
    token_file = _config.google.get("token_file", "/data/google_calendar_token.json")

    if not os.path.isfile(credentials_file):
        print(f"Credentials file not found: {credentials_file}", file=sys.stderr)
        sys.exit(1)

    flow = InstalledAppFlow.from_client_secrets_file(credentials_file, SCOPES)
    creds = flow.run_local_server(port=0)

    # Ensure directory exists
    os.makedirs(os.path.dirname(token_file) or ".", exist_ok=True)
    with open(token_file, "w") as f:
        json.dump(json.loads(creds.to_json()), f)

    print(f"Token saved to {token_file}", file=sys.stderr)
    print("Google Calendar authentication complete.", file=sys.stderr)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main():
    """Entry point for console script and python -m."""
    global _config, _client

    _config = load_config()
    logging.getLogger().setLevel(_config.log_level)

    # Handle --auth flag for Google OAuth2 setup
    if "--auth" in sys.argv:
        idx = sys.argv.index("--auth")
        provider = sys.argv[idx + 1] if idx + 1 < len(sys.argv) else ""
        if provider != "google":
            print(f"Only --auth google is supported, got: {provider}", file=sys.stderr)
            sys.exit(1)
        _run_google_auth()
        return

    _client = _init_client(_config)
    if _client:
        logger.info(
            "Google Calendar configured (default=%s, timezone=%s, %d alias(es))",
            _config.default_calendar, _config.timezone, len(_config.calendars),
        )
    else:
        logger.warning("No Google account configured (CALENDAR_CONFIG=%s)", os.environ.get("CALENDAR_CONFIG", ""))
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
