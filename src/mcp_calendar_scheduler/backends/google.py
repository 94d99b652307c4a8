"""Google Calendar API transport."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from datetime import datetime
from typing import Any

from dateutil import tz as dateutil_tz
from dateutil.parser import parse as parse_dt

from .base import AclRule, CalendarEvent, CalendarInfo, EventDraft

logger = logging.getLogger("mcp-calendar-scheduler")

SCOPES = ["https://www.googleapis.com/auth/calendar"]


def _rfc3339(value: datetime) -> str:
    return value.isoformat() + "Z" if not value.tzinfo else value.isoformat()


def _event_time(draft: EventDraft, value: datetime, default_tz: str) -> dict[str, str]:
    if draft.all_day:
        return {"date": value.date().isoformat()}
    return {"dateTime": value.isoformat(), "timeZone": draft.timezone or default_tz}


class GoogleCalendarTransport:
    """Calendar transport for Google Calendar via Google API.

    Every public method is async and runs the blocking client call on the
    default executor. HttpError is raised unchanged so callers can classify
    it by status.
    """

    def __init__(self, config: dict[str, Any], timezone: str = "UTC"):
        self._config = config
        self._timezone = timezone
        self._tzinfo = dateutil_tz.gettz(timezone) or dateutil_tz.UTC
        self._service = None  # Lazy init

    def _get_service(self):
        """Lazy-initialize Google Calendar API service with auto-refresh."""
        if self._service is not None:
            return self._service

        from google.auth.transport.requests import Request
        from google.oauth2.credentials import Credentials
        from googleapiclient.discovery import build

        creds = None
        token_file = self._config.get("token_file", "/data/google_calendar_token.json")
        credentials_file = self._config["credentials_file"]

        # Load existing token
        if os.path.isfile(token_file):
            with open(token_file, "r") as f:
                token_data = json.load(f)
            creds = Credentials.from_authorized_user_info(token_data, SCOPES)

        # Refresh or obtain new credentials
        if not creds or not creds.valid:
            if creds and creds.expired and creds.refresh_token:
                creds.refresh(Request())
                # Persist refreshed token
                with open(token_file, "w") as f:
                    json.dump(json.loads(creds.to_json()), f)
                logger.info("Google token refreshed")
            elif os.path.isfile(credentials_file):
                raise ValueError(
                    "Google token not found or expired. "
                    "Run: mcp-calendar-scheduler --auth google"
                )
            else:
                raise ValueError(f"Google credentials file not found: {credentials_file}")

        self._service = build("calendar", "v3", credentials=creds, cache_discovery=False)
        logger.info("Google Calendar connected (timezone=%s)", self._timezone)
        return self._service

    def _localize(self, value: datetime) -> datetime:
        return value.replace(tzinfo=self._tzinfo) if value.tzinfo is None else value

    def _to_event(self, calendar_id: str, item: dict[str, Any]) -> CalendarEvent:
        start_raw = item.get("start", {})
        end_raw = item.get("end", {})

        # All-day events use 'date', timed events use 'dateTime'
        all_day = "date" in start_raw and "dateTime" not in start_raw
        if all_day:
            ev_start = parse_dt(start_raw["date"])
            ev_end = parse_dt(end_raw.get("date", start_raw["date"]))
        else:
            ev_start = parse_dt(start_raw.get("dateTime", ""))
            ev_end = parse_dt(end_raw.get("dateTime", ""))

        return CalendarEvent(
            id=item["id"],
            calendar=calendar_id,
            title=item.get("summary", "(No title)"),
            start=self._localize(ev_start),
            end=self._localize(ev_end),
            description=item.get("description", ""),
            location=item.get("location", ""),
            all_day=all_day,
            attendees=[a["email"] for a in item.get("attendees", []) if a.get("email")],
            recurrence=list(item.get("recurrence", [])),
            status=item.get("status", ""),
            timezone=start_raw.get("timeZone", ""),
            html_link=item.get("htmlLink", ""),
            recurring_event_id=item.get("recurringEventId", ""),
        )

    def _get_event_sync(self, calendar_id: str, event_id: str) -> CalendarEvent:
        service = self._get_service()
        item = service.events().get(calendarId=calendar_id, eventId=event_id).execute()
        return self._to_event(calendar_id, item)

    def _create_event_sync(self, calendar_id: str, draft: EventDraft) -> CalendarEvent:
        service = self._get_service()
        body: dict[str, Any] = {
            "summary": draft.title,
            "start": _event_time(draft, draft.start, self._timezone),
            "end": _event_time(draft, draft.end, self._timezone),
        }
        if draft.description:
            body["description"] = draft.description
        if draft.location:
            body["location"] = draft.location
        if draft.attendees:
            body["attendees"] = [{"email": email} for email in draft.attendees]
        if draft.recurrence:
            body["recurrence"] = list(draft.recurrence)
        if draft.reminder_minutes is not None:
            body["reminders"] = {
                "useDefault": False,
                "overrides": [{"method": "popup", "minutes": draft.reminder_minutes}],
            }
        if draft.visibility:
            body["visibility"] = draft.visibility
        if draft.color_id:
            body["colorId"] = draft.color_id

        result = service.events().insert(calendarId=calendar_id, body=body).execute()
        logger.info("Google event created: %s in '%s'", draft.title, calendar_id)
        return self._to_event(calendar_id, result)

    def _update_event_sync(self, calendar_id: str, event_id: str, changes: EventDraft) -> CalendarEvent:
        service = self._get_service()
        event = service.events().get(calendarId=calendar_id, eventId=event_id).execute()

        if changes.title:
            event["summary"] = changes.title
        if changes.description:
            event["description"] = changes.description
        if changes.location:
            event["location"] = changes.location
        if changes.start is not None and changes.end is not None:
            # keep the event's own zone unless the caller names one
            default_tz = event.get("start", {}).get("timeZone") or self._timezone
            event["start"] = _event_time(changes, changes.start, default_tz)
            event["end"] = _event_time(changes, changes.end, default_tz)
        if changes.attendees is not None:
            # guests that stay keep their response status
            current = {a.get("email", "").lower(): a for a in event.get("attendees", [])}
            event["attendees"] = [current.get(email.lower(), {"email": email}) for email in changes.attendees]
        if changes.recurrence:
            event["recurrence"] = list(changes.recurrence)

        result = service.events().update(calendarId=calendar_id, eventId=event_id, body=event).execute()
        return self._to_event(calendar_id, result)

    def _delete_event_sync(self, calendar_id: str, event_id: str) -> None:
        service = self._get_service()
        service.events().delete(calendarId=calendar_id, eventId=event_id).execute()
        logger.info("Google event deleted: %s from '%s'", event_id, calendar_id)

    def _list_events_sync(
        self, calendar_id: str, start: datetime, end: datetime, query: str, max_results: int
    ) -> list[CalendarEvent]:
        service = self._get_service()
        params: dict[str, Any] = {
            "calendarId": calendar_id,
            "timeMin": _rfc3339(start),
            "timeMax": _rfc3339(end),
            "singleEvents": True,
            "orderBy": "startTime",
            "maxResults": max_results,
        }
        if query:
            params["q"] = query

        events_result = service.events().list(**params).execute()
        return [self._to_event(calendar_id, item) for item in events_result.get("items", [])]

    def _query_free_busy_sync(
        self, calendar_ids: list[str], time_min: datetime, time_max: datetime
    ) -> dict[str, dict[str, Any]]:
        service = self._get_service()
        body = {
            "timeMin": _rfc3339(time_min),
            "timeMax": _rfc3339(time_max),
            "timeZone": self._timezone,
            "items": [{"id": cal_id} for cal_id in calendar_ids],
        }
        response = service.freebusy().query(body=body).execute()
        return response.get("calendars", {})

    def _list_calendars_sync(self) -> list[CalendarInfo]:
        service = self._get_service()
        calendars: list[CalendarInfo] = []
        page_token = None
        while True:
            response = service.calendarList().list(pageToken=page_token).execute()
            for item in response.get("items", []):
                calendars.append(CalendarInfo(
                    id=item["id"],
                    summary=item.get("summaryOverride") or item.get("summary", ""),
                    description=item.get("description", ""),
                    timezone=item.get("timeZone", ""),
                    access_role=item.get("accessRole", ""),
                    primary=bool(item.get("primary", False)),
                ))
            page_token = response.get("nextPageToken")
            if not page_token:
                return calendars

    def _get_calendar_sync(self, calendar_id: str) -> CalendarInfo:
        service = self._get_service()
        item = service.calendars().get(calendarId=calendar_id).execute()
        return CalendarInfo(
            id=item["id"],
            summary=item.get("summary", ""),
            description=item.get("description", ""),
            timezone=item.get("timeZone", ""),
        )

    @staticmethod
    def _to_acl_rule(item: dict[str, Any]) -> AclRule:
        scope = item.get("scope", {})
        return AclRule(
            id=item["id"],
            role=item.get("role", ""),
            scope_type=scope.get("type", ""),
            scope_value=scope.get("value", ""),
        )

    def _list_acl_sync(self, calendar_id: str) -> list[AclRule]:
        service = self._get_service()
        rules: list[AclRule] = []
        page_token = None
        while True:
            response = service.acl().list(calendarId=calendar_id, pageToken=page_token).execute()
            rules.extend(self._to_acl_rule(item) for item in response.get("items", []))
            page_token = response.get("nextPageToken")
            if not page_token:
                return rules

    def _insert_acl_sync(self, calendar_id: str, email: str, role: str) -> AclRule:
        service = self._get_service()
        body = {"role": role, "scope": {"type": "user", "value": email}}
        result = service.acl().insert(calendarId=calendar_id, body=body).execute()
        logger.info("Calendar '%s' shared with %s as %s", calendar_id, email, role)
        return self._to_acl_rule(result)

    def _delete_acl_sync(self, calendar_id: str, rule_id: str) -> None:
        service = self._get_service()
        service.acl().delete(calendarId=calendar_id, ruleId=rule_id).execute()
        logger.info("Sharing rule %s removed from '%s'", rule_id, calendar_id)

    async def get_event(self, calendar_id: str, event_id: str) -> CalendarEvent:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._get_event_sync, calendar_id, event_id)

    async def create_event(self, calendar_id: str, draft: EventDraft) -> CalendarEvent:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._create_event_sync, calendar_id, draft)

    async def update_event(self, calendar_id: str, event_id: str, changes: EventDraft) -> CalendarEvent:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._update_event_sync, calendar_id, event_id, changes)

    async def delete_event(self, calendar_id: str, event_id: str) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._delete_event_sync, calendar_id, event_id)

    async def list_events(
        self,
        calendar_id: str,
        start: datetime,
        end: datetime,
        query: str = "",
        max_results: int = 250,
    ) -> list[CalendarEvent]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, self._list_events_sync, calendar_id, start, end, query, max_results
        )

    async def query_free_busy(
        self, calendar_ids: list[str], time_min: datetime, time_max: datetime
    ) -> dict[str, dict[str, Any]]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, self._query_free_busy_sync, list(calendar_ids), time_min, time_max
        )

    async def list_calendars(self) -> list[CalendarInfo]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._list_calendars_sync)

    async def get_calendar(self, calendar_id: str) -> CalendarInfo:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._get_calendar_sync, calendar_id)

    async def list_acl(self, calendar_id: str) -> list[AclRule]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._list_acl_sync, calendar_id)

    async def insert_acl(self, calendar_id: str, email: str, role: str) -> AclRule:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._insert_acl_sync, calendar_id, email, role)

    async def delete_acl(self, calendar_id: str, rule_id: str) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._delete_acl_sync, calendar_id, rule_id)
