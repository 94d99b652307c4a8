"""Named event templates.

A handful of defaults are built in; the config file can override them or add
more under ``templates:``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any

from .backends.base import CalendarEvent, EventDraft
from .client import CalendarClient
from .errors import invalid_input, missing_required, not_found

VALID_VISIBILITY = {"default", "public", "private", "confidential"}
OVERRIDABLE = ("title", "description", "location")


@dataclass
class EventTemplate:
    name: str
    title: str
    duration_minutes: int
    description: str = ""
    location: str = ""
    attendees: list[str] = field(default_factory=list)
    recurrence: list[str] = field(default_factory=list)
    reminder_minutes: int = 0  # 0 = calendar default
    visibility: str = ""
    color_id: str = ""

    def to_draft(self, start: datetime, overrides: dict[str, str] | None = None) -> EventDraft:
        draft = EventDraft(
            title=self.title,
            start=start,
            end=start + timedelta(minutes=self.duration_minutes),
            description=self.description,
            location=self.location,
            attendees=list(self.attendees),
            recurrence=list(self.recurrence),
            reminder_minutes=self.reminder_minutes or None,
            visibility=self.visibility,
            color_id=self.color_id,
        )
        changes = {k: v for k, v in (overrides or {}).items() if k in OVERRIDABLE and v}
        return replace(draft, **changes)


DEFAULT_TEMPLATES: dict[str, EventTemplate] = {
    "meeting": EventTemplate("meeting", "Team Meeting", 60, description="Regular team sync meeting",
                             reminder_minutes=10),
    "1on1": EventTemplate("1on1", "1:1 Meeting", 30, description="One-on-one check-in", reminder_minutes=10),
    "lunch": EventTemplate("lunch", "Lunch Break", 60, reminder_minutes=15),
    "focus": EventTemplate("focus", "Focus Time", 120, description="Deep work, no interruptions",
                           visibility="private"),
    "standup": EventTemplate("standup", "Daily Standup", 15, description="Daily team standup",
                             recurrence=["RRULE:FREQ=DAILY;BYDAY=MO,TU,WE,TH,FR"], reminder_minutes=5),
    "interview": EventTemplate("interview", "Interview", 60, description="Candidate interview",
                               reminder_minutes=30),
}


def default_templates() -> dict[str, EventTemplate]:
    return {name: replace(t, attendees=list(t.attendees), recurrence=list(t.recurrence))
            for name, t in DEFAULT_TEMPLATES.items()}


def parse_templates(raw: Any) -> dict[str, EventTemplate]:
    """Build templates from the config's ``templates`` mapping.

    Raises ValueError on invalid entries, like the rest of config loading.
    """
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError("'templates' must be a mapping of name to template")

    templates: dict[str, EventTemplate] = {}
    for name, entry in raw.items():
        if not isinstance(entry, dict):
            raise ValueError(f"Template '{name}' must be a mapping")
        title = str(entry.get("title", "")).strip()
        if not title:
            raise ValueError(f"Template '{name}': 'title' is required")
        try:
            duration = int(entry.get("duration_minutes", 0))
            reminder = int(entry.get("reminder_minutes", 0))
        except (TypeError, ValueError):
            raise ValueError(f"Template '{name}': durations must be whole minutes")
        if duration <= 0:
            raise ValueError(f"Template '{name}': 'duration_minutes' must be positive")
        visibility = str(entry.get("visibility", "")).strip()
        if visibility and visibility not in VALID_VISIBILITY:
            raise ValueError(f"Template '{name}': invalid visibility '{visibility}'")
        templates[str(name)] = EventTemplate(
            name=str(name),
            title=title,
            duration_minutes=duration,
            description=str(entry.get("description", "")),
            location=str(entry.get("location", "")),
            attendees=[str(a) for a in entry.get("attendees") or []],
            recurrence=[str(r) for r in entry.get("recurrence") or []],
            reminder_minutes=reminder,
            visibility=visibility,
            color_id=str(entry.get("color_id", "")),
        )
    return templates


def get_template(templates: dict[str, EventTemplate], name: str) -> EventTemplate:
    if not name:
        raise missing_required("template")
    template = templates.get(name)
    if template is None:
        raise not_found("template", name)
    return template


async def create_event_from_template(
    client: CalendarClient,
    template: EventTemplate,
    start: datetime | None,
    calendar_id: str | None = None,
    *,
    overrides: dict[str, str] | None = None,
    cancel: asyncio.Event | None = None,
) -> CalendarEvent:
    """Create an event from ``template`` starting at ``start``.

    Only the title, description and location can be overridden.
    """
    if start is None:
        raise missing_required("start")
    unknown = set(overrides or {}) - set(OVERRIDABLE)
    if unknown:
        raise invalid_input("overrides", f"cannot override: {', '.join(sorted(unknown))}")
    return await client.create_event(template.to_draft(start, overrides), calendar_id, cancel=cancel)
