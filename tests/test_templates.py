"""Tests for event templates and their config section."""

import textwrap
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from dateutil import tz

from mcp_calendar_scheduler import config as config_module
from mcp_calendar_scheduler.backends.base import CalendarEvent
from mcp_calendar_scheduler.client import CalendarClient
from mcp_calendar_scheduler.errors import CalendarError, RemoteErrorKind
from mcp_calendar_scheduler.templates import (
    DEFAULT_TEMPLATES,
    EventTemplate,
    create_event_from_template,
    default_templates,
    get_template,
    parse_templates,
)

UTC = tz.UTC
START = datetime(2024, 1, 16, 9, 0, tzinfo=UTC)


def _make_client() -> CalendarClient:
    transport = AsyncMock()

    async def create_event(cal, draft):
        return CalendarEvent(id="new", calendar=cal, title=draft.title, start=draft.start, end=draft.end)

    transport.create_event = AsyncMock(side_effect=create_event)
    return CalendarClient(transport, base_delay=0)


# ---------------------------------------------------------------------------
# Built-in templates
# ---------------------------------------------------------------------------

class TestDefaults:
    def test_names(self):
        assert set(default_templates()) == {"meeting", "1on1", "lunch", "focus", "standup", "interview"}

    def test_copies_are_independent(self):
        templates = default_templates()
        templates["standup"].recurrence.append("EXDATE:20240101")
        assert DEFAULT_TEMPLATES["standup"].recurrence == ["RRULE:FREQ=DAILY;BYDAY=MO,TU,WE,TH,FR"]

    def test_to_draft(self):
        draft = DEFAULT_TEMPLATES["standup"].to_draft(START)
        assert draft.title == "Daily Standup"
        assert draft.end - draft.start == timedelta(minutes=15)
        assert draft.reminder_minutes == 5
        assert draft.recurrence == ["RRULE:FREQ=DAILY;BYDAY=MO,TU,WE,TH,FR"]

    def test_no_reminder_uses_calendar_default(self):
        draft = DEFAULT_TEMPLATES["focus"].to_draft(START)
        assert draft.reminder_minutes is None
        assert draft.visibility == "private"

    def test_overrides_skip_empty_values(self):
        draft = DEFAULT_TEMPLATES["meeting"].to_draft(START, {"title": "Sprint review", "location": ""})
        assert draft.title == "Sprint review"
        assert draft.description == "Regular team sync meeting"
        assert draft.location == ""


# ---------------------------------------------------------------------------
# Lookup and creation
# ---------------------------------------------------------------------------

class TestGetTemplate:
    def test_found(self):
        assert get_template(default_templates(), "lunch").title == "Lunch Break"

    def test_missing_name(self):
        with pytest.raises(CalendarError) as exc_info:
            get_template(default_templates(), "")
        assert exc_info.value.kind is RemoteErrorKind.INVALID_INPUT

    def test_unknown(self):
        with pytest.raises(CalendarError) as exc_info:
            get_template(default_templates(), "retro")
        assert exc_info.value.kind is RemoteErrorKind.NOT_FOUND


class TestCreateFromTemplate:
    async def test_create(self):
        client = _make_client()
        event = await create_event_from_template(
            client, DEFAULT_TEMPLATES["interview"], START, "work", overrides={"title": "Interview: J. Doe"}
        )
        assert event.title == "Interview: J. Doe"
        assert event.end == START + timedelta(minutes=60)
        cal, draft = client.transport.create_event.call_args[0]
        assert cal == "work"
        assert draft.reminder_minutes == 30

    async def test_requires_start(self):
        client = _make_client()
        with pytest.raises(CalendarError, match="start"):
            await create_event_from_template(client, DEFAULT_TEMPLATES["meeting"], None)
        client.transport.create_event.assert_not_awaited()

    async def test_unknown_override(self):
        client = _make_client()
        with pytest.raises(CalendarError) as exc_info:
            await create_event_from_template(
                client, DEFAULT_TEMPLATES["meeting"], START, overrides={"duration_minutes": "5"}
            )
        assert exc_info.value.kind is RemoteErrorKind.INVALID_INPUT
        client.transport.create_event.assert_not_awaited()


# ---------------------------------------------------------------------------
# Config section
# ---------------------------------------------------------------------------

class TestParseTemplates:
    def test_none(self):
        assert parse_templates(None) == {}

    def test_full_entry(self):
        templates = parse_templates({
            "retro": {
                "title": "Sprint Retro",
                "duration_minutes": 45,
                "location": "Room 4",
                "attendees": ["team@example.com"],
                "reminder_minutes": 15,
                "visibility": "public",
            },
        })
        assert templates["retro"] == EventTemplate(
            name="retro", title="Sprint Retro", duration_minutes=45, location="Room 4",
            attendees=["team@example.com"], reminder_minutes=15, visibility="public",
        )

    @pytest.mark.parametrize("raw,match", [
        (["retro"], "mapping"),
        ({"retro": "Sprint Retro"}, "mapping"),
        ({"retro": {"duration_minutes": 30}}, "title"),
        ({"retro": {"title": "Retro", "duration_minutes": "half an hour"}}, "whole minutes"),
        ({"retro": {"title": "Retro", "duration_minutes": 0}}, "duration_minutes"),
        ({"retro": {"title": "Retro", "duration_minutes": 30, "visibility": "secret"}}, "visibility"),
    ])
    def test_invalid(self, raw, match):
        with pytest.raises(ValueError, match=match):
            parse_templates(raw)

    def test_config_adds_and_overrides(self, tmp_path, monkeypatch):
        cfg = tmp_path / "cal.yaml"
        cfg.write_text(textwrap.dedent("""\
            templates:
              retro:
                title: "Sprint Retro"
                duration_minutes: 45
              lunch:
                title: "Team Lunch"
                duration_minutes: 90
        """))
        monkeypatch.setattr(config_module, "CONFIG_PATH", str(cfg))
        config = config_module.load_config()
        assert config.templates["retro"].duration_minutes == 45
        assert config.templates["lunch"].title == "Team Lunch"
        assert config.templates["meeting"].title == "Team Meeting"
