"""YAML configuration loading for the scheduler."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any

import yaml
from dateutil import tz as dateutil_tz

from .templates import EventTemplate, default_templates, parse_templates

logger = logging.getLogger("mcp-calendar-scheduler")

CONFIG_PATH = os.environ.get("CALENDAR_CONFIG", "/config/calendar_accounts.yaml")

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR"}


@dataclass
class CalendarAlias:
    """A named shortcut for a Google calendar ID."""

    name: str
    calendar_id: str
    label: str = ""


@dataclass
class SchedulerConfig:
    google: dict[str, Any] = field(default_factory=dict)
    timezone: str = "UTC"
    default_calendar: str = "primary"
    log_level: str = "INFO"
    max_attempts: int = 3
    base_delay: float = 1.0
    max_concurrent: int = 5
    calendars: dict[str, CalendarAlias] = field(default_factory=dict)
    templates: dict[str, EventTemplate] = field(default_factory=default_templates)

    def resolve_calendar(self, calendar: str) -> str:
        """Map an alias to its calendar ID; anything else is used as given."""
        calendar = (calendar or "").strip()
        if not calendar:
            return self.default_calendar
        alias = self.calendars.get(calendar)
        return alias.calendar_id if alias else calendar


def _number(section: str, key: str, value: Any, cast: type) -> Any:
    try:
        return cast(value)
    except (TypeError, ValueError):
        raise ValueError(f"'{section}.{key}' must be a number, got {value!r}")


def load_config() -> SchedulerConfig:
    """Load and validate the scheduler YAML file.

    A missing file is not an error: defaults are returned and the server
    runs without a Google account until one is configured.
    """
    path = CONFIG_PATH
    if not os.path.isfile(path):
        logger.warning("Config file not found: %s", path)
        return SchedulerConfig()

    with open(path, "r") as f:
        raw = yaml.safe_load(f)

    if not raw:
        logger.warning("Config file is empty: %s", path)
        return SchedulerConfig()
    if not isinstance(raw, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")

    cfg = SchedulerConfig()

    google = raw.get("google")
    if google is not None:
        if not isinstance(google, dict) or "credentials_file" not in google:
            raise ValueError("'google': 'credentials_file' is required")
        cfg.google = dict(google)

    timezone = str(raw.get("timezone", cfg.timezone)).strip()
    if not timezone or dateutil_tz.gettz(timezone) is None:
        raise ValueError(f"Unknown timezone: '{timezone}'")
    cfg.timezone = timezone

    cfg.default_calendar = str(raw.get("default_calendar", cfg.default_calendar)).strip() or "primary"

    log_level = os.environ.get("CALENDAR_LOG_LEVEL") or raw.get("log_level", cfg.log_level)
    log_level = str(log_level).upper()
    if log_level not in VALID_LOG_LEVELS:
        raise ValueError(f"Invalid log_level '{log_level}'. Must be one of: {VALID_LOG_LEVELS}")
    cfg.log_level = log_level

    retry = raw.get("retry") or {}
    cfg.max_attempts = _number("retry", "max_attempts", retry.get("max_attempts", cfg.max_attempts), int)
    if cfg.max_attempts < 1:
        raise ValueError("'retry.max_attempts' must be at least 1")
    cfg.base_delay = _number("retry", "base_delay", retry.get("base_delay", cfg.base_delay), float)
    if cfg.base_delay < 0:
        raise ValueError("'retry.base_delay' must not be negative")

    bulk = raw.get("bulk") or {}
    cfg.max_concurrent = _number("bulk", "max_concurrent", bulk.get("max_concurrent", cfg.max_concurrent), int)

    for entry in raw.get("calendars") or []:
        name = str(entry.get("name", "")).strip()
        if not name:
            raise ValueError("Calendar missing 'name' field")
        if name in cfg.calendars:
            raise ValueError(f"Duplicate calendar name: '{name}'")
        calendar_id = str(entry.get("calendar_id", "")).strip()
        if not calendar_id:
            raise ValueError(f"Calendar '{name}': 'calendar_id' is required")
        cfg.calendars[name] = CalendarAlias(
            name=name, calendar_id=calendar_id, label=entry.get("label", name),
        )

    cfg.templates.update(parse_templates(raw.get("templates")))

    return cfg
