"""Parser for informal time expressions.

Understands a small closed grammar, tried in this order (first match wins):

    relative date   now | (today | tomorrow | yesterday) [at <time>]
    weekday         [next | this | last] <weekday>        [at <time>]
    offset          in <n> minute(s) | hour(s) | day(s) | week(s) | month(s)
    time of day     [at] <time>
    explicit date   2024-01-15 | jan 15[, 2024]            [at <time>]

<time> is one of 2pm, 2 pm, 2:30pm, 14:30, 14:30:00, noon, midnight, and is
resolved to the minute. The current time and the timezone are always passed
in by the caller.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo

from dateutil import tz as dateutil_tz
from dateutil.parser import parse as parse_dt
from dateutil.relativedelta import relativedelta

from .errors import CalendarError, RemoteErrorKind, missing_required


class TimeExpressionError(CalendarError):
    def __init__(self, text: str, reason: str = ""):
        super().__init__(
            RemoteErrorKind.INVALID_INPUT,
            f"unable to parse time expression: {text!r}",
            details=reason,
            suggested_action=(
                "Use e.g. 'tomorrow at 2pm', 'next monday', 'in 2 hours' or an ISO-8601 date"
            ),
        )


@dataclass(frozen=True)
class CanonicalInstant:
    instant: datetime
    timezone: str

    def isoformat(self) -> str:
        return self.instant.isoformat()


WEEKDAYS = {
    "monday": 0, "tuesday": 1, "wednesday": 2, "thursday": 3,
    "friday": 4, "saturday": 5, "sunday": 6,
    "mon": 0, "tue": 1, "wed": 2, "thu": 3, "fri": 4, "sat": 5, "sun": 6,
}

MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "sept": 9, "oct": 10, "nov": 11, "dec": 12,
    "january": 1, "february": 2, "march": 3, "april": 4, "june": 6, "july": 7,
    "august": 8, "september": 9, "october": 10, "november": 11, "december": 12,
}

RELATIVE_DAYS = {"today": 0, "tomorrow": 1, "yesterday": -1}

_AT_RE = re.compile(r"^(.*?)\s+at\s+(.+)$")
_TIME_RE = re.compile(r"^(\d{1,2})(?::(\d{2}))?(?::(\d{2}))?\s*(am|pm)?$")
_WEEKDAY_RE = re.compile(r"^(?:(next|this|last)\s+)?([a-z]+)$")
_OFFSET_RE = re.compile(r"^in\s+(\d+)\s+(minute|minutes|hour|hours|day|days|week|weeks|month|months)$")
_TIME_ONLY_RE = re.compile(r"^(?:at\s+)?(.+)$")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_MONTH_DAY_RE = re.compile(r"^([a-z]+)\.?\s+(\d{1,2})(?:st|nd|rd|th)?(?:,?\s+(\d{4}))?$")

_KEYWORD_RE = re.compile(
    r"\b(now|today|tomorrow|yesterday|noon|midnight|next|this|last|"
    r"monday|tuesday|wednesday|thursday|friday|saturday|sunday|"
    r"mon|tue|wed|thu|fri|sat|sun)\b|^in\s+\d+\s"
)


def _split_at(text: str) -> tuple[str, str]:
    """Split "<date> at <time>" into its parts; time is "" when absent."""
    m = _AT_RE.match(text)
    if m:
        return m.group(1).strip(), m.group(2).strip()
    return text, ""


def parse_time_of_day(value: str) -> tuple[int, int]:
    """Parse "2pm", "3:30pm", "14:30" and friends into (hour, minute)."""
    value = value.strip().lower()
    if value == "noon":
        return 12, 0
    if value == "midnight":
        return 0, 0

    m = _TIME_RE.match(value)
    if not m:
        raise ValueError(f"unable to parse time: {value}")
    hour = int(m.group(1))
    minute = int(m.group(2) or 0)
    second = int(m.group(3) or 0)
    meridiem = m.group(4)

    if minute > 59 or second > 59:
        raise ValueError(f"unable to parse time: {value}")
    if meridiem:
        if not 1 <= hour <= 12:
            raise ValueError(f"unable to parse time: {value}")
        if meridiem == "am":
            hour = 0 if hour == 12 else hour
        else:
            hour = 12 if hour == 12 else hour + 12
    else:
        # a bare number is not a time; 24h needs the minutes
        if m.group(2) is None or hour > 23:
            raise ValueError(f"unable to parse time: {value}")
    return hour, minute


def _at(day: date, time_part: str, zone: tzinfo, text: str) -> datetime:
    hour, minute = 0, 0
    if time_part:
        try:
            hour, minute = parse_time_of_day(time_part)
        except ValueError as e:
            raise TimeExpressionError(text, str(e)) from e
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=zone)


# ---------------------------------------------------------------------------
# Matchers: each returns None when the input is not its kind of expression
# ---------------------------------------------------------------------------

def _match_relative_date(text: str, now: datetime, zone: tzinfo) -> datetime | None:
    date_part, time_part = _split_at(text)
    if date_part == "now":
        if time_part:
            raise TimeExpressionError(text, "'now' cannot take a time of day")
        return now
    if date_part not in RELATIVE_DAYS:
        return None
    return _at(now.date() + timedelta(days=RELATIVE_DAYS[date_part]), time_part, zone, text)


def _match_weekday(text: str, now: datetime, zone: tzinfo) -> datetime | None:
    date_part, time_part = _split_at(text)
    m = _WEEKDAY_RE.match(date_part)
    if not m or m.group(2) not in WEEKDAYS:
        return None
    modifier = m.group(1) or "next"
    target = WEEKDAYS[m.group(2)]
    current = now.weekday()

    if modifier == "next":
        # strictly after today
        days = target - current
        if days <= 0:
            days += 7
    elif modifier == "this":
        # today or later this week
        days = target - current
        if days < 0:
            days += 7
    else:
        # strictly before today
        days_ago = current - target
        if days_ago <= 0:
            days_ago += 7
        days = -days_ago

    return _at(now.date() + timedelta(days=days), time_part, zone, text)


def _match_offset(text: str, now: datetime, zone: tzinfo) -> datetime | None:
    m = _OFFSET_RE.match(text)
    if not m:
        return None
    amount = int(m.group(1))
    unit = m.group(2).rstrip("s")

    if unit in ("minute", "hour"):
        # elapsed time, independent of DST shifts
        delta = timedelta(minutes=amount) if unit == "minute" else timedelta(hours=amount)
        return (now.astimezone(dateutil_tz.UTC) + delta).astimezone(zone)
    if unit == "day":
        return now + timedelta(days=amount)
    if unit == "week":
        return now + timedelta(weeks=amount)
    return now + relativedelta(months=amount)


def _match_time_of_day(text: str, now: datetime, zone: tzinfo) -> datetime | None:
    m = _TIME_ONLY_RE.match(text)
    try:
        hour, minute = parse_time_of_day(m.group(1))
    except ValueError:
        return None
    return datetime(now.year, now.month, now.day, hour, minute, tzinfo=zone)


def _match_explicit_date(text: str, now: datetime, zone: tzinfo) -> datetime | None:
    date_part, time_part = _split_at(text)

    if _ISO_DATE_RE.match(date_part):
        try:
            day = date.fromisoformat(date_part)
        except ValueError as e:
            raise TimeExpressionError(text, str(e)) from e
        return _at(day, time_part, zone, text)

    m = _MONTH_DAY_RE.match(date_part)
    if not m or m.group(1) not in MONTHS:
        return None
    year = int(m.group(3)) if m.group(3) else now.year
    try:
        day = date(year, MONTHS[m.group(1)], int(m.group(2)))
    except ValueError as e:
        raise TimeExpressionError(text, str(e)) from e
    return _at(day, time_part, zone, text)


MATCHERS = (
    _match_relative_date,
    _match_weekday,
    _match_offset,
    _match_time_of_day,
    _match_explicit_date,
)


def _resolve_zone(timezone: str | tzinfo | None) -> tuple[tzinfo, str]:
    if isinstance(timezone, tzinfo):
        return timezone, getattr(timezone, "key", None) or str(timezone)
    name = (timezone or "").strip()
    zone = dateutil_tz.gettz(name) if name else None
    if zone is None:
        raise TimeExpressionError(name, f"unknown timezone: {name!r}")
    return zone, name


def parse_time_expression(
    text: str, now: datetime, timezone: str | tzinfo
) -> CanonicalInstant:
    """Resolve an informal time expression against ``now`` in ``timezone``.

    A naive ``now`` is taken to be wall-clock time in ``timezone``.
    """
    zone, zone_name = _resolve_zone(timezone)
    now = now.replace(tzinfo=zone) if now.tzinfo is None else now.astimezone(zone)

    normalized = " ".join((text or "").lower().split())
    if not normalized:
        raise TimeExpressionError(text or "", "empty expression")

    for matcher in MATCHERS:
        instant = matcher(normalized, now, zone)
        if instant is not None:
            return CanonicalInstant(instant=instant, timezone=zone_name)
    raise TimeExpressionError(text, "no matching pattern")


def is_time_expression(text: str) -> bool:
    """Cheap check whether ``text`` looks like an informal expression."""
    return bool(_KEYWORD_RE.search(" ".join((text or "").lower().split())))


def resolve_datetime(value: str, now: datetime, timezone: str | tzinfo) -> datetime:
    """Resolve either a time expression or an ISO-8601 / free-form date string.

    Naive results are localized to ``timezone``.
    """
    if not value or not value.strip():
        raise missing_required("datetime")
    zone, _ = _resolve_zone(timezone)
    try:
        return parse_time_expression(value, now, zone).instant
    except TimeExpressionError as expression_error:
        local_now = now.replace(tzinfo=zone) if now.tzinfo is None else now.astimezone(zone)
        default = local_now.replace(hour=0, minute=0, second=0, microsecond=0, tzinfo=None)
        try:
            parsed = parse_dt(value, default=default)
        except (ValueError, OverflowError):
            raise expression_error
        return parsed.replace(tzinfo=zone) if parsed.tzinfo is None else parsed
