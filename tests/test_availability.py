"""Tests for the availability engine."""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import httplib2
import pytest
from dateutil import tz
from googleapiclient.errors import HttpError

from mcp_calendar_scheduler import availability
from mcp_calendar_scheduler.backends.base import AvailabilityRequest, BusyInterval
from mcp_calendar_scheduler.client import CalendarClient
from mcp_calendar_scheduler.errors import CalendarError, RemoteErrorKind

UTC = tz.UTC


def _dt(hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 1, 15, hour, minute, tzinfo=UTC)


def _busy(start: datetime, end: datetime) -> BusyInterval:
    return BusyInterval(start, end)


def _raw(start: datetime, end: datetime) -> dict:
    return {"start": start.isoformat(), "end": end.isoformat()}


def _make_client(busy=None, failing=None, upstream_errors=None) -> CalendarClient:
    """Client whose free/busy query serves canned data per calendar."""
    busy = busy or {}
    failing = failing or {}
    upstream_errors = upstream_errors or {}

    async def query(calendar_ids, time_min, time_max):
        result = {}
        for cal in calendar_ids:
            if cal in failing:
                raise failing[cal]
            entry = {"busy": [_raw(s, e) for s, e in busy.get(cal, [])]}
            if cal in upstream_errors:
                entry["errors"] = upstream_errors[cal]
            result[cal] = entry
        return result

    transport = AsyncMock()
    transport.query_free_busy = AsyncMock(side_effect=query)
    return CalendarClient(transport, base_delay=0)


# ---------------------------------------------------------------------------
# Interval arithmetic
# ---------------------------------------------------------------------------

class TestOverlap:
    @pytest.mark.parametrize("a,b", [
        ((_dt(10), _dt(11)), (_dt(10, 30), _dt(11, 30))),
        ((_dt(10), _dt(11)), (_dt(11), _dt(12))),
        ((_dt(9), _dt(13)), (_dt(10), _dt(11))),
        ((_dt(8), _dt(9)), (_dt(10), _dt(11))),
    ])
    def test_symmetric(self, a, b):
        assert availability.overlaps(*a, *b) == availability.overlaps(*b, *a)

    def test_self_overlap(self):
        assert availability.overlaps(_dt(10), _dt(11), _dt(10), _dt(11))

    def test_touching_intervals_do_not_overlap(self):
        assert not availability.overlaps(_dt(10), _dt(11), _dt(11), _dt(12))

    def test_busy_interval_rejects_empty(self):
        with pytest.raises(ValueError):
            BusyInterval(_dt(10), _dt(10))
        with pytest.raises(ValueError):
            BusyInterval(_dt(11), _dt(10))


class TestFreeSlots:
    def test_empty_busy_returns_every_stride(self):
        slots = availability.free_slots([], _dt(9), _dt(12), timedelta(minutes=30))
        assert slots == [_dt(9), _dt(9, 30), _dt(10), _dt(10, 30), _dt(11), _dt(11, 30)]

    def test_last_slot_must_fit(self):
        slots = availability.free_slots([], _dt(9), _dt(10, 45), timedelta(minutes=30))
        assert slots[-1] == _dt(10)

    def test_busy_blocks_slots(self):
        busy = [_busy(_dt(10), _dt(11))]
        slots = availability.free_slots(busy, _dt(9), _dt(12), timedelta(hours=1))
        assert slots == [_dt(9), _dt(11)]

    def test_stride_positions_tested_independently(self):
        # busy 10:15-10:45 knocks out the 10:00 stride; 10:45 is not offered
        busy = [_busy(_dt(10, 15), _dt(10, 45))]
        slots = availability.free_slots(busy, _dt(9), _dt(12), timedelta(hours=1))
        assert slots == [_dt(9), _dt(11)]

    def test_non_positive_duration(self):
        with pytest.raises(CalendarError) as exc_info:
            availability.free_slots([], _dt(9), _dt(10), timedelta(0))
        assert exc_info.value.kind is RemoteErrorKind.INVALID_INPUT


class TestFindConflicts:
    def test_returns_every_overlap(self):
        busy = [_busy(_dt(13), _dt(14)), _busy(_dt(10), _dt(11)), _busy(_dt(15), _dt(16))]
        conflicts = availability.find_conflicts(busy, _dt(10, 30), _dt(13, 30))
        assert conflicts == [_busy(_dt(10), _dt(11)), _busy(_dt(13), _dt(14))]


class TestParseBusyPeriods:
    def test_discards_malformed(self):
        raw = [
            _raw(_dt(10), _dt(11)),
            {"start": "not a date", "end": _dt(12).isoformat()},
            _raw(_dt(14), _dt(13)),
            {"start": _dt(15).isoformat()},
        ]
        busy, errors = availability.parse_busy_periods(raw)
        assert busy == [_busy(_dt(10), _dt(11))]
        assert len(errors) == 3


# ---------------------------------------------------------------------------
# Queries against the calendar
# ---------------------------------------------------------------------------

class TestQueryAvailability:
    async def test_every_calendar_has_entry(self):
        client = _make_client(
            busy={"cal1": [(_dt(10), _dt(11))]},
            failing={"cal2": HttpError(httplib2.Response({"status": 404}), b"{}")},
        )
        report = await availability.query_availability(
            client, AvailabilityRequest(["cal1", "cal2"], _dt(9), _dt(17))
        )
        assert set(report.per_resource) == {"cal1", "cal2"}
        assert report.per_resource["cal1"].busy == [_busy(_dt(10), _dt(11))]
        assert report.per_resource["cal2"].busy == []
        assert report.per_resource["cal2"].errors
        assert report.per_resource["cal2"].error_kind is RemoteErrorKind.NOT_FOUND

    async def test_upstream_errors_recorded(self):
        client = _make_client(upstream_errors={"ghost": [{"domain": "global", "reason": "notFound"}]})
        report = await availability.query_availability(
            client, AvailabilityRequest(["ghost"], _dt(9), _dt(17))
        )
        entry = report.per_resource["ghost"]
        assert entry.errors == ["global: notFound"]
        assert entry.error_kind is RemoteErrorKind.NOT_FOUND

    async def test_missing_calendar_in_response(self):
        transport = AsyncMock()
        transport.query_free_busy = AsyncMock(return_value={})
        client = CalendarClient(transport, base_delay=0)
        report = await availability.query_availability(
            client, AvailabilityRequest(["cal1"], _dt(9), _dt(17))
        )
        assert report.per_resource["cal1"].failed

    async def test_transient_failure_retried(self):
        transport = AsyncMock()
        transport.query_free_busy = AsyncMock(side_effect=[
            HttpError(httplib2.Response({"status": 503}), b"{}"),
            {"cal1": {"busy": [_raw(_dt(10), _dt(11))]}},
        ])
        client = CalendarClient(transport, base_delay=0)
        report = await availability.query_availability(
            client, AvailabilityRequest(["cal1"], _dt(9), _dt(17))
        )
        assert report.per_resource["cal1"].busy == [_busy(_dt(10), _dt(11))]
        assert client.transport.query_free_busy.await_count == 2

    async def test_window_required(self):
        client = _make_client()
        with pytest.raises(CalendarError) as exc_info:
            await availability.query_availability(client, AvailabilityRequest(["cal1"], None, _dt(17)))
        assert exc_info.value.kind is RemoteErrorKind.INVALID_INPUT
        assert "time_min" in exc_info.value.message

    async def test_inverted_window(self):
        client = _make_client()
        with pytest.raises(CalendarError):
            await availability.query_availability(client, AvailabilityRequest(["cal1"], _dt(17), _dt(9)))

    async def test_no_calendars(self):
        client = _make_client()
        with pytest.raises(CalendarError):
            await availability.query_availability(client, AvailabilityRequest([], _dt(9), _dt(17)))

    def test_report_to_dict(self):
        from mcp_calendar_scheduler.backends.base import AvailabilityReport, ResourceAvailability
        report = AvailabilityReport(_dt(9), _dt(17), {
            "cal1": ResourceAvailability(busy=[_busy(_dt(10), _dt(11))]),
            "cal2": ResourceAvailability(errors=["boom"], error_kind=RemoteErrorKind.UNKNOWN),
        })
        d = report.to_dict()
        assert d["calendars"]["cal1"]["busy"][0]["start"] == _dt(10).isoformat()
        assert d["calendars"]["cal2"]["errors"] == ["boom"]


class TestCheckConflicts:
    async def test_conflict(self):
        client = _make_client(busy={"cal1": [(_dt(10), _dt(11))]})
        has_conflict, conflicts = await availability.check_conflicts(client, "cal1", _dt(10, 30), _dt(11, 30))
        assert has_conflict is True
        assert conflicts == [_busy(_dt(10), _dt(11))]

    async def test_touching_is_not_conflict(self):
        client = _make_client(busy={"cal1": [(_dt(10), _dt(11))]})
        has_conflict, conflicts = await availability.check_conflicts(client, "cal1", _dt(11), _dt(12))
        assert has_conflict is False
        assert conflicts == []

    async def test_consistent_with_is_busy(self):
        client = _make_client(busy={"cal1": [(_dt(10), _dt(11)), (_dt(14), _dt(15))]})
        for start, end in [(_dt(9), _dt(10)), (_dt(11), _dt(14)), (_dt(10, 30), _dt(10, 45)), (_dt(15), _dt(16))]:
            has_conflict, _ = await availability.check_conflicts(client, "cal1", start, end)
            busy = await availability.is_busy(client, "cal1", start, end)
            assert has_conflict == busy

    async def test_failed_calendar_is_not_free(self):
        client = _make_client(failing={"cal1": HttpError(httplib2.Response({"status": 404}), b"{}")})
        with pytest.raises(CalendarError) as exc_info:
            await availability.check_conflicts(client, "cal1", _dt(10), _dt(11))
        assert exc_info.value.kind is RemoteErrorKind.NOT_FOUND

    async def test_failed_calendar_propagates_kind(self):
        client = _make_client(failing={"cal1": HttpError(httplib2.Response({"status": 403}), b"{}")})
        with pytest.raises(CalendarError) as exc_info:
            await availability.is_busy(client, "cal1", _dt(10), _dt(11))
        assert exc_info.value.kind is RemoteErrorKind.PERMISSION_DENIED


class TestFindFreeSlots:
    async def test_free_slots(self):
        client = _make_client(busy={"cal1": [(_dt(10), _dt(11))]})
        slots = await availability.find_free_slots(client, "cal1", _dt(9), _dt(12), timedelta(minutes=30))
        assert slots == [_dt(9), _dt(9, 30), _dt(11), _dt(11, 30)]

    async def test_duration_checked_before_query(self):
        client = _make_client()
        with pytest.raises(CalendarError):
            await availability.find_free_slots(client, "cal1", _dt(9), _dt(12), timedelta(minutes=-5))
        client.transport.query_free_busy.assert_not_awaited()


class TestFindCommonFreeTime:
    async def test_union_of_busy_sets(self):
        client = _make_client(busy={
            "alice": [(_dt(9), _dt(10))],
            "bob": [(_dt(11), _dt(12))],
        })
        slots = await availability.find_common_free_time(
            client, ["alice", "bob"], _dt(9), _dt(13), timedelta(hours=1)
        )
        assert slots == [_dt(10), _dt(12)]

    async def test_subset_of_each_member(self):
        busy = {
            "alice": [(_dt(9), _dt(10)), (_dt(13), _dt(14, 30))],
            "bob": [(_dt(11), _dt(12))],
            "carol": [(_dt(15, 15), _dt(15, 45))],
        }
        client = _make_client(busy=busy)
        d = timedelta(minutes=30)
        common = await availability.find_common_free_time(client, list(busy), _dt(8), _dt(17), d)
        for cal in busy:
            own = await availability.find_free_slots(client, cal, _dt(8), _dt(17), d)
            assert set(common) <= set(own)

    async def test_unknown_calendar_raises(self):
        client = _make_client(
            busy={"alice": [(_dt(9), _dt(10))]},
            failing={"bob": HttpError(httplib2.Response({"status": 404}), b"{}")},
        )
        with pytest.raises(CalendarError) as exc_info:
            await availability.find_common_free_time(
                client, ["alice", "bob"], _dt(9), _dt(13), timedelta(hours=1)
            )
        assert "bob" in exc_info.value.details
