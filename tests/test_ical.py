# ================================
# ICALENDAR CODEC TESTS (tests/test_ical.py)
# ================================

from datetime import date, datetime, timezone

import pytest

from app.core.exceptions import SyncParseError
from app.utils.ical import (
    ICalEvent,
    unfold_lines,
    parse_ical,
    format_calendar
)

AIRBNB_FEED = (
    "BEGIN:VCALENDAR\r\n"
    "PRODID:-//Airbnb Inc//Hosting Calendar 0.8.8//EN\r\n"
    "VERSION:2.0\r\n"
    "BEGIN:VEVENT\r\n"
    "DTEND;VALUE=DATE:20300310\r\n"
    "DTSTART;VALUE=DATE:20300307\r\n"
    "UID:1418fb94e984-2d5a1b9e2b1f@airbnb.com\r\n"
    "SUMMARY:Reserved\r\n"
    "DESCRIPTION:Reservation URL: https://www.airbnb.com/hosting/\r\n"
    " reservations/details/HMABCDEF\r\n"
    "END:VEVENT\r\n"
    "BEGIN:VEVENT\r\n"
    "DTSTART:20300320T140000Z\r\n"
    "DTEND:20300322T110000Z\r\n"
    "UID:blocked-2@airbnb.com\r\n"
    "SUMMARY:Airbnb (Not available)\r\n"
    "BEGIN:VALARM\r\n"
    "ACTION:DISPLAY\r\n"
    "SUMMARY:Alarm text\r\n"
    "END:VALARM\r\n"
    "END:VEVENT\r\n"
    "END:VCALENDAR\r\n"
)


def render(events, **kwargs):
    kwargs.setdefault("calendar_name", "Rental bookings")
    kwargs.setdefault("prodid", "-//Test//EN")
    kwargs.setdefault("timezone_name", "Europe/Moscow")
    return format_calendar(events, **kwargs)


class TestUnfolding:
    """Continuation lines are joined before parsing."""

    def test_unfold_joins_continuation_lines(self):
        lines = unfold_lines("SUMMARY:Long\r\n  text\r\n\tmore\r\nUID:1\r\n")
        assert lines == ["SUMMARY:Long text" + "more", "UID:1"]

    def test_unfold_accepts_bare_newlines(self):
        assert unfold_lines("A:1\nB:2\n C") == ["A:1", "B:2C"]

    def test_blank_lines_are_dropped(self):
        assert unfold_lines("A:1\r\n\r\nB:2\r\n") == ["A:1", "B:2"]


class TestParseICal:
    """Whole-document parsing."""

    def test_parses_events(self):
        events = parse_ical(AIRBNB_FEED)

        assert len(events) == 2
        first, second = events
        assert first.uid == "1418fb94e984-2d5a1b9e2b1f@airbnb.com"
        assert (first.start, first.end) == (date(2030, 3, 7), date(2030, 3, 10))
        assert first.summary == "Reserved"
        assert first.description.endswith("reservations/details/HMABCDEF")
        assert (second.start, second.end) == (date(2030, 3, 20), date(2030, 3, 22))

    def test_alarm_properties_do_not_leak_into_event(self):
        events = parse_ical(AIRBNB_FEED)
        assert events[1].summary == "Airbnb (Not available)"

    def test_escaped_text_is_decoded(self):
        feed = (
            "BEGIN:VCALENDAR\r\nBEGIN:VEVENT\r\nUID:x\r\nDTSTART;VALUE=DATE:20300105\r\n"
            "SUMMARY:Ivanov\\, I.\\; 2 guests\r\nDESCRIPTION:line one\\nline two\r\n"
            "END:VEVENT\r\nEND:VCALENDAR\r\n"
        )
        event = parse_ical(feed)[0]
        assert event.summary == "Ivanov, I.; 2 guests"
        assert event.description == "line one\nline two"

    def test_missing_dtend_means_one_day(self):
        feed = "BEGIN:VCALENDAR\nBEGIN:VEVENT\nUID:x\nDTSTART;VALUE=DATE:20300105\nEND:VEVENT\nEND:VCALENDAR\n"
        event = parse_ical(feed)[0]
        assert event.dates() == [date(2030, 1, 5)]

    def test_duration_instead_of_dtend(self):
        feed = (
            "BEGIN:VCALENDAR\r\nBEGIN:VEVENT\r\nUID:x\r\nDTSTART;VALUE=DATE:20300105\r\n"
            "DURATION:P3D\r\nEND:VEVENT\r\nEND:VCALENDAR\r\n"
        )
        event = parse_ical(feed)[0]
        assert (event.start, event.end) == (date(2030, 1, 5), date(2030, 1, 8))

    def test_events_without_uid_are_skipped(self):
        feed = (
            "BEGIN:VCALENDAR\nBEGIN:VEVENT\nDTSTART;VALUE=DATE:20300105\nEND:VEVENT\n"
            "BEGIN:VEVENT\nUID:ok\nDTSTART;VALUE=DATE:20300106\nEND:VEVENT\nEND:VCALENDAR\n"
        )
        assert [event.uid for event in parse_ical(feed)] == ["ok"]

    def test_unreadable_date_fails(self):
        feed = "BEGIN:VCALENDAR\r\nBEGIN:VEVENT\r\nUID:x\r\nDTSTART:tomorrow\r\nEND:VEVENT\r\nEND:VCALENDAR\r\n"
        with pytest.raises(SyncParseError):
            parse_ical(feed)

    def test_not_a_calendar(self):
        with pytest.raises(SyncParseError):
            parse_ical("<html><body>Login required</body></html>")

    def test_lone_event_is_not_a_calendar(self):
        with pytest.raises(SyncParseError):
            parse_ical("BEGIN:VEVENT\r\nUID:x\r\nDTSTART;VALUE=DATE:20300105\r\nEND:VEVENT\r\n")

    def test_empty_calendar(self):
        assert parse_ical("BEGIN:VCALENDAR\r\nVERSION:2.0\r\nEND:VCALENDAR\r\n") == []


class TestFormatCalendar:
    """Document generation."""

    def test_document_structure(self):
        stamp = datetime(2030, 1, 1, 8, 30, tzinfo=timezone.utc)
        document = render(
            [ICalEvent("uid-1", date(2030, 3, 1), date(2030, 3, 4), "Closed: Loft", "Guest; Ivanov, 2 nights")],
            stamp=stamp
        )

        assert document.startswith("BEGIN:VCALENDAR\r\nVERSION:2.0\r\n")
        assert document.endswith("END:VCALENDAR\r\n")
        assert "DTSTART;VALUE=DATE:20300301\r\n" in document
        assert "DTEND;VALUE=DATE:20300304\r\n" in document
        assert "DESCRIPTION:Guest\\; Ivanov\\, 2 nights\r\n" in document
        assert "DTSTAMP:20300101T083000Z\r\n" in document
        assert "X-WR-CALNAME:Rental bookings\r\n" in document

    def test_long_lines_are_folded_by_octets(self):
        summary = "Закрыто: " + "Квартира у моря " * 4
        document = render([ICalEvent("uid-1", date(2030, 3, 1), date(2030, 3, 4), summary, "x" * 200)])

        physical = document.split("\r\n")
        assert all(len(line.encode("utf-8")) <= 75 for line in physical)
        assert parse_ical(document)[0].summary == summary

    def test_round_trip_keeps_ranges_and_text(self):
        events = [
            ICalEvent("a@test", date(2030, 1, 1), date(2030, 1, 4), "Closed, for now", "line one\nline two"),
            ICalEvent("b@test", date(2030, 1, 5), date(2030, 1, 6), "Booking: Loft", None),
        ]

        parsed = parse_ical(render(events, timezone_name="UTC"))

        assert [(e.uid, e.start, e.end) for e in parsed] == [(e.uid, e.start, e.end) for e in events]
        assert parsed[0].summary == "Closed, for now"
        assert parsed[0].description == "line one\nline two"
        assert parsed[1].description is None
