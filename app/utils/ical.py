# ================================
# ICALENDAR CODEC (utils/ical.py)
# ================================

"""
iCalendar reading and writing for all-day busy periods, on top of icalendar.

Parsing runs in explicit stages:

1. ``unfold_lines``  joins continuation lines (line break followed by space/tab)
2. ``parse_ical``    hands the unfolded lines to ``Calendar.from_ical`` and
                     walks the VEVENTs

Only what calendar sync needs is kept: UID, DTSTART, DTEND (or DURATION),
SUMMARY and DESCRIPTION. Date-times are reduced to calendar dates and every
event end is exclusive, as for DATE values.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, List, Optional
import logging
import re

from icalendar import Calendar, Event

from app.core.exceptions import SyncParseError

logger = logging.getLogger(__name__)

CRLF = "\r\n"

_LINE_BREAK_RE = re.compile(r"\r\n|\n|\r")

@dataclass
class ICalEvent:
    """A VEVENT reduced to an all-day interval [start, end)"""
    uid: str
    start: date
    end: date
    summary: Optional[str] = None
    description: Optional[str] = None

    def dates(self) -> List[date]:
        days = []
        current = self.start
        while current < self.end:
            days.append(current)
            current += timedelta(days=1)
        return days

# ================================
# PARSING
# ================================

def unfold_lines(text: str) -> List[str]:
    """Split raw iCal text into logical lines, joining folded continuations"""
    logical: List[str] = []
    for line in _LINE_BREAK_RE.split(text):
        if line[:1] in (" ", "\t") and logical:
            logical[-1] += line[1:]
        elif line:
            logical.append(line)
    return logical

def _as_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value

def _text(component, name: str) -> Optional[str]:
    value = component.get(name)
    if value is None:
        return None
    return str(value)

def parse_ical(text: str) -> List[ICalEvent]:
    """
    Parse an iCalendar document into all-day events.

    Raises SyncParseError when the document is not a VCALENDAR or carries an
    unreadable date. Events without UID or DTSTART are skipped. A missing
    DTEND means DURATION, or a single day when that is missing too.
    """
    try:
        calendar = Calendar.from_ical(CRLF.join(unfold_lines(text)))
    except (ValueError, IndexError) as e:
        raise SyncParseError(f"Document is not a readable iCalendar: {e}")

    if calendar.name != "VCALENDAR":
        raise SyncParseError("Document is not an iCalendar (missing BEGIN:VCALENDAR)")

    events: List[ICalEvent] = []
    for component in calendar.walk("VEVENT"):
        event = _build_event(component)
        if event is not None:
            events.append(event)

    return events

def _build_event(component) -> Optional[ICalEvent]:
    # icalendar drops undecodable properties of a VEVENT and records them here
    for name, message in component.errors:
        if name in ("DTSTART", "DTEND", "DURATION"):
            raise SyncParseError(f"Invalid iCal date in {name}: {message}")

    uid = _text(component, "UID")
    dtstart = component.get("DTSTART")
    if not uid or not uid.strip() or dtstart is None:
        logger.debug("Skipping VEVENT without UID or DTSTART")
        return None
    if not isinstance(getattr(dtstart, "dt", None), date):
        raise SyncParseError(f"Invalid iCal date in DTSTART for {uid}")

    start = _as_date(dtstart.dt)
    dtend = component.get("DTEND")
    duration = component.get("DURATION")
    if dtend is not None:
        end = _as_date(dtend.dt)
    elif duration is not None:
        end = _as_date(dtstart.dt + duration.dt)
    else:
        end = start + timedelta(days=1)

    if end <= start:
        end = start + timedelta(days=1)

    return ICalEvent(
        uid=uid.strip(),
        start=start,
        end=end,
        summary=_text(component, "SUMMARY"),
        description=_text(component, "DESCRIPTION")
    )

# ================================
# GENERATION
# ================================

def build_event(event: ICalEvent, stamp: datetime) -> Event:
    """All-day VEVENT, text values are escaped by icalendar"""
    component = Event()
    component.add("uid", event.uid)
    component.add("dtstart", event.start)
    component.add("dtend", event.end)
    component.add("dtstamp", stamp)
    if event.summary:
        component.add("summary", event.summary)
    if event.description:
        component.add("description", event.description)
    return component

def format_calendar(
    events: Iterable[ICalEvent],
    calendar_name: str,
    prodid: str,
    timezone_name: str,
    stamp: Optional[datetime] = None
) -> str:
    """Serialize events into a VCALENDAR document, CRLF endings, lines folded at 75 octets"""
    stamp = (stamp or datetime.now(timezone.utc)).astimezone(timezone.utc)

    calendar = Calendar()
    calendar.add("prodid", prodid)
    calendar.add("version", "2.0")
    calendar.add("calscale", "GREGORIAN")
    calendar.add("method", "PUBLISH")
    calendar.add("x-wr-calname", calendar_name)
    calendar.add("x-wr-timezone", timezone_name)

    for event in events:
        calendar.add_component(build_event(event, stamp))

    return calendar.to_ical().decode("utf-8")
