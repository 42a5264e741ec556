# ================================
# DATE UTILITIES (utils/dates.py)
# ================================

"""
Calendar math for stays.

A stay is the half-open interval [check_in, check_out): the check-out day is
not occupied, so back-to-back bookings are allowed.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable, Iterator, List, Optional, Tuple
import calendar

ONE_DAY = timedelta(days=1)

def date_range(start: date, end: date) -> Iterator[date]:
    """Yields every date in [start, end)"""
    current = start
    while current < end:
        yield current
        current += ONE_DAY

def nights_between(check_in: date, check_out: date) -> int:
    return (check_out - check_in).days

def overlaps(start_a: date, end_a: date, start_b: date, end_b: date) -> bool:
    """Half-open interval overlap test"""
    return start_a < end_b and end_a > start_b

def overlapping_dates(start_a: date, end_a: date, start_b: date, end_b: date) -> List[date]:
    """Exact calendar dates shared by two half-open intervals"""
    return list(date_range(max(start_a, start_b), min(end_a, end_b)))

def weekday_index(day: date) -> int:
    """Day of week with Sunday=0 ... Saturday=6"""
    return (day.weekday() + 1) % 7

def month_bounds(year: int, month: int) -> Tuple[date, date]:
    """First day of the month and first day of the following month"""
    last_day = calendar.monthrange(year, month)[1]
    first = date(year, month, 1)
    return first, first + timedelta(days=last_day)

def today_utc() -> date:
    return datetime.now(timezone.utc).date()

def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (SQLite round-trips) as UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

# ================================
# GROUPING OF BLOCKED DATES
# ================================

@dataclass
class DateGroup:
    """A run of consecutive dates sharing one source tag, end is inclusive"""
    start: date
    end: date
    source: Any
    unit_id: Any = None
    reasons: List[str] = field(default_factory=list)

    @property
    def end_exclusive(self) -> date:
        return self.end + ONE_DAY

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    @property
    def reason(self) -> Optional[str]:
        return self.reasons[0] if self.reasons else None

def group_consecutive_dates(items: Iterable[Any]) -> List[DateGroup]:
    """
    Collapse blocked dates into multi-day groups.

    Items need `date` and `source` attributes (`unit_id` and `reason` are
    picked up when present). Groups never span units. Within a unit a new
    group starts whenever the gap to the previous date exceeds one day or the
    source tag changes.
    """
    ordered = sorted(
        items,
        key=lambda item: (str(getattr(item, "unit_id", "") or ""), item.date)
    )

    groups: List[DateGroup] = []
    current: Optional[DateGroup] = None

    for item in ordered:
        unit_id = getattr(item, "unit_id", None)
        reason = getattr(item, "reason", None)

        if (
            current is not None
            and current.unit_id == unit_id
            and current.source == item.source
            and item.date - current.end == ONE_DAY
        ):
            current.end = item.date
        elif current is not None and current.unit_id == unit_id and item.date == current.end and current.source == item.source:
            # duplicate row for the same day
            continue
        else:
            current = DateGroup(start=item.date, end=item.date, source=item.source, unit_id=unit_id)
            groups.append(current)

        if reason and reason not in current.reasons:
            current.reasons.append(reason)

    return groups
