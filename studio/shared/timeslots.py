"""Time slot arithmetic shared by availability and booking checks"""

from datetime import date, datetime, time, timedelta
from typing import Iterable, NamedTuple

from ..config import CLOSING_HOUR, OPENING_HOUR, SLOT_GRANULARITY_MINUTES


class Interval(NamedTuple):
    """Half-open interval [start, end)"""

    start: datetime
    end: datetime


def parse_slot_time(value: str) -> time:
    hours, minutes = (int(part) for part in value.split(":"))
    return time(hours, minutes)


def slot_interval(day: date, start: str, duration_minutes: int) -> Interval:
    start_dt = datetime.combine(day, parse_slot_time(start))
    return Interval(start_dt, start_dt + timedelta(minutes=duration_minutes))


def overlaps(a: Interval, b: Interval) -> bool:
    return a.start < b.end and a.end > b.start


def overlaps_any(candidate: Interval, busy: Iterable[Interval]) -> bool:
    return any(overlaps(candidate, interval) for interval in busy)


def generate_day_slots(
    opening_hour: int = OPENING_HOUR,
    closing_hour: int = CLOSING_HOUR,
    granularity_minutes: int = SLOT_GRANULARITY_MINUTES,
) -> list[str]:
    """All candidate start times within opening hours, e.g. 08:00 ... 19:30"""
    slots = []
    minute_of_day = opening_hour * 60
    while minute_of_day < closing_hour * 60:
        slots.append(f"{minute_of_day // 60:02d}:{minute_of_day % 60:02d}")
        minute_of_day += granularity_minutes
    return slots
