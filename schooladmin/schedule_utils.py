# schooladmin/schedule_utils.py
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, replace
from typing import Any, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

# Persisted order: index 0 = Sunday .. index 6 = Saturday
DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

# Screen order starts on Friday; each entry is an index into the persisted schedule
DISPLAY_ORDER = (5, 6, 0, 1, 2, 3, 4)

FULL_DAY = "24hours"
DAY_MINUTES = 24 * 60

PERIOD_DURATIONS = tuple(range(30, 65, 5))
DEFAULT_DURATION = 45

DEFAULT_START = "08:00"
DEFAULT_END = "14:00"

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


@dataclass(frozen=True)
class ScheduleDay:
    open: bool
    start: str = DEFAULT_START
    end: str = DEFAULT_END

    @property
    def full_day(self) -> bool:
        return self.start == FULL_DAY and self.end == FULL_DAY

    def as_dict(self) -> dict:
        return {"open": self.open, "start": self.start, "end": self.end}


@dataclass(frozen=True)
class Period:
    period: Optional[int]
    start_time: str
    end_time: str
    type: str  # period / break / lunch


@dataclass(frozen=True)
class PeriodPlan:
    total_periods: int
    total_hours: float
    periods: List[Period]


# -------------------------
# Time helpers
# -------------------------
def to_minutes(value: str) -> int:
    """'HH:MM' -> minutes since midnight. The 24hours sentinel is not a time."""
    match = _TIME_RE.match(str(value).strip())
    if not match:
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 24 or minutes > 59 or (hours == 24 and minutes):
        raise ValueError(f"Invalid time {value!r}")
    return hours * 60 + minutes


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def _window(start: str, end: str) -> Tuple[int, int]:
    if start == FULL_DAY or end == FULL_DAY:
        return 0, DAY_MINUTES
    return to_minutes(start), to_minutes(end)


def generate_slots(start: str, end: str, duration: int) -> List[str]:
    """
    Slice one day's window into consecutive "HH:MM-HH:MM" slots.

    The last slot is truncated at ``end`` when the duration does not divide
    the window. ``start >= end`` gives an empty list.
    """
    if int(duration) <= 0:
        raise ValueError("Period duration must be a positive number of minutes")
    cur, end_m = _window(start, end)
    slots = []
    while cur < end_m:
        nxt = min(cur + int(duration), end_m)
        slots.append(f"{format_minutes(cur)}-{format_minutes(nxt)}")
        cur = nxt
    return slots


def split_slot(slot: str) -> Tuple[str, str]:
    start, _, end = slot.partition("-")
    return start, end


# -------------------------
# Weekly schedule
# -------------------------
def default_weekly_schedule() -> List[ScheduleDay]:
    return [ScheduleDay(open=False, start=DEFAULT_START, end=DEFAULT_END) for _ in DAY_NAMES]


def _valid_hour(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    if value == FULL_DAY:
        return True
    try:
        to_minutes(value)
    except ValueError:
        return False
    return True


def parse_schedule_day(item: Any) -> Optional[ScheduleDay]:
    """One persisted {open, start, end} entry, or None when it is malformed."""
    if not isinstance(item, dict):
        return None
    if not isinstance(item.get("open"), bool):
        return None
    start, end = item.get("start"), item.get("end")
    if not (_valid_hour(start) and _valid_hour(end)):
        return None
    # 24hours is all-or-nothing
    if (start == FULL_DAY) != (end == FULL_DAY):
        return None
    return ScheduleDay(open=item["open"], start=start, end=end)


def parse_weekly_schedule(raw: Any) -> List[ScheduleDay]:
    """
    Accept the persisted weekly schedule (list or JSON text) and return seven
    ScheduleDay entries. Anything malformed yields the default closed week.
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("Weekly schedule is not valid JSON, using default")
            return default_weekly_schedule()

    if not isinstance(raw, (list, tuple)) or len(raw) != len(DAY_NAMES):
        logger.warning("Weekly schedule has wrong shape, using default")
        return default_weekly_schedule()

    days = []
    for item in raw:
        if isinstance(item, ScheduleDay):
            days.append(item)
            continue
        day = parse_schedule_day(item)
        if day is None:
            logger.warning("Weekly schedule entry %r is malformed, using default", item)
            return default_weekly_schedule()
        days.append(day)
    return days


def dump_weekly_schedule(schedule: Sequence[ScheduleDay]) -> str:
    return json.dumps([day.as_dict() for day in schedule])


def parse_duration(raw: Any) -> int:
    if isinstance(raw, bool):
        return DEFAULT_DURATION
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return DEFAULT_DURATION
    return value if value in PERIOD_DURATIONS else DEFAULT_DURATION


def active_days(schedule: Sequence[ScheduleDay]) -> List[str]:
    """Names of open days, Sunday first."""
    return [DAY_NAMES[i] for i, day in enumerate(schedule) if day.open]


def display_days(schedule: Sequence[ScheduleDay]) -> List[Tuple[str, int, ScheduleDay]]:
    """(name, schedule index, day) in the Friday-first screen order."""
    return [(DAY_NAMES[idx], idx, schedule[idx]) for idx in DISPLAY_ORDER]


def first_open_day(schedule: Sequence[ScheduleDay]) -> Optional[ScheduleDay]:
    for day in schedule:
        if day.open:
            return day
    return None


def routine_time_slots(schedule: Sequence[ScheduleDay], duration: int) -> List[str]:
    # Every column of the routine grid shares the first open day's rows,
    # even when other days are configured with different hours.
    day = first_open_day(schedule)
    if day is None or not duration:
        return []
    return generate_slots(day.start, day.end, duration)


def set_day_hours(schedule: Sequence[ScheduleDay], index: int, open: Optional[bool] = None,
                  start: Optional[str] = None, end: Optional[str] = None) -> List[ScheduleDay]:
    """Return a copy of ``schedule`` with one day changed."""
    day = schedule[index]
    if open is not None:
        day = replace(day, open=bool(open))
    if start is not None:
        day = replace(day, start=start)
        if start == FULL_DAY:
            day = replace(day, end=FULL_DAY)
        elif day.end == FULL_DAY:
            day = replace(day, end=DEFAULT_END)
    if end is not None:
        day = replace(day, end=end)
        if end == FULL_DAY:
            day = replace(day, start=FULL_DAY)
        elif day.start == FULL_DAY:
            day = replace(day, start=DEFAULT_START)
    updated = list(schedule)
    updated[index] = day
    return updated


def time_options() -> List[str]:
    """Choices for the opening-hours dropdowns: 24hours, then every half hour."""
    return [FULL_DAY] + [format_minutes(m) for m in range(0, DAY_MINUTES, 30)]


# -------------------------
# Period planner (periods with break / lunch)
# -------------------------
def plan_periods(start: str, end: str, period_duration: int,
                 break_duration: int = 0, break_after: int = 0,
                 lunch_duration: int = 0, lunch_after: int = 0,
                 include_break: bool = True, include_lunch: bool = True) -> PeriodPlan:
    if period_duration <= 0:
        raise ValueError("Period duration must be a positive number of minutes")
    start_m, end_m = _window(start, end)
    total_minutes = end_m - start_m

    reserved = 0
    if include_break:
        reserved += break_duration
    if include_lunch:
        reserved += lunch_duration
    number_of_periods = max(0, (total_minutes - reserved) // period_duration)

    periods = []
    cur = start_m
    for i in range(1, number_of_periods + 1):
        periods.append(Period(i, format_minutes(cur), format_minutes(cur + period_duration), "period"))
        cur += period_duration

        if include_break and i == break_after:
            periods.append(Period(None, format_minutes(cur), format_minutes(cur + break_duration), "break"))
            cur += break_duration

        if include_lunch and i == lunch_after:
            periods.append(Period(None, format_minutes(cur), format_minutes(cur + lunch_duration), "lunch"))
            cur += lunch_duration

    return PeriodPlan(
        total_periods=number_of_periods,
        total_hours=round(total_minutes / 60, 1),
        periods=periods,
    )
