from __future__ import annotations

import datetime as dt
import math
from typing import Dict, Iterator, List, Tuple

from .models import TimeSlot, format_hhmm
from .schema import ConfigurationError, SchedulingConfig


def build_time_slots(start: int, end: int, lesson_minutes: int, break_minutes: int) -> List[TimeSlot]:
    """Slots [cur, cur+lesson) while they fit in [start, end], separated by the break."""
    if lesson_minutes <= 0:
        raise ConfigurationError("lesson duration must be positive")
    if end <= start:
        raise ConfigurationError(f"working hours end {format_hhmm(end)} must be after start {format_hhmm(start)}")
    slots: List[TimeSlot] = []
    cur = start
    while cur + lesson_minutes <= end:
        slots.append(TimeSlot(cur, cur + lesson_minutes))
        cur = cur + lesson_minutes + break_minutes
    return slots


def iter_dates(start_date: dt.date, end_date: dt.date) -> Iterator[dt.date]:
    day = start_date
    while day <= end_date:
        yield day
        day += dt.timedelta(days=1)


def working_weekdays(exclude_weekends: bool) -> Tuple[int, ...]:
    # Sunday is never a school day; Saturday only when weekends are kept.
    return (1, 2, 3, 4, 5) if exclude_weekends else (1, 2, 3, 4, 5, 6)


def is_working_day(day: dt.date, exclude_weekends: bool) -> bool:
    return day.isoweekday() in working_weekdays(exclude_weekends)


def weeks_in_range(start_date: dt.date, end_date: dt.date, exclude_weekends: bool) -> int:
    days = sum(1 for d in iter_dates(start_date, end_date) if is_working_day(d, exclude_weekends))
    per_week = len(working_weekdays(exclude_weekends))
    return max(1, math.ceil(days / per_week))


def week_start(day: dt.date) -> dt.date:
    return day - dt.timedelta(days=day.isoweekday() - 1)


def build_slot_grid(
    *,
    start_date: dt.date,
    end_date: dt.date,
    day_start: int,
    day_end: int,
    lesson_minutes: int,
    break_minutes: int,
    exclude_weekends: bool,
) -> Dict[dt.date, Tuple[TimeSlot, ...]]:
    if end_date < start_date:
        raise ConfigurationError(f"date range is empty: {start_date} -> {end_date}")
    slots = tuple(build_time_slots(day_start, day_end, lesson_minutes, break_minutes))
    if not slots:
        raise ConfigurationError(
            f"no {lesson_minutes}-minute lesson fits between {format_hhmm(day_start)} and {format_hhmm(day_end)}"
        )
    grid = {d: slots for d in iter_dates(start_date, end_date) if is_working_day(d, exclude_weekends)}
    if not grid:
        raise ConfigurationError(f"no working day between {start_date} and {end_date}")
    return grid


def grid_for_config(config: SchedulingConfig) -> Dict[dt.date, Tuple[TimeSlot, ...]]:
    return build_slot_grid(
        start_date=config.start_date,
        end_date=config.end_date,
        day_start=config.working_hours.start_min,
        day_end=config.working_hours.end_min,
        lesson_minutes=config.lesson_duration,
        break_minutes=config.break_duration,
        exclude_weekends=config.exclude_weekends,
    )
