from __future__ import annotations

import datetime as dt
from collections import Counter, defaultdict
from typing import Dict, List, Optional, Sequence, Tuple

from .models import LessonInstance, RecurringTemplate, SingleOccurrence
from .schema import SchedulingConfig

Key = Tuple[int, int, Optional[int], str, int, int]


def _key(lesson: LessonInstance) -> Key:
    return (lesson.group_id, lesson.teacher_id, lesson.study_plan_id, lesson.subject, lesson.start, lesson.end)


def _buckets(plan: Sequence[LessonInstance]) -> Dict[Key, List[LessonInstance]]:
    out: Dict[Key, List[LessonInstance]] = defaultdict(list)
    for lesson in plan:
        out[_key(lesson)].append(lesson)
    for items in out.values():
        items.sort(key=lambda l: l.date)
    return out


def _single(lesson: LessonInstance) -> SingleOccurrence:
    return SingleOccurrence(
        group_id=lesson.group_id,
        teacher_id=lesson.teacher_id,
        study_plan_id=lesson.study_plan_id,
        subject=lesson.subject,
        start_time=lesson.start_time,
        end_time=lesson.end_time,
        date=lesson.date,
        room_id=lesson.room_id,
        room_type=lesson.room_type,
        room_capacity=lesson.room_capacity,
    )


def _template(items: List[LessonInstance], dates: List[dt.date]) -> RecurringTemplate:
    diffs = [(b - a).days for a, b in zip(dates, dates[1:])]
    repeat = "biweekly" if all(d % 14 == 0 for d in diffs) else "weekly"
    step = dt.timedelta(days=14 if repeat == "biweekly" else 7)
    actual = set(dates)
    excluded = []
    day = dates[0]
    while day <= dates[-1]:
        if day not in actual:
            excluded.append(day)
        day += step

    # Most frequent room over the series; first seen wins ties.
    room_lesson = {l.room_id: l for l in reversed(items)}
    room_id = Counter(l.room_id for l in items).most_common(1)[0][0]
    ref = room_lesson[room_id]
    first = items[0]
    return RecurringTemplate(
        group_id=first.group_id,
        teacher_id=first.teacher_id,
        study_plan_id=first.study_plan_id,
        subject=first.subject,
        start_time=first.start_time,
        end_time=first.end_time,
        day_of_week=dates[0].isoweekday(),
        start_date=dates[0],
        end_date=dates[-1],
        repeat=repeat,
        excluded_dates=tuple(excluded),
        room_id=ref.room_id,
        room_type=ref.room_type,
        room_capacity=ref.room_capacity,
    )


def aggregate_recurring(plan: Sequence[LessonInstance]) -> Tuple[List[RecurringTemplate], List[SingleOccurrence]]:
    """
    Fold lessons sharing group, teacher, study plan, subject and time into
    recurring templates.

    Series on a single weekday become one weekly or biweekly template with
    the missing cadence dates excluded. Series spread over several weekdays,
    series with two lessons on one date, and one-off lessons become single
    occurrences, one per lesson.
    """
    templates: List[RecurringTemplate] = []
    singles: List[SingleOccurrence] = []
    buckets = _buckets(plan)
    for key in sorted(buckets, key=lambda k: (k[0], k[1], k[2] if k[2] is not None else -1, k[3], k[4], k[5])):
        items = buckets[key]
        dates = sorted({l.date for l in items})
        if len(dates) > 1 and len(dates) == len(items) and len({d.isoweekday() for d in dates}) == 1:
            templates.append(_template(items, dates))
        else:
            singles.extend(_single(l) for l in items)
    return templates, singles


def expand_template(template: RecurringTemplate) -> List[dt.date]:
    excluded = set(template.excluded_dates)
    step = dt.timedelta(days=template.step_days)
    out: List[dt.date] = []
    day = template.start_date
    while day <= template.end_date:
        if day not in excluded:
            out.append(day)
        day += step
    return out


def week_parity(day: dt.date, start_date: dt.date) -> int:
    return ((day - start_date).days // 7) % 2


def prune_biweekly(
    plan: Sequence[LessonInstance], config: SchedulingConfig
) -> Tuple[List[LessonInstance], int]:
    """
    Keep only the A-week (or B-week) lessons of study plans forced to run
    biweekly. The parity of each series follows its first lesson.
    """
    forced = set(config.force_biweekly_study_plan_ids)
    if not forced:
        return list(plan), 0
    dropped = set()
    for items in _buckets(plan).values():
        if items[0].study_plan_id not in forced:
            continue
        parity = week_parity(items[0].date, config.start_date)
        dropped.update(id(l) for l in items if week_parity(l.date, config.start_date) != parity)
    kept = [l for l in plan if id(l) not in dropped]
    return kept, len(plan) - len(kept)
