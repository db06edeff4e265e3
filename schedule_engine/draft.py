from __future__ import annotations

import datetime as dt
import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

from .compaction import pull_lessons_forward
from .context import PlanningContext
from .models import Demand, LessonInstance, UnderfillRecord
from .occupancy import OccupancyIndex, move_lesson
from .slots import week_start, weeks_in_range, working_weekdays

logger = logging.getLogger(__name__)


@dataclass
class DraftResult:
    lessons: List[LessonInstance]
    fill: List[UnderfillRecord] = field(default_factory=list)

    @property
    def underfill(self) -> List[UnderfillRecord]:
        return [r for r in self.fill if r.placed < r.expected]


def _select_weekdays(
    allowed: Tuple[int, ...], pointer: int, usage: Dict[int, int], weekly_lessons: int
) -> List[int]:
    rot = pointer % len(allowed)
    rotated = list(allowed[rot:] + allowed[:rot])
    days_per_week = max(1, min(weekly_lessons, len(allowed)))
    # Least-used weekdays of the group first; ties keep the rotation order.
    return sorted(rotated, key=lambda d: usage.get(d, 0))[:days_per_week]


def _place_demand(
    item: Demand,
    selected: List[int],
    required: int,
    ctx: PlanningContext,
    occ: OccupancyIndex,
    usage: Dict[int, int],
) -> List[LessonInstance]:
    cfg = ctx.config
    placed: List[LessonInstance] = []
    per_week: Dict[dt.date, int] = defaultdict(int)

    for day in sorted(ctx.grid):
        if len(placed) >= required:
            break
        if day in ctx.holidays or day.isoweekday() not in selected:
            continue
        slots = ctx.slots_for(day)
        per_day_quota = max(1, min(len(slots), math.ceil(item.weekly_lessons / len(selected))))
        offset = (item.study_plan_id + item.group_id) % len(slots)
        order = list(range(offset, len(slots))) + list(range(0, offset))
        week = week_start(day)
        today = 0
        for idx in order:
            if len(placed) >= required or today >= per_day_quota or per_week[week] >= item.weekly_lessons:
                break
            slot = slots[idx]
            lesson = LessonInstance(
                group_id=item.group_id,
                teacher_id=item.teacher_id,
                study_plan_id=item.study_plan_id,
                subject=item.subject,
                date=day,
                start=slot.start,
                end=slot.end,
                group_size=item.group_size,
            )
            ok, room = occ.fit(ctx, lesson, day=day, slot_index=idx, chain_gap=cfg.break_duration)
            if not ok:
                continue
            lesson.assign_room(room)
            occ.reserve(lesson)
            placed.append(lesson)
            today += 1
            per_week[week] += 1
            usage[day.isoweekday()] = usage.get(day.isoweekday(), 0) + 1
    return placed


def _move_to_day(lesson: LessonInstance, target: dt.date, ctx: PlanningContext, occ: OccupancyIndex) -> bool:
    occ.release(lesson)
    for idx, slot in enumerate(ctx.slots_for(target)):
        ok, room = occ.fit(ctx, lesson, day=target, slot_index=idx, chain_gap=ctx.config.break_duration)
        if ok:
            move_lesson(lesson, target, slot.start, slot.end, room)
            occ.reserve(lesson)
            return True
    occ.reserve(lesson)
    return False


def redistribute_days(lessons: List[LessonInstance], ctx: PlanningContext, occ: OccupancyIndex) -> int:
    """Within each week, move lessons from a group's crowded days onto its empty days."""
    allowed = working_weekdays(ctx.config.exclude_weekends)
    buckets: Dict[Tuple[int, dt.date], List[LessonInstance]] = defaultdict(list)
    for lesson in lessons:
        buckets[(lesson.group_id, week_start(lesson.date))].append(lesson)

    moved = 0
    for (_, week), items in buckets.items():
        by_dow: Dict[int, List[LessonInstance]] = defaultdict(list)
        for lesson in items:
            by_dow[lesson.date.isoweekday()].append(lesson)
        targets = []
        for dow in allowed:
            day = week + dt.timedelta(days=dow - 1)
            if dow not in by_dow and day in ctx.grid and day not in ctx.holidays:
                targets.append(day)
        for target in targets:
            donors = sorted((lst for lst in by_dow.values() if len(lst) > 1), key=len, reverse=True)
            if not donors:
                break
            donor = donors[0]
            candidate = donor[-1]
            if _move_to_day(candidate, target, ctx, occ):
                donor.pop()
                by_dow[target.isoweekday()].append(candidate)
                moved += 1
    return moved


def build_draft(demand: Sequence[Demand], ctx: PlanningContext) -> DraftResult:
    """Greedy seed plan for every (study plan, group) demand item."""
    cfg = ctx.config
    occ = OccupancyIndex.for_plan(ctx)
    allowed = working_weekdays(cfg.exclude_weekends)
    weeks = weeks_in_range(cfg.start_date, cfg.end_date, cfg.exclude_weekends)

    lessons: List[LessonInstance] = []
    usage: Dict[int, Dict[int, int]] = defaultdict(dict)
    expected: Dict[int, int] = defaultdict(int)

    for pointer, item in enumerate(demand):
        required = item.weekly_lessons * weeks
        expected[item.group_id] += required
        preferred = cfg.restrictions.allowed_days(item.subject)
        days = tuple(d for d in allowed if d in preferred) if preferred else allowed
        selected = _select_weekdays(days or allowed, pointer, usage[item.group_id], item.weekly_lessons)
        placed = _place_demand(item, selected, required, ctx, occ, usage[item.group_id])
        logger.debug(
            "draft: plan=%s group=%s subject=%s days=%s placed=%d/%d",
            item.study_plan_id, item.group_id, item.subject, selected, len(placed), required,
        )
        lessons.extend(placed)

    moved = redistribute_days(lessons, ctx, occ)
    shifted = pull_lessons_forward(lessons, ctx, occ, keep_room=False, chain_gap=cfg.break_duration)
    logger.debug("draft: redistributed=%d compacted=%d", moved, shifted)

    actual: Dict[int, int] = defaultdict(int)
    for lesson in lessons:
        actual[lesson.group_id] += 1
    fill = [UnderfillRecord(group_id=g, expected=exp, placed=actual.get(g, 0)) for g, exp in expected.items()]
    for record in fill:
        if record.placed < record.expected:
            logger.warning(
                "GROUP_LESSONS_UNDERFILLED group=%s expected=%d placed=%d", record.group_id, record.expected, record.placed
            )
    return DraftResult(lessons=lessons, fill=fill)
