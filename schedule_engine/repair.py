from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from .context import PlanningContext
from .models import LessonInstance, Room, Violation, clone_plan
from .occupancy import OccupancyIndex, move_lesson
from .validator import offending_lessons, validate_plan

logger = logging.getLogger(__name__)


def _same_slot(lesson: LessonInstance, ctx: PlanningContext, occ: OccupancyIndex) -> Optional[Room]:
    return occ.pick_room(ctx, lesson, day=lesson.date, start=lesson.start, end=lesson.end)


def _fix_lesson(lesson: LessonInstance, ctx: PlanningContext, occ: OccupancyIndex) -> bool:
    day = lesson.date
    current = ctx.room_by_id.get(lesson.room_id) if lesson.room_id is not None else None
    roomless = not ctx.fitting_rooms(lesson.group_size)

    # 1. still placeable as it is
    if occ.can_place(ctx, lesson, day=day, start=lesson.start, end=lesson.end, room=current):
        return True

    # 2. same slot, another room
    if not roomless:
        room = _same_slot(lesson, ctx, occ)
        if room is not None:
            lesson.assign_room(room)
            return True

    # 3. any slot of the same date
    for idx, slot in enumerate(ctx.slots_for(day)):
        ok, room = occ.fit(ctx, lesson, day=day, slot_index=idx, keep_room=False, respect_restrictions=False)
        if ok:
            move_lesson(lesson, day, slot.start, slot.end, room)
            return True
    return False


def repair_plan(
    plan: Sequence[LessonInstance], violations: Sequence[Violation], ctx: PlanningContext
) -> List[LessonInstance]:
    """
    One deterministic repair pass over the lessons named by `violations`.

    Dates never change and no lesson is dropped; a lesson that cannot be
    fixed keeps its placement and shows up again in the final validation.
    """
    out = clone_plan(list(plan))
    targets = set(offending_lessons(violations))
    # Lessons outside the violation set are fixed points for the pass.
    occ = OccupancyIndex.for_plan(ctx, [l for i, l in enumerate(out) if i not in targets])

    failed = 0
    for i in sorted(targets):
        lesson = out[i]
        if not _fix_lesson(lesson, ctx, occ):
            failed += 1
            logger.warning(
                "repair: lesson %d (%s group=%s teacher=%s %s %s-%s) left in place",
                i, lesson.subject, lesson.group_id, lesson.teacher_id, lesson.date, lesson.start_time, lesson.end_time,
            )
        occ.reserve(lesson)

    remaining = validate_plan(out, ctx)
    logger.debug("repair: %d target(s), %d unrepaired, %d violation(s) left", len(targets), failed, len(remaining))
    return out
