from __future__ import annotations

import datetime as dt
import logging
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .context import PlanningContext
from .models import LessonInstance, clone_plan
from .occupancy import OccupancyIndex, move_lesson
from .scoring import gap_cost, window_cost
from .validator import validate_plan

logger = logging.getLogger(__name__)

PassFn = Callable[[List[LessonInstance], PlanningContext], Tuple[List[LessonInstance], int]]


def _group_days(plan: Sequence[LessonInstance], min_lessons: int) -> List[List[LessonInstance]]:
    buckets: Dict[Tuple[int, dt.date], List[LessonInstance]] = defaultdict(list)
    for lesson in plan:
        buckets[(lesson.group_id, lesson.date)].append(lesson)
    return [items for _, items in sorted(buckets.items(), key=lambda kv: (kv[0][1], kv[0][0])) if len(items) >= min_lessons]


def pull_lessons_forward(
    plan: Sequence[LessonInstance],
    ctx: PlanningContext,
    occ: OccupancyIndex,
    *,
    keep_room: bool,
    chain_gap: Optional[int] = None,
    respect_restrictions: bool = True,
) -> int:
    """
    Per (group, date), move each lesson into the earliest free grid slot at or
    after the slot taken by the previous lesson of that day.

    Mutates `plan` in place and keeps `occ` in sync. Returns the number of
    lessons moved.
    """
    moved = 0
    for items in _group_days(plan, 2):
        items.sort(key=lambda l: (l.start, l.end))
        day = items[0].date
        slots = ctx.slots_for(day)
        pointer = 0
        for lesson in items:
            limit = sum(1 for s in slots if s.start < lesson.start)
            occ.release(lesson)
            placed = False
            for idx in range(pointer, limit):
                ok, room = occ.fit(
                    ctx,
                    lesson,
                    day=day,
                    slot_index=idx,
                    keep_room=keep_room,
                    chain_gap=chain_gap,
                    respect_restrictions=respect_restrictions,
                )
                if ok:
                    move_lesson(lesson, day, slots[idx].start, slots[idx].end, room)
                    pointer = idx + 1
                    placed = True
                    moved += 1
                    break
            occ.reserve(lesson)
            if not placed:
                pointer = sum(1 for s in slots if s.start < lesson.end)
    return moved


def compact_plan(plan: Sequence[LessonInstance], ctx: PlanningContext) -> Tuple[List[LessonInstance], int]:
    """Compacted copy of `plan` and the number of lessons moved."""
    out = clone_plan(list(plan))
    occ = OccupancyIndex.for_plan(ctx, out)
    moved = pull_lessons_forward(out, ctx, occ, keep_room=True)
    return out, moved


def _window_candidates(items: List[LessonInstance]) -> List[LessonInstance]:
    flanking: List[LessonInstance] = []
    for a, b in zip(items, items[1:]):
        if gap_cost(b.start - a.end) > 0:
            flanking.extend(x for x in (a, b) if all(x is not f for f in flanking))
    rest = [x for x in reversed(items) if all(x is not f for f in flanking)]
    return flanking + rest


def _improve_day(items: List[LessonInstance], ctx: PlanningContext, occ: OccupancyIndex) -> int:
    day = items[0].date
    slots = ctx.slots_for(day)
    moves = 0
    while True:
        items.sort(key=lambda l: (l.start, l.end))
        cost = window_cost([(l.start, l.end) for l in items])
        if cost == 0:
            return moves
        improved = False
        for lesson in _window_candidates(items):
            others = [(l.start, l.end) for l in items if l is not lesson]
            occ.release(lesson)
            for idx, slot in enumerate(slots):
                if slot.start == lesson.start:
                    continue
                if window_cost(others + [(slot.start, slot.end)]) >= cost:
                    continue
                ok, room = occ.fit(ctx, lesson, day=day, slot_index=idx, keep_room=True)
                if ok:
                    move_lesson(lesson, day, slot.start, slot.end, room)
                    improved = True
                    break
            occ.reserve(lesson)
            if improved:
                moves += 1
                break
        if not improved:
            return moves


def minimize_windows(plan: Sequence[LessonInstance], ctx: PlanningContext) -> Tuple[List[LessonInstance], int]:
    """
    Close windows inside each group-day with at least three lessons by
    relocating a lesson to another free slot of the same date.

    A relocation is taken only when it lowers that group-day's window cost,
    so every group-day converges. Returns the new plan and the move count.
    """
    out = clone_plan(list(plan))
    occ = OccupancyIndex.for_plan(ctx, out)
    moves = 0
    for items in _group_days(out, 3):
        moves += _improve_day(items, ctx, occ)
    return out, moves


def apply_if_feasible(
    pass_fn: PassFn, plan: List[LessonInstance], ctx: PlanningContext
) -> Tuple[List[LessonInstance], bool]:
    """Run a post-pass and keep its output only when it changed something and validates clean."""
    candidate, moves = pass_fn(plan, ctx)
    if moves == 0:
        return plan, False
    violations = validate_plan(candidate, ctx)
    if violations:
        logger.warning("%s discarded: %d violation(s) after %d move(s)", pass_fn.__name__, len(violations), moves)
        return plan, False
    logger.debug("%s applied: %d move(s)", pass_fn.__name__, moves)
    return candidate, True
