from __future__ import annotations

from collections import defaultdict
from typing import Callable, Dict, Hashable, List, Sequence, Tuple

from .context import PlanningContext
from .models import LessonInstance, Violation, ViolationKind, intervals_overlap

Bucket = Dict[Hashable, List[int]]


def _bucket(plan: Sequence[LessonInstance], key: Callable[[LessonInstance], Hashable]) -> Bucket:
    out: Bucket = defaultdict(list)
    for i, lesson in enumerate(plan):
        k = key(lesson)
        if k is not None:
            out[k].append(i)
    for idxs in out.values():
        idxs.sort(key=lambda i: (plan[i].start, plan[i].end))
    return out


def _overlaps(plan: Sequence[LessonInstance], buckets: Bucket, kind: ViolationKind, field_name: str) -> List[Violation]:
    out: List[Violation] = []
    for (resource_id, day), idxs in buckets.items():
        # Sweep: compare each lesson with every earlier one still running.
        running: List[int] = []
        for i in idxs:
            cur = plan[i]
            running = [j for j in running if plan[j].end > cur.start]
            for j in running:
                out.append(
                    Violation(
                        kind=kind,
                        date=day,
                        lessons=(j, i),
                        start=cur.start,
                        end=min(cur.end, plan[j].end),
                        **{field_name: resource_id},
                    )
                )
            running.append(i)
    return out


def _consecutive_pairs(plan: Sequence[LessonInstance], buckets: Bucket):
    for (resource_id, day), idxs in buckets.items():
        for a, b in zip(idxs, idxs[1:]):
            yield resource_id, day, a, b


def validate_plan(plan: Sequence[LessonInstance], ctx: PlanningContext) -> List[Violation]:
    """
    All hard-constraint violations of `plan` against the run context.

    Pure: reads the plan and the immutable context, returns a list. An empty
    list means the plan is feasible.
    """
    cfg = ctx.config
    out: List[Violation] = []

    by_teacher = _bucket(plan, lambda l: (l.teacher_id, l.date))
    by_group = _bucket(plan, lambda l: (l.group_id, l.date))
    by_room = _bucket(plan, lambda l: (l.room_id, l.date) if l.room_id is not None else None)

    # Double booking inside the plan
    out += _overlaps(plan, by_teacher, ViolationKind.TEACHER_OVERLAP, "teacher_id")
    out += _overlaps(plan, by_group, ViolationKind.GROUP_OVERLAP, "group_id")
    out += _overlaps(plan, by_room, ViolationKind.ROOM_OVERLAP, "room_id")

    for i, lesson in enumerate(plan):
        day = lesson.date
        common = dict(date=day, lessons=(i,), start=lesson.start, end=lesson.end)

        # Existing bookings
        for b in ctx.bookings_by_date.get(day, ()):
            if not intervals_overlap(lesson.start, lesson.end, b.start, b.end):
                continue
            if b.teacher_id is not None and b.teacher_id == lesson.teacher_id:
                out.append(Violation(kind=ViolationKind.TEACHER_BUSY, teacher_id=lesson.teacher_id, **common))
            if b.group_id is not None and b.group_id == lesson.group_id:
                out.append(Violation(kind=ViolationKind.GROUP_BUSY, group_id=lesson.group_id, **common))
            if b.room_id is not None and b.room_id == lesson.room_id:
                out.append(Violation(kind=ViolationKind.ROOM_BUSY, room_id=lesson.room_id, **common))

        if lesson.room_id is not None:
            room = ctx.room_by_id.get(lesson.room_id)
            if room is not None and lesson.group_size and room.capacity < lesson.group_size:
                out.append(
                    Violation(kind=ViolationKind.ROOM_CAPACITY, room_id=room.id, count=lesson.group_size, **common)
                )

        if ctx.is_absent(lesson.teacher_id, day):
            out.append(Violation(kind=ViolationKind.TEACHER_ABSENT, teacher_id=lesson.teacher_id, **common))
        if day in ctx.holidays:
            out.append(Violation(kind=ViolationKind.HOLIDAY, **common))
        if ctx.overlaps_lunch(lesson.start, lesson.end):
            out.append(Violation(kind=ViolationKind.LUNCH_BREAK, group_id=lesson.group_id, **common))

    per_resource: Tuple[Tuple[Bucket, str, ViolationKind, ViolationKind, ViolationKind], ...] = (
        (by_teacher, "teacher_id", ViolationKind.TEACHER_MAX_PER_DAY, ViolationKind.TEACHER_MAX_CONSECUTIVE,
         ViolationKind.TEACHER_TRANSITION),
        (by_group, "group_id", ViolationKind.GROUP_MAX_PER_DAY, ViolationKind.GROUP_MAX_CONSECUTIVE,
         ViolationKind.GROUP_TRANSITION),
    )
    for buckets, field_name, per_day_kind, chain_kind, transition_kind in per_resource:
        # Daily cap
        if cfg.max_lessons_per_day:
            for (resource_id, day), idxs in buckets.items():
                if len(idxs) > cfg.max_lessons_per_day:
                    out.append(
                        Violation(
                            kind=per_day_kind, date=day, lessons=tuple(idxs), count=len(idxs), **{field_name: resource_id}
                        )
                    )

        # Consecutive chain: successive lessons with gap <= min break
        if cfg.max_consecutive:
            for (resource_id, day), idxs in buckets.items():
                chain = [idxs[0]]
                for prev, cur in zip(idxs, idxs[1:]):
                    if plan[cur].start - plan[prev].end <= ctx.min_break:
                        chain.append(cur)
                    else:
                        chain = [cur]
                    if len(chain) > cfg.max_consecutive:
                        out.append(
                            Violation(
                                kind=chain_kind,
                                date=day,
                                lessons=tuple(chain),
                                start=plan[chain[0]].start,
                                end=plan[cur].end,
                                count=len(chain),
                                **{field_name: resource_id},
                            )
                        )
                        break

        # Transition buffer between buildings
        for resource_id, day, a, b in _consecutive_pairs(plan, buckets):
            first, second = plan[a], plan[b]
            gap = second.start - first.end
            if gap >= ctx.min_break:
                continue
            building_a = ctx.building_of(first.room_id)
            building_b = ctx.building_of(second.room_id)
            if building_a and building_b and building_a != building_b:
                out.append(
                    Violation(
                        kind=transition_kind,
                        date=day,
                        lessons=(a, b),
                        start=first.end,
                        end=second.start,
                        **{field_name: resource_id},
                    )
                )
    return out


def is_feasible(plan: Sequence[LessonInstance], ctx: PlanningContext) -> bool:
    return not validate_plan(plan, ctx)


def offending_lessons(violations: Sequence[Violation]) -> List[int]:
    """Indexes of lessons named by any violation, in plan order."""
    seen = set()
    for v in violations:
        seen.update(v.lessons)
    return sorted(seen)


def count_by_kind(violations: Sequence[Violation]) -> Dict[str, int]:
    out: Dict[str, int] = defaultdict(int)
    for v in violations:
        out[v.kind.value] += 1
    return dict(out)
