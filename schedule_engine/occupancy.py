from __future__ import annotations

import datetime as dt
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from .context import PlanningContext
from .models import LessonInstance, Room, intervals_overlap

TEACHER = "teacher"
GROUP = "group"
ROOM = "room"


@dataclass(frozen=True)
class Entry:
    start: int
    end: int
    room_id: Optional[int]
    token: Optional[int]  # id() of the owning lesson, None for external bookings


def longest_chain(intervals: List[Tuple[int, int]], max_gap: int) -> int:
    """Longest run of successive intervals separated by at most max_gap minutes."""
    if not intervals:
        return 0
    ordered = sorted(intervals)
    longest = current = 1
    for (_, prev_end), (start, _) in zip(ordered, ordered[1:]):
        if start - prev_end <= max_gap:
            current += 1
            longest = max(longest, current)
        else:
            current = 1
    return longest


class OccupancyIndex:
    """
    Busy intervals keyed by (resource kind, resource id, date).

    Built for a single pass (draft, repair, compaction) and thrown away after it.
    Lessons are tracked by identity so a lesson can be released after its
    time or room has been changed in place.
    """

    def __init__(self) -> None:
        self._busy: Dict[Tuple[str, int, dt.date], List[Entry]] = defaultdict(list)
        # lesson token -> keys it was reserved under
        self._owned: Dict[int, List[Tuple[str, int, dt.date]]] = defaultdict(list)

    @classmethod
    def for_plan(cls, ctx: PlanningContext, plan: Iterable[LessonInstance] = ()) -> "OccupancyIndex":
        occ = cls()
        for day, bookings in ctx.bookings_by_date.items():
            for b in bookings:
                entry = Entry(b.start, b.end, b.room_id, None)
                if b.teacher_id is not None:
                    occ._busy[(TEACHER, b.teacher_id, day)].append(entry)
                if b.group_id is not None:
                    occ._busy[(GROUP, b.group_id, day)].append(entry)
                if b.room_id is not None:
                    occ._busy[(ROOM, b.room_id, day)].append(entry)
        for lesson in plan:
            occ.reserve(lesson)
        return occ

    def _keys(self, lesson: LessonInstance) -> List[Tuple[str, int, dt.date]]:
        keys = [(TEACHER, lesson.teacher_id, lesson.date), (GROUP, lesson.group_id, lesson.date)]
        if lesson.room_id is not None:
            keys.append((ROOM, lesson.room_id, lesson.date))
        return keys

    def reserve(self, lesson: LessonInstance) -> None:
        entry = Entry(lesson.start, lesson.end, lesson.room_id, id(lesson))
        for key in self._keys(lesson):
            self._busy[key].append(entry)
            self._owned[entry.token].append(key)

    def release(self, lesson: LessonInstance) -> None:
        token = id(lesson)
        for key in self._owned.pop(token, ()):
            entries = self._busy[key]
            entries[:] = [e for e in entries if e.token != token]

    def is_free(self, kind: str, resource_id: int, day: dt.date, start: int, end: int) -> bool:
        return not any(intervals_overlap(e.start, e.end, start, end) for e in self._busy.get((kind, resource_id, day), ()))

    def lessons_of(self, kind: str, resource_id: int, day: dt.date) -> List[Entry]:
        return [e for e in self._busy.get((kind, resource_id, day), ()) if e.token is not None]

    def count(self, kind: str, resource_id: int, day: dt.date) -> int:
        return len(self.lessons_of(kind, resource_id, day))

    def can_place(
        self,
        ctx: PlanningContext,
        lesson: LessonInstance,
        *,
        day: dt.date,
        start: int,
        end: int,
        room: Optional[Room],
        chain_gap: Optional[int] = None,
    ) -> bool:
        """Hard checks for putting `lesson` (already released) at day/start/end/room."""
        cfg = ctx.config
        if day in ctx.holidays or ctx.is_absent(lesson.teacher_id, day):
            return False
        if ctx.overlaps_lunch(start, end):
            return False
        if not self.is_free(TEACHER, lesson.teacher_id, day, start, end):
            return False
        if not self.is_free(GROUP, lesson.group_id, day, start, end):
            return False
        if room is not None:
            if lesson.group_size and room.capacity < lesson.group_size:
                return False
            if not self.is_free(ROOM, room.id, day, start, end):
                return False

        gap = ctx.min_break if chain_gap is None else chain_gap
        building = room.building if room is not None else None
        for kind, rid in ((TEACHER, lesson.teacher_id), (GROUP, lesson.group_id)):
            entries = self.lessons_of(kind, rid, day)
            if cfg.max_lessons_per_day and len(entries) + 1 > cfg.max_lessons_per_day:
                return False
            if cfg.max_consecutive:
                intervals = [(e.start, e.end) for e in entries] + [(start, end)]
                if longest_chain(intervals, gap) > cfg.max_consecutive:
                    return False
            if building is not None and not self._transition_ok(ctx, entries, start, end, building):
                return False
        return True

    def _transition_ok(self, ctx: PlanningContext, entries: List[Entry], start: int, end: int, building: str) -> bool:
        before = [e for e in entries if e.end <= start]
        after = [e for e in entries if e.start >= end]
        neighbours = []
        if before:
            prev = max(before, key=lambda e: e.end)
            neighbours.append((prev, start - prev.end))
        if after:
            nxt = min(after, key=lambda e: e.start)
            neighbours.append((nxt, nxt.start - end))
        for entry, gap in neighbours:
            other = ctx.building_of(entry.room_id)
            if other is not None and other != building and gap < ctx.min_break:
                return False
        return True

    def pick_room(
        self,
        ctx: PlanningContext,
        lesson: LessonInstance,
        *,
        day: dt.date,
        start: int,
        end: int,
        chain_gap: Optional[int] = None,
    ) -> Optional[Room]:
        """Best-scored free room that keeps the placement feasible, or None."""
        for room in ctx.ranked_rooms(lesson.subject, lesson.group_size):
            if self.can_place(ctx, lesson, day=day, start=start, end=end, room=room, chain_gap=chain_gap):
                return room
        return None

    def fit(
        self,
        ctx: PlanningContext,
        lesson: LessonInstance,
        *,
        day: dt.date,
        slot_index: int,
        keep_room: bool = True,
        chain_gap: Optional[int] = None,
        respect_restrictions: bool = True,
    ) -> Tuple[bool, Optional[Room]]:
        """
        Can `lesson` (already released) take grid slot `slot_index` on `day`?

        Returns (ok, room). The current room is kept when `keep_room` is set and
        it is still usable there; otherwise a room is picked by score. Lessons
        are placed without a room only when no room in the inventory fits.
        """
        slots = ctx.slots_for(day)
        slot = slots[slot_index]
        if respect_restrictions:
            restrictions = ctx.config.restrictions
            allowed_days = restrictions.allowed_days(lesson.subject)
            if allowed_days and day.isoweekday() not in allowed_days:
                return False, None
            if slot_index == 0 and restrictions.forbids_first(lesson.subject):
                return False, None
            if slot_index == len(slots) - 1 and restrictions.forbids_last(lesson.subject):
                return False, None

        place = dict(day=day, start=slot.start, end=slot.end, chain_gap=chain_gap)
        current = ctx.room_by_id.get(lesson.room_id) if lesson.room_id is not None else None
        if keep_room and current is not None and self.can_place(ctx, lesson, room=current, **place):
            return True, current
        if not ctx.fitting_rooms(lesson.group_size):
            return self.can_place(ctx, lesson, room=None, **place), None
        room = self.pick_room(ctx, lesson, **place)
        return room is not None, room


def move_lesson(lesson: LessonInstance, day: dt.date, start: int, end: int, room: Optional[Room]) -> None:
    lesson.date = day
    lesson.start = start
    lesson.end = end
    lesson.assign_room(room)
