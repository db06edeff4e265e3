from __future__ import annotations

import datetime as dt
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Mapping, Optional, Tuple

from .models import Absence, Booking, Room, Snapshot, TimeSlot
from .schema import SchedulingConfig
from .slots import grid_for_config


def size_fit(capacity: int, group_size: int) -> float:
    ratio = capacity / group_size if group_size else 2
    if 1 <= ratio <= 1.5:
        return 2
    if ratio <= 2:
        return 1
    return 0.3


@dataclass(frozen=True)
class PlanningContext:
    """Immutable per-run view of config, slot grid and the external snapshot."""

    config: SchedulingConfig
    grid: Mapping[dt.date, Tuple[TimeSlot, ...]]
    rooms: Tuple[Room, ...]
    room_by_id: Mapping[int, Room]
    bookings_by_date: Mapping[dt.date, Tuple[Booking, ...]]
    absences_by_teacher: Mapping[int, Tuple[Absence, ...]]
    holidays: FrozenSet[dt.date]

    @classmethod
    def build(cls, snapshot: Snapshot, config: SchedulingConfig) -> "PlanningContext":
        grid = grid_for_config(config)
        by_date: Dict[dt.date, List[Booking]] = defaultdict(list)
        for b in snapshot.bookings:
            by_date[b.date].append(b)
        by_teacher: Dict[int, List[Absence]] = defaultdict(list)
        for a in snapshot.absences:
            by_teacher[a.teacher_id].append(a)
        return cls(
            config=config,
            grid=grid,
            rooms=tuple(snapshot.rooms),
            room_by_id={r.id: r for r in snapshot.rooms},
            bookings_by_date={d: tuple(v) for d, v in by_date.items()},
            absences_by_teacher={t: tuple(v) for t, v in by_teacher.items()},
            holidays=frozenset(config.holidays),
        )

    @property
    def min_break(self) -> int:
        return self.config.min_break_minutes

    def slots_for(self, day: dt.date) -> Tuple[TimeSlot, ...]:
        return self.grid.get(day, ())

    def slot_index(self, day: dt.date, start: int) -> Optional[int]:
        for i, slot in enumerate(self.slots_for(day)):
            if slot.start == start:
                return i
        return None

    def is_absent(self, teacher_id: int, day: dt.date) -> bool:
        return any(a.covers(day) for a in self.absences_by_teacher.get(teacher_id, ()))

    def overlaps_lunch(self, start: int, end: int) -> bool:
        lunch = self.config.lunch_break
        if lunch is None:
            return False
        return not (end <= lunch.start_min or start >= lunch.end_min)

    def building_of(self, room_id: Optional[int]) -> Optional[str]:
        if room_id is None:
            return None
        room = self.room_by_id.get(room_id)
        return room.building if room else None

    def fitting_rooms(self, group_size: Optional[int]) -> List[Room]:
        return [r for r in self.rooms if not group_size or r.capacity >= group_size]

    def room_score(self, subject: str, group_size: Optional[int], room: Room) -> float:
        preferred = self.config.preferred_room_types(subject)
        if room.type in preferred:
            type_match = 2
        elif room.type in self.config.fallback_room_types:
            type_match = 1
        else:
            type_match = 0
        return type_match * 3 + size_fit(room.capacity, group_size or 0) * 2

    def ranked_rooms(self, subject: str, group_size: Optional[int]) -> List[Room]:
        # sorted() is stable, so equal scores keep inventory order.
        return sorted(self.fitting_rooms(group_size), key=lambda r: -self.room_score(subject, group_size, r))
