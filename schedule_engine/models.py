from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


def parse_hhmm(value: str) -> int:
    """'HH:MM' -> minute of day."""
    parts = (value or "").strip().split(":")
    if len(parts) != 2 or not parts[0].isdigit() or not parts[1].isdigit():
        raise ValueError(f"invalid time '{value}', expected HH:MM")
    hours, minutes = int(parts[0]), int(parts[1])
    if hours > 24 or minutes > 59 or (hours == 24 and minutes):
        raise ValueError(f"invalid time '{value}', expected HH:MM")
    return hours * 60 + minutes


def format_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def intervals_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    return not (a_end <= b_start or a_start >= b_end)


@dataclass(frozen=True)
class TimeSlot:
    start: int
    end: int

    @property
    def label(self) -> str:
        return f"{format_hhmm(self.start)}-{format_hhmm(self.end)}"


@dataclass(frozen=True)
class Room:
    id: int
    capacity: int
    type: str = "AUDITORIUM"
    building: Optional[str] = None


@dataclass(frozen=True)
class Booking:
    date: dt.date
    start: int
    end: int
    teacher_id: Optional[int] = None
    group_id: Optional[int] = None
    room_id: Optional[int] = None


@dataclass(frozen=True)
class Absence:
    teacher_id: int
    start_date: dt.date
    end_date: dt.date

    def covers(self, day: dt.date) -> bool:
        return self.start_date <= day <= self.end_date


@dataclass(frozen=True)
class Demand:
    study_plan_id: int
    teacher_id: int
    group_id: int
    subject: str
    weekly_lessons: int
    group_size: int = 0


@dataclass(frozen=True)
class Snapshot:
    """Read-only external context captured once at run start."""

    rooms: Tuple[Room, ...] = ()
    bookings: Tuple[Booking, ...] = ()
    absences: Tuple[Absence, ...] = ()


@dataclass
class LessonInstance:
    group_id: int
    teacher_id: int
    study_plan_id: Optional[int]
    subject: str
    date: dt.date
    start: int
    end: int
    room_id: Optional[int] = None
    room_type: Optional[str] = None
    room_capacity: Optional[int] = None
    group_size: Optional[int] = None

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise ValueError(
                f"lesson '{self.subject}' group {self.group_id} on {self.date}: "
                f"start {format_hhmm(self.start)} must be before end {format_hhmm(self.end)}"
            )

    @property
    def start_time(self) -> str:
        return format_hhmm(self.start)

    @property
    def end_time(self) -> str:
        return format_hhmm(self.end)

    def clone(self) -> "LessonInstance":
        return replace(self)

    def assign_room(self, room: Optional[Room]) -> None:
        if room is None:
            self.room_id = None
            self.room_type = None
            self.room_capacity = None
        else:
            self.room_id = room.id
            self.room_type = room.type
            self.room_capacity = room.capacity

    def to_json_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "group_id": self.group_id,
            "teacher_id": self.teacher_id,
            "study_plan_id": self.study_plan_id,
            "subject": self.subject,
            "date": self.date.isoformat(),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "room_id": self.room_id,
            "room_type": self.room_type,
            "room_capacity": self.room_capacity,
            "group_size": self.group_size,
        }
        return {k: v for k, v in out.items() if v is not None}


def clone_plan(plan: List[LessonInstance]) -> List[LessonInstance]:
    return [lesson.clone() for lesson in plan]


class ViolationKind(str, Enum):
    TEACHER_OVERLAP = "TEACHER_OVERLAP"
    GROUP_OVERLAP = "GROUP_OVERLAP"
    ROOM_OVERLAP = "ROOM_OVERLAP"
    TEACHER_BUSY = "TEACHER_BUSY"
    GROUP_BUSY = "GROUP_BUSY"
    ROOM_BUSY = "ROOM_BUSY"
    ROOM_CAPACITY = "ROOM_CAPACITY"
    TEACHER_ABSENT = "TEACHER_ABSENT"
    HOLIDAY = "HOLIDAY"
    LUNCH_BREAK = "LUNCH_BREAK"
    TEACHER_MAX_PER_DAY = "TEACHER_MAX_PER_DAY"
    GROUP_MAX_PER_DAY = "GROUP_MAX_PER_DAY"
    TEACHER_MAX_CONSECUTIVE = "TEACHER_MAX_CONSECUTIVE"
    GROUP_MAX_CONSECUTIVE = "GROUP_MAX_CONSECUTIVE"
    TEACHER_TRANSITION = "TEACHER_TRANSITION"
    GROUP_TRANSITION = "GROUP_TRANSITION"


@dataclass(frozen=True)
class Violation:
    kind: ViolationKind
    date: dt.date
    lessons: Tuple[int, ...] = ()
    start: Optional[int] = None
    end: Optional[int] = None
    teacher_id: Optional[int] = None
    group_id: Optional[int] = None
    room_id: Optional[int] = None
    count: Optional[int] = None

    def describe(self) -> str:
        parts = [self.kind.value, self.date.isoformat()]
        if self.start is not None and self.end is not None:
            parts.append(f"{format_hhmm(self.start)}-{format_hhmm(self.end)}")
        for name in ("teacher_id", "group_id", "room_id", "count"):
            value = getattr(self, name)
            if value is not None:
                parts.append(f"{name}={value}")
        return " ".join(parts)

    def to_json_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "kind": self.kind.value,
            "date": self.date.isoformat(),
            "lessons": list(self.lessons),
            "start_time": format_hhmm(self.start) if self.start is not None else None,
            "end_time": format_hhmm(self.end) if self.end is not None else None,
            "teacher_id": self.teacher_id,
            "group_id": self.group_id,
            "room_id": self.room_id,
            "count": self.count,
        }
        return {k: v for k, v in out.items() if v is not None}


@dataclass(frozen=True)
class RecurringTemplate:
    group_id: int
    teacher_id: int
    study_plan_id: Optional[int]
    subject: str
    start_time: str
    end_time: str
    day_of_week: int  # ISO, 1 = Monday
    start_date: dt.date
    end_date: dt.date
    repeat: str  # "weekly" | "biweekly"
    excluded_dates: Tuple[dt.date, ...] = ()
    room_id: Optional[int] = None
    room_type: Optional[str] = None
    room_capacity: Optional[int] = None

    @property
    def step_days(self) -> int:
        return 14 if self.repeat == "biweekly" else 7

    def to_json_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "group_id": self.group_id,
            "teacher_id": self.teacher_id,
            "study_plan_id": self.study_plan_id,
            "subject": self.subject,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "day_of_week": self.day_of_week,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "repeat": self.repeat,
            "excluded_dates": [d.isoformat() for d in self.excluded_dates],
            "room_id": self.room_id,
            "room_type": self.room_type,
            "room_capacity": self.room_capacity,
        }
        return {k: v for k, v in out.items() if v is not None}


@dataclass(frozen=True)
class SingleOccurrence:
    group_id: int
    teacher_id: int
    study_plan_id: Optional[int]
    subject: str
    start_time: str
    end_time: str
    date: dt.date
    repeat: str = "once"
    room_id: Optional[int] = None
    room_type: Optional[str] = None
    room_capacity: Optional[int] = None

    def to_json_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "group_id": self.group_id,
            "teacher_id": self.teacher_id,
            "study_plan_id": self.study_plan_id,
            "subject": self.subject,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "date": self.date.isoformat(),
            "repeat": self.repeat,
            "room_id": self.room_id,
            "room_type": self.room_type,
            "room_capacity": self.room_capacity,
        }
        return {k: v for k, v in out.items() if v is not None}


@dataclass(frozen=True)
class UnderfillRecord:
    group_id: int
    expected: int
    placed: int

    @property
    def missing(self) -> int:
        return max(0, self.expected - self.placed)


@dataclass
class ScoreBreakdown:
    windows: float = 0.0
    fairness: float = 0.0
    preferences: float = 0.0
    heavy_late: float = 0.0
    transitions: float = 0.0
    harmony: float = 0.0
    time_consistency: float = 0.0

    @property
    def total(self) -> float:
        return (
            self.windows
            + self.fairness
            + self.preferences
            + self.heavy_late
            + self.transitions
            + self.harmony
            + self.time_consistency
        )

    def as_dict(self) -> Dict[str, float]:
        return {
            "windows": self.windows,
            "fairness": self.fairness,
            "preferences": self.preferences,
            "heavy_late": self.heavy_late,
            "transitions": self.transitions,
            "harmony": self.harmony,
            "time_consistency": self.time_consistency,
        }


@dataclass
class Diagnostics:
    iterations: int = 0
    accepted_moves: int = 0
    stop_reason: str = "iterations"
    breakdown: ScoreBreakdown = field(default_factory=ScoreBreakdown)
    confidence: float = 0.0
    violations: List[Violation] = field(default_factory=list)
    underfill: List[UnderfillRecord] = field(default_factory=list)
    repaired: bool = False
    compaction_applied: bool = False
    window_minimization_applied: bool = False
    biweekly_pruned: int = 0
    elapsed_s: float = 0.0

    @property
    def feasible(self) -> bool:
        return not self.violations

    def to_json_dict(self) -> Dict[str, Any]:
        return {
            "iterations": self.iterations,
            "accepted_moves": self.accepted_moves,
            "stop_reason": self.stop_reason,
            "score": self.breakdown.total,
            "score_breakdown": self.breakdown.as_dict(),
            "confidence": self.confidence,
            "violations": [v.to_json_dict() for v in self.violations],
            "underfill": [
                {"group_id": u.group_id, "expected": u.expected, "placed": u.placed} for u in self.underfill
            ],
            "repaired": self.repaired,
            "compaction_applied": self.compaction_applied,
            "window_minimization_applied": self.window_minimization_applied,
            "biweekly_pruned": self.biweekly_pruned,
            "elapsed_s": round(self.elapsed_s, 3),
        }


@dataclass
class ScheduleResult:
    lessons: List[LessonInstance]
    templates: List[RecurringTemplate]
    singles: List[SingleOccurrence]
    diagnostics: Diagnostics

    def to_json_dict(self) -> Dict[str, Any]:
        return {
            "lessons": [lesson.to_json_dict() for lesson in self.lessons],
            "recurring_templates": [t.to_json_dict() for t in self.templates],
            "single_occurrences": [s.to_json_dict() for s in self.singles],
            "diagnostics": self.diagnostics.to_json_dict(),
        }
