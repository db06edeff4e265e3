from __future__ import annotations

import datetime as dt
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .models import Absence, Booking, Demand, Room, Snapshot, parse_hhmm


class ConfigurationError(ValueError):
    """Invalid run input, raised before any search begins."""


def _clean_names(v: List[str]) -> List[str]:
    out: List[str] = []
    seen = set()
    for x in v or []:
        if not isinstance(x, str) or not x.strip():
            raise ValueError("items must be non-empty strings")
        x = x.strip()
        if x in seen:
            continue
        seen.add(x)
        out.append(x)
    return out


class TimeWindow(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def _hhmm(cls, v: str) -> str:
        v = (v or "").strip()
        parse_hhmm(v)
        return v

    @model_validator(mode="after")
    def _ordered(self) -> "TimeWindow":
        if parse_hhmm(self.end) <= parse_hhmm(self.start):
            raise ValueError(f"end {self.end} must be after start {self.start}")
        return self

    @property
    def start_min(self) -> int:
        return parse_hhmm(self.start)

    @property
    def end_min(self) -> int:
        return parse_hhmm(self.end)


class SubjectRestrictions(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    # subject -> allowed ISO weekdays (1 = Monday)
    preferred_days: Dict[str, List[int]] = Field(default_factory=dict)
    no_first_lesson: List[str] = Field(default_factory=list)
    no_last_lesson: List[str] = Field(default_factory=list)

    @field_validator("preferred_days")
    @classmethod
    def _weekdays(cls, v: Dict[str, List[int]]) -> Dict[str, List[int]]:
        out: Dict[str, List[int]] = {}
        for subject, days in (v or {}).items():
            if not isinstance(subject, str) or not subject.strip():
                raise ValueError("keys must be non-empty subject names")
            for d in days:
                if not isinstance(d, int) or d < 1 or d > 7:
                    raise ValueError(f"preferred_days['{subject}'] values must be ISO weekdays in [1,7]")
            out[subject.strip().lower()] = sorted(set(days))
        return out

    @field_validator("no_first_lesson", "no_last_lesson")
    @classmethod
    def _subjects(cls, v: List[str]) -> List[str]:
        return [s.lower() for s in _clean_names(v)]

    def allowed_days(self, subject: str) -> Optional[List[int]]:
        days = self.preferred_days.get(subject.lower())
        return days or None

    def forbids_first(self, subject: str) -> bool:
        return subject.lower() in self.no_first_lesson

    def forbids_last(self, subject: str) -> bool:
        return subject.lower() in self.no_last_lesson


class Weights(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    windows: float = 30
    fairness: float = 3
    preferences: float = 2
    heavy_late: float = 2
    transitions: float = 4
    harmony: float = 2
    time_consistency: float = 1

    @field_validator("*")
    @classmethod
    def _non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("weights must be non-negative")
        return v


class SchedulingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    start_date: dt.date
    end_date: dt.date
    working_hours: TimeWindow
    lesson_duration: int = 45
    break_duration: int = 10
    exclude_weekends: bool = False
    max_lessons_per_day: Optional[int] = 8
    max_consecutive: Optional[int] = None
    # Minimum break between consecutive lessons; also the chain gap for the validator.
    min_break_minutes: int = 10
    holidays: List[dt.date] = Field(default_factory=list)
    lunch_break: Optional[TimeWindow] = None
    restrictions: SubjectRestrictions = Field(default_factory=SubjectRestrictions)
    # subject -> category, category -> preferred room types
    subject_categories: Dict[str, str] = Field(default_factory=dict)
    room_type_preferences: Dict[str, List[str]] = Field(default_factory=dict)
    fallback_room_types: List[str] = Field(default_factory=lambda: ["AUDITORIUM"])
    heavy_subject_keywords: List[str] = Field(default_factory=lambda: ["math", "phys", "chem", "lang"])
    weights: Weights = Field(default_factory=Weights)
    max_iterations: int = 300
    time_budget_s: float = 1.0
    random_seed: Optional[int] = None
    force_biweekly_study_plan_ids: List[int] = Field(default_factory=list)

    @field_validator("lesson_duration")
    @classmethod
    def _positive(cls, v: int) -> int:
        if not isinstance(v, int) or v <= 0:
            raise ValueError("must be a positive integer")
        return v

    @field_validator("break_duration", "min_break_minutes", "max_iterations")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if not isinstance(v, int) or v < 0:
            raise ValueError("must be a non-negative integer")
        return v

    @field_validator("max_lessons_per_day", "max_consecutive")
    @classmethod
    def _positive_if_present(cls, v: Optional[int]) -> Optional[int]:
        if v is None:
            return None
        if not isinstance(v, int) or v <= 0:
            raise ValueError("must be a positive integer if provided")
        return v

    @field_validator("time_budget_s")
    @classmethod
    def _budget(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must be non-negative")
        return float(v)

    @field_validator("subject_categories")
    @classmethod
    def _categories(cls, v: Dict[str, str]) -> Dict[str, str]:
        out: Dict[str, str] = {}
        for subject, category in (v or {}).items():
            if not subject.strip() or not category.strip():
                raise ValueError("subject and category names must be non-empty")
            out[subject.strip().lower()] = category.strip()
        return out

    @field_validator("room_type_preferences")
    @classmethod
    def _room_types(cls, v: Dict[str, List[str]]) -> Dict[str, List[str]]:
        return {k.strip(): _clean_names(types) for k, types in (v or {}).items()}

    @field_validator("fallback_room_types")
    @classmethod
    def _fallback(cls, v: List[str]) -> List[str]:
        return _clean_names(v)

    @field_validator("heavy_subject_keywords")
    @classmethod
    def _keywords(cls, v: List[str]) -> List[str]:
        return [k.lower() for k in _clean_names(v)]

    @model_validator(mode="after")
    def _range(self) -> "SchedulingConfig":
        if self.end_date < self.start_date:
            raise ValueError(f"end_date {self.end_date} is before start_date {self.start_date}")
        if self.lunch_break is not None and self.lunch_break.end_min <= self.working_hours.start_min:
            raise ValueError("lunch_break ends before working_hours start")
        return self

    def preferred_room_types(self, subject: str) -> List[str]:
        category = self.subject_categories.get(subject.lower())
        if category is None:
            return []
        return self.room_type_preferences.get(category, [])

    def is_heavy(self, subject: str) -> bool:
        s = subject.lower()
        return any(k in s for k in self.heavy_subject_keywords)


class RoomModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int
    capacity: int
    type: str = "AUDITORIUM"
    building: Optional[str] = None

    @field_validator("capacity")
    @classmethod
    def _capacity(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must be a non-negative integer")
        return v

    @field_validator("building")
    @classmethod
    def _building_clean(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v and v.strip() else None


class BookingModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    date: dt.date
    start_time: str
    end_time: str
    teacher_id: Optional[int] = None
    group_id: Optional[int] = None
    room_id: Optional[int] = None

    @model_validator(mode="after")
    def _interval(self) -> "BookingModel":
        if parse_hhmm(self.end_time) <= parse_hhmm(self.start_time):
            raise ValueError(f"booking on {self.date}: end_time must be after start_time")
        return self


class AbsenceModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    teacher_id: int
    start_date: dt.date
    end_date: dt.date

    @model_validator(mode="after")
    def _range(self) -> "AbsenceModel":
        if self.end_date < self.start_date:
            raise ValueError(f"absence of teacher {self.teacher_id}: end_date is before start_date")
        return self


class DemandModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    study_plan_id: int
    teacher_id: int
    group_id: int
    subject: str
    weekly_lessons: int
    group_size: int = 0

    @field_validator("subject")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("must be a non-empty string")
        return v

    @field_validator("weekly_lessons")
    @classmethod
    def _weekly_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    @field_validator("group_size")
    @classmethod
    def _size_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must be a non-negative integer")
        return v


class ScheduleInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    config: SchedulingConfig
    rooms: List[RoomModel] = Field(default_factory=list)
    bookings: List[BookingModel] = Field(default_factory=list)
    absences: List[AbsenceModel] = Field(default_factory=list)
    demand: List[DemandModel]

    @model_validator(mode="after")
    def _unique_keys(self) -> "ScheduleInput":
        ids = [r.id for r in self.rooms]
        if len(set(ids)) != len(ids):
            raise ValueError("room ids must be unique")
        pairs = [(d.study_plan_id, d.group_id) for d in self.demand]
        if len(set(pairs)) != len(pairs):
            raise ValueError("(study_plan_id, group_id) pairs must be unique within demand")
        return self

    def validate_references(self) -> None:
        """
        Cross-field validation between demand and config.
        Raises ConfigurationError.
        """
        plan_ids = {d.study_plan_id for d in self.demand}
        for sp in self.config.force_biweekly_study_plan_ids:
            if sp not in plan_ids:
                raise ConfigurationError(f"force_biweekly_study_plan_ids: study plan {sp} is not in demand")
        subjects = {d.subject.lower() for d in self.demand}
        for subject in self.config.restrictions.preferred_days:
            if subject not in subjects:
                raise ConfigurationError(f"restrictions.preferred_days: subject '{subject}' is not in demand")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScheduleInput":
        try:
            obj = cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(str(e)) from e
        obj.validate_references()
        return obj

    @classmethod
    def load_file(cls, path: Union[str, Path]) -> "ScheduleInput":
        p = Path(path)
        data = json.loads(p.read_text(encoding="utf-8"))
        return cls.from_dict(data)

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)

    def save_file(self, path: Union[str, Path]) -> None:
        p = Path(path)
        p.write_text(json.dumps(self.to_json_dict(), indent=2, ensure_ascii=False) + "\n", encoding="utf-8")

    def to_snapshot(self) -> Snapshot:
        return Snapshot(
            rooms=tuple(Room(id=r.id, capacity=r.capacity, type=r.type, building=r.building) for r in self.rooms),
            bookings=tuple(
                Booking(
                    date=b.date,
                    start=parse_hhmm(b.start_time),
                    end=parse_hhmm(b.end_time),
                    teacher_id=b.teacher_id,
                    group_id=b.group_id,
                    room_id=b.room_id,
                )
                for b in self.bookings
            ),
            absences=tuple(Absence(teacher_id=a.teacher_id, start_date=a.start_date, end_date=a.end_date) for a in self.absences),
        )

    def to_demand(self) -> List[Demand]:
        return [
            Demand(
                study_plan_id=d.study_plan_id,
                teacher_id=d.teacher_id,
                group_id=d.group_id,
                subject=d.subject,
                weekly_lessons=d.weekly_lessons,
                group_size=d.group_size,
            )
            for d in self.demand
        ]


def load_config(data: Dict[str, Any]) -> SchedulingConfig:
    try:
        return SchedulingConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(str(e)) from e
