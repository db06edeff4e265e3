import datetime as dt

import pytest

from schedule_engine.context import PlanningContext
from schedule_engine.models import Absence, Booking, LessonInstance, Room, Snapshot, parse_hhmm
from schedule_engine.schema import SchedulingConfig

MONDAY = dt.date(2026, 9, 7)


def make_config(**overrides) -> SchedulingConfig:
    data = {
        "start_date": MONDAY,
        "end_date": MONDAY,
        "working_hours": {"start": "09:00", "end": "13:00"},
        "max_iterations": 50,
        "time_budget_s": 5.0,
        "random_seed": 1,
    }
    data.update(overrides)
    return SchedulingConfig.model_validate(data)


def make_ctx(rooms=(), bookings=(), absences=(), **overrides) -> PlanningContext:
    snapshot = Snapshot(rooms=tuple(rooms), bookings=tuple(bookings), absences=tuple(absences))
    return PlanningContext.build(snapshot, make_config(**overrides))


def lesson(
    group_id=1,
    teacher_id=1,
    start="09:00",
    end="09:45",
    *,
    day=MONDAY,
    subject="History",
    room=None,
    group_size=20,
    study_plan_id=1,
) -> LessonInstance:
    out = LessonInstance(
        group_id=group_id,
        teacher_id=teacher_id,
        study_plan_id=study_plan_id,
        subject=subject,
        date=day,
        start=parse_hhmm(start),
        end=parse_hhmm(end),
        group_size=group_size,
    )
    if room is not None:
        out.assign_room(room)
    return out


@pytest.fixture
def monday():
    return MONDAY


@pytest.fixture
def build():
    """Factories shared by the engine tests: config, context and lesson builders."""

    class _Build:
        config = staticmethod(make_config)
        ctx = staticmethod(make_ctx)
        lesson = staticmethod(lesson)
        Room = Room
        Booking = Booking
        Absence = Absence

    return _Build
