from schedule_engine.models import ViolationKind
from schedule_engine.validator import is_feasible, validate_plan


def _kinds(violations):
    return {v.kind for v in violations}


def test_clean_plan_has_no_violations(build):
    ctx = build.ctx()
    plan = [build.lesson(1, 1, "09:00", "09:45"), build.lesson(1, 1, "09:55", "10:40")]
    assert validate_plan(plan, ctx) == []
    assert is_feasible(plan, ctx)


def test_teacher_overlap_names_both_lessons(build):
    ctx = build.ctx()
    plan = [build.lesson(1, 7, "09:00", "09:45"), build.lesson(2, 7, "09:00", "09:45")]
    violations = validate_plan(plan, ctx)
    assert [v.kind for v in violations] == [ViolationKind.TEACHER_OVERLAP]
    assert violations[0].lessons == (0, 1)
    assert violations[0].teacher_id == 7


def test_group_and_room_overlap(build):
    room = build.Room(id=5, capacity=30)
    ctx = build.ctx(rooms=[room])
    plan = [build.lesson(1, 1, "09:00", "09:45", room=room), build.lesson(1, 2, "09:30", "10:15", room=room)]
    assert _kinds(validate_plan(plan, ctx)) == {ViolationKind.GROUP_OVERLAP, ViolationKind.ROOM_OVERLAP}


def test_external_bookings(build, monday):
    room = build.Room(id=5, capacity=30)
    bookings = [
        build.Booking(date=monday, start=9 * 60, end=10 * 60, teacher_id=1),
        build.Booking(date=monday, start=11 * 60, end=12 * 60, room_id=5),
    ]
    ctx = build.ctx(rooms=[room], bookings=bookings)
    plan = [build.lesson(1, 1, "09:00", "09:45"), build.lesson(2, 2, "10:50", "11:35", room=room)]
    assert _kinds(validate_plan(plan, ctx)) == {ViolationKind.TEACHER_BUSY, ViolationKind.ROOM_BUSY}


def test_capacity_absence_holiday_lunch(build, monday):
    small = build.Room(id=5, capacity=10)
    ctx = build.ctx(
        rooms=[small],
        absences=[build.Absence(teacher_id=3, start_date=monday, end_date=monday)],
        lunch_break={"start": "12:00", "end": "13:00"},
        holidays=[monday],
    )
    plan = [
        build.lesson(1, 1, "09:00", "09:45", room=small, group_size=20),
        build.lesson(2, 3, "09:55", "10:40"),
        build.lesson(3, 4, "11:45", "12:30"),
    ]
    violations = validate_plan(plan, ctx)
    assert _kinds(violations) == {
        ViolationKind.ROOM_CAPACITY,
        ViolationKind.TEACHER_ABSENT,
        ViolationKind.HOLIDAY,
        ViolationKind.LUNCH_BREAK,
    }
    lunch = [v for v in violations if v.kind == ViolationKind.LUNCH_BREAK]
    assert lunch[0].lessons == (2,)


def test_daily_cap_and_consecutive_chain(build):
    ctx = build.ctx(max_lessons_per_day=2, max_consecutive=2)
    plan = [
        build.lesson(1, 1, "09:00", "09:45"),
        build.lesson(1, 2, "09:55", "10:40"),
        build.lesson(1, 3, "10:50", "11:35"),
    ]
    kinds = _kinds(validate_plan(plan, ctx))
    assert ViolationKind.GROUP_MAX_PER_DAY in kinds
    assert ViolationKind.GROUP_MAX_CONSECUTIVE in kinds
    assert ViolationKind.TEACHER_MAX_PER_DAY not in kinds


def test_chain_breaks_on_long_gap(build):
    ctx = build.ctx(max_consecutive=2)
    plan = [
        build.lesson(1, 1, "09:00", "09:45"),
        build.lesson(1, 1, "09:55", "10:40"),
        build.lesson(1, 1, "11:45", "12:30"),
    ]
    assert validate_plan(plan, ctx) == []


def test_transition_buffer_between_buildings(build):
    a = build.Room(id=1, capacity=30, building="Main")
    b = build.Room(id=2, capacity=30, building="Annex")
    ctx = build.ctx(rooms=[a, b], min_break_minutes=15)
    plan = [build.lesson(1, 1, "09:00", "09:45", room=a), build.lesson(2, 1, "09:55", "10:40", room=b)]
    violations = validate_plan(plan, ctx)
    assert [v.kind for v in violations] == [ViolationKind.TEACHER_TRANSITION]

    same_building = [build.lesson(1, 1, "09:00", "09:45", room=a), build.lesson(2, 1, "09:55", "10:40", room=a)]
    assert validate_plan(same_building, ctx) == []


def test_validate_does_not_touch_plan(build):
    ctx = build.ctx()
    plan = [build.lesson(1, 7, "09:00", "09:45"), build.lesson(2, 7, "09:00", "09:45")]
    before = [l.to_json_dict() for l in plan]
    validate_plan(plan, ctx)
    assert [l.to_json_dict() for l in plan] == before
