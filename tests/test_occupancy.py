import datetime as dt

from schedule_engine.occupancy import GROUP, ROOM, TEACHER, OccupancyIndex


def test_release_frees_only_the_lessons_own_entries(build, monday):
    room = build.Room(id=5, capacity=30)
    a = build.lesson(1, 1, "09:00", "09:45", room=room)
    b = build.lesson(2, 2, "09:00", "09:45")
    c = build.lesson(1, 1, "09:00", "09:45", day=monday + dt.timedelta(days=1))
    occ = OccupancyIndex()
    for lesson in (a, b, c):
        occ.reserve(lesson)

    occ.release(a)
    assert occ.is_free(TEACHER, 1, monday, 540, 585)
    assert occ.is_free(GROUP, 1, monday, 540, 585)
    assert occ.is_free(ROOM, 5, monday, 540, 585)
    assert not occ.is_free(GROUP, 2, monday, 540, 585)
    assert not occ.is_free(TEACHER, 1, c.date, 540, 585)

    occ.release(a)
    assert occ.count(GROUP, 2, monday) == 1


def test_release_after_date_change_in_place(build, monday):
    lesson = build.lesson(1, 1, "09:00", "09:45")
    occ = OccupancyIndex()
    occ.reserve(lesson)
    lesson.date = monday + dt.timedelta(days=2)

    occ.release(lesson)
    assert occ.is_free(TEACHER, 1, monday, 540, 585)
    assert occ.is_free(GROUP, 1, monday, 540, 585)


def test_external_bookings_survive_release(build, monday):
    booking = build.Booking(date=monday, start=540, end=585, teacher_id=1)
    ctx = build.ctx(bookings=[booking])
    lesson = build.lesson(1, 1, "10:00", "10:45")
    occ = OccupancyIndex.for_plan(ctx, [lesson])

    occ.release(lesson)
    assert occ.is_free(TEACHER, 1, monday, 600, 645)
    assert not occ.is_free(TEACHER, 1, monday, 540, 585)
