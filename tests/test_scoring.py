import datetime as dt

import pytest

from schedule_engine.models import ScoreBreakdown
from schedule_engine.scoring import confidence, gap_cost, raw_terms, score_plan, window_cost


def test_gap_cost_bands():
    assert gap_cost(0) == 0
    assert gap_cost(9) == 0
    assert gap_cost(10) == 1
    assert gap_cost(60) == 1
    assert gap_cost(61) == 2
    assert window_cost([(540, 585), (660, 705), (595, 640)]) == 2


def test_regular_recess_counts_as_window(build):
    ctx = build.ctx()
    plan = [build.lesson(1, 1, "09:00", "09:45"), build.lesson(1, 2, "09:55", "10:40", subject="Art")]
    assert raw_terms(plan, ctx).windows == 1
    assert score_plan(plan, ctx).windows == 30


def test_window_term_is_weighted(build):
    ctx = build.ctx()
    plan = [build.lesson(1, 1, "09:00", "09:45"), build.lesson(1, 2, "11:00", "11:45", subject="Art")]
    breakdown = score_plan(plan, ctx)
    assert breakdown.windows == 2 * 30
    assert breakdown.total == breakdown.windows


def test_compact_day_scores_zero(build):
    ctx = build.ctx(break_duration=0, min_break_minutes=0)
    plan = [build.lesson(1, 1, "09:00", "09:45"), build.lesson(1, 1, "09:45", "10:30", subject="Art")]
    assert score_plan(plan, ctx).total == 0


def test_heavy_late_and_fairness(build, monday):
    ctx = build.ctx(working_hours={"start": "09:00", "end": "18:00"})
    tuesday = monday + dt.timedelta(days=1)
    plan = [
        build.lesson(1, 1, "16:00", "16:45", subject="Mathematics"),
        build.lesson(2, 1, "09:00", "09:45"),
        build.lesson(3, 1, "09:55", "10:40"),
        build.lesson(4, 1, "09:00", "09:45", day=tuesday),
    ]
    raw = raw_terms(plan, ctx)
    assert raw.heavy_late == 1
    assert raw.fairness == pytest.approx(1 / 2.01)


def test_transitions_and_harmony(build):
    a = build.Room(id=1, capacity=30, building="Main")
    b = build.Room(id=2, capacity=30, building="Annex")
    ctx = build.ctx(rooms=[a, b])
    teacher_moves = [build.lesson(1, 1, "09:00", "09:45", room=a), build.lesson(2, 1, "09:55", "10:40", room=b)]
    raw = raw_terms(teacher_moves, ctx)
    assert raw.transitions == 1
    assert raw.harmony == 0

    group_moves = [build.lesson(1, 1, "09:00", "09:45", room=a), build.lesson(1, 2, "09:55", "10:40", room=b)]
    raw = raw_terms(group_moves, ctx)
    assert raw.transitions == 0
    assert raw.harmony == 1


def test_restricted_first_lesson_costs_preferences(build):
    ctx = build.ctx(restrictions={"no_first_lesson": ["Mathematics"]})
    plan = [build.lesson(1, 1, "09:00", "09:45", subject="Mathematics"), build.lesson(1, 2, "09:55", "10:40")]
    assert score_plan(plan, ctx).preferences == 5 * 2


def test_lesson_on_both_restricted_edges_costs_twice(build):
    ctx = build.ctx(restrictions={"no_first_lesson": ["Mathematics"], "no_last_lesson": ["Mathematics"]})
    plan = [build.lesson(1, 1, "09:00", "09:45", subject="Mathematics")]
    assert raw_terms(plan, ctx).preferences == 10
    assert score_plan(plan, ctx).preferences == 10 * 2


def test_time_consistency_across_weeks(build, monday):
    ctx = build.ctx(end_date=monday + dt.timedelta(days=7))
    plan = [
        build.lesson(1, 1, "09:00", "09:45"),
        build.lesson(1, 1, "10:00", "10:45", day=monday + dt.timedelta(days=7)),
    ]
    assert raw_terms(plan, ctx).time_consistency == pytest.approx(900 / 60)


def test_confidence():
    assert confidence(0, ScoreBreakdown()) == 1.0
    assert confidence(20, ScoreBreakdown(windows=20)) == pytest.approx(0.5)
    assert 0 <= confidence(1e9, ScoreBreakdown(windows=1e9)) <= 1
