import datetime as dt
import itertools
import math

from schedule_engine.scoring import score_plan
from schedule_engine.search import MoveGenerator, RandomMoveGenerator, optimize_plan
from schedule_engine.validator import validate_plan


class ScriptedMoves(MoveGenerator):
    """Replays fixed (lesson index, slot index) relocations."""

    def __init__(self, script):
        self.script = list(script)

    def apply(self, plan, ctx):
        if not self.script:
            return False
        i, slot_index = self.script.pop(0)
        slot = ctx.slots_for(plan[i].date)[slot_index]
        plan[i].start, plan[i].end = slot.start, slot.end
        return True


class SwapDates(MoveGenerator):
    """Exchanges the dates of the first two lessons."""

    def apply(self, plan, ctx):
        plan[0].date, plan[1].date = plan[1].date, plan[0].date
        return True


def _gapless_ctx(build):
    # 45-minute slots with no recess: 09:00, 09:45, 10:30, 11:15, 12:00
    return build.ctx(break_duration=0, min_break_minutes=0)


def _windowed_plan(build):
    return [
        build.lesson(1, 1, "09:00", "09:45", subject="A"),
        build.lesson(1, 2, "10:30", "11:15", subject="B"),
        build.lesson(2, 3, "09:00", "09:45", subject="C"),
    ]


def test_improving_move_is_accepted(build):
    ctx = _gapless_ctx(build)
    plan = _windowed_plan(build)
    result = optimize_plan(plan, ctx, move_generator=ScriptedMoves([(1, 1)]), max_iterations=3, time_budget_s=10)
    assert result.accepted == 1
    assert result.breakdown.windows == 0
    assert result.best_plan[1].start_time == "09:45"
    assert result.history == [0, 0, 0]
    assert result.feasible
    assert plan[1].start_time == "10:30"


def test_infeasible_move_is_rejected(build):
    ctx = _gapless_ctx(build)
    plan = _windowed_plan(build)
    # lesson 1 onto lesson 0's slot: group overlap
    result = optimize_plan(plan, ctx, move_generator=ScriptedMoves([(1, 0)]), max_iterations=1, time_budget_s=10)
    assert result.accepted == 0
    assert result.best_plan[1].start_time == "10:30"
    assert validate_plan(result.best_plan, ctx) == []


def test_history_is_non_increasing(build, monday):
    rooms = [build.Room(id=1, capacity=30, building="Main"), build.Room(id=2, capacity=30, building="Annex")]
    ctx = build.ctx(rooms=rooms, end_date=monday.replace(day=monday.day + 4))
    plan = [
        build.lesson(1, 1, "09:00", "09:45", subject="A", room=rooms[0]),
        build.lesson(1, 2, "11:45", "12:30", subject="B", room=rooms[1]),
        build.lesson(2, 1, "10:50", "11:35", subject="C", room=rooms[1]),
        build.lesson(2, 3, "09:00", "09:45", subject="D", room=rooms[1]),
    ]
    result = optimize_plan(plan, ctx, move_generator=RandomMoveGenerator(3), max_iterations=200, time_budget_s=30)
    assert len(result.history) == result.iterations == 200
    assert all(b <= a for a, b in zip(result.history, result.history[1:]))
    assert validate_plan(result.best_plan, ctx) == []


def test_seed_makes_search_reproducible(build, monday):
    rooms = [build.Room(id=1, capacity=30), build.Room(id=2, capacity=25)]
    ctx = build.ctx(rooms=rooms, end_date=monday.replace(day=monday.day + 4))
    plan = [
        build.lesson(1, 1, "09:00", "09:45", subject="A", room=rooms[0]),
        build.lesson(1, 2, "11:45", "12:30", subject="B", room=rooms[1]),
        build.lesson(2, 2, "09:55", "10:40", subject="C", room=rooms[0]),
    ]
    runs = [
        optimize_plan(plan, ctx, move_generator=RandomMoveGenerator(11), max_iterations=100, time_budget_s=30)
        for _ in range(2)
    ]
    assert runs[0].history == runs[1].history
    assert [l.to_json_dict() for l in runs[0].best_plan] == [l.to_json_dict() for l in runs[1].best_plan]


def test_stop_reasons(build):
    ctx = _gapless_ctx(build)
    plan = _windowed_plan(build)

    result = optimize_plan(plan, ctx, max_iterations=0)
    assert result.stop_reason == "iterations"
    assert result.iterations == 0

    ticks = itertools.count(0, 0.6)
    result = optimize_plan(plan, ctx, max_iterations=100, time_budget_s=1.0, clock=lambda: next(ticks))
    assert result.stop_reason == "deadline"
    assert result.iterations == 1

    result = optimize_plan(plan, ctx, max_iterations=100, should_stop=lambda: True)
    assert result.stop_reason == "cancelled"
    assert result.iterations == 0
    assert [l.to_json_dict() for l in result.best_plan] == [l.to_json_dict() for l in plan]


def test_clean_candidate_replaces_violating_seed_without_lowering_cost(build, monday):
    tuesday = monday + dt.timedelta(days=1)
    absence = build.Absence(teacher_id=1, start_date=monday, end_date=monday)
    ctx = build.ctx(absences=[absence], end_date=tuesday)
    plan = [
        build.lesson(1, 1, "09:00", "09:45", subject="A"),
        build.lesson(2, 2, "09:00", "09:45", subject="B", day=tuesday),
    ]
    assert validate_plan(plan, ctx) != []
    seed_total = score_plan(plan, ctx).total

    result = optimize_plan(plan, ctx, move_generator=SwapDates(), max_iterations=1, time_budget_s=10)
    assert result.accepted == 1
    assert result.feasible
    assert validate_plan(result.best_plan, ctx) == []
    assert result.best_plan[0].date == tuesday
    assert result.breakdown.total >= seed_total
    assert result.history == [result.breakdown.total]


def test_history_is_infinite_until_a_feasible_plan_is_found(build, monday):
    absence = build.Absence(teacher_id=1, start_date=monday, end_date=monday)
    ctx = build.ctx(absences=[absence])
    plan = [build.lesson(1, 1, "09:00", "09:45")]
    result = optimize_plan(plan, ctx, move_generator=ScriptedMoves([(0, 1)]), max_iterations=2, time_budget_s=10)
    assert result.accepted == 0
    assert not result.feasible
    assert result.history == [math.inf, math.inf]
