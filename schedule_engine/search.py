from __future__ import annotations

import logging
import math
import random
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from .context import PlanningContext
from .models import LessonInstance, ScoreBreakdown, clone_plan
from .scoring import score_plan
from .validator import validate_plan

logger = logging.getLogger(__name__)

STOP_ITERATIONS = "iterations"
STOP_DEADLINE = "deadline"
STOP_CANCELLED = "cancelled"


class MoveGenerator:
    """Mutates one candidate plan in place. Returns False when no move applies."""

    def apply(self, plan: List[LessonInstance], ctx: PlanningContext) -> bool:
        raise NotImplementedError


class RandomMoveGenerator(MoveGenerator):
    """Uniform choice between relocate, change room and swap."""

    def __init__(self, seed: Optional[int] = None) -> None:
        self.rng = random.Random(seed)

    def apply(self, plan: List[LessonInstance], ctx: PlanningContext) -> bool:
        if not plan:
            return False
        move = self.rng.choice((self.relocate, self.change_room, self.swap))
        return move(plan, ctx)

    def relocate(self, plan: List[LessonInstance], ctx: PlanningContext) -> bool:
        lesson = self.rng.choice(plan)
        options = [s for s in ctx.slots_for(lesson.date) if s.start != lesson.start]
        if not options:
            return False
        slot = self.rng.choice(options)
        lesson.start, lesson.end = slot.start, slot.end
        return True

    def change_room(self, plan: List[LessonInstance], ctx: PlanningContext) -> bool:
        lesson = self.rng.choice(plan)
        options = [r for r in ctx.fitting_rooms(lesson.group_size) if r.id != lesson.room_id]
        if not options:
            return False
        lesson.assign_room(self.rng.choice(options))
        return True

    def swap(self, plan: List[LessonInstance], ctx: PlanningContext) -> bool:
        if len(plan) < 2:
            return False
        a, b = self.rng.sample(plan, 2)
        a.date, b.date = b.date, a.date
        a.start, b.start = b.start, a.start
        a.end, b.end = b.end, a.end
        a.room_id, b.room_id = b.room_id, a.room_id
        a.room_type, b.room_type = b.room_type, a.room_type
        a.room_capacity, b.room_capacity = b.room_capacity, a.room_capacity
        return True


@dataclass
class SearchResult:
    best_plan: List[LessonInstance]
    breakdown: ScoreBreakdown
    iterations: int = 0
    accepted: int = 0
    history: List[float] = field(default_factory=list)
    stop_reason: str = STOP_ITERATIONS
    feasible: bool = True


def optimize_plan(
    plan: Sequence[LessonInstance],
    ctx: PlanningContext,
    *,
    move_generator: Optional[MoveGenerator] = None,
    max_iterations: int = 300,
    time_budget_s: float = 1.0,
    should_stop: Optional[Callable[[], bool]] = None,
    clock: Callable[[], float] = time.monotonic,
) -> SearchResult:
    """
    Feasibility-gated hill climb over single moves.

    A candidate must validate clean. It replaces an infeasible incumbent
    whatever its cost; once the incumbent is feasible it must also have a
    strictly lower weighted total. History entries before the first
    feasible incumbent are infinite. The loop ends at `max_iterations`, at
    the wall-clock deadline, or when `should_stop()` returns True, whichever
    comes first; the best plan found so far is returned in every case.
    """
    gen = move_generator or RandomMoveGenerator(ctx.config.random_seed)
    best = clone_plan(list(plan))
    best_breakdown = score_plan(best, ctx)
    best_total = best_breakdown.total
    result = SearchResult(best_plan=best, breakdown=best_breakdown, feasible=not validate_plan(best, ctx))

    deadline = clock() + time_budget_s
    while True:
        if result.iterations >= max_iterations:
            result.stop_reason = STOP_ITERATIONS
            break
        if clock() >= deadline:
            result.stop_reason = STOP_DEADLINE
            break
        if should_stop is not None and should_stop():
            result.stop_reason = STOP_CANCELLED
            break

        result.iterations += 1
        candidate = clone_plan(result.best_plan)
        if gen.apply(candidate, ctx) and not validate_plan(candidate, ctx):
            breakdown = score_plan(candidate, ctx)
            if not result.feasible or breakdown.total < best_total:
                result.best_plan = candidate
                result.breakdown = breakdown
                best_total = breakdown.total
                result.feasible = True
                result.accepted += 1
        result.history.append(best_total if result.feasible else math.inf)

    logger.debug(
        "search: %d iteration(s), %d accepted, best=%.3f, stop=%s",
        result.iterations, result.accepted, best_total, result.stop_reason,
    )
    return result
