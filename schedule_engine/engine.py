from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional, Sequence

from .aggregate import aggregate_recurring, prune_biweekly
from .compaction import apply_if_feasible, compact_plan, minimize_windows
from .context import PlanningContext
from .draft import build_draft
from .models import Demand, Diagnostics, LessonInstance, ScheduleResult, Snapshot, UnderfillRecord, clone_plan
from .repair import repair_plan
from .schema import SchedulingConfig
from .scoring import confidence, score_plan
from .search import MoveGenerator, optimize_plan
from .validator import count_by_kind, validate_plan

logger = logging.getLogger(__name__)


def _finish(
    plan: List[LessonInstance],
    ctx: PlanningContext,
    *,
    underfill: List[UnderfillRecord],
    move_generator: Optional[MoveGenerator],
    should_stop: Optional[Callable[[], bool]],
    clock: Callable[[], float],
    started: float,
) -> ScheduleResult:
    cfg = ctx.config
    diag = Diagnostics(underfill=underfill)

    violations = validate_plan(plan, ctx)
    if violations:
        logger.debug("seed plan: %d violation(s) %s", len(violations), count_by_kind(violations))
        plan = repair_plan(plan, violations, ctx)
        diag.repaired = True

    search = optimize_plan(
        plan,
        ctx,
        move_generator=move_generator,
        max_iterations=cfg.max_iterations,
        time_budget_s=cfg.time_budget_s,
        should_stop=should_stop,
        clock=clock,
    )
    plan = search.best_plan
    diag.iterations = search.iterations
    diag.accepted_moves = search.accepted
    diag.stop_reason = search.stop_reason

    plan, diag.compaction_applied = apply_if_feasible(compact_plan, plan, ctx)
    plan, diag.biweekly_pruned = prune_biweekly(plan, cfg)
    if diag.biweekly_pruned:
        logger.info("forced biweekly: pruned %d lesson(s)", diag.biweekly_pruned)
    plan, diag.window_minimization_applied = apply_if_feasible(minimize_windows, plan, ctx)

    plan.sort(key=lambda l: (l.date, l.start, l.group_id, l.teacher_id))
    diag.violations = validate_plan(plan, ctx)
    diag.breakdown = score_plan(plan, ctx)
    diag.confidence = confidence(diag.breakdown.total, diag.breakdown)
    templates, singles = aggregate_recurring(plan)
    diag.elapsed_s = clock() - started

    if diag.violations:
        logger.warning(
            "plan has %d residual violation(s): %s", len(diag.violations), count_by_kind(diag.violations)
        )
    logger.info(
        "schedule done: lessons=%d templates=%d singles=%d score=%.3f stop=%s elapsed=%.3fs",
        len(plan), len(templates), len(singles), diag.breakdown.total, diag.stop_reason, diag.elapsed_s,
    )
    return ScheduleResult(lessons=plan, templates=templates, singles=singles, diagnostics=diag)


def generate_schedule(
    demand: Sequence[Demand],
    snapshot: Snapshot,
    config: SchedulingConfig,
    *,
    move_generator: Optional[MoveGenerator] = None,
    should_stop: Optional[Callable[[], bool]] = None,
    clock: Callable[[], float] = time.monotonic,
) -> ScheduleResult:
    """
    Build, repair, optimize, compact and aggregate a timetable for `demand`.

    Raises ConfigurationError for unusable config. Infeasibility is never
    raised: the returned diagnostics carry the residual violations and the
    per-group under-fill, and callers must check them.
    """
    started = clock()
    ctx = PlanningContext.build(snapshot, config)
    logger.info(
        "schedule start: %d demand item(s), %d working day(s), %s -> %s",
        len(demand), len(ctx.grid), config.start_date, config.end_date,
    )
    draft = build_draft(demand, ctx)
    return _finish(
        draft.lessons,
        ctx,
        underfill=draft.underfill,
        move_generator=move_generator,
        should_stop=should_stop,
        clock=clock,
        started=started,
    )


def optimize_schedule(
    plan: Sequence[LessonInstance],
    snapshot: Snapshot,
    config: SchedulingConfig,
    *,
    move_generator: Optional[MoveGenerator] = None,
    should_stop: Optional[Callable[[], bool]] = None,
    clock: Callable[[], float] = time.monotonic,
) -> ScheduleResult:
    """Run the pipeline from repair onwards on an existing plan. The input is not modified."""
    started = clock()
    ctx = PlanningContext.build(snapshot, config)
    logger.info("optimize start: %d lesson(s)", len(plan))
    return _finish(
        clone_plan(list(plan)),
        ctx,
        underfill=[],
        move_generator=move_generator,
        should_stop=should_stop,
        clock=clock,
        started=started,
    )
