from __future__ import annotations

from collections import defaultdict
from typing import Dict, Hashable, List, Sequence, Tuple

from .context import PlanningContext
from .models import LessonInstance, ScoreBreakdown

HEAVY_LATE_START = 16 * 60
RESTRICTED_EDGE_PENALTY = 5


def gap_cost(gap: int) -> int:
    if gap < 10:
        return 0
    if gap <= 60:
        return 1
    return 2


def window_cost(intervals: Sequence[Tuple[int, int]]) -> int:
    """Window cost of one teacher-day or group-day."""
    ordered = sorted(intervals)
    return sum(gap_cost(b[0] - a[1]) for a, b in zip(ordered, ordered[1:]))


def _by(plan: Sequence[LessonInstance], key) -> Dict[Hashable, List[LessonInstance]]:
    out: Dict[Hashable, List[LessonInstance]] = defaultdict(list)
    for lesson in plan:
        out[key(lesson)].append(lesson)
    for items in out.values():
        items.sort(key=lambda l: (l.start, l.end))
    return out


def _variance(values: Sequence[float]) -> Tuple[float, float]:
    mean = sum(values) / len(values)
    return sum((v - mean) ** 2 for v in values) / len(values), mean


def raw_terms(plan: Sequence[LessonInstance], ctx: PlanningContext) -> ScoreBreakdown:
    """Unweighted soft-constraint terms."""
    cfg = ctx.config
    terms = ScoreBreakdown()
    teacher_days = _by(plan, lambda l: (l.teacher_id, l.date))
    group_days = _by(plan, lambda l: (l.group_id, l.date))

    for items in list(teacher_days.values()) + list(group_days.values()):
        terms.windows += window_cost([(l.start, l.end) for l in items])

    daily: Dict[int, List[int]] = defaultdict(list)
    for (teacher_id, _), items in teacher_days.items():
        daily[teacher_id].append(len(items))
    for counts in daily.values():
        var, mean = _variance(counts)
        terms.fairness += var / (mean + 0.01)

    terms.heavy_late = sum(1 for l in plan if l.start >= HEAVY_LATE_START and cfg.is_heavy(l.subject))

    for items in teacher_days.values():
        for a, b in zip(items, items[1:]):
            ba, bb = ctx.building_of(a.room_id), ctx.building_of(b.room_id)
            if ba and bb and ba != bb:
                terms.transitions += 2 if b.start - a.end < ctx.min_break else 1

    for items in group_days.values():
        for a, b in zip(items, items[1:]):
            ba, bb = ctx.building_of(a.room_id), ctx.building_of(b.room_id)
            if ba and bb and ba != bb:
                terms.harmony += 1

    restrictions = cfg.restrictions
    if restrictions.no_first_lesson or restrictions.no_last_lesson:
        for items in group_days.values():
            if restrictions.forbids_first(items[0].subject):
                terms.preferences += RESTRICTED_EDGE_PENALTY
            if restrictions.forbids_last(items[-1].subject):
                terms.preferences += RESTRICTED_EDGE_PENALTY

    starts: Dict[Tuple[int, str, int], List[float]] = defaultdict(list)
    for l in plan:
        starts[(l.group_id, l.subject, l.date.isoweekday())].append(l.start)
    for values in starts.values():
        if len(values) > 1:
            terms.time_consistency += _variance(values)[0] / 60

    return terms


def score_plan(plan: Sequence[LessonInstance], ctx: PlanningContext) -> ScoreBreakdown:
    """Weighted soft-constraint breakdown; lower is better."""
    raw = raw_terms(plan, ctx)
    w = ctx.config.weights
    return ScoreBreakdown(
        windows=raw.windows * w.windows,
        fairness=raw.fairness * w.fairness,
        preferences=raw.preferences * w.preferences,
        heavy_late=raw.heavy_late * w.heavy_late,
        transitions=raw.transitions * w.transitions,
        harmony=raw.harmony * w.harmony,
        time_consistency=raw.time_consistency * w.time_consistency,
    )


def confidence(total: float, breakdown: ScoreBreakdown) -> float:
    """Advisory 0..1 quality estimate of a final plan."""
    s = max(0.0, breakdown.total)
    value = 1 - s / (s + 20)
    if total == 0:
        value += 0.1
    return max(0.0, min(1.0, value))
