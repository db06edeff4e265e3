"""School timetable generation: greedy draft, repair, local search, compaction, recurring aggregation."""

from .aggregate import aggregate_recurring, expand_template, prune_biweekly
from .compaction import compact_plan, minimize_windows
from .context import PlanningContext
from .draft import build_draft
from .engine import generate_schedule, optimize_schedule
from .models import (
    Absence,
    Booking,
    Demand,
    Diagnostics,
    LessonInstance,
    RecurringTemplate,
    Room,
    ScheduleResult,
    ScoreBreakdown,
    SingleOccurrence,
    Snapshot,
    TimeSlot,
    UnderfillRecord,
    Violation,
    ViolationKind,
)
from .repair import repair_plan
from .schema import ConfigurationError, ScheduleInput, SchedulingConfig, load_config
from .scoring import confidence, score_plan
from .search import MoveGenerator, RandomMoveGenerator, SearchResult, optimize_plan
from .slots import build_slot_grid, build_time_slots
from .validator import is_feasible, validate_plan

__all__ = [
    "Absence",
    "Booking",
    "ConfigurationError",
    "Demand",
    "Diagnostics",
    "LessonInstance",
    "MoveGenerator",
    "PlanningContext",
    "RandomMoveGenerator",
    "RecurringTemplate",
    "Room",
    "ScheduleInput",
    "ScheduleResult",
    "SchedulingConfig",
    "ScoreBreakdown",
    "SearchResult",
    "SingleOccurrence",
    "Snapshot",
    "TimeSlot",
    "UnderfillRecord",
    "Violation",
    "ViolationKind",
    "aggregate_recurring",
    "build_draft",
    "build_slot_grid",
    "build_time_slots",
    "compact_plan",
    "confidence",
    "expand_template",
    "generate_schedule",
    "is_feasible",
    "load_config",
    "minimize_windows",
    "optimize_plan",
    "optimize_schedule",
    "prune_biweekly",
    "repair_plan",
    "score_plan",
    "validate_plan",
]
