from __future__ import annotations

import argparse
import json
import logging
from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from .engine import generate_schedule
from .models import LessonInstance, ScheduleResult, format_hhmm
from .schema import ConfigurationError, ScheduleInput


def _format_group_timetable(*, group_id: int, lessons: List[LessonInstance]) -> str:
    dates = sorted({l.date for l in lessons})
    times = sorted({(l.start, l.end) for l in lessons})
    periods = [f"{format_hhmm(s)}-{format_hhmm(e)}" for s, e in times]

    cells: Dict[Tuple[object, int], str] = {}
    for l in lessons:
        room = f"@{l.room_id}" if l.room_id is not None else ""
        cells[(l.date, l.start)] = f"{l.subject}(T{l.teacher_id}){room}"

    grid: List[List[str]] = []
    for d in dates:
        grid.append([cells.get((d, s), "-") for s, _ in times])

    labels = [f"{d.isoformat()} {d.strftime('%a')}" for d in dates]
    col_widths = [max(len(periods[i]), max(len(grid[r][i]) for r in range(len(dates)))) for i in range(len(periods))]
    day_width = max(len("Date"), max(len(x) for x in labels))

    lines: List[str] = []
    lines.append(f"Group: {group_id}")
    header = " " * (day_width + 2) + "  ".join(periods[i].ljust(col_widths[i]) for i in range(len(periods)))
    lines.append(header)
    for r, label in enumerate(labels):
        lines.append(label.ljust(day_width) + "  " + "  ".join(grid[r][i].ljust(col_widths[i]) for i in range(len(periods))))
    return "\n".join(lines)


def _print_summary(result: ScheduleResult) -> None:
    diag = result.diagnostics
    print(f"Lessons: {len(result.lessons)}  Templates: {len(result.templates)}  Singles: {len(result.singles)}")
    print(f"Score (lower is better): {diag.breakdown.total:.3f}  Confidence: {diag.confidence:.2f}")
    print(f"Search: {diag.iterations} iteration(s), {diag.accepted_moves} accepted, stopped by {diag.stop_reason}")
    for record in diag.underfill:
        print(f"Note: group {record.group_id} got {record.placed} of {record.expected} lessons")
    if diag.violations:
        print(f"Violations: {len(diag.violations)}")
        for v in diag.violations:
            print(f"  {v.describe()}")
    else:
        print("Violations: none")


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="School timetable generator (greedy draft + local search).")
    parser.add_argument("--input", required=True, help="Path to input JSON file.")
    parser.add_argument("--output", help="Write the result as JSON to this path.")
    parser.add_argument("--seed", type=int, help="Random seed for the local search.")
    parser.add_argument("--max_iterations", type=int, help="Local search iteration cap.")
    parser.add_argument("--time_limit_s", type=float, help="Local search wall-clock budget in seconds.")
    parser.add_argument("--print_groups", action="store_true", help="Also print the timetable per group.")
    parser.add_argument("--verbose", "-v", action="count", default=0, help="Log progress (-vv for debug).")
    args = parser.parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    try:
        data = ScheduleInput.load_file(args.input)
    except ConfigurationError as e:
        parser.error(f"invalid input: {e}")

    overrides = {}
    if args.seed is not None:
        overrides["random_seed"] = args.seed
    if args.max_iterations is not None:
        overrides["max_iterations"] = args.max_iterations
    if args.time_limit_s is not None:
        overrides["time_budget_s"] = args.time_limit_s
    config = data.config.model_copy(update=overrides) if overrides else data.config

    result = generate_schedule(data.to_demand(), data.to_snapshot(), config)
    _print_summary(result)
    print()

    if args.print_groups:
        by_group: Dict[int, List[LessonInstance]] = defaultdict(list)
        for lesson in result.lessons:
            by_group[lesson.group_id].append(lesson)
        for group_id in sorted(by_group):
            print(_format_group_timetable(group_id=group_id, lessons=by_group[group_id]))
            print()

    if args.output:
        Path(args.output).write_text(
            json.dumps(result.to_json_dict(), indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
        )
        print(f"Wrote {args.output}")


if __name__ == "__main__":
    main()
