import copy
import json
from pathlib import Path

import pytest

from schedule_engine.schema import ConfigurationError, ScheduleInput, load_config

SAMPLE = Path(__file__).resolve().parents[1] / "schedule_input.sample.json"


def _sample():
    return json.loads(SAMPLE.read_text(encoding="utf-8"))


def test_sample_input_loads():
    data = ScheduleInput.load_file(SAMPLE)
    snapshot = data.to_snapshot()
    assert len(snapshot.rooms) == 5
    assert snapshot.bookings[0].start == 8 * 60 + 30
    assert len(data.to_demand()) == 8
    assert data.config.restrictions.allowed_days("physical education") == [2, 4]
    assert data.config.preferred_room_types("Physics") == ["LAB"]
    assert data.config.is_heavy("English Language")


def test_save_and_reload(tmp_path):
    data = ScheduleInput.load_file(SAMPLE)
    out = tmp_path / "copy.json"
    data.save_file(out)
    assert ScheduleInput.load_file(out).to_json_dict() == data.to_json_dict()


@pytest.mark.parametrize(
    "mutate",
    [
        lambda d: d["config"].update(unknown_key=1),
        lambda d: d["config"].update(working_hours={"start": "15:00", "end": "08:30"}),
        lambda d: d["config"].update(lunch_break={"start": "13:00", "end": "12:00"}),
        lambda d: d["config"].update(end_date="2026-09-01"),
        lambda d: d["config"].update(lesson_duration=0),
        lambda d: d["config"].update(working_hours={"start": "8h", "end": "15:00"}),
        lambda d: d["rooms"].append(dict(d["rooms"][0])),
        lambda d: d["demand"].append(dict(d["demand"][0])),
        lambda d: d["demand"][0].update(weekly_lessons=0),
        lambda d: d["config"].update(force_biweekly_study_plan_ids=[99]),
        lambda d: d["config"]["restrictions"]["preferred_days"].update(Astronomy=[1]),
    ],
)
def test_invalid_input_raises_configuration_error(mutate):
    data = copy.deepcopy(_sample())
    mutate(data)
    with pytest.raises(ConfigurationError):
        ScheduleInput.from_dict(data)


def test_load_config_defaults():
    config = load_config({"start_date": "2026-09-07", "end_date": "2026-09-11", "working_hours": {"start": "09:00", "end": "13:00"}})
    assert config.lesson_duration == 45
    assert config.break_duration == 10
    assert config.weights.windows == 30
    assert config.fallback_room_types == ["AUDITORIUM"]
    assert config.lunch_break is None
