from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest

from training_insights.models import WorkoutRecord
from training_insights.records import (
    analyze_records,
    cumulative_stats,
    personal_records,
    record_volume,
    round_tenth,
    streaks,
)

TODAY = date(2024, 6, 15)


def _record(day: date, workout_type: str = "squat", **fields) -> WorkoutRecord:
    return WorkoutRecord(workout_date=day, workout_type=workout_type, **fields)


def test_current_streak_counts_back_from_today():
    history = [_record(TODAY - timedelta(days=offset)) for offset in (2, 1, 0)]
    result = streaks(history, today=TODAY)
    assert result.current == 3
    assert result.longest == 3


def test_gap_breaks_the_streak():
    history = [_record(TODAY - timedelta(days=2)), _record(TODAY)]
    result = streaks(history, today=TODAY)
    assert result.current == 1
    assert result.longest == 1


def test_current_streak_is_zero_without_activity_today():
    history = [_record(TODAY - timedelta(days=offset)) for offset in (3, 2, 1)]
    result = streaks(history, today=TODAY)
    assert result.current == 0
    assert result.longest == 3


def test_longest_streak_is_found_anywhere_in_history():
    days = [date(2024, 1, 1) + timedelta(days=offset) for offset in range(5)]
    days += [date(2024, 3, 1), date(2024, 3, 2), TODAY]
    result = streaks([_record(day) for day in days], today=TODAY)
    assert result.longest == 5
    assert result.current == 1


def test_multiple_records_on_one_day_count_once():
    history = [_record(TODAY), _record(TODAY, "running"), _record(TODAY - timedelta(days=1))]
    result = streaks(history, today=TODAY)
    assert result.current == 2
    assert result.longest == 2


def test_days_after_today_are_ignored():
    history = [_record(TODAY + timedelta(days=offset)) for offset in (1, 2, 3, 4)] + [_record(TODAY)]
    result = streaks(history, today=TODAY)
    assert result.current == 1
    assert result.longest == 1


def test_time_of_day_is_discarded():
    history = [
        _record(datetime(2024, 6, 14, 23, 30)),
        _record(datetime(2024, 6, 15, 6, 0)),
    ]
    assert streaks(history, today=TODAY).current == 2


def test_personal_records_track_each_metric():
    history = [
        _record(date(2024, 6, 1), "squat", sets=5, reps=5, weight=100.0, duration=45),
        _record(date(2024, 6, 2), "pushups", sets=3, reps=30, duration=10),
        _record(date(2024, 6, 3), "running", duration=62),
    ]
    prs = personal_records(history)
    assert prs.max_volume.workout_type == "squat"
    assert prs.max_volume.value == pytest.approx(2500.0)
    assert prs.max_reps.workout_type == "pushups"
    assert prs.max_reps.value == 30
    assert prs.max_reps.sets == 3
    assert prs.longest_duration.workout_type == "running"
    assert prs.longest_duration.value == 62


def test_tied_personal_record_keeps_first_encountered():
    history = [
        _record(date(2024, 6, 1), "squat", sets=5, reps=5, weight=100.0),
        _record(date(2024, 6, 8), "deadlift", sets=5, reps=5, weight=100.0),
    ]
    prs = personal_records(history)
    assert prs.max_volume.workout_type == "squat"
    assert prs.max_volume.workout_date == date(2024, 6, 1)


def test_zero_valued_history_has_no_personal_records():
    history = [_record(date(2024, 6, 1), "yoga"), _record(date(2024, 6, 2), "walk", duration=0)]
    prs = personal_records(history)
    assert prs.max_volume is None
    assert prs.max_reps is None
    assert prs.longest_duration is None


def test_volume_treats_missing_factors_as_zero():
    assert record_volume(_record(TODAY, sets=3, reps=10)) == 0.0
    assert record_volume(_record(TODAY, sets=3, reps=10, weight=20.5)) == pytest.approx(615.0)


def test_cumulative_stats_sum_the_history():
    history = [
        _record(date(2024, 6, 1), sets=3, reps=10, weight=20.25, duration=30, calories=200),
        _record(date(2024, 6, 2), "running", duration=25, calories=310),
        _record(date(2024, 6, 3), "stretch"),
    ]
    totals = cumulative_stats(history)
    assert totals.total_workouts == 3
    assert totals.total_minutes == 55
    assert totals.total_calories == 510
    assert totals.total_volume == pytest.approx(607.5)


@pytest.mark.parametrize("value, expected", [(0.05, 0.1), (1.24, 1.2), (1.25, 1.3), (607.5, 607.5)])
def test_round_tenth_rounds_half_up(value, expected):
    assert round_tenth(value) == pytest.approx(expected)


def test_empty_history_yields_empty_summary():
    summary = analyze_records([], today=TODAY)
    assert summary.personal_records.max_volume is None
    assert summary.personal_records.max_reps is None
    assert summary.personal_records.longest_duration is None
    assert summary.streaks.current == 0
    assert summary.streaks.longest == 0
    assert summary.cumulative.total_workouts == 0
    assert summary.cumulative.total_calories == 0
    assert summary.cumulative.total_minutes == 0
    assert summary.cumulative.total_volume == 0.0


def test_summary_serialises_for_display():
    history = [
        _record(TODAY - timedelta(days=1), "bench", sets=3, reps=8, weight=60.0, duration=40, calories=150),
        _record(TODAY, "bench", sets=3, reps=10, weight=60.0, duration=35, calories=140),
    ]
    payload = analyze_records(history, today=TODAY).to_dict()
    assert payload["pr"]["max_volume"] == {"workout_type": "bench", "date": "2024-06-15", "volume": 1800.0}
    assert payload["pr"]["max_reps"] == {"workout_type": "bench", "date": "2024-06-15", "reps": 10, "sets": 3}
    assert payload["pr"]["longest_duration"] == {"workout_type": "bench", "date": "2024-06-14", "minutes": 40}
    assert payload["streak"] == {"current": 2, "longest": 2}
    assert payload["cumulative"]["total_workouts"] == 2
    assert payload["cumulative"]["total_volume"] == pytest.approx(3240.0)
