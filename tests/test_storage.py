from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from training_insights import storage
from training_insights.models import ExercisePreference, SessionFeedbackInput, ValidationError, WorkoutRecord


def test_records_round_trip_oldest_first():
    storage.append_workout_record(WorkoutRecord(date(2024, 6, 3), "running", duration=30), user_id=1)
    storage.append_workout_record(WorkoutRecord(date(2024, 6, 1), "squat", sets=3, reps=5, weight=80.0), user_id=1)
    storage.append_workout_record(WorkoutRecord(date(2024, 6, 2), "row", calories=120), user_id=2)

    loaded = storage.load_workout_records(1)
    assert [record.workout_type for record in loaded] == ["squat", "running"]
    assert loaded[0].weight == 80.0
    assert loaded[0].user_id == 1
    assert loaded[0].record_id is not None
    assert [record.workout_type for record in storage.load_workout_records(2)] == ["row"]


def test_same_day_records_keep_insertion_order():
    for name in ("first", "second", "third"):
        storage.append_workout_record(WorkoutRecord(date(2024, 6, 1), name), user_id=1)
    assert [record.workout_type for record in storage.load_workout_records(1)] == ["first", "second", "third"]


def test_load_records_within_range():
    for day in (1, 5, 10):
        storage.append_workout_record(WorkoutRecord(date(2024, 6, day), "walk"), user_id=1)
    loaded = storage.load_workout_records(1, start=date(2024, 6, 2), end=date(2024, 6, 10))
    assert [record.workout_date.day for record in loaded] == [5, 10]


def test_record_requires_an_owner():
    with pytest.raises(ValidationError):
        storage.append_workout_record(WorkoutRecord(date(2024, 6, 1), "walk"))


def test_db_file_override(monkeypatch, tmp_path):
    db_file = tmp_path / "custom" / "insights.db"
    monkeypatch.setenv("TRAINING_INSIGHTS_DB_FILE", str(db_file))
    storage.append_workout_record(WorkoutRecord(date(2024, 6, 1), "walk"), user_id=1)
    assert db_file.exists()


def test_missing_preference_is_a_fresh_default():
    with storage.open_database() as conn:
        pref = storage.get_or_create_preference(conn, 1, "squat")
    assert pref.preference_score == 0.0
    assert pref.effectiveness_score == 0.5
    assert pref.data_points == 0
    assert storage.load_preferences(1) == []


def test_preference_upsert_round_trip():
    stamp = datetime(2024, 6, 15, 9, 30, tzinfo=timezone.utc)
    pref = ExercisePreference(1, "squat", preference_score=0.4, effectiveness_score=0.7, data_points=2, last_updated=stamp)
    with storage.write_transaction() as conn:
        storage.save_preference(conn, pref)
    pref.preference_score = 0.6
    pref.data_points = 3
    with storage.write_transaction() as conn:
        storage.save_preference(conn, pref)

    loaded = storage.load_preferences(1)
    assert len(loaded) == 1
    assert loaded[0].preference_score == pytest.approx(0.6)
    assert loaded[0].data_points == 3
    assert loaded[0].last_updated == stamp


def test_write_transaction_rolls_back_on_error():
    with pytest.raises(RuntimeError):
        with storage.write_transaction() as conn:
            storage.save_preference(conn, ExercisePreference(1, "squat", preference_score=0.9))
            raise RuntimeError("boom")
    assert storage.load_preferences(1) == []


def test_second_feedback_for_a_session_is_rejected():
    feedback = SessionFeedbackInput(completion_rate=1.0, overall_difficulty=3, satisfaction=5)
    with storage.write_transaction() as conn:
        storage.save_session_feedback(conn, session_id="s-1", user_id=1, feedback=feedback, success_score=1.0)
    with pytest.raises(ValidationError):
        with storage.write_transaction() as conn:
            storage.save_session_feedback(conn, session_id="s-1", user_id=1, feedback=feedback, success_score=1.0)


def test_summary_cache_invalidation_is_per_user():
    cache = storage.SummaryCache()
    cache.put((1, date(2024, 6, 15)), "one")
    cache.put((2, date(2024, 6, 15)), "two")
    cache.invalidate(1)
    assert cache.get((1, date(2024, 6, 15))) is None
    assert cache.get((2, date(2024, 6, 15))) == "two"
    cache.invalidate()
    assert cache.get((2, date(2024, 6, 15))) is None


def test_appending_a_record_invalidates_cached_summaries():
    storage.SUMMARY_CACHE.put((1, date(2024, 6, 15)), "stale")
    storage.append_workout_record(WorkoutRecord(date(2024, 6, 15), "walk"), user_id=1)
    assert storage.SUMMARY_CACHE.get((1, date(2024, 6, 15))) is None


def test_summary_cache_keeps_one_day_per_user():
    cache = storage.SummaryCache()
    cache.put((1, date(2024, 6, 14)), "yesterday")
    cache.put((1, date(2024, 6, 15)), "today")
    assert cache.get((1, date(2024, 6, 14))) is None
    assert cache.get((1, date(2024, 6, 15))) == "today"
    assert len(cache) == 1


def test_summary_cache_evicts_oldest_entry_when_full():
    cache = storage.SummaryCache(max_entries=2)
    for user_id in (1, 2, 3):
        cache.put((user_id, date(2024, 6, 15)), user_id)
    assert len(cache) == 2
    assert cache.get((1, date(2024, 6, 15))) is None
    assert cache.get((3, date(2024, 6, 15))) == 3
