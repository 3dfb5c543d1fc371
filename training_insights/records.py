from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Dict, Iterable, Optional, Sequence

from .models import WorkoutRecord


@dataclass(frozen=True)
class PersonalRecord:
    """The record holding a best-ever value, plus that value."""

    workout_type: str
    workout_date: date
    value: float
    sets: Optional[int] = None

    def to_dict(self, value_key: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "workout_type": self.workout_type,
            "date": self.workout_date.isoformat(),
            value_key: self.value,
        }
        if value_key == "reps":
            payload["sets"] = self.sets
        return payload


@dataclass(frozen=True)
class PersonalRecords:
    max_volume: Optional[PersonalRecord]
    max_reps: Optional[PersonalRecord]
    longest_duration: Optional[PersonalRecord]


@dataclass(frozen=True)
class Streaks:
    current: int
    longest: int


@dataclass(frozen=True)
class CumulativeStats:
    total_calories: int
    total_volume: float
    total_minutes: int
    total_workouts: int


@dataclass(frozen=True)
class RecordsSummary:
    personal_records: PersonalRecords
    streaks: Streaks
    cumulative: CumulativeStats

    def to_dict(self) -> Dict[str, Any]:
        prs = self.personal_records
        return {
            "pr": {
                "max_volume": prs.max_volume.to_dict("volume") if prs.max_volume else None,
                "max_reps": prs.max_reps.to_dict("reps") if prs.max_reps else None,
                "longest_duration": (
                    prs.longest_duration.to_dict("minutes") if prs.longest_duration else None
                ),
            },
            "streak": {"current": self.streaks.current, "longest": self.streaks.longest},
            "cumulative": {
                "total_calories": self.cumulative.total_calories,
                "total_volume": self.cumulative.total_volume,
                "total_minutes": self.cumulative.total_minutes,
                "total_workouts": self.cumulative.total_workouts,
            },
        }


def round_tenth(value: float) -> float:
    """Round half-up to one decimal place."""
    return math.floor(value * 10.0 + 0.5) / 10.0


def record_volume(record: WorkoutRecord) -> float:
    """sets × reps × weight, with any missing factor counted as zero."""
    sets = record.sets if record.sets is not None else 0
    reps = record.reps if record.reps is not None else 0
    weight = record.weight if record.weight is not None else 0.0
    return float(sets) * reps * weight


def personal_records(records: Iterable[WorkoutRecord]) -> PersonalRecords:
    """
    Best volume, reps and duration across ``records`` in a single pass.

    Each tracker starts at zero and only moves on a strictly greater value, so
    ties keep the first record encountered and zero-valued records never count.
    """
    max_volume = 0.0
    max_volume_record: WorkoutRecord | None = None
    max_reps = 0
    max_reps_record: WorkoutRecord | None = None
    longest = 0
    longest_record: WorkoutRecord | None = None

    for record in records:
        volume = record_volume(record)
        reps = record.reps if record.reps is not None else 0
        if volume > max_volume:
            max_volume, max_volume_record = volume, record
        if reps > max_reps:
            max_reps, max_reps_record = reps, record
        if record.duration is not None and record.duration > longest:
            longest, longest_record = record.duration, record

    return PersonalRecords(
        max_volume=(
            PersonalRecord(
                max_volume_record.workout_type,
                max_volume_record.workout_date,
                round_tenth(max_volume),
            )
            if max_volume_record
            else None
        ),
        max_reps=(
            PersonalRecord(
                max_reps_record.workout_type,
                max_reps_record.workout_date,
                max_reps,
                sets=max_reps_record.sets,
            )
            if max_reps_record
            else None
        ),
        longest_duration=(
            PersonalRecord(longest_record.workout_type, longest_record.workout_date, longest)
            if longest_record
            else None
        ),
    )


def streaks(records: Iterable[WorkoutRecord], today: date | None = None) -> Streaks:
    """
    Current and longest runs of consecutive active days.

    The current streak counts back from ``today`` (inclusive) and is zero when
    today has no record. The longest streak is the longest run between the
    first recorded day and today; days after today are ignored.
    """
    today = today or date.today()
    days = {record.workout_date for record in records}

    current = 0
    cursor = today
    while cursor in days:
        current += 1
        cursor -= timedelta(days=1)

    longest = 0
    run = 0
    previous: date | None = None
    for day in sorted(day for day in days if day <= today):
        if previous is not None and day - previous == timedelta(days=1):
            run += 1
        else:
            run = 1
        longest = max(longest, run)
        previous = day

    return Streaks(current=current, longest=longest)


def cumulative_stats(records: Sequence[WorkoutRecord]) -> CumulativeStats:
    total_calories = sum(record.calories or 0 for record in records)
    total_minutes = sum(record.duration or 0 for record in records)
    total_volume = sum(record_volume(record) for record in records)
    return CumulativeStats(
        total_calories=int(total_calories),
        total_volume=round_tenth(total_volume),
        total_minutes=int(total_minutes),
        total_workouts=len(records),
    )


def analyze_records(records: Iterable[WorkoutRecord], today: date | None = None) -> RecordsSummary:
    """Personal records, streaks and lifetime totals for one user's history."""
    history = list(records)
    return RecordsSummary(
        personal_records=personal_records(history),
        streaks=streaks(history, today=today),
        cumulative=cumulative_stats(history),
    )
