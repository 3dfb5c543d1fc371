from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Sequence

import pandas as pd

from .models import WORKOUT_DIFFICULTIES, WorkoutRecord
from .records import record_volume, round_tenth
from .trends import TrendWindow

TREND_METRICS: tuple[str, ...] = ("duration", "calories", "volume", "count")

RECORD_COLUMNS = [
    "date",
    "workout_type",
    "duration",
    "calories",
    "intensity",
    "sets",
    "reps",
    "weight",
    "volume",
    "difficulty",
]


@dataclass(frozen=True)
class TrendPoint:
    label: str
    start: date
    value: float


@dataclass(frozen=True)
class WeeklyComparison:
    this_week_duration: int
    last_week_duration: int
    this_week_calories: int
    last_week_calories: int

    @property
    def duration_change(self) -> int:
        return self.this_week_duration - self.last_week_duration

    @property
    def calories_change(self) -> int:
        return self.this_week_calories - self.last_week_calories


def records_to_dataframe(records: Iterable[WorkoutRecord]) -> pd.DataFrame:
    """Normalise workout records into a DataFrame; missing measurements stay NaN."""
    rows = [
        {
            "date": pd.Timestamp(record.workout_date),
            "workout_type": record.workout_type,
            "duration": record.duration,
            "calories": record.calories,
            "intensity": record.intensity,
            "sets": record.sets,
            "reps": record.reps,
            "weight": record.weight,
            "volume": record_volume(record),
            "difficulty": record.difficulty,
        }
        for record in records
    ]
    if not rows:
        return pd.DataFrame(columns=RECORD_COLUMNS)

    df = pd.DataFrame(rows, columns=RECORD_COLUMNS)
    for column in ("duration", "calories", "intensity", "sets", "reps", "weight", "volume"):
        df[column] = pd.to_numeric(df[column], errors="coerce")
    df.sort_values("date", inplace=True, kind="stable")
    df.reset_index(drop=True, inplace=True)
    return df


def _bucket_label(day: pd.Timestamp, period: str) -> str:
    if period == "weekly":
        iso_year, iso_week, _ = day.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if period == "monthly":
        return day.strftime("%Y-%m")
    return day.strftime("%Y-%m-%d")


def _daily_values(df: pd.DataFrame, metric: str) -> pd.Series:
    if metric == "count":
        return df.groupby("date").size().astype(float)
    return df.groupby("date")[metric].sum(min_count=1).fillna(0.0)


def compute_trend_series(
    records: Iterable[WorkoutRecord],
    window: TrendWindow,
    *,
    metric: str = "duration",
) -> list[TrendPoint]:
    """
    Bucket one metric over ``window``.

    Daily windows produce one point per calendar day, weekly windows one per
    ISO week (``YYYY-Www``) and monthly windows one per calendar month
    (``YYYY-MM``). Buckets without activity are reported as zero.
    """
    if metric not in TREND_METRICS:
        raise ValueError(f"metric must be one of {TREND_METRICS}; received {metric!r}.")

    df = records_to_dataframe(records)
    start = pd.Timestamp(window.start)
    end = pd.Timestamp(window.end)
    if not df.empty:
        df = df[(df["date"] >= start) & (df["date"] <= end)]

    all_days = pd.date_range(start, end, freq="D")
    if df.empty:
        daily = pd.Series(0.0, index=all_days)
    else:
        daily = _daily_values(df, metric).reindex(all_days, fill_value=0.0)

    frame = pd.DataFrame({"value": daily.to_numpy()}, index=all_days)
    frame["label"] = [_bucket_label(day, window.period) for day in all_days]
    frame["start"] = all_days
    grouped = frame.groupby("label", sort=False).agg(
        value=("value", "sum"),
        start=("start", "min"),
    )

    points: list[TrendPoint] = []
    for label, row in grouped.iterrows():
        value = float(row["value"])
        if metric == "volume":
            value = round_tenth(value)
        points.append(TrendPoint(label=str(label), start=row["start"].date(), value=value))
    return points


def compute_weekly_comparison(
    records: Iterable[WorkoutRecord],
    today: date | None = None,
) -> WeeklyComparison:
    """Total duration and calories for this ISO week versus the previous one."""
    today = today or date.today()
    this_week = today.isocalendar()[:2]
    last_week = (today - timedelta(days=7)).isocalendar()[:2]

    totals = {
        this_week: {"duration": 0, "calories": 0},
        last_week: {"duration": 0, "calories": 0},
    }
    for record in records:
        key = record.workout_date.isocalendar()[:2]
        if key not in totals:
            continue
        totals[key]["duration"] += record.duration or 0
        totals[key]["calories"] += record.calories or 0

    return WeeklyComparison(
        this_week_duration=totals[this_week]["duration"],
        last_week_duration=totals[last_week]["duration"],
        this_week_calories=totals[this_week]["calories"],
        last_week_calories=totals[last_week]["calories"],
    )


def compute_type_breakdown(records: Sequence[WorkoutRecord]) -> pd.DataFrame:
    """Workout count plus mean duration/calories (over recorded values) per type."""
    columns = ["workout_type", "count", "avg_duration", "avg_calories"]
    df = records_to_dataframe(records)
    if df.empty:
        return pd.DataFrame(columns=columns)

    breakdown = (
        df.groupby("workout_type")
        .agg(
            count=("workout_type", "size"),
            avg_duration=("duration", "mean"),
            avg_calories=("calories", "mean"),
        )
        .reset_index()
    )
    breakdown["avg_duration"] = breakdown["avg_duration"].round(1)
    breakdown["avg_calories"] = breakdown["avg_calories"].round(1)
    breakdown.sort_values(["count", "workout_type"], ascending=[False, True], inplace=True)
    breakdown.reset_index(drop=True, inplace=True)
    return breakdown[columns]


def compute_difficulty_distribution(records: Iterable[WorkoutRecord]) -> dict[str, int]:
    """Record count per perceived difficulty, in ascending difficulty order."""
    counts: dict[str, int] = {}
    for record in records:
        counts[record.difficulty] = counts.get(record.difficulty, 0) + 1
    return {level: counts[level] for level in WORKOUT_DIFFICULTIES if level in counts}
