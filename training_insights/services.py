from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable, Mapping, MutableMapping, Sequence

from . import storage
from .metrics import TrendPoint, WeeklyComparison, compute_trend_series, compute_weekly_comparison
from .models import (
    WORKOUT_DIFFICULTIES,
    ExerciseExecution,
    ExercisePreference,
    SessionFeedbackInput,
    WorkoutRecord,
)
from .preferences import (
    PreferenceLearner,
    PreferenceStats,
    confidence,
    disliked,
    exercise_effectiveness_signal,
    exercise_preference_signal,
    preference_label,
    preference_stats,
    preferred,
)
from .records import RecordsSummary, analyze_records
from .scoring import difficulty_label, is_fully_rated, satisfaction_label, score_feedback
from .trends import TrendWindow, resolve_window

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreferenceView:
    """Read-only snapshot of a preference after an update."""

    exercise_name: str
    preference_score: float
    effectiveness_score: float
    data_points: int
    confidence: float
    label: str

    @classmethod
    def from_preference(cls, pref: ExercisePreference) -> "PreferenceView":
        return cls(
            exercise_name=pref.exercise_name,
            preference_score=pref.preference_score,
            effectiveness_score=pref.effectiveness_score,
            data_points=pref.data_points,
            confidence=confidence(pref.data_points),
            label=preference_label(pref.preference_score),
        )


@dataclass(frozen=True)
class FeedbackOutcome:
    session_id: str
    success_score: float
    difficulty_label: str
    satisfaction_label: str
    updates: list[PreferenceView]
    records_logged: int = 0

    @property
    def confirmation(self) -> str:
        return (
            f"[session {self.session_id}] success score {self.success_score:.3f} "
            f"({len(self.updates)} exercise{'s' if len(self.updates) != 1 else ''} updated)."
        )


@dataclass(frozen=True)
class TrendReport:
    window: TrendWindow
    metric: str
    points: list[TrendPoint]
    comparison: WeeklyComparison


@dataclass(frozen=True)
class PreferenceSummary:
    stats: PreferenceStats
    rows: list[PreferenceView]
    preferred: list[str]
    disliked: list[str]


def coerce_executions(items: Iterable[ExerciseExecution | Mapping[str, Any] | str]) -> list[ExerciseExecution]:
    """Accept bare exercise names, payload mappings or executions."""
    executions: list[ExerciseExecution] = []
    for item in items:
        if isinstance(item, ExerciseExecution):
            executions.append(item)
        else:
            executions.append(ExerciseExecution.from_mapping(item))
    return executions


def apply_session_feedback(
    preferences: MutableMapping[str, ExercisePreference],
    feedback: SessionFeedbackInput,
    executions: Sequence[ExerciseExecution],
    *,
    user_id: int,
    learner: PreferenceLearner | None = None,
) -> tuple[float, list[PreferenceView]]:
    """
    Score the session and fold it into each executed exercise's preference.

    ``preferences`` maps exercise name to its current estimate; missing names
    get a zero-valued default that is inserted into the mapping.
    """
    learner = learner or PreferenceLearner()
    success_score = score_feedback(feedback)
    fallback = success_score if is_fully_rated(feedback) else None

    updates: list[PreferenceView] = []
    for execution in executions:
        pref = preferences.get(execution.exercise_name)
        if pref is None:
            pref = ExercisePreference(user_id=user_id, exercise_name=execution.exercise_name)
            preferences[execution.exercise_name] = pref
        learner.learn(
            pref,
            exercise_preference_signal(feedback, execution),
            exercise_effectiveness_signal(execution, fallback),
        )
        updates.append(PreferenceView.from_preference(pref))
    return success_score, updates


def _record_difficulty(feedback: SessionFeedbackInput) -> str:
    if feedback.overall_difficulty is None:
        return "moderate"
    return WORKOUT_DIFFICULTIES[feedback.overall_difficulty - 1]


def session_activity_records(
    executions: Sequence[ExerciseExecution],
    feedback: SessionFeedbackInput,
    *,
    session_date: date,
    user_id: int,
) -> list[WorkoutRecord]:
    """One activity-log entry per executed exercise."""
    difficulty = _record_difficulty(feedback)
    return [
        WorkoutRecord(
            workout_date=session_date,
            workout_type=execution.exercise_name,
            duration=execution.actual_duration,
            sets=execution.completed_sets,
            reps=execution.completed_reps,
            weight=execution.weight,
            difficulty=difficulty,
            user_id=user_id,
        )
        for execution in executions
    ]


def submit_session_feedback(
    *,
    session_id: str,
    user_id: int,
    exercises: Iterable[ExerciseExecution | Mapping[str, Any] | str],
    feedback: SessionFeedbackInput,
    session_date: date | None = None,
    learner: PreferenceLearner | None = None,
) -> FeedbackOutcome:
    """
    Record a finished session's feedback and update the stored preferences.

    When ``session_date`` is given the executions are also appended to the
    activity log. The feedback row, the preference rows and the log entries
    are written in one transaction.
    """
    executions = coerce_executions(exercises)
    LOGGER.info(
        "Ingesting feedback session=%s user=%s exercises=%d",
        session_id,
        user_id,
        len(executions),
    )
    activity: list[WorkoutRecord] = []
    if session_date is not None:
        activity = session_activity_records(
            executions, feedback, session_date=session_date, user_id=user_id
        )

    with storage.write_transaction() as conn:
        preferences: dict[str, ExercisePreference] = {}
        for execution in executions:
            if execution.exercise_name not in preferences:
                preferences[execution.exercise_name] = storage.get_or_create_preference(
                    conn, user_id, execution.exercise_name
                )
        success_score, updates = apply_session_feedback(
            preferences,
            feedback,
            executions,
            user_id=user_id,
            learner=learner,
        )
        storage.save_session_feedback(
            conn,
            session_id=session_id,
            user_id=user_id,
            feedback=feedback,
            success_score=success_score,
        )
        for pref in preferences.values():
            storage.save_preference(conn, pref)
        for record in activity:
            storage.insert_workout_record(conn, record, user_id=user_id)

    if activity:
        storage.SUMMARY_CACHE.invalidate(user_id)
    records_logged = len(activity)

    LOGGER.info("Stored feedback session=%s score=%.3f", session_id, success_score)
    return FeedbackOutcome(
        session_id=session_id,
        success_score=success_score,
        difficulty_label=difficulty_label(feedback.overall_difficulty),
        satisfaction_label=satisfaction_label(feedback.satisfaction),
        updates=updates,
        records_logged=records_logged,
    )


def build_records_room(user_id: int, *, today: date | None = None) -> RecordsSummary:
    """Personal records, streaks and totals for a user, cached until their log changes."""
    today = today or date.today()
    key = (user_id, today)
    cached = storage.SUMMARY_CACHE.get(key)
    if cached is not None:
        return cached

    records = storage.load_workout_records(user_id)
    if not records:
        LOGGER.warning("No workout records found for user %s", user_id)
    summary = analyze_records(records, today=today)
    storage.SUMMARY_CACHE.put(key, summary)
    return summary


def build_trend_report(
    user_id: int,
    *,
    period: str | None,
    start: Any = None,
    end: Any = None,
    metric: str = "duration",
    today: date | None = None,
) -> TrendReport:
    today = today or date.today()
    window = resolve_window(period, start, end, today=today)
    records = storage.load_workout_records(user_id, start=window.start, end=window.end)
    points = compute_trend_series(records, window, metric=metric)
    comparison_records = storage.load_workout_records(user_id)
    return TrendReport(
        window=window,
        metric=metric,
        points=points,
        comparison=compute_weekly_comparison(comparison_records, today=today),
    )


def summarise_preferences(user_id: int) -> PreferenceSummary:
    prefs = storage.load_preferences(user_id)
    rows = sorted(
        (PreferenceView.from_preference(pref) for pref in prefs),
        key=lambda view: view.preference_score,
        reverse=True,
    )
    return PreferenceSummary(
        stats=preference_stats(prefs),
        rows=rows,
        preferred=[pref.exercise_name for pref in preferred(prefs)],
        disliked=[pref.exercise_name for pref in disliked(prefs)],
    )


def _render_table(headers: Sequence[str], rows: Sequence[Mapping[str, str]]) -> str:
    widths = {key: len(key) for key in headers}
    for row in rows:
        for key in headers:
            widths[key] = max(widths[key], len(row[key]))

    def _format_line(values: Mapping[str, str]) -> str:
        return "  ".join(values[key].rjust(widths[key]) for key in headers)

    header_line = "  ".join(key.upper().rjust(widths[key]) for key in headers)
    body = "\n".join(_format_line(row) for row in rows)
    return "\n".join(filter(None, [header_line, body]))


def render_records_room(summary: RecordsSummary) -> str:
    prs = summary.personal_records
    lines: list[str] = []
    if prs.max_volume:
        lines.append(
            f"PR volume: {prs.max_volume.value:.1f} kg ({prs.max_volume.workout_type}, "
            f"{prs.max_volume.workout_date.isoformat()})"
        )
    if prs.max_reps:
        lines.append(
            f"PR reps: {int(prs.max_reps.value)} ({prs.max_reps.workout_type}, "
            f"{prs.max_reps.workout_date.isoformat()})"
        )
    if prs.longest_duration:
        lines.append(
            f"PR duration: {int(prs.longest_duration.value)} min ({prs.longest_duration.workout_type}, "
            f"{prs.longest_duration.workout_date.isoformat()})"
        )
    if not lines:
        lines.append("No personal records yet.")
    lines.append(f"Streak: current {summary.streaks.current} day(s), longest {summary.streaks.longest} day(s)")
    totals = summary.cumulative
    lines.append(
        f"Totals: {totals.total_workouts} workouts, {totals.total_minutes} min, "
        f"{totals.total_calories} kcal, {totals.total_volume:.1f} kg volume"
    )
    return "\n".join(lines)


def render_trend_table(report: TrendReport) -> str:
    headers = ("bucket", "start", report.metric)
    rows = [
        {
            "bucket": point.label,
            "start": point.start.isoformat(),
            report.metric: f"{point.value:.1f}" if report.metric == "volume" else f"{point.value:.0f}",
        }
        for point in report.points
    ]
    return _render_table(headers, rows)


def render_preferences_table(summary: PreferenceSummary) -> str:
    headers = ("exercise", "preference", "effectiveness", "points", "confidence", "label")
    rows = [
        {
            "exercise": row.exercise_name,
            "preference": f"{row.preference_score:+.2f}",
            "effectiveness": f"{row.effectiveness_score:.2f}",
            "points": str(row.data_points),
            "confidence": f"{row.confidence:.2f}",
            "label": row.label,
        }
        for row in summary.rows
    ]
    return _render_table(headers, rows)
