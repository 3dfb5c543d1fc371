from __future__ import annotations

import json
import logging
from datetime import date
from pathlib import Path
from typing import Any, Mapping, Optional

import typer

from .config import as_dict as config_as_dict
from .env import get_env
from .metrics import TREND_METRICS, compute_difficulty_distribution, compute_type_breakdown
from .models import (
    DEFAULT_DIFFICULTY,
    SessionFeedbackInput,
    ValidationError,
    WorkoutRecord,
    parse_iso_date,
)
from .services import (
    build_records_room,
    build_trend_report,
    render_preferences_table,
    render_records_room,
    render_trend_table,
    submit_session_feedback,
    summarise_preferences,
)
from .storage import append_workout_record, load_workout_records
from .trends import PERIODS

app = typer.Typer(help="Track workouts, learn exercise preferences and review progress.")

DEFAULT_USER_ID = 1


def _fail(message: str, *, code: int = 1) -> None:
    typer.secho(message, fg=typer.colors.RED, err=True)
    raise typer.Exit(code=code)


@app.callback()
def main_callback() -> None:
    level = (get_env("LOG_LEVEL") or "WARNING").upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _default_user() -> int:
    raw = get_env("USER")
    if raw is None or not raw.strip():
        return DEFAULT_USER_ID
    try:
        return int(raw)
    except ValueError:
        _fail(f"TRAINING_INSIGHTS_USER must be an integer; received {raw!r}.")
    return DEFAULT_USER_ID


def _resolve_user(user: Optional[int]) -> int:
    return user if user is not None else _default_user()


def _parse_date_option(value: Optional[str], *, param_name: str) -> date | None:
    if value is None:
        return None
    try:
        return parse_iso_date(value, field=param_name)
    except ValidationError as exc:
        raise typer.BadParameter(str(exc), param_name=param_name) from exc


def _load_payload(path: Path) -> Mapping[str, Any]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise typer.BadParameter(f"Could not read {path}: {exc}", param_name="payload") from exc
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"{path} is not valid JSON: {exc}", param_name="payload") from exc
    if not isinstance(payload, Mapping):
        raise typer.BadParameter("Payload must be a JSON object.", param_name="payload")
    return payload


@app.command()
def log(
    workout_type: str = typer.Option(
        ...,
        "--type",
        "-t",
        help="Workout or exercise name (e.g. 'squat', 'running').",
    ),
    date_text: Optional[str] = typer.Option(
        None,
        "--date",
        "-d",
        help="Workout date in YYYY-MM-DD format (defaults to today).",
    ),
    duration: Optional[int] = typer.Option(None, "--duration", "-m", help="Duration in minutes."),
    calories: Optional[int] = typer.Option(None, "--calories", help="Calories burned."),
    intensity: Optional[int] = typer.Option(None, "--intensity", help="Intensity on a 1-10 scale."),
    sets: Optional[int] = typer.Option(None, "--sets", help="Completed sets."),
    reps: Optional[int] = typer.Option(None, "--reps", help="Reps per set."),
    weight: Optional[float] = typer.Option(None, "--weight", "-w", help="Load in kilograms."),
    difficulty: str = typer.Option(
        DEFAULT_DIFFICULTY,
        "--difficulty",
        help="Perceived difficulty (very_easy, easy, moderate, hard, very_hard).",
    ),
    notes: Optional[str] = typer.Option(None, "--notes", help="Free-form notes."),
    user: Optional[int] = typer.Option(
        None,
        "--user",
        "-u",
        help="User id (defaults to TRAINING_INSIGHTS_USER or 1).",
    ),
) -> None:
    """
    Log a workout to the activity log.

    Examples:
        training-insights log --type squat --sets 5 --reps 5 --weight 100
        training-insights log --type running --duration 30 --calories 320 --date 2024-06-01
    """
    user_id = _resolve_user(user)
    try:
        record = WorkoutRecord.from_mapping(
            {
                "workout_date": date_text or date.today().isoformat(),
                "workout_type": workout_type,
                "duration": duration,
                "calories": calories,
                "intensity": intensity,
                "sets": sets,
                "reps": reps,
                "weight": weight,
                "difficulty": difficulty,
                "notes": notes,
            }
        )
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc

    record_id = append_workout_record(record, user_id=user_id)
    typer.echo(
        f"[user {user_id}] Logged {record.workout_type} on {record.workout_date.isoformat()} "
        f"(record #{record_id})."
    )


@app.command()
def feedback(
    session_id: str = typer.Option(..., "--session", "-s", help="Identifier of the finished session."),
    exercise: list[str] = typer.Option(
        [],
        "--exercise",
        "-e",
        help="Exercise performed in the session (repeatable).",
    ),
    payload: Optional[Path] = typer.Option(
        None,
        "--payload",
        "-p",
        help="JSON file with 'feedback' and 'exercises' keys; flags override its feedback fields.",
    ),
    completion: Optional[float] = typer.Option(None, "--completion", help="Completion rate 0.0-1.0."),
    difficulty: Optional[int] = typer.Option(None, "--difficulty", help="Overall difficulty 1-5."),
    satisfaction: Optional[int] = typer.Option(None, "--satisfaction", help="Satisfaction 1-5."),
    energy: Optional[int] = typer.Option(None, "--energy", help="Energy after the session 1-5."),
    soreness: Optional[int] = typer.Option(None, "--soreness", help="Muscle soreness 1-5."),
    would_repeat: Optional[bool] = typer.Option(
        None,
        "--repeat/--no-repeat",
        help="Whether you would repeat this session.",
    ),
    comments: Optional[str] = typer.Option(None, "--comments", help="Free-form comments."),
    date_text: Optional[str] = typer.Option(
        None,
        "--date",
        "-d",
        help="Session date; when given the exercises are also added to the activity log.",
    ),
    user: Optional[int] = typer.Option(None, "--user", "-u", help="User id."),
) -> None:
    """
    Submit feedback for a finished session and update exercise preferences.

    Examples:
        training-insights feedback --session s-42 --exercise squat --exercise plank --completion 0.9 --difficulty 3 --satisfaction 4 --repeat
        training-insights feedback --session s-43 --payload session.json
    """
    user_id = _resolve_user(user)
    session_date = _parse_date_option(date_text, param_name="date")

    raw_feedback: dict[str, Any] = {}
    exercises: list[Any] = []
    if payload is not None:
        data = _load_payload(payload)
        if isinstance(data.get("feedback"), Mapping):
            raw_feedback.update(data["feedback"])
        if isinstance(data.get("exercises"), list):
            exercises.extend(data["exercises"])
    exercises.extend(exercise)

    overrides = {
        "completion_rate": completion,
        "overall_difficulty": difficulty,
        "satisfaction": satisfaction,
        "energy_after": energy,
        "muscle_soreness": soreness,
        "would_repeat": would_repeat,
        "comments": comments,
    }
    raw_feedback.update({key: value for key, value in overrides.items() if value is not None})

    if not exercises:
        raise typer.BadParameter("Provide at least one --exercise or a payload with exercises.")

    try:
        session_feedback = SessionFeedbackInput.from_mapping(raw_feedback)
        outcome = submit_session_feedback(
            session_id=session_id,
            user_id=user_id,
            exercises=exercises,
            feedback=session_feedback,
            session_date=session_date,
        )
    except ValidationError as exc:
        _fail(f"Could not record feedback: {exc}")

    typer.echo(outcome.confirmation)
    typer.echo(
        f"Difficulty: {outcome.difficulty_label}; satisfaction: {outcome.satisfaction_label}."
    )
    for update in outcome.updates:
        typer.echo(
            f" • {update.exercise_name}: preference {update.preference_score:+.2f} ({update.label}), "
            f"effectiveness {update.effectiveness_score:.2f}, confidence {update.confidence:.2f}"
        )
    if outcome.records_logged:
        typer.echo(f"Added {outcome.records_logged} entr{'ies' if outcome.records_logged != 1 else 'y'} to the activity log.")


@app.command()
def records(
    user: Optional[int] = typer.Option(None, "--user", "-u", help="User id."),
    today: Optional[str] = typer.Option(
        None,
        "--today",
        help="Evaluate streaks as of this date (YYYY-MM-DD); defaults to today.",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the summary as JSON."),
) -> None:
    """
    Show personal records, streaks and lifetime totals.
    """
    user_id = _resolve_user(user)
    reference_day = _parse_date_option(today, param_name="today")
    summary = build_records_room(user_id, today=reference_day)
    if as_json:
        typer.echo(json.dumps(summary.to_dict(), indent=2))
        return
    typer.echo(render_records_room(summary))


@app.command()
def trends(
    period: str = typer.Option(
        "daily",
        "--period",
        "-p",
        case_sensitive=False,
        help=f"Bucket size: {', '.join(PERIODS)}. Unknown values fall back to daily.",
    ),
    start: Optional[str] = typer.Option(None, "--start", help="Range start (YYYY-MM-DD); needs --end."),
    end: Optional[str] = typer.Option(None, "--end", help="Range end (YYYY-MM-DD); needs --start."),
    metric: str = typer.Option(
        "duration",
        "--metric",
        "-m",
        help=f"Metric to chart: {', '.join(TREND_METRICS)}.",
    ),
    user: Optional[int] = typer.Option(None, "--user", "-u", help="User id."),
    today: Optional[str] = typer.Option(None, "--today", help="Reference date for default windows."),
) -> None:
    """
    Show a bucketed trend series for one metric.

    Examples:
        training-insights trends --period weekly --metric calories
        training-insights trends --start 2024-05-01 --end 2024-05-31 --metric volume
    """
    user_id = _resolve_user(user)
    if metric not in TREND_METRICS:
        raise typer.BadParameter(
            f"metric must be one of {', '.join(TREND_METRICS)}.", param_name="metric"
        )
    reference_day = _parse_date_option(today, param_name="today")
    try:
        report = build_trend_report(
            user_id,
            period=period,
            start=start,
            end=end,
            metric=metric,
            today=reference_day,
        )
    except ValidationError as exc:
        _fail(str(exc))

    window = report.window
    typer.echo(
        f"{window.period.capitalize()} {metric} from {window.start.isoformat()} to {window.end.isoformat()}"
    )
    typer.echo(render_trend_table(report))
    comparison = report.comparison
    typer.echo(
        f"This week: {comparison.this_week_duration} min ({comparison.duration_change:+d}), "
        f"{comparison.this_week_calories} kcal ({comparison.calories_change:+d}) vs last week."
    )


@app.command()
def preferences(
    user: Optional[int] = typer.Option(None, "--user", "-u", help="User id."),
) -> None:
    """
    List learned exercise preferences, best liked first.
    """
    user_id = _resolve_user(user)
    summary = summarise_preferences(user_id)
    if not summary.rows:
        typer.echo("No preferences learned yet.")
        raise typer.Exit(code=0)

    typer.echo(render_preferences_table(summary))
    stats = summary.stats
    typer.echo(
        f"{stats.total_exercises} exercises: {stats.preferred_count} preferred, "
        f"{stats.disliked_count} disliked, {stats.reliable_count} reliable."
    )
    if summary.preferred:
        typer.echo("Preferred: " + ", ".join(summary.preferred))
    if summary.disliked:
        typer.secho("Disliked: " + ", ".join(summary.disliked), fg=typer.colors.YELLOW)


@app.command("history")
def history(
    user: Optional[int] = typer.Option(None, "--user", "-u", help="User id."),
    since: Optional[str] = typer.Option(None, "--since", help="Only show workouts on or after this date."),
) -> None:
    """
    List logged workouts, oldest first.
    """
    user_id = _resolve_user(user)
    since_date = _parse_date_option(since, param_name="since")
    entries = load_workout_records(user_id, start=since_date)
    if not entries:
        typer.echo("No workouts logged yet.")
        raise typer.Exit(code=0)
    for record in entries:
        details = [
            f"{record.duration} min" if record.duration is not None else None,
            f"{record.sets}x{record.reps}" if record.sets is not None and record.reps is not None else None,
            f"@ {record.weight:g} kg" if record.weight is not None else None,
            f"{record.calories} kcal" if record.calories is not None else None,
        ]
        extra = " ".join(item for item in details if item)
        typer.echo(
            f"{record.workout_date.isoformat()}  {record.workout_type}  {extra}".rstrip()
            + f"  [{record.difficulty}]"
        )

    breakdown = compute_type_breakdown(entries)
    typer.echo(
        "By type: "
        + ", ".join(
            f"{workout_type} x{count}"
            for workout_type, count in zip(breakdown["workout_type"], breakdown["count"])
        )
    )
    distribution = compute_difficulty_distribution(entries)
    typer.echo("Difficulty: " + ", ".join(f"{level}={count}" for level, count in distribution.items()))


@app.command("config")
def config_show() -> None:
    """
    Show the effective configuration (learning rate, preference thresholds).
    """
    config = config_as_dict()
    typer.echo(f"Config source: {config.get('source')}")
    learning = config.get("learning", {})
    typer.echo(
        f"Learning: default_weight={learning.get('default_weight')}, adaptive={learning.get('adaptive')}"
    )
    thresholds = config.get("preferences", {})
    typer.echo(
        "Preference thresholds: "
        f"preferred>={thresholds.get('preferred_threshold')}, "
        f"disliked<={thresholds.get('disliked_threshold')}, "
        f"effective>={thresholds.get('effective_threshold')}, "
        f"reliable>={thresholds.get('reliable_data_points')} data points"
    )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
