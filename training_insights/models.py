from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Mapping, Optional

WORKOUT_DIFFICULTIES: tuple[str, ...] = ("very_easy", "easy", "moderate", "hard", "very_hard")
DEFAULT_DIFFICULTY = "moderate"
DEFAULT_PREFERENCE_SCORE = 0.0
DEFAULT_EFFECTIVENESS_SCORE = 0.5

__all__ = [
    "parse_iso_date",
    "coerce_number",
    "coerce_rating",
    "ExercisePreference",
    "SessionFeedbackInput",
    "ExerciseExecution",
    "WorkoutRecord",
    "ValidationError",
    "InvalidInput",
    "InvalidRange",
    "WORKOUT_DIFFICULTIES",
]


class ValidationError(ValueError):
    """Raised when user-supplied data cannot be normalised safely."""

    kind = "ValidationError"


class InvalidInput(ValidationError):
    """A value violates the caller contract (NaN, out-of-band rating, wrong type)."""

    kind = "InvalidInput"


class InvalidRange(ValidationError):
    """A date range whose start falls after its end."""

    kind = "InvalidRange"

    def __init__(self, start: date, end: date) -> None:
        super().__init__(
            f"start date {start.isoformat()} is after end date {end.isoformat()}."
        )
        self.start = start
        self.end = end


def parse_iso_date(value: Any, *, field: str = "date") -> date:
    """
    Parse user-supplied ISO-8601 dates.

    Accepts `datetime.date`, `datetime.datetime`, or strings. Time of day is
    discarded. Raises `ValidationError` with a friendlier message if the
    payload cannot be parsed.
    """
    if isinstance(value, date):
        return value if not isinstance(value, datetime) else value.date()

    if not isinstance(value, str):
        raise ValidationError(
            f"{field} must be provided as YYYY-MM-DD text; received {value!r}."
        )

    candidate = value.strip()
    if not candidate:
        raise ValidationError(f"{field} cannot be empty.")

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValidationError(
            f"{field} must be a valid ISO date (YYYY-MM-DD); received {candidate!r}."
        ) from exc

    return parsed.date()


def coerce_number(
    value: Any,
    *,
    field: str = "value",
    minimum: float | None = None,
    maximum: float | None = None,
    allow_empty: bool = False,
    allow_float: bool = True,
) -> float | None:
    """
    Convert arbitrary input into a float with guardrails.

    The `minimum` and `maximum` bounds (inclusive) trigger an InvalidInput when
    breached. When `allow_float` is False, the coerced number must be whole.
    Empty input yields None when `allow_empty` is set.
    """
    if value is None:
        if allow_empty:
            return None
        raise InvalidInput(f"{field} is required.")

    if isinstance(value, bool):
        raise InvalidInput(f"{field} must be a number; received {value!r}.")

    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            if allow_empty:
                return None
            raise InvalidInput(f"{field} is required.")
        try:
            number = float(stripped)
        except ValueError as exc:
            raise InvalidInput(f"{field} must be a number; received {value!r}.") from exc
    else:
        raise InvalidInput(f"{field} must be a number; received {value!r}.")

    if math.isnan(number) or math.isinf(number):
        raise InvalidInput(f"{field} must be a finite number; received {value!r}.")

    if not allow_float and number != round(number):
        raise InvalidInput(f"{field} must be an integer; received {value!r}.")

    if minimum is not None and number < minimum:
        raise InvalidInput(f"{field} must be >= {minimum}; received {number}.")

    if maximum is not None and number > maximum:
        raise InvalidInput(f"{field} must be <= {maximum}; received {number}.")

    return number


def coerce_rating(value: Any, *, field: str, minimum: int = 1, maximum: int = 5) -> int | None:
    """Validate an optional ordinal rating; None stays None."""
    number = coerce_number(
        value,
        field=field,
        minimum=minimum,
        maximum=maximum,
        allow_empty=True,
        allow_float=False,
    )
    return None if number is None else int(number)


def _optional_int(value: Any, *, field: str) -> int | None:
    number = coerce_number(value, field=field, minimum=0, allow_empty=True, allow_float=False)
    return None if number is None else int(number)


def _optional_float(value: Any, *, field: str) -> float | None:
    return coerce_number(value, field=field, minimum=0.0, allow_empty=True)


@dataclass
class ExercisePreference:
    """Learned preference/effectiveness estimate for one (user, exercise) pair."""

    user_id: int
    exercise_name: str
    preference_score: float = DEFAULT_PREFERENCE_SCORE
    effectiveness_score: float = DEFAULT_EFFECTIVENESS_SCORE
    data_points: int = 0
    last_updated: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "exercise_name": self.exercise_name,
            "preference_score": self.preference_score,
            "effectiveness_score": self.effectiveness_score,
            "data_points": self.data_points,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }


@dataclass(frozen=True)
class SessionFeedbackInput:
    """
    Whole-session feedback submitted once a workout finishes.

    Every rated field is optional; validation happens here so the scoring and
    learning code only ever sees in-band values.
    """

    completion_rate: Optional[float] = None
    overall_difficulty: Optional[int] = None
    satisfaction: Optional[int] = None
    energy_after: Optional[int] = None
    muscle_soreness: Optional[int] = None
    would_repeat: Optional[bool] = None
    comments: Optional[str] = None

    def __post_init__(self) -> None:
        completion = coerce_number(
            self.completion_rate,
            field="completion_rate",
            minimum=0.0,
            maximum=1.0,
            allow_empty=True,
        )
        object.__setattr__(self, "completion_rate", completion)
        for name in ("overall_difficulty", "satisfaction", "energy_after", "muscle_soreness"):
            object.__setattr__(self, name, coerce_rating(getattr(self, name), field=name))
        if self.would_repeat is not None and not isinstance(self.would_repeat, bool):
            raise InvalidInput(f"would_repeat must be true or false; received {self.would_repeat!r}.")

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "SessionFeedbackInput":
        completion = coerce_number(
            payload.get("completion_rate"),
            field="completion_rate",
            minimum=0.0,
            maximum=1.0,
            allow_empty=True,
        )
        comments = payload.get("comments")
        return cls(
            completion_rate=completion,
            overall_difficulty=coerce_rating(payload.get("overall_difficulty"), field="overall_difficulty"),
            satisfaction=coerce_rating(payload.get("satisfaction"), field="satisfaction"),
            energy_after=coerce_rating(payload.get("energy_after"), field="energy_after"),
            muscle_soreness=coerce_rating(payload.get("muscle_soreness"), field="muscle_soreness"),
            would_repeat=payload.get("would_repeat"),
            comments=str(comments).strip() or None if comments is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "completion_rate": self.completion_rate,
            "overall_difficulty": self.overall_difficulty,
            "satisfaction": self.satisfaction,
            "energy_after": self.energy_after,
            "muscle_soreness": self.muscle_soreness,
            "would_repeat": self.would_repeat,
            "comments": self.comments,
        }


@dataclass(frozen=True)
class ExerciseExecution:
    """One exercise performed inside a session, with planned vs. completed work."""

    exercise_name: str
    planned_sets: Optional[int] = None
    completed_sets: Optional[int] = None
    planned_reps: Optional[int] = None
    completed_reps: Optional[int] = None
    planned_duration: Optional[int] = None
    actual_duration: Optional[int] = None
    perceived_exertion: Optional[int] = None
    weight: Optional[float] = None

    def __post_init__(self) -> None:
        name = (self.exercise_name or "").strip()
        if not name:
            raise InvalidInput("exercise_name is required.")
        object.__setattr__(self, "exercise_name", name)
        for count in (
            "planned_sets",
            "completed_sets",
            "planned_reps",
            "completed_reps",
            "planned_duration",
            "actual_duration",
        ):
            object.__setattr__(self, count, _optional_int(getattr(self, count), field=count))
        object.__setattr__(self, "weight", _optional_float(self.weight, field="weight"))
        object.__setattr__(
            self,
            "perceived_exertion",
            coerce_rating(self.perceived_exertion, field="perceived_exertion", minimum=1, maximum=10),
        )

    @property
    def completion_rate(self) -> float | None:
        """Completed volume over planned volume, when both sides are known."""
        values = (self.planned_sets, self.completed_sets, self.planned_reps, self.completed_reps)
        if any(value is None for value in values):
            return None
        if self.planned_sets <= 0 or self.planned_reps <= 0:
            return None
        return (self.completed_sets * self.completed_reps) / (self.planned_sets * self.planned_reps)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | str) -> "ExerciseExecution":
        if isinstance(payload, str):
            return cls(exercise_name=payload)
        return cls(
            exercise_name=str(payload.get("exercise_name") or ""),
            planned_sets=_optional_int(payload.get("planned_sets"), field="planned_sets"),
            completed_sets=_optional_int(payload.get("completed_sets"), field="completed_sets"),
            planned_reps=_optional_int(payload.get("planned_reps"), field="planned_reps"),
            completed_reps=_optional_int(payload.get("completed_reps"), field="completed_reps"),
            planned_duration=_optional_int(payload.get("planned_duration"), field="planned_duration"),
            actual_duration=_optional_int(payload.get("actual_duration"), field="actual_duration"),
            perceived_exertion=coerce_rating(
                payload.get("perceived_exertion"), field="perceived_exertion", maximum=10
            ),
            weight=_optional_float(payload.get("weight"), field="weight"),
        )


@dataclass(frozen=True)
class WorkoutRecord:
    """A single logged activity entry; the unit the records analyzer scans."""

    workout_date: date
    workout_type: str
    duration: Optional[int] = None
    calories: Optional[int] = None
    intensity: Optional[int] = None
    sets: Optional[int] = None
    reps: Optional[int] = None
    weight: Optional[float] = None
    difficulty: str = DEFAULT_DIFFICULTY
    notes: Optional[str] = None
    user_id: Optional[int] = None
    record_id: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "workout_date", parse_iso_date(self.workout_date, field="workout_date"))
        if self.difficulty not in WORKOUT_DIFFICULTIES:
            raise InvalidInput(
                f"difficulty must be one of {WORKOUT_DIFFICULTIES}; received {self.difficulty!r}."
            )

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "WorkoutRecord":
        workout_type = str(payload.get("workout_type") or "").strip()
        if not workout_type:
            raise ValidationError("workout_type is required.")
        intensity = coerce_rating(payload.get("intensity"), field="intensity", maximum=10)
        difficulty = str(payload.get("difficulty") or DEFAULT_DIFFICULTY).strip().lower()
        notes = payload.get("notes")
        return cls(
            workout_date=parse_iso_date(payload.get("workout_date"), field="workout_date"),
            workout_type=workout_type,
            duration=_optional_int(payload.get("duration"), field="duration"),
            calories=_optional_int(payload.get("calories"), field="calories"),
            intensity=intensity,
            sets=_optional_int(payload.get("sets"), field="sets"),
            reps=_optional_int(payload.get("reps"), field="reps"),
            weight=_optional_float(payload.get("weight"), field="weight"),
            difficulty=difficulty,
            notes=str(notes).strip() or None if notes is not None else None,
            user_id=payload.get("user_id"),
            record_id=payload.get("record_id"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Make the record JSON serialisable."""
        payload: Dict[str, Any] = {
            "workout_date": self.workout_date.isoformat(),
            "workout_type": self.workout_type,
            "duration": self.duration,
            "calories": self.calories,
            "intensity": self.intensity,
            "sets": self.sets,
            "reps": self.reps,
            "weight": self.weight,
            "difficulty": self.difficulty,
        }
        if self.notes:
            payload["notes"] = self.notes
        if self.user_id is not None:
            payload["user_id"] = self.user_id
        if self.record_id is not None:
            payload["record_id"] = self.record_id
        return payload
