"""Online learning of per-user, per-exercise preference and effectiveness.

Both scores follow an exponential moving average::

    updated = current * (1 - weight) + sample * weight

and are clamped to their range after every update. Only preference updates
count as data points; effectiveness updates leave ``data_points`` untouched.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable

from .config import LearningSettings, PreferenceThresholds, get_config
from .models import (
    DEFAULT_EFFECTIVENESS_SCORE,
    DEFAULT_PREFERENCE_SCORE,
    ExerciseExecution,
    ExercisePreference,
    InvalidInput,
    SessionFeedbackInput,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_WEIGHT = 0.1
CONFIDENCE_SATURATION = 6.0
PREFERENCE_RANGE = (-1.0, 1.0)
EFFECTIVENESS_RANGE = (0.0, 1.0)

# Lower bound of each band, evaluated top-down.
PREFERENCE_BANDS: tuple[tuple[float, str], ...] = (
    (0.6, "very favored"),
    (0.2, "favored"),
    (-0.2, "neutral"),
    (-0.6, "disfavored"),
)
LOWEST_BAND = "very disfavored"


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _clamp(value: float, bounds: tuple[float, float]) -> float:
    lower, upper = bounds
    return max(lower, min(upper, value))


def _require_finite(sample: float | None, *, field: str) -> None:
    if sample is not None and (math.isnan(sample) or math.isinf(sample)):
        raise InvalidInput(f"{field} sample must be a finite number; received {sample!r}.")


def _ema(current: float, sample: float, weight: float | None) -> float:
    learning_rate = weight if weight is not None else DEFAULT_WEIGHT
    return current * (1 - learning_rate) + sample * learning_rate


def update_preference(
    pref: ExercisePreference,
    new_score: float | None,
    weight: float | None = None,
    *,
    clock: Callable[[], datetime] = _now_utc,
) -> bool:
    """
    Blend ``new_score`` into the preference estimate.

    Returns False (and leaves ``pref`` untouched) when there is no signal.
    A successful update increments ``data_points``. NaN or infinite samples
    raise InvalidInput.
    """
    _require_finite(new_score, field="preference")
    if new_score is None:
        return False
    pref.preference_score = _clamp(_ema(pref.preference_score, new_score, weight), PREFERENCE_RANGE)
    pref.data_points += 1
    pref.last_updated = clock()
    return True


def update_effectiveness(
    pref: ExercisePreference,
    new_score: float | None,
    weight: float | None = None,
    *,
    clock: Callable[[], datetime] = _now_utc,
) -> bool:
    """Blend ``new_score`` into the effectiveness estimate without counting a data point."""
    _require_finite(new_score, field="effectiveness")
    if new_score is None:
        return False
    pref.effectiveness_score = _clamp(
        _ema(pref.effectiveness_score, new_score, weight), EFFECTIVENESS_RANGE
    )
    pref.last_updated = clock()
    return True


def preference_label(score: float) -> str:
    """Map a preference score onto its ordinal band."""
    for lower_bound, label in PREFERENCE_BANDS:
        if score >= lower_bound:
            return label
    return LOWEST_BAND


def confidence(data_points: int | None) -> float:
    """Saturating trust in an estimate: 0 with no data, 1.0 from six updates on."""
    if not data_points:
        return 0.0
    return min(data_points / CONFIDENCE_SATURATION, 1.0)


def learning_rate_for(data_points: int | None) -> float:
    """Learning rate that shrinks as evidence accumulates."""
    if data_points is None or data_points <= 1:
        return 0.3
    if data_points <= 3:
        return 0.2
    if data_points <= 5:
        return 0.15
    if data_points <= 10:
        return 0.1
    return 0.05


def _execution_completion(execution: ExerciseExecution | None) -> float | None:
    return execution.completion_rate if execution is not None else None


def exercise_preference_signal(
    feedback: SessionFeedbackInput,
    execution: ExerciseExecution | None = None,
) -> float:
    """
    Preference sample for one exercise from session satisfaction, the
    would-repeat answer and the exercise's own completion rate.
    """
    score = 0.0
    if feedback.satisfaction is not None:
        score += ((feedback.satisfaction - 3.0) / 2.0) * 0.4
    if feedback.would_repeat is not None:
        score += (0.5 if feedback.would_repeat else -0.5) * 0.3
    completion = _execution_completion(execution)
    if completion is not None:
        score += ((completion - 0.5) * 2.0 - 1.0) * 0.3
    return _clamp(score, PREFERENCE_RANGE)


def exercise_effectiveness_signal(
    execution: ExerciseExecution | None,
    success_score: float | None = None,
) -> float | None:
    """
    Effectiveness sample for one exercise from RPE and completion.

    Executions without RPE or completion data fall back to the session
    success score; with neither available there is no signal.
    """
    rpe = execution.perceived_exertion if execution is not None else None
    completion = _execution_completion(execution)
    if rpe is None and completion is None:
        return success_score

    score = 0.5
    if rpe is not None:
        if 6 <= rpe <= 8:
            score += 0.3
        elif 4 <= rpe <= 9:
            score += 0.1
    if completion is not None:
        if completion >= 0.9:
            score += 0.2
        elif completion >= 0.7:
            score += 0.1
        elif completion < 0.5:
            score -= 0.2
    return _clamp(score, EFFECTIVENESS_RANGE)


class PreferenceLearner:
    """Applies feedback signals to stored preferences."""

    def __init__(
        self,
        settings: LearningSettings | None = None,
        *,
        clock: Callable[[], datetime] = _now_utc,
    ) -> None:
        self.settings = settings or get_config().learning
        self._clock = clock

    def weight_for(self, pref: ExercisePreference) -> float:
        if self.settings.adaptive:
            return learning_rate_for(pref.data_points)
        return self.settings.default_weight

    def learn(
        self,
        pref: ExercisePreference,
        preference_signal: float | None,
        effectiveness_signal: float | None,
    ) -> ExercisePreference:
        """
        Fold one feedback event into ``pref`` in place.

        A preference with no data points yet is seeded with the signals
        directly; afterwards both scores move by the moving-average rule.
        """
        _require_finite(preference_signal, field="preference")
        _require_finite(effectiveness_signal, field="effectiveness")
        if pref.data_points == 0:
            pref.preference_score = _clamp(
                preference_signal if preference_signal is not None else DEFAULT_PREFERENCE_SCORE,
                PREFERENCE_RANGE,
            )
            pref.effectiveness_score = _clamp(
                effectiveness_signal
                if effectiveness_signal is not None
                else DEFAULT_EFFECTIVENESS_SCORE,
                EFFECTIVENESS_RANGE,
            )
            pref.data_points = 1
            pref.last_updated = self._clock()
            LOGGER.debug(
                "Seeded preference user=%s exercise=%s preference=%.3f effectiveness=%.3f",
                pref.user_id,
                pref.exercise_name,
                pref.preference_score,
                pref.effectiveness_score,
            )
            return pref

        weight = self.weight_for(pref)
        update_preference(pref, preference_signal, weight, clock=self._clock)
        update_effectiveness(pref, effectiveness_signal, weight, clock=self._clock)
        LOGGER.debug(
            "Updated preference user=%s exercise=%s weight=%.2f preference=%.3f "
            "effectiveness=%.3f data_points=%d",
            pref.user_id,
            pref.exercise_name,
            weight,
            pref.preference_score,
            pref.effectiveness_score,
            pref.data_points,
        )
        return pref


@dataclass(frozen=True)
class PreferenceStats:
    total_exercises: int
    preferred_count: int
    disliked_count: int
    reliable_count: int


def _thresholds(thresholds: PreferenceThresholds | None) -> PreferenceThresholds:
    return thresholds or get_config().thresholds


def preference_stats(
    preferences: Iterable[ExercisePreference],
    thresholds: PreferenceThresholds | None = None,
) -> PreferenceStats:
    limits = _thresholds(thresholds)
    items = list(preferences)
    return PreferenceStats(
        total_exercises=len(items),
        preferred_count=sum(1 for p in items if p.preference_score >= limits.preferred),
        disliked_count=sum(1 for p in items if p.preference_score <= limits.disliked),
        reliable_count=sum(1 for p in items if p.data_points >= limits.reliable_data_points),
    )


def preferred(
    preferences: Iterable[ExercisePreference],
    thresholds: PreferenceThresholds | None = None,
) -> list[ExercisePreference]:
    limits = _thresholds(thresholds)
    matches = [p for p in preferences if p.preference_score >= limits.preferred]
    return sorted(matches, key=lambda p: p.preference_score, reverse=True)


def disliked(
    preferences: Iterable[ExercisePreference],
    thresholds: PreferenceThresholds | None = None,
) -> list[ExercisePreference]:
    limits = _thresholds(thresholds)
    matches = [p for p in preferences if p.preference_score <= limits.disliked]
    return sorted(matches, key=lambda p: p.preference_score)


def effective(
    preferences: Iterable[ExercisePreference],
    thresholds: PreferenceThresholds | None = None,
) -> list[ExercisePreference]:
    limits = _thresholds(thresholds)
    matches = [p for p in preferences if p.effectiveness_score >= limits.effective]
    return sorted(matches, key=lambda p: p.effectiveness_score, reverse=True)


def reliable(
    preferences: Iterable[ExercisePreference],
    thresholds: PreferenceThresholds | None = None,
) -> list[ExercisePreference]:
    limits = _thresholds(thresholds)
    matches = [p for p in preferences if p.data_points >= limits.reliable_data_points]
    return sorted(matches, key=lambda p: p.preference_score, reverse=True)
