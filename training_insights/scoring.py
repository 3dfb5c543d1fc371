from __future__ import annotations

from .models import SessionFeedbackInput

COMPLETION_WEIGHT = 0.4
DIFFICULTY_WEIGHT = 0.3
SATISFACTION_WEIGHT = 0.3
IDEAL_DIFFICULTY = 3.0

UNRATED_LABEL = "unrated"
DIFFICULTY_LABELS = {
    1: "too easy",
    2: "easy",
    3: "just right",
    4: "hard",
    5: "too hard",
}
SATISFACTION_LABELS = {
    1: "poor",
    2: "fair",
    3: "okay",
    4: "good",
    5: "excellent",
}


def compute_success_score(
    completion_rate: float | None,
    overall_difficulty: int | None,
    satisfaction: int | None,
) -> float:
    """
    Composite session success score in [0, 1].

    40% completion, 30% closeness of perceived difficulty to 3 (linear decay to
    zero at 1 and 5), 30% satisfaction rescaled from 1..5. Any missing input
    yields exactly 0.0.
    """
    if completion_rate is None or overall_difficulty is None or satisfaction is None:
        return 0.0

    completion_score = completion_rate * COMPLETION_WEIGHT

    difficulty_score = (1.0 - abs(overall_difficulty - IDEAL_DIFFICULTY) / 2.0) * DIFFICULTY_WEIGHT
    difficulty_score = max(0.0, difficulty_score)

    satisfaction_score = (satisfaction - 1.0) / 4.0 * SATISFACTION_WEIGHT

    return min(completion_score + difficulty_score + satisfaction_score, 1.0)


def score_feedback(feedback: SessionFeedbackInput) -> float:
    return compute_success_score(
        feedback.completion_rate,
        feedback.overall_difficulty,
        feedback.satisfaction,
    )


def is_fully_rated(feedback: SessionFeedbackInput) -> bool:
    """True when every input of the success score is present."""
    return None not in (feedback.completion_rate, feedback.overall_difficulty, feedback.satisfaction)


def difficulty_label(value: int | None) -> str:
    if value is None:
        return UNRATED_LABEL
    return DIFFICULTY_LABELS.get(value, UNRATED_LABEL)


def satisfaction_label(value: int | None) -> str:
    if value is None:
        return UNRATED_LABEL
    return SATISFACTION_LABELS.get(value, UNRATED_LABEL)
