from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

import pandas as pd

from .models import InvalidRange, parse_iso_date

DEFAULT_PERIOD = "daily"
PERIODS: tuple[str, ...] = ("daily", "weekly", "monthly")

DAILY_WINDOW_DAYS = 5
WEEKLY_WINDOW_WEEKS = 4
MONTHLY_WINDOW_MONTHS = 3


@dataclass(frozen=True)
class TrendWindow:
    start: date
    end: date
    period: str

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


def normalise_period(period: str | None) -> str:
    """Lower-case ``period``; anything unrecognised falls back to daily."""
    candidate = (period or "").strip().lower()
    return candidate if candidate in PERIODS else DEFAULT_PERIOD


def _default_start(period: str, today: date) -> date:
    if period == "weekly":
        return today - timedelta(days=WEEKLY_WINDOW_WEEKS * 7 - 1)
    if period == "monthly":
        shifted = pd.Timestamp(today) - pd.DateOffset(months=MONTHLY_WINDOW_MONTHS - 1)
        return shifted.date()
    return today - timedelta(days=DAILY_WINDOW_DAYS - 1)


def resolve_window(
    period: str | None,
    start: Any = None,
    end: Any = None,
    *,
    today: date | None = None,
) -> TrendWindow:
    """
    Concrete date range for a symbolic period.

    Explicit bounds win when both are supplied. Otherwise ``daily`` covers the
    last 5 days, ``weekly`` the last 28 days and ``monthly`` the last three
    calendar months, all ending today. Raises InvalidRange when start > end.
    """
    resolved_period = normalise_period(period)
    if start is not None and end is not None:
        window_start = parse_iso_date(start, field="start_date")
        window_end = parse_iso_date(end, field="end_date")
    else:
        window_end = today or date.today()
        window_start = _default_start(resolved_period, window_end)

    if window_start > window_end:
        raise InvalidRange(window_start, window_end)
    return TrendWindow(start=window_start, end=window_end, period=resolved_period)
