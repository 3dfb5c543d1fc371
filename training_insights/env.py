from __future__ import annotations

import os

PRIMARY_PREFIX = "TRAINING_INSIGHTS_"


def get_env(name: str, default: str | None = None) -> str | None:
    """Resolve a `TRAINING_INSIGHTS_`-prefixed environment variable."""
    value = os.getenv(f"{PRIMARY_PREFIX}{name}")
    if value is not None:
        return value
    return default
