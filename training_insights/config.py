from __future__ import annotations

import tomllib
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

from .env import get_env


@dataclass(frozen=True)
class LearningSettings:
    default_weight: float = 0.1
    adaptive: bool = True


@dataclass(frozen=True)
class PreferenceThresholds:
    preferred: float = 0.2
    disliked: float = -0.2
    effective: float = 0.7
    reliable_data_points: int = 3


@dataclass(frozen=True)
class AppConfig:
    learning: LearningSettings = LearningSettings()
    thresholds: PreferenceThresholds = PreferenceThresholds()


def _config_path() -> Path | None:
    """Resolve the TOML configuration file, if present."""
    env_override = get_env("CONFIG")
    if env_override:
        path = Path(env_override).expanduser()
        return path if path.exists() else None

    default_path = Path("config/training_insights.toml")
    if default_path.exists():
        return default_path
    return None


def _load_toml(path: Path) -> Mapping[str, Any]:
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _coerce_learning(raw: Mapping[str, Any] | None) -> LearningSettings:
    base = LearningSettings()
    if not raw:
        return base
    try:
        weight = float(raw.get("default_weight", base.default_weight))
    except (TypeError, ValueError):
        return base
    if not 0.0 < weight <= 1.0:
        weight = base.default_weight
    adaptive = raw.get("adaptive", base.adaptive)
    if not isinstance(adaptive, bool):
        adaptive = base.adaptive
    return LearningSettings(default_weight=weight, adaptive=adaptive)


def _coerce_thresholds(raw: Mapping[str, Any] | None) -> PreferenceThresholds:
    base = PreferenceThresholds()
    if not raw:
        return base
    try:
        preferred = float(raw.get("preferred_threshold", base.preferred))
        disliked = float(raw.get("disliked_threshold", base.disliked))
        effective = float(raw.get("effective_threshold", base.effective))
        reliable = int(raw.get("reliable_data_points", base.reliable_data_points))
    except (TypeError, ValueError):
        return base
    return PreferenceThresholds(
        preferred=preferred,
        disliked=disliked,
        effective=effective,
        reliable_data_points=reliable,
    )


def _build_config(raw: Mapping[str, Any]) -> AppConfig:
    learning_section = raw.get("learning")
    thresholds_section = raw.get("preferences")
    return AppConfig(
        learning=_coerce_learning(learning_section if isinstance(learning_section, Mapping) else None),
        thresholds=_coerce_thresholds(thresholds_section if isinstance(thresholds_section, Mapping) else None),
    )


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Load configuration once, falling back to built-in defaults."""
    path = _config_path()
    if not path:
        return AppConfig()
    data = _load_toml(path)
    return _build_config(data)


def as_dict() -> dict[str, Any]:
    """Return the effective configuration for debug/CLI display."""
    config = get_config()
    return {
        "learning": {
            "default_weight": config.learning.default_weight,
            "adaptive": config.learning.adaptive,
        },
        "preferences": {
            "preferred_threshold": config.thresholds.preferred,
            "disliked_threshold": config.thresholds.disliked,
            "effective_threshold": config.thresholds.effective,
            "reliable_data_points": config.thresholds.reliable_data_points,
        },
        "source": str(_config_path() or "defaults"),
    }
