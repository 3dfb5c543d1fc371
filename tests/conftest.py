from __future__ import annotations

import pytest

from training_insights import storage
from training_insights.config import get_config


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("TRAINING_INSIGHTS_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("TRAINING_INSIGHTS_CONFIG", str(tmp_path / "missing.toml"))
    monkeypatch.delenv("TRAINING_INSIGHTS_DB_FILE", raising=False)
    monkeypatch.delenv("TRAINING_INSIGHTS_USER", raising=False)
    get_config.cache_clear()
    storage.SUMMARY_CACHE.invalidate()
    yield
    get_config.cache_clear()
    storage.SUMMARY_CACHE.invalidate()
