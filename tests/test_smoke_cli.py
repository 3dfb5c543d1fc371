from __future__ import annotations

import json

from typer.testing import CliRunner

from training_insights.cli import app


def test_cli_smoke(tmp_path):
    runner = CliRunner()

    log_result = runner.invoke(
        app,
        [
            "log",
            "--type",
            "squat",
            "--date",
            "2024-06-14",
            "--sets",
            "5",
            "--reps",
            "5",
            "--weight",
            "100",
            "--duration",
            "45",
            "--calories",
            "300",
        ],
    )
    assert log_result.exit_code == 0, log_result.stdout
    assert "[user 1] Logged squat on 2024-06-14" in log_result.stdout

    payload = tmp_path / "session.json"
    payload.write_text(
        json.dumps(
            {
                "feedback": {"completion_rate": 0.85, "overall_difficulty": 3, "satisfaction": 4},
                "exercises": [{"exercise_name": "row", "planned_sets": 3, "completed_sets": 3,
                               "planned_reps": 12, "completed_reps": 12, "perceived_exertion": 7}],
            }
        ),
        encoding="utf-8",
    )
    feedback_result = runner.invoke(
        app,
        [
            "feedback",
            "--session",
            "s-1",
            "--payload",
            str(payload),
            "--exercise",
            "plank",
            "--repeat",
            "--date",
            "2024-06-15",
        ],
    )
    assert feedback_result.exit_code == 0, feedback_result.stdout
    assert "success score 0.865" in feedback_result.stdout
    assert "row: preference" in feedback_result.stdout
    assert "Added 2 entries to the activity log." in feedback_result.stdout

    records_result = runner.invoke(app, ["records", "--today", "2024-06-15", "--json"])
    assert records_result.exit_code == 0, records_result.stdout
    summary = json.loads(records_result.stdout)
    assert summary["pr"]["max_volume"]["volume"] == 2500.0
    assert summary["streak"] == {"current": 2, "longest": 2}
    assert summary["cumulative"]["total_workouts"] == 3

    trends_result = runner.invoke(
        app, ["trends", "--period", "weekly", "--metric", "calories", "--today", "2024-06-15"]
    )
    assert trends_result.exit_code == 0, trends_result.stdout
    assert "Weekly calories from 2024-05-19 to 2024-06-15" in trends_result.stdout

    prefs_result = runner.invoke(app, ["preferences"])
    assert prefs_result.exit_code == 0, prefs_result.stdout
    assert "plank" in prefs_result.stdout
    assert "2 exercises" in prefs_result.stdout

    history_result = runner.invoke(app, ["history"])
    assert history_result.exit_code == 0, history_result.stdout
    assert "5x5 @ 100 kg" in history_result.stdout
    assert "By type: plank x1, row x1, squat x1" in history_result.stdout
    assert "Difficulty: moderate=3" in history_result.stdout


def test_cli_rejects_duplicate_feedback():
    runner = CliRunner()
    args = ["feedback", "--session", "s-9", "--exercise", "squat", "--satisfaction", "4"]
    assert runner.invoke(app, args).exit_code == 0
    duplicate = runner.invoke(app, args)
    assert duplicate.exit_code == 1


def test_cli_reports_inverted_range():
    runner = CliRunner()
    result = runner.invoke(app, ["trends", "--start", "2024-06-10", "--end", "2024-06-01"])
    assert result.exit_code == 1


def test_cli_user_scope_from_environment(monkeypatch):
    runner = CliRunner()
    monkeypatch.setenv("TRAINING_INSIGHTS_USER", "7")
    result = runner.invoke(app, ["log", "--type", "walk", "--date", "2024-06-01"])
    assert result.exit_code == 0, result.stdout
    assert "[user 7]" in result.stdout


def test_cli_config_shows_defaults():
    runner = CliRunner()
    result = runner.invoke(app, ["config"])
    assert result.exit_code == 0, result.stdout
    assert "Config source: defaults" in result.stdout
    assert "default_weight=0.1" in result.stdout
