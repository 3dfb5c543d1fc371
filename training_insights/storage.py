from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Hashable, Iterator

from .env import get_env
from .models import (
    ExercisePreference,
    SessionFeedbackInput,
    ValidationError,
    WorkoutRecord,
    parse_iso_date,
)

DEFAULT_DATA_DIR = Path(__file__).resolve().parent.parent / "data"
DEFAULT_DB_FILENAME = "training_insights.db"
_DB_INITIALISED_FOR: Path | None = None
LOGGER = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _data_dir() -> Path:
    override = get_env("DATA_DIR")
    base = Path(override).expanduser() if override else DEFAULT_DATA_DIR
    base.mkdir(parents=True, exist_ok=True)
    return base


def _database_file() -> Path:
    override = get_env("DB_FILE")
    if override:
        path = Path(override).expanduser()
    else:
        path = _data_dir() / DEFAULT_DB_FILENAME
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


class SummaryCache:
    """
    Process-local cache for derived per-user summaries.

    Keys are ``(user_id, ...)`` tuples. Storing a key drops that user's other
    entries, and the oldest entry is evicted once ``max_entries`` is reached.
    """

    def __init__(self, max_entries: int = 256) -> None:
        self.max_entries = max_entries
        self._entries: dict[Hashable, Any] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: Hashable) -> Any | None:
        return self._entries.get(key)

    def put(self, key: Hashable, value: Any) -> None:
        if isinstance(key, tuple) and key and key[0] is not None:
            self.invalidate(key[0])
        self._entries.pop(key, None)
        while self._entries and len(self._entries) >= self.max_entries:
            del self._entries[next(iter(self._entries))]
        self._entries[key] = value

    def invalidate(self, user_id: int | None = None) -> None:
        """Drop every entry for ``user_id`` (keys are ``(user_id, ...)`` tuples), or all."""
        if user_id is None:
            self._entries.clear()
            return
        for key in list(self._entries):
            if isinstance(key, tuple) and key and key[0] == user_id:
                del self._entries[key]


SUMMARY_CACHE = SummaryCache()


def _ensure_database() -> None:
    global _DB_INITIALISED_FOR
    db_path = _database_file()
    if _DB_INITIALISED_FOR is not None and _DB_INITIALISED_FOR == db_path.resolve():
        return
    conn = sqlite3.connect(db_path)
    try:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS WorkoutRecords (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                workout_date TEXT NOT NULL,
                workout_type TEXT NOT NULL,
                duration INTEGER,
                calories INTEGER,
                intensity INTEGER,
                sets INTEGER,
                reps INTEGER,
                weight REAL,
                difficulty TEXT NOT NULL DEFAULT 'moderate',
                notes TEXT,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP
            );

            CREATE INDEX IF NOT EXISTS idx_workout_records_user_date
                ON WorkoutRecords (user_id, workout_date);

            CREATE TABLE IF NOT EXISTS ExercisePreferences (
                user_id INTEGER NOT NULL,
                exercise_name TEXT NOT NULL,
                preference_score REAL NOT NULL DEFAULT 0.0,
                effectiveness_score REAL NOT NULL DEFAULT 0.5,
                data_points INTEGER NOT NULL DEFAULT 0,
                last_updated TEXT,
                PRIMARY KEY (user_id, exercise_name)
            );

            CREATE TABLE IF NOT EXISTS SessionFeedback (
                session_id TEXT PRIMARY KEY,
                user_id INTEGER NOT NULL,
                completion_rate REAL,
                overall_difficulty INTEGER,
                satisfaction INTEGER,
                energy_after INTEGER,
                muscle_soreness INTEGER,
                would_repeat INTEGER,
                comments TEXT,
                success_score REAL NOT NULL,
                created_at TEXT NOT NULL
            );
            """
        )
        conn.commit()
    finally:
        conn.close()
    _DB_INITIALISED_FOR = db_path.resolve()


@contextmanager
def open_database(readonly: bool = False) -> Iterator[sqlite3.Connection]:
    """Context manager yielding a SQLite connection with ensured schema."""
    _ensure_database()
    db_path = _database_file()
    if readonly:
        uri = f"file:{db_path}?mode=ro"
        conn = sqlite3.connect(uri, uri=True)
    else:
        conn = sqlite3.connect(db_path)
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def write_transaction() -> Iterator[sqlite3.Connection]:
    """
    Connection inside ``BEGIN IMMEDIATE``.

    The write lock is taken before any read, so read-modify-write cycles on a
    preference row serialize across processes.
    """
    with open_database() as conn:
        conn.isolation_level = None
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        else:
            conn.execute("COMMIT")


def _record_owner(record: WorkoutRecord, user_id: int | None) -> int:
    owner = user_id if user_id is not None else record.user_id
    if owner is None:
        raise ValidationError("user_id is required to store a workout record.")
    return owner


def insert_workout_record(
    conn: sqlite3.Connection,
    record: WorkoutRecord,
    *,
    user_id: int | None = None,
) -> int:
    """
    Insert one workout record on an open connection and return its row id.

    The caller owns the transaction and must invalidate ``SUMMARY_CACHE``
    for the owner once it commits.
    """
    owner = _record_owner(record, user_id)
    cursor = conn.execute(
        """
        INSERT INTO WorkoutRecords (
            user_id, workout_date, workout_type, duration, calories, intensity,
            sets, reps, weight, difficulty, notes
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            owner,
            record.workout_date.isoformat(),
            record.workout_type,
            record.duration,
            record.calories,
            record.intensity,
            record.sets,
            record.reps,
            record.weight,
            record.difficulty,
            record.notes,
        ),
    )
    return cursor.lastrowid


def append_workout_record(record: WorkoutRecord, *, user_id: int | None = None) -> int:
    """Persist one workout record and return its row id."""
    owner = _record_owner(record, user_id)
    with write_transaction() as conn:
        row_id = insert_workout_record(conn, record, user_id=owner)
    SUMMARY_CACHE.invalidate(owner)
    return row_id


def _row_to_record(row: sqlite3.Row) -> WorkoutRecord:
    return WorkoutRecord(
        workout_date=parse_iso_date(row["workout_date"], field="workout_date"),
        workout_type=row["workout_type"],
        duration=row["duration"],
        calories=row["calories"],
        intensity=row["intensity"],
        sets=row["sets"],
        reps=row["reps"],
        weight=row["weight"],
        difficulty=row["difficulty"],
        notes=row["notes"],
        user_id=row["user_id"],
        record_id=row["id"],
    )


def load_workout_records(
    user_id: int,
    *,
    start: date | None = None,
    end: date | None = None,
) -> list[WorkoutRecord]:
    """All records for ``user_id`` (optionally within [start, end]), oldest first."""
    query = "SELECT * FROM WorkoutRecords WHERE user_id = ?"
    params: list[Any] = [user_id]
    if start is not None:
        query += " AND workout_date >= ?"
        params.append(start.isoformat())
    if end is not None:
        query += " AND workout_date <= ?"
        params.append(end.isoformat())
    query += " ORDER BY workout_date ASC, id ASC"

    with open_database(readonly=True) as conn:
        conn.row_factory = sqlite3.Row
        rows = conn.execute(query, params).fetchall()
    return [_row_to_record(row) for row in rows]


def _row_to_preference(row: sqlite3.Row) -> ExercisePreference:
    last_updated = row["last_updated"]
    return ExercisePreference(
        user_id=row["user_id"],
        exercise_name=row["exercise_name"],
        preference_score=float(row["preference_score"]),
        effectiveness_score=float(row["effectiveness_score"]),
        data_points=int(row["data_points"]),
        last_updated=datetime.fromisoformat(last_updated) if last_updated else None,
    )


def get_or_create_preference(
    conn: sqlite3.Connection,
    user_id: int,
    exercise_name: str,
) -> ExercisePreference:
    """Stored preference for the pair, or a zero-valued default that is not yet persisted."""
    conn.row_factory = sqlite3.Row
    row = conn.execute(
        "SELECT * FROM ExercisePreferences WHERE user_id = ? AND exercise_name = ?",
        (user_id, exercise_name),
    ).fetchone()
    if row is None:
        return ExercisePreference(user_id=user_id, exercise_name=exercise_name)
    return _row_to_preference(row)


def save_preference(conn: sqlite3.Connection, pref: ExercisePreference) -> None:
    conn.execute(
        """
        INSERT INTO ExercisePreferences (
            user_id, exercise_name, preference_score, effectiveness_score, data_points, last_updated
        )
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT (user_id, exercise_name) DO UPDATE SET
            preference_score = excluded.preference_score,
            effectiveness_score = excluded.effectiveness_score,
            data_points = excluded.data_points,
            last_updated = excluded.last_updated
        """,
        (
            pref.user_id,
            pref.exercise_name,
            pref.preference_score,
            pref.effectiveness_score,
            pref.data_points,
            pref.last_updated.isoformat() if pref.last_updated else None,
        ),
    )


def load_preferences(user_id: int) -> list[ExercisePreference]:
    with open_database(readonly=True) as conn:
        conn.row_factory = sqlite3.Row
        rows = conn.execute(
            "SELECT * FROM ExercisePreferences WHERE user_id = ? ORDER BY exercise_name",
            (user_id,),
        ).fetchall()
    return [_row_to_preference(row) for row in rows]


def save_session_feedback(
    conn: sqlite3.Connection,
    *,
    session_id: str,
    user_id: int,
    feedback: SessionFeedbackInput,
    success_score: float,
) -> None:
    """Store the single feedback row for a session; a second submission is rejected."""
    would_repeat = None if feedback.would_repeat is None else int(feedback.would_repeat)
    try:
        conn.execute(
            """
            INSERT INTO SessionFeedback (
                session_id, user_id, completion_rate, overall_difficulty, satisfaction,
                energy_after, muscle_soreness, would_repeat, comments, success_score, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                session_id,
                user_id,
                feedback.completion_rate,
                feedback.overall_difficulty,
                feedback.satisfaction,
                feedback.energy_after,
                feedback.muscle_soreness,
                would_repeat,
                feedback.comments,
                success_score,
                _now_utc().isoformat(),
            ),
        )
    except sqlite3.IntegrityError as exc:
        LOGGER.warning("Rejected duplicate feedback for session %s", session_id)
        raise ValidationError(f"Feedback for session {session_id!r} was already recorded.") from exc
