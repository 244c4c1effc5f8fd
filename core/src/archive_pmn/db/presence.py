from __future__ import annotations

import sqlite3
from dataclasses import dataclass

from archive_pmn.constants import DEFAULT_DISPLAY_MODE
from archive_pmn.db.common import connect, utc_now_sqlite_iso


@dataclass(frozen=True)
class UserStatusRow:
    user_id: str
    status: str
    last_seen: str


@dataclass(frozen=True)
class PreferencesRow:
    user_id: str
    display_mode: str
    created_at: str
    updated_at: str


def _status_from_db_row(row: sqlite3.Row) -> UserStatusRow:
    return UserStatusRow(user_id=row["user_id"], status=row["status"], last_seen=row["last_seen"])


def _prefs_from_db_row(row: sqlite3.Row) -> PreferencesRow:
    return PreferencesRow(
        user_id=row["user_id"],
        display_mode=row["display_mode"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def upsert_user_status(db_path, *, user_id: str, status: str) -> UserStatusRow:
    now = utc_now_sqlite_iso()
    with connect(db_path) as conn:
        conn.execute(
            """
            INSERT INTO user_status (user_id, status, last_seen)
            VALUES (?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET status = excluded.status,
                                               last_seen = excluded.last_seen;
            """.strip(),
            (user_id, status, now),
        )
        row = conn.execute(
            "SELECT user_id, status, last_seen FROM user_status WHERE user_id = ?;", (user_id,)
        ).fetchone()
    return _status_from_db_row(row)


def list_user_statuses(db_path) -> list[UserStatusRow]:
    with connect(db_path) as conn:
        rows = conn.execute(
            "SELECT user_id, status, last_seen FROM user_status ORDER BY last_seen DESC;"
        ).fetchall()
    return [_status_from_db_row(r) for r in rows]


def get_preferences(db_path, *, user_id: str) -> PreferencesRow | None:
    with connect(db_path) as conn:
        row = conn.execute(
            "SELECT user_id, display_mode, created_at, updated_at"
            " FROM user_preferences WHERE user_id = ?;",
            (user_id,),
        ).fetchone()
    return _prefs_from_db_row(row) if row is not None else None


def get_or_create_preferences(db_path, *, user_id: str) -> PreferencesRow:
    with connect(db_path) as conn:
        conn.execute(
            "INSERT OR IGNORE INTO user_preferences (user_id, display_mode) VALUES (?, ?);",
            (user_id, DEFAULT_DISPLAY_MODE),
        )
    prefs = get_preferences(db_path, user_id=user_id)
    if prefs is None:
        raise RuntimeError("Failed to read preferences after insert")
    return prefs


def set_display_mode(db_path, *, user_id: str, display_mode: str) -> PreferencesRow:
    now = utc_now_sqlite_iso()
    with connect(db_path) as conn:
        conn.execute(
            """
            INSERT INTO user_preferences (user_id, display_mode, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET display_mode = excluded.display_mode,
                                               updated_at = excluded.updated_at;
            """.strip(),
            (user_id, display_mode, now),
        )
    prefs = get_preferences(db_path, user_id=user_id)
    if prefs is None:
        raise RuntimeError("Failed to read preferences after update")
    return prefs
