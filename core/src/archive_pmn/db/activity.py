from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from typing import Any

from archive_pmn.db.common import connect, loads_dict


@dataclass(frozen=True)
class ActivityRow:
    activity_id: int
    user_id: str | None
    activity_type: str
    description: str
    metadata: dict[str, Any]
    created_at: str


def _activity_from_db_row(row: sqlite3.Row) -> ActivityRow:
    return ActivityRow(
        activity_id=int(row["activity_id"]),
        user_id=row["user_id"],
        activity_type=row["activity_type"],
        description=row["description"],
        metadata=loads_dict(row["metadata_json"]),
        created_at=row["created_at"],
    )


def log_activity(
    db_path,
    *,
    user_id: str | None,
    activity_type: str,
    description: str,
    metadata: dict[str, Any] | None = None,
) -> int:
    with connect(db_path) as conn:
        cur = conn.execute(
            "INSERT INTO activity_logs (user_id, activity_type, description, metadata_json)"
            " VALUES (?, ?, ?, ?);",
            (user_id, activity_type, description, json.dumps(metadata or {}, ensure_ascii=False)),
        )
    return int(cur.lastrowid or 0)


def list_activity(db_path, *, limit: int = 50) -> list[ActivityRow]:
    with connect(db_path) as conn:
        rows = conn.execute(
            """
            SELECT activity_id, user_id, activity_type, description, metadata_json, created_at
            FROM activity_logs
            ORDER BY activity_id DESC
            LIMIT ?;
            """.strip(),
            (int(limit),),
        ).fetchall()
    return [_activity_from_db_row(r) for r in rows]
