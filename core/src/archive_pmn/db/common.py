from __future__ import annotations

import json
import sqlite3
from datetime import UTC, datetime, timedelta
from typing import Any


def utc_now_sqlite_iso(*, offset: timedelta | None = None) -> str:
    # Match the DB default format closely: YYYY-MM-DDTHH:MM:SS.sssZ
    now = datetime.now(UTC)
    if offset is not None:
        now = now + offset
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_sqlite_iso(raw: str) -> datetime:
    return datetime.fromisoformat(raw.replace("Z", "+00:00"))


def connect(db_path) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def loads_list(raw: str | None) -> list[Any]:
    if not raw:
        return []
    try:
        v = json.loads(raw)
    except json.JSONDecodeError:
        return []
    return v if isinstance(v, list) else []


def loads_dict(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        v = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return v if isinstance(v, dict) else {}


def placeholders(n: int) -> str:
    return ", ".join("?" for _ in range(n))
