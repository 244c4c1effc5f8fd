from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from archive_pmn.db.migrations import MIGRATIONS

logger = logging.getLogger(__name__)


def apply_migrations(db_path: Path) -> list[str]:
    """Bring a SQLite DB up to the latest schema.

    Safe to run repeatedly; returns the names of migrations applied by this call.
    """

    db_path.parent.mkdir(parents=True, exist_ok=True)

    newly_applied: list[str] = []
    with sqlite3.connect(db_path) as conn:
        conn.execute("PRAGMA foreign_keys = ON;")
        conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_migrations ("
            " name TEXT PRIMARY KEY,"
            " applied_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))"
            ");"
        )

        done = {row[0] for row in conn.execute("SELECT name FROM schema_migrations;").fetchall()}

        for name, sql in MIGRATIONS:
            if name in done:
                continue
            conn.executescript(sql)
            conn.execute("INSERT INTO schema_migrations (name) VALUES (?);", (name,))
            newly_applied.append(name)

    if newly_applied:
        logger.info("Applied migrations: %s", ", ".join(newly_applied))
    return newly_applied
