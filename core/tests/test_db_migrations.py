from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from fastapi.testclient import TestClient

from archive_pmn.app import create_app
from archive_pmn.config import load_core_config, resolve_configured_paths
from archive_pmn.db import resolve_db_path
from archive_pmn.db.migrate import apply_migrations
from archive_pmn.home import HOME_ENV_VAR, ensure_archive_layout


def _table_names(db_path: Path) -> set[str]:
    with sqlite3.connect(db_path) as conn:
        rows = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name ASC;"
        ).fetchall()
    return {r[0] for r in rows}


def _table_columns(db_path: Path, table: str) -> set[str]:
    with sqlite3.connect(db_path) as conn:
        rows = conn.execute(f"PRAGMA table_info({table});").fetchall()
    return {r[1] for r in rows}


def test_migrations_blank_to_latest(tmp_path: Path) -> None:
    paths = ensure_archive_layout(tmp_path)
    config = load_core_config(paths)
    paths = resolve_configured_paths(paths, config)

    db_path = resolve_db_path(paths)

    first = apply_migrations(db_path)
    second = apply_migrations(db_path)  # idempotent
    assert first
    assert second == []

    tables = _table_names(db_path)
    for name in (
        "schema_migrations",
        "users",
        "sessions",
        "folders",
        "documents",
        "shares",
        "channels",
        "channel_members",
        "messages",
        "user_status",
        "user_preferences",
        "access_requests",
        "activity_logs",
    ):
        assert name in tables

    share_cols = _table_columns(db_path, "shares")
    assert {"can_read", "can_write", "can_delete", "can_share"} <= share_cols
    assert {"is_link_share", "share_token", "expires_at"} <= share_cols

    folder_cols = _table_columns(db_path, "folders")
    assert {"parent_id", "folder_number", "status", "category"} <= folder_cols


def test_startup_logs_applied_migrations_once(tmp_path: Path, monkeypatch, caplog) -> None:
    monkeypatch.setenv(HOME_ENV_VAR, str(tmp_path))

    with caplog.at_level(logging.INFO):
        with TestClient(create_app()):
            pass

    applied = [r for r in caplog.records if r.getMessage().startswith("Applied migrations")]
    assert len(applied) == 1
