from __future__ import annotations

from pathlib import Path

from archive_pmn.home import ArchivePaths

DEFAULT_DB_FILENAME = "archive.sqlite3"


def resolve_db_path(paths: ArchivePaths) -> Path:
    """Resolve the metadata SQLite database path (under the configurable `db_dir`)."""

    return paths.db_dir / DEFAULT_DB_FILENAME
