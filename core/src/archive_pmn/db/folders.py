from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Any

from archive_pmn.db.common import connect, placeholders, utc_now_sqlite_iso
from archive_pmn.db.ids import new_id

_FOLDER_COLUMNS = """
    folder_id, name, description, parent_id, category, folder_number, status,
    created_by, created_at, updated_at
""".strip()


@dataclass(frozen=True)
class FolderRow:
    folder_id: str
    name: str
    description: str | None
    parent_id: str | None
    category: str
    folder_number: str | None
    status: str
    created_by: str | None
    created_at: str
    updated_at: str


def _folder_from_db_row(row: sqlite3.Row) -> FolderRow:
    return FolderRow(
        folder_id=row["folder_id"],
        name=row["name"],
        description=row["description"],
        parent_id=row["parent_id"],
        category=row["category"],
        folder_number=row["folder_number"],
        status=row["status"],
        created_by=row["created_by"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def create_folder(
    db_path,
    *,
    name: str,
    category: str,
    created_by: str | None,
    parent_id: str | None = None,
    description: str | None = None,
    folder_number: str | None = None,
    status: str = "Archive",
) -> FolderRow:
    folder_id = new_id()
    with connect(db_path) as conn:
        conn.execute(
            """
            INSERT INTO folders (
                folder_id, name, description, parent_id, category, folder_number, status, created_by
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?);
            """.strip(),
            (folder_id, name, description, parent_id, category, folder_number, status, created_by),
        )
        row = conn.execute(
            f"SELECT {_FOLDER_COLUMNS} FROM folders WHERE folder_id = ?;", (folder_id,)
        ).fetchone()

    if row is None:
        raise RuntimeError("Failed to read folder after insert")
    return _folder_from_db_row(row)


def get_folder(db_path, *, folder_id: str) -> FolderRow | None:
    with connect(db_path) as conn:
        row = conn.execute(
            f"SELECT {_FOLDER_COLUMNS} FROM folders WHERE folder_id = ?;", (folder_id,)
        ).fetchone()
    return _folder_from_db_row(row) if row is not None else None


def list_folders(db_path) -> list[FolderRow]:
    with connect(db_path) as conn:
        rows = conn.execute(
            f"SELECT {_FOLDER_COLUMNS} FROM folders ORDER BY created_at DESC, rowid DESC;"
        ).fetchall()
    return [_folder_from_db_row(r) for r in rows]


def list_child_folders(db_path, *, parent_ids: list[str]) -> list[FolderRow]:
    if not parent_ids:
        return []
    with connect(db_path) as conn:
        rows = conn.execute(
            f"""
            SELECT {_FOLDER_COLUMNS}
            FROM folders
            WHERE parent_id IN ({placeholders(len(parent_ids))})
            ORDER BY created_at ASC, rowid ASC;
            """.strip(),
            parent_ids,
        ).fetchall()
    return [_folder_from_db_row(r) for r in rows]


def list_descendant_folders(db_path, *, folder_id: str) -> list[FolderRow]:
    """All folders below `folder_id` (not including it), breadth-first."""

    out: list[FolderRow] = []
    frontier = [folder_id]
    seen = {folder_id}
    while frontier:
        children = [
            f for f in list_child_folders(db_path, parent_ids=frontier) if f.folder_id not in seen
        ]
        for f in children:
            seen.add(f.folder_id)
        out.extend(children)
        frontier = [f.folder_id for f in children]
    return out


def patch_folder(
    db_path,
    *,
    folder_id: str,
    name: str | None = None,
    description: str | None = None,
    folder_number: str | None = None,
    clear_folder_number: bool = False,
    status: str | None = None,
) -> FolderRow | None:
    updates: list[str] = []
    params: list[Any] = []

    if name is not None:
        updates.append("name = ?")
        params.append(name)
    if description is not None:
        updates.append("description = ?")
        params.append(description)
    if clear_folder_number:
        updates.append("folder_number = NULL")
    elif folder_number is not None:
        updates.append("folder_number = ?")
        params.append(folder_number)
    if status is not None:
        updates.append("status = ?")
        params.append(status)

    if not updates:
        return get_folder(db_path, folder_id=folder_id)

    updates.append("updated_at = ?")
    params.append(utc_now_sqlite_iso())
    params.append(folder_id)

    with connect(db_path) as conn:
        cur = conn.execute(
            f"UPDATE folders SET {', '.join(updates)} WHERE folder_id = ?;",
            params,
        )
        if cur.rowcount == 0:
            return None
        row = conn.execute(
            f"SELECT {_FOLDER_COLUMNS} FROM folders WHERE folder_id = ?;", (folder_id,)
        ).fetchone()

    return _folder_from_db_row(row) if row is not None else None


def delete_folder(db_path, *, folder_id: str) -> bool:
    """Hard delete; sub-folders, documents and their shares cascade."""

    with connect(db_path) as conn:
        cur = conn.execute("DELETE FROM folders WHERE folder_id = ?;", (folder_id,))
    return cur.rowcount > 0
