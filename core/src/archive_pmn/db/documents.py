from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from typing import Any

from archive_pmn.db.common import connect, loads_list, placeholders, utc_now_sqlite_iso
from archive_pmn.db.ids import new_id

_DOCUMENT_COLUMNS = """
    document_id, name, description, storage_provider, storage_key, file_size, file_type,
    folder_id, category, tags_json, uploaded_by, created_at, updated_at
""".strip()


@dataclass(frozen=True)
class DocumentRow:
    document_id: str
    name: str
    description: str | None
    storage_provider: str
    storage_key: str
    file_size: int
    file_type: str | None
    folder_id: str | None
    category: str
    tags: list[str]
    uploaded_by: str | None
    created_at: str
    updated_at: str


def _document_from_db_row(row: sqlite3.Row) -> DocumentRow:
    return DocumentRow(
        document_id=row["document_id"],
        name=row["name"],
        description=row["description"],
        storage_provider=row["storage_provider"],
        storage_key=row["storage_key"],
        file_size=int(row["file_size"]),
        file_type=row["file_type"],
        folder_id=row["folder_id"],
        category=row["category"],
        tags=[t for t in loads_list(row["tags_json"]) if isinstance(t, str)],
        uploaded_by=row["uploaded_by"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def create_document(
    db_path,
    *,
    document_id: str | None = None,
    name: str,
    category: str,
    storage_provider: str,
    storage_key: str,
    file_size: int,
    file_type: str | None,
    uploaded_by: str | None,
    folder_id: str | None = None,
    description: str | None = None,
    tags: list[str] | None = None,
) -> DocumentRow:
    document_id = document_id or new_id()
    with connect(db_path) as conn:
        conn.execute(
            """
            INSERT INTO documents (
                document_id, name, description, storage_provider, storage_key, file_size,
                file_type, folder_id, category, tags_json, uploaded_by
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """.strip(),
            (
                document_id,
                name,
                description,
                storage_provider,
                storage_key,
                file_size,
                file_type,
                folder_id,
                category,
                json.dumps(tags or [], ensure_ascii=False),
                uploaded_by,
            ),
        )
        row = conn.execute(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE document_id = ?;", (document_id,)
        ).fetchone()

    if row is None:
        raise RuntimeError("Failed to read document after insert")
    return _document_from_db_row(row)


def get_document(db_path, *, document_id: str) -> DocumentRow | None:
    with connect(db_path) as conn:
        row = conn.execute(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE document_id = ?;", (document_id,)
        ).fetchone()
    return _document_from_db_row(row) if row is not None else None


def get_documents(db_path, *, document_ids: list[str]) -> list[DocumentRow]:
    if not document_ids:
        return []
    with connect(db_path) as conn:
        rows = conn.execute(
            f"""
            SELECT {_DOCUMENT_COLUMNS}
            FROM documents
            WHERE document_id IN ({placeholders(len(document_ids))})
            ORDER BY created_at ASC, rowid ASC;
            """.strip(),
            document_ids,
        ).fetchall()
    return [_document_from_db_row(r) for r in rows]


def list_documents(
    db_path,
    *,
    folder_id: str | None = None,
    root_only: bool = False,
    q: str | None = None,
    category: str | None = None,
) -> list[DocumentRow]:
    clauses: list[str] = []
    params: list[Any] = []

    if root_only:
        clauses.append("folder_id IS NULL")
    elif folder_id is not None:
        clauses.append("folder_id = ?")
        params.append(folder_id)

    if q is not None and q.strip():
        like = f"%{q.strip()}%"
        clauses.append("(name LIKE ? OR description LIKE ? OR tags_json LIKE ?)")
        params.extend([like, like, like])

    if category is not None and category.strip():
        clauses.append("category = ?")
        params.append(category.strip())

    where_sql = ("WHERE " + " AND ".join(clauses)) if clauses else ""

    with connect(db_path) as conn:
        rows = conn.execute(
            f"""
            SELECT {_DOCUMENT_COLUMNS}
            FROM documents
            {where_sql}
            ORDER BY created_at DESC, rowid DESC;
            """.strip(),
            params,
        ).fetchall()
    return [_document_from_db_row(r) for r in rows]


def list_documents_in_folders(db_path, *, folder_ids: list[str]) -> list[DocumentRow]:
    if not folder_ids:
        return []
    with connect(db_path) as conn:
        rows = conn.execute(
            f"""
            SELECT {_DOCUMENT_COLUMNS}
            FROM documents
            WHERE folder_id IN ({placeholders(len(folder_ids))})
            ORDER BY created_at ASC, rowid ASC;
            """.strip(),
            folder_ids,
        ).fetchall()
    return [_document_from_db_row(r) for r in rows]


def rename_document(db_path, *, document_id: str, name: str) -> DocumentRow | None:
    with connect(db_path) as conn:
        cur = conn.execute(
            "UPDATE documents SET name = ?, updated_at = ? WHERE document_id = ?;",
            (name, utc_now_sqlite_iso(), document_id),
        )
        if cur.rowcount == 0:
            return None
        row = conn.execute(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE document_id = ?;", (document_id,)
        ).fetchone()
    return _document_from_db_row(row) if row is not None else None


def delete_document(db_path, *, document_id: str) -> bool:
    with connect(db_path) as conn:
        cur = conn.execute("DELETE FROM documents WHERE document_id = ?;", (document_id,))
    return cur.rowcount > 0
