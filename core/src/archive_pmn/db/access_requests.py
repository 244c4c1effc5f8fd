from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Any

from archive_pmn.db.common import connect, utc_now_sqlite_iso
from archive_pmn.db.ids import new_id

_REQUEST_COLUMNS = """
    request_id, document_id, requested_by, status, reviewed_by, created_at, reviewed_at
""".strip()


@dataclass(frozen=True)
class AccessRequestRow:
    request_id: str
    document_id: str
    requested_by: str
    status: str
    reviewed_by: str | None
    created_at: str
    reviewed_at: str | None


def _request_from_db_row(row: sqlite3.Row) -> AccessRequestRow:
    return AccessRequestRow(
        request_id=row["request_id"],
        document_id=row["document_id"],
        requested_by=row["requested_by"],
        status=row["status"],
        reviewed_by=row["reviewed_by"],
        created_at=row["created_at"],
        reviewed_at=row["reviewed_at"],
    )


def create_access_request(db_path, *, document_id: str, requested_by: str) -> AccessRequestRow:
    request_id = new_id()
    with connect(db_path) as conn:
        conn.execute(
            "INSERT INTO access_requests (request_id, document_id, requested_by)"
            " VALUES (?, ?, ?);",
            (request_id, document_id, requested_by),
        )
        row = conn.execute(
            f"SELECT {_REQUEST_COLUMNS} FROM access_requests WHERE request_id = ?;",
            (request_id,),
        ).fetchone()

    if row is None:
        raise RuntimeError("Failed to read access request after insert")
    return _request_from_db_row(row)


def get_access_request(db_path, *, request_id: str) -> AccessRequestRow | None:
    with connect(db_path) as conn:
        row = conn.execute(
            f"SELECT {_REQUEST_COLUMNS} FROM access_requests WHERE request_id = ?;",
            (request_id,),
        ).fetchone()
    return _request_from_db_row(row) if row is not None else None


def find_pending_request(
    db_path, *, document_id: str, requested_by: str
) -> AccessRequestRow | None:
    with connect(db_path) as conn:
        row = conn.execute(
            f"""
            SELECT {_REQUEST_COLUMNS}
            FROM access_requests
            WHERE document_id = ? AND requested_by = ? AND status = 'pending'
            LIMIT 1;
            """.strip(),
            (document_id, requested_by),
        ).fetchone()
    return _request_from_db_row(row) if row is not None else None


def list_access_requests(db_path, *, status: str | None = None) -> list[AccessRequestRow]:
    where = ""
    params: list[Any] = []
    if status is not None:
        where = "WHERE status = ?"
        params.append(status)

    with connect(db_path) as conn:
        rows = conn.execute(
            f"""
            SELECT {_REQUEST_COLUMNS}
            FROM access_requests
            {where}
            ORDER BY created_at DESC, rowid DESC;
            """.strip(),
            params,
        ).fetchall()
    return [_request_from_db_row(r) for r in rows]


def count_pending_requests(db_path) -> int:
    with connect(db_path) as conn:
        row = conn.execute(
            "SELECT COUNT(1) AS n FROM access_requests WHERE status = 'pending';"
        ).fetchone()
    return int(row["n"]) if row is not None else 0


def review_access_request(
    db_path, *, request_id: str, status: str, reviewed_by: str
) -> AccessRequestRow | None:
    """Move a pending request to approved/rejected; None when not pending."""

    with connect(db_path) as conn:
        cur = conn.execute(
            """
            UPDATE access_requests
            SET status = ?, reviewed_by = ?, reviewed_at = ?
            WHERE request_id = ? AND status = 'pending';
            """.strip(),
            (status, reviewed_by, utc_now_sqlite_iso(), request_id),
        )
        if cur.rowcount == 0:
            return None
        row = conn.execute(
            f"SELECT {_REQUEST_COLUMNS} FROM access_requests WHERE request_id = ?;",
            (request_id,),
        ).fetchone()
    return _request_from_db_row(row) if row is not None else None
