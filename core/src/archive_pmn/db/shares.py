from __future__ import annotations

import sqlite3
from dataclasses import dataclass

from archive_pmn.db.common import connect, placeholders
from archive_pmn.db.ids import new_id

_SHARE_COLUMNS = """
    share_id, document_id, shared_by, shared_with, can_read, can_write, can_delete, can_share,
    is_link_share, share_token, expires_at, created_at
""".strip()


@dataclass(frozen=True)
class SharePermissions:
    can_read: bool = True
    can_write: bool = False
    can_delete: bool = False
    can_share: bool = False

    def any(self) -> bool:
        return self.can_read or self.can_write or self.can_delete or self.can_share


@dataclass(frozen=True)
class ShareRow:
    share_id: str
    document_id: str
    shared_by: str | None
    shared_with: str | None
    permissions: SharePermissions
    is_link_share: bool
    share_token: str | None
    expires_at: str | None
    created_at: str


def _share_from_db_row(row: sqlite3.Row) -> ShareRow:
    return ShareRow(
        share_id=row["share_id"],
        document_id=row["document_id"],
        shared_by=row["shared_by"],
        shared_with=row["shared_with"],
        permissions=SharePermissions(
            can_read=bool(row["can_read"]),
            can_write=bool(row["can_write"]),
            can_delete=bool(row["can_delete"]),
            can_share=bool(row["can_share"]),
        ),
        is_link_share=bool(row["is_link_share"]),
        share_token=row["share_token"],
        expires_at=row["expires_at"],
        created_at=row["created_at"],
    )


def _perm_params(p: SharePermissions) -> tuple[int, int, int, int]:
    return (int(p.can_read), int(p.can_write), int(p.can_delete), int(p.can_share))


def get_direct_share(db_path, *, document_id: str, shared_with: str) -> ShareRow | None:
    with connect(db_path) as conn:
        row = conn.execute(
            f"""
            SELECT {_SHARE_COLUMNS}
            FROM shares
            WHERE document_id = ? AND shared_with = ? AND is_link_share = 0
            ORDER BY created_at ASC, rowid ASC
            LIMIT 1;
            """.strip(),
            (document_id, shared_with),
        ).fetchone()
    return _share_from_db_row(row) if row is not None else None


def create_direct_share(
    db_path,
    *,
    document_id: str,
    shared_by: str,
    shared_with: str,
    permissions: SharePermissions,
) -> ShareRow:
    share_id = new_id()
    with connect(db_path) as conn:
        conn.execute(
            """
            INSERT INTO shares (
                share_id, document_id, shared_by, shared_with,
                can_read, can_write, can_delete, can_share, is_link_share
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0);
            """.strip(),
            (share_id, document_id, shared_by, shared_with, *_perm_params(permissions)),
        )
        row = conn.execute(
            f"SELECT {_SHARE_COLUMNS} FROM shares WHERE share_id = ?;", (share_id,)
        ).fetchone()

    if row is None:
        raise RuntimeError("Failed to read share after insert")
    return _share_from_db_row(row)


def update_share_permissions(
    db_path, *, share_id: str, permissions: SharePermissions
) -> ShareRow | None:
    with connect(db_path) as conn:
        cur = conn.execute(
            """
            UPDATE shares
            SET can_read = ?, can_write = ?, can_delete = ?, can_share = ?
            WHERE share_id = ?;
            """.strip(),
            (*_perm_params(permissions), share_id),
        )
        if cur.rowcount == 0:
            return None
        row = conn.execute(
            f"SELECT {_SHARE_COLUMNS} FROM shares WHERE share_id = ?;", (share_id,)
        ).fetchone()
    return _share_from_db_row(row) if row is not None else None


def list_link_shares_by_sharer(
    db_path, *, document_ids: list[str], shared_by: str
) -> list[ShareRow]:
    if not document_ids:
        return []
    with connect(db_path) as conn:
        rows = conn.execute(
            f"""
            SELECT {_SHARE_COLUMNS}
            FROM shares
            WHERE document_id IN ({placeholders(len(document_ids))})
              AND is_link_share = 1
              AND shared_by = ?
            ORDER BY created_at ASC, rowid ASC;
            """.strip(),
            [*document_ids, shared_by],
        ).fetchall()
    return [_share_from_db_row(r) for r in rows]


def create_link_shares(
    db_path,
    *,
    document_ids: list[str],
    shared_by: str,
    share_token: str,
    permissions: SharePermissions,
    expires_at: str | None,
) -> list[ShareRow]:
    """Insert one link-share row per document under the same token, atomically."""

    if not document_ids:
        return []
    share_ids = [new_id() for _ in document_ids]
    with connect(db_path) as conn:
        conn.executemany(
            """
            INSERT INTO shares (
                share_id, document_id, shared_by, shared_with,
                can_read, can_write, can_delete, can_share,
                is_link_share, share_token, expires_at
            )
            VALUES (?, ?, ?, NULL, ?, ?, ?, ?, 1, ?, ?);
            """.strip(),
            [
                (sid, doc_id, shared_by, *_perm_params(permissions), share_token, expires_at)
                for sid, doc_id in zip(share_ids, document_ids, strict=True)
            ],
        )
        rows = conn.execute(
            f"""
            SELECT {_SHARE_COLUMNS}
            FROM shares
            WHERE share_id IN ({placeholders(len(share_ids))})
            ORDER BY rowid ASC;
            """.strip(),
            share_ids,
        ).fetchall()
    return [_share_from_db_row(r) for r in rows]


def refresh_token_shares(
    db_path, *, share_token: str, permissions: SharePermissions, expires_at: str | None
) -> int:
    """Apply one permission set and one expiry to every row of a link token."""

    with connect(db_path) as conn:
        cur = conn.execute(
            """
            UPDATE shares
            SET can_read = ?, can_write = ?, can_delete = ?, can_share = ?, expires_at = ?
            WHERE share_token = ?;
            """.strip(),
            (*_perm_params(permissions), expires_at, share_token),
        )
    return cur.rowcount


def list_shares_for_token(db_path, *, share_token: str) -> list[ShareRow]:
    with connect(db_path) as conn:
        rows = conn.execute(
            f"""
            SELECT {_SHARE_COLUMNS}
            FROM shares
            WHERE share_token = ? AND is_link_share = 1
            ORDER BY created_at ASC, rowid ASC;
            """.strip(),
            (share_token,),
        ).fetchall()
    return [_share_from_db_row(r) for r in rows]


def list_shares_for_user(db_path, *, user_id: str) -> list[ShareRow]:
    """Shares the user gave (direct or link) or received (direct)."""

    with connect(db_path) as conn:
        rows = conn.execute(
            f"""
            SELECT {_SHARE_COLUMNS}
            FROM shares
            WHERE shared_by = ? OR shared_with = ?
            ORDER BY created_at DESC, rowid DESC;
            """.strip(),
            (user_id, user_id),
        ).fetchall()
    return [_share_from_db_row(r) for r in rows]


def count_shares_for_user(db_path, *, user_id: str) -> int:
    with connect(db_path) as conn:
        row = conn.execute(
            "SELECT COUNT(1) AS n FROM shares WHERE shared_by = ? OR shared_with = ?;",
            (user_id, user_id),
        ).fetchone()
    return int(row["n"]) if row is not None else 0


def get_received_permissions(
    db_path, *, document_id: str, user_id: str
) -> SharePermissions | None:
    """Union of direct-share permissions a user holds on a document."""

    with connect(db_path) as conn:
        row = conn.execute(
            """
            SELECT MAX(can_read) AS r, MAX(can_write) AS w, MAX(can_delete) AS d,
                   MAX(can_share) AS s, COUNT(1) AS n
            FROM shares
            WHERE document_id = ? AND shared_with = ? AND is_link_share = 0;
            """.strip(),
            (document_id, user_id),
        ).fetchone()
    if row is None or int(row["n"]) == 0:
        return None
    return SharePermissions(
        can_read=bool(row["r"]),
        can_write=bool(row["w"]),
        can_delete=bool(row["d"]),
        can_share=bool(row["s"]),
    )


def list_readable_document_ids(db_path, *, user_id: str) -> list[str]:
    with connect(db_path) as conn:
        rows = conn.execute(
            """
            SELECT DISTINCT document_id
            FROM shares
            WHERE shared_with = ? AND is_link_share = 0 AND can_read = 1;
            """.strip(),
            (user_id,),
        ).fetchall()
    return [r["document_id"] for r in rows]
