from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from archive_pmn.db.common import connect, utc_now_sqlite_iso
from archive_pmn.db.ids import new_id, new_session_token

_USER_COLUMNS = """
    user_id, email, full_name, fonction, role, password_hash, avatar_url,
    is_verified, is_active, created_at, updated_at
""".strip()


@dataclass(frozen=True)
class UserRow:
    user_id: str
    email: str
    full_name: str
    fonction: str | None
    role: str
    password_hash: str
    avatar_url: str | None
    is_verified: bool
    is_active: bool
    created_at: str
    updated_at: str


def _user_from_db_row(row: sqlite3.Row) -> UserRow:
    return UserRow(
        user_id=row["user_id"],
        email=row["email"],
        full_name=row["full_name"],
        fonction=row["fonction"],
        role=row["role"],
        password_hash=row["password_hash"],
        avatar_url=row["avatar_url"],
        is_verified=bool(row["is_verified"]),
        is_active=bool(row["is_active"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def count_users(db_path) -> int:
    with connect(db_path) as conn:
        row = conn.execute("SELECT COUNT(1) AS n FROM users;").fetchone()
    return int(row["n"]) if row is not None else 0


def count_active_users(db_path) -> int:
    with connect(db_path) as conn:
        row = conn.execute("SELECT COUNT(1) AS n FROM users WHERE is_active = 1;").fetchone()
    return int(row["n"]) if row is not None else 0


def create_user(
    db_path,
    *,
    email: str,
    full_name: str,
    fonction: str | None,
    role: str,
    password_hash: str,
    is_verified: bool = False,
    is_active: bool = True,
) -> UserRow:
    """Insert a user; raises sqlite3.IntegrityError when the email is taken."""

    user_id = new_id()
    with connect(db_path) as conn:
        conn.execute(
            """
            INSERT INTO users (
                user_id, email, full_name, fonction, role, password_hash, is_verified, is_active
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?);
            """.strip(),
            (
                user_id,
                email.strip().lower(),
                full_name,
                fonction,
                role,
                password_hash,
                int(is_verified),
                int(is_active),
            ),
        )
        row = conn.execute(
            f"SELECT {_USER_COLUMNS} FROM users WHERE user_id = ?;", (user_id,)
        ).fetchone()

    if row is None:
        raise RuntimeError("Failed to read user after insert")
    return _user_from_db_row(row)


def get_user(db_path, *, user_id: str) -> UserRow | None:
    with connect(db_path) as conn:
        row = conn.execute(
            f"SELECT {_USER_COLUMNS} FROM users WHERE user_id = ?;", (user_id,)
        ).fetchone()
    return _user_from_db_row(row) if row is not None else None


def get_user_by_email(db_path, *, email: str) -> UserRow | None:
    with connect(db_path) as conn:
        row = conn.execute(
            f"SELECT {_USER_COLUMNS} FROM users WHERE email = ?;",
            (email.strip().lower(),),
        ).fetchone()
    return _user_from_db_row(row) if row is not None else None


def list_users(db_path, *, exclude_user_id: str | None = None) -> list[UserRow]:
    where = ""
    params: list[Any] = []
    if exclude_user_id is not None:
        where = "WHERE user_id <> ?"
        params.append(exclude_user_id)

    with connect(db_path) as conn:
        rows = conn.execute(
            f"SELECT {_USER_COLUMNS} FROM users {where} ORDER BY full_name COLLATE NOCASE ASC;",
            params,
        ).fetchall()
    return [_user_from_db_row(r) for r in rows]


def update_user(
    db_path,
    *,
    user_id: str,
    role: str | None = None,
    is_verified: bool | None = None,
    is_active: bool | None = None,
    password_hash: str | None = None,
    full_name: str | None = None,
    fonction: str | None = None,
) -> UserRow | None:
    updates: list[str] = []
    params: list[Any] = []

    if role is not None:
        updates.append("role = ?")
        params.append(role)
    if is_verified is not None:
        updates.append("is_verified = ?")
        params.append(int(is_verified))
    if is_active is not None:
        updates.append("is_active = ?")
        params.append(int(is_active))
    if password_hash is not None:
        updates.append("password_hash = ?")
        params.append(password_hash)
    if full_name is not None:
        updates.append("full_name = ?")
        params.append(full_name)
    if fonction is not None:
        updates.append("fonction = ?")
        params.append(fonction)

    if not updates:
        return get_user(db_path, user_id=user_id)

    updates.append("updated_at = ?")
    params.append(utc_now_sqlite_iso())
    params.append(user_id)

    with connect(db_path) as conn:
        cur = conn.execute(
            f"UPDATE users SET {', '.join(updates)} WHERE user_id = ?;",
            params,
        )
        if cur.rowcount == 0:
            return None
        row = conn.execute(
            f"SELECT {_USER_COLUMNS} FROM users WHERE user_id = ?;", (user_id,)
        ).fetchone()

    return _user_from_db_row(row) if row is not None else None


@dataclass(frozen=True)
class SessionRow:
    token: str
    user_id: str
    created_at: str
    expires_at: str


def create_session(db_path, *, user_id: str, ttl_hours: int) -> SessionRow:
    token = new_session_token()
    expires_at = utc_now_sqlite_iso(offset=timedelta(hours=ttl_hours))

    with connect(db_path) as conn:
        conn.execute(
            "INSERT INTO sessions (token, user_id, expires_at) VALUES (?, ?, ?);",
            (token, user_id, expires_at),
        )
        row = conn.execute(
            "SELECT token, user_id, created_at, expires_at FROM sessions WHERE token = ?;",
            (token,),
        ).fetchone()

    return SessionRow(
        token=row["token"],
        user_id=row["user_id"],
        created_at=row["created_at"],
        expires_at=row["expires_at"],
    )


def get_session_user(db_path, *, token: str) -> UserRow | None:
    """Resolve a non-expired session token to its user."""

    now = utc_now_sqlite_iso()
    with connect(db_path) as conn:
        row = conn.execute(
            f"""
            SELECT {", ".join("u." + c.strip() for c in _USER_COLUMNS.split(","))}
            FROM sessions s
            JOIN users u ON u.user_id = s.user_id
            WHERE s.token = ? AND s.expires_at > ?;
            """.strip(),
            (token, now),
        ).fetchone()
    return _user_from_db_row(row) if row is not None else None


def delete_session(db_path, *, token: str) -> bool:
    with connect(db_path) as conn:
        cur = conn.execute("DELETE FROM sessions WHERE token = ?;", (token,))
    return cur.rowcount > 0


def delete_sessions_for_user(db_path, *, user_id: str) -> int:
    with connect(db_path) as conn:
        cur = conn.execute("DELETE FROM sessions WHERE user_id = ?;", (user_id,))
    return cur.rowcount
