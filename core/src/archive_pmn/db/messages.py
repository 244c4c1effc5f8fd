from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from typing import Any

from archive_pmn.db.common import connect, loads_list
from archive_pmn.db.ids import new_id

_MESSAGE_COLUMNS = """
    message_id, sender_id, receiver_id, channel_id, content, type, is_read,
    attachments_json, created_at
""".strip()

_CHANNEL_COLUMNS = "channel_id, name, description, type, created_by, created_at"


@dataclass(frozen=True)
class MessageRow:
    message_id: str
    sender_id: str | None
    receiver_id: str | None
    channel_id: str | None
    content: str
    type: str
    is_read: bool
    attachments: list[dict[str, Any]]
    created_at: str


@dataclass(frozen=True)
class ChannelRow:
    channel_id: str
    name: str
    description: str
    type: str
    created_by: str | None
    created_at: str


@dataclass(frozen=True)
class ChannelMemberRow:
    channel_id: str
    user_id: str
    role: str
    joined_at: str


@dataclass(frozen=True)
class ConversationRow:
    other_user_id: str
    last_message: MessageRow
    unread_count: int


def _message_from_db_row(row: sqlite3.Row) -> MessageRow:
    return MessageRow(
        message_id=row["message_id"],
        sender_id=row["sender_id"],
        receiver_id=row["receiver_id"],
        channel_id=row["channel_id"],
        content=row["content"],
        type=row["type"],
        is_read=bool(row["is_read"]),
        attachments=[a for a in loads_list(row["attachments_json"]) if isinstance(a, dict)],
        created_at=row["created_at"],
    )


def _channel_from_db_row(row: sqlite3.Row) -> ChannelRow:
    return ChannelRow(
        channel_id=row["channel_id"],
        name=row["name"],
        description=row["description"],
        type=row["type"],
        created_by=row["created_by"],
        created_at=row["created_at"],
    )


def _member_from_db_row(row: sqlite3.Row) -> ChannelMemberRow:
    return ChannelMemberRow(
        channel_id=row["channel_id"],
        user_id=row["user_id"],
        role=row["role"],
        joined_at=row["joined_at"],
    )


def create_message(
    db_path,
    *,
    sender_id: str,
    content: str,
    receiver_id: str | None = None,
    channel_id: str | None = None,
    type: str = "text",
    attachments: list[dict[str, Any]] | None = None,
) -> MessageRow:
    """Insert a direct (receiver_id) or channel (channel_id) message."""

    if (receiver_id is None) == (channel_id is None):
        raise ValueError("exactly one of receiver_id or channel_id is required")

    message_id = new_id()
    with connect(db_path) as conn:
        conn.execute(
            """
            INSERT INTO messages (
                message_id, sender_id, receiver_id, channel_id, content, type, attachments_json
            )
            VALUES (?, ?, ?, ?, ?, ?, ?);
            """.strip(),
            (
                message_id,
                sender_id,
                receiver_id,
                channel_id,
                content,
                type,
                json.dumps(attachments or [], ensure_ascii=False),
            ),
        )
        row = conn.execute(
            f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE message_id = ?;", (message_id,)
        ).fetchone()

    if row is None:
        raise RuntimeError("Failed to read message after insert")
    return _message_from_db_row(row)


def list_direct_messages(db_path, *, user_id: str, other_user_id: str) -> list[MessageRow]:
    with connect(db_path) as conn:
        rows = conn.execute(
            f"""
            SELECT {_MESSAGE_COLUMNS}
            FROM messages
            WHERE (sender_id = ? AND receiver_id = ?) OR (sender_id = ? AND receiver_id = ?)
            ORDER BY created_at ASC, rowid ASC;
            """.strip(),
            (user_id, other_user_id, other_user_id, user_id),
        ).fetchall()
    return [_message_from_db_row(r) for r in rows]


def mark_direct_messages_read(db_path, *, receiver_id: str, sender_id: str) -> list[str]:
    """Mark unread messages from `sender_id` to `receiver_id` as read; returns their ids."""

    with connect(db_path) as conn:
        rows = conn.execute(
            """
            SELECT message_id FROM messages
            WHERE receiver_id = ? AND sender_id = ? AND is_read = 0;
            """.strip(),
            (receiver_id, sender_id),
        ).fetchall()
        ids = [r["message_id"] for r in rows]
        if ids:
            conn.execute(
                """
                UPDATE messages SET is_read = 1
                WHERE receiver_id = ? AND sender_id = ? AND is_read = 0;
                """.strip(),
                (receiver_id, sender_id),
            )
    return ids


def count_unread_messages(db_path, *, user_id: str) -> int:
    with connect(db_path) as conn:
        row = conn.execute(
            "SELECT COUNT(1) AS n FROM messages WHERE receiver_id = ? AND is_read = 0;",
            (user_id,),
        ).fetchone()
    return int(row["n"]) if row is not None else 0


def list_conversations(db_path, *, user_id: str) -> list[ConversationRow]:
    """One entry per direct-message counterpart, most recent conversation first."""

    with connect(db_path) as conn:
        rows = conn.execute(
            f"""
            SELECT {_MESSAGE_COLUMNS}
            FROM messages
            WHERE channel_id IS NULL AND (sender_id = ? OR receiver_id = ?)
            ORDER BY created_at DESC, rowid DESC;
            """.strip(),
            (user_id, user_id),
        ).fetchall()
        unread_rows = conn.execute(
            """
            SELECT sender_id, COUNT(1) AS n
            FROM messages
            WHERE receiver_id = ? AND is_read = 0
            GROUP BY sender_id;
            """.strip(),
            (user_id,),
        ).fetchall()

    unread = {r["sender_id"]: int(r["n"]) for r in unread_rows}
    out: list[ConversationRow] = []
    seen: set[str] = set()
    for r in rows:
        msg = _message_from_db_row(r)
        other = msg.receiver_id if msg.sender_id == user_id else msg.sender_id
        if other is None or other in seen:
            continue
        seen.add(other)
        out.append(
            ConversationRow(
                other_user_id=other, last_message=msg, unread_count=unread.get(other, 0)
            )
        )
    return out


def list_channel_messages(db_path, *, channel_id: str) -> list[MessageRow]:
    with connect(db_path) as conn:
        rows = conn.execute(
            f"""
            SELECT {_MESSAGE_COLUMNS}
            FROM messages
            WHERE channel_id = ?
            ORDER BY created_at ASC, rowid ASC;
            """.strip(),
            (channel_id,),
        ).fetchall()
    return [_message_from_db_row(r) for r in rows]


def create_channel(
    db_path,
    *,
    name: str,
    description: str,
    type: str,
    created_by: str,
    member_ids: list[str] | None = None,
) -> tuple[ChannelRow, list[ChannelMemberRow]]:
    """Create a channel; the creator joins as admin, `member_ids` as members."""

    channel_id = new_id()
    members = [(channel_id, created_by, "admin")]
    for uid in member_ids or []:
        if uid != created_by and uid not in {m[1] for m in members}:
            members.append((channel_id, uid, "member"))

    with connect(db_path) as conn:
        conn.execute(
            "INSERT INTO channels (channel_id, name, description, type, created_by)"
            " VALUES (?, ?, ?, ?, ?);",
            (channel_id, name, description, type, created_by),
        )
        conn.executemany(
            "INSERT INTO channel_members (channel_id, user_id, role) VALUES (?, ?, ?);",
            members,
        )
        row = conn.execute(
            f"SELECT {_CHANNEL_COLUMNS} FROM channels WHERE channel_id = ?;", (channel_id,)
        ).fetchone()
        member_rows = conn.execute(
            "SELECT channel_id, user_id, role, joined_at FROM channel_members"
            " WHERE channel_id = ? ORDER BY rowid ASC;",
            (channel_id,),
        ).fetchall()

    if row is None:
        raise RuntimeError("Failed to read channel after insert")
    return _channel_from_db_row(row), [_member_from_db_row(m) for m in member_rows]


def get_channel(db_path, *, channel_id: str) -> ChannelRow | None:
    with connect(db_path) as conn:
        row = conn.execute(
            f"SELECT {_CHANNEL_COLUMNS} FROM channels WHERE channel_id = ?;", (channel_id,)
        ).fetchone()
    return _channel_from_db_row(row) if row is not None else None


def list_channels(db_path) -> list[ChannelRow]:
    with connect(db_path) as conn:
        rows = conn.execute(
            f"SELECT {_CHANNEL_COLUMNS} FROM channels ORDER BY name COLLATE NOCASE ASC;"
        ).fetchall()
    return [_channel_from_db_row(r) for r in rows]


def list_member_channel_ids(db_path, *, user_id: str) -> set[str]:
    with connect(db_path) as conn:
        rows = conn.execute(
            "SELECT channel_id FROM channel_members WHERE user_id = ?;", (user_id,)
        ).fetchall()
    return {r["channel_id"] for r in rows}


def is_channel_member(db_path, *, channel_id: str, user_id: str) -> bool:
    with connect(db_path) as conn:
        row = conn.execute(
            "SELECT 1 FROM channel_members WHERE channel_id = ? AND user_id = ?;",
            (channel_id, user_id),
        ).fetchone()
    return row is not None


def add_channel_member(
    db_path, *, channel_id: str, user_id: str, role: str = "member"
) -> ChannelMemberRow:
    """Raises sqlite3.IntegrityError when the user is already a member."""

    with connect(db_path) as conn:
        conn.execute(
            "INSERT INTO channel_members (channel_id, user_id, role) VALUES (?, ?, ?);",
            (channel_id, user_id, role),
        )
        row = conn.execute(
            "SELECT channel_id, user_id, role, joined_at FROM channel_members"
            " WHERE channel_id = ? AND user_id = ?;",
            (channel_id, user_id),
        ).fetchone()
    return _member_from_db_row(row)
