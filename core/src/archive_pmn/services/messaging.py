from __future__ import annotations

import logging
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any

from archive_pmn.constants import CHANNEL_TYPES, EMPTY_ATTACHMENT_CONTENT
from archive_pmn.db.messages import (
    ChannelMemberRow,
    ChannelRow,
    ConversationRow,
    MessageRow,
    add_channel_member,
    create_channel,
    create_message,
    get_channel,
    is_channel_member,
    list_channel_messages,
    list_channels,
    list_conversations,
    list_direct_messages,
    list_member_channel_ids,
    mark_direct_messages_read,
)
from archive_pmn.db.users import UserRow, get_user
from archive_pmn.errors import (
    ConflictError,
    InvalidInputError,
    NotFoundError,
    PermissionDeniedError,
)
from archive_pmn.services import AppContext
from archive_pmn.services.library import guess_mime_type
from archive_pmn.storage.s3 import s3_bucket_name

logger = logging.getLogger(__name__)

CHAT_FILES_URL_PREFIX = "/v1/chat-files"


@dataclass(frozen=True)
class ChannelListing:
    channel: ChannelRow
    is_member: bool


def _message_type(attachments: list[dict[str, Any]]) -> str:
    if not attachments:
        return "text"
    mime = str(attachments[0].get("type") or "")
    return "image" if mime.startswith("image/") else "file"


def _message_content(content: str | None, attachments: list[dict[str, Any]]) -> str:
    text = (content or "").strip()
    if text:
        return text
    if attachments:
        return EMPTY_ATTACHMENT_CONTENT
    raise InvalidInputError("Le message est vide")


def send_direct_message(
    ctx: AppContext,
    user: UserRow,
    *,
    receiver_id: str,
    content: str | None,
    attachments: list[dict[str, Any]] | None = None,
) -> MessageRow:
    if receiver_id == user.user_id:
        raise InvalidInputError("Impossible de s'envoyer un message")
    if get_user(ctx.db_path, user_id=receiver_id) is None:
        raise NotFoundError("Destinataire introuvable")

    atts = attachments or []
    msg = create_message(
        ctx.db_path,
        sender_id=user.user_id,
        receiver_id=receiver_id,
        content=_message_content(content, atts),
        type=_message_type(atts),
        attachments=atts,
    )
    ctx.publish("messages", "INSERT", msg)
    return msg


def direct_thread(ctx: AppContext, user: UserRow, *, other_user_id: str) -> list[MessageRow]:
    """Messages exchanged with another user, oldest first; incoming ones are marked read."""

    if get_user(ctx.db_path, user_id=other_user_id) is None:
        raise NotFoundError("Utilisateur introuvable")

    marked = set(
        mark_direct_messages_read(ctx.db_path, receiver_id=user.user_id, sender_id=other_user_id)
    )
    messages = list_direct_messages(ctx.db_path, user_id=user.user_id, other_user_id=other_user_id)
    for msg in messages:
        if msg.message_id in marked:
            ctx.publish("messages", "UPDATE", msg)
    return messages


def conversations(ctx: AppContext, user: UserRow) -> list[ConversationRow]:
    return list_conversations(ctx.db_path, user_id=user.user_id)


def channels_for(ctx: AppContext, user: UserRow) -> list[ChannelListing]:
    member_of = list_member_channel_ids(ctx.db_path, user_id=user.user_id)
    return [
        ChannelListing(channel=c, is_member=c.channel_id in member_of)
        for c in list_channels(ctx.db_path)
    ]


def create_channel_for(
    ctx: AppContext,
    user: UserRow,
    *,
    name: str,
    description: str | None,
    type: str,
    member_ids: list[str] | None = None,
) -> tuple[ChannelRow, list[ChannelMemberRow]]:
    clean = (name or "").strip()
    if not clean:
        raise InvalidInputError("Veuillez renseigner un nom de canal")
    if type not in CHANNEL_TYPES:
        raise InvalidInputError("Type de canal inconnu")

    members = [m for m in (member_ids or []) if get_user(ctx.db_path, user_id=m) is not None]
    channel, member_rows = create_channel(
        ctx.db_path,
        name=clean,
        description=(description or "").strip(),
        type=type,
        created_by=user.user_id,
        member_ids=members,
    )
    ctx.publish("channels", "INSERT", channel)
    for m in member_rows:
        ctx.publish("channel_members", "INSERT", m)
    logger.info(
        "Channel %s created by %s with %d members", channel.name, user.email, len(member_rows)
    )
    return channel, member_rows


def _require_channel(ctx: AppContext, channel_id: str) -> ChannelRow:
    channel = get_channel(ctx.db_path, channel_id=channel_id)
    if channel is None:
        raise NotFoundError("Canal introuvable")
    return channel


def join_channel(ctx: AppContext, user: UserRow, *, channel_id: str) -> ChannelMemberRow:
    _require_channel(ctx, channel_id)
    try:
        member = add_channel_member(ctx.db_path, channel_id=channel_id, user_id=user.user_id)
    except sqlite3.IntegrityError as e:
        raise ConflictError("Vous êtes déjà membre de ce canal") from e
    ctx.publish("channel_members", "INSERT", member)
    return member


def _require_member(ctx: AppContext, user: UserRow, channel_id: str) -> ChannelRow:
    channel = _require_channel(ctx, channel_id)
    if not is_channel_member(ctx.db_path, channel_id=channel_id, user_id=user.user_id):
        raise PermissionDeniedError("Rejoignez le canal pour voir ses messages")
    return channel


def channel_messages(ctx: AppContext, user: UserRow, *, channel_id: str) -> list[MessageRow]:
    _require_member(ctx, user, channel_id)
    return list_channel_messages(ctx.db_path, channel_id=channel_id)


def send_channel_message(
    ctx: AppContext,
    user: UserRow,
    *,
    channel_id: str,
    content: str | None,
    attachments: list[dict[str, Any]] | None = None,
) -> MessageRow:
    _require_member(ctx, user, channel_id)
    atts = attachments or []
    msg = create_message(
        ctx.db_path,
        sender_id=user.user_id,
        channel_id=channel_id,
        content=_message_content(content, atts),
        type=_message_type(atts),
        attachments=atts,
    )
    ctx.publish("messages", "INSERT", msg)
    return msg


# --- chat attachments ---


def chat_file_object_key(user_id: str, filename: str, *, now_ms: int | None = None) -> str:
    ts = now_ms if now_ms is not None else int(time.time() * 1000)
    ext = PurePosixPath(filename).suffix.lstrip(".").lower()
    return f"{user_id}/{ts}.{ext}" if ext else f"{user_id}/{ts}"


def store_chat_file(
    ctx: AppContext,
    user: UserRow,
    *,
    temp_path: Path,
    filename: str,
    content_type: str | None,
) -> dict[str, Any]:
    """Store an attachment; returns the {name, url, type, size} dict kept on messages."""

    object_key = chat_file_object_key(user.user_id, filename)
    stored = ctx.storage.store_upload(
        temp_path=temp_path, bucket="chat_files", object_key=object_key
    )
    return {
        "name": filename,
        "url": f"{CHAT_FILES_URL_PREFIX}/{object_key}",
        "type": guess_mime_type(filename, content_type),
        "size": stored.byte_size,
    }


def locate_chat_file(ctx: AppContext, *, owner_id: str, filename: str) -> tuple[str, str]:
    """Find the (provider, storage key) of a stored chat attachment."""

    if "/" in filename or "\\" in filename or filename in ("", ".", ".."):
        raise NotFoundError("Fichier introuvable")
    if "/" in owner_id or owner_id in ("", ".", ".."):
        raise NotFoundError("Fichier introuvable")

    object_key = f"{owner_id}/{filename}"
    fs_key = ctx.storage.fs.storage_key(bucket="chat_files", object_key=object_key)
    if ctx.storage.fs.exists(fs_key):
        return "fs", fs_key
    if ctx.storage.s3_configured():
        return "s3", f"{s3_bucket_name(ctx.config, 'chat_files')}:{object_key}"
    raise NotFoundError("Fichier introuvable")
