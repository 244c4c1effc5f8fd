from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, File, Request, Response, UploadFile
from pydantic import BaseModel, Field

from archive_pmn.api.downloads import stream_blob
from archive_pmn.api.models import ApiResponse, ok
from archive_pmn.api.uploads import spool_upload
from archive_pmn.auth import require_user
from archive_pmn.db.messages import ChannelMemberRow, ChannelRow, MessageRow, count_unread_messages
from archive_pmn.db.users import UserRow, get_user
from archive_pmn.services import context_from_request
from archive_pmn.services.library import guess_mime_type
from archive_pmn.services.messaging import (
    channel_messages,
    channels_for,
    conversations,
    create_channel_for,
    direct_thread,
    join_channel,
    locate_chat_file,
    send_channel_message,
    send_direct_message,
    store_chat_file,
)

router = APIRouter(tags=["messages"])

CURRENT_USER = Depends(require_user)
UPLOAD_FILE = File(...)


class Attachment(BaseModel):
    name: str
    url: str
    type: str
    size: int


class Message(BaseModel):
    message_id: str
    sender_id: str | None
    receiver_id: str | None
    channel_id: str | None
    content: str
    type: str
    is_read: bool
    attachments: list[dict[str, Any]] = Field(default_factory=list)
    created_at: str


class MessageListResponse(BaseModel):
    items: list[Message] = Field(default_factory=list)


class MessageCreate(BaseModel):
    content: str | None = None
    attachments: list[Attachment] = Field(default_factory=list)


class Conversation(BaseModel):
    user_id: str
    full_name: str | None
    last_message: Message
    unread_count: int


class ConversationListResponse(BaseModel):
    items: list[Conversation] = Field(default_factory=list)


class Channel(BaseModel):
    channel_id: str
    name: str
    description: str
    type: str
    created_by: str | None
    created_at: str
    is_member: bool = False


class ChannelListResponse(BaseModel):
    items: list[Channel] = Field(default_factory=list)


class ChannelCreate(BaseModel):
    name: str
    description: str | None = None
    type: str = "general"
    member_ids: list[str] = Field(default_factory=list)


class ChannelMember(BaseModel):
    channel_id: str
    user_id: str
    role: str
    joined_at: str


class ChannelCreateResponse(BaseModel):
    channel: Channel
    members: list[ChannelMember] = Field(default_factory=list)


def _to_message(row: MessageRow) -> Message:
    return Message(
        message_id=row.message_id,
        sender_id=row.sender_id,
        receiver_id=row.receiver_id,
        channel_id=row.channel_id,
        content=row.content,
        type=row.type,
        is_read=row.is_read,
        attachments=list(row.attachments),
        created_at=row.created_at,
    )


def _to_channel(row: ChannelRow, *, is_member: bool) -> Channel:
    return Channel(
        channel_id=row.channel_id,
        name=row.name,
        description=row.description,
        type=row.type,
        created_by=row.created_by,
        created_at=row.created_at,
        is_member=is_member,
    )


def _to_member(row: ChannelMemberRow) -> ChannelMember:
    return ChannelMember(
        channel_id=row.channel_id, user_id=row.user_id, role=row.role, joined_at=row.joined_at
    )


@router.get("/conversations", response_model=ApiResponse[ConversationListResponse])
async def conversations_list(
    request: Request, user: UserRow = CURRENT_USER
) -> ApiResponse[ConversationListResponse]:
    ctx = context_from_request(request)
    items: list[Conversation] = []
    for conv in conversations(ctx, user):
        other = get_user(ctx.db_path, user_id=conv.other_user_id)
        items.append(
            Conversation(
                user_id=conv.other_user_id,
                full_name=other.full_name if other is not None else None,
                last_message=_to_message(conv.last_message),
                unread_count=conv.unread_count,
            )
        )
    return ok(ConversationListResponse(items=items))


@router.get("/messages/unread-count", response_model=ApiResponse[dict[str, int]])
async def messages_unread_count(
    request: Request, user: UserRow = CURRENT_USER
) -> ApiResponse[dict[str, int]]:
    ctx = context_from_request(request)
    return ok({"unread": count_unread_messages(ctx.db_path, user_id=user.user_id)})


@router.get("/messages/direct/{other_user_id}", response_model=ApiResponse[MessageListResponse])
async def messages_direct_thread(
    request: Request, other_user_id: str, user: UserRow = CURRENT_USER
) -> ApiResponse[MessageListResponse]:
    ctx = context_from_request(request)
    msgs = direct_thread(ctx, user, other_user_id=other_user_id)
    return ok(MessageListResponse(items=[_to_message(m) for m in msgs]))


@router.post(
    "/messages/direct/{other_user_id}", response_model=ApiResponse[Message], status_code=201
)
async def messages_direct_send(
    request: Request, other_user_id: str, payload: MessageCreate, user: UserRow = CURRENT_USER
) -> ApiResponse[Message]:
    ctx = context_from_request(request)
    msg = send_direct_message(
        ctx,
        user,
        receiver_id=other_user_id,
        content=payload.content,
        attachments=[a.model_dump() for a in payload.attachments],
    )
    return ok(_to_message(msg))


@router.get("/channels", response_model=ApiResponse[ChannelListResponse])
async def channels_list(
    request: Request, user: UserRow = CURRENT_USER
) -> ApiResponse[ChannelListResponse]:
    ctx = context_from_request(request)
    items = [_to_channel(c.channel, is_member=c.is_member) for c in channels_for(ctx, user)]
    return ok(ChannelListResponse(items=items))


@router.post("/channels", response_model=ApiResponse[ChannelCreateResponse], status_code=201)
async def channels_create(
    request: Request, payload: ChannelCreate, user: UserRow = CURRENT_USER
) -> ApiResponse[ChannelCreateResponse]:
    ctx = context_from_request(request)
    channel, members = create_channel_for(
        ctx,
        user,
        name=payload.name,
        description=payload.description,
        type=payload.type,
        member_ids=payload.member_ids,
    )
    return ok(
        ChannelCreateResponse(
            channel=_to_channel(channel, is_member=True),
            members=[_to_member(m) for m in members],
        )
    )


@router.post("/channels/{channel_id}/join", response_model=ApiResponse[ChannelMember])
async def channels_join(
    request: Request, channel_id: str, user: UserRow = CURRENT_USER
) -> ApiResponse[ChannelMember]:
    ctx = context_from_request(request)
    return ok(_to_member(join_channel(ctx, user, channel_id=channel_id)))


@router.get("/channels/{channel_id}/messages", response_model=ApiResponse[MessageListResponse])
async def channels_messages(
    request: Request, channel_id: str, user: UserRow = CURRENT_USER
) -> ApiResponse[MessageListResponse]:
    ctx = context_from_request(request)
    msgs = channel_messages(ctx, user, channel_id=channel_id)
    return ok(MessageListResponse(items=[_to_message(m) for m in msgs]))


@router.post(
    "/channels/{channel_id}/messages", response_model=ApiResponse[Message], status_code=201
)
async def channels_send(
    request: Request, channel_id: str, payload: MessageCreate, user: UserRow = CURRENT_USER
) -> ApiResponse[Message]:
    ctx = context_from_request(request)
    msg = send_channel_message(
        ctx,
        user,
        channel_id=channel_id,
        content=payload.content,
        attachments=[a.model_dump() for a in payload.attachments],
    )
    return ok(_to_message(msg))


@router.post("/chat-files", response_model=ApiResponse[Attachment], status_code=201)
async def chat_files_upload(
    request: Request, file: UploadFile = UPLOAD_FILE, user: UserRow = CURRENT_USER
) -> ApiResponse[Attachment]:
    ctx = context_from_request(request)
    temp_path = await spool_upload(ctx, file, max_bytes=ctx.config.uploads.max_chat_file_bytes)
    attachment = store_chat_file(
        ctx,
        user,
        temp_path=temp_path,
        filename=file.filename or "fichier",
        content_type=file.content_type,
    )
    return ok(Attachment.model_validate(attachment))


@router.get("/chat-files/{owner_id}/{filename}")
async def chat_files_download(
    request: Request, owner_id: str, filename: str, user: UserRow = CURRENT_USER
) -> Response:
    ctx = context_from_request(request)
    provider, key = locate_chat_file(ctx, owner_id=owner_id, filename=filename)
    return stream_blob(
        ctx,
        request,
        storage_provider=provider,
        storage_key=key,
        filename=filename,
        media_type=guess_mime_type(filename, None),
        inline=True,
    )
