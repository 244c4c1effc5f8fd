from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, Request, Response, UploadFile
from pydantic import BaseModel, Field

from archive_pmn.api.downloads import stream_document
from archive_pmn.api.models import ApiResponse, Document, Permissions, ok, to_document
from archive_pmn.api.uploads import discard_upload, spool_upload
from archive_pmn.api.v1.shares import (
    Share,
    ShareLinkOut,
    share_base_url,
    to_share,
    to_share_link,
)
from archive_pmn.auth import require_user
from archive_pmn.db.users import UserRow
from archive_pmn.errors import ArchiveError
from archive_pmn.services import context_from_request
from archive_pmn.services.library import (
    delete_document_for,
    document_permissions,
    list_documents_for,
    parse_tags,
    rename_document_for,
    require_document,
    upload_document,
)
from archive_pmn.services.sharing import generate_share_link, share_document_with_user

router = APIRouter(tags=["documents"])

CURRENT_USER = Depends(require_user)
UPLOAD_FILE = File(...)


class DocumentWithPermissions(BaseModel):
    document: Document
    permissions: Permissions


class DocumentListResponse(BaseModel):
    items: list[Document] = Field(default_factory=list)


class DocumentRename(BaseModel):
    name: str


class DocumentShareRequest(BaseModel):
    user_id: str
    permissions: Permissions = Field(default_factory=Permissions)


class DocumentShareResponse(BaseModel):
    share: Share
    created: bool


class ShareLinkRequest(BaseModel):
    permissions: Permissions = Field(default_factory=Permissions)


@router.post("/documents/upload", response_model=ApiResponse[Document], status_code=201)
async def documents_upload(
    request: Request,
    file: UploadFile = UPLOAD_FILE,
    category: str = Form(...),
    name: str | None = Form(default=None),
    folder_id: str | None = Form(default=None),
    description: str | None = Form(default=None),
    tags: str | None = Form(default=None),
    user: UserRow = CURRENT_USER,
) -> ApiResponse[Document]:
    ctx = context_from_request(request)
    temp_path = await spool_upload(ctx, file, max_bytes=ctx.config.uploads.max_document_bytes)
    try:
        doc = upload_document(
            ctx,
            user,
            temp_path=temp_path,
            filename=file.filename or "document",
            content_type=file.content_type,
            category=category,
            name=name,
            folder_id=folder_id or None,
            description=description,
            tags=parse_tags(tags),
        )
    except ArchiveError:
        discard_upload(temp_path)
        raise
    return ok(to_document(doc))


@router.get("/documents", response_model=ApiResponse[DocumentListResponse])
async def documents_list(
    request: Request,
    folder_id: str | None = None,
    q: str | None = None,
    category: str | None = None,
    user: UserRow = CURRENT_USER,
) -> ApiResponse[DocumentListResponse]:
    ctx = context_from_request(request)
    docs = list_documents_for(ctx, user, folder_id=folder_id, q=q, category=category)
    return ok(DocumentListResponse(items=[to_document(d) for d in docs]))


@router.get("/documents/{document_id}", response_model=ApiResponse[DocumentWithPermissions])
async def documents_get(
    request: Request, document_id: str, user: UserRow = CURRENT_USER
) -> ApiResponse[DocumentWithPermissions]:
    ctx = context_from_request(request)
    doc = require_document(ctx, user, document_id=document_id)
    perms = document_permissions(ctx, user, doc)
    return ok(
        DocumentWithPermissions(
            document=to_document(doc), permissions=Permissions.from_share_permissions(perms)
        )
    )


@router.get("/documents/{document_id}/download")
async def documents_download(
    request: Request, document_id: str, user: UserRow = CURRENT_USER
) -> Response:
    ctx = context_from_request(request)
    doc = require_document(ctx, user, document_id=document_id)
    return stream_document(ctx, request, doc)


@router.get("/documents/{document_id}/preview")
async def documents_preview(
    request: Request, document_id: str, user: UserRow = CURRENT_USER
) -> Response:
    ctx = context_from_request(request)
    doc = require_document(ctx, user, document_id=document_id)
    return stream_document(ctx, request, doc, inline=True)


@router.patch("/documents/{document_id}", response_model=ApiResponse[Document])
async def documents_rename(
    request: Request, document_id: str, payload: DocumentRename, user: UserRow = CURRENT_USER
) -> ApiResponse[Document]:
    ctx = context_from_request(request)
    doc = rename_document_for(ctx, user, document_id=document_id, name=payload.name)
    return ok(to_document(doc))


@router.delete("/documents/{document_id}", response_model=ApiResponse[dict[str, bool]])
async def documents_delete(
    request: Request, document_id: str, user: UserRow = CURRENT_USER
) -> ApiResponse[dict[str, bool]]:
    ctx = context_from_request(request)
    delete_document_for(ctx, user, document_id=document_id)
    return ok({"deleted": True})


@router.post("/documents/{document_id}/share", response_model=ApiResponse[DocumentShareResponse])
async def documents_share(
    request: Request,
    document_id: str,
    payload: DocumentShareRequest,
    user: UserRow = CURRENT_USER,
) -> ApiResponse[DocumentShareResponse]:
    ctx = context_from_request(request)
    result = share_document_with_user(
        ctx,
        user,
        document_id=document_id,
        target_user_id=payload.user_id,
        permissions=payload.permissions.to_share_permissions(),
    )
    return ok(DocumentShareResponse(share=to_share(result.share), created=result.created))


@router.post("/documents/{document_id}/share-link", response_model=ApiResponse[ShareLinkOut])
async def documents_share_link(
    request: Request,
    document_id: str,
    payload: ShareLinkRequest,
    user: UserRow = CURRENT_USER,
) -> ApiResponse[ShareLinkOut]:
    ctx = context_from_request(request)
    link = generate_share_link(
        ctx,
        user,
        document_id=document_id,
        permissions=payload.permissions.to_share_permissions(),
        base_url=share_base_url(ctx, request),
    )
    return ok(to_share_link(link))
