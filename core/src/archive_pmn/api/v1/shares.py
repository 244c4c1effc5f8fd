from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, Field

from archive_pmn.api.downloads import NO_CACHE, stream_document
from archive_pmn.api.models import ApiResponse, Document, Permissions, ok, to_document
from archive_pmn.auth import require_user
from archive_pmn.db.shares import ShareRow
from archive_pmn.db.users import UserRow
from archive_pmn.errors import NotFoundError
from archive_pmn.services import AppContext, context_from_request
from archive_pmn.services.sharing import ShareLink, list_my_shares, resolve_share_token

router = APIRouter(tags=["shares"])

CURRENT_USER = Depends(require_user)


class Share(BaseModel):
    share_id: str
    document_id: str
    shared_by: str | None
    shared_with: str | None
    permissions: Permissions
    is_link_share: bool
    share_token: str | None
    expires_at: str | None
    created_at: str


class ShareListResponse(BaseModel):
    items: list[Share] = Field(default_factory=list)


class ShareLinkOut(BaseModel):
    token: str
    url: str
    document_count: int
    reused: bool
    expires_at: str | None


class SharedContent(BaseModel):
    token: str
    permissions: Permissions
    expires_at: str | None
    documents: list[Document] = Field(default_factory=list)


def to_share(row: ShareRow) -> Share:
    return Share(
        share_id=row.share_id,
        document_id=row.document_id,
        shared_by=row.shared_by,
        shared_with=row.shared_with,
        permissions=Permissions.from_share_permissions(row.permissions),
        is_link_share=row.is_link_share,
        share_token=row.share_token,
        expires_at=row.expires_at,
        created_at=row.created_at,
    )


def to_share_link(link: ShareLink) -> ShareLinkOut:
    return ShareLinkOut(
        token=link.token,
        url=link.url,
        document_count=link.document_count,
        reused=link.reused,
        expires_at=link.expires_at,
    )


def share_base_url(ctx: AppContext, request: Request) -> str:
    configured = (ctx.config.sharing.public_base_url or "").strip()
    if configured:
        return configured.rstrip("/")
    return str(request.base_url).rstrip("/")


@router.get("/shares", response_model=ApiResponse[ShareListResponse])
async def shares_mine(
    request: Request, user: UserRow = CURRENT_USER
) -> ApiResponse[ShareListResponse]:
    ctx = context_from_request(request)
    return ok(ShareListResponse(items=[to_share(s) for s in list_my_shares(ctx, user)]))


# Public (token-authorised) endpoints; the auth middleware exempts /v1/shared/.


@router.get("/shared/{token}", response_model=ApiResponse[SharedContent])
async def shared_get(request: Request, token: str) -> ApiResponse[SharedContent]:
    ctx = context_from_request(request)
    resolved = resolve_share_token(ctx, token=token)
    return ok(
        SharedContent(
            token=resolved.token,
            permissions=Permissions.from_share_permissions(resolved.permissions),
            expires_at=resolved.expires_at,
            documents=[to_document(d) for d in resolved.documents],
        )
    )


@router.get("/shared/{token}/documents/{document_id}")
async def shared_document_download(request: Request, token: str, document_id: str) -> Response:
    ctx = context_from_request(request)
    resolved = resolve_share_token(ctx, token=token)
    doc = next((d for d in resolved.documents if d.document_id == document_id), None)
    if doc is None:
        raise NotFoundError("Document absent de ce partage")
    return stream_document(ctx, request, doc, extra_headers={"Cache-Control": NO_CACHE})
