from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, Field

from archive_pmn.api.downloads import zip_response
from archive_pmn.api.models import (
    ApiResponse,
    Document,
    Folder,
    Permissions,
    ok,
    to_document,
    to_folder,
)
from archive_pmn.api.v1.shares import ShareLinkOut, share_base_url, to_share_link
from archive_pmn.auth import require_user
from archive_pmn.db.folders import get_folder, list_folders
from archive_pmn.db.users import UserRow
from archive_pmn.errors import NotFoundError
from archive_pmn.services import context_from_request
from archive_pmn.services.export import build_folder_zip
from archive_pmn.services.library import (
    FolderNode,
    build_folder_tree,
    create_folder_for,
    delete_folder_tree,
    descendant_folders,
    rename_folder,
    update_folder_details,
)
from archive_pmn.services.sharing import generate_share_link, share_folder_with_user

router = APIRouter(tags=["folders"])

CURRENT_USER = Depends(require_user)


class FolderCreate(BaseModel):
    name: str
    category: str
    parent_id: str | None = None
    description: str | None = None
    folder_number: str | None = None
    status: str | None = None


class FolderRename(BaseModel):
    name: str


class FolderDetailsPatch(BaseModel):
    folder_number: str | None = None
    status: str | None = None


class FolderListResponse(BaseModel):
    items: list[Folder] = Field(default_factory=list)


class FolderTreeNode(BaseModel):
    folder: Folder
    children: list[FolderTreeNode] = Field(default_factory=list)
    documents: list[Document] = Field(default_factory=list)


FolderTreeNode.model_rebuild()


class FolderTreeResponse(BaseModel):
    folders: list[FolderTreeNode] = Field(default_factory=list)
    root_documents: list[Document] = Field(default_factory=list)


class FolderShareRequest(BaseModel):
    user_id: str
    permissions: Permissions = Field(default_factory=Permissions)


class FolderShareResponse(BaseModel):
    total: int
    shared: int
    failed: int


class ShareLinkRequest(BaseModel):
    permissions: Permissions = Field(default_factory=Permissions)


def _to_tree_node(node: FolderNode) -> FolderTreeNode:
    return FolderTreeNode(
        folder=to_folder(node.folder),
        children=[_to_tree_node(c) for c in node.children],
        documents=[to_document(d) for d in node.documents],
    )


@router.get("/folders", response_model=ApiResponse[FolderListResponse])
async def folders_list(
    request: Request, user: UserRow = CURRENT_USER
) -> ApiResponse[FolderListResponse]:
    ctx = context_from_request(request)
    return ok(FolderListResponse(items=[to_folder(f) for f in list_folders(ctx.db_path)]))


@router.get("/folders/tree", response_model=ApiResponse[FolderTreeResponse])
async def folders_tree(
    request: Request,
    q: str | None = None,
    category: str | None = None,
    user: UserRow = CURRENT_USER,
) -> ApiResponse[FolderTreeResponse]:
    ctx = context_from_request(request)
    tree = build_folder_tree(ctx, user, q=q, category=category)
    return ok(
        FolderTreeResponse(
            folders=[_to_tree_node(n) for n in tree.folders],
            root_documents=[to_document(d) for d in tree.root_documents],
        )
    )


@router.post("/folders", response_model=ApiResponse[Folder], status_code=201)
async def folders_create(
    request: Request, payload: FolderCreate, user: UserRow = CURRENT_USER
) -> ApiResponse[Folder]:
    ctx = context_from_request(request)
    folder = create_folder_for(
        ctx,
        user,
        name=payload.name,
        category=payload.category,
        parent_id=payload.parent_id,
        description=payload.description,
        folder_number=payload.folder_number,
        status=payload.status,
    )
    return ok(to_folder(folder))


@router.get("/folders/{folder_id}", response_model=ApiResponse[Folder])
async def folders_get(
    request: Request, folder_id: str, user: UserRow = CURRENT_USER
) -> ApiResponse[Folder]:
    ctx = context_from_request(request)
    folder = get_folder(ctx.db_path, folder_id=folder_id)
    if folder is None:
        raise NotFoundError("Dossier introuvable")
    return ok(to_folder(folder))


@router.get("/folders/{folder_id}/descendants", response_model=ApiResponse[FolderListResponse])
async def folders_descendants(
    request: Request, folder_id: str, user: UserRow = CURRENT_USER
) -> ApiResponse[FolderListResponse]:
    ctx = context_from_request(request)
    if get_folder(ctx.db_path, folder_id=folder_id) is None:
        raise NotFoundError("Dossier introuvable")
    subs = descendant_folders(ctx, folder_id=folder_id)
    return ok(FolderListResponse(items=[to_folder(f) for f in subs]))


@router.patch("/folders/{folder_id}", response_model=ApiResponse[Folder])
async def folders_rename(
    request: Request, folder_id: str, payload: FolderRename, user: UserRow = CURRENT_USER
) -> ApiResponse[Folder]:
    ctx = context_from_request(request)
    return ok(to_folder(rename_folder(ctx, user, folder_id=folder_id, name=payload.name)))


@router.patch("/folders/{folder_id}/details", response_model=ApiResponse[Folder])
async def folders_details(
    request: Request, folder_id: str, payload: FolderDetailsPatch, user: UserRow = CURRENT_USER
) -> ApiResponse[Folder]:
    ctx = context_from_request(request)
    folder = update_folder_details(
        ctx,
        user,
        folder_id=folder_id,
        folder_number=payload.folder_number,
        status=payload.status,
    )
    return ok(to_folder(folder))


@router.delete("/folders/{folder_id}", response_model=ApiResponse[dict[str, int]])
async def folders_delete(
    request: Request, folder_id: str, user: UserRow = CURRENT_USER
) -> ApiResponse[dict[str, int]]:
    ctx = context_from_request(request)
    removed = delete_folder_tree(ctx, user, folder_id=folder_id)
    return ok({"documents_deleted": removed})


@router.get("/folders/{folder_id}/zip")
async def folders_zip(request: Request, folder_id: str, user: UserRow = CURRENT_USER) -> Response:
    ctx = context_from_request(request)
    archive = build_folder_zip(ctx, user, folder_id=folder_id)
    return zip_response(
        archive.data,
        filename=archive.filename,
        extra_headers={
            "X-Archive-Files": str(archive.files),
            "X-Archive-Errors": str(archive.errors),
        },
    )


@router.post("/folders/{folder_id}/share", response_model=ApiResponse[FolderShareResponse])
async def folders_share(
    request: Request, folder_id: str, payload: FolderShareRequest, user: UserRow = CURRENT_USER
) -> ApiResponse[FolderShareResponse]:
    ctx = context_from_request(request)
    result = share_folder_with_user(
        ctx,
        user,
        folder_id=folder_id,
        target_user_id=payload.user_id,
        permissions=payload.permissions.to_share_permissions(),
    )
    return ok(FolderShareResponse(total=result.total, shared=result.shared, failed=result.failed))


@router.post("/folders/{folder_id}/share-link", response_model=ApiResponse[ShareLinkOut])
async def folders_share_link(
    request: Request, folder_id: str, payload: ShareLinkRequest, user: UserRow = CURRENT_USER
) -> ApiResponse[ShareLinkOut]:
    ctx = context_from_request(request)
    link = generate_share_link(
        ctx,
        user,
        folder_id=folder_id,
        permissions=payload.permissions.to_share_permissions(),
        base_url=share_base_url(ctx, request),
    )
    return ok(to_share_link(link))
