from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

from archive_pmn.db.documents import DocumentRow
from archive_pmn.db.folders import FolderRow
from archive_pmn.db.shares import SharePermissions
from archive_pmn.db.users import UserRow


class ApiError(BaseModel):
    code: str
    message: str
    details: Any | None = None


T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    ok: bool
    data: T | None = None
    error: ApiError | None = None


def ok(data: T) -> ApiResponse[T]:
    return ApiResponse(ok=True, data=data)


def fail(*, code: str, message: str, details: Any | None = None) -> ApiResponse[None]:
    return ApiResponse(ok=False, error=ApiError(code=code, message=message, details=details))


def status_to_code(status_code: int) -> str:
    if status_code == 401:
        return "unauthorized"
    if status_code == 403:
        return "forbidden"
    if status_code == 404:
        return "not_found"
    if status_code == 409:
        return "conflict"
    if status_code == 410:
        return "gone"
    if status_code == 422:
        return "validation_error"
    if 400 <= status_code < 500:
        return "client_error"
    return "server_error"


# Shared resource shapes.


class User(BaseModel):
    user_id: str
    email: str
    full_name: str
    fonction: str | None
    role: str
    avatar_url: str | None
    is_verified: bool
    is_active: bool
    created_at: str


def to_user(row: UserRow) -> User:
    return User(
        user_id=row.user_id,
        email=row.email,
        full_name=row.full_name,
        fonction=row.fonction,
        role=row.role,
        avatar_url=row.avatar_url,
        is_verified=row.is_verified,
        is_active=row.is_active,
        created_at=row.created_at,
    )


class Folder(BaseModel):
    folder_id: str
    name: str
    description: str | None
    parent_id: str | None
    category: str
    folder_number: str | None
    status: str
    created_by: str | None
    created_at: str
    updated_at: str


def to_folder(row: FolderRow) -> Folder:
    return Folder(
        folder_id=row.folder_id,
        name=row.name,
        description=row.description,
        parent_id=row.parent_id,
        category=row.category,
        folder_number=row.folder_number,
        status=row.status,
        created_by=row.created_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class Document(BaseModel):
    document_id: str
    name: str
    description: str | None
    file_size: int
    file_type: str | None
    folder_id: str | None
    category: str
    tags: list[str] = Field(default_factory=list)
    uploaded_by: str | None
    created_at: str
    updated_at: str


def to_document(row: DocumentRow) -> Document:
    return Document(
        document_id=row.document_id,
        name=row.name,
        description=row.description,
        file_size=row.file_size,
        file_type=row.file_type,
        folder_id=row.folder_id,
        category=row.category,
        tags=list(row.tags),
        uploaded_by=row.uploaded_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class Permissions(BaseModel):
    can_read: bool = True
    can_write: bool = False
    can_delete: bool = False
    can_share: bool = False

    def to_share_permissions(self) -> SharePermissions:
        return SharePermissions(
            can_read=self.can_read,
            can_write=self.can_write,
            can_delete=self.can_delete,
            can_share=self.can_share,
        )

    @staticmethod
    def from_share_permissions(p: SharePermissions) -> Permissions:
        return Permissions(
            can_read=p.can_read,
            can_write=p.can_write,
            can_delete=p.can_delete,
            can_share=p.can_share,
        )
