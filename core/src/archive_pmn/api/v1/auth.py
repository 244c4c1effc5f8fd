from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, Field

from archive_pmn.api.models import ApiResponse, User, ok, to_user
from archive_pmn.auth import (
    SESSION_COOKIE,
    extract_token_from_request,
    require_super_admin,
    require_user,
)
from archive_pmn.db.users import UserRow, list_users
from archive_pmn.services import context_from_request
from archive_pmn.services.accounts import (
    Registration,
    admin_update_user,
    authenticate,
    logout,
    register,
)

router = APIRouter(tags=["auth"])

CURRENT_USER = Depends(require_user)
SUPER_ADMIN = Depends(require_super_admin)


class RegisterRequest(BaseModel):
    full_name: str
    email: str
    fonction: str
    role: str = "user"
    password: str
    confirm_password: str


class LoginRequest(BaseModel):
    email: str
    password: str


class LoginResponse(BaseModel):
    token: str
    expires_at: str
    user: User


class AdminUserPatch(BaseModel):
    role: str | None = None
    is_verified: bool | None = None
    is_active: bool | None = None


class UserListResponse(BaseModel):
    items: list[User] = Field(default_factory=list)


@router.post("/auth/register", response_model=ApiResponse[User], status_code=201)
async def auth_register(request: Request, payload: RegisterRequest) -> ApiResponse[User]:
    ctx = context_from_request(request)
    user = register(
        ctx,
        Registration(
            full_name=payload.full_name,
            email=payload.email,
            fonction=payload.fonction,
            role=payload.role,
            password=payload.password,
            confirm_password=payload.confirm_password,
        ),
    )
    return ok(to_user(user))


@router.post("/auth/login", response_model=ApiResponse[LoginResponse])
async def auth_login(
    request: Request, response: Response, payload: LoginRequest
) -> ApiResponse[LoginResponse]:
    ctx = context_from_request(request)
    user, session = authenticate(ctx, email=payload.email, password=payload.password)
    response.set_cookie(
        SESSION_COOKIE,
        session.token,
        httponly=True,
        samesite="lax",
        secure=ctx.config.auth.secure_cookies,
        max_age=ctx.config.auth.session_ttl_hours * 3600,
    )
    return ok(LoginResponse(token=session.token, expires_at=session.expires_at, user=to_user(user)))


@router.post("/auth/logout", response_model=ApiResponse[dict[str, bool]])
async def auth_logout(
    request: Request, response: Response, user: UserRow = CURRENT_USER
) -> ApiResponse[dict[str, bool]]:
    ctx = context_from_request(request)
    token = extract_token_from_request(request)
    if token:
        logout(ctx, token=token, user=user)
    response.delete_cookie(SESSION_COOKIE)
    return ok({"logged_out": True})


@router.get("/auth/me", response_model=ApiResponse[User])
async def auth_me(user: UserRow = CURRENT_USER) -> ApiResponse[User]:
    return ok(to_user(user))


@router.get("/users", response_model=ApiResponse[UserListResponse])
async def users_list(
    request: Request, user: UserRow = CURRENT_USER
) -> ApiResponse[UserListResponse]:
    """Directory of colleagues (share targets, message recipients)."""

    ctx = context_from_request(request)
    rows = list_users(ctx.db_path, exclude_user_id=user.user_id)
    return ok(UserListResponse(items=[to_user(r) for r in rows if r.is_active]))


@router.get("/admin/users", response_model=ApiResponse[UserListResponse])
async def admin_users_list(
    request: Request, user: UserRow = SUPER_ADMIN
) -> ApiResponse[UserListResponse]:
    ctx = context_from_request(request)
    return ok(UserListResponse(items=[to_user(r) for r in list_users(ctx.db_path)]))


@router.patch("/admin/users/{user_id}", response_model=ApiResponse[User])
async def admin_users_patch(
    request: Request, user_id: str, payload: AdminUserPatch, user: UserRow = SUPER_ADMIN
) -> ApiResponse[User]:
    ctx = context_from_request(request)
    updated = admin_update_user(
        ctx,
        user,
        user_id=user_id,
        role=payload.role,
        is_verified=payload.is_verified,
        is_active=payload.is_active,
    )
    return ok(to_user(updated))
