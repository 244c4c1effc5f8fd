from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from archive_pmn.api.models import ApiResponse, ok
from archive_pmn.auth import require_admin, require_user
from archive_pmn.constants import DISPLAY_MODES
from archive_pmn.db.access_requests import AccessRequestRow
from archive_pmn.db.presence import UserStatusRow
from archive_pmn.db.users import UserRow
from archive_pmn.services import context_from_request
from archive_pmn.services.dashboard import (
    dashboard_stats,
    effective_statuses,
    get_preferences_for,
    heartbeat,
    list_requests,
    nav_badges,
    recent_activity,
    request_access,
    review_request,
    set_display_mode_for,
    set_status,
)

router = APIRouter(tags=["dashboard"])

CURRENT_USER = Depends(require_user)
ADMIN_USER = Depends(require_admin)


class Stats(BaseModel):
    documents: int
    shares: int
    unread_messages: int
    active_users: int


class Badges(BaseModel):
    unread_messages: int
    pending_requests: int


class UserStatus(BaseModel):
    user_id: str
    status: str
    last_seen: str


class StatusListResponse(BaseModel):
    items: list[UserStatus] = Field(default_factory=list)


class StatusUpdate(BaseModel):
    status: str


class Preferences(BaseModel):
    display_mode: str
    icon_size: int


class PreferencesUpdate(BaseModel):
    display_mode: str


class AccessRequest(BaseModel):
    request_id: str
    document_id: str
    requested_by: str
    status: str
    reviewed_by: str | None
    created_at: str
    reviewed_at: str | None


class AccessRequestListResponse(BaseModel):
    items: list[AccessRequest] = Field(default_factory=list)


class Activity(BaseModel):
    activity_id: int
    user_id: str | None
    activity_type: str
    description: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: str


class ActivityListResponse(BaseModel):
    items: list[Activity] = Field(default_factory=list)


def _to_status(row: UserStatusRow) -> UserStatus:
    return UserStatus(user_id=row.user_id, status=row.status, last_seen=row.last_seen)


def _to_request(row: AccessRequestRow) -> AccessRequest:
    return AccessRequest(
        request_id=row.request_id,
        document_id=row.document_id,
        requested_by=row.requested_by,
        status=row.status,
        reviewed_by=row.reviewed_by,
        created_at=row.created_at,
        reviewed_at=row.reviewed_at,
    )


@router.get("/dashboard/stats", response_model=ApiResponse[Stats])
async def dashboard_get_stats(
    request: Request, user: UserRow = CURRENT_USER
) -> ApiResponse[Stats]:
    ctx = context_from_request(request)
    s = dashboard_stats(ctx, user)
    return ok(
        Stats(
            documents=s.documents,
            shares=s.shares,
            unread_messages=s.unread_messages,
            active_users=s.active_users,
        )
    )


@router.get("/dashboard/badges", response_model=ApiResponse[Badges])
async def dashboard_get_badges(
    request: Request, user: UserRow = CURRENT_USER
) -> ApiResponse[Badges]:
    ctx = context_from_request(request)
    b = nav_badges(ctx, user)
    return ok(Badges(unread_messages=b.unread_messages, pending_requests=b.pending_requests))


@router.post("/presence/heartbeat", response_model=ApiResponse[UserStatus])
async def presence_heartbeat(
    request: Request, user: UserRow = CURRENT_USER
) -> ApiResponse[UserStatus]:
    ctx = context_from_request(request)
    return ok(_to_status(heartbeat(ctx, user)))


@router.put("/presence/status", response_model=ApiResponse[UserStatus])
async def presence_set_status(
    request: Request, payload: StatusUpdate, user: UserRow = CURRENT_USER
) -> ApiResponse[UserStatus]:
    ctx = context_from_request(request)
    return ok(_to_status(set_status(ctx, user, status=payload.status)))


@router.get("/presence", response_model=ApiResponse[StatusListResponse])
async def presence_list(
    request: Request, user: UserRow = CURRENT_USER
) -> ApiResponse[StatusListResponse]:
    ctx = context_from_request(request)
    return ok(StatusListResponse(items=[_to_status(s) for s in effective_statuses(ctx)]))


@router.get("/preferences", response_model=ApiResponse[Preferences])
async def preferences_get(
    request: Request, user: UserRow = CURRENT_USER
) -> ApiResponse[Preferences]:
    ctx = context_from_request(request)
    prefs = get_preferences_for(ctx, user)
    return ok(
        Preferences(display_mode=prefs.display_mode, icon_size=DISPLAY_MODES[prefs.display_mode])
    )


@router.put("/preferences", response_model=ApiResponse[Preferences])
async def preferences_put(
    request: Request, payload: PreferencesUpdate, user: UserRow = CURRENT_USER
) -> ApiResponse[Preferences]:
    ctx = context_from_request(request)
    prefs = set_display_mode_for(ctx, user, display_mode=payload.display_mode)
    return ok(
        Preferences(display_mode=prefs.display_mode, icon_size=DISPLAY_MODES[prefs.display_mode])
    )


@router.post(
    "/documents/{document_id}/access-requests",
    response_model=ApiResponse[AccessRequest],
    status_code=201,
)
async def access_requests_create(
    request: Request, document_id: str, user: UserRow = CURRENT_USER
) -> ApiResponse[AccessRequest]:
    ctx = context_from_request(request)
    return ok(_to_request(request_access(ctx, user, document_id=document_id)))


@router.get("/access-requests", response_model=ApiResponse[AccessRequestListResponse])
async def access_requests_list(
    request: Request, status: str | None = None, user: UserRow = ADMIN_USER
) -> ApiResponse[AccessRequestListResponse]:
    ctx = context_from_request(request)
    rows = list_requests(ctx, user, status=status)
    return ok(AccessRequestListResponse(items=[_to_request(r) for r in rows]))


@router.post("/access-requests/{request_id}/approve", response_model=ApiResponse[AccessRequest])
async def access_requests_approve(
    request: Request, request_id: str, user: UserRow = ADMIN_USER
) -> ApiResponse[AccessRequest]:
    ctx = context_from_request(request)
    return ok(_to_request(review_request(ctx, user, request_id=request_id, approve=True)))


@router.post("/access-requests/{request_id}/reject", response_model=ApiResponse[AccessRequest])
async def access_requests_reject(
    request: Request, request_id: str, user: UserRow = ADMIN_USER
) -> ApiResponse[AccessRequest]:
    ctx = context_from_request(request)
    return ok(_to_request(review_request(ctx, user, request_id=request_id, approve=False)))


@router.get("/activity", response_model=ApiResponse[ActivityListResponse])
async def activity_list(
    request: Request, limit: int = 50, user: UserRow = ADMIN_USER
) -> ApiResponse[ActivityListResponse]:
    ctx = context_from_request(request)
    rows = recent_activity(ctx, user, limit=max(1, min(limit, 500)))
    return ok(
        ActivityListResponse(
            items=[
                Activity(
                    activity_id=r.activity_id,
                    user_id=r.user_id,
                    activity_type=r.activity_type,
                    description=r.description,
                    metadata=r.metadata,
                    created_at=r.created_at,
                )
                for r in rows
            ]
        )
    )
