"""Dashboard counters, presence, preferences, access requests and the activity log."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from archive_pmn.auth import is_admin
from archive_pmn.constants import DISPLAY_MODES, PRESENCE_STATUSES
from archive_pmn.db.access_requests import (
    AccessRequestRow,
    count_pending_requests,
    create_access_request,
    find_pending_request,
    get_access_request,
    list_access_requests,
    review_access_request,
)
from archive_pmn.db.activity import ActivityRow, list_activity, log_activity
from archive_pmn.db.common import parse_sqlite_iso
from archive_pmn.db.documents import get_document
from archive_pmn.db.messages import count_unread_messages
from archive_pmn.db.presence import (
    PreferencesRow,
    UserStatusRow,
    get_or_create_preferences,
    list_user_statuses,
    set_display_mode,
    upsert_user_status,
)
from archive_pmn.db.shares import (
    SharePermissions,
    count_shares_for_user,
    create_direct_share,
    get_direct_share,
    update_share_permissions,
)
from archive_pmn.db.users import UserRow, count_active_users
from archive_pmn.errors import (
    ConflictError,
    InvalidInputError,
    NotFoundError,
    PermissionDeniedError,
)
from archive_pmn.services import AppContext
from archive_pmn.services.library import count_visible_documents, document_permissions


@dataclass(frozen=True)
class DashboardStats:
    documents: int
    shares: int
    unread_messages: int
    active_users: int


@dataclass(frozen=True)
class NavBadges:
    unread_messages: int
    pending_requests: int


def dashboard_stats(ctx: AppContext, user: UserRow) -> DashboardStats:
    return DashboardStats(
        documents=count_visible_documents(ctx, user),
        shares=count_shares_for_user(ctx.db_path, user_id=user.user_id),
        unread_messages=count_unread_messages(ctx.db_path, user_id=user.user_id),
        active_users=count_active_users(ctx.db_path),
    )


def nav_badges(ctx: AppContext, user: UserRow) -> NavBadges:
    return NavBadges(
        unread_messages=count_unread_messages(ctx.db_path, user_id=user.user_id),
        pending_requests=count_pending_requests(ctx.db_path) if is_admin(user) else 0,
    )


# --- presence ---


def heartbeat(ctx: AppContext, user: UserRow) -> UserStatusRow:
    return set_status(ctx, user, status="online")


def set_status(ctx: AppContext, user: UserRow, *, status: str) -> UserStatusRow:
    if status not in PRESENCE_STATUSES:
        raise InvalidInputError("Statut de présence inconnu")
    row = upsert_user_status(ctx.db_path, user_id=user.user_id, status=status)
    ctx.publish("user_status", "UPDATE", row)
    return row


def effective_statuses(ctx: AppContext, *, now: datetime | None = None) -> list[UserStatusRow]:
    """Current statuses, with stale `online` entries reported as `offline`."""

    now = now or datetime.now(UTC)
    cutoff = now - timedelta(seconds=ctx.config.presence.stale_after_seconds)
    out: list[UserStatusRow] = []
    for row in list_user_statuses(ctx.db_path):
        if row.status == "online" and parse_sqlite_iso(row.last_seen) < cutoff:
            row = UserStatusRow(user_id=row.user_id, status="offline", last_seen=row.last_seen)
        out.append(row)
    return out


# --- preferences ---


def get_preferences_for(ctx: AppContext, user: UserRow) -> PreferencesRow:
    return get_or_create_preferences(ctx.db_path, user_id=user.user_id)


def set_display_mode_for(ctx: AppContext, user: UserRow, *, display_mode: str) -> PreferencesRow:
    if display_mode not in DISPLAY_MODES:
        raise InvalidInputError("Mode d'affichage inconnu")
    return set_display_mode(ctx.db_path, user_id=user.user_id, display_mode=display_mode)


# --- access requests ---


def request_access(ctx: AppContext, user: UserRow, *, document_id: str) -> AccessRequestRow:
    doc = get_document(ctx.db_path, document_id=document_id)
    if doc is None:
        raise NotFoundError("Document introuvable")
    if document_permissions(ctx, user, doc).can_read:
        raise ConflictError("Vous avez déjà accès à ce document")
    if find_pending_request(ctx.db_path, document_id=document_id, requested_by=user.user_id):
        raise ConflictError("Une demande est déjà en attente pour ce document")
    return create_access_request(ctx.db_path, document_id=document_id, requested_by=user.user_id)


def list_requests(
    ctx: AppContext, user: UserRow, *, status: str | None = None
) -> list[AccessRequestRow]:
    if not is_admin(user):
        raise PermissionDeniedError("Réservé aux administrateurs")
    return list_access_requests(ctx.db_path, status=status)


def review_request(
    ctx: AppContext, user: UserRow, *, request_id: str, approve: bool
) -> AccessRequestRow:
    """Approve (read-only direct share) or reject a pending request."""

    if not is_admin(user):
        raise PermissionDeniedError("Réservé aux administrateurs")

    existing = get_access_request(ctx.db_path, request_id=request_id)
    if existing is None:
        raise NotFoundError("Demande introuvable")

    reviewed = review_access_request(
        ctx.db_path,
        request_id=request_id,
        status="approved" if approve else "rejected",
        reviewed_by=user.user_id,
    )
    if reviewed is None:
        raise ConflictError("Cette demande a déjà été traitée")

    if approve:
        read_only = SharePermissions(can_read=True)
        share = get_direct_share(
            ctx.db_path, document_id=reviewed.document_id, shared_with=reviewed.requested_by
        )
        if share is None:
            share = create_direct_share(
                ctx.db_path,
                document_id=reviewed.document_id,
                shared_by=user.user_id,
                shared_with=reviewed.requested_by,
                permissions=read_only,
            )
            ctx.publish("shares", "INSERT", share)
        elif not share.permissions.can_read:
            merged = SharePermissions(
                can_read=True,
                can_write=share.permissions.can_write,
                can_delete=share.permissions.can_delete,
                can_share=share.permissions.can_share,
            )
            updated = update_share_permissions(
                ctx.db_path, share_id=share.share_id, permissions=merged
            )
            if updated is not None:
                ctx.publish("shares", "UPDATE", updated)

    log_activity(
        ctx.db_path,
        user_id=user.user_id,
        activity_type="access_request",
        description="Demande d'accès approuvée" if approve else "Demande d'accès rejetée",
        metadata={"request_id": request_id, "document_id": reviewed.document_id},
    )
    return reviewed


# --- activity ---


def recent_activity(ctx: AppContext, user: UserRow, *, limit: int = 50) -> list[ActivityRow]:
    if not is_admin(user):
        raise PermissionDeniedError("Réservé aux administrateurs")
    return list_activity(ctx.db_path, limit=limit)
