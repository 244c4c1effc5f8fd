from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from archive_pmn.db.activity import log_activity
from archive_pmn.db.common import parse_sqlite_iso, utc_now_sqlite_iso
from archive_pmn.db.documents import DocumentRow, get_documents
from archive_pmn.db.folders import get_folder
from archive_pmn.db.ids import new_share_token
from archive_pmn.db.shares import (
    SharePermissions,
    ShareRow,
    create_direct_share,
    create_link_shares,
    get_direct_share,
    list_link_shares_by_sharer,
    list_shares_for_token,
    list_shares_for_user,
    refresh_token_shares,
    update_share_permissions,
)
from archive_pmn.db.users import UserRow, get_user
from archive_pmn.errors import (
    ArchiveError,
    InvalidInputError,
    NotFoundError,
    ShareLinkError,
)
from archive_pmn.services import AppContext
from archive_pmn.services.library import folder_documents_recursive, require_document

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectShareResult:
    share: ShareRow
    created: bool


@dataclass(frozen=True)
class FolderShareResult:
    total: int
    shared: int
    failed: int


@dataclass(frozen=True)
class ShareLink:
    token: str
    url: str
    document_count: int
    reused: bool
    expires_at: str | None


@dataclass(frozen=True)
class ResolvedShare:
    token: str
    permissions: SharePermissions
    expires_at: str | None
    documents: list[DocumentRow]


def _require_some_permission(permissions: SharePermissions) -> None:
    if not permissions.any():
        raise InvalidInputError("Au moins une permission doit être accordée")


def _share_one(
    ctx: AppContext,
    user: UserRow,
    *,
    document_id: str,
    target: UserRow,
    permissions: SharePermissions,
) -> DirectShareResult:
    require_document(ctx, user, document_id=document_id, action="share")

    existing = get_direct_share(ctx.db_path, document_id=document_id, shared_with=target.user_id)
    if existing is not None:
        updated = update_share_permissions(
            ctx.db_path, share_id=existing.share_id, permissions=permissions
        )
        if updated is None:
            raise NotFoundError("Partage introuvable")
        ctx.publish("shares", "UPDATE", updated)
        return DirectShareResult(share=updated, created=False)

    share = create_direct_share(
        ctx.db_path,
        document_id=document_id,
        shared_by=user.user_id,
        shared_with=target.user_id,
        permissions=permissions,
    )
    ctx.publish("shares", "INSERT", share)
    return DirectShareResult(share=share, created=True)


def _resolve_target(ctx: AppContext, user: UserRow, target_user_id: str) -> UserRow:
    if target_user_id == user.user_id:
        raise InvalidInputError("Impossible de partager avec soi-même")
    target = get_user(ctx.db_path, user_id=target_user_id)
    if target is None:
        raise NotFoundError("Utilisateur destinataire introuvable")
    return target


def share_document_with_user(
    ctx: AppContext,
    user: UserRow,
    *,
    document_id: str,
    target_user_id: str,
    permissions: SharePermissions,
) -> DirectShareResult:
    """Create the direct share for (document, user), or update its permissions."""

    _require_some_permission(permissions)
    target = _resolve_target(ctx, user, target_user_id)
    result = _share_one(
        ctx, user, document_id=document_id, target=target, permissions=permissions
    )
    log_activity(
        ctx.db_path,
        user_id=user.user_id,
        activity_type="share",
        description=f"Partage d'un document avec {target.full_name}",
        metadata={"document_id": document_id, "shared_with": target.user_id},
    )
    return result


def share_folder_with_user(
    ctx: AppContext,
    user: UserRow,
    *,
    folder_id: str,
    target_user_id: str,
    permissions: SharePermissions,
) -> FolderShareResult:
    """Share every document of a folder and its sub-folders; failures are counted."""

    _require_some_permission(permissions)
    folder = get_folder(ctx.db_path, folder_id=folder_id)
    if folder is None:
        raise NotFoundError("Dossier introuvable")
    target = _resolve_target(ctx, user, target_user_id)

    docs = folder_documents_recursive(ctx, folder_id=folder_id)
    shared = 0
    failed = 0
    for doc in docs:
        try:
            _share_one(
                ctx, user, document_id=doc.document_id, target=target, permissions=permissions
            )
        except (ArchiveError, sqlite3.Error) as e:
            failed += 1
            logger.warning("Folder share: document %s skipped (%s)", doc.document_id, e)
            continue
        shared += 1

    if docs:
        log_activity(
            ctx.db_path,
            user_id=user.user_id,
            activity_type="share",
            description=f"Partage du dossier {folder.name} avec {target.full_name}",
            metadata={"folder_id": folder_id, "shared": shared, "failed": failed},
        )
    return FolderShareResult(total=len(docs), shared=shared, failed=failed)


def link_url(base_url: str, *, token: str, single_document: bool) -> str:
    base = base_url.rstrip("/")
    if single_document:
        return f"{base}/api/share/{token}"
    return f"{base}/shared?token={token}"


def generate_share_link(
    ctx: AppContext,
    user: UserRow,
    *,
    permissions: SharePermissions,
    base_url: str,
    document_id: str | None = None,
    folder_id: str | None = None,
) -> ShareLink:
    """Issue (or reuse) a public link for one document or a whole folder tree.

    When the user already has link shares on any of the documents, the first
    existing token is reused: missing documents are added under it and every
    row of the token receives the new permissions.
    """

    if (document_id is None) == (folder_id is None):
        raise InvalidInputError("Indiquez un document ou un dossier")
    _require_some_permission(permissions)

    if document_id is not None:
        docs = [require_document(ctx, user, document_id=document_id, action="share")]
    else:
        if get_folder(ctx.db_path, folder_id=folder_id) is None:
            raise NotFoundError("Dossier introuvable")
        docs = folder_documents_recursive(ctx, folder_id=folder_id)
        if not docs:
            raise InvalidInputError("Ce dossier ne contient aucun document à partager")
        for doc in docs:
            require_document(ctx, user, document_id=doc.document_id, action="share")

    doc_ids = [d.document_id for d in docs]
    existing = list_link_shares_by_sharer(ctx.db_path, document_ids=doc_ids, shared_by=user.user_id)

    expiry_days = ctx.config.sharing.link_expiry_days
    expires_at = (
        utc_now_sqlite_iso(offset=timedelta(days=expiry_days)) if expiry_days is not None else None
    )

    token = next((s.share_token for s in existing if s.share_token), None)
    reused = token is not None
    if token is None:
        token = new_share_token()
        rows = create_link_shares(
            ctx.db_path,
            document_ids=doc_ids,
            shared_by=user.user_id,
            share_token=token,
            permissions=permissions,
            expires_at=expires_at,
        )
        for row in rows:
            ctx.publish("shares", "INSERT", row)
    else:
        covered = {s.document_id for s in list_shares_for_token(ctx.db_path, share_token=token)}
        missing = [d for d in doc_ids if d not in covered]
        rows = create_link_shares(
            ctx.db_path,
            document_ids=missing,
            shared_by=user.user_id,
            share_token=token,
            permissions=permissions,
            expires_at=expires_at,
        )
        for row in rows:
            ctx.publish("shares", "INSERT", row)
        refresh_token_shares(
            ctx.db_path, share_token=token, permissions=permissions, expires_at=expires_at
        )
        logger.info("Reused share token for %d documents (%d added)", len(doc_ids), len(missing))

    log_activity(
        ctx.db_path,
        user_id=user.user_id,
        activity_type="share_link",
        description="Génération d'un lien de partage",
        metadata={"documents": len(doc_ids), "reused": reused},
    )

    single = document_id is not None
    return ShareLink(
        token=token,
        url=link_url(base_url, token=token, single_document=single),
        document_count=len(doc_ids),
        reused=reused,
        expires_at=expires_at,
    )


def resolve_share_token(ctx: AppContext, *, token: str) -> ResolvedShare:
    """Validate a public token: unknown 404, expired 410, unreadable 403."""

    shares = list_shares_for_token(ctx.db_path, share_token=token)
    if not shares:
        raise ShareLinkError("Lien de partage invalide", status_code=404)

    first = shares[0]
    if first.expires_at is not None and parse_sqlite_iso(first.expires_at) < datetime.now(UTC):
        raise ShareLinkError("Ce lien de partage a expiré", status_code=410)
    if not first.permissions.can_read:
        raise ShareLinkError("Ce lien ne permet pas la lecture", status_code=403)

    docs = get_documents(ctx.db_path, document_ids=[s.document_id for s in shares])
    by_id = {d.document_id: d for d in docs}
    ordered = [by_id[s.document_id] for s in shares if s.document_id in by_id]
    return ResolvedShare(
        token=token,
        permissions=first.permissions,
        expires_at=first.expires_at,
        documents=ordered,
    )


def list_my_shares(ctx: AppContext, user: UserRow) -> list[ShareRow]:
    return list_shares_for_user(ctx.db_path, user_id=user.user_id)
