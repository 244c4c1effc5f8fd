"""Folders, documents and the per-document permission check."""

from __future__ import annotations

import logging
import mimetypes
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path

from archive_pmn.auth import is_admin, is_super_admin
from archive_pmn.constants import CATEGORIES, FOLDER_STATUSES
from archive_pmn.db.activity import log_activity
from archive_pmn.db.documents import (
    DocumentRow,
    create_document,
    delete_document,
    get_document,
    list_documents,
    list_documents_in_folders,
    rename_document,
)
from archive_pmn.db.folders import (
    FolderRow,
    create_folder,
    delete_folder,
    get_folder,
    list_descendant_folders,
    list_folders,
    patch_folder,
)
from archive_pmn.db.ids import new_id
from archive_pmn.db.shares import (
    SharePermissions,
    get_received_permissions,
    list_readable_document_ids,
)
from archive_pmn.db.users import UserRow
from archive_pmn.errors import InvalidInputError, NotFoundError, PermissionDeniedError
from archive_pmn.services import AppContext
from archive_pmn.storage.manager import document_object_key

logger = logging.getLogger(__name__)

ALL_PERMISSIONS = SharePermissions(can_read=True, can_write=True, can_delete=True, can_share=True)
NO_PERMISSIONS = SharePermissions(
    can_read=False, can_write=False, can_delete=False, can_share=False
)


# --- permissions ---


def document_permissions(ctx: AppContext, user: UserRow, doc: DocumentRow) -> SharePermissions:
    if is_admin(user) or doc.uploaded_by == user.user_id:
        return ALL_PERMISSIONS

    received = get_received_permissions(
        ctx.db_path, document_id=doc.document_id, user_id=user.user_id
    )
    base = received or NO_PERMISSIONS
    org_read = user.is_verified and user.role != "guest"
    return SharePermissions(
        can_read=base.can_read or org_read,
        can_write=base.can_write,
        can_delete=base.can_delete,
        can_share=base.can_share,
    )


def require_document(
    ctx: AppContext, user: UserRow, *, document_id: str, action: str = "read"
) -> DocumentRow:
    """Load a document and check `action` (read | write | delete | share)."""

    doc = get_document(ctx.db_path, document_id=document_id)
    if doc is None:
        raise NotFoundError("Document introuvable")

    perms = document_permissions(ctx, user, doc)
    allowed = {
        "read": perms.can_read,
        "write": perms.can_write,
        "delete": perms.can_delete,
        "share": perms.can_share,
    }.get(action, False)
    if not allowed:
        raise PermissionDeniedError("Permission refusée sur ce document")
    return doc


def filter_readable(ctx: AppContext, user: UserRow, docs: list[DocumentRow]) -> list[DocumentRow]:
    if is_admin(user) or (user.is_verified and user.role != "guest"):
        return docs
    shared = set(list_readable_document_ids(ctx.db_path, user_id=user.user_id))
    return [d for d in docs if d.uploaded_by == user.user_id or d.document_id in shared]


def count_visible_documents(ctx: AppContext, user: UserRow) -> int:
    return len(filter_readable(ctx, user, list_documents(ctx.db_path)))


def _require_contributor(user: UserRow) -> None:
    if user.role == "guest":
        raise PermissionDeniedError("Les agents invités ont un accès en lecture seule")


def _clean_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise InvalidInputError("Le nom ne peut pas être vide")
    return cleaned


def _check_category(category: str) -> str:
    if category not in CATEGORIES:
        raise InvalidInputError("Catégorie inconnue")
    return category


# --- folders ---


def create_folder_for(
    ctx: AppContext,
    user: UserRow,
    *,
    name: str,
    category: str,
    parent_id: str | None = None,
    description: str | None = None,
    folder_number: str | None = None,
    status: str | None = None,
) -> FolderRow:
    _require_contributor(user)
    name = _clean_name(name)
    _check_category(category)

    if status is not None and status not in FOLDER_STATUSES:
        raise InvalidInputError("Statut de dossier inconnu")
    if parent_id is not None and get_folder(ctx.db_path, folder_id=parent_id) is None:
        raise NotFoundError("Dossier parent introuvable")

    folder = create_folder(
        ctx.db_path,
        name=name,
        category=category,
        created_by=user.user_id,
        parent_id=parent_id,
        description=(description or "").strip() or None,
        folder_number=(folder_number or "").strip() or None,
        status=status or FOLDER_STATUSES[0],
    )
    ctx.publish("folders", "INSERT", folder)
    return folder


def rename_folder(ctx: AppContext, user: UserRow, *, folder_id: str, name: str) -> FolderRow:
    folder = get_folder(ctx.db_path, folder_id=folder_id)
    if folder is None:
        raise NotFoundError("Dossier introuvable")
    if not (is_admin(user) or folder.created_by == user.user_id):
        raise PermissionDeniedError("Seul le créateur ou un administrateur peut renommer")

    updated = patch_folder(ctx.db_path, folder_id=folder_id, name=_clean_name(name))
    if updated is None:
        raise NotFoundError("Dossier introuvable")
    ctx.publish("folders", "UPDATE", updated)
    return updated


def update_folder_details(
    ctx: AppContext,
    user: UserRow,
    *,
    folder_id: str,
    folder_number: str | None,
    status: str | None,
) -> FolderRow:
    """Folder number and status are managed by the super administrator only."""

    if not is_super_admin(user):
        raise PermissionDeniedError("Réservé au super administrateur")
    if status is not None and status not in FOLDER_STATUSES:
        raise InvalidInputError("Statut de dossier inconnu")

    number = (folder_number or "").strip()
    updated = patch_folder(
        ctx.db_path,
        folder_id=folder_id,
        folder_number=number or None,
        clear_folder_number=folder_number is not None and not number,
        status=status,
    )
    if updated is None:
        raise NotFoundError("Dossier introuvable")
    ctx.publish("folders", "UPDATE", updated)
    return updated


def descendant_folders(ctx: AppContext, *, folder_id: str) -> list[FolderRow]:
    return list_descendant_folders(ctx.db_path, folder_id=folder_id)


def folder_documents_recursive(ctx: AppContext, *, folder_id: str) -> list[DocumentRow]:
    ids = [folder_id] + [f.folder_id for f in descendant_folders(ctx, folder_id=folder_id)]
    return list_documents_in_folders(ctx.db_path, folder_ids=ids)


def delete_folder_tree(ctx: AppContext, user: UserRow, *, folder_id: str) -> int:
    """Delete a folder, its sub-folders, their documents and blobs. Returns documents removed."""

    if not is_super_admin(user):
        raise PermissionDeniedError("Seul le super administrateur peut supprimer un dossier")

    folder = get_folder(ctx.db_path, folder_id=folder_id)
    if folder is None:
        raise NotFoundError("Dossier introuvable")

    subfolders = descendant_folders(ctx, folder_id=folder_id)
    docs = folder_documents_recursive(ctx, folder_id=folder_id)

    delete_folder(ctx.db_path, folder_id=folder_id)

    for doc in docs:
        ctx.storage.delete(storage_provider=doc.storage_provider, storage_key=doc.storage_key)
        ctx.publish("documents", "DELETE", doc)
    for f in [*subfolders, folder]:
        ctx.publish("folders", "DELETE", f)

    log_activity(
        ctx.db_path,
        user_id=user.user_id,
        activity_type="folder_delete",
        description=f"Suppression du dossier {folder.name}",
        metadata={"folder_id": folder_id, "documents": len(docs), "subfolders": len(subfolders)},
    )
    logger.info(
        "Folder %s deleted with %d sub-folders and %d documents",
        folder_id,
        len(subfolders),
        len(docs),
    )
    return len(docs)


@dataclass
class FolderNode:
    folder: FolderRow
    children: list[FolderNode] = field(default_factory=list)
    documents: list[DocumentRow] = field(default_factory=list)

    def document_count(self) -> int:
        return len(self.documents) + sum(c.document_count() for c in self.children)


@dataclass
class FolderTree:
    folders: list[FolderNode]
    root_documents: list[DocumentRow]


def _text_matches(term: str, *values: str | None) -> bool:
    return any(term in (v or "").lower() for v in values)


def build_folder_tree(
    ctx: AppContext,
    user: UserRow,
    *,
    q: str | None = None,
    category: str | None = None,
) -> FolderTree:
    """Nested folders with their documents; root-level documents kept apart.

    With a search term or category, a folder is kept when it matches itself
    (its whole content is then kept) or when something below it matches.
    """

    term = (q or "").strip().lower()
    cat = (category or "").strip()
    filtering = bool(term or cat)

    folders = list_folders(ctx.db_path)
    docs = filter_readable(ctx, user, list_documents(ctx.db_path))

    def folder_matches(f: FolderRow) -> bool:
        if cat and f.category != cat:
            return False
        return not term or _text_matches(term, f.name, f.description, f.folder_number)

    def doc_matches(d: DocumentRow) -> bool:
        if cat and d.category != cat:
            return False
        return not term or _text_matches(term, d.name, d.description, " ".join(d.tags))

    nodes = {f.folder_id: FolderNode(folder=f) for f in folders}
    roots: list[FolderNode] = []
    root_docs: list[DocumentRow] = []

    for d in docs:
        node = nodes.get(d.folder_id) if d.folder_id else None
        if node is not None:
            node.documents.append(d)
        else:
            root_docs.append(d)

    # list_folders is newest-first; keep that order for children as well.
    for f in folders:
        parent = nodes.get(f.parent_id) if f.parent_id else None
        if parent is not None:
            parent.children.append(nodes[f.folder_id])
        else:
            roots.append(nodes[f.folder_id])

    hide_empty = not (is_admin(user) or (user.is_verified and user.role != "guest"))

    def prune(node: FolderNode) -> FolderNode | None:
        if filtering and folder_matches(node.folder):
            pruned = node
        else:
            kept_children = [c for c in (prune(c) for c in node.children) if c is not None]
            kept_docs = node.documents
            if filtering:
                kept_docs = [d for d in node.documents if doc_matches(d)]
            if filtering and not kept_children and not kept_docs:
                return None
            pruned = FolderNode(folder=node.folder, children=kept_children, documents=kept_docs)
        if hide_empty and pruned.document_count() == 0:
            return None
        return pruned

    kept_roots = [n for n in (prune(r) for r in roots) if n is not None]
    if filtering:
        root_docs = [d for d in root_docs if doc_matches(d)]
    return FolderTree(folders=kept_roots, root_documents=root_docs)


# --- documents ---


def guess_mime_type(filename: str | None, fallback: str | None) -> str:
    if fallback and fallback.strip():
        return fallback.strip()
    if filename:
        guess, _enc = mimetypes.guess_type(filename)
        if guess:
            return guess
    return "application/octet-stream"


def parse_tags(raw: str | None) -> list[str]:
    return [t.strip() for t in (raw or "").split(",") if t.strip()]


def upload_document(
    ctx: AppContext,
    user: UserRow,
    *,
    temp_path: Path,
    filename: str,
    content_type: str | None,
    category: str,
    name: str | None = None,
    folder_id: str | None = None,
    description: str | None = None,
    tags: list[str] | None = None,
) -> DocumentRow:
    """Store an uploaded temp file and record it. The temp file is consumed."""

    _require_contributor(user)
    _check_category(category)
    doc_name = (name or "").strip() or filename
    if folder_id is not None and get_folder(ctx.db_path, folder_id=folder_id) is None:
        raise NotFoundError("Dossier introuvable")

    document_id = new_id()
    stored = ctx.storage.store_upload(
        temp_path=temp_path, bucket="documents", object_key=document_object_key(document_id)
    )

    try:
        doc = create_document(
            ctx.db_path,
            document_id=document_id,
            name=doc_name,
            category=category,
            storage_provider=stored.storage_provider,
            storage_key=stored.storage_key,
            file_size=stored.byte_size,
            file_type=guess_mime_type(filename, content_type),
            uploaded_by=user.user_id,
            folder_id=folder_id,
            description=(description or "").strip() or None,
            tags=tags or [],
        )
    except sqlite3.Error:
        # Roll the blob back so no orphan bytes remain.
        ctx.storage.delete(storage_provider=stored.storage_provider, storage_key=stored.storage_key)
        raise

    log_activity(
        ctx.db_path,
        user_id=user.user_id,
        activity_type="upload",
        description=f"Téléversement de {doc.name}",
        metadata={"document_id": doc.document_id, "size": doc.file_size},
    )
    ctx.publish("documents", "INSERT", doc)
    logger.info("Document %s uploaded by %s (%d bytes)", doc.document_id, user.email, doc.file_size)
    return doc


def list_documents_for(
    ctx: AppContext,
    user: UserRow,
    *,
    folder_id: str | None = None,
    q: str | None = None,
    category: str | None = None,
) -> list[DocumentRow]:
    docs = list_documents(ctx.db_path, folder_id=folder_id, q=q, category=category)
    return filter_readable(ctx, user, docs)


def rename_document_for(
    ctx: AppContext, user: UserRow, *, document_id: str, name: str
) -> DocumentRow:
    require_document(ctx, user, document_id=document_id, action="write")
    updated = rename_document(ctx.db_path, document_id=document_id, name=_clean_name(name))
    if updated is None:
        raise NotFoundError("Document introuvable")
    ctx.publish("documents", "UPDATE", updated)
    return updated


def delete_document_for(ctx: AppContext, user: UserRow, *, document_id: str) -> DocumentRow:
    doc = require_document(ctx, user, document_id=document_id, action="delete")

    delete_document(ctx.db_path, document_id=document_id)
    ctx.storage.delete(storage_provider=doc.storage_provider, storage_key=doc.storage_key)

    log_activity(
        ctx.db_path,
        user_id=user.user_id,
        activity_type="delete",
        description=f"Suppression de {doc.name}",
        metadata={"document_id": doc.document_id},
    )
    ctx.publish("documents", "DELETE", doc)
    return doc
