from __future__ import annotations

import logging
from pathlib import Path
from typing import Any
from urllib.parse import quote_plus

from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from starlette.responses import Response

from archive_pmn.api.downloads import content_disposition
from archive_pmn.api.uploads import discard_upload, spool_upload
from archive_pmn.api.v1.shares import share_base_url
from archive_pmn.auth import SESSION_COOKIE, extract_token_from_request, is_admin, is_super_admin
from archive_pmn.constants import (
    CATEGORIES,
    CHANNEL_TYPES,
    DISPLAY_MODES,
    FOLDER_STATUSES,
    FONCTIONS,
    ROLE_LABELS,
    ROLES,
)
from archive_pmn.db.shares import SharePermissions
from archive_pmn.db.users import UserRow, list_users
from archive_pmn.errors import ArchiveError
from archive_pmn.services import context_from_request
from archive_pmn.services.accounts import (
    Registration,
    admin_update_user,
    authenticate,
    logout,
    register,
)
from archive_pmn.services.dashboard import (
    dashboard_stats,
    effective_statuses,
    get_preferences_for,
    list_requests,
    nav_badges,
    recent_activity,
    request_access,
    review_request,
    set_display_mode_for,
)
from archive_pmn.services.export import build_folder_zip
from archive_pmn.services.library import (
    build_folder_tree,
    create_folder_for,
    delete_document_for,
    delete_folder_tree,
    parse_tags,
    rename_document_for,
    rename_folder,
    update_folder_details,
    upload_document,
)
from archive_pmn.services.messaging import (
    channel_messages,
    channels_for,
    conversations,
    create_channel_for,
    direct_thread,
    join_channel,
    send_channel_message,
    send_direct_message,
)
from archive_pmn.services.sharing import generate_share_link, resolve_share_token

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = BASE_DIR / "templates"
STATIC_DIR = BASE_DIR / "static"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
templates.env.globals["role_labels"] = ROLE_LABELS

router = APIRouter(prefix="/ui", tags=["ui"])

# The public landing page for multi-document links lives outside /ui.
shared_router = APIRouter(tags=["ui"])


def _flash_from_request(request: Request) -> dict[str, Any] | None:
    msg = request.query_params.get("msg")
    if not msg:
        return None
    kind = request.query_params.get("kind") or ""
    return {"message": msg, "kind": kind}


def _redirect(url: str, msg: str | None = None, *, kind: str = "ok") -> RedirectResponse:
    if msg:
        sep = "&" if "?" in url else "?"
        url = f"{url}{sep}msg={quote_plus(msg)}&kind={kind}"
    return RedirectResponse(url=url, status_code=302)


def _current_user(request: Request) -> UserRow:
    user = getattr(request.state, "user", None)
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


def _page(request: Request, user: UserRow, **extra: Any) -> dict[str, Any]:
    ctx = context_from_request(request)
    badges = nav_badges(ctx, user)
    page: dict[str, Any] = {
        "user": user,
        "is_admin": is_admin(user),
        "is_super_admin": is_super_admin(user),
        "badges": badges,
        "flash": _flash_from_request(request),
    }
    page.update(extra)
    return page


def _permissions_from_form(
    can_read: str | None, can_write: str | None, can_delete: str | None, can_share: str | None
) -> SharePermissions:
    return SharePermissions(
        can_read=bool(can_read),
        can_write=bool(can_write),
        can_delete=bool(can_delete),
        can_share=bool(can_share),
    )


# --- login / registration ---


@router.get("/login", response_class=HTMLResponse)
async def ui_login(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "login.html",
        {
            "title": "Connexion • Archive PMN",
            "hide_nav": True,
            "active": None,
            "flash": _flash_from_request(request),
        },
    )


@router.post("/login", response_model=None)
async def ui_login_post(
    request: Request, email: str = Form(...), password: str = Form(...)
) -> Response:
    ctx = context_from_request(request)
    try:
        _user, session = authenticate(ctx, email=email, password=password)
    except ArchiveError as e:
        return templates.TemplateResponse(
            request,
            "login.html",
            {
                "title": "Connexion • Archive PMN",
                "hide_nav": True,
                "active": None,
                "error": e.message,
                "email": email,
            },
            status_code=e.status_code,
        )

    resp = RedirectResponse(url="/ui/dashboard", status_code=302)
    resp.set_cookie(
        SESSION_COOKIE,
        session.token,
        httponly=True,
        samesite="lax",
        secure=ctx.config.auth.secure_cookies,
        max_age=ctx.config.auth.session_ttl_hours * 3600,
    )
    return resp


@router.get("/register", response_class=HTMLResponse)
async def ui_register(request: Request) -> HTMLResponse:
    ctx = context_from_request(request)
    return templates.TemplateResponse(
        request,
        "register.html",
        {
            "title": "Inscription • Archive PMN",
            "hide_nav": True,
            "active": None,
            "fonctions": FONCTIONS,
            "roles": [r for r in ROLES if r != "super_admin"],
            "email_domain": ctx.config.auth.allowed_email_domain,
            "form": {},
        },
    )


@router.post("/register", response_model=None)
async def ui_register_post(
    request: Request,
    full_name: str = Form(...),
    email: str = Form(...),
    fonction: str = Form(...),
    role: str = Form(default="user"),
    password: str = Form(...),
    confirm_password: str = Form(...),
) -> Response:
    ctx = context_from_request(request)
    try:
        user = register(
            ctx,
            Registration(
                full_name=full_name,
                email=email,
                fonction=fonction,
                role=role,
                password=password,
                confirm_password=confirm_password,
            ),
        )
    except ArchiveError as e:
        return templates.TemplateResponse(
            request,
            "register.html",
            {
                "title": "Inscription • Archive PMN",
                "hide_nav": True,
                "active": None,
                "fonctions": FONCTIONS,
                "roles": [r for r in ROLES if r != "super_admin"],
                "email_domain": ctx.config.auth.allowed_email_domain,
                "error": e.message,
                "form": {
                    "full_name": full_name,
                    "email": email,
                    "fonction": fonction,
                    "role": role,
                },
            },
            status_code=e.status_code,
        )

    if user.is_verified:
        return _redirect("/ui/login", "Compte administrateur créé, vous pouvez vous connecter")
    return _redirect("/ui/login", "Inscription enregistrée, en attente de validation")


@router.post("/logout")
async def ui_logout(request: Request) -> RedirectResponse:
    token = extract_token_from_request(request)
    if token:
        logout(context_from_request(request), token=token, user=request.state.user)
    resp = _redirect("/ui/login", "Vous êtes déconnecté")
    resp.delete_cookie(SESSION_COOKIE)
    return resp


# --- dashboard ---


@router.get("/dashboard", response_class=HTMLResponse)
async def ui_dashboard(request: Request) -> HTMLResponse:
    user = _current_user(request)
    ctx = context_from_request(request)
    stats = dashboard_stats(ctx, user)

    activity = recent_activity(ctx, user, limit=10) if is_admin(user) else []
    return templates.TemplateResponse(
        request,
        "dashboard.html",
        _page(
            request,
            user,
            title="Tableau de bord • Archive PMN",
            active="dashboard",
            stats=stats,
            activity=activity,
        ),
    )


@router.post("/preferences/display-mode")
async def ui_set_display_mode(
    request: Request, display_mode: str = Form(...), next: str = Form(default="/ui/documents")
) -> RedirectResponse:
    user = _current_user(request)
    target = next if next.startswith("/ui/") else "/ui/documents"
    try:
        set_display_mode_for(context_from_request(request), user, display_mode=display_mode)
    except ArchiveError as e:
        return _redirect(target, e.message, kind="bad")
    return _redirect(target)


# --- documents & folders ---


@router.get("/documents", response_class=HTMLResponse)
async def ui_documents(request: Request) -> HTMLResponse:
    user = _current_user(request)
    ctx = context_from_request(request)

    q = request.query_params.get("q") or None
    category = request.query_params.get("category") or None
    tree = build_folder_tree(ctx, user, q=q, category=category)
    prefs = get_preferences_for(ctx, user)
    users = {u.user_id: u for u in list_users(ctx.db_path)}

    return templates.TemplateResponse(
        request,
        "documents.html",
        _page(
            request,
            user,
            title="Documents • Archive PMN",
            active="documents",
            tree=tree,
            q=q or "",
            category=category or "",
            categories=CATEGORIES,
            folder_statuses=FOLDER_STATUSES,
            display_modes=DISPLAY_MODES,
            display_mode=prefs.display_mode,
            icon_size=DISPLAY_MODES[prefs.display_mode],
            users=users,
            share_link=request.query_params.get("link"),
            can_contribute=is_admin(user) or (user.is_verified and user.role != "guest"),
        ),
    )


@router.post("/folders/create")
async def ui_folders_create(
    request: Request,
    name: str = Form(...),
    category: str = Form(...),
    parent_id: str = Form(default=""),
    description: str = Form(default=""),
) -> RedirectResponse:
    user = _current_user(request)
    try:
        folder = create_folder_for(
            context_from_request(request),
            user,
            name=name,
            category=category,
            parent_id=parent_id or None,
            description=description,
        )
    except ArchiveError as e:
        return _redirect("/ui/documents", e.message, kind="bad")
    return _redirect("/ui/documents", f"Dossier « {folder.name} » créé")


@router.post("/folders/{folder_id}/rename")
async def ui_folders_rename(
    request: Request, folder_id: str, name: str = Form(...)
) -> RedirectResponse:
    user = _current_user(request)
    try:
        rename_folder(context_from_request(request), user, folder_id=folder_id, name=name)
    except ArchiveError as e:
        return _redirect("/ui/documents", e.message, kind="bad")
    return _redirect("/ui/documents", "Dossier renommé")


@router.post("/folders/{folder_id}/details")
async def ui_folders_details(
    request: Request,
    folder_id: str,
    folder_number: str = Form(default=""),
    status: str = Form(...),
) -> RedirectResponse:
    user = _current_user(request)
    try:
        update_folder_details(
            context_from_request(request),
            user,
            folder_id=folder_id,
            folder_number=folder_number,
            status=status,
        )
    except ArchiveError as e:
        return _redirect("/ui/documents", e.message, kind="bad")
    return _redirect("/ui/documents", "Dossier mis à jour")


@router.post("/folders/{folder_id}/delete")
async def ui_folders_delete(request: Request, folder_id: str) -> RedirectResponse:
    user = _current_user(request)
    try:
        count = delete_folder_tree(context_from_request(request), user, folder_id=folder_id)
    except ArchiveError as e:
        return _redirect("/ui/documents", e.message, kind="bad")
    return _redirect("/ui/documents", f"Dossier supprimé ({count} documents)")


@router.get("/folders/{folder_id}/zip", response_model=None)
async def ui_folders_zip(request: Request, folder_id: str) -> Response:
    user = _current_user(request)
    try:
        archive = build_folder_zip(context_from_request(request), user, folder_id=folder_id)
    except ArchiveError as e:
        return _redirect("/ui/documents", e.message, kind="bad")
    return Response(
        content=archive.data,
        media_type="application/zip",
        headers={"Content-Disposition": content_disposition(archive.filename)},
    )


@router.post("/folders/{folder_id}/share-link")
async def ui_folders_share_link(
    request: Request,
    folder_id: str,
    can_read: str | None = Form(default="on"),
    can_write: str | None = Form(default=None),
    can_delete: str | None = Form(default=None),
    can_share: str | None = Form(default=None),
) -> RedirectResponse:
    user = _current_user(request)
    ctx = context_from_request(request)
    try:
        link = generate_share_link(
            ctx,
            user,
            permissions=_permissions_from_form(can_read, can_write, can_delete, can_share),
            base_url=share_base_url(ctx, request),
            folder_id=folder_id,
        )
    except ArchiveError as e:
        return _redirect("/ui/documents", e.message, kind="bad")
    return _redirect(
        f"/ui/documents?link={quote_plus(link.url)}",
        f"Lien de partage prêt ({link.document_count} documents)",
    )


@router.post("/documents/upload")
async def ui_documents_upload(
    request: Request,
    file: UploadFile = File(...),  # noqa: B008
    category: str = Form(...),
    name: str = Form(default=""),
    folder_id: str = Form(default=""),
    description: str = Form(default=""),
    tags: str = Form(default=""),
) -> RedirectResponse:
    user = _current_user(request)
    ctx = context_from_request(request)
    try:
        temp_path = await spool_upload(ctx, file, max_bytes=ctx.config.uploads.max_document_bytes)
    except HTTPException as e:
        return _redirect("/ui/documents", str(e.detail), kind="bad")

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
    except ArchiveError as e:
        discard_upload(temp_path)
        return _redirect("/ui/documents", e.message, kind="bad")
    return _redirect("/ui/documents", f"Document « {doc.name} » téléversé")


@router.post("/documents/{document_id}/rename")
async def ui_documents_rename(
    request: Request, document_id: str, name: str = Form(...)
) -> RedirectResponse:
    user = _current_user(request)
    try:
        rename_document_for(
            context_from_request(request), user, document_id=document_id, name=name
        )
    except ArchiveError as e:
        return _redirect("/ui/documents", e.message, kind="bad")
    return _redirect("/ui/documents", "Document renommé")


@router.post("/documents/{document_id}/delete")
async def ui_documents_delete(request: Request, document_id: str) -> RedirectResponse:
    user = _current_user(request)
    try:
        doc = delete_document_for(context_from_request(request), user, document_id=document_id)
    except ArchiveError as e:
        return _redirect("/ui/documents", e.message, kind="bad")
    return _redirect("/ui/documents", f"Document « {doc.name} » supprimé")


@router.post("/documents/{document_id}/share-link")
async def ui_documents_share_link(
    request: Request,
    document_id: str,
    can_read: str | None = Form(default="on"),
    can_write: str | None = Form(default=None),
    can_delete: str | None = Form(default=None),
    can_share: str | None = Form(default=None),
) -> RedirectResponse:
    user = _current_user(request)
    ctx = context_from_request(request)
    try:
        link = generate_share_link(
            ctx,
            user,
            permissions=_permissions_from_form(can_read, can_write, can_delete, can_share),
            base_url=share_base_url(ctx, request),
            document_id=document_id,
        )
    except ArchiveError as e:
        return _redirect("/ui/documents", e.message, kind="bad")
    return _redirect(f"/ui/documents?link={quote_plus(link.url)}", "Lien de partage prêt")


@router.post("/documents/{document_id}/request-access")
async def ui_documents_request_access(request: Request, document_id: str) -> RedirectResponse:
    user = _current_user(request)
    try:
        request_access(context_from_request(request), user, document_id=document_id)
    except ArchiveError as e:
        return _redirect("/ui/documents", e.message, kind="bad")
    return _redirect("/ui/documents", "Demande d'accès envoyée")


# --- messaging ---


@router.get("/messages", response_class=HTMLResponse)
async def ui_messages(request: Request) -> HTMLResponse:
    user = _current_user(request)
    ctx = context_from_request(request)

    users = {u.user_id: u for u in list_users(ctx.db_path)}
    statuses = {s.user_id: s.status for s in effective_statuses(ctx)}
    with_user_id = request.query_params.get("with") or None
    channel_id = request.query_params.get("channel") or None

    thread: list[Any] = []
    error: str | None = None
    try:
        if with_user_id:
            thread = direct_thread(ctx, user, other_user_id=with_user_id)
        elif channel_id:
            thread = channel_messages(ctx, user, channel_id=channel_id)
    except ArchiveError as e:
        error = e.message

    return templates.TemplateResponse(
        request,
        "messages.html",
        _page(
            request,
            user,
            title="Messagerie • Archive PMN",
            active="messages",
            users=users,
            contacts=[u for u in users.values() if u.user_id != user.user_id and u.is_active],
            statuses=statuses,
            conversations=conversations(ctx, user),
            channels=channels_for(ctx, user),
            channel_types=CHANNEL_TYPES,
            with_user_id=with_user_id,
            channel_id=channel_id,
            thread=thread,
            error=error,
        ),
    )


@router.post("/messages/direct/{receiver_id}")
async def ui_messages_send_direct(
    request: Request, receiver_id: str, content: str = Form(default="")
) -> RedirectResponse:
    user = _current_user(request)
    target = f"/ui/messages?with={quote_plus(receiver_id)}"
    try:
        send_direct_message(
            context_from_request(request), user, receiver_id=receiver_id, content=content
        )
    except ArchiveError as e:
        return _redirect(target, e.message, kind="bad")
    return _redirect(target)


@router.post("/channels/create")
async def ui_channels_create(
    request: Request,
    name: str = Form(...),
    description: str = Form(default=""),
    type: str = Form(default="general"),
) -> RedirectResponse:
    user = _current_user(request)
    try:
        channel, _members = create_channel_for(
            context_from_request(request), user, name=name, description=description, type=type
        )
    except ArchiveError as e:
        return _redirect("/ui/messages", e.message, kind="bad")
    return _redirect(f"/ui/messages?channel={channel.channel_id}", "Canal créé")


@router.post("/channels/{channel_id}/join")
async def ui_channels_join(request: Request, channel_id: str) -> RedirectResponse:
    user = _current_user(request)
    try:
        join_channel(context_from_request(request), user, channel_id=channel_id)
    except ArchiveError as e:
        return _redirect("/ui/messages", e.message, kind="bad")
    return _redirect(f"/ui/messages?channel={channel_id}", "Vous avez rejoint le canal")


@router.post("/channels/{channel_id}/messages")
async def ui_channels_send(
    request: Request, channel_id: str, content: str = Form(default="")
) -> RedirectResponse:
    user = _current_user(request)
    target = f"/ui/messages?channel={quote_plus(channel_id)}"
    try:
        send_channel_message(
            context_from_request(request), user, channel_id=channel_id, content=content
        )
    except ArchiveError as e:
        return _redirect(target, e.message, kind="bad")
    return _redirect(target)


# --- administration ---


@router.get("/admin", response_class=HTMLResponse, response_model=None)
async def ui_admin(request: Request) -> Response:
    user = _current_user(request)
    if not is_admin(user):
        return _redirect("/ui/dashboard", "Réservé aux administrateurs", kind="bad")
    ctx = context_from_request(request)

    users = list_users(ctx.db_path)
    return templates.TemplateResponse(
        request,
        "admin.html",
        _page(
            request,
            user,
            title="Administration • Archive PMN",
            active="admin",
            users=users,
            users_by_id={u.user_id: u for u in users},
            roles=ROLES,
            requests=list_requests(ctx, user, status="pending"),
            activity=recent_activity(ctx, user, limit=50),
        ),
    )


@router.post("/admin/users/{user_id}")
async def ui_admin_update_user(
    request: Request,
    user_id: str,
    role: str = Form(default=""),
    is_verified: str | None = Form(default=None),
    is_active: str | None = Form(default=None),
) -> RedirectResponse:
    user = _current_user(request)
    try:
        admin_update_user(
            context_from_request(request),
            user,
            user_id=user_id,
            role=role or None,
            is_verified=bool(is_verified),
            is_active=bool(is_active),
        )
    except ArchiveError as e:
        return _redirect("/ui/admin", e.message, kind="bad")
    return _redirect("/ui/admin", "Utilisateur mis à jour")


@router.post("/admin/access-requests/{request_id}/{decision}")
async def ui_admin_review_request(
    request: Request, request_id: str, decision: str
) -> RedirectResponse:
    user = _current_user(request)
    if decision not in {"approve", "reject"}:
        return _redirect("/ui/admin", "Décision inconnue", kind="bad")
    try:
        review_request(
            context_from_request(request),
            user,
            request_id=request_id,
            approve=decision == "approve",
        )
    except ArchiveError as e:
        return _redirect("/ui/admin", e.message, kind="bad")
    msg = "Demande approuvée" if decision == "approve" else "Demande rejetée"
    return _redirect("/ui/admin", msg)


# --- public share page ---


@shared_router.get("/shared", response_class=HTMLResponse)
async def ui_shared(request: Request) -> HTMLResponse:
    token = (request.query_params.get("token") or "").strip()
    ctx: dict[str, Any] = {
        "title": "Documents partagés • Archive PMN",
        "hide_nav": True,
        "active": None,
        "token": token,
        "documents": [],
        "error": None,
    }
    status_code = 200
    if not token:
        ctx["error"] = "Lien de partage invalide"
        status_code = 404
    else:
        try:
            resolved = resolve_share_token(context_from_request(request), token=token)
        except ArchiveError as e:
            ctx["error"] = e.message
            status_code = e.status_code
        else:
            ctx["documents"] = resolved.documents
            ctx["expires_at"] = resolved.expires_at
    return templates.TemplateResponse(request, "shared.html", ctx, status_code=status_code)
