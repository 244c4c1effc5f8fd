from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path

from archive_pmn.auth import hash_password, is_super_admin, verify_password
from archive_pmn.constants import FONCTIONS, ROLES
from archive_pmn.db.activity import log_activity
from archive_pmn.db.presence import upsert_user_status
from archive_pmn.db.users import (
    SessionRow,
    UserRow,
    count_users,
    create_session,
    create_user,
    delete_session,
    delete_sessions_for_user,
    get_user,
    get_user_by_email,
    update_user,
)
from archive_pmn.errors import (
    ArchiveError,
    ConflictError,
    InvalidInputError,
    NotFoundError,
    PermissionDeniedError,
)
from archive_pmn.services import AppContext

logger = logging.getLogger(__name__)


class AuthenticationError(ArchiveError):
    status_code = 401


@dataclass(frozen=True)
class Registration:
    full_name: str
    email: str
    fonction: str
    role: str
    password: str
    confirm_password: str


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def validate_registration(ctx: AppContext, reg: Registration) -> None:
    auth_cfg = ctx.config.auth

    if len(reg.full_name.strip()) < 2:
        raise InvalidInputError("Le nom complet doit contenir au moins 2 caractères")

    email = normalize_email(reg.email)
    domain = auth_cfg.allowed_email_domain.strip().lower()
    if not email.endswith(f"@{domain}") or email == f"@{domain}":
        raise InvalidInputError(f"L'adresse email doit se terminer par @{domain}")

    if reg.fonction not in FONCTIONS:
        raise InvalidInputError("Fonction inconnue")

    if reg.role not in ROLES:
        raise InvalidInputError("Rôle inconnu")

    if len(reg.password) < auth_cfg.min_password_length:
        raise InvalidInputError(
            f"Le mot de passe doit contenir au moins {auth_cfg.min_password_length} caractères"
        )

    if reg.password != reg.confirm_password:
        raise InvalidInputError("Les mots de passe ne correspondent pas")


def register(ctx: AppContext, reg: Registration) -> UserRow:
    """Create an account pending super-admin validation.

    The first account of an empty install is created verified as super_admin.
    """

    validate_registration(ctx, reg)

    first = count_users(ctx.db_path) == 0
    try:
        user = create_user(
            ctx.db_path,
            email=normalize_email(reg.email),
            full_name=reg.full_name.strip(),
            fonction=reg.fonction,
            role="super_admin" if first else reg.role,
            password_hash=hash_password(reg.password),
            is_verified=first,
        )
    except sqlite3.IntegrityError as e:
        raise ConflictError("Un compte existe déjà avec cette adresse email") from e

    logger.info(
        "Registered user %s (role=%s, verified=%s)", user.email, user.role, user.is_verified
    )
    return user


def authenticate(ctx: AppContext, *, email: str, password: str) -> tuple[UserRow, SessionRow]:
    user = get_user_by_email(ctx.db_path, email=normalize_email(email))
    if user is None or not verify_password(password, user.password_hash):
        logger.info("Login failed for %s", normalize_email(email))
        raise AuthenticationError("Email ou mot de passe incorrect")

    if not user.is_verified:
        raise PermissionDeniedError("Compte en attente de validation par un administrateur")
    if not user.is_active:
        raise PermissionDeniedError("Compte désactivé")

    session = create_session(
        ctx.db_path, user_id=user.user_id, ttl_hours=ctx.config.auth.session_ttl_hours
    )
    log_activity(
        ctx.db_path,
        user_id=user.user_id,
        activity_type="login",
        description=f"Connexion de {user.full_name}",
    )
    status = upsert_user_status(ctx.db_path, user_id=user.user_id, status="online")
    ctx.publish("user_status", "UPDATE", status)

    logger.info("User %s logged in", user.email)
    return user, session


def logout(ctx: AppContext, *, token: str, user: UserRow | None) -> None:
    delete_session(ctx.db_path, token=token)
    if user is not None:
        status = upsert_user_status(ctx.db_path, user_id=user.user_id, status="offline")
        ctx.publish("user_status", "UPDATE", status)


def admin_update_user(
    ctx: AppContext,
    actor: UserRow,
    *,
    user_id: str,
    role: str | None = None,
    is_verified: bool | None = None,
    is_active: bool | None = None,
) -> UserRow:
    if not is_super_admin(actor):
        raise PermissionDeniedError("Réservé au super administrateur")

    target = get_user(ctx.db_path, user_id=user_id)
    if target is None:
        raise NotFoundError("Utilisateur introuvable")

    if role is not None and role not in ROLES:
        raise InvalidInputError("Rôle inconnu")

    if target.user_id == actor.user_id:
        if role is not None and role != actor.role:
            raise PermissionDeniedError("Vous ne pouvez pas modifier votre propre rôle")
        if is_active is False:
            raise PermissionDeniedError("Vous ne pouvez pas désactiver votre propre compte")
        if is_verified is False:
            raise PermissionDeniedError("Vous ne pouvez pas invalider votre propre compte")

    updated = update_user(
        ctx.db_path,
        user_id=user_id,
        role=role,
        is_verified=is_verified,
        is_active=is_active,
    )
    if updated is None:
        raise NotFoundError("Utilisateur introuvable")

    # Deactivated or unverified accounts lose their sessions.
    if is_active is False or is_verified is False:
        delete_sessions_for_user(ctx.db_path, user_id=user_id)

    logger.info(
        "User %s updated by %s (role=%s verified=%s active=%s)",
        updated.email,
        actor.email,
        updated.role,
        updated.is_verified,
        updated.is_active,
    )
    return updated


def create_or_promote_super_admin(
    db_path: Path, *, email: str, full_name: str, password: str
) -> tuple[UserRow, bool]:
    """Used by the admin CLI. Returns (user, created)."""

    email = normalize_email(email)
    existing = get_user_by_email(db_path, email=email)
    if existing is None:
        user = create_user(
            db_path,
            email=email,
            full_name=full_name,
            fonction=None,
            role="super_admin",
            password_hash=hash_password(password),
            is_verified=True,
        )
        return user, True

    updated = update_user(
        db_path,
        user_id=existing.user_id,
        role="super_admin",
        is_verified=True,
        is_active=True,
        password_hash=hash_password(password) if password else None,
    )
    if updated is None:
        raise NotFoundError("User disappeared during update")
    return updated, False
