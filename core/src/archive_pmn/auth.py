from __future__ import annotations

import hashlib
import hmac
import secrets
from typing import Final

from fastapi import HTTPException, Request

from archive_pmn.constants import ADMIN_ROLES
from archive_pmn.db.users import UserRow, get_session_user

AUTHORIZATION_HEADER: Final[str] = "Authorization"
SESSION_HEADER: Final[str] = "X-Archive-Session"
SESSION_COOKIE: Final[str] = "pmn_session"

# scrypt cost parameters; stored alongside each hash so they can change later.
_SCRYPT_N: Final[int] = 2**14
_SCRYPT_R: Final[int] = 8
_SCRYPT_P: Final[int] = 1
_SCRYPT_DKLEN: Final[int] = 32

_EXEMPT_PREFIXES: Final[tuple[str, ...]] = (
    "/docs",
    "/redoc",
    "/ui/static",
    "/api/share/",
    "/api/share-folder/",
    "/v1/shared/",
)

_EXEMPT_PATHS: Final[frozenset[str]] = frozenset(
    {
        "/",
        "/healthz",
        "/openapi.json",
        "/ui/login",
        "/ui/register",
        "/shared",
        "/v1/auth/login",
        "/v1/auth/register",
    }
)


def hash_password(password: str) -> str:
    salt = secrets.token_bytes(16)
    digest = hashlib.scrypt(
        password.encode("utf-8"),
        salt=salt,
        n=_SCRYPT_N,
        r=_SCRYPT_R,
        p=_SCRYPT_P,
        dklen=_SCRYPT_DKLEN,
    )
    return f"scrypt${_SCRYPT_N}${_SCRYPT_R}${_SCRYPT_P}${salt.hex()}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        scheme, n_s, r_s, p_s, salt_hex, digest_hex = stored.split("$")
        if scheme != "scrypt":
            return False
        salt = bytes.fromhex(salt_hex)
        expected = bytes.fromhex(digest_hex)
        n, r, p = int(n_s), int(r_s), int(p_s)
    except ValueError:
        return False

    actual = hashlib.scrypt(
        password.encode("utf-8"), salt=salt, n=n, r=r, p=p, dklen=len(expected)
    )
    return hmac.compare_digest(actual, expected)


def is_exempt_path(path: str) -> bool:
    if path in _EXEMPT_PATHS:
        return True
    return any(path.startswith(prefix) for prefix in _EXEMPT_PREFIXES)


def extract_token_from_request(request: Request) -> str | None:
    header_token = request.headers.get(SESSION_HEADER)
    if header_token:
        return header_token

    cookie_token = request.cookies.get(SESSION_COOKIE)
    if cookie_token:
        return cookie_token

    auth = request.headers.get(AUTHORIZATION_HEADER)
    if not auth:
        return None

    prefix = "Bearer "
    if auth.startswith(prefix):
        return auth[len(prefix) :].strip() or None
    return None


def resolve_request_user(request: Request) -> UserRow | None:
    """Look up the session user for a request; inactive accounts resolve to None."""

    db_path = getattr(request.app.state, "db_path", None)
    if db_path is None:
        return None

    token = extract_token_from_request(request)
    if not token:
        return None

    user = get_session_user(db_path, token=token)
    if user is None or not user.is_active:
        return None
    return user


def is_admin(user: UserRow) -> bool:
    return user.role in ADMIN_ROLES


def is_super_admin(user: UserRow) -> bool:
    return user.role == "super_admin"


async def require_user(request: Request) -> UserRow:
    """Dependency: the authenticated user, resolved once per request by middleware."""

    user = getattr(request.state, "user", None)
    if user is None:
        user = resolve_request_user(request)
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


async def require_admin(request: Request) -> UserRow:
    user = await require_user(request)
    if not is_admin(user):
        raise HTTPException(status_code=403, detail="Administrator role required")
    return user


async def require_super_admin(request: Request) -> UserRow:
    user = await require_user(request)
    if not is_super_admin(user):
        raise HTTPException(status_code=403, detail="Super administrator role required")
    return user
