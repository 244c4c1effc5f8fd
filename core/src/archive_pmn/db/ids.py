from __future__ import annotations

import secrets
import uuid


def new_id() -> str:
    """Generate a new row ID (32 lowercase hex chars)."""

    return uuid.uuid4().hex


def new_share_token() -> str:
    """Generate a public share-link token.

    Tokens are canonical UUID4 strings so they stay recognisable in URLs.
    """

    return str(uuid.uuid4())


def new_session_token() -> str:
    return secrets.token_urlsafe(32)
