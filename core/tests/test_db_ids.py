from __future__ import annotations

import uuid

from archive_pmn.db.ids import new_id, new_session_token, new_share_token


def test_new_id_is_uuid_hex() -> None:
    row_id = new_id()
    assert len(row_id) == 32
    assert all(c in "0123456789abcdef" for c in row_id)


def test_share_tokens_are_canonical_uuids() -> None:
    token = new_share_token()
    assert str(uuid.UUID(token)) == token
    assert new_share_token() != token


def test_session_tokens_are_unique() -> None:
    tokens = {new_session_token() for _ in range(20)}
    assert len(tokens) == 20
