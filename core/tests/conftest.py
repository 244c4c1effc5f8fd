from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
from _support import Account, login_headers, register_payload
from fastapi.testclient import TestClient

from archive_pmn.app import create_app
from archive_pmn.home import HOME_ENV_VAR


@pytest.fixture
def client(tmp_path: Path, monkeypatch) -> Iterator[TestClient]:
    monkeypatch.setenv(HOME_ENV_VAR, str(tmp_path))

    with TestClient(create_app()) as c:
        yield c


@pytest.fixture
def make_account(client: TestClient) -> Callable[..., Account]:
    """Register, validate and log in. The first account created is the super admin."""

    admin: dict[str, dict[str, str]] = {}

    def _make(local_part: str, *, role: str = "user") -> Account:
        email = f"{local_part}@pmn.sn"
        r = client.post(
            "/v1/auth/register",
            json=register_payload(email, full_name=local_part.title(), role=role),
        )
        assert r.status_code == 201, r.text
        user = r.json()["data"]

        if not user["is_verified"]:
            v = client.patch(
                f"/v1/admin/users/{user['user_id']}",
                headers=admin["headers"],
                json={"is_verified": True},
            )
            assert v.status_code == 200, v.text

        headers = login_headers(client, email)
        if user["role"] == "super_admin" and "headers" not in admin:
            admin["headers"] = headers

        return Account(user_id=user["user_id"], email=email, role=user["role"], headers=headers)

    return _make
