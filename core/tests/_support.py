from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi.testclient import TestClient

from archive_pmn.auth import SESSION_HEADER

PASSWORD = "secret123"
FONCTION = "Agent d'archive"


@dataclass(frozen=True)
class Account:
    user_id: str
    email: str
    role: str
    headers: dict[str, str]


def login_headers(client: TestClient, email: str, password: str = PASSWORD) -> dict[str, str]:
    r = client.post("/v1/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.text
    # Requests authenticate with the explicit header; the cookie jar stays empty.
    client.cookies.clear()
    return {SESSION_HEADER: r.json()["data"]["token"]}


def register_payload(email: str, **overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "full_name": "Agent Test",
        "email": email,
        "fonction": FONCTION,
        "role": "user",
        "password": PASSWORD,
        "confirm_password": PASSWORD,
    }
    payload.update(overrides)
    return payload


def upload(
    client: TestClient,
    headers: dict[str, str],
    *,
    filename: str = "rapport.txt",
    content: bytes = b"hello archive",
    category: str = "Administrative",
    folder_id: str | None = None,
    **fields: str,
) -> dict[str, Any]:
    data = {"category": category, **fields}
    if folder_id is not None:
        data["folder_id"] = folder_id
    r = client.post(
        "/v1/documents/upload",
        headers=headers,
        data=data,
        files={"file": (filename, content, "text/plain")},
    )
    assert r.status_code == 201, r.text
    return r.json()["data"]


def create_folder(
    client: TestClient,
    headers: dict[str, str],
    name: str,
    *,
    category: str = "Administrative",
    parent_id: str | None = None,
) -> dict[str, Any]:
    r = client.post(
        "/v1/folders",
        headers=headers,
        json={"name": name, "category": category, "parent_id": parent_id},
    )
    assert r.status_code == 201, r.text
    return r.json()["data"]
