from __future__ import annotations

from _support import PASSWORD, login_headers, register_payload
from fastapi.testclient import TestClient

from archive_pmn.auth import hash_password, verify_password


def test_password_hash_roundtrip() -> None:
    stored = hash_password("correct horse")
    assert stored.startswith("scrypt$")
    assert verify_password("correct horse", stored)
    assert not verify_password("wrong horse", stored)
    assert not verify_password("correct horse", "not-a-hash")


def test_v1_requires_session(client: TestClient, make_account) -> None:
    r = client.get("/v1/ping")
    assert r.status_code == 401
    body = r.json()
    assert body["ok"] is False
    assert body["error"]["code"] == "unauthorized"

    admin = make_account("admin")
    r2 = client.get("/v1/ping", headers=admin.headers)
    assert r2.status_code == 200
    assert r2.json() == {"ok": True, "data": {"pong": True}, "error": None}

    r3 = client.get("/v1/system/info", headers=admin.headers)
    assert r3.status_code == 200
    body3 = r3.json()
    assert body3["ok"] is True
    assert body3["data"]["archive_home"]
    assert body3["data"]["version"]


def test_bearer_header_is_accepted(client: TestClient, make_account) -> None:
    admin = make_account("admin")
    token = next(iter(admin.headers.values()))

    r = client.get("/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert r.json()["data"]["email"] == "admin@pmn.sn"


def test_first_account_is_verified_super_admin(client: TestClient) -> None:
    r = client.post("/v1/auth/register", json=register_payload("chef@pmn.sn", role="user"))
    assert r.status_code == 201
    first = r.json()["data"]
    assert first["role"] == "super_admin"
    assert first["is_verified"] is True

    r2 = client.post("/v1/auth/register", json=register_payload("agent@pmn.sn", role="user"))
    assert r2.status_code == 201
    second = r2.json()["data"]
    assert second["role"] == "user"
    assert second["is_verified"] is False
    assert "password_hash" not in second


def test_unverified_account_cannot_log_in(client: TestClient, make_account) -> None:
    make_account("admin")
    client.post("/v1/auth/register", json=register_payload("pending@pmn.sn"))

    r = client.post("/v1/auth/login", json={"email": "pending@pmn.sn", "password": PASSWORD})
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "forbidden"


def test_registration_validation(client: TestClient) -> None:
    bad_domain = client.post("/v1/auth/register", json=register_payload("agent@gmail.com"))
    assert bad_domain.status_code == 422
    assert "@pmn.sn" in bad_domain.json()["error"]["message"]

    mismatch = client.post(
        "/v1/auth/register",
        json=register_payload("agent@pmn.sn", confirm_password="different"),
    )
    assert mismatch.status_code == 422

    short = client.post(
        "/v1/auth/register",
        json=register_payload("agent@pmn.sn", password="abc", confirm_password="abc"),
    )
    assert short.status_code == 422

    unknown_fonction = client.post(
        "/v1/auth/register", json=register_payload("agent@pmn.sn", fonction="Astronaute")
    )
    assert unknown_fonction.status_code == 422

    ok = client.post("/v1/auth/register", json=register_payload("Agent@PMN.sn"))
    assert ok.status_code == 201
    assert ok.json()["data"]["email"] == "agent@pmn.sn"

    dup = client.post("/v1/auth/register", json=register_payload("agent@pmn.sn"))
    assert dup.status_code == 409


def test_login_wrong_password(client: TestClient, make_account) -> None:
    make_account("admin")
    r = client.post("/v1/auth/login", json={"email": "admin@pmn.sn", "password": "nope"})
    assert r.status_code == 401
    assert r.json()["ok"] is False


def test_login_sets_cookie_and_logout_revokes(client: TestClient, make_account) -> None:
    make_account("admin")

    r = client.post("/v1/auth/login", json={"email": "admin@pmn.sn", "password": PASSWORD})
    assert r.status_code == 200
    assert "pmn_session" in r.headers.get("set-cookie", "")

    # Cookie auth.
    me = client.get("/v1/auth/me")
    assert me.status_code == 200

    out = client.post("/v1/auth/logout")
    assert out.status_code == 200
    client.cookies.clear()

    token = r.json()["data"]["token"]
    after = client.get("/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert after.status_code == 401


def test_admin_user_management(client: TestClient, make_account) -> None:
    admin = make_account("admin")
    agent = make_account("agent")

    listing = client.get("/v1/admin/users", headers=admin.headers)
    assert listing.status_code == 200
    assert {u["email"] for u in listing.json()["data"]["items"]} == {
        "admin@pmn.sn",
        "agent@pmn.sn",
    }

    forbidden = client.get("/v1/admin/users", headers=agent.headers)
    assert forbidden.status_code == 403

    promoted = client.patch(
        f"/v1/admin/users/{agent.user_id}", headers=admin.headers, json={"role": "admin"}
    )
    assert promoted.status_code == 200
    assert promoted.json()["data"]["role"] == "admin"

    bad_role = client.patch(
        f"/v1/admin/users/{agent.user_id}", headers=admin.headers, json={"role": "king"}
    )
    assert bad_role.status_code == 422

    self_demote = client.patch(
        f"/v1/admin/users/{admin.user_id}", headers=admin.headers, json={"role": "user"}
    )
    assert self_demote.status_code == 403

    deactivated = client.patch(
        f"/v1/admin/users/{agent.user_id}", headers=admin.headers, json={"is_active": False}
    )
    assert deactivated.status_code == 200

    # Deactivation drops existing sessions.
    assert client.get("/v1/auth/me", headers=agent.headers).status_code == 401


def test_unverifying_user_revokes_sessions(client: TestClient, make_account) -> None:
    admin = make_account("admin")
    agent = make_account("agent")
    assert client.get("/v1/auth/me", headers=agent.headers).status_code == 200

    self_unverify = client.patch(
        f"/v1/admin/users/{admin.user_id}", headers=admin.headers, json={"is_verified": False}
    )
    assert self_unverify.status_code == 403

    r = client.patch(
        f"/v1/admin/users/{agent.user_id}", headers=admin.headers, json={"is_verified": False}
    )
    assert r.status_code == 200
    assert r.json()["data"]["is_verified"] is False

    assert client.get("/v1/auth/me", headers=agent.headers).status_code == 401
    relogin = client.post("/v1/auth/login", json={"email": agent.email, "password": PASSWORD})
    assert relogin.status_code == 403


def test_users_directory_excludes_self(client: TestClient, make_account) -> None:
    admin = make_account("admin")
    make_account("agent")

    r = client.get("/v1/users", headers=admin.headers)
    assert r.status_code == 200
    emails = [u["email"] for u in r.json()["data"]["items"]]
    assert emails == ["agent@pmn.sn"]


def test_docs_and_openapi_are_public(client: TestClient) -> None:
    docs = client.get("/docs")
    assert docs.status_code == 200

    openapi = client.get("/openapi.json")
    assert openapi.status_code == 200
    schema = openapi.json()
    assert "/v1/ping" in schema.get("paths", {})
    assert "/v1/documents/upload" in schema.get("paths", {})


def test_login_helper_uses_header(client: TestClient, make_account) -> None:
    make_account("admin")
    headers = login_headers(client, "admin@pmn.sn")
    assert client.get("/v1/auth/me", headers=headers).json()["data"]["role"] == "super_admin"
