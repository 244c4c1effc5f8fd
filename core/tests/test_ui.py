from __future__ import annotations

from _support import PASSWORD, upload
from fastapi.testclient import TestClient

from archive_pmn.auth import SESSION_COOKIE


def _ui_login(client: TestClient, email: str) -> None:
    r = client.post(
        "/ui/login", data={"email": email, "password": PASSWORD}, follow_redirects=False
    )
    assert r.status_code == 302
    assert r.headers["location"] == "/ui/dashboard"
    assert client.cookies.get(SESSION_COOKIE)


def test_ui_login_is_public_and_pages_redirect(client: TestClient) -> None:
    assert client.get("/ui/login").status_code == 200
    assert client.get("/ui/register").status_code == 200
    assert client.get("/ui/static/style.css").status_code == 200

    r = client.get("/ui/documents", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/ui/login"


def test_ui_login_rejects_bad_password(client: TestClient, make_account) -> None:
    admin = make_account("admin")
    r = client.post("/ui/login", data={"email": admin.email, "password": "wrong-password"})
    assert r.status_code == 401
    assert "Connexion" in r.text
    assert not client.cookies.get(SESSION_COOKIE)


def test_ui_register_first_account_then_login(client: TestClient) -> None:
    r = client.post(
        "/ui/register",
        data={
            "full_name": "Awa Diop",
            "email": "awa@pmn.sn",
            "fonction": "Agent d'archive",
            "password": PASSWORD,
            "confirm_password": PASSWORD,
        },
        follow_redirects=False,
    )
    assert r.status_code == 302
    assert r.headers["location"].startswith("/ui/login?msg=")

    bad = client.post(
        "/ui/register",
        data={
            "full_name": "Autre",
            "email": "autre@gmail.com",
            "fonction": "Agent d'archive",
            "password": PASSWORD,
            "confirm_password": PASSWORD,
        },
    )
    assert bad.status_code == 422
    assert "Inscription" in bad.text

    _ui_login(client, "awa@pmn.sn")
    dash = client.get("/ui/dashboard")
    assert dash.status_code == 200
    assert "Awa Diop" in dash.text


def test_ui_cookie_session_renders_pages(client: TestClient, make_account) -> None:
    admin = make_account("admin")
    alice = make_account("alice")
    upload(client, alice.headers, filename="budget.txt")
    client.post(
        f"/v1/messages/direct/{alice.user_id}", headers=admin.headers, json={"content": "Bonjour"}
    )

    _ui_login(client, admin.email)

    docs = client.get("/ui/documents")
    assert docs.status_code == 200
    assert "budget.txt" in docs.text

    msgs = client.get("/ui/messages", params={"with": alice.user_id})
    assert msgs.status_code == 200
    assert "Bonjour" in msgs.text

    page = client.get("/ui/admin")
    assert page.status_code == 200
    assert "alice@pmn.sn" in page.text

    # The cookie also authenticates the JSON API.
    assert client.get("/v1/ping").status_code == 200


def test_ui_forms_redirect_with_flash(client: TestClient, make_account) -> None:
    admin = make_account("admin")
    _ui_login(client, admin.email)

    created = client.post(
        "/ui/folders/create",
        data={"name": "Marchés", "category": "Administrative"},
        follow_redirects=False,
    )
    assert created.status_code == 302
    assert created.headers["location"].startswith("/ui/documents?msg=")
    assert "kind=ok" in created.headers["location"]

    bad = client.post(
        "/ui/folders/create",
        data={"name": "X", "category": "Inconnue"},
        follow_redirects=False,
    )
    assert bad.status_code == 302
    assert "kind=bad" in bad.headers["location"]

    page = client.get("/ui/documents")
    assert "Marchés" in page.text

    mode = client.post(
        "/ui/preferences/display-mode",
        data={"display_mode": "medium", "next": "/ui/documents"},
        follow_redirects=False,
    )
    assert mode.status_code == 302
    prefs = client.get("/v1/preferences").json()["data"]
    assert prefs == {"display_mode": "medium", "icon_size": 40}


def test_ui_admin_page_is_for_admins(client: TestClient, make_account) -> None:
    make_account("admin")
    alice = make_account("alice")
    _ui_login(client, alice.email)

    r = client.get("/ui/admin", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"].startswith("/ui/dashboard?msg=")


def test_ui_logout_clears_session(client: TestClient, make_account) -> None:
    admin = make_account("admin")
    _ui_login(client, admin.email)

    r = client.post("/ui/logout", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"].startswith("/ui/login")

    again = client.get("/ui/dashboard", follow_redirects=False)
    assert again.status_code == 302
    assert again.headers["location"] == "/ui/login"


def test_shared_page_without_token(client: TestClient) -> None:
    r = client.get("/shared")
    assert r.status_code == 404
    assert "Lien de partage invalide" in r.text
