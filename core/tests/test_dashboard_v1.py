from __future__ import annotations

import sqlite3

from _support import upload
from fastapi.testclient import TestClient


def test_dashboard_stats_and_badges(client: TestClient, make_account) -> None:
    admin = make_account("admin")
    alice = make_account("alice")
    guest = make_account("invite", role="guest")

    upload(client, admin.headers)
    upload(client, alice.headers)
    client.post(
        f"/v1/messages/direct/{alice.user_id}", headers=admin.headers, json={"content": "Salut"}
    )

    stats = client.get("/v1/dashboard/stats", headers=alice.headers)
    assert stats.status_code == 200
    assert stats.json()["data"] == {
        "documents": 2,
        "shares": 0,
        "unread_messages": 1,
        "active_users": 3,
    }

    guest_stats = client.get("/v1/dashboard/stats", headers=guest.headers).json()["data"]
    assert guest_stats["documents"] == 0

    badges = client.get("/v1/dashboard/badges", headers=alice.headers).json()["data"]
    assert badges == {"unread_messages": 1, "pending_requests": 0}


def test_presence_heartbeat_status_and_staleness(client: TestClient, make_account) -> None:
    admin = make_account("admin")
    alice = make_account("alice")

    hb = client.post("/v1/presence/heartbeat", headers=alice.headers)
    assert hb.status_code == 200
    assert hb.json()["data"]["status"] == "online"

    away = client.put("/v1/presence/status", headers=alice.headers, json={"status": "away"})
    assert away.status_code == 200
    assert away.json()["data"]["status"] == "away"

    bad = client.put("/v1/presence/status", headers=alice.headers, json={"status": "busy"})
    assert bad.status_code == 422

    statuses = {
        s["user_id"]: s["status"]
        for s in client.get("/v1/presence", headers=admin.headers).json()["data"]["items"]
    }
    assert statuses[alice.user_id] == "away"
    # Logging in marks the admin online.
    assert statuses[admin.user_id] == "online"

    with sqlite3.connect(client.app.state.db_path) as conn:
        conn.execute(
            "UPDATE user_status SET last_seen = ? WHERE user_id = ?;",
            ("2000-01-01T00:00:00.000Z", admin.user_id),
        )

    statuses = {
        s["user_id"]: s["status"]
        for s in client.get("/v1/presence", headers=alice.headers).json()["data"]["items"]
    }
    assert statuses[admin.user_id] == "offline"


def test_preferences_default_and_update(client: TestClient, make_account) -> None:
    admin = make_account("admin")

    prefs = client.get("/v1/preferences", headers=admin.headers)
    assert prefs.status_code == 200
    assert prefs.json()["data"] == {"display_mode": "large", "icon_size": 60}

    updated = client.put(
        "/v1/preferences", headers=admin.headers, json={"display_mode": "very_large"}
    )
    assert updated.status_code == 200
    assert updated.json()["data"] == {"display_mode": "very_large", "icon_size": 80}

    bad = client.put("/v1/preferences", headers=admin.headers, json={"display_mode": "tiny"})
    assert bad.status_code == 422

    again = client.get("/v1/preferences", headers=admin.headers).json()["data"]
    assert again["display_mode"] == "very_large"


def test_access_request_flow(client: TestClient, make_account) -> None:
    admin = make_account("admin")
    alice = make_account("alice")
    guest = make_account("invite", role="guest")
    doc = upload(client, alice.headers)
    doc_id = doc["document_id"]

    # Colleagues already read the archive.
    already = client.post(f"/v1/documents/{doc_id}/access-requests", headers=alice.headers)
    assert already.status_code == 409

    created = client.post(f"/v1/documents/{doc_id}/access-requests", headers=guest.headers)
    assert created.status_code == 201
    req = created.json()["data"]
    assert req["status"] == "pending"
    assert req["requested_by"] == guest.user_id

    dup = client.post(f"/v1/documents/{doc_id}/access-requests", headers=guest.headers)
    assert dup.status_code == 409

    missing = client.post("/v1/documents/nope/access-requests", headers=guest.headers)
    assert missing.status_code == 404

    assert client.get("/v1/access-requests", headers=alice.headers).status_code == 403

    badges = client.get("/v1/dashboard/badges", headers=admin.headers).json()["data"]
    assert badges["pending_requests"] == 1

    pending = client.get(
        "/v1/access-requests", headers=admin.headers, params={"status": "pending"}
    ).json()["data"]["items"]
    assert [r["request_id"] for r in pending] == [req["request_id"]]

    approved = client.post(
        f"/v1/access-requests/{req['request_id']}/approve", headers=admin.headers
    )
    assert approved.status_code == 200
    assert approved.json()["data"]["status"] == "approved"
    assert approved.json()["data"]["reviewed_by"] == admin.user_id

    twice = client.post(f"/v1/access-requests/{req['request_id']}/reject", headers=admin.headers)
    assert twice.status_code == 409

    meta = client.get(f"/v1/documents/{doc_id}", headers=guest.headers)
    assert meta.status_code == 200
    assert meta.json()["data"]["permissions"] == {
        "can_read": True,
        "can_write": False,
        "can_delete": False,
        "can_share": False,
    }


def test_access_request_rejection(client: TestClient, make_account) -> None:
    admin = make_account("admin")
    guest = make_account("invite", role="guest")
    doc = upload(client, admin.headers)

    req = client.post(
        f"/v1/documents/{doc['document_id']}/access-requests", headers=guest.headers
    ).json()["data"]
    rejected = client.post(
        f"/v1/access-requests/{req['request_id']}/reject", headers=admin.headers
    )
    assert rejected.status_code == 200
    assert rejected.json()["data"]["status"] == "rejected"

    denied = client.get(f"/v1/documents/{doc['document_id']}", headers=guest.headers)
    assert denied.status_code == 403


def test_activity_log(client: TestClient, make_account) -> None:
    admin = make_account("admin")
    alice = make_account("alice")
    upload(client, alice.headers, filename="journal.txt")

    assert client.get("/v1/activity", headers=alice.headers).status_code == 403

    items = client.get("/v1/activity", headers=admin.headers).json()["data"]["items"]
    types = [a["activity_type"] for a in items]
    assert "login" in types
    assert "upload" in types

    uploads = [a for a in items if a["activity_type"] == "upload"]
    assert uploads[0]["user_id"] == alice.user_id
    assert "journal.txt" in uploads[0]["description"]

    limited = client.get("/v1/activity", headers=admin.headers, params={"limit": 1})
    assert len(limited.json()["data"]["items"]) == 1
