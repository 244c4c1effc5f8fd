from __future__ import annotations

from _support import create_folder, upload
from fastapi.testclient import TestClient


def test_folder_create_get_and_validation(client: TestClient, make_account) -> None:
    admin = make_account("admin")

    folder = create_folder(client, admin.headers, "Marchés 2024", category="Financière")
    assert folder["status"] == "Archive"
    assert folder["parent_id"] is None
    assert folder["created_by"] == admin.user_id

    got = client.get(f"/v1/folders/{folder['folder_id']}", headers=admin.headers)
    assert got.status_code == 200
    assert got.json()["data"]["name"] == "Marchés 2024"

    missing = client.get("/v1/folders/nope", headers=admin.headers)
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "not_found"

    bad_category = client.post(
        "/v1/folders", headers=admin.headers, json={"name": "X", "category": "Cuisine"}
    )
    assert bad_category.status_code == 422

    blank = client.post(
        "/v1/folders", headers=admin.headers, json={"name": "   ", "category": "Technique"}
    )
    assert blank.status_code == 422

    orphan = client.post(
        "/v1/folders",
        headers=admin.headers,
        json={"name": "Sous", "category": "Technique", "parent_id": "missing"},
    )
    assert orphan.status_code == 404


def test_guest_cannot_create_folder(client: TestClient, make_account) -> None:
    make_account("admin")
    guest = make_account("invite", role="guest")

    r = client.post(
        "/v1/folders", headers=guest.headers, json={"name": "Privé", "category": "Projet"}
    )
    assert r.status_code == 403


def test_descendants_and_tree(client: TestClient, make_account) -> None:
    admin = make_account("admin")
    root = create_folder(client, admin.headers, "Projet A", category="Projet")
    child = create_folder(
        client, admin.headers, "Plans", category="Technique", parent_id=root["folder_id"]
    )
    grandchild = create_folder(
        client, admin.headers, "Lot 1", category="Technique", parent_id=child["folder_id"]
    )
    other = create_folder(client, admin.headers, "Divers", category="Archive")

    upload(client, admin.headers, filename="plan.pdf", folder_id=grandchild["folder_id"])
    upload(client, admin.headers, filename="note.txt")

    desc = client.get(f"/v1/folders/{root['folder_id']}/descendants", headers=admin.headers)
    assert desc.status_code == 200
    ids = {f["folder_id"] for f in desc.json()["data"]["items"]}
    assert ids == {child["folder_id"], grandchild["folder_id"]}

    tree = client.get("/v1/folders/tree", headers=admin.headers).json()["data"]
    top = {n["folder"]["folder_id"]: n for n in tree["folders"]}
    assert set(top) == {root["folder_id"], other["folder_id"]}
    plans = top[root["folder_id"]]["children"][0]
    assert plans["folder"]["name"] == "Plans"
    assert plans["children"][0]["documents"][0]["name"] == "plan.pdf"
    assert [d["name"] for d in tree["root_documents"]] == ["note.txt"]

    # Search keeps the path down to the matching document.
    found = client.get("/v1/folders/tree", headers=admin.headers, params={"q": "plan.pdf"})
    data = found.json()["data"]
    assert [n["folder"]["name"] for n in data["folders"]] == ["Projet A"]
    assert data["root_documents"] == []

    by_category = client.get(
        "/v1/folders/tree", headers=admin.headers, params={"category": "Archive"}
    ).json()["data"]
    assert [n["folder"]["name"] for n in by_category["folders"]] == ["Divers"]


def test_guest_tree_hides_empty_folders(client: TestClient, make_account) -> None:
    admin = make_account("admin")
    guest = make_account("invite", role="guest")
    create_folder(client, admin.headers, "Vide", category="Projet")

    tree = client.get("/v1/folders/tree", headers=guest.headers).json()["data"]
    assert tree["folders"] == []

    admin_tree = client.get("/v1/folders/tree", headers=admin.headers).json()["data"]
    assert len(admin_tree["folders"]) == 1


def test_rename_permissions(client: TestClient, make_account) -> None:
    make_account("admin")
    alice = make_account("alice")
    bob = make_account("bob")
    folder = create_folder(client, alice.headers, "Courriers", category="Administrative")

    denied = client.patch(
        f"/v1/folders/{folder['folder_id']}", headers=bob.headers, json={"name": "Volé"}
    )
    assert denied.status_code == 403

    renamed = client.patch(
        f"/v1/folders/{folder['folder_id']}", headers=alice.headers, json={"name": "Courriers 2024"}
    )
    assert renamed.status_code == 200
    assert renamed.json()["data"]["name"] == "Courriers 2024"


def test_details_are_super_admin_only(client: TestClient, make_account) -> None:
    admin = make_account("admin")
    manager = make_account("manager", role="admin")
    folder = create_folder(client, admin.headers, "Dossier", category="Légale")
    url = f"/v1/folders/{folder['folder_id']}/details"

    denied = client.patch(url, headers=manager.headers, json={"status": "En cours"})
    assert denied.status_code == 403

    bad_status = client.patch(url, headers=admin.headers, json={"status": "Perdu"})
    assert bad_status.status_code == 422

    updated = client.patch(
        url, headers=admin.headers, json={"folder_number": "PMN-042", "status": "En cours"}
    )
    assert updated.status_code == 200
    assert updated.json()["data"]["folder_number"] == "PMN-042"
    assert updated.json()["data"]["status"] == "En cours"

    cleared = client.patch(url, headers=admin.headers, json={"folder_number": ""})
    assert cleared.json()["data"]["folder_number"] is None
    assert cleared.json()["data"]["status"] == "En cours"


def test_delete_folder_tree_removes_documents(client: TestClient, make_account) -> None:
    admin = make_account("admin")
    agent = make_account("agent")
    root = create_folder(client, admin.headers, "À supprimer", category="Archive")
    child = create_folder(
        client, admin.headers, "Enfant", category="Archive", parent_id=root["folder_id"]
    )
    doc = upload(client, admin.headers, folder_id=child["folder_id"])

    denied = client.delete(f"/v1/folders/{root['folder_id']}", headers=agent.headers)
    assert denied.status_code == 403

    r = client.delete(f"/v1/folders/{root['folder_id']}", headers=admin.headers)
    assert r.status_code == 200
    assert r.json()["data"] == {"documents_deleted": 1}

    assert client.get(f"/v1/folders/{child['folder_id']}", headers=admin.headers).status_code == 404
    gone = client.get(f"/v1/documents/{doc['document_id']}", headers=admin.headers)
    assert gone.status_code == 404

    storage_dir = client.app.state.archive_paths.storage_dir
    assert not any(p.is_file() for p in (storage_dir / "documents").rglob("*"))
