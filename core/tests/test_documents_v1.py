from __future__ import annotations

from _support import create_folder, upload
from fastapi.testclient import TestClient


def test_upload_metadata_download_and_range(client: TestClient, make_account) -> None:
    admin = make_account("admin")
    folder = create_folder(client, admin.headers, "Rapports")

    content = b"hello world"
    doc = upload(
        client,
        admin.headers,
        filename="bilan.txt",
        content=content,
        category="Financière",
        folder_id=folder["folder_id"],
        name="Bilan annuel",
        description="Exercice 2024",
        tags="bilan, 2024 ,",
    )
    assert doc["name"] == "Bilan annuel"
    assert doc["file_size"] == len(content)
    assert doc["file_type"] == "text/plain"
    assert doc["tags"] == ["bilan", "2024"]
    assert doc["folder_id"] == folder["folder_id"]
    assert doc["uploaded_by"] == admin.user_id

    meta = client.get(f"/v1/documents/{doc['document_id']}", headers=admin.headers)
    assert meta.status_code == 200
    assert meta.json()["data"]["permissions"] == {
        "can_read": True,
        "can_write": True,
        "can_delete": True,
        "can_share": True,
    }

    d = client.get(f"/v1/documents/{doc['document_id']}/download", headers=admin.headers)
    assert d.status_code == 200
    assert d.content == content
    assert d.headers["content-disposition"].startswith("attachment;")
    assert d.headers.get("accept-ranges") == "bytes"

    d2 = client.get(
        f"/v1/documents/{doc['document_id']}/download",
        headers={**admin.headers, "Range": "bytes=0-4"},
    )
    assert d2.status_code == 206
    assert d2.content == b"hello"
    assert d2.headers.get("content-range") == f"bytes 0-4/{len(content)}"

    suffix = client.get(
        f"/v1/documents/{doc['document_id']}/download",
        headers={**admin.headers, "Range": "bytes=-5"},
    )
    assert suffix.status_code == 206
    assert suffix.content == b"world"

    d3 = client.get(
        f"/v1/documents/{doc['document_id']}/download",
        headers={**admin.headers, "Range": "bytes=100-200"},
    )
    assert d3.status_code == 416

    preview = client.get(f"/v1/documents/{doc['document_id']}/preview", headers=admin.headers)
    assert preview.status_code == 200
    assert preview.headers["content-disposition"].startswith("inline;")


def test_upload_rejections(client: TestClient, make_account) -> None:
    admin = make_account("admin")

    empty = client.post(
        "/v1/documents/upload",
        headers=admin.headers,
        data={"category": "Technique"},
        files={"file": ("vide.txt", b"", "text/plain")},
    )
    assert empty.status_code == 422

    no_category = client.post(
        "/v1/documents/upload",
        headers=admin.headers,
        files={"file": ("a.txt", b"abc", "text/plain")},
    )
    assert no_category.status_code == 422
    assert no_category.json()["error"]["code"] == "validation_error"

    bad_category = client.post(
        "/v1/documents/upload",
        headers=admin.headers,
        data={"category": "Cuisine"},
        files={"file": ("a.txt", b"abc", "text/plain")},
    )
    assert bad_category.status_code == 422

    client.app.state.archive_config.uploads.max_document_bytes = 4
    too_big = client.post(
        "/v1/documents/upload",
        headers=admin.headers,
        data={"category": "Technique"},
        files={"file": ("gros.bin", b"0123456789", "application/octet-stream")},
    )
    assert too_big.status_code == 413

    # Rejected uploads leave nothing behind in tmp/.
    tmp_dir = client.app.state.archive_paths.tmp_dir
    assert list(tmp_dir.iterdir()) == []
    assert client.get("/v1/documents", headers=admin.headers).json()["data"]["items"] == []


def test_unicode_filename_disposition(client: TestClient, make_account) -> None:
    admin = make_account("admin")
    doc = upload(client, admin.headers, filename="procès-verbal.txt")

    d = client.get(f"/v1/documents/{doc['document_id']}/download", headers=admin.headers)
    assert d.status_code == 200
    assert "filename*=UTF-8''proc%C3%A8s-verbal.txt" in d.headers["content-disposition"]


def test_list_search_and_filters(client: TestClient, make_account) -> None:
    admin = make_account("admin")
    folder = create_folder(client, admin.headers, "Contrats")
    upload(
        client,
        admin.headers,
        filename="contrat.pdf",
        category="Légale",
        folder_id=folder["folder_id"],
    )
    upload(client, admin.headers, filename="budget.xlsx", category="Financière")

    everything = client.get("/v1/documents", headers=admin.headers).json()["data"]["items"]
    assert {d["name"] for d in everything} == {"contrat.pdf", "budget.xlsx"}

    in_folder = client.get(
        "/v1/documents", headers=admin.headers, params={"folder_id": folder["folder_id"]}
    ).json()["data"]["items"]
    assert [d["name"] for d in in_folder] == ["contrat.pdf"]

    by_text = client.get(
        "/v1/documents", headers=admin.headers, params={"q": "budg"}
    ).json()["data"]["items"]
    assert [d["name"] for d in by_text] == ["budget.xlsx"]

    by_category = client.get(
        "/v1/documents", headers=admin.headers, params={"category": "Légale"}
    ).json()["data"]["items"]
    assert [d["name"] for d in by_category] == ["contrat.pdf"]


def test_permissions_for_colleagues_and_guests(client: TestClient, make_account) -> None:
    admin = make_account("admin")
    alice = make_account("alice")
    bob = make_account("bob")
    guest = make_account("invite", role="guest")

    doc = upload(client, alice.headers)
    doc_id = doc["document_id"]

    # Verified colleagues read the archive but cannot change others' documents.
    meta = client.get(f"/v1/documents/{doc_id}", headers=bob.headers)
    assert meta.status_code == 200
    assert meta.json()["data"]["permissions"]["can_read"] is True
    assert meta.json()["data"]["permissions"]["can_write"] is False

    rename = client.patch(f"/v1/documents/{doc_id}", headers=bob.headers, json={"name": "x"})
    assert rename.status_code == 403
    delete = client.delete(f"/v1/documents/{doc_id}", headers=bob.headers)
    assert delete.status_code == 403

    # Guests only see what is shared with them.
    assert client.get(f"/v1/documents/{doc_id}", headers=guest.headers).status_code == 403
    assert client.get("/v1/documents", headers=guest.headers).json()["data"]["items"] == []
    guest_upload = client.post(
        "/v1/documents/upload",
        headers=guest.headers,
        data={"category": "Technique"},
        files={"file": ("g.txt", b"guest", "text/plain")},
    )
    assert guest_upload.status_code == 403

    # Administrators can do everything.
    renamed = client.patch(
        f"/v1/documents/{doc_id}", headers=admin.headers, json={"name": "Renommé"}
    )
    assert renamed.status_code == 200
    assert renamed.json()["data"]["name"] == "Renommé"


def test_owner_rename_and_delete(client: TestClient, make_account) -> None:
    make_account("admin")
    alice = make_account("alice")
    doc = upload(client, alice.headers)
    doc_id = doc["document_id"]

    blank = client.patch(f"/v1/documents/{doc_id}", headers=alice.headers, json={"name": "  "})
    assert blank.status_code == 422

    r = client.delete(f"/v1/documents/{doc_id}", headers=alice.headers)
    assert r.status_code == 200
    assert r.json()["data"] == {"deleted": True}

    assert client.get(f"/v1/documents/{doc_id}", headers=alice.headers).status_code == 404
    missing = client.get(f"/v1/documents/{doc_id}/download", headers=alice.headers)
    assert missing.status_code == 404
