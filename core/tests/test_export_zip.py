from __future__ import annotations

import io
import zipfile

from _support import create_folder, upload
from fastapi.testclient import TestClient

from archive_pmn.constants import EMPTY_ZIP_README
from archive_pmn.db.folders import FolderRow
from archive_pmn.services.export import folder_path_map, unique_name


def _folder(folder_id: str, name: str, parent_id: str | None = None) -> FolderRow:
    return FolderRow(
        folder_id=folder_id,
        name=name,
        description=None,
        parent_id=parent_id,
        category="Archive",
        folder_number=None,
        status="Archive",
        created_by=None,
        created_at="2024-01-01T00:00:00.000Z",
        updated_at="2024-01-01T00:00:00.000Z",
    )


def test_unique_name_numbers_duplicates() -> None:
    taken: set[str] = set()
    assert unique_name("a/rapport.pdf", taken) == "a/rapport.pdf"
    assert unique_name("a/rapport.pdf", taken) == "a/rapport (2).pdf"
    assert unique_name("a/rapport.pdf", taken) == "a/rapport (3).pdf"
    assert unique_name("b/rapport.pdf", taken) == "b/rapport.pdf"
    assert unique_name("notes", taken) == "notes"
    assert unique_name("notes", taken) == "notes (2)"


def test_folder_path_map_nests_and_sanitizes() -> None:
    root = _folder("r", "Racine")
    child = _folder("c", "Plans/Coupes", parent_id="r")
    grandchild = _folder("g", "Lot 1", parent_id="c")

    paths = folder_path_map(root, [grandchild, child])
    assert paths == {"r": "", "c": "Plans_Coupes/", "g": "Plans_Coupes/Lot 1/"}


def test_folder_zip_keeps_structure(client: TestClient, make_account) -> None:
    admin = make_account("admin")
    root = create_folder(client, admin.headers, "Projet")
    sub = create_folder(client, admin.headers, "Plans", parent_id=root["folder_id"])
    upload(client, admin.headers, filename="cahier.txt", content=b"C", folder_id=root["folder_id"])
    upload(client, admin.headers, filename="plan.txt", content=b"P1", folder_id=sub["folder_id"])
    upload(client, admin.headers, filename="plan.txt", content=b"P2", folder_id=sub["folder_id"])

    r = client.get(f"/v1/folders/{root['folder_id']}/zip", headers=admin.headers)
    assert r.status_code == 200
    assert r.headers["content-type"] == "application/zip"
    assert 'filename="Projet.zip"' in r.headers["content-disposition"]
    assert r.headers["x-archive-files"] == "3"
    assert r.headers["x-archive-errors"] == "0"

    with zipfile.ZipFile(io.BytesIO(r.content)) as zf:
        names = sorted(zf.namelist())
        assert names == ["Plans/plan (2).txt", "Plans/plan.txt", "cahier.txt"]
        assert {zf.read("Plans/plan.txt"), zf.read("Plans/plan (2).txt")} == {b"P1", b"P2"}
        assert all(i.compress_type == zipfile.ZIP_DEFLATED for i in zf.infolist())


def test_empty_folder_zip_has_readme(client: TestClient, make_account) -> None:
    admin = make_account("admin")
    folder = create_folder(client, admin.headers, "Vide")

    r = client.get(f"/v1/folders/{folder['folder_id']}/zip", headers=admin.headers)
    assert r.status_code == 200
    with zipfile.ZipFile(io.BytesIO(r.content)) as zf:
        assert zf.namelist() == ["README.txt"]
        assert zf.read("README.txt").decode("utf-8") == EMPTY_ZIP_README


def test_zip_skips_missing_blobs(client: TestClient, make_account) -> None:
    admin = make_account("admin")
    folder = create_folder(client, admin.headers, "Partiel")
    upload(client, admin.headers, filename="ok.txt", content=b"ok", folder_id=folder["folder_id"])
    lost = upload(client, admin.headers, filename="lost.txt", folder_id=folder["folder_id"])

    storage_dir = client.app.state.archive_paths.storage_dir
    for p in (storage_dir / "documents").rglob(lost["document_id"]):
        p.unlink()

    r = client.get(f"/v1/folders/{folder['folder_id']}/zip", headers=admin.headers)
    assert r.status_code == 200
    assert r.headers["x-archive-files"] == "1"
    assert r.headers["x-archive-errors"] == "1"

    # When nothing at all can be read the export fails.
    only = create_folder(client, admin.headers, "Perdu")
    gone = upload(client, admin.headers, filename="x.txt", folder_id=only["folder_id"])
    for p in (storage_dir / "documents").rglob(gone["document_id"]):
        p.unlink()
    failed = client.get(f"/v1/folders/{only['folder_id']}/zip", headers=admin.headers)
    assert failed.status_code == 502
