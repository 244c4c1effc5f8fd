from __future__ import annotations

import io
import logging
import posixpath
import zipfile
from dataclasses import dataclass

from archive_pmn.constants import EMPTY_ZIP_README
from archive_pmn.db.documents import DocumentRow
from archive_pmn.db.folders import FolderRow, get_folder
from archive_pmn.db.users import UserRow
from archive_pmn.errors import NotFoundError, StorageError
from archive_pmn.services import AppContext
from archive_pmn.services.library import (
    descendant_folders,
    filter_readable,
    folder_documents_recursive,
)

logger = logging.getLogger(__name__)

ZIP_COMPRESSION = zipfile.ZIP_DEFLATED
ZIP_COMPRESSLEVEL = 6


@dataclass(frozen=True)
class ZipArchive:
    filename: str
    data: bytes
    files: int
    errors: int


def _safe_segment(name: str) -> str:
    cleaned = name.replace("/", "_").replace("\\", "_").strip()
    return cleaned or "sans-nom"


def unique_name(path: str, taken: set[str]) -> str:
    """Return `path`, or `stem (n).ext` when an entry with that name already exists."""

    if path not in taken:
        taken.add(path)
        return path
    stem, ext = posixpath.splitext(path)
    n = 2
    while f"{stem} ({n}){ext}" in taken:
        n += 1
    candidate = f"{stem} ({n}){ext}"
    taken.add(candidate)
    return candidate


def folder_path_map(root: FolderRow, descendants: list[FolderRow]) -> dict[str, str]:
    """Map every folder id to its path inside the archive ('' for the root, 'a/b/' below)."""

    by_id = {f.folder_id: f for f in descendants}
    paths: dict[str, str] = {root.folder_id: ""}

    def path_for(folder_id: str) -> str:
        if folder_id in paths:
            return paths[folder_id]
        folder = by_id[folder_id]
        parent_path = path_for(folder.parent_id) if folder.parent_id else ""
        paths[folder_id] = f"{parent_path}{_safe_segment(folder.name)}/"
        return paths[folder_id]

    for f in descendants:
        path_for(f.folder_id)
    return paths


def _write_documents(
    ctx: AppContext,
    zf: zipfile.ZipFile,
    entries: list[tuple[str, DocumentRow]],
) -> tuple[int, int]:
    written = 0
    errors = 0
    taken: set[str] = set()
    for path, doc in entries:
        try:
            data = ctx.storage.read_bytes(
                storage_provider=doc.storage_provider, storage_key=doc.storage_key
            )
        except (OSError, ValueError, RuntimeError) as e:
            errors += 1
            logger.warning("ZIP export: cannot read %s (%s): %s", doc.document_id, doc.name, e)
            continue
        zf.writestr(unique_name(path, taken), data)
        written += 1
    return written, errors


def build_folder_zip(ctx: AppContext, user: UserRow, *, folder_id: str) -> ZipArchive:
    """ZIP a folder with its sub-folder structure.

    Raises StorageError when the folder has documents and none could be read.
    """

    folder = get_folder(ctx.db_path, folder_id=folder_id)
    if folder is None:
        raise NotFoundError("Dossier introuvable")

    descendants = descendant_folders(ctx, folder_id=folder_id)
    paths = folder_path_map(folder, descendants)
    docs = filter_readable(ctx, user, folder_documents_recursive(ctx, folder_id=folder_id))

    buf = io.BytesIO()
    with zipfile.ZipFile(
        buf, "w", compression=ZIP_COMPRESSION, compresslevel=ZIP_COMPRESSLEVEL
    ) as zf:
        if not docs:
            zf.writestr("README.txt", EMPTY_ZIP_README)
            written, errors = 0, 0
        else:
            entries = [
                (f"{paths.get(d.folder_id or '', '')}{_safe_segment(d.name)}", d) for d in docs
            ]
            written, errors = _write_documents(ctx, zf, entries)

    if docs and written == 0:
        raise StorageError("Aucun fichier du dossier n'a pu être lu")

    logger.info("Folder %s exported: %d files, %d errors", folder_id, written, errors)
    return ZipArchive(
        filename=f"{_safe_segment(folder.name)}.zip",
        data=buf.getvalue(),
        files=written,
        errors=errors,
    )


def build_documents_zip(
    ctx: AppContext, *, documents: list[DocumentRow], filename: str
) -> ZipArchive:
    """Flat ZIP of documents; unreadable blobs are skipped."""

    buf = io.BytesIO()
    with zipfile.ZipFile(
        buf, "w", compression=ZIP_COMPRESSION, compresslevel=ZIP_COMPRESSLEVEL
    ) as zf:
        written, errors = _write_documents(
            ctx, zf, [(_safe_segment(d.name), d) for d in documents]
        )

    return ZipArchive(filename=filename, data=buf.getvalue(), files=written, errors=errors)
