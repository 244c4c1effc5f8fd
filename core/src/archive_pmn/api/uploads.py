from __future__ import annotations

import uuid
from pathlib import Path

from fastapi import HTTPException, UploadFile

from archive_pmn.services import AppContext


def _unlink_best_effort(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError:
        pass


async def spool_upload(ctx: AppContext, upload: UploadFile, *, max_bytes: int) -> Path:
    """Copy an upload into tmp/; rejects empty files (422) and oversize ones (413)."""

    if not upload.filename:
        raise HTTPException(status_code=422, detail="Nom de fichier manquant")

    temp_path = (ctx.paths.tmp_dir / f"upload-{uuid.uuid4().hex}.tmp").resolve()
    byte_size = 0
    too_large = False

    try:
        with temp_path.open("wb") as out:
            while True:
                chunk = await upload.read(1024 * 1024)
                if not chunk:
                    break
                byte_size += len(chunk)
                if byte_size > max_bytes:
                    too_large = True
                    break
                out.write(chunk)
    finally:
        await upload.close()

    if too_large:
        _unlink_best_effort(temp_path)
        limit_mb = max_bytes / (1024 * 1024)
        raise HTTPException(
            status_code=413, detail=f"Fichier trop volumineux (max {limit_mb:g} Mo)"
        )

    if byte_size <= 0:
        _unlink_best_effort(temp_path)
        raise HTTPException(status_code=422, detail="Le fichier envoyé est vide")

    return temp_path


def discard_upload(path: Path) -> None:
    _unlink_best_effort(path)
