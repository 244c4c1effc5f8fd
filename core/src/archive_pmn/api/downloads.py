from __future__ import annotations

import logging
from collections.abc import Iterator
from urllib.parse import quote

from fastapi import HTTPException, Request, Response
from fastapi.responses import StreamingResponse

from archive_pmn.db.documents import DocumentRow
from archive_pmn.services import AppContext

logger = logging.getLogger(__name__)

NO_CACHE = "no-cache, no-store, must-revalidate"


def content_disposition(filename: str, *, inline: bool = False) -> str:
    kind = "inline" if inline else "attachment"
    # ASCII fallback plus RFC 5987 form for accented names.
    ascii_name = filename.encode("ascii", "replace").decode("ascii").replace('"', "'")
    return f"{kind}; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename, safe='')}"


def parse_range_header(range_header: str, *, size: int) -> tuple[int, int] | None:
    raw = (range_header or "").strip()
    if not raw:
        return None

    if not raw.lower().startswith("bytes="):
        return None

    spec = raw[6:].strip()

    # Only a single range is supported.
    if "," in spec:
        return None

    if "-" not in spec:
        return None

    start_s, end_s = spec.split("-", 1)
    start_s = start_s.strip()
    end_s = end_s.strip()

    if start_s == "":
        # suffix: last N bytes
        try:
            suffix = int(end_s)
        except ValueError:
            return None
        if suffix <= 0 or size <= 0:
            return None
        if suffix >= size:
            return (0, size - 1)
        return (size - suffix, size - 1)

    try:
        start = int(start_s)
    except ValueError:
        return None

    if start < 0 or start >= size:
        return None

    if end_s == "":
        return (start, size - 1)

    try:
        end = int(end_s)
    except ValueError:
        return None

    if end < start:
        return None

    end = min(end, size - 1)
    return (start, end)


def stream_blob(
    ctx: AppContext,
    request: Request,
    *,
    storage_provider: str,
    storage_key: str,
    filename: str,
    media_type: str,
    inline: bool = False,
    extra_headers: dict[str, str] | None = None,
) -> Response:
    """Stream stored bytes honouring a single `Range` header (206 / 416)."""

    try:
        size = ctx.storage.get_size_bytes(
            storage_provider=storage_provider, storage_key=storage_key
        )
    except FileNotFoundError as e:
        logger.warning("Blob missing: %s:%s", storage_provider, storage_key)
        raise HTTPException(status_code=404, detail="Fichier introuvable dans le stockage") from e
    except (ValueError, RuntimeError) as e:
        raise HTTPException(status_code=503, detail="Stockage indisponible") from e

    headers: dict[str, str] = {
        "Accept-Ranges": "bytes",
        "Content-Disposition": content_disposition(filename, inline=inline),
    }
    if extra_headers:
        headers.update(extra_headers)

    range_header = request.headers.get("range")
    range_tuple = parse_range_header(range_header or "", size=size) if range_header else None

    if range_header and range_tuple is None:
        headers["Content-Range"] = f"bytes */{size}"
        return Response(status_code=416, headers=headers)

    def _iter(start: int, end: int) -> Iterator[bytes]:
        if end < start:
            return iter(())
        return ctx.storage.open_download(
            storage_provider=storage_provider, storage_key=storage_key, start=start, end=end
        )

    if range_tuple is None:
        headers["Content-Length"] = str(size)
        return StreamingResponse(_iter(0, size - 1), media_type=media_type, headers=headers)

    start, end = range_tuple
    headers["Content-Range"] = f"bytes {start}-{end}/{size}"
    headers["Content-Length"] = str(end - start + 1)
    return StreamingResponse(
        _iter(start, end),
        status_code=206,
        media_type=media_type,
        headers=headers,
    )


def stream_document(
    ctx: AppContext,
    request: Request,
    doc: DocumentRow,
    *,
    inline: bool = False,
    extra_headers: dict[str, str] | None = None,
) -> Response:
    return stream_blob(
        ctx,
        request,
        storage_provider=doc.storage_provider,
        storage_key=doc.storage_key,
        filename=doc.name,
        media_type=doc.file_type or "application/octet-stream",
        inline=inline,
        extra_headers=extra_headers,
    )


def zip_response(
    data: bytes, *, filename: str, extra_headers: dict[str, str] | None = None
) -> Response:
    headers = {
        "Content-Disposition": content_disposition(filename),
        "Cache-Control": NO_CACHE,
    }
    if extra_headers:
        headers.update(extra_headers)
    return Response(content=data, media_type="application/zip", headers=headers)
