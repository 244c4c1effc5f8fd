"""Public share-link downloads; these routes need no session."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request, Response

from archive_pmn.api.downloads import NO_CACHE, stream_document, zip_response
from archive_pmn.constants import SHARED_ZIP_FILENAME
from archive_pmn.errors import NotFoundError
from archive_pmn.services import context_from_request
from archive_pmn.services.export import build_documents_zip
from archive_pmn.services.sharing import resolve_share_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["public"])


@router.get("/share/{token}")
async def share_download(request: Request, token: str) -> Response:
    ctx = context_from_request(request)
    resolved = resolve_share_token(ctx, token=token)
    if not resolved.documents:
        raise NotFoundError("Document introuvable")
    return stream_document(
        ctx,
        request,
        resolved.documents[0],
        extra_headers={"Cache-Control": NO_CACHE, "Access-Control-Allow-Origin": "*"},
    )


@router.get("/share-folder/{token}")
async def share_folder_download(request: Request, token: str) -> Response:
    ctx = context_from_request(request)
    resolved = resolve_share_token(ctx, token=token)
    if not resolved.documents:
        raise NotFoundError("Documents introuvables")

    archive = build_documents_zip(ctx, documents=resolved.documents, filename=SHARED_ZIP_FILENAME)
    if archive.errors:
        logger.warning("Shared ZIP %s: %d documents skipped", token, archive.errors)
    return zip_response(archive.data, filename=archive.filename)
