from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.staticfiles import StaticFiles

from archive_pmn import __version__
from archive_pmn.api.models import fail, status_to_code
from archive_pmn.api.public import router as public_router
from archive_pmn.api.v1.router import router as v1_router
from archive_pmn.auth import is_exempt_path, resolve_request_user
from archive_pmn.config import CoreConfig, load_core_config, resolve_configured_paths
from archive_pmn.db import resolve_db_path
from archive_pmn.db.migrate import apply_migrations
from archive_pmn.errors import ArchiveError
from archive_pmn.home import ArchivePaths, ensure_archive_layout, resolve_archive_home
from archive_pmn.realtime import ChangeFeed
from archive_pmn.storage.manager import build_storage_manager
from archive_pmn.ui.router import STATIC_DIR as UI_STATIC_DIR
from archive_pmn.ui.router import router as ui_router
from archive_pmn.ui.router import shared_router as ui_shared_router

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _configure_file_logging(paths: ArchivePaths, config: CoreConfig) -> None:
    root = logging.getLogger()
    root.setLevel(logging.INFO)
    # One rotating handler per process, even when the app is created twice.
    if any(isinstance(h, RotatingFileHandler) for h in root.handlers):
        return

    handler = RotatingFileHandler(
        paths.logs_dir / "core.log",
        maxBytes=config.logging.max_size_mb * 1024 * 1024,
        backupCount=config.logging.backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)


def _error_response(
    status_code: int,
    *,
    code: str,
    message: str,
    details: Any | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = fail(code=code, message=message, details=details).model_dump(mode="json")
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def create_app() -> FastAPI:
    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        home = resolve_archive_home()
        paths = ensure_archive_layout(home)
        config = load_core_config(paths)
        paths = resolve_configured_paths(paths, config)

        _configure_file_logging(paths, config)
        logger.info("Archive PMN %s starting up (home=%s)", __version__, home)

        db_path = resolve_db_path(paths)
        apply_migrations(db_path)

        app.state.archive_home = home
        app.state.archive_paths = paths
        app.state.archive_config = config
        app.state.db_path = db_path
        app.state.storage_manager = build_storage_manager(paths=paths, config=config)
        app.state.change_feed = ChangeFeed()

        try:
            yield
        finally:
            logger.info("Archive PMN shutting down")

    app = FastAPI(title="Archive PMN", version=__version__, lifespan=_lifespan)

    class _SessionAuthMiddleware(BaseHTTPMiddleware):
        async def dispatch(self, request: Request, call_next) -> Response:
            path = request.url.path
            user = resolve_request_user(request)
            request.state.user = user

            if user is not None or is_exempt_path(path):
                return await call_next(request)

            if path == "/ui" or path.startswith("/ui/"):
                return RedirectResponse(url="/ui/login", status_code=302)

            return _error_response(401, code="unauthorized", message="Not authenticated")

    app.add_middleware(_SessionAuthMiddleware)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        response = await call_next(request)
        logger.info("%s %s - %s", request.method, request.url.path, response.status_code)
        return response

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return _error_response(
            422,
            code="validation_error",
            message="Request validation failed",
            details=exc.errors(),
        )

    @app.exception_handler(ArchiveError)
    async def _archive_error_handler(request: Request, exc: ArchiveError) -> JSONResponse:
        return _error_response(
            exc.status_code, code=status_to_code(exc.status_code), message=exc.message
        )

    # Also catches fastapi.HTTPException, which subclasses Starlette's.
    @app.exception_handler(StarletteHTTPException)
    async def _http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return _error_response(
            exc.status_code,
            code=status_to_code(exc.status_code),
            message=exc.detail if isinstance(exc.detail, str) else "HTTP error",
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error_response(500, code="internal_error", message="Internal server error")

    app.include_router(v1_router)
    app.include_router(public_router)

    if UI_STATIC_DIR.is_dir():
        app.mount("/ui/static", StaticFiles(directory=str(UI_STATIC_DIR)), name="ui-static")
    else:
        logger.warning("UI static directory is missing (%s)", UI_STATIC_DIR)
    app.include_router(ui_router)
    app.include_router(ui_shared_router)

    @app.get("/")
    async def root() -> RedirectResponse:
        return RedirectResponse(url="/ui/dashboard", status_code=302)

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    return app
