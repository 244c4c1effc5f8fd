from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from archive_pmn import __version__
from archive_pmn.api.models import ApiResponse, ok
from archive_pmn.api.v1.auth import router as auth_router
from archive_pmn.api.v1.dashboard import router as dashboard_router
from archive_pmn.api.v1.documents import router as documents_router
from archive_pmn.api.v1.folders import router as folders_router
from archive_pmn.api.v1.messages import router as messages_router
from archive_pmn.api.v1.realtime import router as realtime_router
from archive_pmn.api.v1.shares import router as shares_router
from archive_pmn.auth import require_super_admin
from archive_pmn.db.users import UserRow

router = APIRouter(prefix="/v1", tags=["v1"])

router.include_router(auth_router)
router.include_router(folders_router)
router.include_router(documents_router)
router.include_router(shares_router)
router.include_router(messages_router)
router.include_router(dashboard_router)
router.include_router(realtime_router)


class SystemInfo(BaseModel):
    version: str
    archive_home: str
    paths: dict[str, str]
    storage_provider: str
    realtime_subscribers: int


@router.get("/ping", response_model=ApiResponse[dict[str, bool]])
async def ping() -> ApiResponse[dict[str, bool]]:
    return ok({"pong": True})


@router.get("/system/info", response_model=ApiResponse[SystemInfo])
async def system_info(
    request: Request, user: UserRow = Depends(require_super_admin)  # noqa: B008
) -> ApiResponse[SystemInfo]:
    # Runtime identity and resolved paths only; no secrets.
    paths = getattr(request.app.state, "archive_paths", None)
    config = getattr(request.app.state, "archive_config", None)
    feed = getattr(request.app.state, "change_feed", None)

    info = SystemInfo(
        version=__version__,
        archive_home=str(paths.home) if paths is not None else "",
        paths={
            "db_dir": str(paths.db_dir) if paths is not None else "",
            "storage_dir": str(paths.storage_dir) if paths is not None else "",
            "logs_dir": str(paths.logs_dir) if paths is not None else "",
            "config_dir": str(paths.config_dir) if paths is not None else "",
            "tmp_dir": str(paths.tmp_dir) if paths is not None else "",
        },
        storage_provider=config.storage.default_provider if config is not None else "fs",
        realtime_subscribers=feed.subscriber_count if feed is not None else 0,
    )
    return ok(info)
