from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from fastapi import HTTPException, Request

from archive_pmn.config import CoreConfig
from archive_pmn.home import ArchivePaths
from archive_pmn.realtime import ChangeFeed
from archive_pmn.storage.manager import StorageManager


@dataclass(frozen=True)
class AppContext:
    """Everything a service call needs; built from app.state per request."""

    db_path: Path
    paths: ArchivePaths
    config: CoreConfig
    storage: StorageManager
    feed: ChangeFeed

    def publish(self, table: str, event: str, record: Any) -> None:
        self.feed.publish(table, event, record)


def context_from_request(request: Request) -> AppContext:
    state = request.app.state
    db_path = getattr(state, "db_path", None)
    paths = getattr(state, "archive_paths", None)
    config = getattr(state, "archive_config", None)
    if db_path is None or paths is None or config is None:
        raise HTTPException(status_code=500, detail="Server not initialized")

    storage = getattr(state, "storage_manager", None)
    if storage is None:
        raise HTTPException(status_code=500, detail="Storage not initialized")

    feed = getattr(state, "change_feed", None)
    if feed is None:
        raise HTTPException(status_code=500, detail="Change feed not initialized")

    return AppContext(db_path=db_path, paths=paths, config=config, storage=storage, feed=feed)
