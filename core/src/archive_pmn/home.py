from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path

HOME_ENV_VAR = "ARCHIVE_PMN_HOME"


@dataclass(frozen=True)
class ArchivePaths:
    home: Path
    db_dir: Path
    storage_dir: Path
    logs_dir: Path
    config_dir: Path
    tmp_dir: Path

    @property
    def core_config_path(self) -> Path:
        return self.config_dir / "core.json"


def resolve_archive_home(environ: dict[str, str] | None = None) -> Path:
    env = os.environ if environ is None else environ

    raw = (env.get(HOME_ENV_VAR) or "").strip()
    if raw:
        candidate = Path(raw).expanduser()
        # Never interpret the home relative to CWD.
        if not candidate.is_absolute():
            candidate = (Path.home() / candidate).resolve()
        else:
            candidate = candidate.resolve()
        return candidate

    def default_home() -> Path:
        if sys.platform.startswith("win"):
            base = os.environ.get("LOCALAPPDATA") or os.environ.get("APPDATA")
            if base:
                return Path(base) / "ArchivePMN"
            return Path.home() / "AppData" / "Local" / "ArchivePMN"

        if sys.platform == "darwin":
            return Path.home() / "Library" / "Application Support" / "ArchivePMN"

        xdg = os.environ.get("XDG_DATA_HOME")
        if xdg:
            return Path(xdg) / "archive-pmn"
        return Path.home() / ".local" / "share" / "archive-pmn"

    return default_home().resolve()


def ensure_archive_layout(home: Path) -> ArchivePaths:
    home.mkdir(parents=True, exist_ok=True)

    db_dir = home / "db"
    storage_dir = home / "storage"
    logs_dir = home / "logs"
    config_dir = home / "config"
    tmp_dir = home / "tmp"

    for path in (db_dir, storage_dir, logs_dir, config_dir, tmp_dir):
        path.mkdir(parents=True, exist_ok=True)

    return ArchivePaths(
        home=home,
        db_dir=db_dir,
        storage_dir=storage_dir,
        logs_dir=logs_dir,
        config_dir=config_dir,
        tmp_dir=tmp_dir,
    )
