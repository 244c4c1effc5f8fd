from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from archive_pmn.home import ArchivePaths


class NetworkConfig(BaseModel):
    bind_host: str = Field(default="127.0.0.1")
    port: int = Field(default=8790, ge=1, le=65535)


class PathOverrides(BaseModel):
    db_dir: str | None = None
    storage_dir: str | None = None
    logs_dir: str | None = None


class AuthConfig(BaseModel):
    session_ttl_hours: int = Field(default=24 * 30, ge=1)
    allowed_email_domain: str = Field(
        default="pmn.sn",
        description="Registration only accepts addresses under this domain.",
    )
    min_password_length: int = Field(default=6, ge=1)
    secure_cookies: bool = Field(default=False)


class LoggingConfig(BaseModel):
    max_size_mb: int = Field(
        default=10, ge=1, description="Max size of a log file in MB before rolling."
    )
    backup_count: int = Field(default=5, ge=1, description="Number of log archives to keep.")


class S3StorageConfig(BaseModel):
    """S3-compatible storage settings."""

    enabled: bool = Field(default=False)
    endpoint_url: str | None = Field(default=None, description="e.g. http://127.0.0.1:8333")
    access_key: str | None = Field(default=None)
    secret_key: str | None = Field(default=None)
    bucket_prefix: str = Field(
        default="archive-pmn",
        description="Buckets are named '<prefix>-documents' and '<prefix>-chat-files'.",
    )
    region: str = Field(default="us-east-1")
    use_ssl: bool = Field(default=False)


class StorageConfig(BaseModel):
    default_provider: str = Field(default="fs", description="'fs' or 's3'")
    s3: S3StorageConfig = Field(default_factory=S3StorageConfig)


class UploadLimits(BaseModel):
    max_document_bytes: int = Field(default=50 * 1024 * 1024, ge=1)
    max_chat_file_bytes: int = Field(default=10 * 1024 * 1024, ge=1)


class SharingConfig(BaseModel):
    public_base_url: str | None = Field(
        default=None,
        description="Base URL used in generated share links; defaults to the request URL.",
    )
    link_expiry_days: int | None = Field(
        default=None,
        ge=1,
        description="If set, new share links expire after this many days.",
    )


class PresenceConfig(BaseModel):
    stale_after_seconds: int = Field(default=90, ge=1)


class CoreConfig(BaseModel):
    version: str = Field(default="1")
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    paths: PathOverrides = Field(default_factory=PathOverrides)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    uploads: UploadLimits = Field(default_factory=UploadLimits)
    sharing: SharingConfig = Field(default_factory=SharingConfig)
    presence: PresenceConfig = Field(default_factory=PresenceConfig)


def _read_json(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def load_core_config(paths: ArchivePaths) -> CoreConfig:
    """Load config from ${ARCHIVE_PMN_HOME}/config/core.json.

    - If missing: returns defaults.
    - Validation is performed by Pydantic.
    """

    config_path = paths.core_config_path
    if not config_path.exists():
        return CoreConfig()

    raw = _read_json(config_path)
    return CoreConfig.model_validate(raw)


def write_core_config(paths: ArchivePaths, config: CoreConfig) -> None:
    """Persist config to ${ARCHIVE_PMN_HOME}/config/core.json."""

    payload = config.model_dump(mode="json", exclude_none=True)
    paths.config_dir.mkdir(parents=True, exist_ok=True)
    paths.core_config_path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")


def resolve_configured_paths(paths: ArchivePaths, config: CoreConfig) -> ArchivePaths:
    """Apply user-configurable path overrides from config.

    config/ and tmp/ always stay under the home directory.
    """

    def _resolve_dir(raw: str | None, default: Path) -> Path:
        if raw is None or not str(raw).strip():
            return default
        candidate = Path(raw).expanduser()
        if not candidate.is_absolute():
            candidate = (paths.home / candidate).resolve()
        else:
            candidate = candidate.resolve()
        return candidate

    db_dir = _resolve_dir(config.paths.db_dir, paths.db_dir)
    storage_dir = _resolve_dir(config.paths.storage_dir, paths.storage_dir)
    logs_dir = _resolve_dir(config.paths.logs_dir, paths.logs_dir)

    for p in (db_dir, storage_dir, logs_dir):
        p.mkdir(parents=True, exist_ok=True)

    return ArchivePaths(
        home=paths.home,
        db_dir=db_dir,
        storage_dir=storage_dir,
        logs_dir=logs_dir,
        config_dir=paths.config_dir,
        tmp_dir=paths.tmp_dir,
    )
