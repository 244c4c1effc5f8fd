from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from archive_pmn.config import CoreConfig
from archive_pmn.home import ArchivePaths
from archive_pmn.storage.filesystem import FilesystemStorageProvider
from archive_pmn.storage.s3 import (
    S3ObjectLocation,
    S3StorageProvider,
    s3_bucket_name,
    s3_endpoint_healthy,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadResult:
    storage_provider: str
    storage_key: str
    byte_size: int


def document_object_key(document_id: str) -> str:
    document_id = document_id.strip().lower()
    shard = document_id[:2] if len(document_id) >= 2 else "xx"
    return f"{shard}/{document_id}"


class StorageManager:
    def __init__(self, *, paths: ArchivePaths, config: CoreConfig) -> None:
        self._paths = paths
        self._config = config

        self._fs = FilesystemStorageProvider(Path(paths.storage_dir))
        self._fs.ensure_layout()

        self._s3: S3StorageProvider | None = None
        self._s3_health_cached_at: float | None = None
        self._s3_health_cached_ok: bool = False

    @property
    def fs(self) -> FilesystemStorageProvider:
        return self._fs

    def s3_configured(self) -> bool:
        cfg = self._config.storage.s3
        if not cfg.enabled:
            return False
        if not (cfg.endpoint_url or "").strip():
            return False
        return bool((cfg.access_key or "").strip() and (cfg.secret_key or "").strip())

    def _s3_health(self) -> bool:
        # Cache to avoid probing the port repeatedly under load.
        now = time.time()
        if self._s3_health_cached_at is not None and (now - self._s3_health_cached_at) < 1.0:
            return self._s3_health_cached_ok

        ok = s3_endpoint_healthy(self._config)
        self._s3_health_cached_at = now
        self._s3_health_cached_ok = ok
        return ok

    def s3_available(self) -> bool:
        return self.s3_configured() and self._s3_health()

    def _get_s3(self) -> S3StorageProvider:
        if self._s3 is not None:
            return self._s3

        if not self.s3_configured():
            raise RuntimeError("S3 storage is not configured")

        cfg = self._config.storage.s3
        self._s3 = S3StorageProvider(
            endpoint_url=(cfg.endpoint_url or "").strip(),
            access_key=(cfg.access_key or "").strip(),
            secret_key=(cfg.secret_key or "").strip(),
            region=cfg.region,
            use_ssl=cfg.use_ssl,
        )
        return self._s3

    def _s3_location(self, storage_key: str) -> S3ObjectLocation:
        return S3ObjectLocation.from_storage_key(
            storage_key, default_bucket=s3_bucket_name(self._config, "documents")
        )

    def store_upload(self, *, temp_path: Path, bucket: str, object_key: str) -> UploadResult:
        """Move a fully-written temp file into the configured backend.

        S3 is used when it is the default provider and reachable; otherwise
        the filesystem. The temp file is consumed either way.
        """

        byte_size = temp_path.stat().st_size
        provider = self._config.storage.default_provider
        if provider == "s3" and not self.s3_available():
            logger.warning(
                "S3 storage unavailable; storing %s/%s on filesystem", bucket, object_key
            )
            provider = "fs"

        if provider == "s3":
            s3 = self._get_s3()
            loc = S3ObjectLocation(bucket=s3_bucket_name(self._config, bucket), key=object_key)
            try:
                s3.put_file(temp_path=temp_path, location=loc)
            finally:
                try:
                    temp_path.unlink(missing_ok=True)
                except OSError:
                    pass
            return UploadResult(
                storage_provider=s3.provider_name,
                storage_key=loc.to_storage_key(),
                byte_size=byte_size,
            )

        storage_key = self._fs.storage_key(bucket=bucket, object_key=object_key)
        self._fs.finalize_temp_file(temp_path=temp_path, storage_key=storage_key)
        return UploadResult(
            storage_provider=self._fs.provider_name,
            storage_key=storage_key,
            byte_size=byte_size,
        )

    def get_size_bytes(self, *, storage_provider: str, storage_key: str) -> int:
        if storage_provider == "fs":
            return self._fs.size_bytes(storage_key)
        if storage_provider == "s3":
            return self._get_s3().head_size_bytes(location=self._s3_location(storage_key))
        raise ValueError(f"Unsupported storage provider: {storage_provider}")

    def open_download(
        self,
        *,
        storage_provider: str,
        storage_key: str,
        start: int,
        end: int,
    ) -> Iterator[bytes]:
        """Iterate the inclusive byte range [start, end] of a stored blob."""

        if storage_provider == "fs":
            return self._fs.iter_range(storage_key, start=start, end=end)
        if storage_provider == "s3":
            return self._get_s3().iter_range(
                location=self._s3_location(storage_key), start=start, end=end
            )
        raise ValueError(f"Unsupported storage provider: {storage_provider}")

    def read_bytes(self, *, storage_provider: str, storage_key: str) -> bytes:
        if storage_provider == "fs":
            return self._fs.read_bytes(storage_key)
        if storage_provider == "s3":
            return self._get_s3().read_bytes(location=self._s3_location(storage_key))
        raise ValueError(f"Unsupported storage provider: {storage_provider}")

    def delete(self, *, storage_provider: str, storage_key: str) -> bool:
        """Remove a blob; failures are logged and reported as False."""

        try:
            if storage_provider == "fs":
                return self._fs.delete(storage_key)
            if storage_provider == "s3":
                self._get_s3().delete(location=self._s3_location(storage_key))
                return True
        except (OSError, ValueError, RuntimeError) as e:
            logger.warning("Failed to delete blob %s:%s (%s)", storage_provider, storage_key, e)
            return False
        logger.warning("Unsupported storage provider for delete: %s", storage_provider)
        return False


def build_storage_manager(*, paths: ArchivePaths, config: CoreConfig) -> StorageManager:
    return StorageManager(paths=paths, config=config)
