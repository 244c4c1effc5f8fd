from __future__ import annotations

from archive_pmn.storage.filesystem import BUCKETS, FilesystemStorageProvider
from archive_pmn.storage.manager import (
    StorageManager,
    UploadResult,
    build_storage_manager,
    document_object_key,
)
from archive_pmn.storage.s3 import S3ObjectLocation, S3StorageProvider

__all__ = [
    "BUCKETS",
    "FilesystemStorageProvider",
    "S3ObjectLocation",
    "S3StorageProvider",
    "StorageManager",
    "UploadResult",
    "build_storage_manager",
    "document_object_key",
]
