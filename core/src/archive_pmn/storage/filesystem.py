from __future__ import annotations

import os
import shutil
from collections.abc import Iterator
from pathlib import Path

BUCKETS: tuple[str, ...] = ("documents", "chat_files")


class FilesystemStorageProvider:
    """Local filesystem blob storage.

    Base dir: ${ARCHIVE_PMN_HOME}/storage
    Storage key: <bucket>/<object key>, e.g. documents/ab/<document_id>
    """

    provider_name = "fs"

    def __init__(self, base_dir: Path) -> None:
        self._base_dir = base_dir

    def ensure_layout(self) -> None:
        for bucket in BUCKETS:
            (self._base_dir / bucket).mkdir(parents=True, exist_ok=True)

    def storage_key(self, *, bucket: str, object_key: str) -> str:
        if bucket not in BUCKETS:
            raise ValueError(f"Unknown bucket: {bucket}")
        return f"{bucket}/{object_key.lstrip('/')}"

    def resolve_path(self, storage_key: str) -> Path:
        base = self._base_dir.resolve()
        path = (base / storage_key).resolve()
        if path != base and base not in path.parents:
            raise ValueError("Storage key escapes the storage directory")
        return path

    def exists(self, storage_key: str) -> bool:
        return self.resolve_path(storage_key).is_file()

    def size_bytes(self, storage_key: str) -> int:
        return self.resolve_path(storage_key).stat().st_size

    def finalize_temp_file(self, *, temp_path: Path, storage_key: str) -> Path:
        """Move a temp file into its final storage path, replacing any existing blob."""

        dst = self.resolve_path(storage_key)
        dst.parent.mkdir(parents=True, exist_ok=True)

        try:
            temp_path.replace(dst)
        except OSError:
            # Cross-device move: copy then remove.
            with temp_path.open("rb") as src, dst.open("wb") as out:
                shutil.copyfileobj(src, out, length=1024 * 1024)
            try:
                temp_path.unlink(missing_ok=True)
            except OSError:
                pass

        try:
            os.chmod(dst, 0o644)
        except OSError:
            pass

        return dst

    def iter_range(
        self, storage_key: str, *, start: int, end: int, chunk_size: int = 1024 * 1024
    ) -> Iterator[bytes]:
        path = self.resolve_path(storage_key)
        with path.open("rb") as f:
            f.seek(start)
            remaining = end - start + 1
            while remaining > 0:
                chunk = f.read(min(chunk_size, remaining))
                if not chunk:
                    break
                remaining -= len(chunk)
                yield chunk

    def read_bytes(self, storage_key: str) -> bytes:
        return self.resolve_path(storage_key).read_bytes()

    def delete(self, storage_key: str) -> bool:
        path = self.resolve_path(storage_key)
        if not path.exists():
            return False
        path.unlink()
        return True
