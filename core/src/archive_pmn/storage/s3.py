from __future__ import annotations

import socket
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from archive_pmn.config import CoreConfig


@dataclass(frozen=True)
class S3ObjectLocation:
    bucket: str
    key: str

    def to_storage_key(self) -> str:
        return f"{self.bucket}:{self.key}"

    @staticmethod
    def from_storage_key(storage_key: str, *, default_bucket: str) -> S3ObjectLocation:
        raw = (storage_key or "").strip()
        if ":" in raw:
            bucket, key = raw.split(":", 1)
            bucket = bucket.strip()
            key = key.strip()
            if bucket and key:
                return S3ObjectLocation(bucket=bucket, key=key)
        return S3ObjectLocation(bucket=default_bucket, key=raw)


def s3_bucket_name(config: CoreConfig, bucket: str) -> str:
    """Map a logical bucket ('documents', 'chat_files') to its S3 bucket name."""

    prefix = config.storage.s3.bucket_prefix.strip() or "archive-pmn"
    return f"{prefix}-{bucket.replace('_', '-')}"


def tcp_port_open(host: str, port: int, *, timeout_s: float = 0.2) -> bool:
    try:
        with socket.create_connection((host, port), timeout=timeout_s):
            return True
    except OSError:
        return False


def s3_endpoint_healthy(config: CoreConfig, *, timeout_s: float = 0.2) -> bool:
    url = (config.storage.s3.endpoint_url or "").strip()
    if not url:
        return False

    parsed = urlparse(url)
    host = parsed.hostname or "127.0.0.1"
    port = parsed.port
    if port is None:
        port = 443 if parsed.scheme == "https" else 80

    return tcp_port_open(host, port, timeout_s=timeout_s)


class S3StorageProvider:
    """S3-compatible storage provider (MinIO, AWS)."""

    provider_name = "s3"

    def __init__(
        self,
        *,
        endpoint_url: str,
        access_key: str,
        secret_key: str,
        region: str,
        use_ssl: bool,
    ) -> None:
        self._endpoint_url = endpoint_url
        self._access_key = access_key
        self._secret_key = secret_key
        self._region = region
        self._use_ssl = use_ssl
        self._client = None
        self._known_buckets: set[str] = set()

    def _get_client(self):
        if self._client is not None:
            return self._client

        import boto3
        from botocore.client import Config

        self._client = boto3.client(
            "s3",
            endpoint_url=self._endpoint_url,
            aws_access_key_id=self._access_key,
            aws_secret_access_key=self._secret_key,
            region_name=self._region,
            use_ssl=self._use_ssl,
            config=Config(s3={"addressing_style": "path"}),
        )
        return self._client

    def ensure_bucket(self, bucket: str) -> None:
        if bucket in self._known_buckets:
            return

        from botocore.exceptions import ClientError

        client = self._get_client()
        try:
            client.head_bucket(Bucket=bucket)
        except ClientError:
            client.create_bucket(Bucket=bucket)
        self._known_buckets.add(bucket)

    def put_file(self, *, temp_path: Path, location: S3ObjectLocation) -> None:
        client = self._get_client()
        self.ensure_bucket(location.bucket)
        with temp_path.open("rb") as f:
            client.put_object(Bucket=location.bucket, Key=location.key, Body=f)

    def head_size_bytes(self, *, location: S3ObjectLocation) -> int:
        from botocore.exceptions import ClientError

        client = self._get_client()
        try:
            r = client.head_object(Bucket=location.bucket, Key=location.key)
        except ClientError as e:
            raise FileNotFoundError(location.to_storage_key()) from e
        return int(r.get("ContentLength") or 0)

    def iter_range(
        self,
        *,
        location: S3ObjectLocation,
        start: int,
        end: int,
        chunk_size: int = 1024 * 1024,
    ) -> Iterator[bytes]:
        client = self._get_client()
        range_header = f"bytes={start}-{end}"
        r = client.get_object(Bucket=location.bucket, Key=location.key, Range=range_header)
        body = r["Body"]
        while True:
            chunk = body.read(chunk_size)
            if not chunk:
                break
            yield chunk

    def read_bytes(self, *, location: S3ObjectLocation) -> bytes:
        from botocore.exceptions import ClientError

        client = self._get_client()
        try:
            r = client.get_object(Bucket=location.bucket, Key=location.key)
        except ClientError as e:
            raise FileNotFoundError(location.to_storage_key()) from e
        return r["Body"].read()

    def delete(self, *, location: S3ObjectLocation) -> None:
        from botocore.exceptions import BotoCoreError, ClientError

        client = self._get_client()
        try:
            client.delete_object(Bucket=location.bucket, Key=location.key)
        except (BotoCoreError, ClientError) as e:
            raise OSError(f"S3 delete failed for {location.to_storage_key()}: {e}") from e
