from __future__ import annotations

import sqlite3

import pytest
from _support import upload
from botocore.exceptions import ClientError, EndpointConnectionError
from fastapi.testclient import TestClient

from archive_pmn.storage.s3 import S3ObjectLocation, S3StorageProvider


class _FailingS3Client:
    def __init__(self, exc: Exception) -> None:
        self.exc = exc
        self.calls: list[tuple[str, str]] = []

    def delete_object(self, *, Bucket: str, Key: str) -> None:  # noqa: N803
        self.calls.append((Bucket, Key))
        raise self.exc


def _provider(exc: Exception) -> S3StorageProvider:
    provider = S3StorageProvider(
        endpoint_url="http://127.0.0.1:9",
        access_key="k",
        secret_key="s",
        region="us-east-1",
        use_ssl=False,
    )
    provider._client = _FailingS3Client(exc)
    return provider


@pytest.mark.parametrize(
    "exc",
    [
        ClientError({"Error": {"Code": "500", "Message": "boom"}}, "DeleteObject"),
        EndpointConnectionError(endpoint_url="http://127.0.0.1:9"),
    ],
)
def test_s3_delete_reports_failures_as_oserror(exc: Exception) -> None:
    provider = _provider(exc)
    with pytest.raises(OSError):
        provider.delete(location=S3ObjectLocation(bucket="archive-pmn-documents", key="a/b"))


def test_document_delete_survives_unreachable_s3(client: TestClient, make_account) -> None:
    admin = make_account("admin")
    doc = upload(client, admin.headers, filename="distant.txt")

    with sqlite3.connect(client.app.state.db_path) as conn:
        conn.execute(
            "UPDATE documents SET storage_provider = 's3' WHERE document_id = ?;",
            (doc["document_id"],),
        )
    manager = client.app.state.storage_manager
    manager._s3 = _provider(EndpointConnectionError(endpoint_url="http://127.0.0.1:9"))

    assert manager.delete(storage_provider="s3", storage_key="missing/key") is False

    r = client.delete(f"/v1/documents/{doc['document_id']}", headers=admin.headers)
    assert r.status_code == 200

    gone = client.get(f"/v1/documents/{doc['document_id']}", headers=admin.headers)
    assert gone.status_code == 404

    items = client.get("/v1/activity", headers=admin.headers).json()["data"]["items"]
    assert "delete" in [a["activity_type"] for a in items]
