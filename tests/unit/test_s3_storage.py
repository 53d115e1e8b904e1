"""Tests for S3StorageBackend using botocore's Stubber (no network)."""

import io
from datetime import UTC, datetime, timedelta
from urllib.parse import parse_qs, urlparse

import pytest
from botocore.response import StreamingBody
from botocore.stub import ANY, Stubber

from cloudvault.infrastructure.exceptions import (
    BackendUnavailableError,
    StorageNotFoundError,
    StoragePermissionError,
)
from cloudvault.infrastructure.external.storage.s3_storage import S3StorageBackend

BUCKET = "cloudvault-test"
KEY = "users/u1/1700000000000-abcd1234-report.pdf"


def presigned_url_expired(url: str, now: datetime) -> bool:
    """True once now is at or past X-Amz-Date + X-Amz-Expires."""
    query = parse_qs(urlparse(url).query)
    signed_at = datetime.strptime(query["X-Amz-Date"][0], "%Y%m%dT%H%M%SZ").replace(tzinfo=UTC)
    return now >= signed_at + timedelta(seconds=int(query["X-Amz-Expires"][0]))


@pytest.fixture
def backend() -> S3StorageBackend:
    return S3StorageBackend(
        bucket=BUCKET,
        region="us-east-1",
        access_key="testing",
        secret_key="testing",
        chunk_size=4,
        read_retry_delay=0,
    )


@pytest.fixture
def stubber(backend):
    with Stubber(backend._client) as stub:
        yield stub
        stub.assert_no_pending_responses()


async def test_put_sends_encryption_and_metadata(backend, stubber) -> None:
    stubber.add_response(
        "put_object",
        {"ETag": '"5d41402abc4b2a76b9719d911017c592"', "VersionId": "v1"},
        {
            "Bucket": BUCKET,
            "Key": KEY,
            "Body": ANY,
            "ContentType": "application/pdf",
            "ContentLength": 5,
            "Metadata": {"user-id": "u1"},
            "ServerSideEncryption": "AES256",
        },
    )
    result = await backend.put(b"hello", KEY, "application/pdf", {"user_id": "u1"})
    assert result.size_bytes == 5
    assert result.etag == "5d41402abc4b2a76b9719d911017c592"
    assert result.version_id == "v1"
    assert result.location_hint == f"s3://{BUCKET}/{KEY}"


async def _uneven_chunks(payload: bytes):
    for start, end in ((0, 3), (3, 11), (11, 12), (12, len(payload))):
        yield payload[start:end]


async def test_put_then_get_returns_identical_bytes(backend, stubber) -> None:
    payload = bytes(range(23)) * 3
    sent: list[bytes] = []

    def capture_body(params, **kwargs):
        sent.append(params["Body"].read())
        params["Body"].seek(0)

    backend._client.meta.events.register("before-parameter-build.s3.PutObject", capture_body)
    stubber.add_response(
        "put_object",
        {"ETag": '"e1"'},
        {
            "Bucket": BUCKET,
            "Key": KEY,
            "Body": ANY,
            "ContentType": "application/octet-stream",
            "ContentLength": len(payload),
            "Metadata": {},
            "ServerSideEncryption": "AES256",
        },
    )
    result = await backend.put(_uneven_chunks(payload), KEY, "application/octet-stream")
    assert result.size_bytes == len(payload)
    assert sent == [payload]

    stubber.add_response(
        "get_object",
        {"Body": StreamingBody(io.BytesIO(sent[0]), len(sent[0]))},
        {"Bucket": BUCKET, "Key": KEY},
    )
    chunks = [chunk async for chunk in backend.get_stream(KEY)]
    assert len(chunks) == len(payload) // backend.chunk_size + 1
    assert b"".join(chunks) == payload


class RecordingTransferClient:
    """Stands in for the boto3 client on the multipart path."""

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.transfers: list[dict] = []

    def upload_fileobj(self, fileobj, bucket, key, ExtraArgs=None, Config=None):
        self.objects[key] = fileobj.read()
        self.transfers.append({"bucket": bucket, "extra_args": ExtraArgs, "config": Config})

    def put_object(self, **params):
        raise AssertionError("single PUT used above the multipart threshold")

    def head_object(self, Bucket, Key):
        return {"ETag": '"abc-3"', "VersionId": "v7", "ContentLength": len(self.objects[Key])}


async def test_large_upload_uses_multipart_transfer() -> None:
    client = RecordingTransferClient()
    backend = S3StorageBackend(
        bucket=BUCKET,
        chunk_size=4,
        multipart_threshold=16,
        multipart_chunk_size=8,
        client=client,
    )
    payload = b"0123456789abcdefghij"
    result = await backend.put(_uneven_chunks(payload), KEY, "application/pdf", {"user_id": "u1"})

    assert client.objects[KEY] == payload
    [transfer] = client.transfers
    assert transfer["bucket"] == BUCKET
    assert transfer["extra_args"] == {
        "ContentType": "application/pdf",
        "Metadata": {"user-id": "u1"},
        "ServerSideEncryption": "AES256",
    }
    assert transfer["config"].multipart_threshold == 16
    assert transfer["config"].multipart_chunksize == 8
    assert result.size_bytes == len(payload)
    assert result.etag == "abc-3"
    assert result.version_id == "v7"


async def test_get_stream_reads_in_chunks(backend, stubber) -> None:
    data = b"0123456789"
    stubber.add_response(
        "get_object",
        {"Body": StreamingBody(io.BytesIO(data), len(data))},
        {"Bucket": BUCKET, "Key": KEY},
    )
    chunks = [chunk async for chunk in backend.get_stream(KEY)]
    assert chunks == [b"0123", b"4567", b"89"]


async def test_get_missing_raises_not_found(backend, stubber) -> None:
    stubber.add_client_error("get_object", service_error_code="NoSuchKey", http_status_code=404)
    with pytest.raises(StorageNotFoundError):
        async for _ in backend.get_stream(KEY):
            pass


async def test_stat_absent_object(backend, stubber) -> None:
    stubber.add_client_error("head_object", service_error_code="404", http_status_code=404)
    stat = await backend.stat(KEY)
    assert stat.exists is False


async def test_stat_retries_transient_errors(backend, stubber) -> None:
    stubber.add_client_error("head_object", service_error_code="InternalError", http_status_code=500)
    stubber.add_client_error("head_object", service_error_code="SlowDown", http_status_code=503)
    stubber.add_response(
        "head_object",
        {
            "ContentLength": 5,
            "ContentType": "application/pdf",
            "ETag": '"abc"',
            "LastModified": datetime(2026, 1, 1, tzinfo=UTC),
            "Metadata": {"user-id": "u1"},
        },
        {"Bucket": BUCKET, "Key": KEY},
    )
    stat = await backend.stat(KEY)
    assert stat.exists is True
    assert stat.size_bytes == 5
    assert stat.etag == "abc"
    assert stat.metadata == {"user-id": "u1"}


async def test_stat_gives_up_after_retry_budget(backend, stubber) -> None:
    for _ in range(3):
        stubber.add_client_error(
            "head_object", service_error_code="InternalError", http_status_code=500
        )
    with pytest.raises(BackendUnavailableError) as exc_info:
        await backend.stat(KEY)
    assert exc_info.value.reason == "InternalError"
    assert "InternalError" not in exc_info.value.message


async def test_put_access_denied(backend, stubber) -> None:
    stubber.add_client_error("put_object", service_error_code="AccessDenied", http_status_code=403)
    with pytest.raises(StoragePermissionError):
        await backend.put(b"x", KEY, "text/plain")


async def test_put_is_not_retried(backend, stubber) -> None:
    stubber.add_client_error("put_object", service_error_code="InternalError", http_status_code=500)
    with pytest.raises(BackendUnavailableError):
        await backend.put(b"x", KEY, "text/plain")


async def test_delete_missing_is_not_an_error(backend, stubber) -> None:
    stubber.add_response("delete_object", {}, {"Bucket": BUCKET, "Key": KEY})
    stubber.add_client_error("delete_object", service_error_code="NoSuchKey", http_status_code=404)
    await backend.delete(KEY)
    await backend.delete(KEY)


async def test_copy_preserves_encryption(backend, stubber) -> None:
    dest = "users/u1/1700000000001-abcd1234-copy.pdf"
    stubber.add_response(
        "copy_object",
        {},
        {
            "Bucket": BUCKET,
            "Key": dest,
            "CopySource": {"Bucket": BUCKET, "Key": KEY},
            "ServerSideEncryption": "AES256",
        },
    )
    await backend.copy(KEY, dest)


async def test_list_follows_continuation(backend, stubber) -> None:
    modified = datetime(2026, 1, 1, tzinfo=UTC)
    stubber.add_response(
        "list_objects_v2",
        {
            "Contents": [{"Key": "users/u1/a", "Size": 1, "LastModified": modified}],
            "IsTruncated": True,
            "NextContinuationToken": "t1",
        },
        {"Bucket": BUCKET, "Prefix": "users/u1/", "MaxKeys": 10},
    )
    stubber.add_response(
        "list_objects_v2",
        {
            "Contents": [{"Key": "users/u1/b", "Size": 2, "LastModified": modified}],
            "IsTruncated": False,
        },
        {"Bucket": BUCKET, "Prefix": "users/u1/", "MaxKeys": 9, "ContinuationToken": "t1"},
    )
    items = await backend.list("users/u1/", limit=10)
    assert [(i.key, i.size_bytes) for i in items] == [("users/u1/a", 1), ("users/u1/b", 2)]


async def test_presigned_url_expires_after_ttl(backend) -> None:
    url = await backend.get_signed_url(KEY, 300)
    query = parse_qs(urlparse(url).query)
    assert query["X-Amz-Expires"] == ["300"]
    assert KEY in urlparse(url).path

    signed_at = datetime.strptime(query["X-Amz-Date"][0], "%Y%m%dT%H%M%SZ").replace(tzinfo=UTC)
    assert not presigned_url_expired(url, signed_at + timedelta(seconds=299))
    assert presigned_url_expired(url, signed_at + timedelta(seconds=301))


def test_provider_defaults() -> None:
    minio = S3StorageBackend(bucket=BUCKET, provider="minio", access_key="a", secret_key="b")
    assert minio.endpoint_url == "http://localhost:9000"
    custom = S3StorageBackend(
        bucket=BUCKET, provider="r2", endpoint_url="https://acct.r2.cloudflarestorage.com",
        access_key="a", secret_key="b",
    )
    assert custom.endpoint_url == "https://acct.r2.cloudflarestorage.com"
