"""S3-compatible object storage (AWS S3, Backblaze B2, Cloudflare R2, MinIO)."""

from __future__ import annotations

import asyncio
import logging
import tempfile
from collections.abc import AsyncIterator, Callable
from typing import Any, TypeVar

import boto3
from boto3.s3.transfer import TransferConfig
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from cloudvault.application.dtos.storage import ObjectListItem, ObjectStat, PutResult
from cloudvault.domain.enums import StorageBackendKind
from cloudvault.infrastructure.exceptions import (
    BackendUnavailableError,
    StorageNotFoundError,
    StoragePermissionError,
)
from cloudvault.shared.utils.datetime import ensure_utc
from cloudvault.shared.utils.retry import retry_async
from cloudvault.shared.utils.streams import UploadSource, iter_source

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Provider endpoint defaults; None means the SDK's regional AWS endpoint.
PROVIDER_ENDPOINTS: dict[str, str | None] = {
    "aws": None,
    "b2": "https://s3.us-west-002.backblazeb2.com",
    "r2": None,
    "minio": "http://localhost:9000",
}
PATH_STYLE_PROVIDERS = frozenset({"b2", "r2", "minio"})

_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})
_DENIED_CODES = frozenset({"403", "AccessDenied", "Forbidden"})

# Objects above this size are spooled to disk rather than memory before upload.
SPOOL_MAX_MEMORY = 8 * 1024 * 1024
MULTIPART_THRESHOLD = 64 * 1024 * 1024
MULTIPART_CHUNK_SIZE = 16 * 1024 * 1024


class S3StorageBackend:
    """S3-compatible storage with server-side encryption and presigned URLs.

    Uses boto3 (sync) via asyncio.to_thread for the async API. Uploads are
    spooled while the source is consumed so the stream guard can cut a
    transfer off before anything reaches the bucket. Spooled uploads at or
    above multipart_threshold go through the managed multipart transfer;
    smaller ones are a single put_object. Reads that only touch
    object metadata (stat, presign) are retried with backoff; writes and
    deletes surface the first failure.
    """

    kind = StorageBackendKind.REMOTE.value

    def __init__(
        self,
        bucket: str,
        region: str = "us-east-1",
        provider: str = "aws",
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        force_path_style: bool | None = None,
        server_side_encryption: str | None = "AES256",
        chunk_size: int = 1024 * 1024,
        read_retry_attempts: int = 3,
        read_retry_delay: float = 0.1,
        multipart_threshold: int = MULTIPART_THRESHOLD,
        multipart_chunk_size: int = MULTIPART_CHUNK_SIZE,
        client: Any | None = None,
    ) -> None:
        """Initialize S3 client.

        Args:
            bucket: Bucket name.
            region: Bucket region.
            provider: One of aws, b2, r2, minio (selects endpoint and addressing defaults).
            endpoint_url: Custom endpoint; overrides the provider default.
            access_key: Optional; uses env/IAM if not set.
            secret_key: Optional.
            force_path_style: Path-style addressing; None = provider default.
            server_side_encryption: SSE algorithm for uploads and copies, or None to omit.
            chunk_size: Chunk size for streaming reads.
            read_retry_attempts: Total tries for stat/presign.
            read_retry_delay: Base backoff delay in seconds.
            multipart_threshold: Upload size at which multipart transfer is used.
            multipart_chunk_size: Part size for multipart uploads.
            client: Pre-built boto3 client (tests).
        """
        self.bucket = bucket
        self.region = region
        self.provider = provider
        self.endpoint_url = endpoint_url or PROVIDER_ENDPOINTS.get(provider)
        self.server_side_encryption = server_side_encryption
        self.chunk_size = chunk_size
        self.read_retry_attempts = read_retry_attempts
        self.read_retry_delay = read_retry_delay
        self.multipart_threshold = multipart_threshold
        self.transfer_config = TransferConfig(
            multipart_threshold=multipart_threshold,
            multipart_chunksize=multipart_chunk_size,
        )
        path_style = (
            force_path_style
            if force_path_style is not None
            else provider in PATH_STYLE_PROVIDERS
        )
        if client is not None:
            self._client = client
        else:
            extra = {} if self.endpoint_url is None else {"endpoint_url": self.endpoint_url}
            self._client = boto3.client(
                "s3",
                region_name=region,
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                config=Config(
                    signature_version="s3v4",
                    s3={"addressing_style": "path" if path_style else "auto"},
                    retries={"max_attempts": 1, "mode": "standard"},
                ),
                **extra,
            )

    def _normalize(self, operation: str, key: str, exc: Exception) -> Exception:
        """Map botocore errors to the storage exception taxonomy."""
        if isinstance(exc, ClientError):
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in _NOT_FOUND_CODES:
                return StorageNotFoundError(key)
            if code in _DENIED_CODES:
                return StoragePermissionError(key, operation)
            reason = code or str(exc)
        else:
            reason = type(exc).__name__
        logger.warning(
            "S3 %s failed for bucket=%s key=%s: %s", operation, self.bucket, key, reason
        )
        return BackendUnavailableError(operation, self.kind, reason)

    async def _call(self, operation: str, key: str, fn: Callable[[], T]) -> T:
        """Run a blocking client call in a thread with normalized errors."""
        try:
            return await asyncio.to_thread(fn)
        except (ClientError, BotoCoreError) as e:
            raise self._normalize(operation, key, e) from e

    async def _read(self, operation: str, key: str, fn: Callable[[], T]) -> T:
        """Like _call, with retries on BackendUnavailableError."""
        return await retry_async(
            lambda: self._call(operation, key, fn),
            retry_on=(BackendUnavailableError,),
            attempts=self.read_retry_attempts,
            base_delay=self.read_retry_delay,
            description=f"S3 {operation} {key}",
        )

    async def put(
        self,
        source: UploadSource,
        key: str,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> PutResult:
        """Upload source under key with server-side encryption. Overwrites an existing object."""
        extra_args: dict[str, Any] = {
            "ContentType": content_type,
            "Metadata": {
                k.lower().replace("_", "-"): str(v) for k, v in (metadata or {}).items()
            },
        }
        if self.server_side_encryption:
            extra_args["ServerSideEncryption"] = self.server_side_encryption
        with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_MEMORY) as spool:
            size = 0
            async for chunk in iter_source(source, self.chunk_size):
                await asyncio.to_thread(spool.write, chunk)
                size += len(chunk)
            spool.seek(0)
            if size < self.multipart_threshold:
                resp = await self._call(
                    "put",
                    key,
                    lambda: self._client.put_object(
                        Bucket=self.bucket,
                        Key=key,
                        Body=spool,
                        ContentLength=size,
                        **extra_args,
                    ),
                )
            else:
                await self._call(
                    "put",
                    key,
                    lambda: self._client.upload_fileobj(
                        spool,
                        self.bucket,
                        key,
                        ExtraArgs=extra_args,
                        Config=self.transfer_config,
                    ),
                )
                # upload_fileobj returns nothing; read back the ETag and version.
                resp = await self._read(
                    "put",
                    key,
                    lambda: self._client.head_object(Bucket=self.bucket, Key=key),
                )
        etag = resp.get("ETag")
        return PutResult(
            key=key,
            location_hint=f"s3://{self.bucket}/{key}",
            size_bytes=size,
            etag=etag.strip('"') if etag else None,
            version_id=resp.get("VersionId"),
        )

    async def get_stream(self, key: str) -> AsyncIterator[bytes]:
        """Stream object content in chunks. Raises StorageNotFoundError if key is absent."""
        resp = await self._call(
            "get_stream",
            key,
            lambda: self._client.get_object(Bucket=self.bucket, Key=key),
        )
        body = resp["Body"]
        try:
            while True:
                chunk = await self._call(
                    "get_stream", key, lambda: body.read(self.chunk_size)
                )
                if not chunk:
                    break
                yield chunk
        finally:
            body.close()

    async def delete(self, key: str) -> None:
        """Delete object. S3 delete is idempotent; a missing key is not an error."""
        try:
            await self._call(
                "delete",
                key,
                lambda: self._client.delete_object(Bucket=self.bucket, Key=key),
            )
        except StorageNotFoundError:
            return

    async def stat(self, key: str) -> ObjectStat:
        """Return object metadata; exists=False when absent."""
        try:
            head = await self._read(
                "stat",
                key,
                lambda: self._client.head_object(Bucket=self.bucket, Key=key),
            )
        except StorageNotFoundError:
            return ObjectStat(exists=False)
        etag = head.get("ETag")
        return ObjectStat(
            exists=True,
            size_bytes=int(head.get("ContentLength", 0)),
            last_modified=ensure_utc(head.get("LastModified")),
            content_type=head.get("ContentType"),
            etag=etag.strip('"') if etag else None,
            metadata=dict(head.get("Metadata") or {}),
        )

    async def copy(self, source_key: str, dest_key: str) -> None:
        """Server-side copy within the bucket, preserving encryption."""
        params: dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": dest_key,
            "CopySource": {"Bucket": self.bucket, "Key": source_key},
        }
        if self.server_side_encryption:
            params["ServerSideEncryption"] = self.server_side_encryption
        await self._call("copy", source_key, lambda: self._client.copy_object(**params))

    async def list(self, prefix: str, limit: int = 1000) -> list[ObjectListItem]:
        """Return up to limit objects under prefix (paginated with continuation tokens)."""
        items: list[ObjectListItem] = []
        token: str | None = None
        while len(items) < limit:
            params: dict[str, Any] = {
                "Bucket": self.bucket,
                "Prefix": prefix,
                "MaxKeys": min(1000, limit - len(items)),
            }
            if token:
                params["ContinuationToken"] = token
            page = await self._call(
                "list", prefix, lambda: self._client.list_objects_v2(**params)
            )
            for obj in page.get("Contents", []):
                items.append(
                    ObjectListItem(
                        key=obj["Key"],
                        size_bytes=int(obj.get("Size", 0)),
                        last_modified=ensure_utc(obj.get("LastModified")),
                    )
                )
            if not page.get("IsTruncated"):
                break
            token = page.get("NextContinuationToken")
        return items[:limit]

    async def get_signed_url(self, key: str, ttl_seconds: int) -> str:
        """Return a presigned GET URL valid for ttl_seconds."""
        return await self._read(
            "get_signed_url",
            key,
            lambda: self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=ttl_seconds,
            ),
        )
