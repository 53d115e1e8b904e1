"""File operations: upload (write), download (read), and removal, each with one responsibility."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING
from urllib.parse import quote

from cloudvault.application.dtos.storage import (
    AccessHandle,
    StoredFileCreate,
    UploadResult,
)
from cloudvault.application.interfaces.repositories import IStoredFileRepository
from cloudvault.application.interfaces.storage import IStorageBackend
from cloudvault.application.services.upload_admission import (
    UploadAdmissionController,
    UploadAttempt,
)
from cloudvault.domain.enums import UploadState
from cloudvault.domain.exceptions import (
    BackendMismatchException,
    CloudVaultException,
    OrphanedObjectException,
    ResourceNotFoundException,
    UploadTimeoutException,
    ValidationException,
)
from cloudvault.shared.telemetry.tracing import add_span_event, traced
from cloudvault.shared.utils.datetime import utc_now
from cloudvault.shared.utils.generators import generate_cuid

if TYPE_CHECKING:
    from cloudvault.application.services.access_issuer import SignedAccessIssuer
    from cloudvault.application.services.object_keys import ObjectKeyGenerator
    from cloudvault.application.services.usage_ledger import UsageLedger
    from cloudvault.shared.utils.streams import UploadSource

logger = logging.getLogger(__name__)


def content_type_allowed(content_type: str, allowed: list[str]) -> bool:
    """Return True if content_type matches an allowlist entry (exact, type/*, or */*)."""
    ctype = (content_type or "").split(";", 1)[0].strip().lower()
    if not ctype or "/" not in ctype:
        return False
    major = ctype.split("/", 1)[0]
    for pattern in allowed:
        if pattern in ("*/*", "*", ctype) or pattern == f"{major}/*":
            return True
    return False


def _ensure_backend(storage: IStorageBackend, backend: str) -> None:
    if backend != storage.kind:
        raise BackendMismatchException(backend, storage.kind)


async def _discard_object(storage: IStorageBackend, key: str) -> bool:
    """Best-effort delete used by compensation paths. Returns True when the object is gone."""
    try:
        await storage.delete(key)
    except CloudVaultException as e:
        logger.error("Failed to remove object %s during cleanup: %s", key, e.message)
        return False
    return True


class FileUploadService:
    """Single responsibility: admit an upload, stream it to storage, count it, record it.

    Ordering: backend write, then ledger increment, then metadata record.
    A failure before the ledger step deletes the object and leaves usage
    unchanged; a metadata failure deletes the object and reverses the
    increment, so the net ledger change is zero. The record is committed
    by the repository before accept_upload continues, so a failure after
    that point leaves record, object and usage in agreement.
    """

    def __init__(
        self,
        storage: IStorageBackend,
        admission: UploadAdmissionController,
        ledger: UsageLedger,
        key_generator: ObjectKeyGenerator,
        file_repo: IStoredFileRepository | None = None,
        access_issuer: SignedAccessIssuer | None = None,
        upload_timeout: float = 1800.0,
        allowed_mime_types: list[str] | None = None,
    ) -> None:
        self.storage = storage
        self.admission = admission
        self.ledger = ledger
        self.key_generator = key_generator
        self.file_repo = file_repo
        self.access_issuer = access_issuer
        self.upload_timeout = upload_timeout
        self.allowed_mime_types = allowed_mime_types or ["*/*"]

    def _object_metadata(
        self, user_id: str, original_name: str, extra: dict[str, str] | None
    ) -> dict[str, str]:
        meta = {str(k): str(v) for k, v in (extra or {}).items()}
        meta.update(
            {
                "user-id": user_id,
                "original-name": quote(original_name or "", safe=""),
                "uploaded-at": utc_now().isoformat(),
            }
        )
        return meta

    @traced("files.accept_upload")
    async def accept_upload(
        self,
        user_id: str,
        source: UploadSource,
        original_name: str,
        content_type: str,
        declared_size: int | None = None,
        metadata: dict[str, str] | None = None,
    ) -> UploadResult:
        """Store an upload for user_id and return where it landed.

        Raises:
            ValidationException: Content type not allowed or bad declared size.
            FileTooLargeException: Declared or streamed size above the plan's upload limit.
            StorageQuotaExceededException: Declared or streamed size above the remaining quota.
            BackendUnavailableError: The backend write failed or timed out.
        """
        if not content_type_allowed(content_type, self.allowed_mime_types):
            raise ValidationException(
                f"Content type '{content_type}' is not allowed", field="content_type"
            )
        attempt = UploadAttempt(user_id, declared_size)
        async with self.admission.user_lock(user_id):
            decision = await self.admission.admit(user_id, declared_size, attempt)
            key = self.key_generator.generate_key(user_id, original_name)
            attempt.transition(UploadState.STREAMING)

            try:
                put_result = await asyncio.wait_for(
                    self.storage.put(
                        self.admission.guard_stream(source, decision, attempt),
                        key,
                        content_type,
                        self._object_metadata(user_id, original_name, metadata),
                    ),
                    timeout=self.upload_timeout,
                )
                size = put_result.size_bytes
                await self.ledger.adjust(user_id, size)
            except BaseException as exc:
                attempt.abort()
                removed = await asyncio.shield(_discard_object(self.storage, key))
                logger.info(
                    "Upload of %s for user %s ended in %s (%s); partial object removed=%s",
                    key,
                    user_id,
                    attempt.state.value,
                    type(exc).__name__,
                    removed,
                )
                if isinstance(exc, TimeoutError):
                    raise UploadTimeoutException(self.upload_timeout) from exc
                raise
            attempt.transition(UploadState.COMPLETED)

        record_id: str | None = None
        if self.file_repo is not None:
            record_id = await self._record_file(
                user_id, key, original_name, content_type, put_result.size_bytes,
                put_result.etag, put_result.version_id,
            )

        url: str | None = None
        if self.access_issuer is not None:
            handle = await self.access_issuer.issue_download(key, self.storage.kind)
            url = handle.url

        logger.info(
            "Stored %s for user %s (%s bytes, %s)", key, user_id, size, self.storage.kind
        )
        return UploadResult(
            key=key,
            backend=self.storage.kind,
            size_bytes=size,
            content_type=content_type,
            url=url,
            etag=put_result.etag,
            file_id=record_id,
        )

    async def _record_file(
        self,
        user_id: str,
        key: str,
        original_name: str,
        content_type: str,
        size: int,
        etag: str | None,
        version_id: str | None,
    ) -> str:
        """Write the metadata record; on failure remove the object and reverse the ledger."""
        try:
            record = await self.file_repo.create_file_record(
                StoredFileCreate(
                    id=generate_cuid(),
                    user_id=user_id,
                    key=key,
                    backend=self.storage.kind,
                    original_name=original_name,
                    content_type=content_type,
                    size_bytes=size,
                    etag=etag,
                    version_id=version_id,
                )
            )
        except BaseException:
            removed = await asyncio.shield(_discard_object(self.storage, key))
            await asyncio.shield(self.ledger.adjust(user_id, -size))
            orphan = OrphanedObjectException(key, self.storage.kind, cleaned_up=removed)
            logger.error("Metadata write failed for %s: %s", key, orphan.message)
            add_span_event("orphaned_object", {"key": key, "cleaned_up": removed})
            raise
        return record.id


class FileDownloadService:
    """Single responsibility: issue download handles and open object streams."""

    def __init__(
        self,
        storage: IStorageBackend,
        access_issuer: SignedAccessIssuer,
    ) -> None:
        self.storage = storage
        self.access_issuer = access_issuer

    @traced("files.request_download")
    async def request_download(
        self,
        key: str,
        backend: str,
        ttl_seconds: int | None = None,
        anonymous: bool = False,
    ) -> AccessHandle:
        """Return a time-limited handle for key.

        Raises:
            ResourceNotFoundException: No object under key.
            BackendMismatchException: backend differs from the configured backend.
        """
        _ensure_backend(self.storage, backend)
        stat = await self.storage.stat(key)
        if not stat.exists:
            raise ResourceNotFoundException("stored_object", key)
        return await self.access_issuer.issue_download(
            key, backend, ttl_seconds=ttl_seconds, anonymous=anonymous
        )

    def open_stream(self, key: str, backend: str) -> AsyncIterator[bytes]:
        """Return the object's byte stream (raises not-found on first iteration)."""
        _ensure_backend(self.storage, backend)
        return self.storage.get_stream(key)


class FileRemovalService:
    """Single responsibility: remove objects and keep the ledger paired with deletions."""

    def __init__(
        self,
        storage: IStorageBackend,
        ledger: UsageLedger,
        file_repo: IStoredFileRepository | None = None,
    ) -> None:
        self.storage = storage
        self.ledger = ledger
        self.file_repo = file_repo

    @traced("files.remove_object")
    async def remove_object(self, key: str, backend: str) -> None:
        """Delete the object behind key. Deleting an absent object succeeds."""
        _ensure_backend(self.storage, backend)
        await self.storage.delete(key)

    async def on_file_record_deleted(
        self, user_id: str, key: str, backend: str, size_bytes: int
    ) -> int:
        """Remove the object of a deleted record and release its bytes; return new usage.

        The ledger is decremented even when object removal fails, since the
        record (which reconciliation sums) is already gone.
        """
        try:
            await self.remove_object(key, backend)
        finally:
            new_total = await self.ledger.adjust(user_id, -size_bytes)
        return new_total

    async def delete_file(self, user_id: str, key: str) -> int:
        """Delete user_id's file record for key, then its object and usage.

        The record deletion is committed first. If it fails, the object and
        the ledger are untouched.

        Raises:
            ResourceNotFoundException: No record for key owned by user_id.
        """
        if self.file_repo is None:
            raise RuntimeError("delete_file requires a file repository")
        record = await self.file_repo.get_by_key(key)
        if record is None or record.user_id != user_id:
            raise ResourceNotFoundException("stored_file", key)
        if not await self.file_repo.delete_by_key(key):
            # Removed concurrently; that caller releases the bytes.
            raise ResourceNotFoundException("stored_file", key)
        return await self.on_file_record_deleted(
            user_id, record.key, record.backend, record.size_bytes
        )
