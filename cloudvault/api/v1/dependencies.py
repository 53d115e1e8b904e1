"""Presentation-layer dependency injection (composition root).

Provides FastAPI Depends() for the storage backend and the file use
cases. Everything is built from infrastructure implementations here;
routes depend only on these providers. The storage backend is the one
owned by the application lifespan (app.state.storage).
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from cloudvault.application.interfaces.storage import IStorageBackend
from cloudvault.application.services import (
    ObjectKeyGenerator,
    QuotaPolicy,
    SignedAccessIssuer,
    UploadAdmissionController,
    UsageLedger,
)
from cloudvault.application.services.upload_admission import UserLockRegistry
from cloudvault.application.use_cases.files import (
    FileDownloadService,
    FileRemovalService,
    FileUploadService,
)
from cloudvault.core.config import Settings, get_settings
from cloudvault.infrastructure.external.storage import StorageFactory
from cloudvault.infrastructure.persistence.database import (
    get_db,
    get_session_factory,
)
from cloudvault.infrastructure.persistence.repositories import (
    LedgerDriftRepository,
    StoredFileRepository,
    SubscriptionRepository,
    UserQuotaRepository,
)


def get_storage_backend(request: Request) -> IStorageBackend:
    """Return the lifespan-owned storage backend (built on first use if the lifespan did not run)."""
    storage = getattr(request.app.state, "storage", None)
    if storage is None:
        storage = StorageFactory.create_storage_backend(get_settings())
        request.app.state.storage = storage
    return storage


def get_access_issuer(
    storage: Annotated[IStorageBackend, Depends(get_storage_backend)],
) -> SignedAccessIssuer:
    settings = get_settings()
    return SignedAccessIssuer(
        storage,
        owner_ttl_seconds=settings.owner_download_ttl_seconds,
        shared_ttl_seconds=settings.shared_download_ttl_seconds,
        max_ttl_seconds=settings.max_download_ttl_seconds,
    )


def build_quota_policy(db: AsyncSession, settings: Settings) -> QuotaPolicy:
    """Build QuotaPolicy over the given session (subscription reads) and the ledger store."""
    return QuotaPolicy(
        plan_limits=settings.get_plan_limits(),
        subscription_repo=SubscriptionRepository(db),
        quota_repo=UserQuotaRepository(get_session_factory()),
        lookup_timeout=settings.quota_lookup_timeout_seconds,
    )


def build_usage_ledger(settings: Settings) -> UsageLedger:
    """Build UsageLedger; counters and drift records commit in their own transactions."""
    session_factory = get_session_factory()
    return UsageLedger(
        quota_repo=UserQuotaRepository(session_factory),
        drift_repo=LedgerDriftRepository(session_factory),
        drift_alert_bytes=settings.ledger_drift_alert_bytes,
    )


async def get_quota_policy(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> QuotaPolicy:
    return build_quota_policy(db, get_settings())


async def get_file_upload_service(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    storage: Annotated[IStorageBackend, Depends(get_storage_backend)],
    access_issuer: Annotated[SignedAccessIssuer, Depends(get_access_issuer)],
) -> FileUploadService:
    """Build FileUploadService. The metadata record commits before the service returns."""
    settings = get_settings()
    locks = getattr(request.app.state, "upload_locks", None)
    if locks is None:
        # Shared across requests so strict-mode per-user locks serialize concurrent uploads.
        locks = UserLockRegistry()
        request.app.state.upload_locks = locks
    admission = UploadAdmissionController(
        build_quota_policy(db, settings),
        strict=settings.strict_quota_admission,
        chunk_size=settings.upload_chunk_size,
        locks=locks,
    )
    return FileUploadService(
        storage=storage,
        admission=admission,
        ledger=build_usage_ledger(settings),
        key_generator=ObjectKeyGenerator(),
        file_repo=StoredFileRepository(get_session_factory()),
        access_issuer=access_issuer,
        upload_timeout=settings.upload_timeout_seconds,
        allowed_mime_types=settings.get_allowed_mime_types(),
    )


async def get_file_download_service(
    storage: Annotated[IStorageBackend, Depends(get_storage_backend)],
    access_issuer: Annotated[SignedAccessIssuer, Depends(get_access_issuer)],
) -> FileDownloadService:
    return FileDownloadService(storage, access_issuer)


async def get_file_removal_service(
    storage: Annotated[IStorageBackend, Depends(get_storage_backend)],
) -> FileRemovalService:
    """Build FileRemovalService. Record deletion commits before the object is removed."""
    return FileRemovalService(
        storage,
        build_usage_ledger(get_settings()),
        file_repo=StoredFileRepository(get_session_factory()),
    )
