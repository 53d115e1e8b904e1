"""Stored file repository. Returns application DTOs.

Each write commits in its own transaction before returning, so callers can
order irreversible storage and ledger effects after a durable record change.
"""

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cloudvault.application.dtos.storage import StoredFileCreate, StoredFileResult
from cloudvault.infrastructure.persistence.models.stored_file import StoredFile
from cloudvault.shared.utils.datetime import ensure_utc


def _create_to_stored_file(d: StoredFileCreate) -> StoredFile:
    """Map StoredFileCreate (write-model) to ORM StoredFile for persistence."""
    return StoredFile(
        id=d.id,
        user_id=d.user_id,
        key=d.key,
        backend=d.backend,
        original_name=d.original_name,
        content_type=d.content_type,
        size_bytes=d.size_bytes,
        etag=d.etag,
        version_id=d.version_id,
    )


def _stored_file_to_result(f: StoredFile) -> StoredFileResult:
    """Map ORM StoredFile to application StoredFileResult."""
    return StoredFileResult(
        id=f.id,
        user_id=f.user_id,
        key=f.key,
        backend=f.backend,
        original_name=f.original_name,
        content_type=f.content_type,
        size_bytes=f.size_bytes,
        etag=f.etag,
        version_id=f.version_id,
        created_at=ensure_utc(f.created_at),
    )


class StoredFileRepository:
    """File metadata records. create and delete are committed when they return."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def create_file_record(self, data: StoredFileCreate) -> StoredFileResult:
        obj = _create_to_stored_file(data)
        async with self.session_factory() as session:
            async with session.begin():
                session.add(obj)
                await session.flush()
                await session.refresh(obj)
        return _stored_file_to_result(obj)

    async def get_by_key(self, key: str) -> StoredFileResult | None:
        async with self.session_factory() as session:
            result = await session.execute(select(StoredFile).where(StoredFile.key == key))
            row = result.scalar_one_or_none()
            return _stored_file_to_result(row) if row else None

    async def delete_by_key(self, key: str) -> bool:
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(StoredFile).where(StoredFile.key == key)
                )
        return (result.rowcount or 0) > 0
