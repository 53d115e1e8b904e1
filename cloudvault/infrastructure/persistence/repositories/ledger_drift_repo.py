"""Ledger drift repository: persists reconciliation corrections in their own transaction."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cloudvault.application.dtos.quota import LedgerDriftRecord
from cloudvault.infrastructure.persistence.models.quota import LedgerDrift
from cloudvault.shared.utils.datetime import ensure_utc
from cloudvault.shared.utils.generators import generate_cuid


class LedgerDriftRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def record(
        self, user_id: str, previous_bytes: int, reconciled_bytes: int
    ) -> LedgerDriftRecord:
        obj = LedgerDrift(
            id=generate_cuid(),
            user_id=user_id,
            previous_bytes=previous_bytes,
            reconciled_bytes=reconciled_bytes,
            drift_bytes=previous_bytes - reconciled_bytes,
        )
        async with self.session_factory() as session:
            async with session.begin():
                session.add(obj)
                await session.flush()
                await session.refresh(obj)
        return LedgerDriftRecord(
            id=obj.id,
            user_id=obj.user_id,
            previous_bytes=obj.previous_bytes,
            reconciled_bytes=obj.reconciled_bytes,
            drift_bytes=obj.drift_bytes,
            created_at=ensure_utc(obj.created_at),
        )
