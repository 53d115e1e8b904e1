"""User quota repository: the usage ledger's store. Returns application DTOs.

Every mutation runs in its own short transaction on a fresh session, so a
ledger increment commits independently of whatever metadata transaction
the caller has open.
"""

from __future__ import annotations

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cloudvault.application.dtos.quota import QuotaState
from cloudvault.domain.enums import Plan
from cloudvault.domain.exceptions import ResourceNotFoundException
from cloudvault.infrastructure.persistence.models.quota import UserQuota
from cloudvault.infrastructure.persistence.models.stored_file import StoredFile
from cloudvault.shared.utils.datetime import ensure_utc


def _quota_to_state(row: UserQuota) -> QuotaState:
    """Map ORM UserQuota to application QuotaState."""
    return QuotaState(
        user_id=row.user_id,
        storage_used_bytes=row.storage_used_bytes,
        storage_limit_bytes=row.storage_limit_bytes,
        active_plan=Plan.parse(row.active_plan),
        updated_at=ensure_utc(row.updated_at),
    )


class UserQuotaRepository:
    """Ledger store. increment_usage is a single UPDATE ... SET used = used + :delta."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def get_state(self, user_id: str) -> QuotaState | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(UserQuota).where(UserQuota.user_id == user_id)
            )
            row = result.scalar_one_or_none()
            return _quota_to_state(row) if row else None

    async def create_state(
        self, user_id: str, storage_limit_bytes: int, plan: Plan
    ) -> QuotaState:
        """Insert the quota row if absent (concurrent callers are safe); return current state."""
        async with self.session_factory() as session:
            async with session.begin():
                await session.execute(
                    insert(UserQuota)
                    .values(
                        user_id=user_id,
                        storage_used_bytes=0,
                        storage_limit_bytes=storage_limit_bytes,
                        active_plan=plan.value,
                    )
                    .on_conflict_do_nothing(index_elements=[UserQuota.user_id])
                )
                result = await session.execute(
                    select(UserQuota).where(UserQuota.user_id == user_id)
                )
                return _quota_to_state(result.scalar_one())

    async def increment_usage(self, user_id: str, delta: int) -> int:
        """Atomically add delta; return the new total. Raises ResourceNotFoundException if no row."""
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(UserQuota)
                    .where(UserQuota.user_id == user_id)
                    .values(storage_used_bytes=UserQuota.storage_used_bytes + delta)
                    .returning(UserQuota.storage_used_bytes)
                )
                new_total = result.scalar_one_or_none()
        if new_total is None:
            raise ResourceNotFoundException("user_quota", user_id)
        return new_total

    async def reconcile_usage(self, user_id: str) -> tuple[int, int] | None:
        """Set usage to the sum of the user's file records, clamped at 0.

        The quota row is locked for the whole transaction, so an increment
        either lands before the read of the previous value or after the
        write. Returns (previous, reconciled), or None if the user has no row.
        """
        actual = (
            select(func.coalesce(func.sum(StoredFile.size_bytes), 0))
            .where(StoredFile.user_id == user_id)
            .scalar_subquery()
        )
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    select(UserQuota.storage_used_bytes)
                    .where(UserQuota.user_id == user_id)
                    .with_for_update()
                )
                previous = result.scalar_one_or_none()
                if previous is None:
                    return None
                result = await session.execute(
                    update(UserQuota)
                    .where(UserQuota.user_id == user_id)
                    .values(storage_used_bytes=func.greatest(0, actual))
                    .returning(UserQuota.storage_used_bytes)
                )
                reconciled = result.scalar_one()
        return previous, reconciled

    async def set_limit(
        self, user_id: str, storage_limit_bytes: int, plan: Plan
    ) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(UserQuota)
                    .where(UserQuota.user_id == user_id)
                    .values(storage_limit_bytes=storage_limit_bytes, active_plan=plan.value)
                )

    async def list_user_ids(
        self, skip: int = 0, limit: int = 100, negative_only: bool = False
    ) -> list[str]:
        stmt = select(UserQuota.user_id).order_by(UserQuota.user_id)
        if negative_only:
            stmt = stmt.where(UserQuota.storage_used_bytes < 0)
        async with self.session_factory() as session:
            result = await session.execute(stmt.offset(skip).limit(limit))
            return list(result.scalars().all())
