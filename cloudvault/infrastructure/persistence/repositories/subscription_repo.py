"""Subscription repository (read side for quota resolution)."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cloudvault.application.dtos.quota import SubscriptionRecord
from cloudvault.infrastructure.persistence.models.quota import Subscription


class SubscriptionRepository:
    """Reads the current subscription for a user. No caching: every call hits the store."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_by_user(self, user_id: str) -> SubscriptionRecord | None:
        result = await self.db.execute(
            select(Subscription).where(Subscription.user_id == user_id)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return SubscriptionRecord(user_id=row.user_id, plan=row.plan, status=row.status)
