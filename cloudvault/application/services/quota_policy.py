"""Quota policy: maps plans to limits and resolves a user's effective limits."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from cloudvault.application.dtos.quota import QuotaState, UsageSummary
from cloudvault.application.interfaces.repositories import (
    ISubscriptionRepository,
    IUserQuotaRepository,
)
from cloudvault.domain.enums import Plan, SubscriptionStatus
from cloudvault.domain.exceptions import QuotaStateUnavailableException
from cloudvault.domain.value_objects import PlanLimits, ResolvedLimits
from cloudvault.shared.telemetry.tracing import traced
from cloudvault.shared.utils.bytes import format_bytes

logger = logging.getLogger(__name__)

T = TypeVar("T")


class QuotaPolicy:
    """Resolves limits from the user's subscription on every call (no cross-request cache).

    Only an 'active' subscription selects its plan; every other status, a
    missing subscription, or an unknown plan code resolves to FREE.
    """

    def __init__(
        self,
        plan_limits: dict[Plan, PlanLimits],
        subscription_repo: ISubscriptionRepository,
        quota_repo: IUserQuotaRepository,
        lookup_timeout: float = 5.0,
    ) -> None:
        missing = [p.value for p in Plan if p not in plan_limits]
        if missing:
            raise ValueError(f"Plan table is missing: {', '.join(missing)}")
        self.plan_limits = plan_limits
        self.subscription_repo = subscription_repo
        self.quota_repo = quota_repo
        self.lookup_timeout = lookup_timeout

    def limits_for_plan(self, plan: Plan | str | None) -> PlanLimits:
        """Return limits for plan; unknown codes get FREE limits."""
        resolved = plan if isinstance(plan, Plan) else Plan.parse(plan)
        return self.plan_limits[resolved]

    async def _lookup(self, user_id: str, awaitable: Awaitable[T]) -> T:
        """Await a metadata lookup under the short lookup budget."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.lookup_timeout)
        except TimeoutError as e:
            logger.warning(
                "Quota lookup for user %s exceeded %.1fs", user_id, self.lookup_timeout
            )
            raise QuotaStateUnavailableException(user_id) from e

    async def resolve_plan(self, user_id: str) -> Plan:
        subscription = await self._lookup(
            user_id, self.subscription_repo.get_by_user(user_id)
        )
        if subscription is None or not SubscriptionStatus.is_active(subscription.status):
            return Plan.FREE
        plan = Plan.parse(subscription.plan)
        if plan.value != (subscription.plan or "").strip().upper():
            logger.warning(
                "Unknown plan code %r for user %s; using FREE", subscription.plan, user_id
            )
        return plan

    @traced("quota.resolve_limits")
    async def resolve_limits(self, user_id: str) -> ResolvedLimits:
        """Return the user's current storage and upload limits."""
        plan = await self.resolve_plan(user_id)
        limits = self.limits_for_plan(plan)
        return ResolvedLimits(
            plan=plan,
            storage_limit_bytes=limits.total_storage_bytes,
            max_upload_bytes=limits.max_upload_bytes,
        )

    async def ensure_quota_state(self, user_id: str) -> QuotaState:
        """Return the user's quota state, creating it with FREE defaults on first use."""
        state = await self._lookup(user_id, self.quota_repo.get_state(user_id))
        if state is not None:
            return state
        free = self.limits_for_plan(Plan.FREE)
        logger.info("Creating quota state for user %s", user_id)
        return await self._lookup(
            user_id,
            self.quota_repo.create_state(user_id, free.total_storage_bytes, Plan.FREE),
        )

    @traced("quota.sync_plan_limits")
    async def sync_plan_limits(
        self, user_id: str, limits: ResolvedLimits | None = None
    ) -> QuotaState:
        """Rewrite the denormalized limit and plan when they differ from the resolved plan.

        Returns the quota state as it stands after the sync.
        """
        limits = limits or await self.resolve_limits(user_id)
        state = await self.ensure_quota_state(user_id)
        if (
            state.storage_limit_bytes == limits.storage_limit_bytes
            and state.active_plan == limits.plan
        ):
            return state
        logger.info(
            "Syncing plan limits for user %s: %s/%s -> %s/%s",
            user_id,
            state.active_plan.value,
            state.storage_limit_bytes,
            limits.plan.value,
            limits.storage_limit_bytes,
        )
        await self._lookup(
            user_id,
            self.quota_repo.set_limit(user_id, limits.storage_limit_bytes, limits.plan),
        )
        return QuotaState(
            user_id=state.user_id,
            storage_used_bytes=state.storage_used_bytes,
            storage_limit_bytes=limits.storage_limit_bytes,
            active_plan=limits.plan,
            updated_at=state.updated_at,
        )

    async def usage_summary(self, user_id: str) -> UsageSummary:
        """Return used/limit with formatted sizes and a percentage rounded to 2 places."""
        state = await self.sync_plan_limits(user_id)
        used = state.effective_used_bytes
        limit = state.storage_limit_bytes
        if limit > 0:
            percentage = round(used * 100 / limit, 2)
        else:
            percentage = 100.0 if used > 0 else 0.0
        return UsageSummary(
            user_id=user_id,
            plan=state.active_plan,
            used_bytes=used,
            limit_bytes=limit,
            used_formatted=format_bytes(used),
            limit_formatted=format_bytes(limit),
            percentage=percentage,
        )
