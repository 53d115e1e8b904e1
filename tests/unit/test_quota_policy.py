"""Tests for QuotaPolicy: plan resolution, limit sync, usage summary."""

import asyncio

import pytest

from cloudvault.application.services import QuotaPolicy
from cloudvault.domain.enums import Plan
from cloudvault.domain.exceptions import QuotaStateUnavailableException
from tests.conftest import TEST_PLAN_LIMITS
from tests.fakes import FakeSubscriptionRepository


class SlowSubscriptionRepository(FakeSubscriptionRepository):
    async def get_by_user(self, user_id: str):
        await asyncio.sleep(10)
        return None


def test_plan_table_must_cover_every_plan(subscription_repo, quota_repo) -> None:
    partial = {Plan.FREE: TEST_PLAN_LIMITS[Plan.FREE]}
    with pytest.raises(ValueError, match="PRO"):
        QuotaPolicy(partial, subscription_repo, quota_repo)


async def test_no_subscription_resolves_free(quota_policy) -> None:
    limits = await quota_policy.resolve_limits("u1")
    assert limits.plan == Plan.FREE
    assert limits.storage_limit_bytes == 1000
    assert limits.max_upload_bytes == 100


async def test_active_subscription_selects_plan(quota_policy, subscription_repo) -> None:
    subscription_repo.set("u1", "PRO", "ACTIVE")
    limits = await quota_policy.resolve_limits("u1")
    assert limits.plan == Plan.PRO
    assert limits.storage_limit_bytes == 10_000


@pytest.mark.parametrize("status", ["canceled", "past_due", "trialing", "unpaid"])
async def test_inactive_subscription_resolves_free(
    quota_policy, subscription_repo, status
) -> None:
    subscription_repo.set("u1", "BUSINESS", status)
    assert (await quota_policy.resolve_limits("u1")).plan == Plan.FREE


async def test_unknown_plan_code_fails_closed(quota_policy, subscription_repo) -> None:
    subscription_repo.set("u1", "ENTERPRISE_UNLIMITED", "active")
    limits = await quota_policy.resolve_limits("u1")
    assert limits.plan == Plan.FREE
    assert limits.storage_limit_bytes == 1000


async def test_plan_change_visible_on_next_call(quota_policy, subscription_repo) -> None:
    subscription_repo.set("u1", "PRO", "active")
    assert (await quota_policy.resolve_limits("u1")).plan == Plan.PRO
    subscription_repo.set("u1", "PRO", "canceled")
    assert (await quota_policy.resolve_limits("u1")).plan == Plan.FREE
    assert subscription_repo.calls == 2


async def test_lookup_timeout_raises_unavailable(quota_repo) -> None:
    policy = QuotaPolicy(
        TEST_PLAN_LIMITS, SlowSubscriptionRepository(), quota_repo, lookup_timeout=0.01
    )
    with pytest.raises(QuotaStateUnavailableException):
        await policy.resolve_limits("u1")


async def test_ensure_quota_state_creates_free_defaults(quota_policy, quota_repo) -> None:
    state = await quota_policy.ensure_quota_state("u1")
    assert state.storage_used_bytes == 0
    assert state.storage_limit_bytes == 1000
    assert state.active_plan == Plan.FREE
    assert quota_repo.used["u1"] == 0


async def test_sync_rewrites_limit_after_upgrade(
    quota_policy, subscription_repo, quota_repo
) -> None:
    quota_repo.seed("u1", used=400, limit=1000, plan=Plan.FREE)
    subscription_repo.set("u1", "PRO", "active")
    state = await quota_policy.sync_plan_limits("u1")
    assert state.storage_limit_bytes == 10_000
    assert state.active_plan == Plan.PRO
    assert state.storage_used_bytes == 400
    assert quota_repo.limits["u1"] == (10_000, Plan.PRO)


async def test_sync_after_downgrade_keeps_usage(
    quota_policy, subscription_repo, quota_repo
) -> None:
    quota_repo.seed("u1", used=5000, limit=10_000, plan=Plan.PRO)
    subscription_repo.set("u1", "PRO", "canceled")
    state = await quota_policy.sync_plan_limits("u1")
    assert state.active_plan == Plan.FREE
    assert state.storage_used_bytes == 5000
    assert state.remaining_bytes(state.storage_limit_bytes) == 0


async def test_usage_summary(quota_policy, quota_repo) -> None:
    quota_repo.seed("u1", used=333, limit=1000)
    summary = await quota_policy.usage_summary("u1")
    assert summary.used_bytes == 333
    assert summary.limit_bytes == 1000
    assert summary.percentage == 33.3
    assert summary.used_formatted == "333 Bytes"


async def test_usage_summary_clamps_negative_usage(quota_policy, quota_repo) -> None:
    quota_repo.seed("u1", used=-40, limit=1000)
    summary = await quota_policy.usage_summary("u1")
    assert summary.used_bytes == 0
    assert summary.percentage == 0.0
