"""Reconcile storage usage: recompute each user's counter from stored file records.

Usage:
    python -m scripts.reconcile_storage_usage [user_id] [--negative-only]
With user_id, reconciles that user only. Otherwise processes every user with
a quota row, or only those whose counter is negative with --negative-only.
Requires Postgres (DATABASE_URL).
"""

import asyncio
import sys

import cloudvault.infrastructure.persistence.database as database
from cloudvault.application.dtos.quota import ReconcileResult
from cloudvault.application.interfaces.repositories import IUserQuotaRepository
from cloudvault.application.services import UsageLedger
from cloudvault.core.config import get_settings
from cloudvault.domain.exceptions import ResourceNotFoundException
from cloudvault.infrastructure.persistence.repositories import (
    LedgerDriftRepository,
    UserQuotaRepository,
)
from cloudvault.shared.telemetry.logging import setup_logging
from cloudvault.shared.utils.bytes import format_bytes

BATCH_SIZE = 500


async def iter_user_ids(quota_repo: IUserQuotaRepository, negative_only: bool) -> list[str]:
    """Collect all user ids in batches (snapshot taken before any counter changes)."""
    user_ids: list[str] = []
    skip = 0
    while True:
        batch = await quota_repo.list_user_ids(
            skip=skip, limit=BATCH_SIZE, negative_only=negative_only
        )
        user_ids.extend(batch)
        if len(batch) < BATCH_SIZE:
            return user_ids
        skip += BATCH_SIZE


def describe(result: ReconcileResult) -> str:
    if not result.changed:
        return f"{result.user_id}: ok ({format_bytes(result.reconciled_bytes)})"
    return (
        f"{result.user_id}: {result.previous_bytes} -> {result.reconciled_bytes} bytes "
        f"(drift {result.drift_bytes:+d})"
    )


async def main() -> None:
    """Reconcile one user, all users, or users with negative counters."""
    get_settings()
    setup_logging()
    database._ensure_engine()
    if database.AsyncSessionLocal is None:
        print("DATABASE_URL not configured", file=sys.stderr)
        sys.exit(1)

    args = [a for a in sys.argv[1:] if not a.startswith("--")]
    negative_only = "--negative-only" in sys.argv[1:]
    session_factory = database.AsyncSessionLocal
    quota_repo = UserQuotaRepository(session_factory)
    ledger = UsageLedger(
        quota_repo=quota_repo,
        drift_repo=LedgerDriftRepository(session_factory),
        drift_alert_bytes=get_settings().ledger_drift_alert_bytes,
    )

    user_ids = [args[0]] if args else await iter_user_ids(quota_repo, negative_only)
    changed = 0
    for user_id in user_ids:
        try:
            result = await ledger.reconcile(user_id)
        except ResourceNotFoundException:
            print(f"{user_id}: no quota state", file=sys.stderr)
            continue
        if result.changed:
            changed += 1
        print(describe(result))

    print(f"Done. Checked {len(user_ids)} user(s), corrected {changed}.")
    await database.dispose_engine()


if __name__ == "__main__":
    asyncio.run(main())
