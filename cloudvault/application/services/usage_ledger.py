"""Usage ledger: atomic per-user byte counter and reconciliation."""

from __future__ import annotations

import logging

from cloudvault.application.dtos.quota import ReconcileResult
from cloudvault.application.interfaces.repositories import (
    ILedgerDriftRepository,
    IUserQuotaRepository,
)
from cloudvault.domain.exceptions import ResourceNotFoundException
from cloudvault.shared.telemetry.tracing import add_span_attributes, traced

logger = logging.getLogger(__name__)


class UsageLedger:
    """Keeps storage_used_bytes in step with uploads and deletions.

    adjust() is a pure atomic add at the store so totals are correct under
    any interleaving; it may go transiently negative. reconcile() is the
    only decrease not paired with a deletion and persists the clamp to 0.
    """

    def __init__(
        self,
        quota_repo: IUserQuotaRepository,
        drift_repo: ILedgerDriftRepository | None = None,
        drift_alert_bytes: int = 0,
    ) -> None:
        self.quota_repo = quota_repo
        self.drift_repo = drift_repo
        self.drift_alert_bytes = drift_alert_bytes

    @traced("ledger.adjust")
    async def adjust(self, user_id: str, delta: int) -> int:
        """Atomically add delta to the user's usage; return the new total."""
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise TypeError("Ledger deltas must be int")
        new_total = await self.quota_repo.increment_usage(user_id, delta)
        if new_total < 0:
            logger.warning(
                "Usage for user %s is negative (%s) after adjust %s", user_id, new_total, delta
            )
        return new_total

    @traced("ledger.reconcile")
    async def reconcile(self, user_id: str) -> ReconcileResult:
        """Recompute usage from file records, clamp to >= 0, and record any drift.

        The read of the stored value, the sum and the write happen in one
        locked step at the store, so concurrent adjustments are kept.

        Raises:
            ResourceNotFoundException: The user has no quota state.
        """
        outcome = await self.quota_repo.reconcile_usage(user_id)
        if outcome is None:
            raise ResourceNotFoundException("user_quota", user_id)
        previous, reconciled = outcome
        result = ReconcileResult(
            user_id=user_id, previous_bytes=previous, reconciled_bytes=reconciled
        )
        if not result.changed:
            return result

        level = (
            logging.WARNING
            if abs(result.drift_bytes) > self.drift_alert_bytes
            else logging.INFO
        )
        logger.log(
            level,
            "Ledger drift for user %s: stored=%s actual=%s drift=%s",
            user_id,
            result.previous_bytes,
            result.reconciled_bytes,
            result.drift_bytes,
        )
        add_span_attributes(ledger_drift_bytes=result.drift_bytes)
        if self.drift_repo is not None:
            await self.drift_repo.record(
                user_id, result.previous_bytes, result.reconciled_bytes
            )
        return result
