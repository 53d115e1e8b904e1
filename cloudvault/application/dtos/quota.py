"""DTOs for quota, subscription, and ledger use cases (no dependency on ORM)."""

from dataclasses import dataclass
from datetime import datetime

from cloudvault.domain.enums import Plan


@dataclass(frozen=True)
class SubscriptionRecord:
    """Subscription as seen by the quota policy: plan code and billing status."""

    user_id: str
    plan: str
    status: str


@dataclass(frozen=True)
class QuotaState:
    """Per-user storage counters (read-model of user_quota).

    storage_used_bytes may be transiently negative in storage; callers use
    effective_used_bytes for display and admission.
    """

    user_id: str
    storage_used_bytes: int
    storage_limit_bytes: int
    active_plan: Plan
    updated_at: datetime | None = None

    @property
    def effective_used_bytes(self) -> int:
        return max(0, self.storage_used_bytes)

    def remaining_bytes(self, storage_limit_bytes: int) -> int:
        """Bytes left under storage_limit_bytes (never negative)."""
        return max(0, storage_limit_bytes - self.effective_used_bytes)


@dataclass(frozen=True)
class AdmissionDecision:
    """Result of a successful pre-stream admission check."""

    user_id: str
    plan: Plan
    declared_size: int | None
    max_upload_bytes: int
    storage_limit_bytes: int
    storage_used_bytes: int

    @property
    def remaining_bytes(self) -> int:
        return max(0, self.storage_limit_bytes - self.storage_used_bytes)

    @property
    def stream_limit_bytes(self) -> int:
        """Largest byte count the stream may reach before it is cut off."""
        return min(self.max_upload_bytes, self.remaining_bytes)


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of recomputing a user's usage from stored file records."""

    user_id: str
    previous_bytes: int
    reconciled_bytes: int

    @property
    def drift_bytes(self) -> int:
        return self.previous_bytes - self.reconciled_bytes

    @property
    def changed(self) -> bool:
        return self.previous_bytes != self.reconciled_bytes


@dataclass(frozen=True)
class LedgerDriftRecord:
    """Persisted record of a ledger correction."""

    id: str
    user_id: str
    previous_bytes: int
    reconciled_bytes: int
    drift_bytes: int
    created_at: datetime | None = None


@dataclass(frozen=True)
class UsageSummary:
    """Storage usage for display: exact counters plus formatted sizes."""

    user_id: str
    plan: Plan
    used_bytes: int
    limit_bytes: int
    used_formatted: str
    limit_formatted: str
    percentage: float
