"""Repository interfaces (ports) for the application layer.

Protocols define contracts that infrastructure implementations must fulfill (DIP).
All types reference application DTOs only; no infrastructure imports.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from cloudvault.domain.enums import Plan

if TYPE_CHECKING:
    from cloudvault.application.dtos.quota import (
        LedgerDriftRecord,
        QuotaState,
        SubscriptionRecord,
    )
    from cloudvault.application.dtos.storage import StoredFileCreate, StoredFileResult


class ISubscriptionRepository(Protocol):
    """Protocol for subscription lookup (owned by billing, read here)."""

    async def get_by_user(self, user_id: str) -> SubscriptionRecord | None:
        """Return the user's current subscription, or None."""


class IUserQuotaRepository(Protocol):
    """Protocol for the per-user usage ledger (DIP).

    increment_usage must be a single atomic add at the store, never
    read-modify-write.
    """

    async def get_state(self, user_id: str) -> QuotaState | None:
        """Return the user's quota state, or None if not created yet."""

    async def create_state(
        self, user_id: str, storage_limit_bytes: int, plan: Plan
    ) -> QuotaState:
        """Create the quota row if absent and return the current state."""

    async def increment_usage(self, user_id: str, delta: int) -> int:
        """Atomically add delta to storage_used_bytes; return the new value."""

    async def reconcile_usage(self, user_id: str) -> tuple[int, int] | None:
        """Atomically set usage to max(0, sum of the user's file records).

        Returns (previous, reconciled), or None if the user has no quota row.
        A concurrent increment_usage must never be overwritten.
        """

    async def set_limit(
        self, user_id: str, storage_limit_bytes: int, plan: Plan
    ) -> None:
        """Update the denormalized limit and plan."""

    async def list_user_ids(
        self, skip: int = 0, limit: int = 100, negative_only: bool = False
    ) -> list[str]:
        """Return user ids with quota rows, ordered by id."""


class IStoredFileRepository(Protocol):
    """Protocol for file metadata records referencing stored objects."""

    async def create_file_record(self, data: StoredFileCreate) -> StoredFileResult:
        """Persist a file record for an uploaded object; committed on return."""

    async def get_by_key(self, key: str) -> StoredFileResult | None:
        """Return the record referencing key, or None."""

    async def delete_by_key(self, key: str) -> bool:
        """Delete the record for key, committed on return. True if a row was removed."""


class ILedgerDriftRepository(Protocol):
    """Protocol for persisting ledger corrections."""

    async def record(
        self, user_id: str, previous_bytes: int, reconciled_bytes: int
    ) -> LedgerDriftRecord:
        """Persist a drift record."""
