"""Repositories returning application DTOs."""

from cloudvault.infrastructure.persistence.repositories.ledger_drift_repo import (
    LedgerDriftRepository,
)
from cloudvault.infrastructure.persistence.repositories.stored_file_repo import (
    StoredFileRepository,
)
from cloudvault.infrastructure.persistence.repositories.subscription_repo import (
    SubscriptionRepository,
)
from cloudvault.infrastructure.persistence.repositories.user_quota_repo import (
    UserQuotaRepository,
)

__all__ = [
    "LedgerDriftRepository",
    "StoredFileRepository",
    "SubscriptionRepository",
    "UserQuotaRepository",
]
