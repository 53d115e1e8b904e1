"""ORM models. Importing this package registers every table on Base.metadata."""

from cloudvault.infrastructure.persistence.models.quota import (
    LedgerDrift,
    Subscription,
    UserQuota,
)
from cloudvault.infrastructure.persistence.models.stored_file import StoredFile

__all__ = ["LedgerDrift", "StoredFile", "Subscription", "UserQuota"]
