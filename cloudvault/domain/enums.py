"""Domain enumerations for cloudvault.

Enums represent fixed sets of domain values (plans, subscription status,
storage backends, upload lifecycle).
"""

from enum import Enum


class Plan(str, Enum):
    """Subscription tier. Each plan maps to a fixed pair of storage limits."""

    FREE = "FREE"
    PRO = "PRO"
    BUSINESS = "BUSINESS"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid plan codes as strings."""
        return [plan.value for plan in cls]

    @classmethod
    def parse(cls, code: str | None) -> "Plan":
        """Return the plan for code, or FREE when code is missing or unknown.

        Unknown codes fail closed to the most restrictive plan, never to an
        unlimited one.
        """
        if not code:
            return cls.FREE
        try:
            return cls(code.strip().upper())
        except ValueError:
            return cls.FREE


class SubscriptionStatus(str, Enum):
    """Billing subscription status as reported by the payment provider."""

    ACTIVE = "active"
    TRIALING = "trialing"
    INCOMPLETE = "incomplete"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"

    @classmethod
    def is_active(cls, status: str | None) -> bool:
        """True only for an 'active' status (case-insensitive)."""
        return bool(status) and status.strip().lower() == cls.ACTIVE.value


class StorageBackendKind(str, Enum):
    """Tag stored next to every object key naming the backend that holds it."""

    LOCAL = "local"
    REMOTE = "remote"

    @classmethod
    def values(cls) -> list[str]:
        return [kind.value for kind in cls]


class AccessMode(str, Enum):
    """Access granted by a download handle."""

    READ = "read"


class UploadState(str, Enum):
    """Lifecycle of a single upload attempt."""

    REQUESTED = "requested"
    LIMIT_CHECKED = "limit_checked"
    ADMITTED = "admitted"
    REJECTED = "rejected"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ABORTED = "aborted"


class RejectionReason(str, Enum):
    """Why an upload attempt was rejected."""

    SIZE_EXCEEDED = "size_exceeded"
    QUOTA_EXCEEDED = "quota_exceeded"
    LIMIT_EXCEEDED_DURING_STREAM = "limit_exceeded_during_stream"
