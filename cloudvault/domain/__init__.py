"""Domain layer: value objects, enums, and exceptions.

No dependencies on infrastructure or presentation. Used by application
and infrastructure layers.
"""

from cloudvault.domain.enums import (
    AccessMode,
    Plan,
    RejectionReason,
    StorageBackendKind,
    SubscriptionStatus,
    UploadState,
)
from cloudvault.domain.exceptions import (
    CloudVaultException,
    FileTooLargeException,
    ResourceNotFoundException,
    StorageQuotaExceededException,
    ValidationException,
)
from cloudvault.domain.value_objects import PlanLimits, ResolvedLimits

__all__ = [
    # Enums
    "AccessMode",
    "Plan",
    "RejectionReason",
    "StorageBackendKind",
    "SubscriptionStatus",
    "UploadState",
    # Exceptions
    "CloudVaultException",
    "FileTooLargeException",
    "ResourceNotFoundException",
    "StorageQuotaExceededException",
    "ValidationException",
    # Value objects
    "PlanLimits",
    "ResolvedLimits",
]
