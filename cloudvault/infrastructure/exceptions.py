"""Infrastructure exceptions for storage operations.

Storage errors extend CloudVaultException so presentation can map them
to HTTP responses consistently. Backends raise only these; raw botocore
or OS errors never reach callers.
"""

from cloudvault.domain.exceptions import CloudVaultException


class StorageException(CloudVaultException):
    """Base exception for storage operations."""


class StorageNotFoundError(StorageException):
    """Object not found in storage."""

    def __init__(self, key: str) -> None:
        super().__init__(
            f"Object not found: {key}",
            "STORAGE_NOT_FOUND",
            {"key": key},
        )


class BackendUnavailableError(StorageException):
    """Storage backend unreachable or failing (transient).

    The user-facing message is generic; the underlying reason is kept on
    the instance for logs only and never serialized.
    """

    def __init__(self, operation: str, backend: str, reason: str = "") -> None:
        super().__init__(
            "Storage is temporarily unavailable; try again.",
            "BACKEND_UNAVAILABLE",
            {"operation": operation, "backend": backend},
        )
        self.reason = reason


class StoragePermissionError(StorageException):
    """Key resolves outside the storage namespace or access is denied."""

    def __init__(self, key: str, operation: str) -> None:
        super().__init__(
            f"Permission denied for {operation} on {key}",
            "STORAGE_PERMISSION_ERROR",
            {"key": key, "operation": operation},
        )

