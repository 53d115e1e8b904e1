"""Domain exceptions for cloudvault.

Defines domain-level exceptions that represent business rule violations.
These exceptions are independent of infrastructure concerns. Presentation
layer maps them to HTTP responses in exception handlers.
"""

from typing import Any

from cloudvault.shared.utils.bytes import bytes_to_wire, format_bytes


class CloudVaultException(Exception):
    """Base exception for all cloudvault errors.

    All custom exceptions inherit from this class so callers get a typed
    error with a stable error_code and structured details instead of a raw
    transport or driver exception.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable error code.
        details: Additional error context (e.g. limit, plan).
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Optional machine-readable code; defaults to class name.
            details: Optional dict of extra context.
        """
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API responses. Byte counters become decimal strings."""
        details = {
            key: bytes_to_wire(value)
            if key.endswith("_bytes") and isinstance(value, int) and not isinstance(value, bool)
            else value
            for key, value in self.details.items()
        }
        return {
            "error": self.error_code,
            "message": self.message,
            "details": details,
        }


class ValidationException(CloudVaultException):
    """Raised when input validation fails (e.g. invalid format or range)."""

    def __init__(self, message: str, field: str | None = None) -> None:
        """Initialize with message and optional field name.

        Args:
            message: Description of the validation failure.
            field: Optional field or attribute that failed validation.
        """
        details = {"field": field} if field else {}
        super().__init__(message, "VALIDATION_ERROR", details)


class ResourceNotFoundException(CloudVaultException):
    """Raised when a requested resource is not found."""

    def __init__(self, resource_type: str, resource_id: str) -> None:
        """Initialize with resource type and id.

        Args:
            resource_type: Type of resource (e.g. 'user_quota', 'stored_file').
            resource_id: The ID that was not found.
        """
        super().__init__(
            f"{resource_type} not found: {resource_id}",
            "RESOURCE_NOT_FOUND",
            {"resource_type": resource_type, "resource_id": resource_id},
        )


class FileTooLargeException(CloudVaultException):
    """Raised when a declared or streamed size exceeds the plan's per-upload limit."""

    def __init__(
        self,
        size_bytes: int,
        max_upload_bytes: int,
        plan: str,
        during_stream: bool = False,
    ) -> None:
        """Initialize with the offending size and the limit that applied.

        Args:
            size_bytes: Declared size, or bytes received so far when streaming.
            max_upload_bytes: The plan's single-file ceiling.
            plan: Plan name the limit belongs to.
            during_stream: True when the limit was crossed mid-transfer.
        """
        super().__init__(
            f"File exceeds the {plan} plan upload limit of "
            f"{format_bytes(max_upload_bytes)} ({max_upload_bytes} bytes)",
            "FILE_TOO_LARGE",
            {
                "size_bytes": size_bytes,
                "max_upload_bytes": max_upload_bytes,
                "plan": plan,
                "during_stream": during_stream,
            },
        )


class StorageQuotaExceededException(CloudVaultException):
    """Raised when an upload would exceed the user's remaining storage quota."""

    def __init__(
        self,
        requested_bytes: int,
        remaining_bytes: int,
        storage_limit_bytes: int,
        plan: str,
    ) -> None:
        """Initialize with requested size, remaining quota, and the plan limit.

        Args:
            requested_bytes: Size of the upload (declared or received so far).
            remaining_bytes: Quota left before the upload.
            storage_limit_bytes: The plan's total storage ceiling.
            plan: Plan name the limit belongs to.
        """
        super().__init__(
            f"Storage quota of the {plan} plan exceeded: "
            f"{format_bytes(remaining_bytes)} remaining of "
            f"{format_bytes(storage_limit_bytes)} ({storage_limit_bytes} bytes)",
            "STORAGE_QUOTA_EXCEEDED",
            {
                "requested_bytes": requested_bytes,
                "remaining_bytes": remaining_bytes,
                "storage_limit_bytes": storage_limit_bytes,
                "plan": plan,
            },
        )


class InvalidUploadTransitionException(CloudVaultException):
    """Raised when an upload attempt is moved to a state it cannot reach."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(
            f"Invalid upload transition: {current} -> {target}",
            "INVALID_UPLOAD_TRANSITION",
            {"current": current, "target": target},
        )


class QuotaStateUnavailableException(CloudVaultException):
    """Raised when quota or subscription state cannot be read in time."""

    def __init__(self, user_id: str) -> None:
        super().__init__(
            "Storage limits are temporarily unavailable; try again.",
            "SERVICE_UNAVAILABLE",
            {"user_id": user_id},
        )


class SqlNotConfiguredException(CloudVaultException):
    """Raised when an operation requires Postgres but the backend is not configured."""

    def __init__(self) -> None:
        super().__init__(
            message="This operation requires a SQL database that is not configured.",
            error_code="SERVICE_UNAVAILABLE",
        )


class BackendMismatchException(CloudVaultException):
    """Raised when an object's backend tag differs from the configured backend."""

    def __init__(self, backend: str, configured: str) -> None:
        super().__init__(
            f"Object is stored on the '{backend}' backend; this service uses '{configured}'",
            "BACKEND_MISMATCH",
            {"backend": backend, "configured": configured},
        )


class OrphanedObjectException(CloudVaultException):
    """Object written without a metadata record. Diagnostic only: logged, never raised."""

    def __init__(self, key: str, backend: str, cleaned_up: bool) -> None:
        super().__init__(
            f"Orphaned object {key} on {backend} "
            f"({'removed' if cleaned_up else 'cleanup failed'})",
            "ORPHANED_OBJECT",
            {"key": key, "backend": backend, "cleaned_up": cleaned_up},
        )


class UploadTimeoutException(CloudVaultException):
    """Raised when an upload stream does not finish within its time budget."""

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(
            f"Upload did not complete within {timeout_seconds:g} seconds",
            "UPLOAD_TIMEOUT",
            {"timeout_seconds": timeout_seconds},
        )
