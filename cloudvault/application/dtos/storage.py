"""DTOs for storage backend results and file use cases."""

from dataclasses import dataclass, field
from datetime import datetime

from cloudvault.domain.enums import AccessMode


@dataclass(frozen=True)
class PutResult:
    """Result of writing an object to a backend."""

    key: str
    location_hint: str
    size_bytes: int
    etag: str | None = None
    version_id: str | None = None


@dataclass(frozen=True)
class ObjectStat:
    """Object metadata without content. exists=False is a normal answer."""

    exists: bool
    size_bytes: int = 0
    last_modified: datetime | None = None
    content_type: str | None = None
    etag: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ObjectListItem:
    """One entry of a bounded listing."""

    key: str
    size_bytes: int
    last_modified: datetime | None = None


@dataclass(frozen=True)
class AccessHandle:
    """Time-limited download handle for a stored object."""

    key: str
    backend: str
    url: str
    expires_at: datetime
    mode: AccessMode = AccessMode.READ
    requires_caller_auth: bool = False


@dataclass(frozen=True)
class UploadResult:
    """Returned by accept_upload once bytes, ledger, and record are in place."""

    key: str
    backend: str
    size_bytes: int
    content_type: str
    url: str | None = None
    etag: str | None = None
    file_id: str | None = None


@dataclass(frozen=True)
class StoredFileCreate:
    """Input for creating a stored_file metadata record."""

    id: str
    user_id: str
    key: str
    backend: str
    original_name: str
    content_type: str
    size_bytes: int
    etag: str | None = None
    version_id: str | None = None


@dataclass(frozen=True)
class StoredFileResult:
    """stored_file read-model."""

    id: str
    user_id: str
    key: str
    backend: str
    original_name: str
    content_type: str
    size_bytes: int
    etag: str | None
    version_id: str | None
    created_at: datetime | None = None
