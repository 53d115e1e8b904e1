"""Storage backend port (DIP). Implementations: LocalStorageBackend, S3StorageBackend."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from cloudvault.application.dtos.storage import ObjectListItem, ObjectStat, PutResult
    from cloudvault.shared.utils.streams import UploadSource


class IStorageBackend(Protocol):
    """Protocol for object storage backends (local, S3-compatible).

    All failures are raised as Storage* exceptions; StorageNotFoundError
    for a missing key, BackendUnavailableError for transport problems.
    """

    kind: str

    async def put(
        self,
        source: UploadSource,
        key: str,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> PutResult:
        """Write source under key (overwrite permitted). Parent namespaces created as needed."""

    async def get_signed_url(self, key: str, ttl_seconds: int) -> str:
        """Return a URL granting read access to key for ttl_seconds."""

    def get_stream(self, key: str) -> AsyncIterator[bytes]:
        """Stream object content. Raises StorageNotFoundError on first iteration if missing."""

    async def delete(self, key: str) -> None:
        """Delete key. Deleting an absent key succeeds."""

    async def stat(self, key: str) -> ObjectStat:
        """Return object metadata; ObjectStat(exists=False) when absent."""

    async def copy(self, source_key: str, dest_key: str) -> None:
        """Copy an object (server-side where the backend supports it)."""

    async def list(self, prefix: str, limit: int = 1000) -> list[ObjectListItem]:
        """Return up to limit objects whose key starts with prefix."""
