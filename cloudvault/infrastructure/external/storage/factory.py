"""Storage backend factory: creates the local or S3-compatible backend from settings."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cloudvault.domain.enums import StorageBackendKind

if TYPE_CHECKING:
    from cloudvault.application.interfaces.storage import IStorageBackend
    from cloudvault.core.config import Settings

logger = logging.getLogger(__name__)


class StorageFactory:
    """Factory for storage backend instances based on configuration."""

    @staticmethod
    def create_storage_backend(settings: "Settings | None" = None) -> "IStorageBackend":
        """Create the configured storage backend.

        Called once at startup; the instance is owned by the application
        lifespan and injected where needed.

        Args:
            settings: Application settings; if None, uses get_settings().

        Returns:
            LocalStorageBackend or S3StorageBackend.

        Raises:
            ValueError: Unknown backend or missing required config.
        """
        from cloudvault.core.config import get_settings

        s = settings or get_settings()
        backend = s.storage_backend.lower()

        if backend == StorageBackendKind.LOCAL.value:
            from cloudvault.infrastructure.external.storage.local_storage import (
                LocalStorageBackend,
            )

            if not s.storage_root:
                raise ValueError("STORAGE_ROOT required for local backend")
            logger.info("Using local storage backend at %s", s.storage_root)
            if s.storage_download_secret is None:
                logger.warning(
                    "STORAGE_DOWNLOAD_SECRET not set; local download links only "
                    "resolve in the process that issued them"
                )
            return LocalStorageBackend(
                storage_root=s.storage_root,
                base_url=s.storage_base_url,
                chunk_size=s.upload_chunk_size,
                download_secret=(
                    s.storage_download_secret.get_secret_value()
                    if s.storage_download_secret
                    else None
                ),
            )
        if backend == StorageBackendKind.REMOTE.value:
            from cloudvault.infrastructure.external.storage.s3_storage import (
                S3StorageBackend,
            )

            if not s.s3_bucket:
                raise ValueError("S3_BUCKET required for remote backend")
            logger.info(
                "Using %s object storage backend (bucket=%s)", s.s3_provider, s.s3_bucket
            )
            return S3StorageBackend(
                bucket=s.s3_bucket,
                region=s.s3_region,
                provider=s.s3_provider,
                endpoint_url=s.s3_endpoint_url,
                access_key=s.s3_access_key,
                secret_key=s.s3_secret_key.get_secret_value() if s.s3_secret_key else None,
                force_path_style=s.s3_force_path_style,
                server_side_encryption=s.s3_server_side_encryption,
                chunk_size=s.upload_chunk_size,
                read_retry_attempts=s.storage_read_retry_attempts,
                read_retry_delay=s.storage_read_retry_delay_ms / 1000,
                multipart_threshold=s.s3_multipart_threshold_bytes,
                multipart_chunk_size=s.s3_multipart_chunk_bytes,
            )
        raise ValueError(
            f"Unknown storage backend: {backend}. Supported: 'local', 'remote'"
        )
