"""Storage: local filesystem and S3-compatible backends.

The factory creates one backend from cloudvault.core.config at startup.
Implementations are loaded lazily inside StorageFactory.create_storage_backend()
so a local deployment never imports boto3.

Implementations satisfy IStorageBackend (put, get_signed_url, get_stream,
delete, stat, copy, list).
"""

from cloudvault.infrastructure.external.storage.factory import StorageFactory

__all__ = ["StorageFactory"]
