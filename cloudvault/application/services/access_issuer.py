"""Signed access issuer: time-limited download handles for stored objects."""

from __future__ import annotations

import logging

from cloudvault.application.dtos.storage import AccessHandle
from cloudvault.application.interfaces.storage import IStorageBackend
from cloudvault.domain.enums import AccessMode, StorageBackendKind
from cloudvault.domain.exceptions import BackendMismatchException, ValidationException
from cloudvault.shared.telemetry.tracing import traced
from cloudvault.shared.utils.datetime import expires_in, utc_now

logger = logging.getLogger(__name__)


class SignedAccessIssuer:
    """Issues download handles. Owners get a longer default TTL than shared/anonymous access."""

    def __init__(
        self,
        storage: IStorageBackend,
        owner_ttl_seconds: int = 3600,
        shared_ttl_seconds: int = 300,
        max_ttl_seconds: int = 7 * 24 * 3600,
    ) -> None:
        self.storage = storage
        self.owner_ttl_seconds = owner_ttl_seconds
        self.shared_ttl_seconds = shared_ttl_seconds
        self.max_ttl_seconds = max_ttl_seconds

    def _resolve_ttl(self, ttl_seconds: int | None, anonymous: bool) -> int:
        if ttl_seconds is None:
            return self.shared_ttl_seconds if anonymous else self.owner_ttl_seconds
        if isinstance(ttl_seconds, bool) or not isinstance(ttl_seconds, int):
            raise ValidationException("TTL must be an integer", field="ttl_seconds")
        if ttl_seconds <= 0 or ttl_seconds > self.max_ttl_seconds:
            raise ValidationException(
                f"TTL must be between 1 and {self.max_ttl_seconds} seconds",
                field="ttl_seconds",
            )
        return ttl_seconds

    @traced("access.issue_download")
    async def issue_download(
        self,
        key: str,
        backend: str,
        ttl_seconds: int | None = None,
        anonymous: bool = False,
    ) -> AccessHandle:
        """Return a handle granting read access to key until expires_at.

        Raises:
            ValidationException: TTL not positive or above the configured maximum.
            BackendMismatchException: backend tag does not match the configured backend.
        """
        if backend != self.storage.kind:
            raise BackendMismatchException(backend, self.storage.kind)
        ttl = self._resolve_ttl(ttl_seconds, anonymous)
        issued_at = utc_now()
        url = await self.storage.get_signed_url(key, ttl)
        logger.debug("Issued %ss download handle for %s (anonymous=%s)", ttl, key, anonymous)
        return AccessHandle(
            key=key,
            backend=backend,
            url=url,
            expires_at=expires_in(ttl, issued_at),
            mode=AccessMode.READ,
            requires_caller_auth=backend == StorageBackendKind.LOCAL.value,
        )
