"""Upload admission control: pre-stream limit checks and an in-stream byte guard."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import weakref
from collections.abc import AsyncIterator

from cloudvault.application.dtos.quota import AdmissionDecision
from cloudvault.application.services.quota_policy import QuotaPolicy
from cloudvault.domain.enums import RejectionReason, UploadState
from cloudvault.domain.exceptions import (
    FileTooLargeException,
    InvalidUploadTransitionException,
    StorageQuotaExceededException,
    ValidationException,
)
from cloudvault.shared.telemetry.tracing import traced
from cloudvault.shared.utils.streams import DEFAULT_CHUNK_SIZE, UploadSource, iter_source

logger = logging.getLogger(__name__)

_TERMINAL = frozenset({UploadState.REJECTED, UploadState.COMPLETED, UploadState.ABORTED})

_TRANSITIONS: dict[UploadState, frozenset[UploadState]] = {
    UploadState.REQUESTED: frozenset({UploadState.LIMIT_CHECKED, UploadState.ABORTED}),
    UploadState.LIMIT_CHECKED: frozenset(
        {UploadState.ADMITTED, UploadState.REJECTED, UploadState.ABORTED}
    ),
    UploadState.ADMITTED: frozenset({UploadState.STREAMING, UploadState.ABORTED}),
    UploadState.STREAMING: frozenset(
        {UploadState.COMPLETED, UploadState.REJECTED, UploadState.ABORTED}
    ),
}


class UploadAttempt:
    """Lifecycle of one upload. Illegal transitions raise InvalidUploadTransitionException."""

    def __init__(self, user_id: str, declared_size: int | None = None) -> None:
        self.user_id = user_id
        self.declared_size = declared_size
        self.state = UploadState.REQUESTED
        self.rejection_reason: RejectionReason | None = None
        self.bytes_received = 0

    @property
    def is_terminal(self) -> bool:
        return self.state in _TERMINAL

    def transition(self, target: UploadState) -> None:
        if target not in _TRANSITIONS.get(self.state, frozenset()):
            raise InvalidUploadTransitionException(self.state.value, target.value)
        self.state = target

    def reject(self, reason: RejectionReason) -> None:
        self.transition(UploadState.REJECTED)
        self.rejection_reason = reason

    def abort(self) -> None:
        """Move to ABORTED unless the attempt already ended."""
        if not self.is_terminal:
            self.transition(UploadState.ABORTED)


class UserLockRegistry:
    """Per-user asyncio locks, dropped once no upload holds a reference."""

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def get(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock


class UploadAdmissionController:
    """Checks uploads against the plan's per-upload limit and the remaining quota.

    The check-then-write race between concurrent uploads of one user is
    accepted (overshoot by at most one upload) unless strict mode is on,
    in which case user_lock() serializes admission through ledger update.
    """

    def __init__(
        self,
        quota_policy: QuotaPolicy,
        strict: bool = False,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        locks: UserLockRegistry | None = None,
    ) -> None:
        self.quota_policy = quota_policy
        self.strict = strict
        self.chunk_size = chunk_size
        self.locks = locks or UserLockRegistry()

    @contextlib.asynccontextmanager
    async def user_lock(self, user_id: str) -> AsyncIterator[None]:
        """Hold the per-user upload lock in strict mode; no-op otherwise."""
        if not self.strict:
            yield
            return
        async with self.locks.get(user_id):
            yield

    @traced("upload.admit")
    async def admit(
        self,
        user_id: str,
        declared_size: int | None = None,
        attempt: UploadAttempt | None = None,
    ) -> AdmissionDecision:
        """Admit or reject an upload before any byte is accepted.

        Raises:
            FileTooLargeException: declared_size > the plan's max upload.
            StorageQuotaExceededException: declared_size > remaining quota.
            ValidationException: declared_size is negative or not an int.
        """
        if declared_size is not None and (
            isinstance(declared_size, bool) or not isinstance(declared_size, int)
        ):
            raise ValidationException("Declared size must be an integer", field="declared_size")
        if declared_size is not None and declared_size < 0:
            raise ValidationException("Declared size cannot be negative", field="declared_size")
        attempt = attempt or UploadAttempt(user_id, declared_size)
        try:
            limits = await self.quota_policy.resolve_limits(user_id)
            state = await self.quota_policy.sync_plan_limits(user_id, limits)
        except BaseException:
            attempt.abort()
            raise
        attempt.transition(UploadState.LIMIT_CHECKED)

        decision = AdmissionDecision(
            user_id=user_id,
            plan=limits.plan,
            declared_size=declared_size,
            max_upload_bytes=limits.max_upload_bytes,
            storage_limit_bytes=limits.storage_limit_bytes,
            storage_used_bytes=state.effective_used_bytes,
        )
        if declared_size is not None:
            if declared_size > decision.max_upload_bytes:
                attempt.reject(RejectionReason.SIZE_EXCEEDED)
                logger.info(
                    "Rejected upload for user %s: %s bytes exceeds %s limit %s",
                    user_id,
                    declared_size,
                    limits.plan_name,
                    decision.max_upload_bytes,
                )
                raise FileTooLargeException(
                    declared_size, decision.max_upload_bytes, limits.plan_name
                )
            if declared_size > decision.remaining_bytes:
                attempt.reject(RejectionReason.QUOTA_EXCEEDED)
                logger.info(
                    "Rejected upload for user %s: %s bytes exceeds remaining quota %s",
                    user_id,
                    declared_size,
                    decision.remaining_bytes,
                )
                raise StorageQuotaExceededException(
                    declared_size,
                    decision.remaining_bytes,
                    decision.storage_limit_bytes,
                    limits.plan_name,
                )
        attempt.transition(UploadState.ADMITTED)
        return decision

    async def guard_stream(
        self,
        source: UploadSource,
        decision: AdmissionDecision,
        attempt: UploadAttempt,
    ) -> AsyncIterator[bytes]:
        """Yield source chunks, cutting the stream off once a limit is crossed.

        Counts bytes as they pass; the whole object is never buffered here.
        """
        async for chunk in iter_source(source, self.chunk_size):
            attempt.bytes_received += len(chunk)
            received = attempt.bytes_received
            if received > decision.max_upload_bytes:
                attempt.reject(RejectionReason.LIMIT_EXCEEDED_DURING_STREAM)
                logger.info(
                    "Upload for user %s cut off at %s bytes (max upload %s)",
                    decision.user_id,
                    received,
                    decision.max_upload_bytes,
                )
                raise FileTooLargeException(
                    received,
                    decision.max_upload_bytes,
                    decision.plan.value,
                    during_stream=True,
                )
            if received > decision.remaining_bytes:
                attempt.reject(RejectionReason.LIMIT_EXCEEDED_DURING_STREAM)
                logger.info(
                    "Upload for user %s cut off at %s bytes (remaining quota %s)",
                    decision.user_id,
                    received,
                    decision.remaining_bytes,
                )
                raise StorageQuotaExceededException(
                    received,
                    decision.remaining_bytes,
                    decision.storage_limit_bytes,
                    decision.plan.value,
                )
            yield chunk
