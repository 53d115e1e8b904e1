"""Tests for upload, download and removal use cases against local storage and fakes."""

import asyncio
import re

import pytest

from cloudvault.application.use_cases.files import FileUploadService
from cloudvault.application.use_cases.files.file_operations import content_type_allowed
from cloudvault.domain.exceptions import (
    BackendMismatchException,
    FileTooLargeException,
    ResourceNotFoundException,
    StorageQuotaExceededException,
    UploadTimeoutException,
    ValidationException,
)
from cloudvault.infrastructure.exceptions import StorageNotFoundError


def _stored_files(storage) -> list[str]:
    return sorted(
        p.relative_to(storage.storage_root).as_posix()
        for p in storage.storage_root.rglob("*")
        if p.is_file()
    )


async def _read(storage, key: str) -> bytes:
    return b"".join([chunk async for chunk in storage.get_stream(key)])


class TestAcceptUpload:
    async def test_free_user_upload_lands_on_local_backend(
        self, upload_service, local_storage, quota_repo, file_repo
    ) -> None:
        payload = b"%PDF-1.7 " + b"x" * 41
        result = await upload_service.accept_upload(
            "u1", payload, "report.pdf", "application/pdf", declared_size=len(payload)
        )

        assert re.match(r"^users/u1/1700000000000-[0-9a-f]{8}-report\.pdf$", result.key)
        assert result.backend == "local"
        assert result.size_bytes == 50
        assert result.url.startswith("/api/v1/storage/download/")
        assert await _read(local_storage, result.key) == payload
        assert quota_repo.used["u1"] == 50
        record = file_repo.records[result.key]
        assert record.size_bytes == 50
        assert record.id == result.file_id

        stat = await local_storage.stat(result.key)
        assert stat.content_type == "application/pdf"
        assert stat.metadata["user-id"] == "u1"
        assert stat.metadata["original-name"] == "report.pdf"

    async def test_declared_size_over_limit_writes_nothing(
        self, upload_service, local_storage, quota_repo
    ) -> None:
        with pytest.raises(FileTooLargeException):
            await upload_service.accept_upload(
                "u1", b"x" * 101, "big.bin", "application/octet-stream", declared_size=101
            )
        assert _stored_files(local_storage) == []
        assert quota_repo.used["u1"] == 0

    async def test_stream_cut_off_leaves_no_object(
        self, upload_service, local_storage, quota_repo, file_repo
    ) -> None:
        quota_repo.seed("u1", used=950, limit=1000)
        with pytest.raises(StorageQuotaExceededException):
            await upload_service.accept_upload(
                "u1", b"x" * 80, "liar.bin", "application/octet-stream", declared_size=10
            )
        assert _stored_files(local_storage) == []
        assert quota_repo.used["u1"] == 950
        assert file_repo.records == {}

    async def test_metadata_failure_removes_object_and_reverses_ledger(
        self, upload_service, local_storage, quota_repo, file_repo
    ) -> None:
        quota_repo.seed("u1", used=100, limit=1000)
        file_repo.fail_next_create = RuntimeError("db down")
        with pytest.raises(RuntimeError, match="db down"):
            await upload_service.accept_upload("u1", b"y" * 40, "a.txt", "text/plain")
        assert _stored_files(local_storage) == []
        assert quota_repo.used["u1"] == 100

    async def test_failure_after_record_commit_keeps_upload_consistent(
        self, upload_service, local_storage, quota_repo, file_repo, monkeypatch
    ) -> None:
        quota_repo.seed("u1", used=0, limit=1000)

        async def broken_issue(*args, **kwargs):
            raise RuntimeError("signer down")

        monkeypatch.setattr(upload_service.access_issuer, "issue_download", broken_issue)
        with pytest.raises(RuntimeError, match="signer down"):
            await upload_service.accept_upload("u1", b"z" * 25, "z.txt", "text/plain")
        [key] = list(file_repo.records)
        assert (await local_storage.stat(key)).exists
        assert file_repo.records[key].size_bytes == 25
        assert quota_repo.used["u1"] == 25

    async def test_content_type_not_allowed(
        self, local_storage, admission, ledger, key_generator
    ) -> None:
        service = FileUploadService(
            local_storage, admission, ledger, key_generator, allowed_mime_types=["image/*"]
        )
        with pytest.raises(ValidationException):
            await service.accept_upload("u1", b"x", "a.exe", "application/x-msdownload")
        result = await service.accept_upload("u1", b"x", "a.png", "image/png")
        assert result.url is None
        assert result.file_id is None

    async def test_cancelled_upload_cleans_up(
        self, upload_service, local_storage, quota_repo
    ) -> None:
        started = asyncio.Event()
        never = asyncio.Event()

        async def slow_source():
            yield b"a" * 10
            started.set()
            await never.wait()
            yield b"b"

        task = asyncio.create_task(
            upload_service.accept_upload("u1", slow_source(), "slow.txt", "text/plain")
        )
        await started.wait()
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert _stored_files(local_storage) == []
        assert quota_repo.used["u1"] == 0

    async def test_timeout_maps_to_upload_timeout(
        self, local_storage, admission, ledger, key_generator, quota_repo
    ) -> None:
        service = FileUploadService(
            local_storage, admission, ledger, key_generator, upload_timeout=0.05
        )

        async def stalled():
            yield b"a"
            await asyncio.sleep(10)

        with pytest.raises(UploadTimeoutException):
            await service.accept_upload("u1", stalled(), "s.txt", "text/plain")
        assert _stored_files(local_storage) == []
        assert quota_repo.used["u1"] == 0

    async def test_pro_user_gets_larger_limit(
        self, upload_service, subscription_repo, quota_repo
    ) -> None:
        subscription_repo.set("u1", "PRO", "active")
        result = await upload_service.accept_upload("u1", b"z" * 500, "p.bin", "application/octet-stream")
        assert result.size_bytes == 500
        assert quota_repo.limits["u1"][0] == 10_000


class TestContentTypeAllowed:
    @pytest.mark.parametrize(
        ("content_type", "allowed", "expected"),
        [
            ("image/png", ["image/*"], True),
            ("IMAGE/PNG; charset=binary", ["image/png"], True),
            ("text/plain", ["image/*"], False),
            ("text/plain", ["*/*"], True),
            ("", ["*/*"], False),
            ("nonsense", ["*"], False),
        ],
    )
    def test_matching(self, content_type, allowed, expected) -> None:
        assert content_type_allowed(content_type, allowed) is expected


class TestDownload:
    async def test_request_download_for_existing_object(
        self, upload_service, download_service
    ) -> None:
        uploaded = await upload_service.accept_upload("u1", b"hello", "h.txt", "text/plain")
        handle = await download_service.request_download(uploaded.key, "local", anonymous=True)
        assert handle.key == uploaded.key
        chunks = [c async for c in download_service.open_stream(uploaded.key, "local")]
        assert b"".join(chunks) == b"hello"

    async def test_missing_object_not_found(self, download_service) -> None:
        with pytest.raises(ResourceNotFoundException):
            await download_service.request_download("users/u1/1-ab-gone.txt", "local")

    async def test_open_stream_missing(self, download_service) -> None:
        with pytest.raises(StorageNotFoundError):
            async for _ in download_service.open_stream("users/u1/1-ab-gone.txt", "local"):
                pass

    async def test_backend_mismatch(self, download_service) -> None:
        with pytest.raises(BackendMismatchException):
            await download_service.request_download("users/u1/1-ab-x.txt", "remote")


class TestRemoval:
    async def test_delete_file_releases_bytes(
        self, upload_service, removal_service, local_storage, quota_repo, file_repo
    ) -> None:
        uploaded = await upload_service.accept_upload("u1", b"q" * 30, "q.txt", "text/plain")
        assert quota_repo.used["u1"] == 30
        assert await removal_service.delete_file("u1", uploaded.key) == 0
        assert _stored_files(local_storage) == []
        assert file_repo.records == {}

    async def test_failed_record_delete_keeps_object_and_usage(
        self, upload_service, removal_service, local_storage, quota_repo, file_repo
    ) -> None:
        uploaded = await upload_service.accept_upload("u1", b"q" * 30, "q.txt", "text/plain")
        file_repo.fail_next_delete = RuntimeError("commit failed")
        with pytest.raises(RuntimeError, match="commit failed"):
            await removal_service.delete_file("u1", uploaded.key)
        assert await _read(local_storage, uploaded.key) == b"q" * 30
        assert uploaded.key in file_repo.records
        assert quota_repo.used["u1"] == 30

    async def test_concurrent_deletes_release_bytes_once(
        self, upload_service, removal_service, quota_repo
    ) -> None:
        uploaded = await upload_service.accept_upload("u1", b"q" * 30, "q.txt", "text/plain")
        results = await asyncio.gather(
            removal_service.delete_file("u1", uploaded.key),
            removal_service.delete_file("u1", uploaded.key),
            return_exceptions=True,
        )
        assert sum(isinstance(r, ResourceNotFoundException) for r in results) == 1
        assert quota_repo.used["u1"] == 0

    async def test_delete_file_of_other_user(self, upload_service, removal_service) -> None:
        uploaded = await upload_service.accept_upload("u1", b"q", "q.txt", "text/plain")
        with pytest.raises(ResourceNotFoundException):
            await removal_service.delete_file("u2", uploaded.key)

    async def test_remove_absent_object_succeeds(self, removal_service) -> None:
        await removal_service.remove_object("users/u1/1-ab-none.txt", "local")
        await removal_service.remove_object("users/u1/1-ab-none.txt", "local")

    async def test_record_deleted_decrements_even_if_backend_rejects(
        self, removal_service, quota_repo
    ) -> None:
        quota_repo.seed("u1", used=30, limit=1000)
        with pytest.raises(BackendMismatchException):
            await removal_service.on_file_record_deleted("u1", "users/u1/1-ab-x.txt", "remote", 30)
        assert quota_repo.used["u1"] == 0
