"""Tests for exception-to-HTTP mapping."""

import pytest
from httpx import ASGITransport, AsyncClient

from cloudvault.domain.exceptions import (
    BackendMismatchException,
    FileTooLargeException,
    QuotaStateUnavailableException,
    StorageQuotaExceededException,
    UploadTimeoutException,
)
from cloudvault.infrastructure.exceptions import BackendUnavailableError, StorageNotFoundError

ERRORS = {
    "too-large": FileTooLargeException(2**40, 100, "FREE"),
    "quota": StorageQuotaExceededException(51, 50, 1000, "FREE"),
    "mismatch": BackendMismatchException("remote", "local"),
    "unavailable": BackendUnavailableError("put", "remote", reason="SignatureDoesNotMatch"),
    "lookup": QuotaStateUnavailableException("u1"),
    "timeout": UploadTimeoutException(1800),
    "missing": StorageNotFoundError("users/u1/x"),
}


@pytest.fixture
async def error_client(local_storage):
    from cloudvault.main import create_app

    app = create_app()
    app.state.storage = local_storage

    @app.get("/raise/{name}")
    async def _raise(name: str):
        raise ERRORS[name]

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.mark.parametrize(
    ("name", "status", "code"),
    [
        ("too-large", 413, "FILE_TOO_LARGE"),
        ("quota", 413, "STORAGE_QUOTA_EXCEEDED"),
        ("mismatch", 400, "BACKEND_MISMATCH"),
        ("unavailable", 503, "BACKEND_UNAVAILABLE"),
        ("lookup", 503, "SERVICE_UNAVAILABLE"),
        ("timeout", 408, "UPLOAD_TIMEOUT"),
        ("missing", 404, "STORAGE_NOT_FOUND"),
    ],
)
async def test_status_mapping(error_client, name, status, code) -> None:
    response = await error_client.get(f"/raise/{name}")
    assert response.status_code == status
    assert response.json()["error"] == code


async def test_byte_counts_serialized_as_strings(error_client) -> None:
    body = (await error_client.get("/raise/too-large")).json()
    assert body["details"]["size_bytes"] == str(2**40)
    assert body["details"]["max_upload_bytes"] == "100"


async def test_backend_reason_not_exposed(error_client) -> None:
    body = (await error_client.get("/raise/unavailable")).json()
    assert "SignatureDoesNotMatch" not in str(body)
