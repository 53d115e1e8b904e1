"""Tests for the FastAPI dependency providers embedding applications build routes on."""

from typing import Annotated

import pytest
from fastapi import Depends
from httpx import ASGITransport, AsyncClient

from cloudvault.api.v1.dependencies import (
    get_file_download_service,
    get_file_removal_service,
    get_file_upload_service,
)
from cloudvault.application.use_cases.files import (
    FileDownloadService,
    FileRemovalService,
    FileUploadService,
)

KEY = "users/u1/1700000000000-abcd1234-report.pdf"


@pytest.fixture
async def embedding_client(local_storage, monkeypatch):
    from cloudvault.main import create_app

    monkeypatch.delenv("DATABASE_URL", raising=False)
    app = create_app()
    app.state.storage = local_storage

    @app.get("/files/link")
    async def _link(
        key: str,
        service: Annotated[FileDownloadService, Depends(get_file_download_service)],
    ):
        handle = await service.request_download(key, "local", anonymous=True)
        return {"url": handle.url, "expires_at": handle.expires_at.isoformat()}

    @app.post("/files")
    async def _upload(
        service: Annotated[FileUploadService, Depends(get_file_upload_service)],
    ):
        return {"ok": True}

    @app.delete("/files")
    async def _delete(
        service: Annotated[FileRemovalService, Depends(get_file_removal_service)],
    ):
        return {"ok": True}

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


async def test_download_link_resolves_through_token_route(
    embedding_client, local_storage
) -> None:
    await local_storage.put(b"content", KEY, "application/pdf")
    link = (await embedding_client.get("/files/link", params={"key": KEY})).json()

    response = await embedding_client.get(link["url"])
    assert response.status_code == 200
    assert response.content == b"content"


async def test_download_link_for_missing_object(embedding_client) -> None:
    response = await embedding_client.get("/files/link", params={"key": KEY})
    assert response.status_code == 404
    assert response.json()["error"] == "RESOURCE_NOT_FOUND"


async def test_upload_service_requires_database(embedding_client) -> None:
    response = await embedding_client.post("/files")
    assert response.status_code == 503
    assert response.json()["error"] == "SERVICE_UNAVAILABLE"


async def test_removal_service_requires_database(embedding_client) -> None:
    response = await embedding_client.delete("/files")
    assert response.status_code == 503
