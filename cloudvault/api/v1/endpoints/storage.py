"""Local storage download route.

Resolves the token URLs issued by the local backend's get_signed_url and
streams the referenced object. Remote backends hand out presigned URLs and
never route downloads through here.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from cloudvault.api.v1.dependencies import get_storage_backend
from cloudvault.application.interfaces.storage import IStorageBackend

router = APIRouter()


@router.get("/download/{token}")
async def download_by_token(
    token: str,
    storage: Annotated[IStorageBackend, Depends(get_storage_backend)],
) -> StreamingResponse:
    """Stream the object behind an unexpired local download token; 404 otherwise."""
    validate = getattr(storage, "validate_download_token", None)
    key = validate(token) if validate is not None else None
    if key is None:
        raise HTTPException(status_code=404, detail="Download link not found or expired")
    stat = await storage.stat(key)
    if not stat.exists:
        raise HTTPException(status_code=404, detail="Download link not found or expired")
    filename = key.rsplit("/", 1)[-1]
    return StreamingResponse(
        storage.get_stream(key),
        media_type=stat.content_type or "application/octet-stream",
        headers={
            "Content-Length": str(stat.size_bytes),
            "Content-Disposition": f'attachment; filename="{filename}"',
        },
    )
