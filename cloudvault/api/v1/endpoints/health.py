"""Health check endpoint. Used for liveness probes."""

from typing import Annotated

from fastapi import APIRouter, Depends

from cloudvault.api.v1.dependencies import get_storage_backend
from cloudvault.application.interfaces.storage import IStorageBackend
from cloudvault.schemas.health import HealthResponse

router = APIRouter()


@router.get("", response_model=HealthResponse)
def health_check(
    storage: Annotated[IStorageBackend, Depends(get_storage_backend)],
) -> HealthResponse:
    """Return ok status and the configured storage backend."""
    return HealthResponse(storage_backend=storage.kind)
