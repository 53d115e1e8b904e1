"""Application lifespan: startup and shutdown.

Single place for startup/shutdown wiring. The storage backend is built
once here from settings and owned by app.state; routes and dependencies
read it from there instead of constructing their own.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from cloudvault.core.config import get_settings
from cloudvault.infrastructure.external.storage import StorageFactory

logger = logging.getLogger(__name__)


@asynccontextmanager
async def create_lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Run startup then yield; on exit run shutdown.

    Startup: storage backend (unless a test already set app.state.storage).
    Shutdown: SQL engine dispose.
    """
    settings = get_settings()

    # ---- Startup ----
    if getattr(app.state, "storage", None) is None:
        app.state.storage = StorageFactory.create_storage_backend(settings)
    logger.info(
        "%s %s started with %s storage",
        settings.app_name,
        settings.app_version,
        app.state.storage.kind,
    )

    yield

    # ---- Shutdown ----
    from cloudvault.infrastructure.persistence import database

    await database.dispose_engine()
