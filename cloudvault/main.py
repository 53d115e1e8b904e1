"""FastAPI application entry point.

Wiring only: lifespan, exception handlers, middleware, routers.
See cloudvault.core.lifespan and cloudvault.core.exception_handlers.

Settings are loaded inside create_app() so that tests can set env (and
clear the get_settings cache) before calling create_app().
"""

from fastapi import FastAPI

from cloudvault.api.v1.router import api_router
from cloudvault.core.config import get_settings
from cloudvault.core.exception_handlers import register_exception_handlers
from cloudvault.core.lifespan import create_lifespan
from cloudvault.middleware import RequestIDMiddleware
from cloudvault.shared.telemetry.logging import setup_logging


def create_app() -> FastAPI:
    """Build and return the FastAPI application. Settings are resolved here (deferred from import)."""
    settings = get_settings()
    setup_logging()
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=create_lifespan,
    )

    register_exception_handlers(app)
    app.add_middleware(RequestIDMiddleware, header_name=settings.request_id_header)
    app.include_router(api_router, prefix="/api/v1")
    return app
