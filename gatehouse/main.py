"""
FastAPI application entrypoint for the gatehouse auth service.
"""

from __future__ import annotations

from fastapi import FastAPI

from gatehouse.api.errors import register_exception_handlers
from gatehouse.api.routes import router as api_router
from gatehouse.core.config import get_settings
from gatehouse.core.logging import configure_logging


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Gatehouse",
        version="0.1.0",
        description="Discord login, dashboard sessions and bot credential lookups.",
    )
    app.include_router(api_router, prefix="/api")
    register_exception_handlers(app)
    return app


app = create_app()

__all__ = ["app", "create_app"]
