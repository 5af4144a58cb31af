"""Exception handlers rendering errors as ``{"error": code}`` payloads."""

from __future__ import annotations

import logging

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from gatehouse.core.errors import GatehouseError

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Raised by routes and dependencies to return a stable error code."""

    def __init__(self, status_code: int, error_code: str) -> None:
        super().__init__(error_code)
        self.status_code = status_code
        self.error_code = error_code


def _error_response(status_code: int, error_code: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error_code})


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers for API errors and unexpected upstream failures."""

    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
        return _error_response(exc.status_code, exc.error_code)

    @app.exception_handler(GatehouseError)
    async def handle_service_error(request: Request, exc: GatehouseError) -> JSONResponse:
        logger.error(
            "%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return _error_response(500, "server_error")

    @app.exception_handler(httpx.HTTPError)
    async def handle_transport_error(request: Request, exc: httpx.HTTPError) -> JSONResponse:
        logger.error(
            "%s %s upstream transport failure", request.method, request.url.path, exc_info=exc
        )
        return _error_response(500, "server_error")


__all__ = ["ApiError", "register_exception_handlers"]
