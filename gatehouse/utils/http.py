"""HTTP utilities shared by the upstream clients.

Upstream calls are attempted once; failures are classified and surfaced to
the caller, which owns any retry policy.
"""

from __future__ import annotations

from typing import Any

import httpx

from gatehouse.core.errors import UpstreamError


def ensure_success(response: httpx.Response, *, service: str) -> httpx.Response:
    """Raise ``UpstreamError`` with status and body preserved on non-2xx."""
    if response.is_success:
        return response
    raise UpstreamError(service, response.status_code, response.text)


def json_or_none(response: httpx.Response) -> Any:
    """Decode a JSON body, treating ``204 No Content`` as ``None``."""
    if response.status_code == 204 or not response.content:
        return None
    return response.json()


def build_async_client(
    *,
    timeout: float,
    transport: httpx.AsyncBaseTransport | None = None,
    **kwargs: Any,
) -> httpx.AsyncClient:
    """Create a short-lived client; tests inject an ``httpx.MockTransport``."""
    return httpx.AsyncClient(timeout=timeout, transport=transport, **kwargs)


__all__ = ["build_async_client", "ensure_success", "json_or_none"]
