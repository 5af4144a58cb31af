"""Pytest configuration shared across the suite."""

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

import pytest

from fakes import InMemoryDatastore


@pytest.fixture
def anyio_backend() -> str:
    """Route tests drive the ASGI app on asyncio only."""
    return "asyncio"


@pytest.fixture
def datastore() -> InMemoryDatastore:
    return InMemoryDatastore()
