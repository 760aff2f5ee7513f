"""Shared fixtures: an in-memory store and a patched HTTP client."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from blogroll.storage.database import init_database
from blogroll.storage.document_store import DocumentStore


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def store():
    """An initialized in-memory document store."""
    store = await DocumentStore.open(":memory:")
    await init_database(store)
    yield store
    await store.close()


def make_response(text: str = "", status_code: int = 200, content_type: str = "application/rss+xml"):
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    response.headers = {"content-type": content_type}
    return response


class Routes(dict):
    """URL -> response (or exception) map with a record of requested URLs."""

    def __init__(self):
        super().__init__()
        self.calls = []

    def add(self, url: str, text: str = "", status_code: int = 200, content_type: str = "application/rss+xml"):
        self[url] = make_response(text, status_code, content_type)

    def fail(self, url: str, error: BaseException):
        self[url] = error

    def stall(self, url: str, seconds: float = 5.0):
        self[url] = seconds

    async def respond(self, url, **kwargs):
        self.calls.append(url)
        target = self.get(url)
        if target is None:
            return make_response("", 404, "text/html")
        if isinstance(target, BaseException):
            raise target
        if isinstance(target, float):
            await asyncio.sleep(target)
            return make_response("", 504, "text/plain")
        return target


@pytest.fixture
def http_routes():
    """Patch httpx.AsyncClient so GET/HEAD are answered from a ``Routes`` map.

    Unknown URLs answer 404.
    """
    routes = Routes()

    with patch("blogroll.services.http.httpx.AsyncClient") as mock_client:
        mock_instance = AsyncMock()
        mock_instance.get = routes.respond
        mock_instance.head = routes.respond
        mock_instance.__aenter__ = AsyncMock(return_value=mock_instance)
        mock_instance.__aexit__ = AsyncMock(return_value=None)
        mock_client.return_value = mock_instance
        yield routes
