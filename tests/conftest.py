from typing import Any, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio

from reality_check.context import ContextRetriever
from reality_check.llm_backends import JsonBackend
from reality_check.wiki_client import WikipediaClient


class FakeBackend(JsonBackend):
    """Configured backend that returns a canned payload, or raises."""

    name = "fake"
    available = True

    def __init__(self, payload: Optional[Dict[str, Any]] = None, error: Optional[Exception] = None) -> None:
        self.payload = payload or {}
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def complete_json(self, **kwargs: Any) -> Dict[str, Any]:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.payload


def offline(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("network unreachable", request=request)


@pytest.fixture
def fake_backend():
    return FakeBackend


@pytest_asyncio.fixture
async def make_client():
    clients = []

    def _make(handler):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield _make
    for c in clients:
        await c.aclose()


@pytest.fixture
def offline_client(make_client):
    return make_client(offline)


@pytest.fixture
def offline_retriever(offline_client):
    # Wikipedia unreachable: every topic resolves to a mock summary
    return ContextRetriever(WikipediaClient(offline_client))
