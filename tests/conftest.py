"""Shared fixtures for dealdesk tests.

Provides:
- In-memory session storage and a SessionStore built on it
- Settings pointed at a fake base URL and a temp session file
- FakeDealService: an httpx.MockTransport router that records requests
- RemoteClient / DealGateway wired to the fake service
"""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator, Callable
from typing import Any

import httpx
import pytest
import pytest_asyncio

from src.dealdesk.config import Settings
from src.dealdesk.core.http import RemoteClient
from src.dealdesk.core.session import Role, SessionStore
from src.dealdesk.core.storage import MemoryStorage
from src.dealdesk.deals.gateway import DealGateway

BASE_URL = "https://deals.test"


class FakeDealService:
    """Route table keyed by (method, path). Unknown routes answer 404."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Any] = {}
        self.calls: list[httpx.Request] = []

    def add(
        self,
        method: str,
        path: str,
        status: int = 200,
        body: Any = None,
        *,
        handler: Callable[[httpx.Request], httpx.Response] | None = None,
    ) -> None:
        self.routes[(method, path)] = handler or (status, body)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"message": f"No route for {request.url.path}"})
        if callable(route):
            return route(request)
        status, body = route
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    def paths(self) -> list[tuple[str, str]]:
        return [(r.method, r.url.path) for r in self.calls]

    def body_of(self, index: int) -> Any:
        return json.loads(self.calls[index].content)


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def store(storage: MemoryStorage) -> SessionStore:
    return SessionStore(storage)


@pytest.fixture
def buyer_store(store: SessionStore) -> SessionStore:
    """Store holding an authenticated buyer session."""
    store.establish("buyer-token-123456", "buyer-1", Role.BUYER)
    return store


@pytest.fixture
def seller_store(store: SessionStore) -> SessionStore:
    """Store holding an authenticated seller session."""
    store.establish("seller-token-123456", "seller-1", Role.SELLER)
    return store


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        API_URL=BASE_URL,
        HTTP_TIMEOUT=1.0,
        SESSION_FILE=tmp_path / "session.json",
    )


@pytest.fixture
def service() -> FakeDealService:
    return FakeDealService()


@pytest_asyncio.fixture
async def remote(
    store: SessionStore, settings: Settings, service: FakeDealService
) -> AsyncGenerator[RemoteClient, None]:
    client = RemoteClient(store, settings, transport=httpx.MockTransport(service.handle))
    yield client
    await client.aclose()


@pytest.fixture
def gateway(remote: RemoteClient) -> DealGateway:
    return DealGateway(remote)
