"""Pytest configuration and fixtures for unit tests."""

from collections.abc import AsyncGenerator

import httpx
import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from threadflow.core.config import Settings
from threadflow.domain import Actor
from threadflow.interface.remote_store import RemoteStoreClient
from tests.unit.fake_store import FakeRemoteStore


@pytest.fixture
def fake_store() -> FakeRemoteStore:
    """Provides a fresh in-memory Remote Store for each test."""
    return FakeRemoteStore()


@pytest.fixture
def client(fake_store: FakeRemoteStore, test_settings: Settings) -> RemoteStoreClient:
    """RemoteStoreClient talking to the in-memory store through the ASGI transport."""
    return RemoteStoreClient(
        base_url=test_settings.api_base_url,
        token=test_settings.api_token,
        transport=httpx.ASGITransport(app=fake_store.app),
    )


def _unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("Connection refused", request=request)


@pytest.fixture
def offline_client(test_settings: Settings) -> RemoteStoreClient:
    """RemoteStoreClient whose every request fails at the transport level."""
    return RemoteStoreClient(
        base_url=test_settings.api_base_url,
        token=test_settings.api_token,
        transport=httpx.MockTransport(_unreachable),
    )


@pytest.fixture
def developer() -> Actor:
    return Actor(username="bob", full_name="Bob Builder", role="Developer")


@pytest.fixture
def reviewer() -> Actor:
    return Actor(username="rita", full_name="Rita Reviewer", role="Reviewer")


@pytest.fixture
async def scheduler() -> AsyncGenerator[AsyncIOScheduler, None]:
    """A running AsyncIOScheduler shared by the views under test, shut down afterwards."""
    instance = AsyncIOScheduler()
    instance.start()
    yield instance
    if instance.running:
        instance.shutdown(wait=False)
