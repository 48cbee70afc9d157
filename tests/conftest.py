"""Test configuration: shared fixtures for the service graph and HTTP client."""

from __future__ import annotations

import random
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from barbuddy.config import Settings
from barbuddy.services.container import ServiceContainer, build_container
from tests.fakes import FakeProvider, MemoryBlobStore, RecordingSleep, make_settings


@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
  return make_settings(tmp_path)


@pytest.fixture
def blob_store() -> MemoryBlobStore:
  return MemoryBlobStore()


@pytest.fixture
def provider() -> FakeProvider:
  return FakeProvider()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
  return RecordingSleep()


@pytest.fixture
def services(settings: Settings, blob_store: MemoryBlobStore, provider: FakeProvider, recording_sleep: RecordingSleep) -> ServiceContainer:
  return build_container(settings, store=blob_store, provider=provider, sleep=recording_sleep, rng=random.Random(7))


@pytest.fixture
async def async_client(services: ServiceContainer):
  from barbuddy.main import app

  app.state.services = services
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
    yield client
  del app.state.services
