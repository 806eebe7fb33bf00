from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from s3ext.client import ObjectClient
from s3ext.emulator.api import Config, make_app
from s3ext.emulator.metadata import Catalog
from s3ext.emulator.metadata.memory import MemoryMetadataBackend
from s3ext.emulator.storage.memory import InMemoryBackend
from s3ext.signing import PathStyleUrls

EMULATOR_HOST = "s3.test"


@dataclass
class FakeClock:
    now: datetime = field(default_factory=lambda: datetime(2024, 1, 2, 12, 0, 0, tzinfo=timezone.utc))

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config(clock: FakeClock) -> Config:
    return Config(host=EMULATOR_HOST, retention_policies={"hold-me": 5}, clock=clock)


@pytest.fixture
def fs() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture
def app(fs: InMemoryBackend, config: Config) -> FastAPI:
    return make_app(fs, Catalog(MemoryMetadataBackend()), config)


@pytest.fixture
async def client(app: FastAPI) -> AsyncIterator[ObjectClient]:
    """An ObjectClient wired to the emulator in-process."""
    async with AsyncClient(transport=ASGITransport(app=app)) as http:
        yield ObjectClient(http, PathStyleUrls(f"http://{EMULATOR_HOST}"))
