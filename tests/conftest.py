"""
Test Suite Configuration
"""
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from dcd_store.config import Settings
from dcd_store.database.models import Base
from dcd_store.properties.relational import RelationalValueStore
from dcd_store.properties.service import PropertyService
from dcd_store.properties.timeseries import InfluxClient, TimeSeriesValueStore
from dcd_store.streaming.publisher import Publisher, PublishError


class RecordingPublisher(Publisher):
    """Publisher that keeps every published batch in memory"""
    
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.published: List[Dict[str, Any]] = []
    
    async def publish(
        self,
        topic: str,
        messages: List[Any],
        partition_key: Optional[str] = None,
    ) -> None:
        if self.fail:
            raise PublishError("broker down")
        self.published.append({"topic": topic, "messages": messages, "key": partition_key})


class FakeInflux:
    """
    httpx handler standing in for the InfluxDB HTTP API.
    
    Records write bodies and query strings; queries answer with the
    configured series values.
    """
    
    def __init__(self, series_values: Optional[List[List[Any]]] = None, status_code: int = 200):
        self.series_values = series_values
        self.status_code = status_code
        self.writes: List[str] = []
        self.write_params: List[Dict[str, str]] = []
        self.queries: List[str] = []
    
    def __call__(self, request: httpx.Request) -> httpx.Response:
        if self.status_code >= 400:
            return httpx.Response(self.status_code, json={"error": "field type conflict"})
        if request.url.path == "/write":
            self.writes.append(request.content.decode("utf-8"))
            self.write_params.append(dict(request.url.params))
            return httpx.Response(204)
        self.queries.append(request.url.params["q"])
        if self.series_values is None:
            return httpx.Response(200, json={"results": [{"statement_id": 0}]})
        return httpx.Response(
            200,
            json={"results": [{"statement_id": 0, "series": [{"name": "m", "values": self.series_values}]}]},
        )


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(APP_ENV="testing")


@pytest_asyncio.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with the full schema"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )
    
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    
    yield engine
    
    await engine.dispose()


@pytest.fixture
def store(test_engine) -> RelationalValueStore:
    return RelationalValueStore(test_engine)


@pytest.fixture
def fake_influx() -> FakeInflux:
    return FakeInflux()


@pytest_asyncio.fixture
async def influx_client(fake_influx) -> AsyncGenerator[InfluxClient, None]:
    client = InfluxClient("http://influx.test", "dcd", transport=httpx.MockTransport(fake_influx))
    yield client
    await client.aclose()


@pytest.fixture
def ts_store(influx_client) -> TimeSeriesValueStore:
    return TimeSeriesValueStore(influx_client, precision="ms")


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def service(store, publisher, ts_store) -> PropertyService:
    return PropertyService(store, publisher=publisher, timeseries=ts_store, mirror_writes=False)


@pytest.fixture
def fixed_clock() -> Callable[[], int]:
    return lambda: 1_700_000_000_000
