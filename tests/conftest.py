"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from busline_api.config import Settings
from busline_api.main import create_app
from busline_api.models.reference import ReferenceSnapshot
from busline_api.runtime import Runtime

from .fixtures.gtfs_fixture import TEST_TPC, build_snapshot


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated from the environment, with polling disabled."""
    return Settings(
        _env_file=None,
        environment="development",
        poller_auto_start=False,
        route_data_path=str(tmp_path / "route.json"),
        gtfs_download_dir=str(tmp_path / "gtfs"),
        default_tpc=TEST_TPC,
        default_direction=1,
        sse_heartbeat_sec=0.05,
    )


@pytest.fixture
def snapshot() -> ReferenceSnapshot:
    return build_snapshot()


@pytest.fixture
def runtime(settings: Settings, snapshot: ReferenceSnapshot) -> Runtime:
    """Runtime with the sample snapshot installed and no background tasks."""
    rt = Runtime(settings)
    rt.store.install(snapshot)
    return rt


@pytest.fixture
async def client(runtime: Runtime) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing."""
    transport = ASGITransport(app=create_app(runtime))
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
