"""Shared fixtures: temporary TinyDB, controllable clock, stub upstream client."""

from unittest.mock import AsyncMock

import pytest
import respx

from taskboard.clients.base import FetchResult, UpstreamClient
from taskboard.data_controller import DataController


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class StubClient(UpstreamClient):
    widget_type = "stub"
    default_refresh_seconds = 60
    cache_settings = ("count",)

    def __init__(self, data=None):
        self.fetch = AsyncMock(return_value=FetchResult(data=data if data is not None else {"items": [1]}))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def data_controller(tmp_path):
    controller = DataController(tmp_path / "taskboard.json")
    yield controller
    controller.close()


@pytest.fixture
def stub_client():
    return StubClient()


@pytest.fixture
def make_stub_client():
    def _make(widget_type: str = "stub", data=None) -> StubClient:
        client = StubClient(data)
        client.widget_type = widget_type
        return client
    return _make


@pytest.fixture
def stub_widget(data_controller):
    """A stored widget of the stub type; returns its id."""
    return data_controller.create_widget("stub", settings={"count": "10"})["id"]


@pytest.fixture
def mock_router():
    with respx.mock(assert_all_called=False) as router:
        yield router
