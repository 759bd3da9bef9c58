"""Shared pytest fixtures and helpers.

InfluxDB is replaced by ``FakeInfluxDB``, an ``httpx.MockTransport`` handler
that records every request and answers with scripted outcomes, so tests run
without a live server.  Router tests swap the client for a ``MagicMock`` via
FastAPI's ``dependency_overrides`` mechanism.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient

from influx_bridge.clients.influxdb import InfluxDBClient
from influx_bridge.config import Settings
from influx_bridge.deps import get_influxdb_client
from influx_bridge.main import app

# ── Constants ─────────────────────────────────────────────────────────────────

INFLUX_URL = "http://influxdb.test:8086"
DATABASE = "telemetry"
USERNAME = "writer"
PASSWORD = "s3cret"
# base64("writer:s3cret")
BASIC_AUTH = "Basic d3JpdGVyOnMzY3JldA=="

# An outcome is either an HTTP status code or a transport error class.
Outcome = int | type[httpx.TransportError]


# ── Fake InfluxDB server ──────────────────────────────────────────────────────


class FakeInfluxDB:
    """Scripted InfluxDB 1.x endpoint for ``httpx.MockTransport``.

    ``query_outcomes`` / ``write_outcomes`` are consumed one per request;
    once exhausted, ``/query`` answers 200 and ``/write`` answers 204.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.query_outcomes: list[Outcome] = []
        self.write_outcomes: list[Outcome] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/query":
            outcome = self.query_outcomes.pop(0) if self.query_outcomes else 200
        else:
            outcome = self.write_outcomes.pop(0) if self.write_outcomes else 204
        if isinstance(outcome, int):
            return httpx.Response(outcome)
        raise outcome("connection refused", request=request)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def by_path(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    @property
    def writes(self) -> list[httpx.Request]:
        return self.by_path("/write")

    @property
    def queries(self) -> list[httpx.Request]:
        return self.by_path("/query")


def make_settings(**overrides: Any) -> Settings:
    """Settings pointing at the fake server; keyword arguments override fields."""
    values: dict[str, Any] = {
        "influx_connect_string": INFLUX_URL,
        "influx_database": DATABASE,
        "influx_username": USERNAME,
        "influx_password": PASSWORD,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_client(fake: FakeInfluxDB, **overrides: Any) -> InfluxDBClient:
    """Build a client wired to *fake*; keyword arguments override settings fields."""
    return InfluxDBClient(make_settings(**overrides), transport=fake.transport())


# ── Fixtures ──────────────────────────────────────────────────────────────────


@pytest.fixture()
def anyio_backend() -> str:
    # The client schedules its writes with asyncio.create_task.
    return "asyncio"


@pytest.fixture()
def fake_influx() -> FakeInfluxDB:
    return FakeInfluxDB()


@pytest.fixture()
def mock_influxdb() -> InfluxDBClient:
    client: InfluxDBClient = MagicMock(spec=InfluxDBClient)
    client.write = AsyncMock(return_value=MagicMock())  # type: ignore[method-assign]
    client.is_ready = True  # type: ignore[misc]
    return client


@pytest.fixture()
def test_client(mock_influxdb: InfluxDBClient) -> Iterator[TestClient]:
    app.dependency_overrides[get_influxdb_client] = lambda: mock_influxdb
    yield TestClient(app)
    app.dependency_overrides.clear()
