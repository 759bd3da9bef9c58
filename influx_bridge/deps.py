"""FastAPI dependency providers.

The InfluxDB client is created once in the application lifespan and handed
out from ``app.state``.  Tests override these functions via
``app.dependency_overrides``.
"""

from functools import lru_cache

from fastapi import Request

from influx_bridge.clients.influxdb import InfluxDBClient
from influx_bridge.config import Settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def get_influxdb_client(request: Request) -> InfluxDBClient:
    client: InfluxDBClient = request.app.state.influx
    return client
