"""GET /health – liveness check."""

from fastapi import APIRouter, Depends

from influx_bridge.clients.influxdb import InfluxDBClient
from influx_bridge.deps import get_influxdb_client
from influx_bridge.models import HealthResponse

router = APIRouter(tags=["ops"])


@router.get("/health", response_model=HealthResponse)
async def health(
    influx: InfluxDBClient = Depends(get_influxdb_client),
) -> HealthResponse:
    """Return service liveness and whether the InfluxDB database exists."""
    return HealthResponse(database_ready=influx.is_ready)
