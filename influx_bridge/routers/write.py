"""POST /write – forward a batch of points to InfluxDB.

The handler returns as soon as the batch has been handed to the InfluxDB
client.  Delivery failures reported later by InfluxDB (timeouts, non-2xx
statuses) are logged by the client and never reach the producer; only
failures to build or submit the request are turned into an error response.

If the InfluxDB database could not be created, the batch is dropped and the
response says so.  Nothing is queued for later.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from influx_bridge.clients.influxdb import InfluxDBClient, InfluxDBError
from influx_bridge.deps import get_influxdb_client
from influx_bridge.models import WriteRequest, WriteResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["write"])


@router.post(
    "/write",
    response_model=WriteResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Forward points to InfluxDB",
    description=(
        "Serializes the points to line protocol and submits them to the "
        "InfluxDB /write endpoint without waiting for the result."
    ),
)
async def write_points(
    batch: WriteRequest,
    influx: InfluxDBClient = Depends(get_influxdb_client),
) -> WriteResponse:
    """Submit *batch* to InfluxDB (fire-and-forget)."""
    try:
        task = await influx.write(batch.points)
    except InfluxDBError as exc:
        logger.error("Failed to submit %d point(s) to InfluxDB: %s", len(batch.points), exc)
        raise HTTPException(
            status_code=500,
            detail=f"InfluxDB submission failed: {exc}",
        ) from exc

    if task is None:
        return WriteResponse(
            status="skipped",
            points=len(batch.points),
            reason="InfluxDB database is not ready",
        )
    return WriteResponse(status="submitted", points=len(batch.points))
