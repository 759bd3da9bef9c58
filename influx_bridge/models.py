"""Pydantic request / response models for the relay API."""

from pydantic import BaseModel, Field

from influx_bridge.clients.line_protocol import Point

# ── Write ─────────────────────────────────────────────────────────────────────


class WriteRequest(BaseModel):
    """A batch of points to forward to InfluxDB in a single request."""

    points: list[Point] = Field(
        default_factory=list, description="Points, written in the given order"
    )


class WriteResponse(BaseModel):
    status: str = Field(..., description="submitted | skipped")
    points: int = 0
    reason: str | None = None


# ── Health ────────────────────────────────────────────────────────────────────


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str = "influx-line-bridge"
    database_ready: bool = False
