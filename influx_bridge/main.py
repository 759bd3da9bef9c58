import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from influx_bridge.clients.influxdb import InfluxDBClient
from influx_bridge.deps import get_settings
from influx_bridge.routers import health, write


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # One client for the whole process; the database is created on startup
    # (or on the first write if InfluxDB is not reachable yet).
    client = await InfluxDBClient.connect(get_settings())
    app.state.influx = client
    try:
        yield
    finally:
        await client.aclose()


app = FastAPI(
    title="InfluxDB Line Bridge",
    description=(
        "Relay that forwards batches of measurement points to InfluxDB "
        "over the HTTP line protocol without waiting for delivery."
    ),
    version="0.1.0",
    # root_path allows FastAPI to generate correct OpenAPI URLs when served
    # behind a reverse proxy at a sub-path (e.g. nginx /api/ prefix).
    root_path=os.getenv("ROOT_PATH", ""),
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """422 without echoing the rejected input.

    A rejected NaN/Infinity field value cannot be rendered back as strict JSON.
    """
    errors = [
        {key: value for key, value in error.items() if key != "input"}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_encoder(errors)},
    )


app.include_router(health.router)
app.include_router(write.router)
