"""Application configuration loaded from environment variables."""

from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """All settings are read from environment variables (case-insensitive).

    The object is frozen: the write client only ever reads it.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", frozen=True)

    # ── InfluxDB endpoint ─────────────────────────────────────────────────────
    influx_connect_string: str = "http://influxdb:8086"
    influx_database: str = "metrics"
    influx_username: str = ""
    influx_password: str = ""

    # ── Write parameters (passed through as /write query parameters) ─────────
    influx_retention: str | None = None
    influx_consistency: Literal["any", "one", "quorum", "all"] | None = None

    # Tags added to every point that does not already carry the same key.
    # Format: '{"env": "prod", "region": "eu-1"}'
    influx_tags: dict[str, str] = {}

    # ── Transport ─────────────────────────────────────────────────────────────
    influx_timeout: float = 10.0
    # Initial capacity of the line-protocol encoding buffer, in bytes.
    influx_buffer_size: int = 64 * 1024

    @field_validator("influx_connect_string")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")
