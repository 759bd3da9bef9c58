"""Unit tests for Settings and building a client from them."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from influx_bridge.clients.influxdb import InfluxDBClient
from influx_bridge.config import Settings


def test_defaults() -> None:
    settings = Settings(_env_file=None)
    assert settings.influx_connect_string == "http://influxdb:8086"
    assert settings.influx_retention is None
    assert settings.influx_consistency is None
    assert settings.influx_tags == {}


def test_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("INFLUX_CONNECT_STRING", "http://metrics.local:8086/")
    monkeypatch.setenv("INFLUX_DATABASE", "kafka")
    monkeypatch.setenv("INFLUX_RETENTION", "autogen")
    monkeypatch.setenv("INFLUX_CONSISTENCY", "quorum")
    monkeypatch.setenv("INFLUX_TAGS", '{"env": "prod", "dc": "eu-1"}')

    settings = Settings(_env_file=None)

    assert settings.influx_connect_string == "http://metrics.local:8086"
    assert settings.influx_database == "kafka"
    assert settings.influx_retention == "autogen"
    assert settings.influx_consistency == "quorum"
    assert settings.influx_tags == {"env": "prod", "dc": "eu-1"}


def test_unknown_consistency_level_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("INFLUX_CONSISTENCY", "most")
    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_settings_are_read_only() -> None:
    settings = Settings(_env_file=None)
    with pytest.raises(ValidationError):
        settings.influx_database = "other"  # type: ignore[misc]


def test_client_built_from_settings_starts_not_ready() -> None:
    client = InfluxDBClient(Settings(_env_file=None, influx_buffer_size=1024))
    assert client.settings.influx_buffer_size == 1024
    assert not client.is_ready
    assert client.pending == 0
