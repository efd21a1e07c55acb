"""Tests for environment-driven settings."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from spotcache.config import ConfigError, Settings


def test_defaults():
    settings = Settings.from_env({})

    assert settings.port == 2002
    assert settings.base_url == "https://api.energy-charts.info"
    assert settings.bidding_zone is None
    assert settings.refresh_interval == timedelta(hours=6)
    assert settings.refresh_lookback == timedelta(hours=7)
    assert settings.initial_load_start == datetime(2018, 10, 1, tzinfo=UTC)
    assert settings.log_level == "INFO"
    assert settings.version == "dev"


def test_overrides():
    settings = Settings.from_env(
        {
            "SPOT_HOST": "127.0.0.1",
            "SPOT_PORT": "8080",
            "ENERGY_CHARTS_BZN": "AT",
            "REFRESH_INTERVAL_HOURS": "0.5",
            "REFRESH_LOOKBACK_HOURS": "24",
            "INITIAL_LOAD_START": "2023-01-01T00:00:00+01:00",
            "HTTP_TIMEOUT_SECONDS": "5",
            "LOG_LEVEL": "debug",
            "SPOT_VERSION": "abc123",
        },
    )

    assert settings.host == "127.0.0.1"
    assert settings.port == 8080
    assert settings.bidding_zone == "AT"
    assert settings.refresh_interval == timedelta(minutes=30)
    assert settings.refresh_lookback == timedelta(hours=24)
    assert settings.initial_load_start == datetime(2022, 12, 31, 23, 0, tzinfo=UTC)
    assert settings.http_timeout == 5.0
    assert settings.log_level == "DEBUG"
    assert settings.version == "abc123"


def test_naive_start_is_utc():
    settings = Settings.from_env({"INITIAL_LOAD_START": "2020-05-01"})

    assert settings.initial_load_start == datetime(2020, 5, 1, tzinfo=UTC)


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("SPOT_PORT", "http"),
        ("SPOT_PORT", "70000"),
        ("REFRESH_INTERVAL_HOURS", "soon"),
        ("REFRESH_INTERVAL_HOURS", "0"),
        ("REFRESH_LOOKBACK_HOURS", "-1"),
        ("INITIAL_LOAD_START", "yesterday"),
        ("HTTP_TIMEOUT_SECONDS", "forever"),
        ("HTTP_TIMEOUT_SECONDS", "0"),
        ("HTTP_TIMEOUT_SECONDS", "-5"),
    ],
)
def test_invalid_values(name, value):
    with pytest.raises(ConfigError, match=name):
        Settings.from_env({name: value})
