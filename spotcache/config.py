"""Runtime settings read from the environment."""

from __future__ import annotations

import os
import typing as t
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from dateutil import parser as dateparser

from .energycharts import ENERGY_CHARTS_BASE_URL
from .refresh import DEFAULT_INTERVAL, DEFAULT_LOOKBACK

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 2002
DEFAULT_INITIAL_LOAD_START = datetime(2018, 10, 1, tzinfo=UTC)
DEFAULT_HTTP_TIMEOUT_SECONDS = 60.0


class ConfigError(ValueError):
    """An environment variable holds a value that cannot be used."""


def _hours(env: t.Mapping[str, str], name: str, default: timedelta) -> timedelta:
    raw = env.get(name)
    if raw is None:
        return default
    try:
        hours = float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number of hours, got {raw!r}") from exc
    if hours <= 0:
        raise ConfigError(f"{name} must be positive, got {raw!r}")
    return timedelta(hours=hours)


def _instant(env: t.Mapping[str, str], name: str, default: datetime) -> datetime:
    raw = env.get(name)
    if raw is None:
        return default
    try:
        value = dateparser.isoparse(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an ISO 8601 timestamp, got {raw!r}") from exc
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


@dataclass(frozen=True)
class Settings:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    base_url: str = ENERGY_CHARTS_BASE_URL
    bidding_zone: str | None = None
    refresh_interval: timedelta = DEFAULT_INTERVAL
    refresh_lookback: timedelta = DEFAULT_LOOKBACK
    initial_load_start: datetime = DEFAULT_INITIAL_LOAD_START
    http_timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS
    log_level: str = "INFO"
    version: str = "dev"

    @classmethod
    def from_env(cls, env: t.Mapping[str, str] | None = None) -> Settings:
        env = os.environ if env is None else env

        port_raw = env.get("SPOT_PORT", str(DEFAULT_PORT))
        try:
            port = int(port_raw)
        except ValueError as exc:
            raise ConfigError(f"SPOT_PORT must be an integer, got {port_raw!r}") from exc
        if not 0 <= port <= 65535:
            raise ConfigError(f"SPOT_PORT out of range: {port}")

        timeout_raw = env.get("HTTP_TIMEOUT_SECONDS", str(DEFAULT_HTTP_TIMEOUT_SECONDS))
        try:
            http_timeout = float(timeout_raw)
        except ValueError as exc:
            raise ConfigError(
                f"HTTP_TIMEOUT_SECONDS must be a number, got {timeout_raw!r}",
            ) from exc
        if http_timeout <= 0:
            raise ConfigError(f"HTTP_TIMEOUT_SECONDS must be positive, got {timeout_raw!r}")

        return cls(
            host=env.get("SPOT_HOST", DEFAULT_HOST),
            port=port,
            base_url=env.get("ENERGY_CHARTS_BASE_URL", ENERGY_CHARTS_BASE_URL),
            bidding_zone=env.get("ENERGY_CHARTS_BZN") or None,
            refresh_interval=_hours(env, "REFRESH_INTERVAL_HOURS", DEFAULT_INTERVAL),
            refresh_lookback=_hours(env, "REFRESH_LOOKBACK_HOURS", DEFAULT_LOOKBACK),
            initial_load_start=_instant(
                env,
                "INITIAL_LOAD_START",
                DEFAULT_INITIAL_LOAD_START,
            ),
            http_timeout=http_timeout,
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            version=env.get("SPOT_VERSION", "dev"),
        )
