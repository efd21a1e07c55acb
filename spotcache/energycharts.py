from __future__ import annotations

import logging
import typing as t
from dataclasses import dataclass
from datetime import UTC, datetime

import httpx
from pydantic import AliasChoices, BaseModel, Field, ValidationError

# The data is licensed as CC BY 4.0 from Bundesnetzagentur | SMARD.de
ENERGY_CHARTS_BASE_URL = "https://api.energy-charts.info"
PRICE_PATH = "/price"
EXPECTED_UNIT = "EUR/MWh"
logger = logging.getLogger("spotcache.energycharts")


class PriceFetchError(Exception):
    """Raised when the price API cannot deliver a usable price series."""


class UnexpectedStatus(PriceFetchError):
    def __init__(self, status_code: int, reason: str) -> None:
        super().__init__(f"unexpected response status: {status_code} {reason}")
        self.status_code = status_code
        self.reason = reason


class UnexpectedUnit(PriceFetchError):
    def __init__(self, unit: str) -> None:
        super().__init__(f"unexpected unit: {unit}")
        self.unit = unit


class EndpointDeprecated(PriceFetchError):
    def __init__(self, url: str) -> None:
        super().__init__(f"api for {url} is marked deprecated")
        self.url = url


class LengthMismatch(PriceFetchError):
    def __init__(self, timestamps: int, prices: int) -> None:
        super().__init__(
            "expected equal number of timestamps and prices in response, "
            f"got {timestamps} and {prices}",
        )
        self.timestamps = timestamps
        self.prices = prices


@dataclass(frozen=True)
class PriceSample:
    timestamp: datetime
    price: float

    @property
    def unix_seconds(self) -> int:
        return int(self.timestamp.timestamp())


@dataclass(frozen=True)
class FetchWindow:
    start: datetime | None = None
    end: datetime | None = None


class MarketPrices(BaseModel):
    """Response body of the ``/price`` endpoint.

    Upstream sends lowercase ``unit``/``deprecated``; the capitalised spelling
    is accepted as well. Missing fields fall back to empty values so that the
    validation in :func:`parse_prices` reports what is actually wrong.
    """

    timestamps: list[int] = Field(default_factory=list, alias="unix_seconds")
    prices: list[float] = Field(default_factory=list, alias="price")
    unit: str = Field(default="", validation_alias=AliasChoices("unit", "Unit"))
    deprecated: bool = Field(
        default=False,
        validation_alias=AliasChoices("deprecated", "Deprecated"),
    )


def _rfc3339(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def build_params(
    window: FetchWindow,
    bidding_zone: str | None = None,
) -> dict[str, str]:
    params: dict[str, str] = {}
    if bidding_zone:
        params["bzn"] = bidding_zone
    if window.start is not None:
        params["start"] = _rfc3339(window.start)
    if window.end is not None:
        params["end"] = _rfc3339(window.end)
    return params


def parse_prices(payload: t.Any, url: str) -> dict[datetime, float]:
    """Validate a decoded ``/price`` body and key its prices by UTC instant."""
    try:
        body = MarketPrices.model_validate(payload)
    except ValidationError as exc:
        raise PriceFetchError(f"error parsing response body: {exc}") from exc

    if body.unit != EXPECTED_UNIT:
        raise UnexpectedUnit(body.unit)
    if body.deprecated:
        raise EndpointDeprecated(url)
    if len(body.timestamps) != len(body.prices):
        raise LengthMismatch(len(body.timestamps), len(body.prices))

    return {
        datetime.fromtimestamp(ts, UTC): price
        for ts, price in zip(body.timestamps, body.prices, strict=True)
    }


async def fetch_prices(
    client: httpx.AsyncClient,
    start: datetime | None,
    end: datetime | None,
    *,
    base_url: str = ENERGY_CHARTS_BASE_URL,
    bidding_zone: str | None = None,
) -> dict[datetime, float]:
    """Fetch day-ahead prices for ``[start, end]`` from Energy-Charts.

    Either bound may be ``None`` to leave it to the API default. Cancelling
    the calling task aborts the request.
    """
    url = base_url.rstrip("/") + PRICE_PATH
    params = build_params(FetchWindow(start, end), bidding_zone)
    logger.info("Energy-Charts GET %s params=%s", url, params)

    try:
        r = await client.get(url, params=params)
    except httpx.HTTPError as exc:
        raise PriceFetchError(f"error fetching prices: {exc}") from exc

    if not r.is_success:
        raise UnexpectedStatus(r.status_code, r.reason_phrase)

    try:
        payload = r.json()
    except ValueError as exc:
        snippet = r.content[:200].decode(errors="ignore")
        logger.info("Unparseable price response body: %s", snippet)
        raise PriceFetchError(f"error parsing response body: {exc}") from exc

    prices = parse_prices(payload, str(r.request.url))
    logger.debug("Parsed %d price samples from %s", len(prices), r.request.url)
    return prices
