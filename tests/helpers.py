"""Upstream fakes shared across the test modules."""

from __future__ import annotations

import typing as t

import httpx


def price_payload(
    timestamps: list[int],
    prices: list[float],
    *,
    unit: str = "EUR/MWh",
    deprecated: bool = False,
) -> dict[str, t.Any]:
    """Body shaped like the Energy-Charts ``/price`` response."""
    return {
        "license_info": "CC BY 4.0 (creativecommons.org/licenses/by/4.0) from Bundesnetzagentur | SMARD.de",
        "unix_seconds": timestamps,
        "price": prices,
        "unit": unit,
        "deprecated": deprecated,
    }


def mock_upstream(
    responses: t.Iterable[httpx.Response],
    seen: list[httpx.Request] | None = None,
) -> httpx.AsyncClient:
    """AsyncClient answering successive requests with ``responses``.

    The last response repeats once the others are used up.
    """
    queue = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        if len(queue) > 1:
            return queue.pop(0)
        return queue[0]

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))
