"""In-memory price cache shared by the refresh loop and the HTTP handlers."""

from __future__ import annotations

import threading
import typing as t
from datetime import UTC, datetime

from .energycharts import PriceSample


class PriceCache:
    """Mapping of UTC instant to EUR/MWh price.

    Every read and write goes through one exclusive lock, so a snapshot sees
    either all or none of a merge. Entries are only ever added or overwritten.
    """

    def __init__(self) -> None:
        self._prices: dict[datetime, float] = {}
        self._lock = threading.Lock()
        self._last_refresh_utc: datetime | None = None

    def merge(self, prices: t.Mapping[datetime, float]) -> int:
        """Fold ``prices`` into the cache, overwriting on equal timestamps.

        Returns the number of timestamps that were not cached before.
        """
        with self._lock:
            added = sum(1 for ts in prices if ts not in self._prices)
            self._prices.update(prices)
            self._last_refresh_utc = datetime.now(UTC)
        return added

    def snapshot(self) -> dict[datetime, float]:
        with self._lock:
            return dict(self._prices)

    def samples(self) -> list[PriceSample]:
        return [
            PriceSample(ts, price) for ts, price in sorted(self.snapshot().items())
        ]

    @property
    def last_refresh_utc(self) -> datetime | None:
        with self._lock:
            return self._last_refresh_utc

    def __len__(self) -> int:
        with self._lock:
            return len(self._prices)
