from __future__ import annotations

import asyncio
import logging
import typing as t
from datetime import UTC, datetime, timedelta

from .cache import PriceCache
from .lifecycle import Cancelled, Lifecycle, RefreshError

logger = logging.getLogger("spotcache.refresh")

DEFAULT_INTERVAL = timedelta(hours=6)
DEFAULT_LOOKBACK = timedelta(hours=7)

FetchPrices = t.Callable[
    [datetime | None, datetime | None],
    t.Awaitable[dict[datetime, float]],
]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RefreshLoop:
    """Periodically fetch the recent past and merge it into the cache.

    A failed fetch is fatal: the lifecycle is cancelled with a
    :class:`RefreshError` and the loop stops. Cancellation of the lifecycle
    is the only other way out.
    """

    def __init__(
        self,
        cache: PriceCache,
        fetch: FetchPrices,
        lifecycle: Lifecycle,
        *,
        interval: timedelta = DEFAULT_INTERVAL,
        lookback: timedelta = DEFAULT_LOOKBACK,
        clock: t.Callable[[], datetime] = _utcnow,
    ) -> None:
        self.cache = cache
        self.fetch = fetch
        self.lifecycle = lifecycle
        self.interval = interval
        self.lookback = lookback
        self.clock = clock

    async def run(self) -> None:
        logger.info(
            "Refreshing every %s with a lookback of %s",
            self.interval,
            self.lookback,
        )
        while True:
            try:
                await asyncio.wait_for(
                    self.lifecycle.wait(),
                    timeout=self.interval.total_seconds(),
                )
            except TimeoutError:
                pass
            else:
                logger.info("Refresh loop stopped")
                return

            if not await self.tick():
                return

    async def tick(self) -> bool:
        """Fetch and merge once.

        Returns False when the loop should stop: the fetch failed (fatal) or
        the lifecycle was cancelled while it was in flight.
        """
        now = self.clock()
        # start is "now" and end lies in the past; upstream receives the
        # bounds in this order.
        try:
            prices = await self.lifecycle.guard(self.fetch(now, now - self.lookback))
        except Cancelled:
            logger.info("Refresh aborted by shutdown")
            return False
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            error = RefreshError(f"error fetching prices: {exc}")
            error.__cause__ = exc
            self.lifecycle.cancel(error)
            return False

        added = self.cache.merge(prices)
        logger.info(
            "Merged %d samples (%d new), cache holds %d",
            len(prices),
            added,
            len(self.cache),
        )
        return True
