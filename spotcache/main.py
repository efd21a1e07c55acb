from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
import sys
import typing as t
from datetime import UTC, datetime

import httpx
import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from .cache import PriceCache
from .config import ConfigError, Settings
from .energycharts import PriceFetchError, fetch_prices
from .lifecycle import Cancelled, Lifecycle, ListenerError, StartupError
from .refresh import RefreshLoop

logger = logging.getLogger("spotcache")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(cache: PriceCache, *, version: str = "dev") -> FastAPI:
    app = FastAPI(title="Spot price cache")

    @app.get("/")
    def prices() -> Response:
        body = [{"time": s.unix_seconds, "price": s.price} for s in cache.samples()]
        try:
            return JSONResponse(body)
        except ValueError as exc:
            # NaN and infinities have no strict JSON encoding
            logger.error("Failed to encode %d samples: %s", len(body), exc)
            return PlainTextResponse(str(exc), status_code=500)

    @app.get("/healthz")
    async def healthz() -> dict[str, t.Any]:
        last_refresh = cache.last_refresh_utc
        return {
            "status": "ok",
            "samples": len(cache),
            "last_refresh_utc": last_refresh.isoformat() if last_refresh else None,
        }

    @app.get("/version")
    async def version_info() -> dict[str, str]:
        return {"version": version}

    return app


class _Server(uvicorn.Server):
    """uvicorn server that leaves signal handling to the lifecycle."""

    @contextlib.contextmanager
    def capture_signals(self) -> t.Generator[None, None, None]:
        yield


async def _stop_server_on_cancel(server: uvicorn.Server, lifecycle: Lifecycle) -> None:
    await lifecycle.wait()
    logger.info("Stopping HTTP server")
    server.should_exit = True


async def serve(
    settings: Settings,
    cache: PriceCache,
    refresher: RefreshLoop,
    lifecycle: Lifecycle,
) -> None:
    config = uvicorn.Config(
        create_app(cache, version=settings.version),
        host=settings.host,
        port=settings.port,
        log_config=None,
        timeout_graceful_shutdown=None,
    )
    server = _Server(config)
    address = f"{settings.host}:{settings.port}"

    background_tasks = [
        asyncio.create_task(refresher.run(), name="refresh_loop"),
        asyncio.create_task(
            _stop_server_on_cancel(server, lifecycle),
            name="shutdown_watcher",
        ),
    ]
    logger.info("Serving on %s", address)
    try:
        try:
            await server.serve()
        except SystemExit:
            # uvicorn exits the process when it cannot bind
            lifecycle.cancel(ListenerError(f"error listening on {address}"))
        else:
            lifecycle.cancel(ListenerError(f"listener on {address} stopped"))
    finally:
        for task in background_tasks:
            task.cancel()
        await asyncio.gather(*background_tasks, return_exceptions=True)


async def run(
    settings: Settings,
    *,
    client: httpx.AsyncClient | None = None,
    cache: PriceCache | None = None,
    lifecycle: Lifecycle | None = None,
) -> BaseException | None:
    """Load prices, then serve them until interrupted or a refresh fails.

    Returns ``None`` after an interrupt and the terminating error otherwise.
    Raises :class:`StartupError` if the initial load fails.
    """
    cache = cache if cache is not None else PriceCache()
    lifecycle = lifecycle if lifecycle is not None else Lifecycle()
    lifecycle.install_signal_handlers()

    try:
        async with contextlib.AsyncExitStack() as stack:
            if client is None:
                client = await stack.enter_async_context(
                    httpx.AsyncClient(timeout=settings.http_timeout),
                )
            fetch = functools.partial(
                fetch_prices,
                client,
                base_url=settings.base_url,
                bidding_zone=settings.bidding_zone,
            )

            logger.info("Loading prices since %s", settings.initial_load_start)
            try:
                initial = await lifecycle.guard(
                    fetch(settings.initial_load_start, datetime.now(UTC)),
                )
            except Cancelled:
                logger.info("Interrupted during initial load")
                return lifecycle.cause
            except PriceFetchError as exc:
                raise StartupError(f"error fetching prices: {exc}") from exc
            cache.merge(initial)
            logger.info("Initial load cached %d samples", len(cache))

            refresher = RefreshLoop(
                cache,
                fetch,
                lifecycle,
                interval=settings.refresh_interval,
                lookback=settings.refresh_lookback,
            )
            await serve(settings, cache, refresher, lifecycle)
            return lifecycle.cause
    finally:
        lifecycle.remove_signal_handlers()


def main() -> None:
    try:
        settings = Settings.from_env()
    except ConfigError as exc:
        configure_logging("INFO")
        logger.critical("Invalid configuration: %s", exc)
        sys.exit(2)

    configure_logging(settings.log_level)
    logger.info("Starting spot price cache")
    logger.info("Log level: %s", settings.log_level)

    try:
        cause = asyncio.run(run(settings))
    except StartupError:
        logger.critical("Startup failed", exc_info=True)
        sys.exit(1)

    if cause is not None:
        logger.critical("Stopped: %s", cause, exc_info=cause)
        sys.exit(1)
    logger.info("Shut down cleanly")


if __name__ == "__main__":
    main()
