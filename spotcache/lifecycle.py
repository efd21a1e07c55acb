"""Process-wide cancellation shared by the server, the refresh loop and signals."""

from __future__ import annotations

import asyncio
import logging
import signal
import typing as t

logger = logging.getLogger("spotcache.lifecycle")

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)

T = t.TypeVar("T")


class Cancelled(Exception):
    """Raised by :meth:`Lifecycle.guard` when the lifecycle ends first."""


class StartupError(Exception):
    """The initial price load failed; nothing was served."""


class RefreshError(Exception):
    """A periodic refresh failed and brought the service down."""


class ListenerError(Exception):
    """The HTTP listener could not start or stopped on its own."""


class Lifecycle:
    """One-shot cancellation token carrying an optional cause.

    ``cancel()`` without a cause means an orderly shutdown (an interrupt);
    a cause means the service stopped because of that error. Only the first
    call has any effect.
    """

    def __init__(self) -> None:
        self._done = asyncio.Event()
        self._cause: BaseException | None = None

    def cancel(self, cause: BaseException | None = None) -> None:
        if self._done.is_set():
            return
        self._cause = cause
        self._done.set()
        if cause is None:
            logger.info("Shutdown requested")
        else:
            logger.error("Shutting down: %s", cause)

    @property
    def cancelled(self) -> bool:
        return self._done.is_set()

    @property
    def cause(self) -> BaseException | None:
        return self._cause

    async def wait(self) -> None:
        await self._done.wait()

    async def guard(self, aw: t.Awaitable[T]) -> T:
        """Await ``aw`` unless the lifecycle is cancelled first.

        On cancellation the work is cancelled and :class:`Cancelled` raised.
        """
        work = asyncio.ensure_future(aw)
        waiter = asyncio.ensure_future(self._done.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not work.done():
                work.cancel()
                await asyncio.gather(work, return_exceptions=True)
        if work.cancelled():
            raise Cancelled("lifecycle cancelled")
        return work.result()

    def install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in SHUTDOWN_SIGNALS:
            loop.add_signal_handler(sig, self._on_signal, sig)

    def remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in SHUTDOWN_SIGNALS:
            loop.remove_signal_handler(sig)

    def _on_signal(self, sig: signal.Signals) -> None:
        logger.info("Received %s", sig.name)
        self.cancel()
