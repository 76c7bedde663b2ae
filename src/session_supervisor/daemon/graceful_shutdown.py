"""Graceful shutdown handling for the supervisor service.

Usage:
    handler = AsyncShutdownHandler()
    await handler.setup()
    await handler.wait_for_shutdown()

Catches SIGTERM and SIGINT on the running event loop and exposes them as
an asyncio event the service loop can wait on.
"""

import asyncio
import signal
from typing import Optional

from loguru import logger


class AsyncShutdownHandler:
    """Async-compatible shutdown handler."""

    def __init__(self) -> None:
        self._shutdown_event: Optional[asyncio.Event] = None

    @property
    def event(self) -> asyncio.Event:
        """The event set once shutdown was requested."""
        if self._shutdown_event is None:
            self._shutdown_event = asyncio.Event()
        return self._shutdown_event

    async def setup(self) -> None:
        """Set up async event and signal handlers."""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._handle_signal, sig)
            except (NotImplementedError, RuntimeError):
                # Not the main thread, signals are delivered elsewhere
                logger.debug("Signal handler for {} not registered", sig.name)

    def request_shutdown(self) -> None:
        """Request shutdown without a signal (tests, embedding code)."""
        self.event.set()

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info("Received {}, initiating graceful shutdown", sig.name)
        self.request_shutdown()

    async def wait_for_shutdown(self) -> None:
        """Wait for shutdown signal."""
        await self.event.wait()
