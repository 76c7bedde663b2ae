"""Session supervisor service.

Wires the logind client, session inspector, environment resolver and
supervisor core together and runs them until a shutdown signal arrives.

Startup order matters: the notification subscription is confirmed first
so no session appearing during startup is lost, but queued notifications
are only processed after the initial inventory has been bootstrapped.

Usage:
    from session_supervisor.config import get_settings
    from session_supervisor.daemon.service import SupervisorService

    service = SupervisorService(get_settings())
    asyncio.run(service.run())
"""

import asyncio
from pathlib import Path
from typing import Optional

from loguru import logger

from ..config import Settings
from .environment import EnvironmentResolver
from .events import SessionEvent
from .graceful_shutdown import AsyncShutdownHandler
from .login_manager import LoginManagerClient, SessionManagerError
from .session_inspector import SessionInspector, SessionListingError
from .supervisor import Launcher, SupervisorCore, spawn_worker


class SupervisorService:
    """Owns the supervisor's collaborators and its event loop lifecycle."""

    def __init__(
        self,
        settings: Settings,
        client: Optional[LoginManagerClient] = None,
        resolver: Optional[EnvironmentResolver] = None,
        launcher: Launcher = spawn_worker,
        worker_log_dir: Optional[Path] = None,
    ) -> None:
        self.settings = settings
        self.client = client if client is not None else LoginManagerClient()
        self.inspector = SessionInspector(self.client)
        self.core = SupervisorCore(
            self.inspector,
            resolver if resolver is not None else EnvironmentResolver(),
            settings.service,
            launcher=launcher,
            worker_log_dir=worker_log_dir,
        )

    async def run(self, shutdown: Optional[AsyncShutdownHandler] = None) -> None:
        """Bootstrap, then process session notifications until shutdown.

        Raises:
            SessionManagerError: session notifications could not be subscribed.
            SessionListingError: the initial session inventory failed.
        """
        if shutdown is None:
            shutdown = AsyncShutdownHandler()
            await shutdown.setup()

        logger.info(
            "Session supervisor starting (server: {}, multi-session: {})",
            self.settings.service.server_executable,
            self.settings.service.multi_session_enabled,
        )

        queue: asyncio.Queue[SessionEvent] = asyncio.Queue()
        subscribed = asyncio.Event()
        publisher = asyncio.create_task(self.client.publish_notifications(queue, subscribed))
        consumer: Optional[asyncio.Task] = None
        waiter: Optional[asyncio.Task] = None

        try:
            # sessions created after this point are reported on the queue
            await _wait_subscribed(publisher, subscribed)

            try:
                await self.core.bootstrap()
            except SessionListingError:
                logger.critical("Cannot start without an initial session inventory")
                raise

            consumer = asyncio.create_task(self.core.drain(queue))
            waiter = asyncio.create_task(shutdown.wait_for_shutdown())

            done, _pending = await asyncio.wait(
                {publisher, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
            if publisher in done:
                # re-raises a subscription failure
                publisher.result()
                logger.error("Session notifications stopped unexpectedly")

        finally:
            tasks = [task for task in (consumer, waiter, publisher) if task is not None]
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

            logger.info("Session supervisor shutting down")
            self.core.stop_all_servers()
            await logger.complete()


async def _wait_subscribed(publisher: asyncio.Task, subscribed: asyncio.Event) -> None:
    """Return once ``publisher`` has its notification matches in place.

    Raises:
        SessionManagerError: the subscription failed or the publisher ended.
    """
    ready = asyncio.create_task(subscribed.wait())
    try:
        await asyncio.wait({publisher, ready}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        ready.cancel()

    if subscribed.is_set():
        return

    try:
        publisher.result()
    except SessionManagerError:
        logger.critical("Cannot start without session notifications")
        raise
    raise SessionManagerError("Session notifications ended before subscribing")
