"""Per-session worker supervision.

``SupervisorCore`` keeps exactly one worker server process per eligible
graphical login session:

    SessionAdded    -> display? -> leader environment? -> seat
                       -> [multi-session: open logical id] -> launch worker
    SessionRemoved  -> terminate worker -> [close logical id] -> forget
    shutdown        -> tear down every remaining worker in map order

A session is eligible when it has a display and its leader's process tree
yields a non-empty environment. Ineligible sessions are skipped without a
retry. Events are handled strictly one at a time; the session -> worker map
is only touched from that single flow.
"""

import asyncio
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import IO, Callable, Dict, List, Mapping, Optional

from loguru import logger

from ..config import ServiceConfig
from .environment import EnvironmentResolver
from .events import SessionAdded, SessionEvent, SessionRemoved
from .session_inspector import SessionInspector
from .session_registry import SessionRegistry


Launcher = Callable[[List[str], Dict[str, str], Optional[IO[str]]], subprocess.Popen]


def spawn_worker(
    args: List[str],
    environment: Dict[str, str],
    stderr_file: Optional[IO[str]] = None,
) -> subprocess.Popen:
    """Start a worker with exactly ``environment`` (nothing is inherited).

    stderr goes to ``stderr_file`` instead of a PIPE so a chatty worker can
    never block on a full pipe buffer.
    """
    return subprocess.Popen(
        args,
        env=environment,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=stderr_file if stderr_file is not None else subprocess.DEVNULL,
        close_fds=True,
    )


@dataclass
class WorkerProcess:
    """A worker server started for one login session.

    Attributes:
        session_path: Session object path the worker belongs to
        process: Popen handle, None when the launch failed
        environment: Complete environment the worker was started with
        assigned_session_id: Logical id (multi-session mode only)
        stderr_file: Open handle of the worker's stderr log
    """

    session_path: str
    process: Optional[subprocess.Popen]
    environment: Dict[str, str] = field(default_factory=dict)
    assigned_session_id: Optional[int] = None
    stderr_file: Optional[IO[str]] = field(default=None, repr=False)

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process is not None else None

    @property
    def is_running(self) -> bool:
        return self.process is not None and self.process.poll() is None


class SupervisorCore:
    """Start and stop worker servers as login sessions come and go."""

    def __init__(
        self,
        inspector: SessionInspector,
        resolver: EnvironmentResolver,
        config: ServiceConfig,
        registry: Optional[SessionRegistry] = None,
        launcher: Launcher = spawn_worker,
        worker_log_dir: Optional[Path] = None,
    ) -> None:
        self._inspector = inspector
        self._resolver = resolver
        self._config = config
        self._multi_session = config.is_multi_session_enabled()
        if self._multi_session and registry is None:
            registry = SessionRegistry(config.max_sessions)
        self._registry = registry
        self._launcher = launcher
        self._worker_log_dir = worker_log_dir
        self._workers: Dict[str, WorkerProcess] = {}

    @property
    def workers(self) -> Mapping[str, WorkerProcess]:
        return MappingProxyType(self._workers)

    @property
    def registry(self) -> Optional[SessionRegistry]:
        return self._registry

    async def bootstrap(self) -> None:
        """Start servers for the sessions that already exist.

        Raises:
            SessionListingError: the initial inventory could not be taken.
        """
        session_paths = await self._inspector.list_sessions()
        logger.info("Found {} existing sessions", len(session_paths))

        for session_path in session_paths:
            await self.handle_event(SessionAdded(session_path))

    async def handle_event(self, event: SessionEvent) -> None:
        if isinstance(event, SessionAdded):
            await self.start_server(event.session_path)
        elif isinstance(event, SessionRemoved):
            self.stop_server(event.session_path)
        else:
            logger.warning("Ignoring unknown event {!r}", event)

    async def drain(self, queue: "asyncio.Queue[SessionEvent]") -> None:
        """Process events from ``queue`` one at a time, forever."""
        while True:
            event = await queue.get()
            try:
                await self.handle_event(event)
            except Exception as e:
                logger.exception("Error handling {!r}: {}", event, e)
            finally:
                queue.task_done()

    async def start_server(self, session_path: str) -> None:
        if session_path in self._workers:
            logger.debug("Server for session {} already running, ignoring", session_path)
            return

        display = await self._inspector.display(session_path)

        # do not start server for non-graphical sessions
        if not display:
            logger.debug("Ignoring non-graphical session {}", session_path)
            return

        leader_pid = await self._inspector.leader_pid(session_path)
        environment = self._resolver.resolve(leader_pid)

        if not environment:
            logger.debug("Ignoring session {}: empty environment (leader {})", session_path, leader_pid)
            return

        seat = await self._inspector.seat(session_path)

        logger.info(
            "Starting server for new session {} with display {} at seat {}",
            session_path, display, seat.path,
        )

        assigned_session_id = None
        if self._multi_session:
            assigned_session_id = self._registry.open(session_path, display, seat.path)
            if assigned_session_id is None:
                logger.error("Not starting server for {}: session ids exhausted", session_path)
                return
            environment[self._config.session_id_variable] = str(assigned_session_id)

        try:
            worker = self._launch(session_path, environment, assigned_session_id)
        except Exception:
            if assigned_session_id is not None:
                self._registry.close(assigned_session_id)
            raise
        self._workers[session_path] = worker

    def stop_server(self, session_path: str) -> None:
        worker = self._workers.pop(session_path, None)
        if worker is None:
            return
        self._teardown(worker)

    def stop_all_servers(self) -> None:
        while self._workers:
            self.stop_server(next(iter(self._workers)))

    def _launch(
        self,
        session_path: str,
        environment: Dict[str, str],
        assigned_session_id: Optional[int],
    ) -> WorkerProcess:
        args = [str(self._config.server_executable_path()), *self._config.server_arguments]
        stderr_file = self._open_worker_log(session_path)

        try:
            process = self._launcher(args, environment, stderr_file)
        except OSError as e:
            logger.error("Failed to start server {} for {}: {}", args[0], session_path, e)
            process = None
        except Exception:
            if stderr_file is not None:
                stderr_file.close()
            raise
        else:
            logger.info("Server for {} started with PID {}", session_path, process.pid)

        return WorkerProcess(
            session_path=session_path,
            process=process,
            environment=environment,
            assigned_session_id=assigned_session_id,
            stderr_file=stderr_file,
        )

    def _open_worker_log(self, session_path: str) -> Optional[IO[str]]:
        if self._worker_log_dir is None:
            return None

        name = session_path.rstrip("/").rsplit("/", 1)[-1] or "session"
        try:
            self._worker_log_dir.mkdir(parents=True, exist_ok=True)
            return open(self._worker_log_dir / f"{name}.log", "a", encoding="utf-8")
        except OSError as e:
            logger.warning("Could not open worker log for {}: {}", session_path, e)
            return None

    def _teardown(self, worker: WorkerProcess) -> None:
        logger.info("Stopping server for removed session {}", worker.session_path)
        try:
            self._terminate(worker)
        finally:
            try:
                if self._multi_session:
                    self._release_session_id(worker)
            finally:
                if worker.stderr_file is not None:
                    worker.stderr_file.close()
                    worker.stderr_file = None

    def _terminate(self, worker: WorkerProcess) -> None:
        process = worker.process
        if process is None:
            return

        try:
            process.terminate()
            process.wait(timeout=self._config.worker_stop_timeout)
        except subprocess.TimeoutExpired:
            logger.warning("Server for {} did not stop gracefully, killing", worker.session_path)
            process.kill()
            process.wait()
        except OSError as e:
            logger.error("Error stopping server for {}: {}", worker.session_path, e)

    def _release_session_id(self, worker: WorkerProcess) -> None:
        raw = worker.environment.get(self._config.session_id_variable)
        try:
            session_id = int(raw)
        except (TypeError, ValueError):
            logger.warning("Worker for {} has no valid session id ({!r})", worker.session_path, raw)
            return
        self._registry.close(session_id)
