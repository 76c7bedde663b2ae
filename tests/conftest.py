"""Shared fakes for supervisor tests."""

import asyncio
from itertools import count
from unittest.mock import MagicMock

import pytest

from session_supervisor.daemon.environment import EnvironmentResolver, ProcessEntry
from session_supervisor.daemon.login_manager import LoginSession, SessionManagerError

SEAT0 = ("seat0", "/org/freedesktop/login1/seat/seat0")


def session_path(n: int) -> str:
    return f"/org/freedesktop/login1/session/_3{n}"


class FakeSessionManager:
    """In-memory stand-in for the logind client."""

    def __init__(self, list_error: str | None = None, subscribe_error: str | None = None):
        self.sessions: list[LoginSession] = []
        self.properties: dict[tuple[str, str], tuple[str, object]] = {}
        self.list_error = list_error
        self.subscribe_error = subscribe_error
        self.subscriptions = 0
        self.subscriptions_at_listing: int | None = None
        self.queries: list[tuple[str, str]] = []
        self.notifications: list = []

    def add_session(self, path, display="", leader=0, seat=SEAT0, uid=1000, name="alice"):
        sid = path.rsplit("_", 1)[-1]
        self.sessions.append(LoginSession(id=sid, uid=uid, name=name, seat_id=seat[0], path=path))
        self.properties[(path, "Id")] = ("s", sid)
        self.properties[(path, "Display")] = ("s", display)
        self.properties[(path, "Leader")] = ("u", leader)
        self.properties[(path, "Seat")] = ("(so)", seat)

    async def list_sessions(self):
        self.subscriptions_at_listing = self.subscriptions
        if self.list_error:
            raise SessionManagerError(self.list_error)
        return list(self.sessions)

    async def get_session_property(self, path, name):
        self.queries.append((path, name))
        try:
            return self.properties[(path, name)]
        except KeyError:
            raise SessionManagerError(f"Unknown object {path}") from None

    async def publish_notifications(self, queue, subscribed=None):
        # each signal match costs a bus round-trip
        for _ in ("SessionNew", "SessionRemoved"):
            await asyncio.sleep(0)
            if self.subscribe_error:
                raise SessionManagerError(self.subscribe_error)
            self.subscriptions += 1
        if subscribed is not None:
            subscribed.set()
        for event in self.notifications:
            queue.put_nowait(event)
        await asyncio.Event().wait()


def make_resolver(table):
    return EnvironmentResolver(snapshot=lambda: list(table))


def session_table(leader: int, **environment) -> list[ProcessEntry]:
    """A process table where one child of ``leader`` carries ``environment``."""
    entries = [f"{k}={v}" for k, v in environment.items()]
    return [ProcessEntry(pid=leader + 1, ppid=leader, environ=entries)]


def make_launcher():
    pids = count(4000)

    def new_process(args, environment, stderr_file):
        process = MagicMock()
        process.pid = next(pids)
        process.poll.return_value = None
        return process

    return MagicMock(side_effect=new_process)


@pytest.fixture
def manager():
    return FakeSessionManager()


@pytest.fixture
def launcher():
    return make_launcher()
