"""Tests for SupervisorCore session -> worker supervision."""

import asyncio
import subprocess
from unittest.mock import MagicMock

import pytest

from conftest import make_launcher, make_resolver, session_path, session_table
from session_supervisor.config import ServiceConfig
from session_supervisor.daemon.events import SessionAdded, SessionRemoved
from session_supervisor.daemon.session_inspector import SessionInspector, SessionListingError
from session_supervisor.daemon.session_registry import SessionRegistry
from session_supervisor.daemon.supervisor import SupervisorCore, WorkerProcess

LEADER = 1200


def make_core(manager, launcher, table=None, **config):
    if table is None:
        table = session_table(LEADER, HOME="/home/alice", DISPLAY=":0")
    return SupervisorCore(
        SessionInspector(manager),
        make_resolver(table),
        ServiceConfig(server_executable="/usr/bin/worker", **config),
        launcher=launcher,
    )


class TestEligibility:
    """Only graphical sessions with a usable environment get a worker."""

    @pytest.mark.asyncio
    async def test_graphical_session_starts_worker(self, manager, launcher):
        path = session_path(1)
        manager.add_session(path, display=":0", leader=LEADER)
        core = make_core(manager, launcher)

        await core.start_server(path)

        assert list(core.workers) == [path]
        launcher.assert_called_once()
        args, environment, _stderr = launcher.call_args[0]
        assert args == ["/usr/bin/worker"]
        assert environment == {"HOME": "/home/alice", "DISPLAY": ":0"}

    @pytest.mark.asyncio
    async def test_non_graphical_session_is_ignored(self, manager, launcher):
        path = session_path(1)
        manager.add_session(path, display="", leader=LEADER)
        core = make_core(manager, launcher)

        await core.start_server(path)

        assert core.workers == {}
        launcher.assert_not_called()
        assert (path, "Leader") not in manager.queries

    @pytest.mark.asyncio
    async def test_display_query_failure_is_treated_as_non_graphical(self, manager, launcher):
        core = make_core(manager, launcher)

        await core.start_server("/org/freedesktop/login1/session/gone")

        assert core.workers == {}
        launcher.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_environment_is_ignored(self, manager, launcher):
        path = session_path(1)
        manager.add_session(path, display=":0", leader=LEADER)
        core = make_core(manager, launcher, table=[])

        await core.start_server(path)

        assert core.workers == {}
        launcher.assert_not_called()

    @pytest.mark.asyncio
    async def test_ineligible_session_is_not_retried(self, manager, launcher):
        path = session_path(1)
        manager.add_session(path, display=":0", leader=LEADER)
        table = []
        core = make_core(manager, launcher, table=table)

        await core.start_server(path)
        # environment becomes available later, but nothing re-checks it
        table.extend(session_table(LEADER, HOME="/home/alice"))

        assert core.workers == {}

    @pytest.mark.asyncio
    async def test_server_arguments_are_passed(self, manager, launcher):
        path = session_path(1)
        manager.add_session(path, display=":0", leader=LEADER)
        core = make_core(manager, launcher, server_arguments=["--session", "auto"])

        await core.start_server(path)

        args = launcher.call_args[0][0]
        assert args == ["/usr/bin/worker", "--session", "auto"]


class TestBootstrap:
    """Startup inventory of already existing sessions."""

    @pytest.mark.asyncio
    async def test_bootstrap_starts_only_eligible_sessions(self, manager, launcher):
        console, graphical = session_path(1), session_path(2)
        manager.add_session(console, display="", leader=900)
        manager.add_session(graphical, display=":0", leader=LEADER)
        core = make_core(manager, launcher)

        await core.bootstrap()

        assert list(core.workers) == [graphical]

    @pytest.mark.asyncio
    async def test_bootstrap_keeps_listing_order(self, manager, launcher):
        paths = [session_path(n) for n in (3, 1, 2)]
        table = []
        for n, path in enumerate(paths):
            leader = 1000 + n * 10
            manager.add_session(path, display=f":{n}", leader=leader)
            table += session_table(leader, DISPLAY=f":{n}")
        core = make_core(manager, launcher, table=table)

        await core.bootstrap()

        assert list(core.workers) == paths

    @pytest.mark.asyncio
    async def test_bootstrap_listing_failure_is_fatal(self, launcher):
        from conftest import FakeSessionManager

        core = make_core(FakeSessionManager(list_error="Connection refused"), launcher)

        with pytest.raises(SessionListingError, match="Connection refused"):
            await core.bootstrap()

        assert core.workers == {}


class TestDuplicates:
    """Repeated SessionAdded notifications for the same path."""

    @pytest.mark.asyncio
    async def test_duplicate_added_keeps_single_worker(self, manager, launcher):
        path = session_path(1)
        manager.add_session(path, display=":0", leader=LEADER)
        core = make_core(manager, launcher)

        await core.handle_event(SessionAdded(path))
        first = core.workers[path]
        await core.handle_event(SessionAdded(path))

        assert len(core.workers) == 1
        assert core.workers[path] is first
        launcher.assert_called_once()

    @pytest.mark.asyncio
    async def test_added_after_removed_starts_new_worker(self, manager, launcher):
        path = session_path(1)
        manager.add_session(path, display=":0", leader=LEADER)
        core = make_core(manager, launcher)

        await core.handle_event(SessionAdded(path))
        await core.handle_event(SessionRemoved(path))
        await core.handle_event(SessionAdded(path))

        assert list(core.workers) == [path]
        assert launcher.call_count == 2


class TestStopServer:
    """Session removal and shutdown."""

    @pytest.mark.asyncio
    async def test_removed_unknown_session_is_noop(self, manager, launcher):
        path = session_path(1)
        manager.add_session(path, display=":0", leader=LEADER)
        core = make_core(manager, launcher)
        await core.start_server(path)
        process = core.workers[path].process

        await core.handle_event(SessionRemoved(session_path(9)))

        assert list(core.workers) == [path]
        process.terminate.assert_not_called()

    @pytest.mark.asyncio
    async def test_removed_session_terminates_worker(self, manager, launcher):
        path = session_path(1)
        manager.add_session(path, display=":0", leader=LEADER)
        core = make_core(manager, launcher, worker_stop_timeout=2.5)
        await core.start_server(path)
        process = core.workers[path].process

        await core.handle_event(SessionRemoved(path))

        assert core.workers == {}
        process.terminate.assert_called_once()
        process.wait.assert_called_once_with(timeout=2.5)
        process.kill.assert_not_called()

    @pytest.mark.asyncio
    async def test_worker_ignoring_terminate_is_killed(self, manager, launcher):
        path = session_path(1)
        manager.add_session(path, display=":0", leader=LEADER)
        core = make_core(manager, launcher)
        await core.start_server(path)
        process = core.workers[path].process
        process.wait.side_effect = [subprocess.TimeoutExpired("worker", 5), 0]

        core.stop_server(path)

        process.terminate.assert_called_once()
        process.kill.assert_called_once()
        assert core.workers == {}

    @pytest.mark.asyncio
    async def test_terminate_failure_still_removes_entry(self, manager, launcher):
        path = session_path(1)
        manager.add_session(path, display=":0", leader=LEADER)
        core = make_core(manager, launcher)
        await core.start_server(path)
        core.workers[path].process.terminate.side_effect = ProcessLookupError()

        core.stop_server(path)

        assert core.workers == {}

    @pytest.mark.asyncio
    async def test_stop_all_servers_drains_every_entry(self, manager, launcher):
        paths = [session_path(n) for n in (1, 2, 3)]
        table = []
        for n, path in enumerate(paths):
            leader = 2000 + n * 10
            manager.add_session(path, display=f":{n}", leader=leader)
            table += session_table(leader, DISPLAY=f":{n}")
        core = make_core(manager, launcher, table=table)
        await core.bootstrap()
        processes = [worker.process for worker in core.workers.values()]

        core.stop_all_servers()

        assert core.workers == {}
        for process in processes:
            process.terminate.assert_called_once()

    def test_stop_all_servers_on_empty_map_is_idempotent(self, manager, launcher):
        core = make_core(manager, launcher)

        core.stop_all_servers()
        core.stop_all_servers()

        assert core.workers == {}


class TestLaunchFailure:
    """A worker that cannot be spawned still gets an entry."""

    @pytest.mark.asyncio
    async def test_launch_failure_records_dead_entry(self, manager):
        path = session_path(1)
        manager.add_session(path, display=":0", leader=LEADER)
        launcher = MagicMock(side_effect=FileNotFoundError("/usr/bin/worker"))
        core = make_core(manager, launcher)

        await core.start_server(path)

        worker = core.workers[path]
        assert worker.process is None
        assert worker.pid is None
        assert not worker.is_running

        core.stop_server(path)
        assert core.workers == {}

    @pytest.mark.asyncio
    async def test_launch_failure_releases_session_id_on_removal(self, manager):
        first, second = session_path(1), session_path(2)
        manager.add_session(first, display=":0", leader=LEADER)
        manager.add_session(second, display=":1", leader=LEADER)
        launcher = MagicMock(side_effect=FileNotFoundError("/usr/bin/worker"))
        core = make_core(manager, launcher, multi_session_enabled=True)

        await core.start_server(first)
        assert core.workers[first].assigned_session_id == 0
        assert 0 in core.registry

        core.stop_server(first)
        assert core.registry.sessions == {}

        launcher.side_effect = make_launcher().side_effect
        await core.start_server(second)
        assert core.workers[second].assigned_session_id == 0

    @pytest.mark.asyncio
    async def test_unexpected_launch_error_releases_id_and_log(self, manager, tmp_path):
        path = session_path(1)
        manager.add_session(path, display=":0", leader=LEADER)
        opened_logs = []

        def broken_launcher(args, environment, stderr_file):
            opened_logs.append(stderr_file)
            raise ValueError("embedded null byte")

        core = SupervisorCore(
            SessionInspector(manager),
            make_resolver(session_table(LEADER, HOME="/home/alice")),
            ServiceConfig(multi_session_enabled=True),
            launcher=broken_launcher,
            worker_log_dir=tmp_path / "workers",
        )

        with pytest.raises(ValueError):
            await core.start_server(path)

        assert core.workers == {}
        assert len(core.registry) == 0
        stderr_file, = opened_logs
        assert stderr_file.closed


class TestMultiSession:
    """Logical session ids in multi-session mode."""

    @pytest.mark.asyncio
    async def test_session_id_is_injected_into_environment(self, manager, launcher):
        path = session_path(1)
        manager.add_session(path, display=":0", leader=LEADER)
        registry = SessionRegistry()
        opened = []
        original_open = registry.open

        def spy_open(*args):
            session_id = original_open(*args)
            opened.append((args, session_id))
            return session_id

        registry.open = spy_open
        core = SupervisorCore(
            SessionInspector(manager),
            make_resolver(session_table(LEADER, HOME="/home/alice")),
            ServiceConfig(multi_session_enabled=True),
            registry=registry,
            launcher=launcher,
        )

        await core.start_server(path)

        (args, session_id), = opened
        assert args == (path, ":0", "/org/freedesktop/login1/seat/seat0")
        environment = launcher.call_args[0][1]
        assert environment["SESSION_SUPERVISOR_SESSION_ID"] == str(session_id)
        assert core.workers[path].assigned_session_id == session_id

    @pytest.mark.asyncio
    async def test_removal_closes_session_id(self, manager, launcher):
        path = session_path(1)
        manager.add_session(path, display=":0", leader=LEADER)
        core = make_core(manager, launcher, multi_session_enabled=True)

        await core.start_server(path)
        assert len(core.registry) == 1

        core.stop_server(path)
        assert len(core.registry) == 0

    @pytest.mark.asyncio
    async def test_custom_session_id_variable(self, manager, launcher):
        path = session_path(1)
        manager.add_session(path, display=":0", leader=LEADER)
        core = make_core(
            manager, launcher, multi_session_enabled=True, session_id_variable="VEYON_SESSION_ID"
        )

        await core.start_server(path)

        assert launcher.call_args[0][1]["VEYON_SESSION_ID"] == "0"

    @pytest.mark.asyncio
    async def test_exhausted_registry_skips_worker(self, manager, launcher):
        first, second = session_path(1), session_path(2)
        manager.add_session(first, display=":0", leader=LEADER)
        manager.add_session(second, display=":1", leader=LEADER)
        core = make_core(manager, launcher, multi_session_enabled=True, max_sessions=1)

        await core.start_server(first)
        await core.start_server(second)

        assert list(core.workers) == [first]
        launcher.assert_called_once()

    @pytest.mark.asyncio
    async def test_single_session_mode_has_no_registry(self, manager, launcher):
        path = session_path(1)
        manager.add_session(path, display=":0", leader=LEADER)
        core = make_core(manager, launcher)

        await core.start_server(path)

        assert core.registry is None
        assert "SESSION_SUPERVISOR_SESSION_ID" not in launcher.call_args[0][1]


class TestDrain:
    """Queue consumption."""

    @pytest.mark.asyncio
    async def test_events_are_handled_in_order(self, manager, launcher):
        path = session_path(1)
        manager.add_session(path, display=":0", leader=LEADER)
        core = make_core(manager, launcher)
        queue = asyncio.Queue()
        queue.put_nowait(SessionAdded(path))
        queue.put_nowait(SessionRemoved(path))
        queue.put_nowait(SessionAdded(path))

        consumer = asyncio.create_task(core.drain(queue))
        await asyncio.wait_for(queue.join(), timeout=5)
        consumer.cancel()
        await asyncio.gather(consumer, return_exceptions=True)

        assert list(core.workers) == [path]
        assert launcher.call_count == 2


class TestWorkerLogs:
    """Worker stderr capture."""

    @pytest.mark.asyncio
    async def test_stderr_log_is_opened_and_closed(self, manager, launcher, tmp_path):
        path = session_path(1)
        manager.add_session(path, display=":0", leader=LEADER)
        core = SupervisorCore(
            SessionInspector(manager),
            make_resolver(session_table(LEADER, HOME="/home/alice")),
            ServiceConfig(),
            launcher=launcher,
            worker_log_dir=tmp_path / "workers",
        )

        await core.start_server(path)

        stderr_file = launcher.call_args[0][2]
        assert str(stderr_file.name) == str(tmp_path / "workers" / "_31.log")
        core.stop_server(path)
        assert stderr_file.closed


def test_worker_process_is_running_reflects_poll():
    process = MagicMock()
    process.poll.return_value = 0
    worker = WorkerProcess(session_path="/s", process=process)

    assert not worker.is_running
    process.poll.return_value = None
    assert worker.is_running
