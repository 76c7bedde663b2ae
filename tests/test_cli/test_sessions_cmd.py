"""Tests for the sessions command."""

import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from conftest import FakeSessionManager, make_resolver, session_path, session_table
from session_supervisor.cli import app
from session_supervisor.cli.sessions_cmd import collect_sessions
from session_supervisor.daemon.session_inspector import SessionInspector

runner = CliRunner()


def populated_manager():
    manager = FakeSessionManager()
    manager.add_session(session_path(1), display="", leader=100, name="root", uid=0)
    manager.add_session(session_path(2), display=":0", leader=200)
    return manager


@pytest.mark.asyncio
async def test_collect_sessions_reports_eligibility():
    resolver = make_resolver(session_table(200, DISPLAY=":0", HOME="/home/alice"))

    rows = await collect_sessions(SessionInspector(populated_manager()), resolver)

    assert [row["eligible"] for row in rows] == [False, True]
    assert rows[1]["environment_size"] == 2
    assert rows[1]["seat"] == "seat0"
    assert rows[0]["user"] == "root"


@patch("session_supervisor.cli.sessions_cmd.EnvironmentResolver")
@patch("session_supervisor.cli.sessions_cmd.LoginManagerClient")
def test_sessions_json(mock_client_cls, mock_resolver_cls):
    mock_client_cls.return_value = populated_manager()
    mock_resolver_cls.return_value = make_resolver(session_table(200, DISPLAY=":0"))

    result = runner.invoke(app, ["sessions", "--json"])

    assert result.exit_code == 0
    rows = json.loads(result.stdout)
    assert [row["path"] for row in rows] == [session_path(1), session_path(2)]
    assert rows[1]["eligible"] is True


@patch("session_supervisor.cli.sessions_cmd.EnvironmentResolver")
@patch("session_supervisor.cli.sessions_cmd.LoginManagerClient")
def test_sessions_table(mock_client_cls, mock_resolver_cls):
    mock_client_cls.return_value = populated_manager()
    mock_resolver_cls.return_value = make_resolver([])

    result = runner.invoke(app, ["sessions"])

    assert result.exit_code == 0
    assert "Login sessions" in result.stdout


@patch("session_supervisor.cli.sessions_cmd.LoginManagerClient")
def test_sessions_listing_failure(mock_client_cls):
    mock_client_cls.return_value = FakeSessionManager(list_error="Access denied")

    result = runner.invoke(app, ["sessions"])

    assert result.exit_code == 1
    assert "Access denied" in result.stdout
