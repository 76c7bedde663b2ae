"""Sessions command: show login sessions and whether they get a worker."""

import asyncio
import json
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from session_supervisor.daemon.environment import EnvironmentResolver
from session_supervisor.daemon.login_manager import LoginManagerClient, SessionManagerError
from session_supervisor.daemon.session_inspector import SessionInspector

console = Console()


async def collect_sessions(
    inspector: SessionInspector,
    resolver: EnvironmentResolver,
) -> list[dict[str, Any]]:
    """Gather the properties the supervisor bases its decisions on."""
    rows = []
    for session in await inspector.list_session_records():
        display = await inspector.display(session.path)
        leader_pid = await inspector.leader_pid(session.path)
        seat = await inspector.seat(session.path)
        environment = resolver.resolve(leader_pid) if display else {}

        rows.append({
            "id": session.id,
            "user": session.name,
            "uid": session.uid,
            "path": session.path,
            "display": display,
            "leader_pid": leader_pid,
            "seat": seat.id,
            "environment_size": len(environment),
            "eligible": bool(display and environment),
        })
    return rows


def sessions(
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """List login sessions and whether a worker would be started."""
    try:
        inspector = SessionInspector(LoginManagerClient())
        rows = asyncio.run(collect_sessions(inspector, EnvironmentResolver()))
    except SessionManagerError as e:
        console.print(f"[red]Could not query sessions:[/red] {e}")
        raise typer.Exit(code=1)

    if json_output:
        typer.echo(json.dumps(rows, indent=2))
        return

    table = Table(title="Login sessions")
    table.add_column("Id", style="cyan")
    table.add_column("User")
    table.add_column("Display")
    table.add_column("Leader", justify="right")
    table.add_column("Seat")
    table.add_column("Env", justify="right")
    table.add_column("Worker")

    for row in rows:
        table.add_row(
            row["id"],
            row["user"],
            row["display"] or "-",
            str(row["leader_pid"]),
            row["seat"] or "-",
            str(row["environment_size"]),
            "[green]yes[/green]" if row["eligible"] else "[dim]no[/dim]",
        )

    console.print(table)
