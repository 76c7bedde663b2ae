"""CLI package for session-supervisor."""

import typer

from session_supervisor.cli import (
    config_cmd,
    run_cmd,
    sessions_cmd,
)

app = typer.Typer(
    name="session-supervisor",
    help="Per-session worker server supervisor",
    no_args_is_help=True,
)

app.add_typer(config_cmd.app, name="config", help="Configuration management")

app.command(name="run", help="Run the supervisor in the foreground")(run_cmd.run)
app.command(name="sessions", help="List login sessions")(sessions_cmd.sessions)


@app.command()
def version():
    """Show version information."""
    from session_supervisor import __version__
    typer.echo(f"session-supervisor {__version__}")


if __name__ == "__main__":
    app()
