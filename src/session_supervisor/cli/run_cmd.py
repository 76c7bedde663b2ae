"""Run command: start the supervisor service in the foreground."""

import asyncio
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console

from session_supervisor.config import get_settings
from session_supervisor.daemon.logging_setup import setup_logging
from session_supervisor.daemon.login_manager import SessionManagerError
from session_supervisor.daemon.paths import get_config_file_path, get_worker_logs_dir
from session_supervisor.daemon.service import SupervisorService

console = Console()


def run(
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file to load"),
    log_level: str | None = typer.Option(None, "--log-level", "-l", help="Override the configured log level"),
    worker_logs: bool = typer.Option(
        True, "--worker-logs/--no-worker-logs", help="Capture worker stderr into per-session log files"
    ),
):
    """Supervise worker servers for graphical login sessions."""
    try:
        settings = get_settings(config or get_config_file_path())
    except ValidationError as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        raise typer.Exit(code=1)

    setup_logging(
        log_level=(log_level or settings.logging.level).upper(),
        console=settings.logging.console,
        file=settings.logging.file,
        serialize_file=settings.logging.serialize_file,
        service_mode=True,
    )

    try:
        service = SupervisorService(
            settings,
            worker_log_dir=get_worker_logs_dir() if worker_logs else None,
        )
        asyncio.run(service.run())
    except SessionManagerError as e:
        console.print(f"[red]Session supervisor failed:[/red] {e}")
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        pass
