"""Config subcommand group for configuration management."""

import json
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.json import JSON
from rich.panel import Panel

from session_supervisor.config import get_settings
from session_supervisor.daemon.config_init import init_config
from session_supervisor.daemon.paths import get_config_file_path

app = typer.Typer(help="Configuration management")
console = Console()


@app.command()
def init(
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite existing config"),
    multi_session: bool = typer.Option(
        False, "--multi-session/--single-session", help="Allow several workers per seat/display"
    ),
    server_executable: str | None = typer.Option(
        None, "--server-executable", "-s", help="Worker server executable"
    ),
    path: Path | None = typer.Option(None, "--path", help="Write config to this file"),
):
    """Initialize default configuration."""
    try:
        config_path = init_config(
            config_path=path,
            force=force,
            multi_session=multi_session,
            server_executable=server_executable,
        )
        console.print(f"[green]Configuration initialized:[/green] {config_path}")
    except FileExistsError as e:
        console.print(f"[yellow]{e}[/yellow]")
        console.print("[dim]Use --force to overwrite[/dim]")
        raise typer.Exit(code=1)
    except OSError as e:
        console.print(f"[red]Configuration initialization failed:[/red] {e}")
        raise typer.Exit(code=1)


@app.command()
def show(
    path: Path | None = typer.Option(None, "--path", help="Config file to show"),
    json_output: bool = typer.Option(False, "--json", help="Output raw JSON instead of formatted panel"),
):
    """Show current configuration."""
    config_path = path or get_config_file_path()

    if not config_path.exists():
        console.print(f"[yellow]Config file not found:[/yellow] {config_path}")
        console.print("[dim]Run 'session-supervisor config init' to create one[/dim]")
        raise typer.Exit(code=1)

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config_data = json.load(f)
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid JSON in config file:[/red] {e}")
        raise typer.Exit(code=1)
    except OSError as e:
        console.print(f"[red]Failed to read config:[/red] {e}")
        raise typer.Exit(code=1)

    if json_output:
        typer.echo(json.dumps(config_data, indent=2))
    else:
        json_obj = JSON(json.dumps(config_data, indent=2))
        panel = Panel(json_obj, title=f"Configuration: {config_path}", border_style="cyan")
        console.print(panel)


@app.command()
def validate(
    path: Path | None = typer.Option(None, "--path", help="Config file to validate"),
):
    """Validate configuration file."""
    config_path = path or get_config_file_path()

    if not config_path.exists():
        console.print(f"[yellow]Config file not found:[/yellow] {config_path}")
        console.print("[dim]Run 'session-supervisor config init' to create one[/dim]")
        raise typer.Exit(code=1)

    try:
        settings = get_settings(config_path)
    except ValidationError as e:
        console.print("[red]Configuration validation failed:[/red]")
        for error in e.errors():
            loc = " -> ".join(str(x) for x in error["loc"])
            console.print(f"  [yellow]{loc}:[/yellow] {error['msg']}")
        raise typer.Exit(code=1)
    except (OSError, ValueError) as e:
        console.print(f"[red]Validation failed:[/red] {e}")
        raise typer.Exit(code=1)

    console.print("[green]Configuration is valid[/green]")
    console.print(f"[dim]Server executable: {settings.service.server_executable}[/dim]")
    console.print(f"[dim]Multi-session: {settings.service.multi_session_enabled}[/dim]")
