"""
keycycle CLI - Main entry point.

Provides commands for:
- serve: Start the router server
- status: Show the rotation dashboard
- backends: List the configured backend pool
- reset: Readmit all excluded backends
- config: Manage configuration
"""

import typer
from rich.console import Console

app = typer.Typer(
    name="keycycle",
    help="Multi-backend router - rotate generation requests across API keys",
    add_completion=True,
)
console = Console()


def _base_url() -> str:
    from keycycle.server.config import get_settings

    settings = get_settings()
    return f"http://{settings.server.host}:{settings.server.port}"


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Bind host"),
    port: int = typer.Option(8080, "--port", "-p", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable hot reload"),
    log_level: str = typer.Option("INFO", "--log-level", "-l", help="Log level"),
    config_path: str | None = typer.Option(None, "--config", "-c", help="YAML config file"),
) -> None:
    """Start the keycycle server."""
    import logging
    import os

    import uvicorn

    # Set environment variables for settings
    os.environ["KEYCYCLE_HOST"] = host
    os.environ["KEYCYCLE_PORT"] = str(port)
    os.environ["KEYCYCLE_LOG_LEVEL"] = log_level
    if config_path:
        os.environ["KEYCYCLE_CONFIG_PATH"] = config_path

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    console.print(f"[bold green]Starting keycycle server on {host}:{port}[/bold green]")
    console.print(f"[dim]Log level: {log_level}[/dim]")
    if config_path:
        console.print(f"[dim]Config: {config_path}[/dim]")
    console.print()

    uvicorn.run(
        "keycycle.server.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level.lower(),
    )


def render_status(data: dict, base_url: str, live: bool = False):
    """Render the rotation dashboard for a /admin/backends payload."""
    from rich.console import Group
    from rich.panel import Panel
    from rich.table import Table

    if data.get("error"):
        return Panel(f"[red]Error: {data['error']}[/red]", title="keycycle")

    table = Table(show_header=True, header_style="bold", expand=True)
    table.add_column("Backend")
    table.add_column("Name")
    table.add_column("Transport")
    table.add_column("State")
    table.add_column("Key")

    state_colors = {
        "eligible": "green",
        "excluded": "red",
        "disabled": "dim",
        "unconfigured": "yellow",
    }
    current = data.get("current")

    for backend in data.get("backends", []):
        state = backend.get("state", "unknown")
        color = state_colors.get(state, "dim")
        marker = "▶ " if backend.get("id") == current else "  "
        table.add_row(
            f"{marker}{backend.get('id', '-')}",
            backend.get("name", "-"),
            backend.get("transport", "-"),
            f"[{color}]{state}[/{color}]",
            backend.get("key_hint") or "-",
        )

    excluded = data.get("excluded", [])
    remaining = data.get("cooldown_remaining")
    lines = [
        f"[bold]Current backend:[/bold] {current or '[red]none[/red]'}",
        f"[bold]Eligible:[/bold] {data.get('eligible', 0)} / {data.get('total', 0)}",
        f"[bold]Attempts per request:[/bold] {data.get('max_attempts', '-')}"
        f"  [bold]Retry delay:[/bold] {data.get('retry_delay', '-')}s",
    ]
    if excluded:
        lines.append(f"[bold]Excluded:[/bold] [red]{', '.join(excluded)}[/red]")
    if remaining is not None:
        lines.append(f"[yellow]Waiting {remaining:.0f}s for rate limit cooldown...[/yellow]")

    mode_str = "[green]LIVE[/green]" if live else "[dim]STATIC[/dim]"
    return Panel(
        Group("\n".join(lines), table),
        title=f"[bold blue]keycycle rotation[/bold blue] - {base_url} {mode_str}",
    )


@app.command()
def status(
    live: bool = typer.Option(False, "--live", "-l", help="Enable live updates"),
    interval: float = typer.Option(2.0, "--interval", "-i", help="Update interval in seconds"),
) -> None:
    """Show backend rotation status."""
    import time

    import httpx
    from rich.live import Live

    base_url = _base_url()

    def get_status() -> dict:
        try:
            with httpx.Client(timeout=5.0) as client:
                return client.get(f"{base_url}/admin/backends").json()
        except Exception as e:
            return {"error": str(e)}

    if live:
        try:
            with Live(
                render_status(get_status(), base_url, live=True),
                refresh_per_second=1,
                console=console,
            ) as live_display:
                while True:
                    time.sleep(interval)
                    live_display.update(render_status(get_status(), base_url, live=True))
        except KeyboardInterrupt:
            console.print("\n[dim]Dashboard stopped[/dim]")
    else:
        console.print(render_status(get_status(), base_url))


@app.command()
def backends(
    config_path: str | None = typer.Option(None, "--config", "-c", help="YAML config file"),
) -> None:
    """List the configured backend pool."""
    from pathlib import Path

    import yaml
    from rich.table import Table

    from keycycle.router.config import ConfigValidationError
    from keycycle.server.app import load_pool_config
    from keycycle.server.config import get_settings

    settings = get_settings()
    if config_path:
        settings.server.config_path = Path(config_path)

    try:
        config = load_pool_config(settings)
    except (FileNotFoundError, ConfigValidationError, yaml.YAMLError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if not config.backends:
        console.print("[yellow]No backends configured[/yellow]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("#", width=3)
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Transport")
    table.add_column("Enabled")
    table.add_column("Key")

    for i, backend in enumerate(config.to_backends(), start=1):
        enabled = "[green]yes[/green]" if backend.enabled else "[dim]no[/dim]"
        key = backend.masked_key or "[yellow]missing[/yellow]"
        table.add_row(str(i), backend.id, backend.name, backend.transport.value, enabled, key)

    console.print(table)
    console.print(
        f"[dim]max_attempts={config.max_attempts} retry_delay={config.retry_delay}s "
        f"cooldown={config.cooldown}s[/dim]"
    )


@app.command()
def reset() -> None:
    """Readmit every excluded backend on the running server."""
    import httpx

    base_url = _base_url()
    try:
        with httpx.Client(timeout=5.0) as client:
            response = client.post(f"{base_url}/admin/backends/reset")
    except httpx.HTTPError as e:
        console.print(f"[red]Cannot connect to server: {e}[/red]")
        raise typer.Exit(1)

    if response.status_code != 200:
        console.print(f"[red]Reset failed: {response.text}[/red]")
        raise typer.Exit(1)

    readmitted = response.json().get("readmitted", [])
    if readmitted:
        console.print(f"[green]Readmitted: {', '.join(readmitted)}[/green]")
    else:
        console.print("[dim]No backends were excluded[/dim]")


DEFAULT_CONFIG = """# keycycle Configuration
server:
  host: 127.0.0.1
  port: 8080
  log_level: INFO

router:
  max_attempts: 3
  retry_delay: 1.0
  cooldown: 60
  backends:
    - id: key-1
      name: API Key 1
      api_key_env: GEMINI_API_KEY_1
      transport: direct
      enabled: true
    - id: key-2
      name: API Key 2
      api_key_env: GEMINI_API_KEY_2
      transport: direct
      enabled: true
"""


@app.command()
def config(
    action: str = typer.Argument("show", help="Action: show, init, path"),
) -> None:
    """Manage configuration."""
    from pathlib import Path

    from keycycle.server.config import get_settings, get_settings_dict

    if action == "show":
        console.print_json(data=get_settings_dict())

    elif action == "init":
        config_path = Path("config.yaml")
        if config_path.exists():
            console.print(f"[yellow]Config file already exists: {config_path}[/yellow]")
            return

        config_path.write_text(DEFAULT_CONFIG)
        console.print(f"[green]Created config file: {config_path}[/green]")

    elif action == "path":
        settings = get_settings()
        if settings.server.config_path:
            console.print(str(settings.server.config_path))
        else:
            console.print("[dim]No config file specified[/dim]")

    else:
        console.print(f"[red]Unknown action: {action}[/red]")
        console.print("[dim]Available actions: show, init, path[/dim]")
        raise typer.Exit(1)


@app.command()
def version() -> None:
    """Show version information."""
    from keycycle import __version__

    console.print(f"keycycle version {__version__}")


if __name__ == "__main__":
    app()
