"""
LeetMentor CLI - Typer Commands

Diagnostics and maintenance for the local LeetMentor state: settings,
hint counters, backend health, and offline hint/excerpt runs.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from leetmentor.backend.client import BackendClient, ping_backend_sync
from leetmentor.cli.console import CLI_SESSION, ConsoleSurface, StaticContextCollector
from leetmentor.config import MentorConfig, load_config
from leetmentor.exceptions import BackendError, ConfigError, PersistenceError
from leetmentor.hints.models import ProblemContext
from leetmentor.persistence.ledger import HintLedger
from leetmentor.persistence.store import MentorStore
from leetmentor.service import MentorService
from leetmentor.settings import SettingsStore

logger = logging.getLogger(__name__)
console = Console()

app = typer.Typer(
    name="leetmentor",
    help="Stuck detection and escalating hints for coding practice",
    add_completion=False,
    no_args_is_help=True,
)

_SWITCH_VALUES = {"on": True, "true": True, "yes": True, "off": False, "false": False, "no": False}


def _load_config() -> MentorConfig:
    try:
        return load_config()
    except ConfigError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {e}")
        raise typer.Exit(1)


def _open_store(config: MentorConfig) -> MentorStore:
    store = MentorStore(config.db_path)
    try:
        store.initialize()
    except PersistenceError as e:
        console.print(f"[bold red]Store unavailable:[/bold red] {e}")
        raise typer.Exit(1)
    return store


def _read_snippet(snippet_file: Path | None) -> str:
    if snippet_file is None:
        return ""
    try:
        return snippet_file.read_text()
    except OSError as e:
        console.print(f"[bold red]Cannot read snippet file:[/bold red] {e}")
        raise typer.Exit(1)


def _run_message(context: ProblemContext, message: dict[str, Any]) -> dict[str, Any]:
    """Run one message through a short-lived service."""
    config = _load_config()

    async def _run() -> dict[str, Any]:
        service = MentorService(
            collector=StaticContextCollector(context),
            surface=ConsoleSurface(console),
            config=config,
        )
        try:
            service.store.initialize()
            return await service.handle_message({**message, "sessionId": CLI_SESSION})
        finally:
            await service.backend.close()
            service.store.close()

    try:
        return asyncio.run(_run())
    except PersistenceError as e:
        console.print(f"[bold red]Store unavailable:[/bold red] {e}")
        raise typer.Exit(1)


def _settings_table(data: dict[str, Any]) -> Table:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in data.items():
        table.add_row(key, str(value))
    return table


@app.command()
def settings() -> None:
    """Show the current settings."""
    config = _load_config()
    with _open_store(config) as store:
        current = SettingsStore(store).get()
    console.print(_settings_table(current.to_dict()))


@app.command()
def configure(
    send_code: str = typer.Option(
        None,
        "--send-code",
        help="'on' to allow sending code to the hint server, 'off' to keep it local",
    ),
    server_url: str = typer.Option(None, "--server-url", help="Hint server endpoint"),
) -> None:
    """Change settings."""
    if send_code is None and server_url is None:
        console.print("[yellow]Nothing to change (use --send-code or --server-url)[/yellow]")
        raise typer.Exit(1)

    allow_send = None
    if send_code is not None:
        if send_code.lower() not in _SWITCH_VALUES:
            console.print(f"[bold red]Error:[/bold red] --send-code must be on or off, got {send_code!r}")
            raise typer.Exit(1)
        allow_send = _SWITCH_VALUES[send_code.lower()]

    config = _load_config()
    with _open_store(config) as store:
        try:
            updated = SettingsStore(store).update(allow_send_to_server=allow_send, server_url=server_url)
        except ConfigError as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            raise typer.Exit(1)
    console.print("[green]Settings saved[/green]")
    console.print(_settings_table(updated.to_dict()))


@app.command()
def reset() -> None:
    """Clear hint counters and cached hints (settings are kept)."""
    _run_message(ProblemContext(problem_id=""), {"type": "reset_hints"})
    console.print("[green]Hint counters cleared[/green]")


@app.command(name="restore-defaults")
def restore_defaults() -> None:
    """Restore default settings and clear hint counters."""
    response = _run_message(ProblemContext(problem_id=""), {"type": "restore_defaults"})
    console.print("[green]Settings restored to defaults[/green]")
    console.print(_settings_table(response["settings"]))


@app.command()
def status() -> None:
    """Show hint counters per problem."""
    config = _load_config()
    with _open_store(config) as store:
        counts = HintLedger(store, cap=config.hint_cap).snapshot()

    if not counts:
        console.print("[dim]No hints given yet[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Problem", style="cyan")
    table.add_column("Hints", justify="right")
    table.add_column("Remaining", justify="right")
    for problem_id, count in sorted(counts.items()):
        remaining = config.hint_cap - count
        style = "red" if remaining == 0 else "green"
        table.add_row(problem_id, str(count), f"[{style}]{remaining}[/{style}]")
    console.print(table)


@app.command()
def export(
    output: Path = typer.Option(None, "--output", "-o", help="Write to file instead of stdout"),
) -> None:
    """Export settings and hint counters as JSON."""
    config = _load_config()
    with _open_store(config) as store:
        data = SettingsStore(store).export(HintLedger(store, cap=config.hint_cap).snapshot())

    text = json.dumps(data, indent=2)
    if output is None:
        typer.echo(text)
        return
    output.write_text(text + "\n")
    console.print(f"[green]Exported to {output}[/green]")


@app.command()
def ping(
    timeout: float = typer.Option(5.0, "--timeout", help="Seconds to wait"),
) -> None:
    """Probe the hint server's health endpoint."""
    config = _load_config()
    with _open_store(config) as store:
        server_url = SettingsStore(store).get().server_url

    with console.status(f"[bold blue]Pinging {server_url}...[/bold blue]"):
        health = ping_backend_sync(server_url, timeout=timeout)

    if not health.ok:
        console.print(f"[red]Backend failed:[/red] {health.message}")
        raise typer.Exit(1)

    detail = " ".join(p for p in (health.provider, health.model) if p) or health.message
    console.print(f"[green]Backend OK:[/green] {detail}")


@app.command(name="test-server")
def test_server(
    server_url: str = typer.Option(None, "--server-url", help="Endpoint to test (defaults to settings)"),
) -> None:
    """POST a sample payload to the hint server and show the reply."""
    config = _load_config()
    if server_url is None:
        with _open_store(config) as store:
            server_url = SettingsStore(store).get().server_url

    async def _test() -> Any:
        client = BackendClient(timeout=config.backend_timeout)
        try:
            return await client.test_server(server_url)
        finally:
            await client.close()

    try:
        body = asyncio.run(_test())
    except BackendError as e:
        console.print(f"[red]Server test failed:[/red] {e}")
        raise typer.Exit(1)

    console.print(Panel(json.dumps(body, indent=2), title=f"[bold]{server_url}[/bold]"))


@app.command()
def hint(
    problem_id: str = typer.Argument(..., help="Problem identifier, e.g. two-sum"),
    snippet_file: Path = typer.Option(None, "--snippet-file", "-s", help="File with your current code"),
    failure: str = typer.Option("", "--failure", "-f", help="Failure text from the judge"),
    url: str = typer.Option("", "--url", help="Problem URL"),
) -> None:
    """Request the next hint for a problem."""
    context = ProblemContext(problem_id=problem_id, snippet=_read_snippet(snippet_file), url=url, failure=failure)
    response = _run_message(context, {"type": "request_hint"})
    if not response.get("ok"):
        console.print(f"[red]Hint request failed:[/red] {response.get('error')}")
        raise typer.Exit(1)

    if response.get("action") == "ask_for_code":
        console.print("[dim]Run 'leetmentor excerpt' to see a short excerpt of your code.[/dim]")
        return
    console.print(f"[dim]source: {response['source']}, hints left: {response['remaining']}[/dim]")


@app.command()
def excerpt(
    problem_id: str = typer.Argument(..., help="Problem identifier"),
    snippet_file: Path = typer.Option(None, "--snippet-file", "-s", help="File with your current code"),
) -> None:
    """Show a short excerpt of your code (does not use a hint)."""
    context = ProblemContext(problem_id=problem_id, snippet=_read_snippet(snippet_file))
    response = _run_message(context, {"type": "request_code_snippet"})
    if not response.get("ok"):
        console.print(f"[red]Excerpt request failed:[/red] {response.get('error')}")
        raise typer.Exit(1)
    console.print(Panel(response["snippet"], title=f"[bold]Excerpt ({response['source']})[/bold]"))


def run() -> None:
    """Entry point wrapper that invokes the Typer app."""
    app()


if __name__ == "__main__":
    run()
