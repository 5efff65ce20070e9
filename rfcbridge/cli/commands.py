"""CLI commands for rfcbridge.

``exec`` runs one command and prints one envelope line; ``serve`` keeps a
destination registered across many request lines on stdin/stdout.
"""

import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from rfcbridge import __logo__, __version__
from rfcbridge.bridge.protocol import Envelope
from rfcbridge.bridge.serialization import encode_envelope_line
from rfcbridge.bridge.service import BridgeService
from rfcbridge.cli.shared.logging_utils import configure_logging
from rfcbridge.config.loader import get_config_path, load_settings, save_settings
from rfcbridge.config.schema import BridgeSettings
from rfcbridge.remote import get_connector
from rfcbridge.remote.contracts import DependencyReport, RemoteConnector

app = typer.Typer(
    name="rfcbridge",
    help=f"{__logo__} rfcbridge - JSON command bridge for remote function calls",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} rfcbridge v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """rfcbridge - JSON command bridge for remote function calls."""
    pass


def _settings(config_path: Path | None) -> BridgeSettings:
    settings = load_settings(config_path)
    configure_logging(settings.logging.level, settings.logging.file)
    return settings


def _connector(name: str) -> RemoteConnector:
    try:
        return get_connector(name)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--connector") from exc


def _emit(envelope: Envelope) -> None:
    typer.echo(encode_envelope_line(envelope))


@app.command("exec", context_settings={"ignore_unknown_options": True, "allow_extra_args": True})
def exec_command(
    command: str = typer.Argument(None, help="connect, ping, sync, invoke, invokecomplex, checkdlls or close"),
    payload: list[str] = typer.Argument(None, help="JSON payload; tokens are joined with single spaces"),
    connector: str = typer.Option(None, "--connector", "-c", help="Connector: pyrfc or memory"),
    config: Path = typer.Option(None, "--config", help="Config file (default ~/.rfcbridge/config.json)"),
):
    """Run one command and print its envelope."""
    try:
        settings = _settings(config)
    except ValueError as exc:
        _emit(Envelope.fail(str(exc), code="INVALID_CONFIG"))
        raise typer.Exit(1)
    service = BridgeService(settings, _connector(connector or settings.connector))
    try:
        envelope = service.run_once([command, *(payload or [])] if command else [])
    finally:
        service.close()
    _emit(envelope)
    raise typer.Exit(0 if envelope.success else 1)


@app.command()
def serve(
    connector: str = typer.Option(None, "--connector", "-c", help="Connector: pyrfc or memory"),
    config: Path = typer.Option(None, "--config", help="Config file (default ~/.rfcbridge/config.json)"),
):
    """Answer line-delimited JSON requests on stdin until EOF or shutdown."""
    settings = _settings(config)
    service = BridgeService(settings, _connector(connector or settings.connector))
    service.serve(sys.stdin, sys.stdout)


def _format_report(report: DependencyReport) -> None:
    table = Table(title=f"{report.connector} connector requirements")
    table.add_column("Check", style="cyan")
    table.add_column("Status")
    for name, ok in report.checks.items():
        table.add_row(name, "[green]ok[/green]" if ok else "[red]missing[/red]")
    console.print(table)
    for name, value in report.paths.items():
        if value:
            console.print(f"{name}: {value}")
    if report.suggestions:
        console.print("[yellow]Suggestions:[/yellow]")
        for text in report.suggestions:
            console.print(f"- {text}")


@app.command()
def doctor(
    connector: str = typer.Option(None, "--connector", "-c", help="Connector: pyrfc or memory"),
    config: Path = typer.Option(None, "--config", help="Config file (default ~/.rfcbridge/config.json)"),
):
    """Check that the connector's runtime dependencies are installed."""
    settings = _settings(config)
    report = _connector(connector or settings.connector).check_dependencies()
    _format_report(report)
    if not report.ok:
        console.print(f"[red]Missing: {', '.join(report.missing)}[/red]")
        raise typer.Exit(1)
    console.print("[green]All connector dependencies found.[/green]")


@app.command()
def init(
    force: bool = typer.Option(False, "--force", help="Overwrite an existing config file"),
    config: Path = typer.Option(None, "--config", help="Config file (default ~/.rfcbridge/config.json)"),
):
    """Write a default config file."""
    config_path = config or get_config_path()
    if config_path.exists() and not force:
        console.print(f"[yellow]Config already exists at {config_path}[/yellow] (use --force to overwrite)")
        raise typer.Exit(1)
    save_settings(BridgeSettings(), config_path)
    console.print(f"[green]✓[/green] Created config at {config_path}")


if __name__ == "__main__":
    app()
