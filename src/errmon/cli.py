"""errmon CLI entry point."""

from __future__ import annotations

import os

import httpx
import typer
from rich.console import Console
from rich.table import Table

from errmon.config import DEFAULT_ENDPOINT, CollectorSettings

app = typer.Typer(
    name="errmon",
    help="errmon - error monitoring collector and tools",
    no_args_is_help=True,
)

console = Console()

_DEFAULT_ENDPOINT = os.environ.get("ERRMON_ENDPOINT", DEFAULT_ENDPOINT)


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Interface to bind"),
    port: int = typer.Option(8000, help="Port to listen on"),
    debug: bool = typer.Option(False, "--debug", help="Verbose logging"),
) -> None:
    """Run the collector service."""
    from errmon.collector.app import main

    main(CollectorSettings(host=host, port=port, debug=debug))


@app.command()
def ping(
    endpoint: str = typer.Option(_DEFAULT_ENDPOINT, help="Collector endpoint URL"),
) -> None:
    """Check that a collector is reachable and healthy."""
    try:
        resp = httpx.get(endpoint, timeout=5)
    except httpx.HTTPError as e:
        console.print(f"[red]Cannot reach {endpoint}: {e}[/red]")
        raise typer.Exit(1)

    if resp.status_code >= 400:
        console.print(f"[red]{endpoint} returned {resp.status_code}[/red]")
        raise typer.Exit(1)

    data = resp.json()
    table = Table(title="Collector")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key in ("status", "version", "timestamp"):
        table.add_row(key, str(data.get(key, "")))
    console.print(table)


@app.command()
def stats(
    endpoint: str = typer.Option(_DEFAULT_ENDPOINT, help="Collector endpoint URL"),
) -> None:
    """Show error totals and recurring patterns from a collector."""
    try:
        resp = httpx.get(f"{endpoint.rstrip('/')}/stats", timeout=5)
        resp.raise_for_status()
    except httpx.HTTPError as e:
        console.print(f"[red]Failed to fetch stats: {e}[/red]")
        raise typer.Exit(1)

    data = resp.json()
    console.print(f"[bold]{data.get('total', 0)}[/bold] errors, "
                  f"[bold]{data.get('analytics', 0)}[/bold] analytics events")

    table = Table(title="Patterns")
    table.add_column("Pattern", style="cyan")
    table.add_column("Count", justify="right")
    table.add_column("Frequency", justify="right")
    table.add_column("Severity")
    for p in data.get("patterns", []):
        table.add_row(p["pattern"], str(p["count"]), f"{p['frequency']:.0%}", p["severity"])
    console.print(table)


if __name__ == "__main__":
    app()
