"""CLI entry point."""

import logging

import typer

from portsweep.cli.api_commands import app as api_app
from portsweep.cli.scan_commands import app as scan_app
from portsweep.config import settings

app = typer.Typer(
    name="portsweep",
    help="Concurrent host discovery and TCP port scanning.",
    no_args_is_help=True,
)

app.add_typer(scan_app, name="scan", help="Scan operations")
app.add_typer(api_app, name="api", help="HTTP API server")


@app.callback()
def main(
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="Increase log verbosity"),
):
    """Configure logging for every command."""
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = getattr(logging, settings.log_level.upper(), logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [portsweep] %(levelname)s %(name)s: %(message)s",
    )


if __name__ == "__main__":
    app()
