"""HTTP API server CLI commands."""

from __future__ import annotations

import typer
import uvicorn

app = typer.Typer(no_args_is_help=True)


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Bind port"),
):
    """Run the scan API."""
    uvicorn.run("portsweep.main:app", host=host, port=port)
